"""Backend-agnostic data model shared by every bundler backend."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Pattern, Protocol, Sequence, Tuple, Union

FORMATS = ("esm", "cjs", "iife")
PLATFORMS = ("browser", "node", "neutral")
SOURCEMAP_MODES = ("off", "inline", "external")
IMPORT_KINDS = ("import-statement", "dynamic-import", "require", "url")


@dataclass(frozen=True, slots=True)
class TransformArgs:
    path: str
    code: str


@dataclass(frozen=True, slots=True)
class TransformResult:
    code: Optional[str] = None


TransformCallback = Callable[[TransformArgs], Optional[TransformResult]]


class PluginBuild:
    """Collects output transforms registered by plugins during setup."""

    def __init__(self) -> None:
        self.transforms: List[Tuple[Pattern[str], TransformCallback]] = []

    def on_transform(self, pattern: Union[str, Pattern[str]], callback: TransformCallback) -> None:
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.transforms.append((compiled, callback))

    def apply(self, path: str, code: str) -> str:
        current = code
        for pattern, callback in self.transforms:
            if not pattern.search(path):
                continue
            result = callback(TransformArgs(path=path, code=current))
            if result is not None and result.code is not None:
                current = result.code
        return current


class BundlerPlugin(Protocol):
    name: str

    def setup(self, build: PluginBuild) -> None:  # pragma: no cover - interface
        ...


@dataclass(frozen=True, slots=True)
class BundlerConfig:
    """Configuration for one bundling invocation."""

    entrypoints: Mapping[str, str]
    output_dir: str
    format: str = "esm"
    platform: str = "browser"
    code_splitting: bool = True
    minify: bool = False
    sourcemap: Union[bool, str] = "off"
    target: Optional[Sequence[str]] = None
    define: Optional[Mapping[str, str]] = None
    external: Optional[Sequence[str]] = None
    plugins: Optional[Sequence[BundlerPlugin]] = None
    config_path: Optional[str] = None
    base_path: Optional[str] = None
    build_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.entrypoints:
            raise ValueError("BundlerConfig requires at least one entrypoint")
        if self.format not in FORMATS:
            raise ValueError(f"Unsupported output format '{self.format}'")
        if self.platform not in PLATFORMS:
            raise ValueError(f"Unsupported platform '{self.platform}'")

        sourcemap = self.sourcemap
        if sourcemap is True:
            sourcemap = "external"
        elif sourcemap is False or sourcemap is None:
            sourcemap = "off"
        if sourcemap not in SOURCEMAP_MODES:
            raise ValueError(f"Unsupported sourcemap mode '{self.sourcemap}'")

        object.__setattr__(self, "sourcemap", sourcemap)
        object.__setattr__(self, "entrypoints", MappingProxyType(dict(self.entrypoints)))

    def build_plugins(self) -> PluginBuild:
        build = PluginBuild()
        for plugin in self.plugins or ():
            plugin.setup(build)
        return build


@dataclass(frozen=True, slots=True)
class BundleOutput:
    """One physical output file."""

    path: str
    code: bytes
    size: int
    hash: str
    is_entry: Optional[bool] = None
    map: Optional[bytes] = None

    @classmethod
    def from_code(
        cls,
        path: str,
        code: bytes,
        *,
        is_entry: Optional[bool] = None,
        map: Optional[bytes] = None,
    ) -> "BundleOutput":
        from .bundle.utils import compute_hash

        return cls(path=path, code=code, size=len(code), hash=compute_hash(code), is_entry=is_entry, map=map)


@dataclass(frozen=True, slots=True)
class BundleError:
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    severity: str = "error"


@dataclass(frozen=True, slots=True)
class BundleWarning:
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass(frozen=True, slots=True)
class InputImport:
    path: str
    kind: str = "import-statement"
    external: bool = False


@dataclass(frozen=True, slots=True)
class InputMetadata:
    bytes: int
    imports: Tuple[InputImport, ...] = ()


@dataclass(frozen=True, slots=True)
class OutputImport:
    path: str
    kind: str = "import-statement"


@dataclass(frozen=True, slots=True)
class OutputMetadata:
    bytes: int
    imports: Tuple[OutputImport, ...] = ()
    inputs: Mapping[str, int] = field(default_factory=dict)
    entry_point: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BundleMetafile:
    """Build graph independent of the backend that produced it."""

    inputs: Mapping[str, InputMetadata] = field(default_factory=dict)
    outputs: Mapping[str, OutputMetadata] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BundleResult:
    """Outcome of a single ``bundle()`` call."""

    success: bool
    outputs: Mapping[str, BundleOutput]
    errors: Tuple[BundleError, ...] = ()
    warnings: Tuple[BundleWarning, ...] = ()
    metafile: Optional[BundleMetafile] = None
    entrypoint_manifest: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    entrypoint: Optional[str] = None
    total_size: int = 0
    build_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ClientComponentInfo:
    """Client component reported by the rendering runtime."""

    file_path: str
    relative_path: str
    export_names: Sequence[str] = ()

    @property
    def export_name(self) -> str:
        return self.export_names[0] if self.export_names else "default"


def create_success_result(
    outputs: Mapping[str, BundleOutput],
    *,
    metafile: Optional[BundleMetafile] = None,
    entrypoint_manifest: Optional[Mapping[str, Sequence[str]]] = None,
    entrypoint: Optional[str] = None,
    warnings: Sequence[BundleWarning] = (),
    build_id: Optional[str] = None,
) -> BundleResult:
    manifest: Dict[str, Tuple[str, ...]] = {
        key: tuple(chunks) for key, chunks in (entrypoint_manifest or {}).items()
    }
    return BundleResult(
        success=True,
        outputs=MappingProxyType(dict(outputs)),
        warnings=tuple(warnings),
        metafile=metafile,
        entrypoint_manifest=MappingProxyType(manifest),
        entrypoint=entrypoint,
        total_size=sum(output.size for output in outputs.values()),
        build_id=build_id,
    )


def create_error_result(errors: Sequence[BundleError], *, build_id: Optional[str] = None) -> BundleResult:
    return BundleResult(
        success=False,
        outputs=MappingProxyType({}),
        errors=tuple(errors),
        build_id=build_id,
    )


def fatal_error_result(exc: BaseException, *, build_id: Optional[str] = None) -> BundleResult:
    return create_error_result([BundleError(message=str(exc) or exc.__class__.__name__, severity="fatal")], build_id=build_id)
