"""esbuild CLI backend driven by its ``--metafile`` build graph."""

from __future__ import annotations

import json
import logging
import posixpath
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..bundle.assembler import AssembledFile, ResultAssembler
from ..bundle.graph import ChunkDescriptor, resolve_direct
from ..bundle.proxy import proxy_file_path
from ..bundle.reader import read_text, rewrite_base_path
from ..models import (
    BundleResult,
    BundlerConfig,
    BundleWarning,
    InputImport,
    InputMetadata,
    OutputImport,
    create_error_result,
)
from .base import Bundler, BundlerBackendError, run_engine
from .diagnostics import failure_errors, parse_diagnostics

logger = logging.getLogger(__name__)

OUT_DIR = "out"
METAFILE = "meta.json"

_SOURCEMAP_FLAGS = {"inline": "--sourcemap=inline", "external": "--sourcemap=linked"}
_LOCAL_KINDS = {"import-statement": "import-statement", "dynamic-import": "dynamic-import"}


def output_stem(entry_key: str) -> str:
    """``src/app/counter.tsx`` -> ``src/app/counter``."""

    return proxy_file_path(entry_key)[: -len(".js")]


class EsbuildBundlerBackend(Bundler):
    name = "esbuild"

    def command(self, config: BundlerConfig) -> List[str]:
        cmd = [self.settings.esbuild]
        for key, path in config.entrypoints.items():
            cmd.append(f"{output_stem(key)}={Path(path).resolve().as_posix()}")
        cmd.extend(
            [
                "--bundle",
                f"--outdir={OUT_DIR}",
                f"--format={config.format}",
                f"--platform={config.platform}",
                f"--metafile={METAFILE}",
                "--chunk-names=chunk-[hash]",
                "--log-level=warning",
            ]
        )
        if config.code_splitting and config.format == "esm":
            cmd.append("--splitting")
        if config.minify:
            cmd.append("--minify")
        if config.sourcemap in _SOURCEMAP_FLAGS:
            cmd.append(_SOURCEMAP_FLAGS[config.sourcemap])
        if config.target:
            cmd.append(f"--target={','.join(config.target)}")
        for key, value in (config.define or {}).items():
            cmd.append(f"--define:{key}={value}")
        for name in config.external or ():
            cmd.append(f"--external:{name}")
        return cmd

    def _bundle(self, config: BundlerConfig, temp_dir: Path, build_id: Optional[str]) -> BundleResult:
        proc = run_engine(self.command(config), cwd=temp_dir)
        if proc.returncode != 0:
            return create_error_result(failure_errors(proc.stderr, proc.returncode, "esbuild"), build_id=build_id)

        metafile_path = temp_dir / METAFILE
        try:
            metafile = json.loads(metafile_path.read_text(encoding="utf-8"))
        except (FileNotFoundError, json.JSONDecodeError) as exc:
            raise BundlerBackendError(f"Unreadable esbuild metafile: {exc}") from exc

        _, warnings = parse_diagnostics(proc.stderr)
        return self._process_metafile(config, temp_dir, metafile, build_id, warnings)

    def _process_metafile(
        self,
        config: BundlerConfig,
        temp_dir: Path,
        metafile: Mapping[str, Any],
        build_id: Optional[str],
        warnings: Sequence[BundleWarning],
    ) -> BundleResult:
        plugins = config.build_plugins()
        assembler = ResultAssembler()
        descriptors: List[ChunkDescriptor] = []
        entry_lookup = {Path(path).resolve(): path for path in config.entrypoints.values()}
        expected_entry = f"{self.entry_name}.js"
        main_entry: Optional[str] = None

        for out_path, meta in metafile.get("outputs", {}).items():
            name = self._relative_output(out_path)
            if name is None:
                logger.debug("Ignoring esbuild output outside %s: %s", OUT_DIR, out_path)
                continue
            source = temp_dir / out_path
            if name.endswith(".map"):
                assembler.add_source_map(name, source.read_bytes())
                continue

            static_imports, output_imports = self._output_imports(meta.get("imports", ()))
            facade = self._facade(temp_dir, meta.get("entryPoint"), entry_lookup)
            is_entry = facade is not None
            if is_entry and (name == expected_entry or main_entry is None):
                main_entry = name
            descriptors.append(
                ChunkDescriptor(file_name=name, is_entry=is_entry, facade_module_id=facade, imports=static_imports)
            )

            code = plugins.apply(name, rewrite_base_path(read_text(source), config.base_path))
            assembler.add(
                AssembledFile(
                    name=name,
                    code=code.encode("utf-8"),
                    is_entry=is_entry,
                    imports=output_imports,
                    entry_point=facade,
                )
            )

        return assembler.build(
            entrypoint_manifest=resolve_direct(descriptors),
            entrypoint=main_entry or expected_entry,
            inputs=self._inputs(metafile.get("inputs", {})),
            warnings=warnings,
            build_id=build_id,
        )

    @staticmethod
    def _relative_output(out_path: str) -> Optional[str]:
        normalized = posixpath.normpath(out_path.replace("\\", "/"))
        prefix = f"{OUT_DIR}/"
        if not normalized.startswith(prefix):
            return None
        return normalized[len(prefix) :]

    def _output_imports(self, imports: Sequence[Mapping[str, Any]]) -> Tuple[Tuple[str, ...], List[OutputImport]]:
        static: List[str] = []
        collected: List[OutputImport] = []
        for item in imports:
            if item.get("external"):
                continue
            kind = _LOCAL_KINDS.get(item.get("kind", ""))
            path = self._relative_output(item.get("path", ""))
            if kind is None or path is None:
                continue
            if kind == "import-statement" and path not in static:
                static.append(path)
            if all(existing.path != path for existing in collected):
                collected.append(OutputImport(path=path, kind=kind))
        return tuple(static), collected

    @staticmethod
    def _facade(temp_dir: Path, entry_point: Optional[str], entry_lookup: Mapping[Path, str]) -> Optional[str]:
        if not entry_point:
            return None
        resolved = (temp_dir / entry_point).resolve()
        facade = entry_lookup.get(resolved)
        if facade is None:
            logger.debug("esbuild entry point %s does not match a configured entrypoint", entry_point)
        return facade

    @staticmethod
    def _inputs(inputs: Mapping[str, Mapping[str, Any]]) -> Dict[str, InputMetadata]:
        return {
            path: InputMetadata(
                bytes=int(meta.get("bytes", 0)),
                imports=tuple(
                    InputImport(
                        path=item.get("path", ""),
                        kind=item.get("kind", "import-statement"),
                        external=bool(item.get("external", False)),
                    )
                    for item in meta.get("imports", ())
                ),
            )
            for path, meta in inputs.items()
        }
