"""Rolldown backend.

Rolldown is driven through a small Node script written into the build's temp
directory. The script runs ``rolldown().generate()`` and writes every output
chunk, with its facade module id and import list, to a JSON file. That gives
the direct dependency strategy everything it needs.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..bundle.assembler import AssembledFile, ResultAssembler
from ..bundle.graph import ChunkDescriptor, resolve_direct
from ..bundle.reader import ensure_source_map_reference, rewrite_base_path
from ..bundle.utils import write_json, write_text
from ..models import BundleError, BundleResult, BundlerConfig, BundleWarning, OutputImport, create_error_result
from ..settings import BundlerSettings
from .base import Bundler, BundlerBackendError, run_engine
from .diagnostics import failure_errors

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIZE = 20000

RUNNER_SCRIPT = r"""
import { readFileSync, writeFileSync } from "node:fs";
import { createRequire } from "node:module";
import { join } from "node:path";
import { pathToFileURL } from "node:url";

const [optionsPath, resultPath] = process.argv.slice(2);
const options = JSON.parse(readFileSync(optionsPath, "utf8"));

const report = (payload) => writeFileSync(resultPath, JSON.stringify(payload));

const toRegExp = (group) => ({ ...group, test: new RegExp(group.test) });

try {
  const require = createRequire(join(process.cwd(), "noop.js"));
  const { rolldown } = await import(pathToFileURL(require.resolve("rolldown")).href);

  const input = { input: options.input, external: options.external };
  if (options.treeshake !== undefined) input.treeshake = options.treeshake;
  if (options.moduleSideEffects !== undefined) {
    input.treeshake = { ...(typeof input.treeshake === "object" ? input.treeshake : {}), moduleSideEffects: options.moduleSideEffects };
  }
  if (options.preserveEntrySignatures !== undefined) input.preserveEntrySignatures = options.preserveEntrySignatures;
  if (options.define !== undefined) input.define = options.define;
  if (options.platform !== undefined) input.platform = options.platform;

  const output = { ...options.output };
  if (output.advancedChunks !== undefined) {
    output.advancedChunks = { ...output.advancedChunks, groups: (output.advancedChunks.groups ?? []).map(toRegExp) };
  }

  const bundle = await rolldown(input);
  const { output: items } = await bundle.generate(output);
  await bundle.close();

  report({
    output: items.map((item) => item.type === "chunk"
      ? {
        type: "chunk",
        fileName: item.fileName,
        isEntry: item.isEntry,
        isDynamicEntry: item.isDynamicEntry,
        facadeModuleId: item.facadeModuleId ?? null,
        imports: item.imports ?? [],
        dynamicImports: item.dynamicImports ?? [],
        code: item.code,
        map: item.map ? item.map.toString() : null,
      }
      : {
        type: "asset",
        fileName: item.fileName,
        source: typeof item.source === "string" ? item.source : Buffer.from(item.source).toString("base64"),
        encoding: typeof item.source === "string" ? "utf8" : "base64",
      }),
  });
} catch (error) {
  const errors = Array.isArray(error?.errors) ? error.errors : [error];
  report({
    errors: errors.map((item) => ({
      message: String(item?.message ?? item),
      file: item?.loc?.file ?? item?.id ?? null,
      line: item?.loc?.line ?? null,
      column: item?.loc?.column ?? null,
    })),
  });
  process.exitCode = 1;
}
"""

_FORMATS = {"esm": "es", "cjs": "cjs", "iife": "iife"}


@dataclass(frozen=True, slots=True)
class ChunkGroup:
    name: str
    test: str
    priority: int = 0
    min_chunks: Optional[int] = None
    reuse_existing_chunk: Optional[bool] = None


@dataclass(frozen=True, slots=True)
class AdvancedChunksConfig:
    min_size: Optional[int] = None
    max_size: Optional[int] = None
    groups: Tuple[ChunkGroup, ...] = ()


@dataclass(frozen=True, slots=True)
class RolldownOptions:
    advanced_chunks: Optional[AdvancedChunksConfig] = None
    treeshake: Optional[bool] = None
    preserve_entry_signatures: Optional[Union[str, bool]] = None
    module_side_effects: Optional[Union[bool, str, Sequence[str]]] = None
    extra: Mapping[str, Any] = field(default_factory=dict)


_NODE_MODULES = r"[\\/]node_modules[\\/]"


class RolldownPresets:
    """Named option bundles for common project shapes."""

    @staticmethod
    def default() -> RolldownOptions:
        return RolldownOptions(treeshake=True, advanced_chunks=AdvancedChunksConfig(min_size=DEFAULT_MIN_SIZE))

    @staticmethod
    def react() -> RolldownOptions:
        return RolldownOptions(
            treeshake=True,
            advanced_chunks=AdvancedChunksConfig(
                min_size=10000,
                groups=(
                    ChunkGroup("react-vendor", _NODE_MODULES + r"(react|react-dom|scheduler)[\\/]", 30),
                    ChunkGroup("vendor", _NODE_MODULES, 10),
                ),
            ),
        )

    @staticmethod
    def library() -> RolldownOptions:
        return RolldownOptions(
            treeshake=True,
            preserve_entry_signatures="strict",
            advanced_chunks=AdvancedChunksConfig(min_size=0),
        )

    @staticmethod
    def ssr() -> RolldownOptions:
        return RolldownOptions(
            treeshake=True,
            module_side_effects="no-external",
            advanced_chunks=AdvancedChunksConfig(
                min_size=5000,
                groups=(
                    ChunkGroup("react-vendor", _NODE_MODULES + r"(react|react-dom)[\\/]", 30),
                    ChunkGroup("framework", _NODE_MODULES + r"(@radix-ui|@headlessui|lucide-react)[\\/]", 20),
                    ChunkGroup("vendor", _NODE_MODULES, 10),
                ),
            ),
        )

    @staticmethod
    def performance() -> RolldownOptions:
        return RolldownOptions(
            treeshake=True,
            module_side_effects=False,
            advanced_chunks=AdvancedChunksConfig(
                min_size=30000,
                max_size=250000,
                groups=(
                    ChunkGroup("react", _NODE_MODULES + r"(react|react-dom|scheduler)[\\/]", 40),
                    ChunkGroup("ui", _NODE_MODULES + r"(@radix-ui|@headlessui|cmdk)[\\/]", 30),
                    ChunkGroup("utils", _NODE_MODULES + r"(clsx|tailwind-merge|class-variance-authority)[\\/]", 20),
                    ChunkGroup("vendor", _NODE_MODULES, 10),
                ),
            ),
        )


PRESETS = {
    "default": RolldownPresets.default,
    "react": RolldownPresets.react,
    "library": RolldownPresets.library,
    "ssr": RolldownPresets.ssr,
    "performance": RolldownPresets.performance,
}


def merge_options(base: RolldownOptions, overrides: Optional[Mapping[str, Any]] = None) -> RolldownOptions:
    """Overlay ``overrides`` on ``base``; advanced chunk settings merge field by field."""

    if not overrides:
        return base
    updates = dict(overrides)
    unknown = sorted(set(updates) - set(RolldownOptions.__dataclass_fields__))
    if unknown:
        raise ValueError(f"Unknown rolldown options: {', '.join(unknown)}")
    chunk_overrides = updates.pop("advanced_chunks", None)
    merged = replace(base, **updates)
    if chunk_overrides is None:
        return merged
    if isinstance(chunk_overrides, AdvancedChunksConfig):
        chunk_overrides = {key: value for key, value in asdict(chunk_overrides).items() if value not in (None, ())}
    chunk_overrides = dict(chunk_overrides)
    if "groups" in chunk_overrides:
        chunk_overrides["groups"] = tuple(
            group if isinstance(group, ChunkGroup) else ChunkGroup(**group) for group in chunk_overrides["groups"]
        )
    current = base.advanced_chunks or AdvancedChunksConfig()
    return replace(merged, advanced_chunks=replace(current, **chunk_overrides))


def _group_payload(group: ChunkGroup) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"name": group.name, "test": group.test, "priority": group.priority}
    if group.min_chunks is not None:
        payload["minChunks"] = group.min_chunks
    if group.reuse_existing_chunk is not None:
        payload["reuseExistingChunk"] = group.reuse_existing_chunk
    return payload


class RolldownBundlerBackend(Bundler):
    name = "rolldown"

    def __init__(
        self,
        options: Optional[RolldownOptions] = None,
        *,
        build_id: Optional[str] = None,
        entry_name: Optional[str] = None,
        settings: Optional[BundlerSettings] = None,
    ) -> None:
        super().__init__(build_id=build_id, entry_name=entry_name, settings=settings)
        self.options = options or RolldownOptions()

    def runner_options(self, config: BundlerConfig) -> Dict[str, Any]:
        output: Dict[str, Any] = {
            "format": _FORMATS[config.format],
            "entryFileNames": "[name].js",
            "chunkFileNames": "chunk-[hash].js",
            "minify": config.minify,
        }
        if config.sourcemap == "inline":
            output["sourcemap"] = "inline"
        elif config.sourcemap == "external":
            output["sourcemap"] = True
        if not config.code_splitting:
            output["inlineDynamicImports"] = True

        advanced = self.options.advanced_chunks
        if advanced is not None:
            chunks: Dict[str, Any] = {
                "minSize": advanced.min_size if advanced.min_size is not None else DEFAULT_MIN_SIZE,
                "groups": [_group_payload(group) for group in advanced.groups],
            }
            if advanced.max_size is not None:
                chunks["maxSize"] = advanced.max_size
            output["advancedChunks"] = chunks

        payload: Dict[str, Any] = {
            "input": dict(config.entrypoints),
            "external": list(config.external or ()),
            "platform": config.platform,
            "output": output,
        }
        if config.define:
            payload["define"] = dict(config.define)
        if self.options.treeshake is not None:
            payload["treeshake"] = self.options.treeshake
        if self.options.preserve_entry_signatures is not None:
            payload["preserveEntrySignatures"] = self.options.preserve_entry_signatures
        if self.options.module_side_effects is not None:
            side_effects = self.options.module_side_effects
            payload["moduleSideEffects"] = side_effects if isinstance(side_effects, (bool, str)) else list(side_effects)
        payload.update(self.options.extra)
        return payload

    def _bundle(self, config: BundlerConfig, temp_dir: Path, build_id: Optional[str]) -> BundleResult:
        script = temp_dir / "rolldown-runner.mjs"
        options_path = temp_dir / "options.json"
        result_path = temp_dir / "result.json"
        write_text(script, RUNNER_SCRIPT)
        write_json(self.runner_options(config), options_path)

        cwd = Path(config.config_path).parent if config.config_path else None
        proc = run_engine([self.settings.node, str(script), str(options_path), str(result_path)], cwd=cwd)
        report = self._read_report(result_path)

        if proc.returncode != 0 or "errors" in report:
            errors = [
                BundleError(
                    message=item.get("message") or "Unknown error",
                    file=item.get("file"),
                    line=item.get("line"),
                    column=item.get("column"),
                )
                for item in report.get("errors", ())
            ]
            return create_error_result(errors or failure_errors(proc.stderr, proc.returncode, "rolldown"), build_id=build_id)

        if "output" not in report:
            raise BundlerBackendError("rolldown runner wrote no output report")
        warnings = [BundleWarning(message=line.strip()) for line in proc.stderr.splitlines() if line.strip()]
        return self._process_output(config, report["output"], build_id, warnings)

    @staticmethod
    def _read_report(path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise BundlerBackendError(f"Unreadable rolldown report: {exc}") from exc

    def _process_output(
        self,
        config: BundlerConfig,
        items: Sequence[Mapping[str, Any]],
        build_id: Optional[str],
        warnings: Sequence[BundleWarning],
    ) -> BundleResult:
        plugins = config.build_plugins()
        assembler = ResultAssembler()
        descriptors: List[ChunkDescriptor] = []
        expected_entry = f"{self.entry_name}.js"
        main_entry: Optional[str] = None

        for item in items:
            name = item["fileName"]
            if item["type"] == "asset":
                content = item["source"]
                data = base64.b64decode(content) if item.get("encoding") == "base64" else content.encode("utf-8")
                if name.endswith(".map"):
                    assembler.add_source_map(name, data)
                else:
                    assembler.add(AssembledFile(name=name, code=data, is_entry=False, imports=()))
                continue

            code = plugins.apply(name, rewrite_base_path(item["code"], config.base_path))
            source_map = item.get("map")
            if source_map is not None and config.sourcemap == "external":
                code = ensure_source_map_reference(code, f"{name}.map")

            is_entry = bool(item.get("isEntry"))
            facade = item.get("facadeModuleId") if is_entry else None
            imports = tuple(item.get("imports") or ())
            dynamic_imports = tuple(item.get("dynamicImports") or ())
            descriptors.append(ChunkDescriptor(file_name=name, is_entry=is_entry, facade_module_id=facade, imports=imports))

            if is_entry and (name == expected_entry or main_entry is None):
                main_entry = name

            assembler.add(
                AssembledFile(
                    name=name,
                    code=code.encode("utf-8"),
                    map=source_map.encode("utf-8") if source_map is not None else None,
                    is_entry=is_entry,
                    imports=[OutputImport(path=path) for path in imports]
                    + [OutputImport(path=path, kind="dynamic-import") for path in dynamic_imports if path not in imports],
                    entry_point=facade,
                )
            )

        if config.sourcemap == "external":
            for name in assembler.names:
                item = assembler.get(name)
                if item is not None and item.map is not None and f"{name}.map" not in assembler.names:
                    assembler.add_source_map(f"{name}.map", item.map)

        return assembler.build(
            entrypoint_manifest=resolve_direct(descriptors),
            entrypoint=main_entry or expected_entry,
            warnings=warnings,
            build_id=build_id,
        )


def create_rolldown_with_preset(
    preset: Union[str, RolldownOptions] = "default",
    overrides: Optional[Mapping[str, Any]] = None,
    **kwargs: Any,
) -> RolldownBundlerBackend:
    if isinstance(preset, str):
        try:
            base = PRESETS[preset]()
        except KeyError:
            raise ValueError(f"Unknown rolldown preset '{preset}'") from None
    else:
        base = preset
    return RolldownBundlerBackend(merge_options(base, overrides), **kwargs)
