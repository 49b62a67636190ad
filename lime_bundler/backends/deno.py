"""``deno bundle`` backend.

Deno does not report which chunks belong to which entrypoint, so the
entrypoint manifest is inferred from the proxy files it writes next to the
chunks.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..bundle.assembler import AssembledFile, ResultAssembler
from ..bundle.graph import resolve_inferred
from ..bundle.reader import (
    BUILD_ID_ENTRY_PREFIX,
    DEFAULT_NESTED_DIR,
    ensure_source_map_reference,
    is_client_entry,
    normalize_content,
    normalize_output_name,
    read_text,
    scan_output_files,
)
from ..bundle.utils import write_text
from ..models import BundleResult, BundlerConfig, BundleWarning, create_error_result
from .base import Bundler, run_engine
from .diagnostics import failure_errors, parse_diagnostics

logger = logging.getLogger(__name__)


def build_id_module(build_id: str) -> str:
    return f'export const BUILD_ID = "{build_id}";\n'


class DenoBundlerBackend(Bundler):
    name = "deno-bundler"

    def command(self, config: BundlerConfig, out_dir: Path, entries: List[str]) -> List[str]:
        cmd = [
            self.settings.deno,
            "bundle",
            "--quiet",
            "--outdir",
            str(out_dir),
            "--format",
            config.format,
            "--platform",
            "browser",
        ]
        if config.platform != "browser":
            logger.debug("deno bundle only targets browsers; ignoring platform %s", config.platform)
        if config.code_splitting:
            cmd.append("--code-splitting")
        if config.minify:
            cmd.append("--minify")
        if config.sourcemap != "off":
            cmd.append(f"--sourcemap={config.sourcemap}")
        for name in config.external or ():
            cmd.extend(["--external", name])
        cmd.extend(entries)
        return cmd

    def _bundle(self, config: BundlerConfig, temp_dir: Path, build_id: Optional[str]) -> BundleResult:
        entries = list(config.entrypoints.values())
        if build_id is not None:
            build_id_entry = temp_dir / f"{BUILD_ID_ENTRY_PREFIX}.ts"
            write_text(build_id_entry, build_id_module(build_id))
            entries.insert(0, str(build_id_entry))

        out_dir = temp_dir / "out"
        cwd = Path(config.config_path).parent if config.config_path else None
        proc = run_engine(self.command(config, out_dir, entries), cwd=cwd)
        if proc.returncode != 0:
            return create_error_result(failure_errors(proc.stderr, proc.returncode, "deno bundle"), build_id=build_id)

        _, warnings = parse_diagnostics(proc.stderr)
        return self._process_output(config, out_dir, build_id, warnings)

    def _process_output(
        self, config: BundlerConfig, out_dir: Path, build_id: Optional[str], warnings: Sequence[BundleWarning]
    ) -> BundleResult:
        scan = scan_output_files(out_dir)
        plugins = config.build_plugins()
        assembler = ResultAssembler()

        map_names: Dict[str, Path] = {}
        for item in scan.maps():
            name = normalize_output_name(item.name, self.entry_name)
            map_names[name] = item.path
            assembler.add_source_map(name, item.path.read_bytes())

        main_entry: Optional[str] = None
        for item in scan.scripts():
            name = normalize_output_name(item.name, self.entry_name)
            content = plugins.apply(name, normalize_content(read_text(item.path), config.base_path))
            if is_client_entry(item.name):
                main_entry = name
                if f"{name}.map" in map_names:
                    content = ensure_source_map_reference(content, f"{name}.map")
            assembler.add(AssembledFile(name=name, code=content.encode("utf-8")))

        fallback_dir = scan.root if scan.nested else scan.root / DEFAULT_NESTED_DIR
        manifest = resolve_inferred(config.entrypoints, scan.scan_dir, fallback_dir)
        return assembler.build(
            entrypoint_manifest=manifest,
            entrypoint=main_entry or f"{self.entry_name}.js",
            warnings=warnings,
            build_id=build_id,
        )
