"""Assemble normalized output files into a backend-agnostic BundleResult."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..models import (
    BundleMetafile,
    BundleOutput,
    BundleResult,
    BundleWarning,
    InputMetadata,
    OutputImport,
    OutputMetadata,
    create_success_result,
)
from .reader import CHUNK_PREFIX

logger = logging.getLogger(__name__)

_STATIC_IMPORT = re.compile(r"""\bimport\s*(?:[\w\s{},*$]+?\s*from\s*)?["'](?P<path>[^"'\s]+)["']""")
_REEXPORT = re.compile(
    r"""\bexport\s*(?:\*(?:\s*as\s+[\w$]+)?|\{[\w\s,$]*\})\s*from\s*["'](?P<path>[^"'\s]+)["']"""
)
_DYNAMIC_IMPORT = re.compile(r"""\bimport\s*\(\s*["'](?P<path>[^"']+)["']\s*\)""")


def _normalize_import_path(path: str) -> Optional[str]:
    if path.startswith("./"):
        return path[2:]
    if path.startswith("../"):
        return path
    if path.startswith("/"):
        return path[1:]
    return None


def parse_imports(content: str) -> List[OutputImport]:
    """Return the local imports of a generated file, first occurrence wins."""

    found: Dict[str, OutputImport] = {}
    patterns = (
        (_STATIC_IMPORT, "import-statement"),
        (_REEXPORT, "import-statement"),
        (_DYNAMIC_IMPORT, "dynamic-import"),
    )
    matches: List[Tuple[int, str, str]] = []
    for pattern, kind in patterns:
        for match in pattern.finditer(content):
            matches.append((match.start(), match.group("path"), kind))

    for _, raw_path, kind in sorted(matches):
        normalized = _normalize_import_path(raw_path)
        if normalized is None or normalized in found:
            continue
        found[normalized] = OutputImport(path=normalized, kind=kind)
    return list(found.values())


@dataclass(slots=True)
class AssembledFile:
    """A normalized output file waiting to be hashed."""

    name: str
    code: bytes
    map: Optional[bytes] = None
    is_entry: Optional[bool] = None
    imports: Optional[Sequence[OutputImport]] = None
    entry_point: Optional[str] = None


class ResultAssembler:
    """Collects normalized files and builds the final BundleResult."""

    def __init__(self, *, max_workers: int = 1) -> None:
        self.max_workers = max_workers
        self._files: Dict[str, AssembledFile] = {}
        self._maps: Dict[str, bytes] = {}

    def add(self, item: AssembledFile) -> None:
        if item.name in self._files:
            raise ValueError(f"Duplicate output path '{item.name}'")
        self._files[item.name] = item

    def add_source_map(self, name: str, content: bytes) -> None:
        self._maps[name] = content

    @property
    def names(self) -> List[str]:
        return list(self._files)

    def get(self, name: str) -> Optional[AssembledFile]:
        return self._files.get(name)

    def build(
        self,
        *,
        entrypoint_manifest: Optional[Mapping[str, Sequence[str]]] = None,
        entrypoint: Optional[str] = None,
        inputs: Optional[Mapping[str, InputMetadata]] = None,
        warnings: Sequence[BundleWarning] = (),
        build_id: Optional[str] = None,
    ) -> BundleResult:
        items = list(self._files.values())
        if self.max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                processed = list(pool.map(self._process, items))
        else:
            processed = [self._process(item) for item in items]

        outputs: Dict[str, BundleOutput] = {}
        meta_outputs: Dict[str, OutputMetadata] = {}
        for output, metadata in processed:
            outputs[output.path] = output
            meta_outputs[output.path] = metadata

        for map_name, content in self._maps.items():
            if map_name in outputs:
                continue
            outputs[map_name] = BundleOutput.from_code(map_name, content, is_entry=False)

        metafile = BundleMetafile(inputs=dict(inputs or {}), outputs=meta_outputs)
        result = create_success_result(
            outputs,
            metafile=metafile,
            entrypoint_manifest=entrypoint_manifest,
            entrypoint=entrypoint or "main.js",
            warnings=warnings,
            build_id=build_id,
        )
        logger.debug("Assembled %d outputs (%d bytes)", len(result.outputs), result.total_size)
        return result

    def _process(self, item: AssembledFile) -> Tuple[BundleOutput, OutputMetadata]:
        source_map = item.map if item.map is not None else self._maps.get(f"{item.name}.map")
        is_entry = item.is_entry if item.is_entry is not None else not item.name.startswith(CHUNK_PREFIX)
        output = BundleOutput.from_code(item.name, item.code, is_entry=is_entry, map=source_map)

        imports = item.imports
        if imports is None:
            imports = parse_imports(item.code.decode("utf-8", errors="replace"))
        metadata = OutputMetadata(
            bytes=output.size,
            imports=tuple(imports),
            entry_point=item.entry_point,
        )
        return output, metadata
