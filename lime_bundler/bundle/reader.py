"""Read raw engine output and normalize its known quirks.

Some engines write into a nested ``dist/`` directory below the requested
output directory and leave shared chunks orphaned at the top level. Some also
emit chunk imports with one ``../`` too many. Everything here runs before
hashing, so the hash always covers the bytes that are finally served.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

CHUNK_PREFIX = "chunk-"
CLIENT_ENTRY_PREFIX = "_client-entry"
BUILD_ID_ENTRY_PREFIX = "_build-id-entry"
BUILD_ID_FILE = "build-id.js"
ALIVE_ENDPOINT = "/_lime/alive"
DEFAULT_NESTED_DIR = "dist"

_STATIC_CHUNK_QUIRK = re.compile(r"""from\s*["']\.\./?chunk-""")
_DYNAMIC_CHUNK_QUIRK = re.compile(r"""import\s*\(\s*["']\.\./?chunk-""")
_SOURCE_MAP_COMMENT = re.compile(r"//# sourceMappingURL=.*$", re.MULTILINE)


@dataclass(frozen=True, slots=True)
class OutputFile:
    name: str
    path: Path

    @property
    def is_map(self) -> bool:
        return self.name.endswith(".map")


@dataclass(slots=True)
class OutputScan:
    """Files discovered in an engine's output directory."""

    root: Path
    scan_dir: Path
    files: List[OutputFile] = field(default_factory=list)

    @property
    def nested(self) -> bool:
        return self.scan_dir != self.root

    def maps(self) -> List[OutputFile]:
        return [item for item in self.files if item.is_map]

    def scripts(self) -> List[OutputFile]:
        return [item for item in self.files if not item.is_map]


def scan_output_files(
    root: Path,
    *,
    nested_dir: str = DEFAULT_NESTED_DIR,
    suffixes: Sequence[str] = (".js", ".map"),
) -> OutputScan:
    """Collect output files, preferring a nested output directory when present."""

    nested = root / nested_dir
    scan_dir = nested if nested.is_dir() else root
    scan = OutputScan(root=root, scan_dir=scan_dir)

    for entry in sorted(scan_dir.iterdir(), key=lambda item: item.name):
        if entry.is_file() and entry.name.endswith(tuple(suffixes)):
            scan.files.append(OutputFile(name=entry.name, path=entry))

    if scan.nested:
        seen = {item.path for item in scan.files}
        for entry in sorted(root.iterdir(), key=lambda item: item.name):
            if not entry.is_file() or not entry.name.endswith(tuple(suffixes)):
                continue
            if not (entry.name.startswith(CHUNK_PREFIX) or entry.name.endswith(".map")):
                continue
            if entry in seen:
                continue
            logger.debug("Picked up orphaned output %s outside %s", entry.name, scan_dir)
            scan.files.append(OutputFile(name=entry.name, path=entry))

    logger.debug("Scanned %d output files in %s", len(scan.files), scan_dir)
    return scan


def rewrite_chunk_imports(content: str) -> str:
    """Rewrite ``../chunk-`` and ``..chunk-`` imports to ``./chunk-``."""

    content = _STATIC_CHUNK_QUIRK.sub('from"./chunk-', content)
    return _DYNAMIC_CHUNK_QUIRK.sub('import("./chunk-', content)


def rewrite_base_path(content: str, base_path: Optional[str]) -> str:
    """Prefix the live-reload endpoint with ``base_path``."""

    if not base_path:
        return content
    pattern = re.compile(rf"(?<!{re.escape(base_path)}){re.escape(ALIVE_ENDPOINT)}")
    return pattern.sub(lambda _: f"{base_path}{ALIVE_ENDPOINT}", content)


def normalize_content(content: str, base_path: Optional[str] = None) -> str:
    """Both rewrites; only deno output needs the chunk import fix."""

    return rewrite_chunk_imports(rewrite_base_path(content, base_path))


def normalize_output_name(name: str, entry_name: str = "main") -> str:
    """Map internal entry file names onto their canonical names."""

    suffix = ".js.map" if name.endswith(".map") else ".js"
    if name.startswith(CLIENT_ENTRY_PREFIX):
        return f"{entry_name}{suffix}"
    if name.startswith(BUILD_ID_ENTRY_PREFIX):
        return f"build-id{suffix}"
    return name


def is_client_entry(name: str) -> bool:
    return name.startswith(CLIENT_ENTRY_PREFIX)


def ensure_source_map_reference(content: str, map_name: str) -> str:
    """Point the trailing ``sourceMappingURL`` comment at ``map_name``."""

    reference = f"//# sourceMappingURL={map_name}"
    if _SOURCE_MAP_COMMENT.search(content):
        return _SOURCE_MAP_COMMENT.sub(lambda _: reference, content, count=1)
    return f"{content}\n{reference}"


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")
