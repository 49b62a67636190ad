"""Entrypoint to chunk dependency resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Dict, Iterable, List, Mapping, Optional, Sequence

from .proxy import extract_proxy_chunks, proxy_file_path

logger = logging.getLogger(__name__)

EntrypointManifest = Dict[str, List[str]]


@dataclass(frozen=True, slots=True)
class ChunkDescriptor:
    """Per-chunk metadata reported natively by an engine."""

    file_name: str
    is_entry: bool = False
    facade_module_id: Optional[str] = None
    imports: Sequence[str] = field(default_factory=tuple)


def resolve_direct(descriptors: Iterable[ChunkDescriptor]) -> EntrypointManifest:
    """Build the manifest from facade module ids and import lists."""

    manifest: EntrypointManifest = {}
    for descriptor in descriptors:
        if not descriptor.is_entry or not descriptor.facade_module_id:
            continue
        chunks = [descriptor.file_name]
        for imported in descriptor.imports:
            if imported not in chunks:
                chunks.append(imported)
        manifest[descriptor.facade_module_id] = chunks
    return manifest


def read_proxy_source(relative_path: str, search_dirs: Sequence[Path]) -> Optional[str]:
    for directory in search_dirs:
        candidate = directory / relative_path
        try:
            return candidate.read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            continue
    return None


def resolve_inferred(
    entrypoints: Mapping[str, str],
    scan_dir: Path,
    fallback_dir: Optional[Path] = None,
    *,
    skip: Collection[str] = ("client", "main"),
) -> EntrypointManifest:
    """Infer each entrypoint's chunks from the proxy file the engine wrote.

    ``entrypoints`` maps the relative entry key (used to locate the proxy file)
    to the original entrypoint path (used as the manifest key). Entries without
    a proxy file are left out.
    """

    search_dirs = [scan_dir]
    if fallback_dir is not None and fallback_dir != scan_dir:
        search_dirs.append(fallback_dir)

    manifest: EntrypointManifest = {}
    for entry_key, entry_path in entrypoints.items():
        if entry_key in skip:
            continue
        relative_path = proxy_file_path(entry_key)
        source = read_proxy_source(relative_path, search_dirs)
        if source is None:
            logger.debug("No proxy file for entrypoint %s (looked for %s)", entry_key, relative_path)
            continue
        proxy = extract_proxy_chunks(source)
        if not proxy.chunks:
            logger.debug("Proxy file %s references no chunks", relative_path)
            continue
        if proxy.symbol is not None and proxy.main_index is None:
            logger.debug("No chunk binds exported symbol %s in %s; keeping import order", proxy.symbol, relative_path)
        manifest[entry_path] = list(proxy.chunks)
    return manifest
