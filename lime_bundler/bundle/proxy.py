"""Proxy-file import extractor.

Engines without a facade-module graph emit one small proxy module per
entrypoint that re-exports the entry's symbol from shared chunks. This module
recovers the ordered chunk list from that source text with a handful of
patterns. It is not a JavaScript parser: it only understands the import and
export shapes those proxy files use.

The main chunk is the first chunk whose import binding list names the symbol
the proxy exports. Two unrelated chunks that export the same identifier would
fool it; discovery order breaks such ties.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

SOURCE_EXTENSIONS = (".tsx", ".mts", ".ts", ".jsx", ".mjs", ".js")

_CHUNK_IMPORT = re.compile(
    r"""import\s*(?:\{(?P<bindings>[\w\s,$]*)\}\s*from\s*)?["'](?P<path>[\w./-]*chunk-[\w-]+\.js)["']"""
)
_EXPORT_LIST = re.compile(r"export\s*\{(?P<names>[\w\s,$]+)\}")
_SPECIFIER = re.compile(r"(?P<local>[\w$]+)(?:\s+as\s+[\w$]+)?")
_IDENTIFIER = re.compile(r"[\w$]+")


@dataclass(frozen=True, slots=True)
class ProxyImports:
    """Chunks referenced by a proxy file, main chunk first."""

    chunks: Tuple[str, ...]
    main_index: Optional[int] = None
    symbol: Optional[str] = None

    @property
    def main_chunk(self) -> Optional[str]:
        return self.chunks[0] if self.chunks else None


def proxy_file_path(entry_key: str) -> str:
    """Return the proxy file path an engine writes for ``entry_key``."""

    for extension in SOURCE_EXTENSIONS:
        if entry_key.endswith(extension):
            return entry_key[: -len(extension)] + ".js"
    return entry_key + ".js"


def exported_local_symbol(source: str) -> Optional[str]:
    """Return the local name behind the first ``export { ... }`` specifier."""

    match = _EXPORT_LIST.search(source)
    if match is None:
        return None
    specifier = _SPECIFIER.search(match.group("names"))
    if specifier is None:
        return None
    return specifier.group("local")


def extract_proxy_chunks(source: str) -> ProxyImports:
    chunks: List[str] = []
    bindings: Dict[str, Set[str]] = {}

    for match in _CHUNK_IMPORT.finditer(source):
        chunk = posixpath.basename(match.group("path"))
        if chunk not in bindings:
            chunks.append(chunk)
            bindings[chunk] = set()
        names = match.group("bindings")
        if names:
            bindings[chunk].update(name for name in _IDENTIFIER.findall(names) if name != "as")

    symbol = exported_local_symbol(source)
    if symbol is None:
        return ProxyImports(chunks=tuple(chunks))

    for index, chunk in enumerate(chunks):
        if symbol in bindings[chunk]:
            ordered = [chunk] + chunks[:index] + chunks[index + 1 :]
            return ProxyImports(chunks=tuple(ordered), main_index=index, symbol=symbol)

    return ProxyImports(chunks=tuple(chunks), symbol=symbol)
