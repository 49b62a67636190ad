"""Output normalization and manifest generation."""

from .assembler import AssembledFile, ResultAssembler, parse_imports
from .generators import (
    generate_chunk_manifest,
    generate_chunk_manifest_with_meta,
    generate_module_map,
    generate_module_map_from_ids,
    generate_rsc_chunk_manifest,
    strip_chunk_id,
)
from .graph import ChunkDescriptor, resolve_direct, resolve_inferred
from .manifest import dump_manifest, load_manifest, parse_manifest, serialize_manifest
from .proxy import ProxyImports, extract_proxy_chunks
from .utils import compute_hash

__all__ = [
    "AssembledFile",
    "ChunkDescriptor",
    "ProxyImports",
    "ResultAssembler",
    "compute_hash",
    "dump_manifest",
    "extract_proxy_chunks",
    "generate_chunk_manifest",
    "generate_chunk_manifest_with_meta",
    "generate_module_map",
    "generate_module_map_from_ids",
    "generate_rsc_chunk_manifest",
    "load_manifest",
    "parse_imports",
    "parse_manifest",
    "resolve_direct",
    "resolve_inferred",
    "serialize_manifest",
    "strip_chunk_id",
]
