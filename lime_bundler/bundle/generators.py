"""Pure functions turning a BundleResult into manifests.

Nothing here touches the filesystem or holds on to the result; missing
inputs degrade to documented fallbacks instead of raising.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence

from ..models import BundleMetafile, BundleResult, ClientComponentInfo
from ..schemas.manifest import (
    ChunkInfo,
    ChunkInfoWithMeta,
    ChunkManifest,
    ChunkManifestWithMeta,
    ModuleEntry,
    RSCChunkEntry,
    RSCChunkManifest,
    RSCFileEntry,
)
from .manifest import now_ms
from .module_map import ModuleMap
from .proxy import SOURCE_EXTENSIONS, proxy_file_path
from .reader import CHUNK_PREFIX

logger = logging.getLogger(__name__)

RSC_MANIFEST_VERSION = "1.0"

_CHUNK_PREFIX_RE = re.compile(r"^chunk-")
_JS_SUFFIX_RE = re.compile(r"\.js$")


def strip_chunk_id(filename: str) -> str:
    """``chunk-AB12.js`` -> ``AB12``."""

    return _JS_SUFFIX_RE.sub("", _CHUNK_PREFIX_RE.sub("", filename))


def generate_chunk_manifest(
    result: BundleResult,
    entrypoint: str,
    build_id: str,
    *,
    timestamp: Optional[int] = None,
) -> ChunkManifest:
    chunks = {
        name: ChunkInfo(path=output.path, size=output.size, hash=output.hash)
        for name, output in result.outputs.items()
    }
    return ChunkManifest(
        entrypoint=entrypoint,
        chunks=chunks,
        build_id=build_id,
        timestamp=now_ms() if timestamp is None else timestamp,
    )


def generate_chunk_manifest_with_meta(
    result: BundleResult,
    entrypoint: str,
    build_id: str,
    *,
    version: Optional[str] = None,
    environment: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> ChunkManifestWithMeta:
    chunks: Dict[str, ChunkInfoWithMeta] = {}
    total_size = 0

    for name, output in result.outputs.items():
        is_entry = bool(output.is_entry)
        chunks[name] = ChunkInfoWithMeta(
            path=output.path,
            size=output.size,
            hash=output.hash,
            is_entry=is_entry,
            is_dynamic=not is_entry and not name.startswith(CHUNK_PREFIX),
            imports=list(extract_dependencies(result.metafile, name)),
        )
        total_size += output.size

    return ChunkManifestWithMeta(
        entrypoint=entrypoint,
        chunks=chunks,
        build_id=build_id,
        timestamp=now_ms() if timestamp is None else timestamp,
        version=version,
        environment=environment,
        total_size=total_size,
    )


def _fallback_chunk(relative_path: str) -> str:
    if relative_path.endswith(SOURCE_EXTENSIONS):
        return proxy_file_path(relative_path)
    return relative_path


def generate_module_map(result: BundleResult, client_components: Sequence[ClientComponentInfo]) -> ModuleMap:
    """Map each client component's reference id to the chunks it needs.

    The key is ``./`` plus the project-relative path, which is the id the
    server runtime emits for client references.
    """

    modules: ModuleMap = {}
    for component in client_components:
        key = f"./{component.relative_path}"
        chunks = list(result.entrypoint_manifest.get(component.file_path, ()))
        if not chunks:
            chunks = [_fallback_chunk(component.relative_path)]
        modules[key] = ModuleEntry(id=key, name=component.export_name, chunks=chunks)
    return modules


def generate_module_map_from_ids(result: BundleResult, module_ids: Mapping[str, str]) -> ModuleMap:
    return {
        module_id: ModuleEntry(
            id=module_id,
            name=name,
            chunks=list(result.entrypoint_manifest.get(module_id, ())),
        )
        for module_id, name in module_ids.items()
    }


def generate_rsc_chunk_manifest(
    result: BundleResult,
    client_components: Sequence[ClientComponentInfo],
    build_id: str,
    *,
    timestamp: Optional[int] = None,
) -> RSCChunkManifest:
    files = {
        name: RSCFileEntry(name=name, size=output.size, hash=output.hash)
        for name, output in result.outputs.items()
    }

    chunks: Dict[str, RSCChunkEntry] = {}
    for component in client_components:
        resolved = result.entrypoint_manifest.get(component.file_path, ())
        if not resolved:
            logger.warning("No chunks resolved for client component %s; skipping", component.relative_path)
            continue

        main_chunk, *dep_chunks = resolved
        size = 0
        for chunk in resolved:
            file_entry = files.get(chunk)
            if file_entry is None:
                logger.debug("Chunk %s for %s missing from outputs", chunk, component.relative_path)
                continue
            size += file_entry.size

        export_name = component.export_name
        chunks[component.relative_path] = RSCChunkEntry(
            main=strip_chunk_id(main_chunk),
            deps=[strip_chunk_id(chunk) for chunk in dep_chunks],
            export_name=None if export_name == "default" else export_name,
            size=size,
        )

    return RSCChunkManifest(
        version=RSC_MANIFEST_VERSION,
        build_id=build_id,
        timestamp=now_ms() if timestamp is None else timestamp,
        entrypoint=result.entrypoint or "main.js",
        chunks=chunks,
        files=files,
    )


def extract_dependencies(metafile: Optional[BundleMetafile], output_path: str) -> List[str]:
    if metafile is None:
        return []
    output = metafile.outputs.get(output_path)
    if output is None:
        return []
    return [item.path for item in output.imports]


def get_entry_points(result: BundleResult) -> List[str]:
    return [name for name, output in result.outputs.items() if output.is_entry]


def get_chunk_paths(result: BundleResult) -> List[str]:
    return list(result.outputs)


def get_total_bundle_size(result: BundleResult) -> int:
    return sum(output.size for output in result.outputs.values())
