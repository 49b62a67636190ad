"""Chunk manifest helpers: construction, lookup and JSON persistence."""

from __future__ import annotations

import time
from pathlib import Path
from typing import List, Optional, Type, TypeVar, Union

from ..schemas.manifest import ChunkInfo, ChunkManifest, ChunkManifestWithMeta, RSCChunkManifest

AnyManifest = Union[ChunkManifest, ChunkManifestWithMeta, RSCChunkManifest]
ManifestT = TypeVar("ManifestT", ChunkManifest, ChunkManifestWithMeta, RSCChunkManifest)


def now_ms() -> int:
    return int(time.time() * 1000)


def create_chunk_manifest(entrypoint: str, build_id: str, *, timestamp: Optional[int] = None) -> ChunkManifest:
    return ChunkManifest(
        entrypoint=entrypoint,
        chunks={},
        build_id=build_id,
        timestamp=now_ms() if timestamp is None else timestamp,
    )


def add_chunk(manifest: ChunkManifest, name: str, info: ChunkInfo) -> ChunkManifest:
    """Return a copy of ``manifest`` with ``name`` added; the input is untouched."""

    return manifest.model_copy(update={"chunks": {**manifest.chunks, name: info}})


def get_chunk(manifest: ChunkManifest, name: str) -> Optional[ChunkInfo]:
    return manifest.chunks.get(name)


def has_chunk(manifest: ChunkManifest, name: str) -> bool:
    return name in manifest.chunks


def get_total_size(manifest: ChunkManifest) -> int:
    return sum(chunk.size for chunk in manifest.chunks.values())


def get_all_paths(manifest: ChunkManifest) -> List[str]:
    return [chunk.path for chunk in manifest.chunks.values()]


def serialize_manifest(manifest: AnyManifest) -> str:
    return manifest.model_dump_json(indent=2, by_alias=True, exclude_none=True)


def parse_manifest(payload: Union[str, bytes], model: Type[ManifestT] = ChunkManifest) -> ManifestT:  # type: ignore[assignment]
    return model.model_validate_json(payload)


def load_manifest(path: Path, model: Type[ManifestT] = ChunkManifest) -> ManifestT:  # type: ignore[assignment]
    """Load a manifest from JSON."""

    return parse_manifest(path.read_text(encoding="utf-8"), model)


def dump_manifest(manifest: AnyManifest, path: Path) -> None:
    """Write a manifest to disk."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_manifest(manifest) + "\n", encoding="utf-8")
