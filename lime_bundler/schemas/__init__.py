"""Schema definitions for bundle manifests."""

from .manifest import (
    BuildSnapshotJson,
    ChunkInfo,
    ChunkInfoWithMeta,
    ChunkManifest,
    ChunkManifestWithMeta,
    ModuleEntry,
    ModuleEntryWithMeta,
    RSCChunkEntry,
    RSCChunkManifest,
    RSCFileEntry,
    SSRModuleEntry,
)

__all__ = [
    "BuildSnapshotJson",
    "ChunkInfo",
    "ChunkInfoWithMeta",
    "ChunkManifest",
    "ChunkManifestWithMeta",
    "ModuleEntry",
    "ModuleEntryWithMeta",
    "RSCChunkEntry",
    "RSCChunkManifest",
    "RSCFileEntry",
    "SSRModuleEntry",
]
