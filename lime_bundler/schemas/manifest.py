"""Pydantic models describing manifests handed to the rendering runtime."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ChunkInfo(_CamelModel):
    path: str = Field(..., description="Output file path relative to the build directory.")
    size: int
    hash: str = Field(..., description="Content hash used for cache busting.")


class ChunkInfoWithMeta(ChunkInfo):
    is_entry: Optional[bool] = None
    is_dynamic: Optional[bool] = None
    imports: Optional[List[str]] = None
    content_type: Optional[str] = None


class ChunkManifest(_CamelModel):
    entrypoint: str
    chunks: Dict[str, ChunkInfo] = Field(default_factory=dict)
    build_id: str
    timestamp: int = Field(..., description="Build timestamp in unix milliseconds.")


class ChunkManifestWithMeta(_CamelModel):
    entrypoint: str
    chunks: Dict[str, ChunkInfoWithMeta] = Field(default_factory=dict)
    build_id: str
    timestamp: int
    version: Optional[str] = None
    environment: Optional[str] = None
    total_size: Optional[int] = None


class ModuleEntry(_CamelModel):
    id: str
    chunks: List[str] = Field(default_factory=list)
    name: str = "default"


class ModuleEntryWithMeta(ModuleEntry):
    async_: Optional[bool] = Field(default=None, alias="async")
    dependencies: Optional[List[str]] = None
    source: Optional[str] = None


class SSRModuleEntry(_CamelModel):
    id: str
    name: str = "*"


class RSCChunkEntry(_CamelModel):
    main: str
    deps: List[str] = Field(default_factory=list)
    export_name: Optional[str] = Field(default=None, description="Omitted when the export is 'default'.")
    size: int = 0


class RSCFileEntry(_CamelModel):
    name: str
    size: int
    hash: Optional[str] = None


class RSCChunkManifest(_CamelModel):
    version: str = "1.0"
    build_id: str
    timestamp: int
    entrypoint: str
    chunks: Dict[str, RSCChunkEntry] = Field(default_factory=dict)
    files: Dict[str, RSCFileEntry] = Field(default_factory=dict)


class BuildSnapshotJson(BaseModel):
    """On-disk ``snapshot.json`` layout."""

    build_id: str
    files: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")
