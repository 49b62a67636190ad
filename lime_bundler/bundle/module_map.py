"""Module map helpers.

A module map ties a client-reference id to the chunks that must be loaded to
hydrate it. The ids must match the rendering runtime's convention exactly.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from ..schemas.manifest import ModuleEntry

ModuleMap = Dict[str, ModuleEntry]


def create_module_map() -> ModuleMap:
    return {}


def add_module(module_map: Mapping[str, ModuleEntry], entry: ModuleEntry) -> ModuleMap:
    return {**module_map, entry.id: entry}


def get_module(module_map: Mapping[str, ModuleEntry], module_id: str) -> Optional[ModuleEntry]:
    return module_map.get(module_id)


def has_module(module_map: Mapping[str, ModuleEntry], module_id: str) -> bool:
    return module_id in module_map


def get_all_chunks(module_map: Mapping[str, ModuleEntry]) -> List[str]:
    """Return every chunk referenced by the map, in first-seen order."""

    chunks: Dict[str, None] = {}
    for entry in module_map.values():
        for chunk in entry.chunks:
            chunks.setdefault(chunk, None)
    return list(chunks)


def module_map_to_json(module_map: Mapping[str, ModuleEntry]) -> Dict[str, Any]:
    return {key: entry.model_dump(by_alias=True) for key, entry in module_map.items()}
