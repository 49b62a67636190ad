"""Engine backends behind the common Bundler interface."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from ..settings import BundlerSettings
from .base import Bundler, BundlerBackendError, BundleWatcher, scoped_temp_dir
from .deno import DenoBundlerBackend
from .esbuild import EsbuildBundlerBackend
from .rolldown import (
    AdvancedChunksConfig,
    ChunkGroup,
    RolldownBundlerBackend,
    RolldownOptions,
    RolldownPresets,
    create_rolldown_with_preset,
)

BACKENDS = ("rolldown", "deno-bundler", "esbuild")

_ALIASES = {"deno": "deno-bundler"}


def create_bundler(
    backend: Optional[str] = None,
    options: Optional[Mapping[str, Any]] = None,
    *,
    settings: Optional[BundlerSettings] = None,
) -> Bundler:
    """Instantiate a backend by name.

    ``options`` may carry ``build_id`` and ``entry_name`` for every backend;
    rolldown also accepts ``preset`` plus preset overrides.
    """

    settings = settings or BundlerSettings.from_env()
    lowered = (backend or settings.backend).lower()
    lowered = _ALIASES.get(lowered, lowered)
    if lowered not in BACKENDS:
        raise ValueError(f"Unknown bundler backend: {backend or settings.backend}")
    opts: Dict[str, Any] = dict(options or {})
    common = {
        "build_id": opts.pop("build_id", None),
        "entry_name": opts.pop("entry_name", None),
        "settings": settings,
    }

    if lowered == "rolldown":
        preset = opts.pop("preset", None)
        if preset is not None or opts:
            return create_rolldown_with_preset(preset or "default", opts, **common)
        return RolldownBundlerBackend(**common)
    if opts:
        raise ValueError(f"Unsupported options for {lowered}: {', '.join(sorted(opts))}")
    if lowered == "deno-bundler":
        return DenoBundlerBackend(**common)
    return EsbuildBundlerBackend(**common)


def get_default_bundler(settings: Optional[BundlerSettings] = None) -> Bundler:
    return create_bundler("rolldown", settings=settings)


__all__ = [
    "AdvancedChunksConfig",
    "BACKENDS",
    "BundleWatcher",
    "Bundler",
    "BundlerBackendError",
    "ChunkGroup",
    "DenoBundlerBackend",
    "EsbuildBundlerBackend",
    "RolldownBundlerBackend",
    "RolldownOptions",
    "RolldownPresets",
    "create_bundler",
    "create_rolldown_with_preset",
    "get_default_bundler",
    "scoped_temp_dir",
]
