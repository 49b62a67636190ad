"""Build-output normalization and manifest generation for multi-engine JS bundling."""

from .backends import Bundler, BundleWatcher, create_bundler, get_default_bundler
from .build_id import compute_build_id
from .models import (
    BundleError,
    BundleOutput,
    BundleResult,
    BundlerConfig,
    BundleWarning,
    ClientComponentInfo,
    PluginBuild,
    TransformArgs,
    TransformResult,
)
from .settings import BundlerSettings, load_bundler_config
from .snapshot import AotSnapshot, load_aot_snapshot, write_snapshot

__version__ = "0.1.0"

__all__ = [
    "AotSnapshot",
    "BundleError",
    "BundleOutput",
    "BundleResult",
    "BundleWarning",
    "BundleWatcher",
    "Bundler",
    "BundlerConfig",
    "BundlerSettings",
    "ClientComponentInfo",
    "PluginBuild",
    "TransformArgs",
    "TransformResult",
    "__version__",
    "compute_build_id",
    "create_bundler",
    "get_default_bundler",
    "load_aot_snapshot",
    "load_bundler_config",
    "write_snapshot",
]
