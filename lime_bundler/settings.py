"""Environment settings and on-disk bundler configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .models import BundlerConfig

DEFAULT_BACKEND = "rolldown"
DEFAULT_ENTRY_NAME = "main"
DEFAULT_POLL_INTERVAL = 0.5

_CONFIG_KEYS = {
    "entrypoints": "entrypoints",
    "output_dir": "output_dir",
    "outputDir": "output_dir",
    "format": "format",
    "platform": "platform",
    "code_splitting": "code_splitting",
    "codeSplitting": "code_splitting",
    "minify": "minify",
    "sourcemap": "sourcemap",
    "target": "target",
    "define": "define",
    "external": "external",
    "base_path": "base_path",
    "basePath": "base_path",
    "build_id": "build_id",
    "buildId": "build_id",
}


@dataclass(frozen=True, slots=True)
class BundlerSettings:
    backend: str = DEFAULT_BACKEND
    deno: str = "deno"
    node: str = "node"
    esbuild: str = "esbuild"
    entry_name: str = DEFAULT_ENTRY_NAME
    poll_interval: float = DEFAULT_POLL_INTERVAL

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "BundlerSettings":
        source = os.environ if env is None else env
        raw_interval = source.get("LIME_BUNDLER_POLL_INTERVAL")
        try:
            poll_interval = float(raw_interval) if raw_interval else DEFAULT_POLL_INTERVAL
        except ValueError as exc:
            raise ValueError(f"LIME_BUNDLER_POLL_INTERVAL must be a number, got '{raw_interval}'") from exc
        if poll_interval <= 0:
            raise ValueError("LIME_BUNDLER_POLL_INTERVAL must be positive")
        return cls(
            backend=source.get("LIME_BUNDLER_BACKEND") or DEFAULT_BACKEND,
            deno=source.get("LIME_BUNDLER_DENO") or "deno",
            node=source.get("LIME_BUNDLER_NODE") or "node",
            esbuild=source.get("LIME_BUNDLER_ESBUILD") or "esbuild",
            entry_name=source.get("LIME_BUNDLER_ENTRY_NAME") or DEFAULT_ENTRY_NAME,
            poll_interval=poll_interval,
        )


def _resolve_path(value: str, base_dir: Path) -> str:
    path = Path(value)
    if path.is_absolute():
        return path.as_posix()
    return (base_dir / path).as_posix()


def config_from_mapping(data: Mapping[str, Any], *, base_dir: Path, config_path: Optional[Path] = None) -> BundlerConfig:
    """Build a BundlerConfig from parsed YAML/JSON data."""

    unknown = sorted(key for key in data if key not in _CONFIG_KEYS)
    if unknown:
        raise ValueError(f"Unknown bundler config keys: {', '.join(unknown)}")

    values: Dict[str, Any] = {_CONFIG_KEYS[key]: value for key, value in data.items()}
    entrypoints = values.get("entrypoints")
    if not isinstance(entrypoints, Mapping) or not entrypoints:
        raise ValueError("Bundler config requires a non-empty 'entrypoints' mapping")
    if "output_dir" not in values:
        raise ValueError("Bundler config requires 'output_dir'")

    values["entrypoints"] = {str(name): _resolve_path(str(path), base_dir) for name, path in entrypoints.items()}
    values["output_dir"] = _resolve_path(str(values["output_dir"]), base_dir)
    for key in ("target", "external"):
        if key in values and values[key] is not None:
            values[key] = tuple(str(item) for item in values[key])
    if config_path is not None:
        values["config_path"] = config_path.as_posix()
    return BundlerConfig(**values)


def load_bundler_config(path: Path) -> BundlerConfig:
    """Load a YAML (or JSON) bundler config file.

    Relative entrypoints and ``output_dir`` resolve against the file's
    directory.
    """

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Malformed bundler config {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ValueError(f"Bundler config {path} must contain a mapping")
    base_dir = path.resolve().parent
    return config_from_mapping(data, base_dir=base_dir, config_path=path.resolve())
