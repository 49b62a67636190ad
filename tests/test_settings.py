from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from lime_bundler.build_id import compute_build_id
from lime_bundler.settings import BundlerSettings, config_from_mapping, load_bundler_config


def test_settings_defaults() -> None:
    settings = BundlerSettings.from_env({})

    assert settings == BundlerSettings()
    assert settings.backend == "rolldown"
    assert settings.poll_interval == 0.5


def test_settings_from_env() -> None:
    settings = BundlerSettings.from_env(
        {
            "LIME_BUNDLER_BACKEND": "esbuild",
            "LIME_BUNDLER_ESBUILD": "/opt/esbuild",
            "LIME_BUNDLER_ENTRY_NAME": "client",
            "LIME_BUNDLER_POLL_INTERVAL": "0.25",
        }
    )

    assert settings.backend == "esbuild"
    assert settings.esbuild == "/opt/esbuild"
    assert settings.entry_name == "client"
    assert settings.poll_interval == 0.25


@pytest.mark.parametrize("value", ["fast", "0", "-1"])
def test_settings_reject_bad_poll_interval(value: str) -> None:
    with pytest.raises(ValueError, match="LIME_BUNDLER_POLL_INTERVAL"):
        BundlerSettings.from_env({"LIME_BUNDLER_POLL_INTERVAL": value})


def test_load_config_resolves_relative_paths(tmp_path: Path) -> None:
    config_file = tmp_path / "bundler.yaml"
    config_file.write_text(
        "entrypoints:\n"
        "  main: src/main.tsx\n"
        "  src/app/counter.tsx: /abs/counter.tsx\n"
        "outputDir: dist\n"
        "sourcemap: true\n"
        "target: [es2020]\n"
        "basePath: /app\n",
        encoding="utf-8",
    )

    config = load_bundler_config(config_file)

    root = tmp_path.resolve()
    assert config.entrypoints["main"] == (root / "src" / "main.tsx").as_posix()
    assert config.entrypoints["src/app/counter.tsx"] == "/abs/counter.tsx"
    assert config.output_dir == (root / "dist").as_posix()
    assert config.sourcemap == "external"
    assert config.target == ("es2020",)
    assert config.base_path == "/app"
    assert config.config_path == config_file.resolve().as_posix()


@pytest.mark.parametrize(
    "content, message",
    [
        ("entrypoints: [\n", "Malformed"),
        ("- main\n", "must contain a mapping"),
        ("output_dir: dist\n", "entrypoints"),
        ("entrypoints:\n  main: a.ts\n", "output_dir"),
        ("entrypoints:\n  main: a.ts\noutput_dir: dist\nwatch: true\n", "Unknown bundler config keys: watch"),
    ],
)
def test_load_config_errors(tmp_path: Path, content: str, message: str) -> None:
    config_file = tmp_path / "bundler.yaml"
    config_file.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError, match=message):
        load_bundler_config(config_file)


def test_config_from_mapping_accepts_snake_case(tmp_path: Path) -> None:
    config = config_from_mapping(
        {"entrypoints": {"main": "a.ts"}, "output_dir": "out", "code_splitting": False, "build_id": "b"},
        base_dir=tmp_path,
    )

    assert config.code_splitting is False
    assert config.build_id == "b"
    assert config.config_path is None


def test_build_id_prefers_deployment_ids() -> None:
    expected = hashlib.sha1(b"deploy-1").hexdigest()

    assert compute_build_id({"DENO_DEPLOYMENT_ID": "deploy-1", "GITHUB_SHA": "sha"}) == expected
    assert compute_build_id({"GITHUB_SHA": "deploy-1"}) == expected


def test_build_id_falls_back_to_random() -> None:
    first = compute_build_id({})
    second = compute_build_id({})

    assert len(first) == 40
    assert first != second
