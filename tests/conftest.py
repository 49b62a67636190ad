from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional

import pytest

from lime_bundler.backends.base import Bundler
from lime_bundler.models import BundleOutput, BundleResult, BundlerConfig, create_success_result
from lime_bundler.settings import BundlerSettings


class RecordingBundler(Bundler):
    """Bundler that never spawns an engine and records every build."""

    name = "recording"

    def __init__(self, outputs: Optional[dict] = None, **kwargs) -> None:
        super().__init__(settings=BundlerSettings(poll_interval=0.01), **kwargs)
        self.outputs = outputs or {"main.js": b"console.log(1);"}
        self.builds: List[BundlerConfig] = []

    def _bundle(self, config: BundlerConfig, temp_dir: Path, build_id: Optional[str]) -> BundleResult:
        self.builds.append(config)
        outputs = {name: BundleOutput.from_code(name, code) for name, code in self.outputs.items()}
        return create_success_result(
            outputs,
            entrypoint="main.js",
            entrypoint_manifest={path: ["main.js"] for path in config.entrypoints.values()},
            build_id=build_id,
        )


@pytest.fixture()
def settings() -> BundlerSettings:
    return BundlerSettings(poll_interval=0.01)


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "src" / "app").mkdir(parents=True)
    (root / "src" / "main.tsx").write_text("console.log('main');\n", encoding="utf-8")
    (root / "src" / "app" / "counter.tsx").write_text("export const Counter = () => null;\n", encoding="utf-8")
    return root


@pytest.fixture()
def make_config(project: Path, tmp_path: Path) -> Callable[..., BundlerConfig]:
    def factory(**overrides) -> BundlerConfig:
        values = {
            "entrypoints": {
                "main": (project / "src" / "main.tsx").as_posix(),
                "src/app/counter.tsx": (project / "src" / "app" / "counter.tsx").as_posix(),
            },
            "output_dir": (tmp_path / "dist").as_posix(),
        }
        values.update(overrides)
        return BundlerConfig(**values)

    return factory


@pytest.fixture()
def recording_bundler() -> type:
    return RecordingBundler
