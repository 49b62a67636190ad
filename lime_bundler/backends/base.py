"""Bundler facade shared by every engine backend."""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Mapping, Optional, Sequence

from ..bundle.utils import write_bytes
from ..models import BundleResult, BundlerConfig, fatal_error_result
from ..settings import BundlerSettings
from ..watch import FileSystemWatcher

logger = logging.getLogger(__name__)

OnChange = Callable[[BundleResult], None]


class BundlerBackendError(RuntimeError):
    """An engine could not be started or its output could not be read."""


@contextmanager
def scoped_temp_dir(prefix: str) -> Iterator[Path]:
    """Yield a fresh temp directory that is removed on every exit path."""

    path = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("Failed to remove temp dir %s: %s", path, exc)


def run_engine(
    command: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> subprocess.CompletedProcess[str]:
    logger.debug("Running %s", " ".join(command))
    try:
        return subprocess.run(
            list(command),
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise BundlerBackendError(f"Failed to start {command[0]}: {exc}") from exc


def write_outputs(result: BundleResult, output_dir: Path) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    for name, output in result.outputs.items():
        write_bytes(output_dir / name, output.code)


def watch_roots(config: BundlerConfig) -> List[Path]:
    """Unique parent directories of the configured entrypoints."""

    roots: List[Path] = []
    for entry in config.entrypoints.values():
        parent = Path(entry).parent
        if parent not in roots:
            roots.append(parent)
    return roots


class Bundler(ABC):
    """One engine behind the common bundle()/watch() contract."""

    name: str = ""

    def __init__(
        self,
        *,
        build_id: Optional[str] = None,
        entry_name: Optional[str] = None,
        settings: Optional[BundlerSettings] = None,
    ) -> None:
        self.settings = settings or BundlerSettings.from_env()
        self.build_id = build_id
        self.entry_name = entry_name or self.settings.entry_name

    def resolve_build_id(self, config: BundlerConfig) -> Optional[str]:
        return config.build_id if config.build_id is not None else self.build_id

    def bundle(self, config: BundlerConfig) -> BundleResult:
        """Run one build; engine and I/O failures come back as error results."""

        build_id = self.resolve_build_id(config)
        logger.info("Bundling %d entrypoint(s) with %s", len(config.entrypoints), self.name)
        try:
            with scoped_temp_dir(f"{self.name}-") as temp_dir:
                result = self._bundle(config, temp_dir, build_id)
            if result.success:
                write_outputs(result, Path(config.output_dir))
        except Exception as exc:
            logger.exception("%s build failed", self.name)
            return fatal_error_result(exc, build_id=build_id)

        if result.success:
            logger.info("Built %d output(s), %d bytes", len(result.outputs), result.total_size)
        else:
            logger.info("%s reported %d error(s)", self.name, len(result.errors))
        return result

    @abstractmethod
    def _bundle(self, config: BundlerConfig, temp_dir: Path, build_id: Optional[str]) -> BundleResult:
        """Invoke the engine inside ``temp_dir`` and assemble its output."""

    async def watch(
        self,
        config: BundlerConfig,
        on_change: OnChange,
        poll_interval: Optional[float] = None,
    ) -> "BundleWatcher":
        files = FileSystemWatcher(
            watch_roots(config),
            poll_interval=poll_interval if poll_interval is not None else self.settings.poll_interval,
            use_executor=True,
            exclude=[Path(config.output_dir)],
        )
        watcher = BundleWatcher(self, config, on_change, files)
        await watcher.start()
        return watcher


class BundleWatcher:
    """Handle returned by ``Bundler.watch``.

    Each poll that finds changes triggers exactly one rebuild; rebuilds never
    overlap. ``stop`` lets an in-flight rebuild finish and drops its result.
    """

    def __init__(self, bundler: Bundler, config: BundlerConfig, on_change: OnChange, files: FileSystemWatcher) -> None:
        self.bundler = bundler
        self.config = config
        self.on_change = on_change
        self.files = files
        self.rebuilds = 0
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        await self.files.initialize()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _loop(self) -> None:
        while await self.files.wait_for_tick(self._stopping):
            changes = await self.files.poll_once()
            if not any(changes.values()):
                continue
            logger.debug("Detected %d change(s); rebuilding", sum(len(paths) for paths in changes.values()))
            result = await asyncio.to_thread(self.bundler.bundle, self.config)
            self.rebuilds += 1
            if self._stopping.is_set():
                break
            try:
                self.on_change(result)
            except Exception:
                logger.exception("Watch on_change callback failed")
