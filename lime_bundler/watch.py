"""Polling file-system watcher driving watch-mode rebuilds."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

DEFAULT_IGNORED_DIRS = frozenset({".git", "node_modules", "__pycache__", ".cache"})


class ChangeType(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class FileChangeEvent:
    change_type: ChangeType
    path: str


EventHandler = Callable[[FileChangeEvent], Awaitable[None]]
_Signature = Tuple[int, int]


class FileSystemWatcher:
    """Detects created, updated and deleted files by comparing snapshots.

    ``poll_once`` is the unit of work; ``start`` runs it every
    ``poll_interval`` seconds until ``stop`` is awaited.
    """

    def __init__(
        self,
        roots: Sequence[Path],
        *,
        poll_interval: float = 0.5,
        use_executor: bool = False,
        suffixes: Optional[Sequence[str]] = None,
        exclude: Iterable[Path] = (),
        ignored_dirs: Iterable[str] = DEFAULT_IGNORED_DIRS,
    ) -> None:
        self.roots = [Path(root).resolve() for root in roots]
        self.poll_interval = poll_interval
        self.use_executor = use_executor
        self.suffixes = tuple(suffixes) if suffixes else None
        self.exclude = [Path(path).resolve() for path in exclude]
        self.ignored_dirs: Set[str] = set(ignored_dirs)
        self._handlers: List[EventHandler] = []
        self._last_state: Dict[str, _Signature] = {}
        self._task: Optional[asyncio.Task[None]] = None
        self._stopping: Optional[asyncio.Event] = None

    def add_event_handler(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def remove_event_handler(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def initialize(self) -> None:
        self._last_state = await self._scan()

    async def poll_once(self) -> Dict[ChangeType, List[str]]:
        current = await self._scan()
        previous = self._last_state
        changes: Dict[ChangeType, List[str]] = {change: [] for change in ChangeType}

        for path, signature in current.items():
            before = previous.get(path)
            if before is None:
                changes[ChangeType.CREATE].append(path)
            elif before != signature:
                changes[ChangeType.UPDATE].append(path)
        for path in previous:
            if path not in current:
                changes[ChangeType.DELETE].append(path)

        self._last_state = current
        for change_type, paths in changes.items():
            for path in sorted(paths):
                event = FileChangeEvent(change_type=change_type, path=path)
                for handler in list(self._handlers):
                    await handler(event)
        return changes

    async def start(self) -> None:
        if self.running:
            return
        await self.initialize()
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(self._stopping))

    async def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def wait_for_tick(self, stopping: asyncio.Event) -> bool:
        """Sleep one interval; return False when ``stopping`` was set meanwhile."""

        try:
            await asyncio.wait_for(stopping.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            return True
        return False

    async def _loop(self, stopping: asyncio.Event) -> None:
        while await self.wait_for_tick(stopping):
            await self.poll_once()

    async def _scan(self) -> Dict[str, _Signature]:
        if self.use_executor:
            return await asyncio.to_thread(self._collect_state)
        return self._collect_state()

    def _collect_state(self) -> Dict[str, _Signature]:
        state: Dict[str, _Signature] = {}
        for root in self.roots:
            if not root.is_dir():
                continue
            for dirpath, dirnames, filenames in os.walk(root):
                current_dir = Path(dirpath)
                dirnames[:] = [
                    name
                    for name in sorted(dirnames)
                    if name not in self.ignored_dirs and not self._is_excluded(current_dir / name)
                ]
                for filename in filenames:
                    if self.suffixes and not filename.endswith(self.suffixes):
                        continue
                    path = current_dir / filename
                    try:
                        stat = path.stat()
                    except FileNotFoundError:
                        continue
                    state[path.as_posix()] = (stat.st_mtime_ns, stat.st_size)
        return state

    def _is_excluded(self, path: Path) -> bool:
        return any(path == excluded or excluded in path.parents for excluded in self.exclude)
