"""Ahead-of-time build snapshots (``snapshot.json`` plus the output files)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .bundle.utils import compute_sha256, write_bytes, write_text
from .models import BundleResult
from .schemas.manifest import BuildSnapshotJson

logger = logging.getLogger(__name__)

SNAPSHOT_FILE = "snapshot.json"


@dataclass(slots=True)
class AotSnapshot:
    """A previously written build, served straight from disk."""

    files: Dict[str, Path]
    dependency_mapping: Dict[str, List[str]] = field(default_factory=dict)
    build_id: Optional[str] = None

    @property
    def paths(self) -> List[str]:
        return list(self.files)

    def read(self, name: str) -> Optional[bytes]:
        path = self.files.get(name)
        if path is None:
            return None
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def dependencies(self, name: str) -> List[str]:
        return list(self.dependency_mapping.get(name, ()))

    def checksum(self, name: str) -> Optional[str]:
        """Full SHA-256 of a snapshot file, or None when it is gone."""

        path = self.files.get(name)
        if path is None or not path.is_file():
            return None
        return compute_sha256(path)


def snapshot_dependencies(result: BundleResult) -> Dict[str, List[str]]:
    """Static (``import-statement``) dependencies per output, from the metafile."""

    outputs = result.metafile.outputs if result.metafile is not None else {}
    dependencies: Dict[str, List[str]] = {}
    for name in result.outputs:
        metadata = outputs.get(name)
        imports = metadata.imports if metadata is not None else ()
        dependencies[name] = [item.path for item in imports if item.kind == "import-statement"]
    return dependencies


def write_snapshot(result: BundleResult, out_dir: Path, build_id: Optional[str] = None) -> Path:
    """Write every output of ``result`` plus ``snapshot.json`` into ``out_dir``."""

    resolved_id = build_id or result.build_id
    if not resolved_id:
        raise ValueError("A build id is required to write a snapshot")

    for name, output in result.outputs.items():
        write_bytes(out_dir / name, output.code)

    payload = BuildSnapshotJson(build_id=resolved_id, files=snapshot_dependencies(result))
    snapshot_path = out_dir / SNAPSHOT_FILE
    write_text(snapshot_path, payload.model_dump_json(indent=2) + "\n")
    logger.info("Wrote snapshot with %d files to %s", len(result.outputs), out_dir)
    return snapshot_path


def load_aot_snapshot(snapshot_dir: Path) -> Optional[AotSnapshot]:
    """Load a snapshot directory; None when the directory or snapshot.json is missing.

    The recorded build id is returned on the snapshot for the caller to thread
    through; nothing global is updated.
    """

    if not snapshot_dir.is_dir():
        return None
    snapshot_path = snapshot_dir / SNAPSHOT_FILE
    try:
        raw = snapshot_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None

    logger.info("Using snapshot found at %s", snapshot_dir)
    payload = BuildSnapshotJson.model_validate_json(raw)
    return AotSnapshot(
        files={name: snapshot_dir / name for name in payload.files},
        dependency_mapping={name: list(deps) for name, deps in payload.files.items()},
        build_id=payload.build_id,
    )


def snapshot_summary(snapshot: AotSnapshot) -> Mapping[str, object]:
    return {
        "build_id": snapshot.build_id,
        "files": {name: snapshot.dependencies(name) for name in snapshot.paths},
        "checksums": {name: snapshot.checksum(name) for name in snapshot.paths},
    }
