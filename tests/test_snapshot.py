from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from lime_bundler.bundle.assembler import AssembledFile, ResultAssembler
from lime_bundler.snapshot import (
    SNAPSHOT_FILE,
    load_aot_snapshot,
    snapshot_dependencies,
    snapshot_summary,
    write_snapshot,
)


def _result(build_id="snap-1"):
    assembler = ResultAssembler()
    assembler.add(AssembledFile(name="main.js", code=b'import"./chunk-A.js";import("./lazy.js");'))
    assembler.add(AssembledFile(name="chunk-A.js", code=b"export const a=1;"))
    assembler.add(AssembledFile(name="lazy.js", code=b"export default 2;"))
    return assembler.build(build_id=build_id)


def test_dependencies_keep_static_imports_only() -> None:
    assert snapshot_dependencies(_result()) == {"main.js": ["chunk-A.js"], "chunk-A.js": [], "lazy.js": []}


def test_write_and_load_snapshot(tmp_path: Path) -> None:
    snapshot_path = write_snapshot(_result(), tmp_path / "snapshot")

    assert snapshot_path == tmp_path / "snapshot" / SNAPSHOT_FILE
    assert json.loads(snapshot_path.read_text(encoding="utf-8"))["build_id"] == "snap-1"

    snapshot = load_aot_snapshot(tmp_path / "snapshot")

    assert snapshot is not None
    assert snapshot.build_id == "snap-1"
    assert sorted(snapshot.paths) == ["chunk-A.js", "lazy.js", "main.js"]
    assert snapshot.read("chunk-A.js") == b"export const a=1;"
    assert snapshot.read("missing.js") is None
    assert snapshot.dependencies("main.js") == ["chunk-A.js"]
    assert snapshot_summary(snapshot)["build_id"] == "snap-1"
    assert snapshot.checksum("chunk-A.js") == hashlib.sha256(b"export const a=1;").hexdigest()
    assert snapshot_summary(snapshot)["checksums"]["main.js"] == snapshot.checksum("main.js")


def test_explicit_build_id_wins(tmp_path: Path) -> None:
    write_snapshot(_result(), tmp_path, build_id="override")

    assert load_aot_snapshot(tmp_path).build_id == "override"


def test_write_requires_build_id(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="build id"):
        write_snapshot(_result(build_id=None), tmp_path)


def test_missing_snapshot_returns_none(tmp_path: Path) -> None:
    assert load_aot_snapshot(tmp_path / "nowhere") is None
    assert load_aot_snapshot(tmp_path) is None


def test_malformed_snapshot_raises(tmp_path: Path) -> None:
    (tmp_path / SNAPSHOT_FILE).write_text('{"files": {}}', encoding="utf-8")

    with pytest.raises(ValidationError):
        load_aot_snapshot(tmp_path)


def test_deleted_file_reads_as_none(tmp_path: Path) -> None:
    write_snapshot(_result(), tmp_path)
    (tmp_path / "lazy.js").unlink()

    snapshot = load_aot_snapshot(tmp_path)
    assert snapshot.read("lazy.js") is None
    assert snapshot.checksum("lazy.js") is None
