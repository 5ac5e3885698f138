"""Tests for the completion store: naming, scanning, checkpoints and partitioning."""

from __future__ import annotations

from pathlib import Path

import pytest

from DiagramMigration.api import Diagram
from DiagramMigration.errors import FilesystemError
from DiagramMigration.store import (
    CompletedSet,
    CompletionStore,
    artifact_filename,
    atomic_write_bytes,
    safe_name,
)


def test_artifact_filename_is_pure():
    assert artifact_filename("Main St") == artifact_filename("Main St") == "Main St.sce"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("plain", "plain"),
        ("a/b", "a-b"),
        ("a\\b", "a-b"),
        ("a/b\\c/", "a-b-c-"),
    ],
)
def test_safe_name_replaces_separators(name, expected):
    assert safe_name(name) == expected


def test_write_then_scan_recovers_identical_bytes(tmp_path: Path):
    store = CompletionStore(tmp_path / "out")
    payload = bytes(range(256)) * 4

    path = store.write(Diagram("Route 9", payload))
    completed = store.scan()

    assert path == tmp_path / "out" / "Route 9.sce"
    assert completed.names == frozenset({"Route 9"})
    assert completed.get("Route 9").payload == payload


def test_scan_creates_missing_directory(tmp_path: Path):
    store = CompletionStore(tmp_path / "new" / "dir")

    completed = store.scan()

    assert len(completed) == 0
    assert (tmp_path / "new" / "dir").is_dir()


def test_scan_ignores_temp_and_foreign_files(tmp_path: Path):
    out = tmp_path / "out"
    out.mkdir()
    (out / "kept.sce").write_bytes(b"ok")
    (out / ".part-abc.tmp").write_bytes(b"partial")
    (out / "notes.txt").write_text("hello")
    (out / "folder.sce").mkdir()

    completed = CompletionStore(out).scan()

    assert completed.names == frozenset({"kept"})


def test_scan_on_file_path_raises(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(FilesystemError):
        CompletionStore(blocker).scan()


def test_separator_names_match_their_artifact(tmp_path: Path):
    store = CompletionStore(tmp_path)
    store.write(Diagram("North\\South", b"x"))

    completed = store.scan()

    assert "North\\South" in completed
    assert "North-South" in completed


def test_partition_returns_recovered_artifacts(tmp_path: Path):
    completed = CompletedSet(by_name={"done": Diagram("done", b"modern")})
    records = [Diagram("done", b"legacy"), Diagram("todo", b"legacy2")]

    done, pending = CompletionStore.partition(records, completed)

    assert [(d.name, d.payload) for d in done] == [("done", b"modern")]
    assert [d.name for d in pending] == ["todo"]


def test_atomic_write_leaves_no_temp_files(tmp_path: Path):
    dest = tmp_path / "a.sce"

    written = atomic_write_bytes(dest, b"abc")

    assert written == 3
    assert dest.read_bytes() == b"abc"
    assert [p.name for p in tmp_path.iterdir()] == ["a.sce"]


def test_atomic_write_overwrites(tmp_path: Path):
    dest = tmp_path / "a.sce"
    atomic_write_bytes(dest, b"old")
    atomic_write_bytes(dest, b"new")

    assert dest.read_bytes() == b"new"
