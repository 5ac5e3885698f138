"""Tests for bounded-concurrency conversion with checkpointing."""

from __future__ import annotations

import asyncio
import io
import zipfile
from pathlib import Path
from typing import List

import httpx
import pytest

from DiagramMigration.api import BearerToken, Diagram, ProgressEvent
from DiagramMigration.config import MigrationConfig
from DiagramMigration.converter import Converter
from DiagramMigration.errors import FilesystemError
from DiagramMigration.store import CompletionStore
from DiagramMigration.vendor import VendorClient

TOKEN = BearerToken("fake-token")


def _diagrams(count: int) -> List[Diagram]:
    return [Diagram(f"diagram-{i:02d}", f"legacy-{i}".encode()) for i in range(count)]


def test_never_more_than_five_conversions_in_flight(tmp_path: Path, fake_vendor):
    converter = Converter(fake_vendor, CompletionStore(tmp_path), max_concurrency=5)

    result = asyncio.run(converter.convert_all(_diagrams(20), TOKEN))

    assert fake_vendor.in_flight.high_water <= 5
    assert fake_vendor.in_flight.high_water == 5
    assert len(result.diagrams) == 20
    assert result.report.ok


def test_each_success_is_checkpointed_with_converted_bytes(tmp_path: Path, fake_vendor):
    store = CompletionStore(tmp_path)
    converter = Converter(fake_vendor, store)

    result = asyncio.run(converter.convert_all(_diagrams(3), TOKEN))

    for diagram in result.diagrams:
        assert store.artifact_path(diagram.name).read_bytes() == diagram.payload
        assert diagram.payload.startswith(b"modern:")


def test_one_failure_does_not_stop_siblings(tmp_path: Path, fake_vendor):
    fake_vendor.fail_names = {"diagram-03"}
    store = CompletionStore(tmp_path)
    converter = Converter(fake_vendor, store)

    result = asyncio.run(converter.convert_all(_diagrams(8), TOKEN))

    assert sorted(d.name for d in result.diagrams) == [f"diagram-{i:02d}" for i in range(8) if i != 3]
    assert list(result.report.failed) == ["diagram-03"]
    assert "vendor rejected" in result.report.failed["diagram-03"]
    assert not store.artifact_path("diagram-03").exists()


def test_token_is_passed_to_every_call(tmp_path: Path, fake_vendor):
    converter = Converter(fake_vendor, CompletionStore(tmp_path))

    asyncio.run(converter.convert_all(_diagrams(4), TOKEN))

    assert fake_vendor.tokens_seen == [TOKEN] * 4


def test_checkpoint_failure_is_scoped_to_the_diagram(tmp_path: Path, fake_vendor, monkeypatch):
    store = CompletionStore(tmp_path)
    original_write = store.write

    def flaky_write(diagram: Diagram) -> Path:
        if diagram.name == "diagram-01":
            raise FilesystemError("disk full", path=tmp_path / "diagram-01.sce")
        return original_write(diagram)

    monkeypatch.setattr(store, "write", flaky_write)
    converter = Converter(fake_vendor, store)

    result = asyncio.run(converter.convert_all(_diagrams(3), TOKEN))

    assert list(result.report.failed) == ["diagram-01"]
    assert "not checkpointed" in result.report.failed["diagram-01"]
    assert len(result.diagrams) == 2


def test_emits_lifecycle_events(tmp_path: Path, fake_vendor):
    events: List[ProgressEvent] = []
    fake_vendor.fail_names = {"diagram-00"}
    converter = Converter(fake_vendor, CompletionStore(tmp_path), emit=events.append)

    asyncio.run(converter.convert_all(_diagrams(2), TOKEN))

    kinds = [e.kind for e in events]
    assert kinds[0] == "started" and events[0].total == 2
    assert kinds[-1] == "finished"
    assert kinds.count("dispatched") == 2
    completed = {e.name: e.ok for e in events if e.kind == "completed"}
    assert completed == {"diagram-00": False, "diagram-01": True}


def test_empty_input_completes_immediately(tmp_path: Path, fake_vendor):
    result = asyncio.run(Converter(fake_vendor, CompletionStore(tmp_path)).convert_all([], TOKEN))

    assert result.diagrams == []
    assert result.report.total == 0
    assert fake_vendor.calls == []


def test_rejects_non_positive_concurrency(tmp_path: Path, fake_vendor):
    with pytest.raises(ValueError):
        Converter(fake_vendor, CompletionStore(tmp_path), max_concurrency=0)


def test_unreadable_archive_fails_only_that_diagram(tmp_path: Path, unreadable_archive_bytes):
    good = io.BytesIO()
    with zipfile.ZipFile(good, "w") as zf:
        zf.writestr("out.sce", b"modern")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.content == b"legacy-0":
            return httpx.Response(200, content=unreadable_archive_bytes)
        return httpx.Response(200, content=good.getvalue())

    config = MigrationConfig.model_validate(
        {"vendor": {"base_url": "https://vendor.test"}, "retry": {"base_delay_s": 0.0, "max_delay_s": 0.0}}
    )
    store = CompletionStore(tmp_path)

    async def go():
        async with VendorClient.from_config(config, transport=httpx.MockTransport(handler)) as vendor:
            return await Converter(vendor, store).convert_all(_diagrams(5), TOKEN)

    result = asyncio.run(go())

    assert sorted(d.name for d in result.diagrams) == [f"diagram-{i:02d}" for i in range(1, 5)]
    assert list(result.report.failed) == ["diagram-00"]
    assert not store.artifact_path("diagram-00").exists()
