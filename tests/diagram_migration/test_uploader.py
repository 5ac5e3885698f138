"""Tests for the uploader's login-once, bounded-concurrency submission."""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from DiagramMigration.api import Credentials, Diagram, ProgressEvent
from DiagramMigration.errors import AuthenticationError
from DiagramMigration.upload import UploadClient
from DiagramMigration.uploader import Uploader

CREDENTIALS = Credentials("user", "pw")


def _diagrams(count: int) -> List[Diagram]:
    return [Diagram(f"d{i}", f"modern-{i}".encode()) for i in range(count)]


def test_fake_satisfies_upload_client_protocol(fake_upload_client):
    assert isinstance(fake_upload_client, UploadClient)


def test_never_more_than_five_uploads_in_flight(fake_upload_client):
    report = asyncio.run(Uploader(fake_upload_client).upload_all(_diagrams(20), CREDENTIALS))

    assert fake_upload_client.in_flight.high_water == 5
    assert len(report.succeeded) == 20
    assert fake_upload_client.authenticated == [CREDENTIALS]
    assert fake_upload_client.close_calls == 1


def test_every_upload_uses_the_same_snapshot(fake_upload_client):
    asyncio.run(Uploader(fake_upload_client).upload_all(_diagrams(6), CREDENTIALS))

    assert len({id(s) for s in fake_upload_client.snapshots}) == 1


def test_upload_failure_is_isolated(fake_upload_client):
    fake_upload_client.fail_names = {"d2"}

    report = asyncio.run(Uploader(fake_upload_client).upload_all(_diagrams(5), CREDENTIALS))

    assert sorted(report.succeeded) == ["d0", "d1", "d3", "d4"]
    assert list(report.failed) == ["d2"]
    assert set(fake_upload_client.submitted) == {"d0", "d1", "d3", "d4"}


def test_login_failure_is_fatal_and_still_closes(fake_upload_client):
    fake_upload_client.auth_fails = True

    with pytest.raises(AuthenticationError):
        asyncio.run(Uploader(fake_upload_client).upload_all(_diagrams(3), CREDENTIALS))

    assert fake_upload_client.submitted == {}
    assert fake_upload_client.close_calls == 1


def test_emits_completion_events(fake_upload_client):
    events: List[ProgressEvent] = []
    fake_upload_client.fail_names = {"d0"}

    asyncio.run(
        Uploader(fake_upload_client, max_concurrency=2, emit=events.append).upload_all(
            _diagrams(3), CREDENTIALS
        )
    )

    assert events[0].kind == "started" and events[0].total == 3
    assert events[-1].kind == "finished"
    outcomes = {e.name: e.ok for e in events if e.kind == "completed"}
    assert outcomes == {"d0": False, "d1": True, "d2": True}
    assert fake_upload_client.in_flight.high_water <= 2
