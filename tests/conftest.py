# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures: dataset files, fake vendor and upload clients, configs",
#   "sections": [
#     {"id": "write-dataset", "name": "write_dataset", "anchor": "function-write-dataset", "kind": "function"},
#     {"id": "unreadable-archive", "name": "unreadable_archive", "anchor": "function-unreadable-archive", "kind": "function"},
#     {"id": "fakevendor", "name": "FakeVendor", "anchor": "class-fakevendor", "kind": "class"},
#     {"id": "fakeuploadclient", "name": "FakeUploadClient", "anchor": "class-fakeuploadclient", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Shared fixtures for the diagram migration suite. Remote collaborators are
replaced by in-process fakes that record calls and track how many operations
are in flight at once, so concurrency bounds can be asserted directly.
"""

from __future__ import annotations

import asyncio
import base64
import io
import os
import zipfile
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pytest

from DiagramMigration.api import BearerToken, Credentials, Diagram, SessionSnapshot
from DiagramMigration.config import MigrationConfig
from DiagramMigration.errors import AuthenticationError, ConversionError, UploadError

Row = Tuple[Optional[str], Optional[str], bytes]


def write_dataset(path: Path, rows: Iterable[Row], *, namespace: Optional[str] = None) -> Path:
    """Write a DataSet XML export with one DEPICTION_TB element per row."""
    ns_attr = f' xmlns="{namespace}"' if namespace else ""
    parts = [f'<?xml version="1.0" standalone="yes"?>\n<NewDataSet{ns_attr}>']
    parts.append(
        '  <xs:schema id="NewDataSet" xmlns:xs="http://www.w3.org/2001/XMLSchema">'
        '<xs:element name="NewDataSet"/></xs:schema>'
    )
    for short_name, description, payload in rows:
        parts.append("  <DEPICTION_TB>")
        if short_name is not None:
            parts.append(f"    <SHORT_NAME>{short_name}</SHORT_NAME>")
        if description is not None:
            parts.append(f"    <DESCRIPTION>{description}</DESCRIPTION>")
        parts.append(f"    <DIAGRAM>{base64.b64encode(payload).decode('ascii')}</DIAGRAM>")
        parts.append("  </DEPICTION_TB>")
    parts.append("</NewDataSet>\n")
    path.write_text("\n".join(parts), encoding="utf-8")
    return path


class _InFlight:
    def __init__(self) -> None:
        self.current = 0
        self.high_water = 0

    def __enter__(self) -> None:
        self.current += 1
        self.high_water = max(self.high_water, self.current)

    def __exit__(self, *exc_info: object) -> None:
        self.current -= 1


class FakeVendor:
    """ConversionClient double; converted payload is ``b"modern:" + legacy``."""

    def __init__(self, *, delay: float = 0.01) -> None:
        self.delay = delay
        self.fail_names: Set[str] = set()
        self.token_error: Optional[Exception] = None
        self.token_requests: List[Credentials] = []
        self.calls: List[str] = []
        self.tokens_seen: List[BearerToken] = []
        self.in_flight = _InFlight()

    async def acquire_token(self, credentials: Credentials) -> BearerToken:
        self.token_requests.append(credentials)
        if self.token_error is not None:
            raise self.token_error
        return BearerToken("fake-token")

    async def modernize(self, token: BearerToken, diagram: Diagram) -> Diagram:
        self.calls.append(diagram.name)
        self.tokens_seen.append(token)
        with self.in_flight:
            await asyncio.sleep(self.delay)
            if diagram.name in self.fail_names:
                raise ConversionError("vendor rejected the diagram", name=diagram.name, http_status=500)
            return diagram.with_payload(b"modern:" + diagram.payload)


class FakeUploadClient:
    """UploadClient double recording submitted diagrams."""

    def __init__(self, *, delay: float = 0.01) -> None:
        self.delay = delay
        self.fail_names: Set[str] = set()
        self.auth_fails = False
        self.authenticated: List[Credentials] = []
        self.submitted: Dict[str, bytes] = {}
        self.snapshots: List[SessionSnapshot] = []
        self.close_calls = 0
        self.in_flight = _InFlight()

    async def authenticate(self, credentials: Credentials) -> SessionSnapshot:
        self.authenticated.append(credentials)
        if self.auth_fails:
            raise AuthenticationError("login rejected", service="target")
        return SessionSnapshot(state_path=Path("state.json"), storage_state={"cookies": []})

    async def submit(self, snapshot: SessionSnapshot, diagram: Diagram) -> None:
        self.snapshots.append(snapshot)
        with self.in_flight:
            await asyncio.sleep(self.delay)
            if diagram.name in self.fail_names:
                raise UploadError("form rejected the file", name=diagram.name)
            self.submitted[diagram.name] = diagram.payload

    async def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def fake_vendor() -> FakeVendor:
    return FakeVendor()


@pytest.fixture
def fake_upload_client() -> FakeUploadClient:
    return FakeUploadClient()


@pytest.fixture
def dataset_factory(tmp_path: Path) -> Callable[..., Path]:
    """Return ``make(rows, name="diagrams.xml", namespace=None) -> Path``."""

    def make(rows: Sequence[Row], name: str = "diagrams.xml", namespace: Optional[str] = None) -> Path:
        return write_dataset(tmp_path / name, rows, namespace=namespace)

    return make


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., MigrationConfig]:
    """Build a fully populated MigrationConfig rooted in ``tmp_path``."""

    def make(input_file: Path, **sections: dict) -> MigrationConfig:
        data: dict = {
            "run_id": "test-run",
            "vendor": {"base_url": "https://vendor.test", "username": "vend", "password": "vpw"},
            "target": {
                "base_url": "https://target.test",
                "username": "user",
                "password": "pw",
                "state_path": str(tmp_path / "state.json"),
            },
            "paths": {"input_file": str(input_file), "output_dir": str(tmp_path / "converted")},
            "retry": {"base_delay_s": 0.0, "max_delay_s": 0.0},
        }
        for key, value in sections.items():
            data.setdefault(key, {}).update(value)
        return MigrationConfig.model_validate(data)

    return make


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep DMIG_* variables from the developer's shell out of every test."""
    for key in list(os.environ):
        if key.startswith("DMIG_") or key == "DIAGRAM_MIGRATION_CONFIG":
            monkeypatch.delenv(key, raising=False)


def unreadable_archive(kind: str) -> bytes:
    """A structurally valid zip whose single entry cannot be read back.

    ``encrypted`` sets the encryption flag in the central directory so reading
    demands a password. ``corrupt-deflate`` replaces the compressed stream with
    an invalid deflate block header.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("out.sce", b"modernized diagram bytes " * 8)
    data = bytearray(buffer.getvalue())

    if kind == "encrypted":
        central = data.index(b"PK\x01\x02")
        data[central + 8] |= 0x01
    elif kind == "corrupt-deflate":
        name_len = int.from_bytes(data[26:28], "little")
        extra_len = int.from_bytes(data[28:30], "little")
        # BFINAL=1 with reserved BTYPE=11
        data[30 + name_len + extra_len] = 0xFF
    else:
        raise ValueError(f"unknown archive kind {kind!r}")
    return bytes(data)


@pytest.fixture(params=["encrypted", "corrupt-deflate"])
def unreadable_archive_bytes(request) -> bytes:
    return unreadable_archive(request.param)
