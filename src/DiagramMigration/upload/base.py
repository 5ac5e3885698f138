"""Upload capability consumed by :class:`~DiagramMigration.uploader.Uploader`."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from DiagramMigration.api import Credentials, Diagram, SessionSnapshot

__all__ = ["UploadClient"]


@runtime_checkable
class UploadClient(Protocol):
    """Authenticated submission of converted diagrams to the target application.

    ``authenticate`` is called exactly once before any ``submit``; ``close`` is
    called exactly once after every submission has settled, even when
    ``authenticate`` failed.
    """

    async def authenticate(self, credentials: Credentials) -> SessionSnapshot:
        """Log in and capture the session. Raises ``AuthenticationError``."""
        ...

    async def submit(self, snapshot: SessionSnapshot, diagram: Diagram) -> None:
        """Upload one diagram in a session seeded from ``snapshot``. Raises ``UploadError``."""
        ...

    async def close(self) -> None: ...
