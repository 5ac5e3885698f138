"""Bounded-concurrency upload of converted diagrams.

Logs in once through the :class:`~DiagramMigration.upload.UploadClient`, then
submits every diagram with at most ``max_concurrency`` concurrent sessions.
The client is closed once all submissions settle, whatever their outcome.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from DiagramMigration.api import Credentials, Diagram, PhaseReport, ProgressEvent, SessionSnapshot
from DiagramMigration.errors import DiagramError, log_diagram_failure
from DiagramMigration.progress import EmitFn
from DiagramMigration.upload import UploadClient

__all__ = ["Uploader"]

logger = logging.getLogger(__name__)


class Uploader:
    """Submit diagrams through an :class:`UploadClient`."""

    def __init__(
        self,
        client: UploadClient,
        *,
        max_concurrency: int = 5,
        emit: Optional[EmitFn] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.client = client
        self.max_concurrency = max_concurrency
        self._emit = emit or (lambda event: None)

    async def upload_all(self, diagrams: Iterable[Diagram], credentials: Credentials) -> PhaseReport:
        """Authenticate, then upload every diagram.

        Raises:
            AuthenticationError: If the login step fails; nothing is uploaded.
        """
        pending = list(diagrams)
        report = PhaseReport(phase="upload")
        try:
            snapshot = await self.client.authenticate(credentials)
            logger.info("Logged in to target as %s", credentials.username)

            semaphore = asyncio.Semaphore(self.max_concurrency)
            self._emit(ProgressEvent(phase="upload", kind="started", total=len(pending)))
            await asyncio.gather(
                *(self._upload_one(semaphore, snapshot, diagram, report) for diagram in pending)
            )
            self._emit(ProgressEvent(phase="upload", kind="finished"))
        finally:
            await self.client.close()

        logger.info(
            "Upload finished: %d succeeded, %d failed",
            len(report.succeeded),
            len(report.failed),
            extra={
                "extra_fields": {
                    "phase": "upload",
                    "succeeded": len(report.succeeded),
                    "failed": len(report.failed),
                }
            },
        )
        return report

    async def _upload_one(
        self,
        semaphore: asyncio.Semaphore,
        snapshot: SessionSnapshot,
        diagram: Diagram,
        report: PhaseReport,
    ) -> None:
        async with semaphore:
            self._emit(ProgressEvent(phase="upload", kind="dispatched", name=diagram.name))
            try:
                await self.client.submit(snapshot, diagram)
            except DiagramError as exc:
                log_diagram_failure(logger, exc, phase="upload")
                report.record_failure(diagram.name, exc)
                ok = False
            else:
                report.record_success(diagram.name)
                ok = True
            self._emit(ProgressEvent(phase="upload", kind="completed", name=diagram.name, ok=ok))
