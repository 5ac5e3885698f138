"""Bounded-concurrency conversion of pending diagrams.

Each diagram is modernized through a :class:`~DiagramMigration.vendor.ConversionClient`
and checkpointed to the :class:`~DiagramMigration.store.CompletionStore` before it
counts as converted. At most ``max_concurrency`` calls are in flight; the slot is
released on every exit path. A failure is recorded against its diagram and never
cancels sibling conversions.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from DiagramMigration.api import BearerToken, Diagram, PhaseReport, ProgressEvent
from DiagramMigration.errors import ConversionError, DiagramError, FilesystemError, log_diagram_failure
from DiagramMigration.progress import EmitFn
from DiagramMigration.store import CompletionStore
from DiagramMigration.vendor import ConversionClient

__all__ = ["ConversionResult", "Converter"]

logger = logging.getLogger(__name__)


def _discard(event: ProgressEvent) -> None:
    pass


@dataclass
class ConversionResult:
    """Converted diagrams (already on disk) plus per-diagram outcomes."""

    diagrams: List[Diagram]
    report: PhaseReport


class Converter:
    """Convert diagrams with at most ``max_concurrency`` in-flight API calls."""

    def __init__(
        self,
        client: ConversionClient,
        store: CompletionStore,
        *,
        max_concurrency: int = 5,
        emit: Optional[EmitFn] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.client = client
        self.store = store
        self.max_concurrency = max_concurrency
        self._emit = emit or _discard

    async def convert_all(self, diagrams: Iterable[Diagram], token: BearerToken) -> ConversionResult:
        """Convert every diagram; returns once all of them have settled."""
        pending = list(diagrams)
        report = PhaseReport(phase="convert")
        semaphore = asyncio.Semaphore(self.max_concurrency)

        self._emit(ProgressEvent(phase="convert", kind="started", total=len(pending)))
        logger.info(
            "Converting %d diagram(s) with %d worker(s)",
            len(pending),
            self.max_concurrency,
            extra={"extra_fields": {"phase": "convert", "pending": len(pending)}},
        )

        results = await asyncio.gather(
            *(self._convert_one(semaphore, diagram, token, report) for diagram in pending)
        )

        self._emit(ProgressEvent(phase="convert", kind="finished"))
        converted = [diagram for diagram in results if diagram is not None]
        logger.info(
            "Conversion finished: %d succeeded, %d failed",
            len(report.succeeded),
            len(report.failed),
            extra={
                "extra_fields": {
                    "phase": "convert",
                    "succeeded": len(report.succeeded),
                    "failed": len(report.failed),
                }
            },
        )
        return ConversionResult(diagrams=converted, report=report)

    async def _convert_one(
        self,
        semaphore: asyncio.Semaphore,
        diagram: Diagram,
        token: BearerToken,
        report: PhaseReport,
    ) -> Optional[Diagram]:
        async with semaphore:
            self._emit(ProgressEvent(phase="convert", kind="dispatched", name=diagram.name))
            try:
                converted = await self.client.modernize(token, diagram)
                try:
                    await asyncio.to_thread(self.store.write, converted)
                except FilesystemError as exc:
                    raise ConversionError(
                        f"Converted but not checkpointed: {exc}",
                        name=diagram.name,
                        details={"path": str(exc.path)},
                    ) from exc
            except DiagramError as exc:
                log_diagram_failure(logger, exc, phase="convert")
                report.record_failure(diagram.name, exc)
                self._emit(
                    ProgressEvent(phase="convert", kind="completed", name=diagram.name, ok=False)
                )
                return None

            report.record_success(diagram.name)
            self._emit(ProgressEvent(phase="convert", kind="completed", name=diagram.name, ok=True))
            return converted
