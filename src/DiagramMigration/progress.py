# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration.progress",
#   "purpose": "Progress event channel between pipeline workers and the display",
#   "sections": [
#     {"id": "progresssink", "name": "ProgressSink", "anchor": "class-progresssink", "kind": "class"},
#     {"id": "nullprogresssink", "name": "NullProgressSink", "anchor": "class-nullprogresssink", "kind": "class"},
#     {"id": "richprogresssink", "name": "RichProgressSink", "anchor": "class-richprogresssink", "kind": "class"},
#     {"id": "progressmonitor", "name": "ProgressMonitor", "anchor": "class-progressmonitor", "kind": "class"}
#   ]
# }
# === /NAVMAP ===
"""Progress reporting for the convert and upload phases.

Workers never touch the display. They call an ``emit`` function with a
:class:`~DiagramMigration.api.ProgressEvent`; the :class:`ProgressMonitor`
queues events and a single consumer task forwards them to a
:class:`ProgressSink`. Each phase has a policy deciding which worker event
advances its bar:

``completion``
    advance when a diagram settles (success or failure)
``dispatch``
    advance when a diagram acquires a worker slot
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Callable, Dict, Mapping, Optional, Protocol

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TaskID, TextColumn

from DiagramMigration.api import Phase, ProgressEvent, ProgressPolicy
from DiagramMigration.config import ProgressConfig

__all__ = [
    "EmitFn",
    "NullProgressSink",
    "ProgressMonitor",
    "ProgressSink",
    "RichProgressSink",
    "PHASE_DESCRIPTIONS",
]

logger = logging.getLogger(__name__)

EmitFn = Callable[[ProgressEvent], None]

PHASE_DESCRIPTIONS: Dict[str, str] = {
    "convert": "Convert Diagrams",
    "upload": "Upload Diagrams",
}


class ProgressSink(Protocol):
    """Display target for phase progress."""

    def start(self, phase: Phase, total: int) -> None: ...

    def advance(self, phase: Phase) -> None: ...

    def finish(self, phase: Phase) -> None: ...


class NullProgressSink:
    """Sink that discards every update."""

    def start(self, phase: Phase, total: int) -> None:
        pass

    def advance(self, phase: Phase) -> None:
        pass

    def finish(self, phase: Phase) -> None:
        pass


class RichProgressSink:
    """Render one rich progress bar per phase.

    Use as a context manager around the pipeline run so the live display is
    started and stopped exactly once.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
        )
        self._tasks: Dict[str, TaskID] = {}

    def __enter__(self) -> RichProgressSink:
        self._progress.start()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self._progress.stop()

    def start(self, phase: Phase, total: int) -> None:
        self._tasks[phase] = self._progress.add_task(PHASE_DESCRIPTIONS[phase], total=total)

    def advance(self, phase: Phase) -> None:
        task_id = self._tasks.get(phase)
        if task_id is not None:
            self._progress.advance(task_id)

    def finish(self, phase: Phase) -> None:
        task_id = self._tasks.get(phase)
        if task_id is not None:
            self._progress.stop_task(task_id)


_CLOSE = object()


class ProgressMonitor:
    """Async event channel from workers to a :class:`ProgressSink`.

    Example:
        async with ProgressMonitor(sink) as monitor:
            converter = Converter(client, store, emit=monitor.emit)
            await converter.convert_all(diagrams, token)
    """

    def __init__(
        self,
        sink: Optional[ProgressSink] = None,
        *,
        policies: Optional[Mapping[str, ProgressPolicy]] = None,
    ) -> None:
        self.sink: ProgressSink = sink or NullProgressSink()
        self.policies: Dict[str, ProgressPolicy] = {"convert": "completion", "upload": "completion"}
        if policies:
            self.policies.update(policies)
        self.advanced: Dict[str, int] = {"convert": 0, "upload": 0}
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, cfg: ProgressConfig, sink: Optional[ProgressSink] = None) -> ProgressMonitor:
        return cls(
            sink,
            policies={"convert": cfg.convert_advance_on, "upload": cfg.upload_advance_on},
        )

    async def __aenter__(self) -> ProgressMonitor:
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume())
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        assert self._queue is not None and self._consumer is not None
        self._queue.put_nowait(_CLOSE)
        try:
            await self._consumer
        finally:
            self._queue = None
            self._consumer = None

    def emit(self, event: ProgressEvent) -> None:
        """Queue ``event`` for the consumer task. Never blocks."""
        if self._queue is None:
            raise RuntimeError("ProgressMonitor is not running; use 'async with'")
        self._queue.put_nowait(event)

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            if event is _CLOSE:
                return
            self._handle(event)

    def _handle(self, event: ProgressEvent) -> None:
        phase = event.phase
        if event.kind == "started":
            self.sink.start(phase, event.total or 0)
        elif event.kind == "finished":
            self.sink.finish(phase)
        elif event.kind == "dispatched" and self.policies[phase] == "dispatch":
            self._advance(phase)
        elif event.kind == "completed" and self.policies[phase] == "completion":
            self._advance(phase)

    def _advance(self, phase: Phase) -> None:
        self.advanced[phase] += 1
        self.sink.advance(phase)
