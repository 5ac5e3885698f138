"""Run report, summary records and console reporting helpers.

Responsibilities
----------------
- Provide the :class:`RunReport` dataclass aggregating both phase reports of a
  migration run for downstream consumers (CLI, tests).
- Assemble a JSON-ready payload via :func:`build_summary_record`, optionally
  persisted by :func:`write_summary`.
- Render the end-of-run report with :func:`emit_console_summary`, mirroring
  the JSON payload so the console and the summary file tell the same story.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from DiagramMigration.api import PhaseReport
from DiagramMigration.store import atomic_write_bytes

__all__ = [
    "SUCCESS_BANNER",
    "RunReport",
    "build_summary_record",
    "emit_console_summary",
    "write_summary",
]

SUCCESS_BANNER = "Diagram Templates successfully uploaded! :)"


@dataclass
class RunReport:
    """Aggregated outcome of one migration run."""

    run_id: Optional[str] = None
    total_records: int = 0
    recovered: List[str] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)
    planned: List[str] = field(default_factory=list)
    converted: PhaseReport = field(default_factory=lambda: PhaseReport(phase="convert"))
    uploaded: PhaseReport = field(default_factory=lambda: PhaseReport(phase="upload"))
    dry_run: bool = False
    elapsed_s: float = 0.0

    @property
    def succeeded(self) -> List[str]:
        """Names that made it all the way through upload."""
        return list(self.uploaded.succeeded)

    @property
    def failed(self) -> Dict[str, str]:
        """Every failed name with the phase-qualified reason."""
        failures = {name: f"convert: {reason}" for name, reason in self.converted.failed.items()}
        failures.update(
            {name: f"upload: {reason}" for name, reason in self.uploaded.failed.items()}
        )
        return failures

    @property
    def ok(self) -> bool:
        return not self.failed


def build_summary_record(report: RunReport, *, config_hash: Optional[str] = None) -> Dict[str, Any]:
    """Assemble the structured run summary record."""

    return {
        "run_id": report.run_id,
        "config_hash": config_hash,
        "dry_run": report.dry_run,
        "total_records": report.total_records,
        "recovered": len(report.recovered),
        "duplicates": list(report.duplicates),
        "planned": len(report.planned),
        "converted": {
            "succeeded": len(report.converted.succeeded),
            "failed": len(report.converted.failed),
        },
        "uploaded": {
            "succeeded": len(report.uploaded.succeeded),
            "failed": len(report.uploaded.failed),
        },
        "succeeded": sorted(report.succeeded),
        "failed": dict(sorted(report.failed.items())),
        "ok": report.ok,
        "elapsed_s": round(report.elapsed_s, 3),
    }


def write_summary(path: Path, record: Dict[str, Any]) -> Path:
    """Persist ``record`` as pretty JSON at ``path``."""

    data = json.dumps(record, indent=2, sort_keys=True).encode("utf-8")
    atomic_write_bytes(Path(path), data + b"\n")
    return Path(path)


def emit_console_summary(report: RunReport, console: Optional[Console] = None) -> None:
    """Pretty-print the run report."""

    console = console or Console()

    if report.dry_run:
        console.print(
            Panel(
                f"Records: {report.total_records}\n"
                f"Already converted: {len(report.recovered)}\n"
                f"To convert: {len(report.planned)}\n"
                f"Duplicates dropped: {len(report.duplicates)}",
                title="Dry Run",
                border_style="yellow",
            )
        )
        return

    console.print(
        Panel(
            f"Records: {report.total_records}\n"
            f"Recovered: {len(report.recovered)}\n"
            f"Converted: {len(report.converted.succeeded)} "
            f"({len(report.converted.failed)} failed)\n"
            f"Uploaded: {len(report.uploaded.succeeded)} "
            f"({len(report.uploaded.failed)} failed)\n"
            f"Elapsed: {report.elapsed_s:.1f}s",
            title="Migration Summary",
        )
    )

    failures = report.failed
    if failures:
        table = Table(title="Failed Diagrams")
        table.add_column("Diagram", style="cyan")
        table.add_column("Phase")
        table.add_column("Reason", style="red")
        for name, reason in sorted(failures.items()):
            phase, _, message = reason.partition(": ")
            table.add_row(name, phase, message)
        console.print(table)

    # Reaching this point means no fatal error ended the run
    console.print(f"[bold dodgerblue2]{SUCCESS_BANNER}[/bold dodgerblue2]")
    if failures:
        console.print(f"[yellow]{len(failures)} diagram(s) failed; rerun to retry them[/yellow]")
