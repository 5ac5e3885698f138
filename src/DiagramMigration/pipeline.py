# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration.pipeline",
#   "purpose": "Migration orchestrator: token, records, partition, convert, merge, upload, report",
#   "sections": [
#     {"id": "select-records", "name": "select_records", "anchor": "function-select-records", "kind": "function"},
#     {"id": "migrationpipeline", "name": "MigrationPipeline", "anchor": "class-migrationpipeline", "kind": "class"},
#     {"id": "run-migration", "name": "run_migration", "anchor": "function-run-migration", "kind": "function"},
#     {"id": "plan-migration", "name": "plan_migration", "anchor": "function-plan-migration", "kind": "function"}
#   ]
# }
# === /NAVMAP ===
"""Migration orchestrator.

Step order for a real run::

    vendor token -> load records -> select -> scan output dir -> partition
        -> convert pending (<= convert_workers) -> merge with recovered
        -> login + upload merged (<= upload_workers) -> RunReport

Upload never starts before every conversion has settled. Token acquisition,
record loading, the output directory scan, the upload login and the overall
deadline are fatal; everything scoped to one diagram ends up in the report.

A dry run stops after the partition step and makes no remote calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from DiagramMigration.api import Diagram
from DiagramMigration.config import MigrationConfig
from DiagramMigration.converter import Converter
from DiagramMigration.errors import FATAL_ERRORS, ConfigurationError, DeadlineExceededError
from DiagramMigration.progress import ProgressMonitor, ProgressSink
from DiagramMigration.records import DataSetRecordSource, RecordSource
from DiagramMigration.store import CompletionStore, artifact_filename
from DiagramMigration.summary import RunReport, build_summary_record, write_summary
from DiagramMigration.upload import UploadClient
from DiagramMigration.uploader import Uploader
from DiagramMigration.vendor import ConversionClient, VendorClient

__all__ = ["MigrationPipeline", "plan_migration", "run_migration", "select_records"]

logger = logging.getLogger(__name__)


def select_records(
    records: Iterable[Diagram], *, max_records: Optional[int] = None
) -> Tuple[List[Diagram], List[str]]:
    """Apply the record limit, then drop records sharing an artifact file (first one wins).

    Names that differ only in characters ``safe_name`` replaces, such as
    ``"a/b"`` and ``"a-b"``, map to the same checkpoint and count as repeats.

    Returns:
        (selected diagrams in input order, names of dropped duplicates)
    """
    records = list(records)
    if max_records is not None:
        records = records[:max_records]

    selected: List[Diagram] = []
    duplicates: List[str] = []
    seen = set()
    for diagram in records:
        filename = artifact_filename(diagram.name)
        if filename in seen:
            logger.warning(
                "Dropping duplicate record %r (artifact %s); the first occurrence wins",
                diagram.name,
                filename,
            )
            duplicates.append(diagram.name)
            continue
        seen.add(filename)
        selected.append(diagram)
    return selected, duplicates


class MigrationPipeline:
    """Run one migration against the configured endpoints.

    Collaborators default to the production implementations built from
    ``config``; tests inject fakes for ``vendor`` and ``upload_client``.
    """

    def __init__(
        self,
        config: MigrationConfig,
        *,
        record_source: Optional[RecordSource] = None,
        vendor: Optional[ConversionClient] = None,
        upload_client: Optional[UploadClient] = None,
        store: Optional[CompletionStore] = None,
        sink: Optional[ProgressSink] = None,
    ) -> None:
        self.config = config
        self.record_source = record_source or DataSetRecordSource.from_config(config.records)
        self.vendor = vendor
        self.upload_client = upload_client
        self.store = store or CompletionStore(Path(config.paths.output_dir))
        self.sink = sink
        self.run_id = config.run_id or uuid.uuid4().hex

    @property
    def input_path(self) -> Path:
        if not self.config.paths.input_file:
            raise ConfigurationError("paths.input_file is not configured (use --input)")
        return Path(self.config.paths.input_file)

    async def run(self, *, dry_run: bool = False) -> RunReport:
        """Execute the pipeline and return its report.

        Raises:
            MigrationError: Any fatal error (see module docstring).
        """
        started = time.perf_counter()
        report = RunReport(run_id=self.run_id, dry_run=dry_run)
        logger.info(
            "Starting migration run %s",
            self.run_id,
            extra={"extra_fields": {"run_id": self.run_id, "dry_run": dry_run}},
        )

        if dry_run:
            await self._plan(report)
        else:
            deadline = self.config.limits.run_deadline_s
            try:
                await asyncio.wait_for(self._execute(report), timeout=deadline)
            except asyncio.TimeoutError as exc:
                error = DeadlineExceededError(
                    f"Run exceeded its {deadline:g}s deadline; completed diagrams are checkpointed",
                    deadline_s=deadline,
                )
                self._log_abort(error)
                raise error from exc
            except FATAL_ERRORS as exc:
                self._log_abort(exc)
                raise

        report.elapsed_s = time.perf_counter() - started
        return report

    def _log_abort(self, exc: Exception) -> None:
        logger.error(
            "Migration run %s aborted: %s",
            self.run_id,
            exc,
            extra={"extra_fields": {"run_id": self.run_id, "error_type": type(exc).__name__}},
        )

    async def _plan(self, report: RunReport) -> Tuple[List[Diagram], List[Diagram]]:
        """Load, select and partition; fills the planning fields of ``report``.

        Returns:
            (recovered diagrams, diagrams still to convert)
        """
        records = await asyncio.to_thread(self.record_source.load_records, self.input_path)
        selected, duplicates = select_records(records, max_records=self.config.limits.max_records)
        completed = await asyncio.to_thread(self.store.scan)
        done, pending = self.store.partition(selected, completed)

        report.total_records = len(selected)
        report.duplicates = duplicates
        report.recovered = [diagram.name for diagram in done]
        report.planned = [diagram.name for diagram in pending]
        logger.info(
            "%d record(s): %d already converted, %d to convert",
            len(selected),
            len(done),
            len(pending),
            extra={
                "extra_fields": {
                    "records": len(selected),
                    "recovered": len(done),
                    "pending": len(pending),
                }
            },
        )
        return done, pending

    async def _execute(self, report: RunReport) -> None:
        vendor_credentials = self.config.vendor_credentials()
        target_credentials = self.config.target_credentials()
        self.config.require_remote()

        async with AsyncExitStack() as stack:
            vendor = self.vendor
            if vendor is None:
                vendor = await stack.enter_async_context(VendorClient.from_config(self.config))
            upload_client = self.upload_client
            if upload_client is None:
                from DiagramMigration.upload import PlaywrightUploadClient

                upload_client = PlaywrightUploadClient.from_config(self.config)

            token = await vendor.acquire_token(vendor_credentials)
            recovered, pending = await self._plan(report)

            monitor = ProgressMonitor.from_config(self.config.progress, self.sink)
            async with monitor:
                converter = Converter(
                    vendor,
                    self.store,
                    max_concurrency=self.config.limits.convert_workers,
                    emit=monitor.emit,
                )
                result = await converter.convert_all(pending, token)
                report.converted = result.report

                merged = recovered + result.diagrams
                if not merged:
                    logger.warning("Nothing to upload; skipping login and upload")
                    await upload_client.close()
                    return

                uploader = Uploader(
                    upload_client,
                    max_concurrency=self.config.limits.upload_workers,
                    emit=monitor.emit,
                )
                report.uploaded = await uploader.upload_all(merged, target_credentials)


def run_migration(
    config: MigrationConfig,
    *,
    dry_run: bool = False,
    sink: Optional[ProgressSink] = None,
    vendor: Optional[ConversionClient] = None,
    upload_client: Optional[UploadClient] = None,
) -> RunReport:
    """Synchronous entry point used by the CLI.

    Writes the JSON summary to ``paths.summary_path`` when configured.
    """
    pipeline = MigrationPipeline(config, sink=sink, vendor=vendor, upload_client=upload_client)
    report = asyncio.run(pipeline.run(dry_run=dry_run))

    if config.paths.summary_path:
        record = build_summary_record(report, config_hash=config.config_hash())
        path = write_summary(Path(config.paths.summary_path), record)
        logger.info("Wrote run summary to %s", path)
    return report


def plan_migration(config: MigrationConfig) -> RunReport:
    """Records versus completed artifacts, without any remote call."""
    return asyncio.run(MigrationPipeline(config).run(dry_run=True))
