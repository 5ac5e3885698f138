# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration.store",
#   "purpose": "Completion store: converted artifact naming, scanning and atomic checkpoints",
#   "sections": [
#     {"id": "safe-name", "name": "safe_name", "anchor": "function-safe-name", "kind": "function"},
#     {"id": "artifact-filename", "name": "artifact_filename", "anchor": "function-artifact-filename", "kind": "function"},
#     {"id": "atomic-write-bytes", "name": "atomic_write_bytes", "anchor": "function-atomic-write-bytes", "kind": "function"},
#     {"id": "completedset", "name": "CompletedSet", "anchor": "class-completedset", "kind": "class"},
#     {"id": "completionstore", "name": "CompletionStore", "anchor": "class-completionstore", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Completion store for resumable conversion runs.

**Purpose**
-----------
The output directory holds one artifact per successfully converted diagram.
It is the durable checkpoint of a run: a later run scans it, skips the
conversion call for every diagram already present and still uploads the
recovered bytes.

**Naming**
----------
:func:`safe_name` replaces path-separator characters with ``-`` so a diagram
name can never address a nested path; :func:`artifact_filename` appends the
``.sce`` suffix. Both are pure, so two runs over the same input always agree
on which artifacts exist. The upload form receives the same ``safe_name``,
which keeps recovered diagrams (named by file stem) and freshly converted
ones indistinguishable downstream.

**Safety**
----------
Artifacts are written with temp file + fsync + ``os.replace``. A crash mid
write leaves only a ``.part-*.tmp`` file, which :meth:`CompletionStore.scan`
ignores, so a truncated payload is never mistaken for a finished conversion.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from DiagramMigration.api import Diagram
from DiagramMigration.errors import FilesystemError

__all__ = [
    "ARTIFACT_SUFFIX",
    "CompletedSet",
    "CompletionStore",
    "artifact_filename",
    "atomic_write_bytes",
    "safe_name",
]

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".sce"
_PATH_SEPARATORS = ("/", "\\")
_TEMP_PREFIX = ".part-"


def safe_name(name: str) -> str:
    """Return ``name`` with path-separator characters replaced by ``-``."""
    for separator in _PATH_SEPARATORS:
        name = name.replace(separator, "-")
    return name


def artifact_filename(name: str) -> str:
    """Artifact filename for a diagram name."""
    return f"{safe_name(name)}{ARTIFACT_SUFFIX}"


def atomic_write_bytes(dest_path: Path, data: bytes) -> int:
    """Write ``data`` to ``dest_path`` atomically.

    Uses a temporary file in the destination directory, fsyncs it, then
    renames it over ``dest_path`` with :func:`os.replace`. The temporary file
    is removed on any failure.

    Returns:
        Number of bytes written.

    Raises:
        OSError: If file I/O fails (permission denied, disk full, etc.).
    """
    dest_dir = dest_path.parent
    dest_dir.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=dest_dir, prefix=_TEMP_PREFIX, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, dest_path)

        o_directory = getattr(os, "O_DIRECTORY", None)
        if o_directory is not None:
            dir_fd = os.open(dest_dir, o_directory)
            try:
                os.fsync(dir_fd)
            finally:
                os.close(dir_fd)

        return len(data)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


@dataclass(frozen=True)
class CompletedSet:
    """Diagrams recovered from a previous run's artifacts, keyed by file stem."""

    by_name: Mapping[str, Diagram] = field(default_factory=dict)

    @property
    def names(self) -> FrozenSet[str]:
        return frozenset(self.by_name)

    @property
    def diagrams(self) -> Tuple[Diagram, ...]:
        return tuple(self.by_name.values())

    def get(self, name: str) -> Optional[Diagram]:
        """Recovered diagram for a record name (matched through :func:`safe_name`)."""
        return self.by_name.get(safe_name(name))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and safe_name(name) in self.by_name

    def __len__(self) -> int:
        return len(self.by_name)


class CompletionStore:
    """Reads and writes converted artifacts under ``output_dir``."""

    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir)

    def ensure_directory(self) -> Path:
        """Create the output directory if needed.

        Raises:
            FilesystemError: If the path cannot be created or is not a directory.
        """
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(
                f"Cannot create output directory {self.output_dir}: {exc}", path=self.output_dir
            ) from exc
        return self.output_dir

    def artifact_path(self, name: str) -> Path:
        return self.output_dir / artifact_filename(name)

    def scan(self) -> CompletedSet:
        """Return the names and payloads of every artifact already on disk.

        A missing directory is created and yields an empty set.

        Raises:
            FilesystemError: If the directory cannot be created, listed or read.
        """
        self.ensure_directory()

        recovered: Dict[str, Diagram] = {}
        try:
            entries = sorted(self.output_dir.iterdir())
        except OSError as exc:
            raise FilesystemError(
                f"Cannot list output directory {self.output_dir}: {exc}", path=self.output_dir
            ) from exc

        for entry in entries:
            if entry.name.startswith(_TEMP_PREFIX) or not entry.name.endswith(ARTIFACT_SUFFIX):
                continue
            if not entry.is_file():
                continue
            stem = entry.name[: -len(ARTIFACT_SUFFIX)]
            if not stem.strip():
                logger.warning("Ignoring artifact with empty name: %s", entry)
                continue
            try:
                payload = entry.read_bytes()
            except OSError as exc:
                raise FilesystemError(f"Cannot read artifact {entry}: {exc}", path=entry) from exc
            recovered[stem] = Diagram(name=stem, payload=payload)

        logger.info(
            "Found %d converted artifact(s) in %s",
            len(recovered),
            self.output_dir,
            extra={"extra_fields": {"completed": len(recovered), "output_dir": str(self.output_dir)}},
        )
        return CompletedSet(by_name=recovered)

    def write(self, diagram: Diagram) -> Path:
        """Checkpoint a converted diagram.

        Raises:
            FilesystemError: If the artifact cannot be written.
        """
        path = self.artifact_path(diagram.name)
        try:
            atomic_write_bytes(path, diagram.payload)
        except OSError as exc:
            raise FilesystemError(f"Cannot write artifact {path}: {exc}", path=path) from exc
        logger.debug("Wrote artifact %s (%d bytes)", path, len(diagram.payload))
        return path

    @staticmethod
    def partition(
        diagrams: Iterable[Diagram], completed: CompletedSet
    ) -> Tuple[List[Diagram], List[Diagram]]:
        """Split record ``diagrams`` into (recovered artifacts, still to convert).

        The first list holds the recovered Diagrams (artifact payloads), not
        the raw records, so they can be uploaded as-is.
        """
        done: List[Diagram] = []
        pending: List[Diagram] = []
        for diagram in diagrams:
            recovered = completed.get(diagram.name)
            if recovered is None:
                pending.append(diagram)
            else:
                done.append(recovered)
        return done, pending
