"""
Canonical API Types for the Diagram Migration Pipeline

Provides frozen, immutable dataclasses as contracts between the record
source, completion store, converter, uploader and orchestrator.

Data Flow:
  RecordSource.load_records() → Diagram[] (raw form)
  CompletionStore.scan() → CompletedSet (recovered form)
  Converter.convert_all(Diagram[], BearerToken) → Diagram[] (converted form)
  Uploader.upload_all(Diagram[], Credentials) → PhaseReport
  Orchestrator aggregates PhaseReports into a RunReport

Design Principles:
  - Frozen dataclasses prevent accidental mutation
  - Authentication values are explicit and passed to every call
  - Payload bytes and secrets are kept out of repr()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

# ============================================================================
# STABLE TOKEN VOCABULARIES (Public Contract)
# ============================================================================

#: Pipeline phase that emitted an event or produced a report
Phase = Literal["convert", "upload"]

#: Progress event kinds emitted by workers
EventKind = Literal["started", "dispatched", "completed", "finished"]

#: When a phase's progress bar advances
ProgressPolicy = Literal["completion", "dispatch"]


# ============================================================================
# CORE API PAYLOADS
# ============================================================================


@dataclass(frozen=True, slots=True)
class Diagram:
    """
    A named diagram blob.

    The same type carries the legacy encoding (from the record source), the
    recovered encoding (read back from a prior run's artifact) and the
    modernized encoding (returned by the conversion API). Stages never mutate
    a Diagram; they produce a new one.
    """

    name: str
    """Identifier derived from the record; dedup key and artifact file stem."""

    payload: bytes = field(repr=False)
    """Opaque binary content."""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Diagram.name cannot be empty")

    def with_payload(self, payload: bytes) -> Diagram:
        """Return a new Diagram with the same name and ``payload``."""
        return Diagram(name=self.name, payload=payload)


@dataclass(frozen=True, slots=True)
class Credentials:
    """Username/password pair for the vendor API or the target application."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class BearerToken:
    """Vendor API token produced once by the login step."""

    value: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("BearerToken.value cannot be empty")

    def headers(self) -> Dict[str, str]:
        """Authorization header carrying this token."""
        return {"Authorization": f"Bearer {self.value}"}


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """
    Captured browser session state (cookies and storage).

    Written to ``state_path`` after login and used read-only to seed every
    upload browsing context.
    """

    state_path: Path
    storage_state: Mapping[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Event emitted by converter and uploader workers."""

    phase: Phase
    kind: EventKind
    name: Optional[str] = None
    ok: Optional[bool] = None
    total: Optional[int] = None


# ============================================================================
# OUTCOME AGGREGATION
# ============================================================================


@dataclass
class PhaseReport:
    """Per-diagram outcomes of one pipeline phase."""

    phase: Phase
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def record_success(self, name: str) -> None:
        self.succeeded.append(name)

    def record_failure(self, name: str, error: BaseException | str) -> None:
        self.failed[name] = str(error)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed
