# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration.api.__init__",
#   "purpose": "Diagram Migration API Surface.",
#   "sections": []
# }
# === /NAVMAP ===

"""
Diagram Migration API Surface

Canonical types shared by the record source, completion store, converter,
uploader and orchestrator:
- Diagram: the only domain entity (name + payload)
- Credentials / BearerToken / SessionSnapshot: explicit authentication values
- ProgressEvent: worker → progress monitor
- PhaseReport: per-diagram outcomes of one phase

Plus stable vocabulary types:
- Phase: "convert" | "upload"
- EventKind: "started" | "dispatched" | "completed" | "finished"
- ProgressPolicy: "completion" | "dispatch"
"""

from .types import (
    BearerToken,
    Credentials,
    Diagram,
    EventKind,
    Phase,
    PhaseReport,
    ProgressEvent,
    ProgressPolicy,
    SessionSnapshot,
)

__all__ = [
    # Core dataclasses
    "Diagram",
    "Credentials",
    "BearerToken",
    "SessionSnapshot",
    "ProgressEvent",
    "PhaseReport",
    # Vocabulary types (Literals)
    "Phase",
    "EventKind",
    "ProgressPolicy",
]
