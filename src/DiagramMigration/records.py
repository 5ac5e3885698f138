# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration.records",
#   "purpose": "Record source reading legacy diagrams from DataSet XML files",
#   "sections": [
#     {"id": "recordsource", "name": "RecordSource", "anchor": "class-recordsource", "kind": "class"},
#     {"id": "derive-name", "name": "derive_name", "anchor": "function-derive-name", "kind": "function"},
#     {"id": "decode-payload", "name": "decode_payload", "anchor": "function-decode-payload", "kind": "function"},
#     {"id": "datasetrecordsource", "name": "DataSetRecordSource", "anchor": "class-datasetrecordsource", "kind": "class"}
#   ]
# }
# === /NAVMAP ===
"""Record source reading legacy diagrams from DataSet XML files.

The input is an ADO.NET ``DataSet.WriteXml`` export: one element per table
row (``DEPICTION_TB`` by default) whose children carry the row's columns.
The export may embed an inline ``xs:schema`` and may place rows in a
namespace; both are tolerated by matching on local element names only.

Name derivation is the resumability key, so it is a pure function of the
row: the short-name field stripped of surrounding whitespace, or the fallback
field when the short name is empty.
"""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path
from typing import List, Optional, Protocol
from xml.etree import ElementTree as ET

from DiagramMigration.api import Diagram
from DiagramMigration.config import RecordsConfig
from DiagramMigration.errors import RecordLoadError

__all__ = ["RecordSource", "DataSetRecordSource", "derive_name", "decode_payload"]

logger = logging.getLogger(__name__)


class RecordSource(Protocol):
    """Anything that can produce the raw diagram list for a run."""

    def load_records(self, path: Path) -> List[Diagram]: ...


def _local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _child_text(row: ET.Element, field_name: str) -> Optional[str]:
    for child in row:
        if _local_name(child.tag) == field_name:
            return child.text or ""
    return None


def derive_name(primary: Optional[str], fallback: Optional[str]) -> Optional[str]:
    """Return the diagram name for a row, or None when both fields are empty."""
    name = (primary or "").strip()
    if name:
        return name
    name = (fallback or "").strip()
    return name or None


def decode_payload(text: str) -> bytes:
    """Decode a base64 column value, ignoring embedded whitespace and line breaks."""
    compact = "".join(text.split())
    return base64.b64decode(compact, validate=True)


class DataSetRecordSource:
    """Loads diagrams from a DataSet XML export."""

    def __init__(
        self,
        *,
        table: str = "DEPICTION_TB",
        name_field: str = "SHORT_NAME",
        fallback_field: str = "DESCRIPTION",
        payload_field: str = "DIAGRAM",
    ) -> None:
        self.table = table
        self.name_field = name_field
        self.fallback_field = fallback_field
        self.payload_field = payload_field

    @classmethod
    def from_config(cls, cfg: RecordsConfig) -> DataSetRecordSource:
        return cls(
            table=cfg.table,
            name_field=cfg.name_field,
            fallback_field=cfg.fallback_field,
            payload_field=cfg.payload_field,
        )

    def load_records(self, path: Path) -> List[Diagram]:
        """Parse ``path`` and return its rows as Diagrams in document order.

        Raises:
            RecordLoadError: If the file is missing or unparseable, or a row has
                no usable name or a missing/invalid payload.
        """
        path = Path(path)
        if not path.is_file():
            raise RecordLoadError(f"Input dataset not found: {path}", path=path)

        try:
            tree = ET.parse(path)
        except ET.ParseError as exc:
            raise RecordLoadError(f"Invalid XML in {path}: {exc}", path=path) from exc
        except OSError as exc:
            raise RecordLoadError(f"Cannot read {path}: {exc}", path=path) from exc

        rows = [el for el in tree.getroot().iter() if _local_name(el.tag) == self.table]
        diagrams = [self._to_diagram(row, index, path) for index, row in enumerate(rows, 1)]
        logger.info(
            "Loaded %d diagram record(s) from %s",
            len(diagrams),
            path,
            extra={"extra_fields": {"records": len(diagrams), "input": str(path)}},
        )
        return diagrams

    def _to_diagram(self, row: ET.Element, index: int, path: Path) -> Diagram:
        name = derive_name(
            _child_text(row, self.name_field),
            _child_text(row, self.fallback_field),
        )
        if name is None:
            raise RecordLoadError(
                f"Record {index} has neither {self.name_field} nor {self.fallback_field}",
                path=path,
                record_index=index,
            )

        encoded = _child_text(row, self.payload_field)
        if encoded is None:
            raise RecordLoadError(
                f"Record {index} ({name!r}) has no {self.payload_field} field",
                path=path,
                record_index=index,
            )
        try:
            payload = decode_payload(encoded)
        except (binascii.Error, ValueError) as exc:
            raise RecordLoadError(
                f"Record {index} ({name!r}) has an invalid base64 payload: {exc}",
                path=path,
                record_index=index,
            ) from exc

        return Diagram(name=name, payload=payload)
