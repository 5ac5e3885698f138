# === NAVMAP v1 ===
# {
#   "module": "DiagramMigration",
#   "purpose": "Package initialization for DiagramMigration",
#   "sections": [
#     {
#       "id": "getattr",
#       "name": "__getattr__",
#       "anchor": "function-getattr",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Public API for the legacy diagram migration pipeline.

Reads legacy diagrams from a DataSet XML export, converts them through the
vendor modernize API with resumable checkpoints, and uploads the results to
the target application through its web form.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict

__version__ = "1.0.0"

_EXPORTS: Dict[str, str] = {
    "Diagram": "DiagramMigration.api",
    "MigrationConfig": "DiagramMigration.config",
    "load_config": "DiagramMigration.config",
    "MigrationError": "DiagramMigration.errors",
    "MigrationPipeline": "DiagramMigration.pipeline",
    "run_migration": "DiagramMigration.pipeline",
    "RunReport": "DiagramMigration.summary",
}

__all__ = [*_EXPORTS, "__version__"]


def __getattr__(name: str) -> Any:
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'DiagramMigration' has no attribute {name!r}")
    return getattr(import_module(module_name), name)
