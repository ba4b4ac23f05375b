"""Content-routed restore of Pages snapshots onto appliances and clusters.

Usage:
    from pages_restore import PagesRestore, load_config

    result = PagesRestore(load_config(), "ghe.example.com").run()
"""

from pages_restore.config import RestoreConfig, load_config
from pages_restore.errors import (
    ConfigurationError,
    PagesRestoreError,
    TransferError,
    TransportError,
)
from pages_restore.pipeline import (
    PagesRestore,
    RestoreComponents,
    RestorePhase,
    RestoreResult,
    RestoreStatus,
)

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "PagesRestore",
    "PagesRestoreError",
    "RestoreComponents",
    "RestoreConfig",
    "RestorePhase",
    "RestoreResult",
    "RestoreStatus",
    "TransferError",
    "TransportError",
    "load_config",
]
