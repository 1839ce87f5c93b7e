"""Storage transfer and retention for staged backup packages."""

from __future__ import annotations

from .config import load_config, CoreConfig  # noqa: F401
from .coordinator import StorageInstance, TransferCoordinator  # noqa: F401
from .orchestrator import BackupOrchestrator  # noqa: F401
from .package import Chunk, Package  # noqa: F401
from .retention import RetentionManager  # noqa: F401
