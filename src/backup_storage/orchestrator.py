from __future__ import annotations

from datetime import datetime
from typing import Optional

from .config import CoreConfig, ModelConfig
from .coordinator import BackendFactory, TransferCoordinator
from .manifest import RunReport
from .package import Package
from .retention import RetentionManager
from .storage import build_storage_backend


class BackupOrchestrator:
    """Delivers a model's staged package to all of the model's storages."""

    def __init__(
        self,
        config: CoreConfig,
        backend_factory: BackendFactory = build_storage_backend,
        retention: Optional[RetentionManager] = None,
    ) -> None:
        self._config = config
        self._backend_factory = backend_factory
        self._retention = retention

    def run(self, trigger: str, time: Optional[datetime] = None) -> RunReport:
        model = self._config.find_model(trigger)
        package = self.stage_package(model, time)
        coordinator = TransferCoordinator.from_configs(
            model.storages,
            backend_factory=self._backend_factory,
            retention=self._retention,
        )
        return coordinator.run(package)

    def stage_package(self, model: ModelConfig, time: Optional[datetime] = None) -> Package:
        return Package.from_staging(
            staging_dir=self._config.staging_path,
            trigger=model.trigger,
            label=model.label,
            time=time,
        )

