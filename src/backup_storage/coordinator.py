from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .config import StorageConfig
from .manifest import RunReport, StorageReport
from .package import Package
from .retention import RetentionManager
from .storage import StorageBackend, TransferError, TransferStrategy, build_storage_backend

LOG = logging.getLogger(__name__)

BackendFactory = Callable[[StorageConfig], StorageBackend]


class InstanceState(str, Enum):
    STAGED = "staged"
    TRANSFERRING = "transferring"
    TRANSFERRED = "transferred"
    TRANSFER_FAILED = "transfer_failed"
    CYCLING = "cycling"
    CYCLED = "cycled"


def resolve_transfer_strategy(ordinal: int, total: int) -> TransferStrategy:
    """Only the last storage of a run may move staged files; earlier ones must copy."""
    if ordinal == total - 1:
        return TransferStrategy.MOVE
    return TransferStrategy.COPY


@dataclass
class StorageInstance:
    """A configured storage bound to its position among the run's storages."""

    backend: StorageBackend
    config: StorageConfig
    ordinal: int
    total: int
    strategy: TransferStrategy = field(init=False)
    state: InstanceState = field(default=InstanceState.STAGED, init=False)

    def __post_init__(self) -> None:
        if not 0 <= self.ordinal < self.total:
            raise ValueError(f"Storage position {self.ordinal} out of range for {self.total} storage(s)")
        self.strategy = resolve_transfer_strategy(self.ordinal, self.total)

    @property
    def storage_name(self) -> str:
        return self.backend.storage_name

    @property
    def keep(self) -> Optional[int]:
        return self.config.keep

    @property
    def required(self) -> bool:
        return self.config.required


class TransferCoordinator:
    """Delivers one package to every storage instance of a run, in configured order."""

    def __init__(
        self,
        instances: Sequence[StorageInstance],
        retention: Optional[RetentionManager] = None,
    ) -> None:
        self._instances = list(instances)
        self._retention = retention or RetentionManager()

    @classmethod
    def from_configs(
        cls,
        configs: Sequence[StorageConfig],
        backend_factory: BackendFactory = build_storage_backend,
        retention: Optional[RetentionManager] = None,
    ) -> "TransferCoordinator":
        total = len(configs)
        instances = [
            StorageInstance(backend=backend_factory(config), config=config, ordinal=ordinal, total=total)
            for ordinal, config in enumerate(configs)
        ]
        return cls(instances, retention=retention)

    @property
    def instances(self) -> List[StorageInstance]:
        return list(self._instances)

    def run(self, package: Package) -> RunReport:
        report = RunReport(
            trigger=package.trigger,
            label=package.label,
            timestamp=package.timestamp,
            started_at=datetime.utcnow(),
        )

        # Order matters: the final instance moves the chunks earlier instances copied.
        for instance in self._instances:
            storage_report = self.deliver(instance, package)
            report.storages.append(storage_report)
            report.warnings.extend(storage_report.warnings)
            if instance.state is InstanceState.TRANSFER_FAILED:
                if instance.required:
                    report.errors.append(storage_report.error)
                else:
                    report.warnings.append(storage_report.error)

        report.status = "failed" if report.errors else "success"
        report.completed_at = datetime.utcnow()
        return report

    def deliver(self, instance: StorageInstance, package: Package) -> StorageReport:
        backend = instance.backend
        destination = backend.remote_address_for(package)
        storage_report = StorageReport(
            storage_name=instance.storage_name,
            destination=destination,
            strategy=instance.strategy.value,
            state=instance.state.value,
            required=instance.required,
        )

        instance.state = InstanceState.TRANSFERRING
        if instance.strategy is TransferStrategy.COPY:
            warning = TransferError.copy_fallback(instance.storage_name, package, destination)
            LOG.warning("%s", warning)
            storage_report.warnings.append(str(warning))

        try:
            missing = package.missing_chunks()
            if missing:
                raise TransferError(
                    instance.storage_name,
                    package,
                    destination,
                    "Staged chunk(s) missing: " + ", ".join(chunk.source_name for chunk in missing),
                )
            backend.transfer(package, instance.strategy)
        except TransferError as exc:
            self._fail(instance, storage_report, exc)
            return storage_report
        except Exception as exc:  # noqa: BLE001
            LOG.debug("Traceback:\n%s", traceback.format_exc())
            self._fail(
                instance,
                storage_report,
                TransferError(instance.storage_name, package, destination, f"Unexpected error: {exc}"),
            )
            return storage_report

        instance.state = InstanceState.TRANSFERRED
        LOG.info(
            "%s delivered '%s' (%s) to '%s'.",
            instance.storage_name,
            package.label,
            package.trigger,
            destination,
        )

        instance.state = InstanceState.CYCLING
        cycle = self._retention.cycle(instance, package)
        storage_report.removed.extend(cycle.removed)
        storage_report.warnings.extend(cycle.errors)
        instance.state = InstanceState.CYCLED
        storage_report.state = instance.state.value
        return storage_report

    @staticmethod
    def _fail(instance: StorageInstance, storage_report: StorageReport, error: TransferError) -> None:
        instance.state = InstanceState.TRANSFER_FAILED
        storage_report.state = instance.state.value
        storage_report.error = str(error)
        if instance.required:
            LOG.error("%s", error)
        else:
            LOG.warning("%s", error)
