from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Sequence

from .manifest import ManifestEntry
from .package import Package
from .storage.base import RemovalError

if TYPE_CHECKING:
    from .coordinator import StorageInstance

LOG = logging.getLogger(__name__)


@dataclass
class CycleResult:
    removed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def select_expired(entries: Sequence[ManifestEntry], keep: int) -> List[ManifestEntry]:
    """Return the oldest entries that exceed ``keep``, oldest first."""
    ordered = sorted(entries, key=lambda entry: entry.time)
    excess = len(ordered) - keep
    if excess <= 0:
        return []
    return ordered[:excess]


class RetentionManager:
    """Removes the oldest backups at a destination once more than ``keep`` exist."""

    def cycle(self, instance: "StorageInstance", package: Package) -> CycleResult:
        result = CycleResult()
        backend = instance.backend
        keep = instance.keep
        if keep is None:
            LOG.debug("%s has no retention limit; skipping cycle", backend.storage_name)
            return result

        try:
            entries = backend.list_entries(package.trigger)
        except Exception as exc:  # noqa: BLE001
            message = (
                f"{backend.storage_name}: Failed to list backups for cycling: {exc}\n"
                f"  Backup '{package.label}' ({package.trigger}) at '{backend.remote_address_for(package)}'"
            )
            LOG.warning(message)
            result.errors.append(message)
            return result

        expired = select_expired(entries, keep)
        LOG.debug(
            "%s holds %d backup(s) of %s; keeping %d, removing %d",
            backend.storage_name,
            len(entries),
            package.trigger,
            keep,
            len(expired),
        )

        for entry in expired:
            LOG.info(
                "%s cycling out backup '%s' (%s) from '%s'.",
                backend.storage_name,
                package.label,
                entry.timestamp,
                entry.location,
            )
            expired_package = entry.as_package(package.label)
            try:
                backend.remove(expired_package)
            except RemovalError as exc:
                self._record_failure(result, exc)
                continue
            except Exception as exc:  # noqa: BLE001
                self._record_failure(
                    result,
                    RemovalError(backend.storage_name, expired_package, entry.location, f"Unexpected error: {exc}"),
                )
                continue
            result.removed.append(entry.location)

        return result

    @staticmethod
    def _record_failure(result: CycleResult, error: RemovalError) -> None:
        LOG.warning("%s", error)
        result.errors.append(str(error))
