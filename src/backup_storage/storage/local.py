from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Optional, Union

from ..manifest import ManifestEntry
from ..package import Package, parse_timestamp
from .base import (
    RemovalError,
    TransferError,
    TransferStrategy,
    log_removal_started,
    log_transfer_started,
    storage_name_for,
)

LOG = logging.getLogger(__name__)

DEFAULT_PATH = "~/backups"


class LocalStorage:
    """Stores packages under a directory on a locally mounted filesystem."""

    kind = "Local"

    def __init__(self, path: Union[str, Path] = DEFAULT_PATH, storage_id: Optional[str] = None) -> None:
        self.path = Path(path).expanduser().absolute()
        self.storage_id = storage_id
        self.storage_name = storage_name_for(self.kind, storage_id)

    def remote_address_for(self, package: Package) -> str:
        return str(self.path / package.trigger / package.timestamp)

    def transfer(self, package: Package, strategy: TransferStrategy) -> None:
        destination = Path(self.remote_address_for(package))
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TransferError(
                self.storage_name, package, str(destination), f"Could not create destination: {exc}"
            ) from exc

        for chunk in package.chunks:
            log_transfer_started(LOG, self.storage_name, chunk)
            target = destination / chunk.destination_filename
            try:
                if strategy is TransferStrategy.MOVE:
                    shutil.move(str(chunk.source_path), str(target))
                else:
                    shutil.copy2(str(chunk.source_path), str(target))
            except OSError as exc:
                raise TransferError(
                    self.storage_name,
                    package,
                    str(destination),
                    f"Failed to {strategy.value} '{chunk.source_name}': {exc}",
                ) from exc

    def remove(self, package: Package) -> None:
        destination = Path(self.remote_address_for(package))
        log_removal_started(LOG, self.storage_name, package.chunks)

        if not destination.exists():
            LOG.debug("%s destination %s already absent", self.storage_name, destination)
            return

        try:
            shutil.rmtree(destination)
        except OSError as exc:
            raise RemovalError(
                self.storage_name, package, str(destination), f"Failed to remove backup: {exc}"
            ) from exc

    def list_entries(self, trigger: str) -> List[ManifestEntry]:
        trigger_root = self.path / trigger
        if not trigger_root.is_dir():
            return []

        entries: List[ManifestEntry] = []
        for child in trigger_root.iterdir():
            if not child.is_dir():
                continue
            time = parse_timestamp(child.name)
            if time is None:
                LOG.debug("Skipping non-backup directory %s", child)
                continue
            filenames = tuple(sorted(item.name for item in child.iterdir() if item.is_file()))
            entries.append(ManifestEntry(trigger=trigger, time=time, location=str(child), filenames=filenames))

        entries.sort(key=lambda entry: entry.time)
        return entries
