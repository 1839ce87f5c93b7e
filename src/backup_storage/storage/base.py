from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Optional, Protocol

from ..package import Chunk, Package

if TYPE_CHECKING:
    from ..manifest import ManifestEntry


class TransferStrategy(str, Enum):
    MOVE = "move"
    COPY = "copy"


class StorageError(Exception):
    """Base class for storage failures; always names the affected artifact."""

    def __init__(self, storage_name: str, package: Package, destination: str, detail: str) -> None:
        self.storage_name = storage_name
        self.trigger = package.trigger
        self.label = package.label
        self.destination = destination
        self.detail = detail
        super().__init__(self._render())

    def _render(self) -> str:
        return (
            f"{self.storage_name}: {self.detail}\n"
            f"  Backup '{self.label}' ({self.trigger}) at '{self.destination}'"
        )


class TransferError(StorageError):
    """Raised when delivering a package fails, or issued as a copy-fallback warning."""

    def __init__(
        self,
        storage_name: str,
        package: Package,
        destination: str,
        detail: str,
        fatal: bool = True,
    ) -> None:
        self.fatal = fatal
        super().__init__(storage_name, package, destination, detail)

    @classmethod
    def copy_fallback(cls, storage_name: str, package: Package, destination: str) -> "TransferError":
        return cls(storage_name, package, destination, "File Copy Warning!", fatal=False)

    def _render(self) -> str:
        if self.fatal:
            return super()._render()
        return (
            f"{self.storage_name}: {self.detail}\n"
            f"  The final backup file(s) for '{self.label}' ({self.trigger})\n"
            f"  will be *copied* to '{self.destination}'\n"
            f"  To avoid this, when using more than one Storage, the Storage that should\n"
            f"  keep nothing in staging (usually 'Local') should be added *last*\n"
            f"  so the files may be *moved* to their destination."
        )


class RemovalError(StorageError):
    """Raised when a previously delivered package cannot be removed."""


class StorageBackend(Protocol):
    storage_name: str

    def remote_address_for(self, package: Package) -> str:
        ...

    def transfer(self, package: Package, strategy: TransferStrategy) -> None:
        ...

    def remove(self, package: Package) -> None:
        ...

    def list_entries(self, trigger: str) -> List["ManifestEntry"]:
        ...


def storage_name_for(kind: str, storage_id: Optional[str]) -> str:
    return f"{kind} ({storage_id})" if storage_id else kind


def log_transfer_started(log: logging.Logger, storage_name: str, chunk: Chunk) -> None:
    log.info("%s started transferring '%s'.", storage_name, chunk.source_name)


def log_removal_started(log: logging.Logger, storage_name: str, chunks: Iterable[Chunk]) -> None:
    lines = [f"{storage_name} started removing '{chunk.source_name}'." for chunk in chunks]
    log.info("\n".join(lines))
