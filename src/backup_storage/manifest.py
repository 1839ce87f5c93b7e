from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .package import Package, format_timestamp, staged_name


@dataclass(frozen=True)
class ManifestEntry:
    """A package previously delivered to a destination, as found by listing it."""

    trigger: str
    time: datetime
    location: str
    filenames: Tuple[str, ...] = ()

    @property
    def timestamp(self) -> str:
        return format_timestamp(self.time)

    def as_package(self, label: str) -> Package:
        # Listings only know destination names; staged names are derived from them.
        # An emptied destination still needs one placeholder chunk to be removable.
        filenames = self.filenames or (self.trigger,)
        return Package.from_pairs(
            trigger=self.trigger,
            label=label,
            time=self.time,
            pairs=[(Path(staged_name(self.timestamp, name)), name) for name in filenames],
        )


@dataclass
class StorageReport:
    storage_name: str
    destination: str
    strategy: str
    state: str
    required: bool = True
    removed: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: str = ""

    def to_dict(self) -> Dict:
        return {
            "storage_name": self.storage_name,
            "destination": self.destination,
            "strategy": self.strategy,
            "state": self.state,
            "required": self.required,
            "removed": list(self.removed),
            "warnings": list(self.warnings),
            "error": self.error,
        }


@dataclass
class RunReport:
    trigger: str
    label: str
    timestamp: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: str = "success"
    storages: List[StorageReport] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    schema_version: str = "1.0.0"

    @property
    def success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict:
        return {
            "schema_version": self.schema_version,
            "trigger": self.trigger,
            "label": self.label,
            "timestamp": self.timestamp,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "status": self.status,
            "storages": [storage.to_dict() for storage in self.storages],
            "errors": self.errors,
            "warnings": self.warnings,
        }

    def write(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, indent=2)
