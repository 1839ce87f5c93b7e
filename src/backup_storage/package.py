from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

LOG = logging.getLogger(__name__)

TIME_FORMAT = "%Y.%m.%d.%H.%M.%S"


class PackageError(Exception):
    """Raised when a staged package is missing or malformed."""


def format_timestamp(time: datetime) -> str:
    return time.strftime(TIME_FORMAT)


def parse_timestamp(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value, TIME_FORMAT)
    except ValueError:
        return None


def staged_name(timestamp: str, destination_filename: str) -> str:
    return f"{timestamp}.{destination_filename}"


@dataclass(frozen=True)
class Chunk:
    source_path: Path
    destination_filename: str

    @property
    def source_name(self) -> str:
        return self.source_path.name


@dataclass(frozen=True)
class Package:
    """A staged backup: identity plus the ordered chunk files that make it up."""

    trigger: str
    label: str
    time: datetime
    chunks: Tuple[Chunk, ...]

    def __post_init__(self) -> None:
        if not self.chunks:
            raise PackageError(f"Package for '{self.label}' ({self.trigger}) has no chunks")
        names = [chunk.destination_filename for chunk in self.chunks]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise PackageError(
                f"Package for '{self.label}' ({self.trigger}) repeats destination filename(s): "
                + ", ".join(duplicates)
            )

    @property
    def timestamp(self) -> str:
        return format_timestamp(self.time)

    @property
    def filenames(self) -> List[str]:
        return [chunk.destination_filename for chunk in self.chunks]

    def missing_chunks(self) -> List[Chunk]:
        return [chunk for chunk in self.chunks if not chunk.source_path.is_file()]

    @classmethod
    def from_pairs(
        cls,
        trigger: str,
        label: str,
        time: datetime,
        pairs: Iterable[Tuple[Path, str]],
    ) -> "Package":
        chunks = tuple(Chunk(source_path=Path(source), destination_filename=name) for source, name in pairs)
        return cls(trigger=trigger, label=label, time=time, chunks=chunks)

    @classmethod
    def from_staging(
        cls,
        staging_dir: Path,
        trigger: str,
        label: str,
        time: Optional[datetime] = None,
    ) -> "Package":
        """Assemble the package staged as ``<timestamp>.<trigger>*`` in ``staging_dir``.

        When ``time`` is omitted the most recently staged package for the
        trigger is used.
        """
        if time is None:
            time = latest_staged_time(staging_dir, trigger)
            if time is None:
                raise PackageError(f"No staged package found for '{trigger}' in {staging_dir}")

        timestamp = format_timestamp(time)
        prefix = f"{timestamp}."
        staged = sorted(
            path
            for path in staging_dir.glob(f"{prefix}{trigger}*")
            if path.is_file() and _belongs_to_trigger(path.name[len(prefix):], trigger)
        )
        if not staged:
            raise PackageError(f"No staged files for '{trigger}' at {timestamp} in {staging_dir}")

        LOG.debug("Found %d staged chunk(s) for %s at %s", len(staged), trigger, timestamp)
        return cls.from_pairs(
            trigger=trigger,
            label=label,
            time=time,
            pairs=[(path, path.name[len(prefix):]) for path in staged],
        )


def latest_staged_time(staging_dir: Path, trigger: str) -> Optional[datetime]:
    if not staging_dir.is_dir():
        return None

    latest: Optional[datetime] = None
    for path in staging_dir.iterdir():
        if not path.is_file():
            continue
        # timestamps contain exactly five dots: YYYY.mm.dd.HH.MM.SS
        parts = path.name.split(".", 6)
        if len(parts) < 7 or not _belongs_to_trigger(parts[6], trigger):
            continue
        time = parse_timestamp(".".join(parts[:6]))
        if time and (latest is None or time > latest):
            latest = time
    return latest


def _belongs_to_trigger(remainder: str, trigger: str) -> bool:
    # chunk suffixes such as "-aa" follow the extension, never the trigger itself
    return remainder == trigger or remainder.startswith(trigger + ".")
