from __future__ import annotations

import logging
import posixpath
import stat
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import paramiko
from paramiko import AutoAddPolicy, SFTPClient, SSHClient

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

DEFAULT_PORT = 22
DEFAULT_PATH = "backups"
CONNECT_TIMEOUT = 30

SFTP_ERRORS = (paramiko.SSHException, OSError)


class SFTPStorage:
    """Stores packages on a remote host over SFTP.

    Relative paths are resolved against the login directory of ``username``.
    """

    kind = "SFTP"

    def __init__(
        self,
        host: str,
        username: str,
        password: Optional[str] = None,
        private_key_path: Optional[Path] = None,
        port: int = DEFAULT_PORT,
        path: str = DEFAULT_PATH,
        storage_id: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.private_key_path = private_key_path
        self.path = path.rstrip("/") or "/"
        self.storage_id = storage_id
        self.storage_name = storage_name_for(self.kind, storage_id)

    def remote_address_for(self, package: Package) -> str:
        return posixpath.join(self.path, package.trigger, package.timestamp)

    def transfer(self, package: Package, strategy: TransferStrategy) -> None:
        destination = self.remote_address_for(package)
        try:
            with self._connect() as sftp:
                _mkdir_p(sftp, destination)
                for chunk in package.chunks:
                    log_transfer_started(LOG, self.storage_name, chunk)
                    sftp.put(str(chunk.source_path), posixpath.join(destination, chunk.destination_filename))
                    if strategy is TransferStrategy.MOVE:
                        chunk.source_path.unlink()
        except SFTP_ERRORS as exc:
            raise TransferError(
                self.storage_name, package, f"{self.host}:{destination}", f"SFTP transfer failed: {exc}"
            ) from exc

    def remove(self, package: Package) -> None:
        destination = self.remote_address_for(package)
        log_removal_started(LOG, self.storage_name, package.chunks)
        try:
            with self._connect() as sftp:
                try:
                    sftp.stat(destination)
                except FileNotFoundError:
                    LOG.debug("%s destination %s:%s already absent", self.storage_name, self.host, destination)
                    return
                _rmtree(sftp, destination)
        except SFTP_ERRORS as exc:
            raise RemovalError(
                self.storage_name, package, f"{self.host}:{destination}", f"Failed to remove backup: {exc}"
            ) from exc

    def list_entries(self, trigger: str) -> List[ManifestEntry]:
        trigger_root = posixpath.join(self.path, trigger)
        entries: List[ManifestEntry] = []
        with self._connect() as sftp:
            try:
                children = sftp.listdir_attr(trigger_root)
            except FileNotFoundError:
                return []

            for attr in children:
                if not stat.S_ISDIR(attr.st_mode or 0):
                    continue
                time = parse_timestamp(attr.filename)
                if time is None:
                    LOG.debug("Skipping non-backup directory %s/%s", trigger_root, attr.filename)
                    continue
                location = posixpath.join(trigger_root, attr.filename)
                filenames = tuple(
                    sorted(item.filename for item in sftp.listdir_attr(location) if stat.S_ISREG(item.st_mode or 0))
                )
                entries.append(
                    ManifestEntry(trigger=trigger, time=time, location=f"{self.host}:{location}", filenames=filenames)
                )

        entries.sort(key=lambda entry: entry.time)
        return entries

    @contextmanager
    def _connect(self) -> Iterator[SFTPClient]:
        ssh = SSHClient()
        ssh.set_missing_host_key_policy(AutoAddPolicy())

        connect_kwargs: Dict[str, Any] = {
            "hostname": self.host,
            "port": self.port,
            "username": self.username,
            "timeout": CONNECT_TIMEOUT,
        }
        if self.password:
            connect_kwargs["password"] = self.password
        elif self.private_key_path:
            connect_kwargs["key_filename"] = str(Path(self.private_key_path).expanduser())

        try:
            ssh.connect(**connect_kwargs)
            sftp = ssh.open_sftp()
            try:
                yield sftp
            finally:
                sftp.close()
        finally:
            ssh.close()


def _mkdir_p(sftp: SFTPClient, path: str) -> None:
    current = "/" if path.startswith("/") else ""
    for part in path.strip("/").split("/"):
        current = posixpath.join(current, part) if current else part
        try:
            sftp.stat(current)
        except FileNotFoundError:
            sftp.mkdir(current)


def _rmtree(sftp: SFTPClient, path: str) -> None:
    for attr in sftp.listdir_attr(path):
        child = posixpath.join(path, attr.filename)
        if stat.S_ISDIR(attr.st_mode or 0):
            _rmtree(sftp, child)
        else:
            sftp.remove(child)
    sftp.rmdir(path)
