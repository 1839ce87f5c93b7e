"""
Shared pytest fixtures for backup-storage tests.

This module provides fixtures for:
- A staging directory and a helper that stages chunk files into it
- A staged two-chunk package
- Storage configuration builders
- Fake AWS credentials for moto
"""

from datetime import datetime

import pytest

from backup_storage.config import LocalStorageConfig
from backup_storage.package import Package


PACKAGE_TIME = datetime(2011, 12, 31, 11, 0, 2)
CHUNK_NAMES = ("backup.tar.enc-aa", "backup.tar.enc-ab")


@pytest.fixture
def package_time():
    """Timestamp of the staged package: 2011.12.31.11.00.02."""
    return PACKAGE_TIME


@pytest.fixture
def staging_dir(tmp_path):
    """Empty staging directory."""
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def stage(staging_dir):
    """
    Stage chunk files following the ``<timestamp>.<name>`` convention.

    Returns the list of staged paths.
    """

    def _stage(names=CHUNK_NAMES, time=PACKAGE_TIME, content=b"chunk data"):
        timestamp = time.strftime("%Y.%m.%d.%H.%M.%S")
        paths = []
        for name in names:
            path = staging_dir / f"{timestamp}.{name}"
            path.write_bytes(content + b":" + name.encode())
            paths.append(path)
        return paths

    return _stage


@pytest.fixture
def staged_package(stage, staging_dir):
    """
    Package with two chunks staged on disk.

    Staged as:
    - 2011.12.31.11.00.02.backup.tar.enc-aa
    - 2011.12.31.11.00.02.backup.tar.enc-ab
    """
    stage()
    return Package.from_staging(staging_dir, trigger="backup", label="test label", time=PACKAGE_TIME)


@pytest.fixture
def local_config(tmp_path):
    """Factory for local storage configs rooted under tmp_path."""

    def _build(name="local", keep=None, storage_id=None, required=True):
        return LocalStorageConfig(
            type="local",
            path=tmp_path / name,
            keep=keep,
            storage_id=storage_id,
            required=required,
        )

    return _build


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never looks for real ones."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.delenv("AWS_PROFILE", raising=False)
