from __future__ import annotations

from ..config import LocalStorageConfig, S3StorageConfig, SFTPStorageConfig, StorageConfig
from .base import (
    RemovalError,
    StorageBackend,
    StorageError,
    TransferError,
    TransferStrategy,
)
from .local import LocalStorage
from .s3 import S3Storage
from .sftp import SFTPStorage


def build_storage_backend(config: StorageConfig) -> StorageBackend:
    if isinstance(config, LocalStorageConfig):
        return LocalStorage(path=config.path, storage_id=config.storage_id)
    if isinstance(config, S3StorageConfig):
        return S3Storage(
            bucket=config.bucket,
            path=config.path,
            region=config.region,
            access_key=config.access_key.resolve() if config.access_key else None,
            secret_key=config.secret_key.resolve() if config.secret_key else None,
            endpoint_url=config.endpoint_url,
            storage_id=config.storage_id,
        )
    if isinstance(config, SFTPStorageConfig):
        return SFTPStorage(
            host=config.host,
            port=config.port,
            username=config.username,
            password=config.password.resolve() if config.password else None,
            private_key_path=config.private_key_path,
            path=config.path,
            storage_id=config.storage_id,
        )
    raise ValueError(f"Unsupported storage type '{getattr(config, 'type', config)}'")


__all__ = [
    "LocalStorage",
    "RemovalError",
    "S3Storage",
    "SFTPStorage",
    "StorageBackend",
    "StorageError",
    "TransferError",
    "TransferStrategy",
    "build_storage_backend",
]
