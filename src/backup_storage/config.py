from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Set, Tuple, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


class ConfigurationError(Exception):
    """Raised when the storage configuration is invalid."""


class SecretRef(BaseModel):
    """Credential looked up when a backend is built, from an environment variable or a file."""

    env: Optional[str] = Field(default=None, description="Environment variable name.")
    file: Optional[Path] = Field(default=None, description="Path to a file containing the secret.")

    @model_validator(mode="after")
    def _require_source(self) -> "SecretRef":
        if not self.env and not self.file:
            raise ValueError("A secret reference needs 'env' or 'file'.")
        return self

    def resolve(self) -> str:
        if self.env and os.getenv(self.env):
            return os.environ[self.env]
        if self.file:
            secret_file = self.file.expanduser()
            if secret_file.is_file():
                return secret_file.read_text(encoding="utf-8").strip()

        sources = []
        if self.env:
            sources.append(f"environment variable {self.env}")
        if self.file:
            sources.append(f"file {self.file}")
        raise ConfigurationError(f"Secret not found in {' or '.join(sources)}")


# --- Storage -----------------------------------------------------------------


class BaseStorageConfig(BaseModel):
    storage_id: Optional[str] = Field(
        default=None, description="Distinguishes several storages of the same type on one model."
    )
    keep: Optional[int] = Field(default=None, ge=0, description="Backups to retain; unlimited when unset.")
    required: bool = Field(default=True, description="Whether a failed transfer fails the whole run.")


class LocalStorageConfig(BaseStorageConfig):
    type: Literal["local"]
    path: Path = Field(default=Path("~/backups"), validate_default=True)

    @field_validator("path")
    def _expand_path(cls, value: Path) -> Path:  # noqa: N805
        return value.expanduser().absolute()


class S3StorageConfig(BaseStorageConfig):
    type: Literal["s3"]
    bucket: str
    path: str = Field(default="", description="Key prefix inside the bucket.")
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    access_key: Optional[SecretRef] = None
    secret_key: Optional[SecretRef] = None


class SFTPStorageConfig(BaseStorageConfig):
    type: Literal["sftp"]
    host: str
    port: int = 22
    username: str
    password: Optional[SecretRef] = None
    private_key_path: Optional[Path] = None
    path: str = Field(default="backups", description="Remote directory, relative to the login directory.")


StorageConfig = Annotated[
    Union[LocalStorageConfig, S3StorageConfig, SFTPStorageConfig],
    Field(discriminator="type"),
]


# --- Models ------------------------------------------------------------------


class ModelConfig(BaseModel):
    trigger: str
    label: str
    storages: List[StorageConfig]

    @field_validator("storages")
    def _require_storages(cls, value: List[StorageConfig]) -> List[StorageConfig]:  # noqa: N805
        if not value:
            raise ValueError("At least one storage must be configured per model.")
        return value

    @model_validator(mode="after")
    def _unique_storage_ids(self) -> "ModelConfig":
        seen: Set[Tuple[str, Optional[str]]] = set()
        for storage in self.storages:
            key = (storage.type, storage.storage_id)
            if key in seen:
                suffix = f" with storage_id '{storage.storage_id}'" if storage.storage_id else " without a storage_id"
                raise ValueError(
                    f"Model '{self.trigger}' configures more than one '{storage.type}' storage{suffix}."
                )
            seen.add(key)
        return self


class CoreConfig(BaseModel):
    staging_path: Path
    log_level: str = "INFO"
    models: List[ModelConfig]

    @field_validator("staging_path")
    def _expand_staging_path(cls, value: Path) -> Path:  # noqa: N805
        return value.expanduser()

    @field_validator("log_level")
    def _normalize_log_level(cls, value: str) -> str:  # noqa: N805
        return value.upper()

    @field_validator("models")
    def _require_models(cls, value: List[ModelConfig]) -> List[ModelConfig]:  # noqa: N805
        if not value:
            raise ValueError("At least one model must be configured.")
        triggers = [model.trigger for model in value]
        duplicates = sorted({trigger for trigger in triggers if triggers.count(trigger) > 1})
        if duplicates:
            raise ValueError(f"Duplicate model trigger(s): {', '.join(duplicates)}")
        return value

    def find_model(self, trigger: str) -> ModelConfig:
        for model in self.models:
            if model.trigger == trigger:
                return model
        raise ConfigurationError(f"Unknown model trigger requested: {trigger}")


def load_config(path: Path) -> CoreConfig:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{path} is not valid YAML: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must hold a mapping with 'staging_path' and 'models'")

    try:
        return CoreConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {path}:\n{exc}") from exc
