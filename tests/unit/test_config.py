"""
Unit tests for configuration loading (backup_storage/config.py) and the
backend factory (backup_storage/storage/__init__.py).
"""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from backup_storage.config import (
    ConfigurationError,
    LocalStorageConfig,
    S3StorageConfig,
    SecretRef,
    SFTPStorageConfig,
    load_config,
)
from backup_storage.storage import LocalStorage, S3Storage, SFTPStorage, build_storage_backend


def write_config(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def base_config(tmp_path, storages=None):
    return {
        "staging_path": str(tmp_path / "staging"),
        "models": [
            {
                "trigger": "db_backup",
                "label": "Nightly database backup",
                "storages": storages if storages is not None else [{"type": "local", "path": str(tmp_path / "b")}],
            }
        ],
    }


class TestLoadConfig:
    """Test YAML loading and validation."""

    def test_load_valid_config(self, tmp_path):
        path = write_config(
            tmp_path,
            base_config(
                tmp_path,
                [
                    {"type": "s3", "storage_id": "offsite", "bucket": "my-backups", "keep": 30},
                    {"type": "sftp", "host": "nas", "username": "backup", "keep": 10, "required": False},
                    {"type": "local", "path": str(tmp_path / "b"), "keep": 5},
                ],
            ),
        )

        config = load_config(path)

        model = config.find_model("db_backup")
        assert model.label == "Nightly database backup"
        assert [type(storage) for storage in model.storages] == [
            S3StorageConfig,
            SFTPStorageConfig,
            LocalStorageConfig,
        ]
        assert model.storages[0].storage_id == "offsite"
        assert model.storages[1].required is False
        assert model.storages[1].path == "backups"
        assert model.storages[2].keep == 5
        assert config.log_level == "INFO"

    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        path = write_config(tmp_path, base_config(tmp_path, [{"type": "local"}]))

        storage = load_config(path).models[0].storages[0]

        assert storage.path == tmp_path / "backups"
        assert storage.keep is None
        assert storage.storage_id is None
        assert storage.required is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("models: [unclosed\n")

        with pytest.raises(ConfigurationError, match="not valid YAML"):
            load_config(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        with pytest.raises(ConfigurationError, match="must hold a mapping"):
            load_config(path)

    def test_validation_error_names_the_file(self, tmp_path):
        path = write_config(tmp_path, base_config(tmp_path, [{"type": "local", "keep": -1}]))

        with pytest.raises(ConfigurationError, match="Invalid configuration in"):
            load_config(path)

    @pytest.mark.parametrize(
        "storages",
        [
            [],
            [{"type": "local", "keep": -1}],
            [{"type": "ftp", "path": "/x"}],
            [{"type": "s3"}],
            [{"type": "local"}, {"type": "local"}],
            [{"type": "s3", "bucket": "a", "storage_id": "x"}, {"type": "s3", "bucket": "b", "storage_id": "x"}],
        ],
    )
    def test_invalid_storages(self, tmp_path, storages):
        with pytest.raises(ConfigurationError):
            load_config(write_config(tmp_path, base_config(tmp_path, storages)))

    def test_same_type_with_distinct_storage_ids(self, tmp_path):
        storages = [
            {"type": "local", "storage_id": "primary", "path": str(tmp_path / "one")},
            {"type": "local", "storage_id": "secondary", "path": str(tmp_path / "two")},
        ]

        config = load_config(write_config(tmp_path, base_config(tmp_path, storages)))

        assert len(config.models[0].storages) == 2

    def test_duplicate_triggers(self, tmp_path):
        data = base_config(tmp_path)
        data["models"].append(dict(data["models"][0]))

        with pytest.raises(ConfigurationError, match="db_backup"):
            load_config(write_config(tmp_path, data))

    def test_requires_models(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(write_config(tmp_path, {"staging_path": "/tmp", "models": []}))

    def test_unknown_trigger(self, tmp_path):
        config = load_config(write_config(tmp_path, base_config(tmp_path)))

        with pytest.raises(ConfigurationError, match="nope"):
            config.find_model("nope")


class TestSecretRef:
    """Test secret resolution."""

    def test_resolve_from_env(self, monkeypatch):
        monkeypatch.setenv("BACKUP_SECRET", "s3cr3t")

        assert SecretRef(env="BACKUP_SECRET").resolve() == "s3cr3t"

    def test_resolve_from_file(self, tmp_path):
        secret = tmp_path / "secret"
        secret.write_text("from-file\n")

        assert SecretRef(env="UNSET_BACKUP_SECRET", file=secret).resolve() == "from-file"

    def test_env_takes_precedence_over_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BACKUP_SECRET", "from-env")
        secret = tmp_path / "secret"
        secret.write_text("from-file")

        assert SecretRef(env="BACKUP_SECRET", file=secret).resolve() == "from-env"

    def test_unresolvable_secret_names_its_sources(self, tmp_path, monkeypatch):
        monkeypatch.delenv("UNSET_BACKUP_SECRET", raising=False)
        ref = SecretRef(env="UNSET_BACKUP_SECRET", file=tmp_path / "missing")

        with pytest.raises(ConfigurationError, match="UNSET_BACKUP_SECRET or file"):
            ref.resolve()

    def test_requires_a_source(self):
        with pytest.raises(ValidationError):
            SecretRef()


class TestBuildStorageBackend:
    """Test selecting the backend implementation by configured type."""

    def test_local(self, tmp_path):
        backend = build_storage_backend(
            LocalStorageConfig(type="local", path=tmp_path, storage_id="primary")
        )

        assert isinstance(backend, LocalStorage)
        assert backend.path == tmp_path
        assert backend.storage_name == "Local (primary)"

    def test_s3_resolves_secrets(self, aws_credentials, monkeypatch):
        monkeypatch.setenv("S3_KEY", "key")
        monkeypatch.setenv("S3_SECRET", "secret")
        config = S3StorageConfig(
            type="s3",
            bucket="my-backups",
            path="nightly",
            region="eu-west-1",
            access_key=SecretRef(env="S3_KEY"),
            secret_key=SecretRef(env="S3_SECRET"),
        )

        backend = build_storage_backend(config)

        assert isinstance(backend, S3Storage)
        assert backend.bucket == "my-backups"
        assert backend.path == "nightly"
        assert backend.client.meta.region_name == "eu-west-1"

    def test_sftp(self, monkeypatch):
        monkeypatch.setenv("SFTP_PASSWORD", "pw")
        config = SFTPStorageConfig(
            type="sftp",
            host="nas",
            username="backup",
            password=SecretRef(env="SFTP_PASSWORD"),
            path="/volume1/backups",
        )

        backend = build_storage_backend(config)

        assert isinstance(backend, SFTPStorage)
        assert backend.password == "pw"
        assert backend.path == "/volume1/backups"
        assert backend.storage_name == "SFTP"

    def test_unresolved_secret_is_a_configuration_error(self, aws_credentials, monkeypatch):
        monkeypatch.delenv("S3_KEY", raising=False)
        config = S3StorageConfig(type="s3", bucket="my-backups", access_key=SecretRef(env="S3_KEY"))

        with pytest.raises(ConfigurationError, match="S3_KEY"):
            build_storage_backend(config)

    def test_unsupported(self):
        with pytest.raises(ValueError):
            build_storage_backend(Path("/not/a/config"))
