"""Tests for configuration and provider construction."""

import pytest

from storagesync.config import Config
from storagesync.exceptions import StorageConfigError
from storagesync.providers import (
    LocalStorageProvider,
    RemoteStorageProvider,
    create_provider,
    parse_provider_spec,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in (
        "PROVIDER",
        "LOCAL_PATH",
        "LOCAL_BASE_URL",
        "API_URL",
        "API_KEY",
        "PROJECT_ID",
        "TIMEOUT",
    ):
        monkeypatch.delenv(f"STORAGESYNC_{name}", raising=False)
    monkeypatch.setenv("STORAGESYNC_CONFIG", str(tmp_path / "missing-config"))
    from storagesync.config import config

    config.reload()
    yield monkeypatch
    config.reload()


class TestConfig:
    def test_defaults(self, clean_env, tmp_path):
        cfg = Config(config_path=tmp_path / "none")

        assert cfg.provider == "local"
        assert cfg.local_path == "./uploads"
        assert cfg.api_key is None
        assert cfg.timeout is None
        assert cfg.is_configured() is False

    def test_reads_config_file(self, clean_env, tmp_path):
        path = tmp_path / "config"
        path.write_text(
            "# storagesync settings\n"
            "STORAGESYNC_API_KEY=file-key\n"
            'STORAGESYNC_PROJECT_ID="proj-1"\n'
            "STORAGESYNC_TIMEOUT=12.5\n"
        )
        cfg = Config(config_path=path)

        assert cfg.api_key == "file-key"
        assert cfg.project_id == "proj-1"
        assert cfg.timeout == 12.5
        assert cfg.is_configured() is True

    def test_environment_wins_over_file(self, clean_env, tmp_path):
        path = tmp_path / "config"
        path.write_text("STORAGESYNC_API_KEY=file-key\n")
        clean_env.setenv("STORAGESYNC_API_KEY", "env-key")

        assert Config(config_path=path).api_key == "env-key"

    def test_invalid_timeout(self, clean_env, tmp_path):
        clean_env.setenv("STORAGESYNC_TIMEOUT", "soon")

        with pytest.raises(StorageConfigError):
            Config(config_path=tmp_path / "none").timeout


class TestFactory:
    def test_create_local(self, clean_env, tmp_path):
        provider = create_provider("local", base_path=tmp_path / "store")

        assert isinstance(provider, LocalStorageProvider)
        assert provider.base_path == tmp_path / "store"

    def test_create_local_from_config(self, clean_env, tmp_path):
        clean_env.setenv("STORAGESYNC_LOCAL_PATH", str(tmp_path / "configured"))

        provider = create_provider("local")

        assert provider.base_path == tmp_path / "configured"

    def test_create_remote(self, clean_env):
        provider = create_provider("remote", api_key="k", project_id="p")

        assert isinstance(provider, RemoteStorageProvider)
        assert provider.project_id == "p"

    def test_remote_without_key_fails(self, clean_env):
        with pytest.raises(StorageConfigError):
            create_provider("remote", project_id="p")

    def test_unknown_kind(self, clean_env):
        with pytest.raises(StorageConfigError):
            create_provider("s3")

    def test_parse_local_spec(self, clean_env, tmp_path):
        provider = parse_provider_spec(f"local:{tmp_path / 'a'}")

        assert isinstance(provider, LocalStorageProvider)
        assert provider.base_path == tmp_path / "a"

    def test_parse_remote_spec(self, clean_env):
        clean_env.setenv("STORAGESYNC_API_KEY", "k")

        provider = parse_provider_spec("remote:proj-9")

        assert isinstance(provider, RemoteStorageProvider)
        assert provider.project_id == "proj-9"

    def test_parse_invalid_spec(self, clean_env):
        with pytest.raises(StorageConfigError):
            parse_provider_spec("ftp://host")
