"""Configuration management for storagesync.

Values come from ``STORAGESYNC_*`` environment variables first, then from
``KEY=VALUE`` lines in ``~/.config/storagesync/config``.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .exceptions import StorageConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "STORAGESYNC_"
DEFAULT_API_URL = "https://api.crunchycone.com"
DEFAULT_LOCAL_PATH = "./uploads"
DEFAULT_LOCAL_BASE_URL = "/localstorage"


class Config:
    """Read-only view over environment variables and the config file."""

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = config_path
        self._file_values: Optional[dict[str, str]] = None

    def get_config_path(self) -> Path:
        """Path of the config file (which may not exist)."""
        if self._config_path is not None:
            return self._config_path
        override = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if override:
            return Path(override).expanduser()
        return Path.home() / ".config" / "storagesync" / "config"

    def _load_file(self) -> dict[str, str]:
        if self._file_values is not None:
            return self._file_values

        values: dict[str, str] = {}
        path = self.get_config_path()
        if path.is_file():
            try:
                for line in path.read_text(encoding="utf-8").splitlines():
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    values[key.strip().upper()] = value.strip().strip("\"'")
            except OSError as e:
                logger.warning(f"Could not read config file {path}: {e}")
        self._file_values = values
        return values

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Look up ``name`` (without prefix) in the environment, then the file."""
        key = f"{ENV_PREFIX}{name.upper()}"
        value = os.environ.get(key)
        if value:
            return value
        return self._load_file().get(key, default)

    def reload(self) -> None:
        """Forget cached config file values."""
        self._file_values = None

    @property
    def provider(self) -> str:
        return (self.get("PROVIDER") or "local").lower()

    @property
    def local_path(self) -> str:
        return self.get("LOCAL_PATH") or DEFAULT_LOCAL_PATH

    @property
    def local_base_url(self) -> str:
        return self.get("LOCAL_BASE_URL") or DEFAULT_LOCAL_BASE_URL

    @property
    def api_url(self) -> str:
        return self.get("API_URL") or DEFAULT_API_URL

    @property
    def api_key(self) -> Optional[str]:
        return self.get("API_KEY")

    @property
    def project_id(self) -> Optional[str]:
        return self.get("PROJECT_ID")

    @property
    def timeout(self) -> Optional[float]:
        """Request timeout in seconds."""
        value = self.get("TIMEOUT")
        if value is None:
            return None
        try:
            return float(value)
        except ValueError as e:
            raise StorageConfigError(
                f"Invalid STORAGESYNC_TIMEOUT value: {value!r}"
            ) from e

    def is_configured(self) -> bool:
        """Whether the remote provider has the values it needs."""
        return bool(self.api_key and self.project_id)


config = Config()
