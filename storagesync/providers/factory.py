"""Explicit provider construction from names and CLI specs."""

import logging
from typing import Any

from ..config import config
from ..exceptions import StorageConfigError
from .local import LocalStorageProvider
from .remote import RemoteStorageProvider

logger = logging.getLogger(__name__)

PROVIDER_KINDS = ("local", "remote")


def create_provider(kind: str, **overrides: Any) -> Any:
    """Build a provider, filling unset options from configuration.

    Args:
        kind: ``"local"`` or ``"remote"``
        **overrides: Constructor arguments that take precedence over config

    Raises:
        StorageConfigError: If ``kind`` is unknown or required settings are missing
    """
    kind = kind.lower()
    logger.debug(f"Creating {kind} storage provider")

    if kind == "local":
        return LocalStorageProvider(
            base_path=overrides.pop("base_path", None) or config.local_path,
            base_url=overrides.pop("base_url", None) or config.local_base_url,
            **overrides,
        )
    if kind == "remote":
        return RemoteStorageProvider(**overrides)

    raise StorageConfigError(
        f"Unknown storage provider {kind!r}. Expected one of: {', '.join(PROVIDER_KINDS)}"
    )


def parse_provider_spec(spec: str) -> Any:
    """Build a provider from a CLI spec.

    Examples:
        ``local:/srv/files``, ``local`` (configured path), ``remote``,
        ``remote:<project_id>``
    """
    kind, _, argument = spec.partition(":")
    kind = kind.strip().lower()
    argument = argument.strip()

    if kind == "local":
        return create_provider("local", base_path=argument or None)
    if kind == "remote":
        if argument:
            return create_provider("remote", project_id=argument)
        return create_provider("remote")

    raise StorageConfigError(
        f"Invalid provider spec {spec!r}. Use local:/path, remote or remote:<project_id>"
    )
