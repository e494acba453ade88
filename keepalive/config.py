"""
Keepalive settings loaded from environment variables.

This module is the single source of truth for configuration: it loads an
optional local .env file, reads the recognised environment variables with
documented defaults and returns an immutable Settings instance.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from keepalive.utils.durations import format_duration, try_parse_duration

# Defaults for optional environment variables
DEFAULT_CONNECTION_STRING = "localhost"
DEFAULT_BUCKET_NAME = "default"
DEFAULT_SCOPE_NAME = "_default"
DEFAULT_COLLECTION_NAME = "_default"
DEFAULT_INTERVAL = "5m"
DEFAULT_OPERATION_TIMEOUT = "10s"
DEFAULT_DOCUMENT_EXPIRY = "1h"
DEFAULT_COUNTER_DOCUMENT_ID = "keepalive::counter"

MODE_RANDOM = "random"
MODE_READ = "read"
MODE_WRITE = "write"
MODE_INCREMENT = "increment"
OPERATION_MODES = (MODE_RANDOM, MODE_READ, MODE_WRITE, MODE_INCREMENT)

READ_LATEST = "latest"
READ_RANDOM = "random"
READ_POLICIES = (READ_LATEST, READ_RANDOM)


class ConfigError(Exception):
    """Raised when required configuration is missing."""


@dataclass(frozen=True)
class Settings:
    """Immutable keepalive configuration, created once at process start."""

    connection_string: str
    username: str
    password: str
    bucket_name: str = DEFAULT_BUCKET_NAME
    scope_name: str = DEFAULT_SCOPE_NAME
    collection_name: str = DEFAULT_COLLECTION_NAME
    interval: float = 300.0
    operation_timeout: float = 10.0
    operation_mode: str = MODE_RANDOM
    read_policy: str = READ_LATEST
    document_expiry: float = 3600.0
    counter_document_id: str = DEFAULT_COUNTER_DOCUMENT_ID
    tls_enabled: bool = False

    @property
    def collection_path(self) -> str:
        """Collection name inside the bucket database; the default scope adds no prefix."""
        if self.scope_name == DEFAULT_SCOPE_NAME:
            return self.collection_name
        return f"{self.scope_name}.{self.collection_name}"

    @property
    def cluster_id(self) -> str:
        """Connection string safe to log and to store in keepalive documents."""
        return mask_connection_string(self.connection_string)

    def __repr__(self) -> str:
        return (
            f"Settings(cluster={self.cluster_id!r}, bucket={self.bucket_name!r}, "
            f"collection={self.collection_path!r}, interval={format_duration(self.interval)}, "
            f"timeout={format_duration(self.operation_timeout)}, mode={self.operation_mode!r})"
        )


def mask_connection_string(uri: str) -> str:
    """
    Mask password in MongoDB connection string for safe logging.

    Args:
        uri: MongoDB connection string

    Returns:
        Connection string with password masked as ***
    """
    if not uri or "://" not in uri:
        return uri

    scheme, rest = uri.split("://", 1)

    # Check if there's a password (format: user:password@host)
    if "@" in rest:
        user_part, tail = rest.rsplit("@", 1)
        if ":" in user_part:
            username, _ = user_part.split(":", 1)
            return f"{scheme}://{username}:***@{tail}"

    return uri


def _get(env: Mapping[str, str], key: str, default: str = "") -> str:
    """Read an environment variable; empty values count as absent."""
    value = env.get(key, "")
    return value if value else default


def _get_duration(env: Mapping[str, str], key: str, default: str) -> float:
    """Parse a duration variable, falling back to the default with a warning."""
    raw = _get(env, key, default)
    seconds = try_parse_duration(raw)
    if seconds is None or seconds <= 0:
        logging.warning(f"Invalid {key} '{raw}', using default {default}")
        seconds = try_parse_duration(default)
    return seconds


def _get_choice(env: Mapping[str, str], key: str, choices: tuple, default: str) -> str:
    raw = _get(env, key, default).strip().lower()
    if raw not in choices:
        logging.warning(f"Invalid {key} '{raw}', using default {default} (expected one of {', '.join(choices)})")
        return default
    return raw


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    """Parse boolean environment variable."""
    value = _get(env, key).strip().lower()
    if value in ("true", "1", "yes", "on"):
        return True
    elif value in ("false", "0", "no", "off"):
        return False
    elif value:
        logging.warning(f"Invalid {key} '{value}', using default {str(default).lower()}")
    return default


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from (default: os.environ)

    Returns:
        Settings instance

    Raises:
        ConfigError: If USERNAME or PASSWORD is missing
    """
    env = os.environ if environ is None else environ

    username = _get(env, "USERNAME")
    password = _get(env, "PASSWORD")
    # Validate required parameters before anything else is touched
    if not username or not password:
        raise ConfigError("USERNAME and PASSWORD are required")

    connection_string = _get(env, "CONNECTION_STRING", DEFAULT_CONNECTION_STRING)

    return Settings(
        connection_string=connection_string,
        username=username,
        password=password,
        bucket_name=_get(env, "BUCKET_NAME", DEFAULT_BUCKET_NAME),
        scope_name=_get(env, "SCOPE_NAME", DEFAULT_SCOPE_NAME),
        collection_name=_get(env, "COLLECTION_NAME", DEFAULT_COLLECTION_NAME),
        interval=_get_duration(env, "INTERVAL", DEFAULT_INTERVAL),
        operation_timeout=_get_duration(env, "OPERATION_TIMEOUT", DEFAULT_OPERATION_TIMEOUT),
        operation_mode=_get_choice(env, "OPERATION_MODE", OPERATION_MODES, MODE_RANDOM),
        read_policy=_get_choice(env, "READ_POLICY", READ_POLICIES, READ_LATEST),
        document_expiry=_get_duration(env, "DOCUMENT_EXPIRY", DEFAULT_DOCUMENT_EXPIRY),
        counter_document_id=_get(env, "COUNTER_DOCUMENT_ID", DEFAULT_COUNTER_DOCUMENT_ID),
        tls_enabled=_get_bool(env, "TLS_ENABLED", connection_string.startswith("mongodb+srv://")),
    )


def load_env_file(path: Optional[str] = None) -> bool:
    """Load a local .env file if present; variables already set win.

    Returns:
        True if a file was found and loaded
    """
    env_path = path or find_dotenv(usecwd=True)
    loaded = bool(env_path) and load_dotenv(env_path, override=False)
    if not loaded:
        logging.info("No .env file found, using system environment variables")
    return loaded


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance (loads .env on first call)."""
    load_env_file()
    return load_settings()
