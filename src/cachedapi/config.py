"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for cachedapi:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cachedapi/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **User config** -- A single :class:`~cachedapi.models.ClientConfig`
  JSON file (base URLs, transport, cache and coordination settings).
* **Project config** -- An optional ``./cachedapi.json`` overlay holding
  any subset of the same keys.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and user config into the
  effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from cachedapi.exceptions import ConfigError
from cachedapi.models import ClientConfig

_APP_NAME = "cachedapi"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "cachedapi.json"

ENV_BASE_URL = "CACHEDAPI_BASE_URL"
ENV_SECONDARY_BASE_URL = "CACHEDAPI_SECONDARY_BASE_URL"
ENV_CACHE_BACKEND = "CACHEDAPI_CACHE_BACKEND"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/cachedapi/`` (default ``~/.config/cachedapi/``).
    On macOS/Windows: ``~/.cachedapi/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the disk Cache Store. Its contents can be deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/cachedapi/`` (default ``~/.cache/cachedapi/``).
    On macOS/Windows: ``~/.cachedapi/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (tokens, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/cachedapi/`` (default ``~/.local/share/cachedapi/``).
    On macOS/Windows: ``~/.cachedapi/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure
    the temp file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- User config ---


def config_path() -> Path:
    """Path to the user config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> ClientConfig:
    """Load the user configuration.

    Returns:
        The deserialised :class:`~cachedapi.models.ClientConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = config_path()
    if not path.is_file():
        return ClientConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ClientConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: ClientConfig) -> None:
    """Persist the user configuration atomically."""
    data = config.model_dump(mode="json")
    _atomic_write(config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./cachedapi.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must be a JSON object")
    return data


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def resolve_config(
    cli_base_url: Optional[str] = None,
    cli_cache_backend: Optional[str] = None,
) -> ClientConfig:
    """Resolve config with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_base_url``, ``cli_cache_backend``)
        2. Environment variables (``CACHEDAPI_BASE_URL``,
           ``CACHEDAPI_SECONDARY_BASE_URL``, ``CACHEDAPI_CACHE_BACKEND``)
        3. Project config (``./cachedapi.json``)
        4. User config (``~/.config/cachedapi/config.json``)
        5. Defaults

    Base URLs written to the token store at runtime take precedence over
    all of these; see :class:`~cachedapi.client.transport.HttpTransport`.

    Raises:
        ConfigError: If any layer is invalid.
    """
    # 5 + 4. User config (fills in defaults automatically)
    data = load_config().model_dump(mode="json")

    # 3. Project-local overlay
    project = load_project_config()
    if project is not None:
        data = _deep_merge(data, project)

    # 2. Environment variables
    env_base_url = os.environ.get(ENV_BASE_URL)
    if env_base_url:
        data["base_url"] = env_base_url
    env_secondary = os.environ.get(ENV_SECONDARY_BASE_URL)
    if env_secondary:
        data["secondary_base_url"] = env_secondary
    env_backend = os.environ.get(ENV_CACHE_BACKEND)
    if env_backend:
        data["cache"]["backend"] = env_backend

    # 1. CLI flags
    if cli_base_url is not None:
        data["base_url"] = cli_base_url
    if cli_cache_backend is not None:
        data["cache"]["backend"] = cli_cache_backend

    try:
        return ClientConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
