"""Persistent key-value token store.

Holds the authorization credentials (and user-configured base URL
overrides) the transport reads on every dispatch. The coordinator clears
the credential when the API answers ``401``.

:class:`TokenStore` keeps everything in one JSON file,
``~/.local/share/cachedapi/tokens.json`` (XDG) or the platform equivalent.
Writes are atomic via :func:`tempfile.NamedTemporaryFile` and
``os.replace`` with ``0o600`` permissions so that secrets are never
world-readable, even momentarily. :class:`MemoryTokenStore` is the
in-process variant used by library callers that manage tokens themselves.

See Also:
    :class:`~cachedapi.client.transport.HttpTransport` -- reads tokens.
    :class:`~cachedapi.client.coordinator.RequestCoordinator` -- clears them.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from cachedapi.config import get_data_dir

logger = logging.getLogger(__name__)

ACCESS_TOKEN = "access_token"
ORG_ACCESS_TOKEN = "org_access_token"
BASE_URL = "base_url"
SECONDARY_BASE_URL = "secondary_base_url"


class StoredValue(BaseModel):
    """A single value held by the token store.

    Attributes:
        value: The stored string (token or URL).
        updated_at: UTC time of the last write.
    """

    value: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MemoryTokenStore:
    """Token store held in a dict; nothing is persisted.

    Example::

        store = MemoryTokenStore({"access_token": "tok123"})
        store.get("access_token")   # "tok123"
    """

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._values: dict[str, StoredValue] = {
            name: StoredValue(value=value) for name, value in (initial or {}).items()
        }

    def get(self, name: str) -> Optional[str]:
        stored = self._values.get(name)
        return None if stored is None else stored.value

    def set(self, name: str, value: str) -> None:
        self._values[name] = StoredValue(value=value)

    def delete(self, name: str) -> None:
        self._values.pop(name, None)

    def clear(self) -> None:
        self._values.clear()

    def names(self) -> list[str]:
        return sorted(self._values)


class TokenStore(MemoryTokenStore):
    """Token store persisted to a JSON file.

    The file is re-read on every :meth:`get` so that a token written by
    another process (for example ``cachedapi token set``) is picked up
    without restarting. Unreadable files are treated as empty.

    Args:
        path: Explicit file path. Defaults to ``<data_dir>/tokens.json``.

    Example::

        store = TokenStore()
        store.set("access_token", "tok123")
        assert TokenStore().get("access_token") == "tok123"
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        super().__init__()
        self._path = path if path is not None else get_data_dir() / "tokens.json"

    @property
    def path(self) -> Path:
        """The filesystem path of the token file."""
        return self._path

    def get(self, name: str) -> Optional[str]:
        self._values = self._load()
        return super().get(name)

    def set(self, name: str, value: str) -> None:
        self._values = self._load()
        super().set(name, value)
        self._save()

    def delete(self, name: str) -> None:
        self._values = self._load()
        if name in self._values:
            super().delete(name)
            self._save()

    def clear(self) -> None:
        """Delete the token file if it exists."""
        self._values = {}
        if self._path.is_file():
            self._path.unlink()

    def names(self) -> list[str]:
        self._values = self._load()
        return super().names()

    def _load(self) -> dict[str, StoredValue]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return {name: StoredValue.model_validate(raw) for name, raw in data.items()}
        except (json.JSONDecodeError, ValueError, AttributeError, OSError) as exc:
            logger.warning("Ignoring unreadable token store %s: %s", self._path, exc)
            return {}

    def _save(self) -> None:
        """Persist all values atomically with ``0o600`` permissions.

        Raises:
            OSError: If the file cannot be written (permissions, disk full, etc.).
        """
        data = {name: stored.model_dump(mode="json") for name, stored in self._values.items()}
        text = json.dumps(data, indent=2) + "\n"

        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd = None
        tmp_path: Optional[str] = None
        try:
            fd = tempfile.NamedTemporaryFile(
                mode="w",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            )
            tmp_path = fd.name
            # Set restrictive permissions before writing content
            os.chmod(tmp_path, 0o600)
            fd.write(text)
            fd.flush()
            os.fsync(fd.fileno())
            fd.close()
            fd = None
            os.replace(tmp_path, self._path)
        except BaseException:
            if fd is not None:
                fd.close()
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            raise
