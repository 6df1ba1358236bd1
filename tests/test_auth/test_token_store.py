"""Tests for the persistent and in-memory token stores."""

from __future__ import annotations

import json
import os
import stat

import pytest

from cachedapi.auth import MemoryTokenStore, TokenStore
from cachedapi.auth.token_store import ACCESS_TOKEN, ORG_ACCESS_TOKEN


class TestMemoryTokenStore:
    def test_initial_values(self) -> None:
        store = MemoryTokenStore({ACCESS_TOKEN: "tok"})
        assert store.get(ACCESS_TOKEN) == "tok"
        assert store.get(ORG_ACCESS_TOKEN) is None

    def test_set_delete(self) -> None:
        store = MemoryTokenStore()
        store.set(ACCESS_TOKEN, "tok")
        store.delete(ACCESS_TOKEN)
        assert store.get(ACCESS_TOKEN) is None

    def test_delete_missing_is_noop(self) -> None:
        MemoryTokenStore().delete("nope")

    def test_names_sorted(self) -> None:
        store = MemoryTokenStore({"b": "2", "a": "1"})
        assert store.names() == ["a", "b"]


class TestTokenStore:
    @pytest.fixture()
    def store(self, tmp_path) -> TokenStore:
        return TokenStore(tmp_path / "tokens.json")

    def test_missing_file_is_empty(self, store: TokenStore) -> None:
        assert store.get(ACCESS_TOKEN) is None
        assert store.names() == []

    def test_round_trip_through_file(self, store: TokenStore) -> None:
        store.set(ACCESS_TOKEN, "tok123")
        assert TokenStore(store.path).get(ACCESS_TOKEN) == "tok123"

    def test_file_permissions(self, store: TokenStore) -> None:
        store.set(ACCESS_TOKEN, "secret")
        mode = stat.S_IMODE(os.stat(store.path).st_mode)
        assert mode == 0o600

    def test_no_temp_files_left(self, store: TokenStore) -> None:
        store.set(ACCESS_TOKEN, "secret")
        leftovers = [p for p in store.path.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_picks_up_external_writes(self, store: TokenStore) -> None:
        store.set(ACCESS_TOKEN, "old")
        TokenStore(store.path).set(ACCESS_TOKEN, "new")
        assert store.get(ACCESS_TOKEN) == "new"

    def test_delete_persists(self, store: TokenStore) -> None:
        store.set(ACCESS_TOKEN, "a")
        store.set(ORG_ACCESS_TOKEN, "b")
        store.delete(ACCESS_TOKEN)
        fresh = TokenStore(store.path)
        assert fresh.get(ACCESS_TOKEN) is None
        assert fresh.get(ORG_ACCESS_TOKEN) == "b"

    def test_clear_removes_file(self, store: TokenStore) -> None:
        store.set(ACCESS_TOKEN, "a")
        store.clear()
        assert not store.path.exists()
        assert store.get(ACCESS_TOKEN) is None

    def test_corrupt_file_treated_as_empty(self, store: TokenStore) -> None:
        store.path.write_text("{not json", encoding="utf-8")
        assert store.get(ACCESS_TOKEN) is None

    def test_stored_format(self, store: TokenStore) -> None:
        store.set(ACCESS_TOKEN, "tok")
        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert data[ACCESS_TOKEN]["value"] == "tok"
        assert "updated_at" in data[ACCESS_TOKEN]

    def test_default_path_under_data_dir(self, isolated_config) -> None:
        store = TokenStore()
        assert store.path == isolated_config / "data" / "cachedapi" / "tokens.json"
