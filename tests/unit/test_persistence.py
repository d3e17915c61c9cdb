"""Unit tests for the key-value persistence collaborators."""

import pytest

from siteprogress.persistence import (
    DEFAULT_STORAGE_DIR,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    storage_dir,
)


class TestInMemoryKeyValueStore:
    """Test cases for the in-memory backend."""

    def test_get_missing_returns_none(self):
        assert InMemoryKeyValueStore().get("constructionProgress") is None

    def test_set_then_get(self):
        kv = InMemoryKeyValueStore()
        kv.set("k", "v")

        assert kv.get("k") == "v"
        assert kv.write_count == 1
        assert kv.keys() == ["k"]

    def test_initial_values(self):
        kv = InMemoryKeyValueStore({"k": "v"})

        assert kv.get("k") == "v"
        assert kv.write_count == 0


class TestJsonFileKeyValueStore:
    """Test cases for the JSON file backend."""

    def test_creates_directory(self, tmp_path):
        kv = JsonFileKeyValueStore(tmp_path / "state")

        assert kv.directory.is_dir()

    def test_round_trip(self, tmp_path):
        kv = JsonFileKeyValueStore(tmp_path)
        kv.set("constructionProgress", '{"main": {"name": "Main Building", "subareas": {}}}')

        assert kv.get("constructionProgress") == '{"main": {"name": "Main Building", "subareas": {}}}'
        assert (tmp_path / "constructionProgress.json").exists()
        assert not (tmp_path / "constructionProgress.json.tmp").exists()

    def test_overwrite(self, tmp_path):
        kv = JsonFileKeyValueStore(tmp_path)
        kv.set("k", "first")
        kv.set("k", "second")

        assert kv.get("k") == "second"

    def test_get_missing_returns_none(self, tmp_path):
        assert JsonFileKeyValueStore(tmp_path).get("absent") is None

    def test_non_ascii_values(self, tmp_path):
        kv = JsonFileKeyValueStore(tmp_path)
        kv.set("k", '{"name": "主楼"}')

        assert kv.get("k") == '{"name": "主楼"}'

    @pytest.mark.parametrize("key", ["../escape", "a/b", "", "with space"])
    def test_rejects_unsafe_keys(self, tmp_path, key):
        kv = JsonFileKeyValueStore(tmp_path)

        with pytest.raises(ValueError, match="Invalid storage key"):
            kv.set(key, "x")

    def test_for_root_uses_storage_dir(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SITEPROGRESS_STORAGE_DIR", raising=False)
        kv = JsonFileKeyValueStore.for_root(tmp_path)

        assert kv.directory == tmp_path.resolve() / DEFAULT_STORAGE_DIR / "state"
        assert kv.directory.is_dir()


class TestStorageDir:
    def test_default_name(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SITEPROGRESS_STORAGE_DIR", raising=False)

        assert storage_dir(tmp_path) == tmp_path.resolve() / ".site-progress"

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SITEPROGRESS_STORAGE_DIR", ".custom-progress")

        assert storage_dir(tmp_path) == tmp_path.resolve() / ".custom-progress"
