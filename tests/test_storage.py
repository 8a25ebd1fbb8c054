import os

import pytest

from smartsched.storage import FileCredentialStore, MemoryCredentialStore


def test_file_store_roundtrip(tmp_path):
    store = FileCredentialStore(tmp_path / "nested" / "session.json")
    store.update({"token": "abc", "user": {"username": "ada", "role": "ROLE_ADMIN"}})

    reopened = FileCredentialStore(tmp_path / "nested" / "session.json")
    assert reopened.get("token") == "abc"
    assert reopened.get("user") == {"username": "ada", "role": "ROLE_ADMIN"}
    assert reopened.get("missing") is None


@pytest.mark.skipif(os.name != "posix", reason="POSIX file modes")
def test_file_store_is_private(tmp_path):
    store = FileCredentialStore(tmp_path / "session.json")
    store.set("token", "abc")
    assert (tmp_path / "session.json").stat().st_mode & 0o777 == 0o600


def test_file_store_clear_is_idempotent(tmp_path):
    store = FileCredentialStore(tmp_path / "session.json")
    store.set("token", "abc")
    store.clear()
    store.clear()
    assert store.get("token") is None
    assert not (tmp_path / "session.json").exists()


def test_file_store_rejects_garbage(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(ValueError):
        FileCredentialStore(path).get("token")


def test_file_store_overwrites_garbage_on_write(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{broken", encoding="utf-8")
    store = FileCredentialStore(path)
    store.set("token", "abc")
    assert store.get("token") == "abc"


def test_memory_store():
    store = MemoryCredentialStore({"token": "abc"})
    store.set("user", {"username": "ada"})
    assert store.get("token") == "abc"
    store.clear()
    assert store.get("token") is None and store.get("user") is None
