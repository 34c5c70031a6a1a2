import pytest

from errors import NotFound
from storage import LocalBlobStore, safe_extension


@pytest.fixture
def store(tmp_path):
    return LocalBlobStore(str(tmp_path))


def test_store_and_retrieve(store):
    key = store.store(b"hello", "notes.TXT")
    assert key.startswith("document-")
    assert key.endswith(".txt")
    assert store.exists(key)
    assert store.retrieve(key) == b"hello"


def test_key_ignores_user_path(store, tmp_path):
    key = store.store(b"x", "../../etc/passwd")
    assert "/" not in key and ".." not in key
    assert (tmp_path / key).is_file()


@pytest.mark.parametrize("name, ext", [
    ("report.pdf", ".pdf"),
    ("archive.tar.gz", ".gz"),
    ("noext", ""),
    ("weird.p/df", ""),
    (None, ""),
])
def test_safe_extension(name, ext):
    assert safe_extension(name) == ext


def test_retrieve_missing(store):
    with pytest.raises(NotFound):
        store.retrieve("document-1-abc.pdf")


@pytest.mark.parametrize("key", ["../secret", "a/b", "", ".."])
def test_rejects_unsafe_keys(store, key):
    assert not store.exists(key)
    with pytest.raises(NotFound):
        store.retrieve(key)


def test_delete(store):
    key = store.store(b"x", "a.bin")
    assert store.delete(key)
    assert not store.exists(key)
    assert not store.delete(key)
