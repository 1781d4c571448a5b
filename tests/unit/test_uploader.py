"""
Unit tests for the upload lifecycle orchestrator.
"""

import pytest

from fileshelf.config.settings import UploaderConfig
from fileshelf.errors import BackendError, ConfigurationError, NotFoundError
from fileshelf.files.sanitized import SanitizedFile
from fileshelf.storage.adapter import StoredFile
from fileshelf.storage.filesystem import FilesystemStorage
from fileshelf.uploader.base import Uploader, UploaderState
from fileshelf.uploader.cache import FileCache
from fileshelf.uploader.callbacks import CallbackRegistry
from fileshelf.uploader.versions import Version

TEN_BYTES = b"0123456789"


def suffix(label: str, calls=None):
    def process(file):
        if calls is not None:
            calls.append(label)
        return file.read() + f"-{label}".encode()
    return process


@pytest.fixture
def versions():
    return [
        Version("thumb", suffix("thumb")),
        Version("thumb_small", suffix("small"), depends_on="thumb"),
    ]


@pytest.fixture
def uploader(config, record, versions):
    return Uploader(
        config,
        record=record,
        mounted_as="avatar",
        versions=versions,
        cache=FileCache(config, id_generator=lambda: "abc123"),
    )


def stored_uploader(uploader, record, name="a.txt", content=TEN_BYTES):
    """Store a file and mark the record saved, as after a first save."""
    uploader.store(SanitizedFile(content, filename=name))
    record.save()
    return uploader


class TestInitialState:
    def test_starts_empty(self, uploader):
        assert uploader.state == UploaderState.EMPTY
        assert uploader.blank
        assert uploader.url() is None
        assert uploader.read() is None

    def test_invalid_versions_fail_at_construction(self, config):
        with pytest.raises(ConfigurationError):
            Uploader(config, versions=[Version("a", suffix("a"), depends_on="b")])

    def test_storage_created_from_config(self, uploader):
        assert isinstance(uploader.storage, FilesystemStorage)
        assert uploader.storage is uploader.storage

    def test_unknown_version_name(self, uploader):
        with pytest.raises(KeyError):
            uploader.version("poster")


class TestCache:
    """Test staging received files."""

    def test_cache_sets_state_and_id(self, uploader):
        cache_id = uploader.cache(SanitizedFile(TEN_BYTES, filename="ten.bin"))

        assert cache_id == "abc123"
        assert uploader.cache_id == "abc123"
        assert uploader.state == UploaderState.CACHED
        assert uploader.read() == TEN_BYTES
        assert uploader.url() is None

    def test_empty_upload_is_ignored(self, uploader):
        assert uploader.cache(b"") is None
        assert uploader.state == UploaderState.EMPTY

    def test_retrieve_from_cache(self, config, versions):
        first = Uploader(config, versions=versions, cache=FileCache(config, id_generator=lambda: "abc123"))
        first.cache(SanitizedFile(TEN_BYTES, filename="ten.bin"))

        second = Uploader(config, versions=versions)
        second.retrieve_from_cache("abc123")

        assert second.state == UploaderState.CACHED
        assert second.read() == TEN_BYTES
        assert second.filename() == "ten.bin"

    def test_retrieve_unknown_cache_id(self, uploader):
        with pytest.raises(NotFoundError):
            uploader.retrieve_from_cache("nope")

    def test_generated_filename_when_upload_has_none(self, uploader, png_bytes):
        uploader.cache(png_bytes)

        name = uploader.filename()

        assert name.endswith(".png")
        assert uploader.filename() == name


class TestStore:
    """Test committing files to storage."""

    def test_store_from_cache_id(self, uploader, record, tmp_path):
        uploader.cache(SanitizedFile(TEN_BYTES, filename="ten.bin"))

        stored = uploader.store("abc123")

        assert isinstance(stored, StoredFile)
        assert uploader.state == UploaderState.STORED
        assert uploader.identifier == "ten.bin"
        assert uploader.cache_id is None
        assert record.read_identifier("avatar") == "ten.bin"

        root = tmp_path / "public" / "uploads"
        assert (root / "ten.bin").read_bytes() == TEN_BYTES
        assert (root / "thumb" / "ten.bin").read_bytes() == TEN_BYTES + b"-thumb"
        assert (root / "thumb_small" / "ten.bin").read_bytes() == TEN_BYTES + b"-thumb-small"

    def test_store_file_directly(self, uploader):
        stored = uploader.store(SanitizedFile(b"direct", filename="d.txt"))

        assert stored.path == "uploads/d.txt"
        assert uploader.version("thumb").read() == b"direct-thumb"

    def test_store_currently_cached_file(self, uploader):
        uploader.cache(SanitizedFile(TEN_BYTES, filename="ten.bin"))

        uploader.store()

        assert uploader.url() == "/uploads/ten.bin"
        assert uploader.url("thumb") == "/uploads/thumb/ten.bin"

    def test_store_with_nothing_received(self, uploader):
        assert uploader.store() is None
        assert uploader.state == UploaderState.EMPTY

    def test_store_empty_file_is_ignored(self, uploader):
        assert uploader.store(b"") is None

    def test_store_twice_keeps_handle(self, uploader):
        first = uploader.store(SanitizedFile(b"once", filename="o.txt"))

        assert uploader.store() is first

    def test_round_trip_through_identifier(self, uploader, config, versions):
        uploader.store(SanitizedFile(TEN_BYTES, filename="ten.bin"))

        fresh = Uploader(config, versions=versions)
        handle = fresh.retrieve_from_store(uploader.identifier)

        assert handle.read() == TEN_BYTES
        assert fresh.state == UploaderState.STORED
        assert fresh.version("thumb_small").read() == TEN_BYTES + b"-thumb-small"

    def test_store_path_follows_cached_replacement(self, uploader, record):
        stored_uploader(uploader, record)
        assert uploader.store_path() == "uploads/a.txt"

        uploader.cache(SanitizedFile(TEN_BYTES, filename="b.txt"))
        predicted = (uploader.store_path(), uploader.store_path(version="thumb"))
        stored = uploader.store()

        assert predicted == ("uploads/b.txt", "uploads/thumb/b.txt")
        assert stored.path == predicted[0]
        assert uploader.version("thumb").path == predicted[1]

    def test_backend_failure_propagates(self, uploader, monkeypatch):
        def failing_store(file, path):
            raise BackendError("quota exceeded")

        monkeypatch.setattr(uploader.storage, "store", failing_store)

        with pytest.raises(BackendError, match="quota"):
            uploader.store(SanitizedFile(b"x", filename="x.txt"))

        assert uploader.state == UploaderState.EMPTY


class TestStaleness:
    """Test rename eligibility."""

    def test_changed_attribute_on_persisted_record(self, uploader, record):
        stored_uploader(uploader, record)
        record.assign("avatar", "b.txt")

        assert uploader.check_stale() is True
        assert uploader.rename_pending
        assert uploader.original_file.path == "uploads/a.txt"

    def test_unchanged_attribute(self, uploader, record):
        stored_uploader(uploader, record)

        assert uploader.check_stale() is False

    def test_unsaved_record(self, uploader, record):
        uploader.store(SanitizedFile(b"x", filename="a.txt"))
        record.assign("avatar", "b.txt")

        assert uploader.check_stale() is False

    def test_pending_cache_id_suppresses_rename(self, uploader, record):
        stored_uploader(uploader, record)
        uploader.cache(SanitizedFile(TEN_BYTES, filename="new.bin"))
        record.assign("avatar", "b.txt")

        assert record.is_persisted() and record.attribute_changed("avatar")
        assert uploader.check_stale() is False
        assert not uploader.rename_pending

    def test_no_record(self, config):
        uploader = Uploader(config)
        uploader.store(SanitizedFile(b"x", filename="a.txt"))

        assert uploader.check_stale() is False

    def test_predicate_failure_is_configuration_error(self, uploader, record, monkeypatch):
        stored_uploader(uploader, record)

        def broken(name):
            raise AttributeError(f"no attribute {name}")

        monkeypatch.setattr(record, "attribute_changed", broken)

        with pytest.raises(ConfigurationError, match="avatar"):
            uploader.check_stale()

    def test_blank_new_identifier(self, uploader, record):
        stored_uploader(uploader, record)
        record.assign("avatar", "")

        with pytest.raises(ConfigurationError):
            uploader.check_stale()
        assert not uploader.rename_pending


class TestRename:
    """Test moving a stored file after its identifier changed."""

    def test_rename_moves_original_and_versions(self, uploader, record, tmp_path):
        stored_uploader(uploader, record)
        record.assign("avatar", "b.txt")
        uploader.check_stale()

        assert uploader.rename() is True

        assert uploader.identifier == "b.txt"
        assert uploader.state == UploaderState.STORED
        assert uploader.file.path == "uploads/b.txt"
        assert not uploader.rename_pending
        assert uploader.original_file is None
        for name, handle in uploader.versions.items():
            assert handle.path == f"uploads/{name}/b.txt"
            assert "a.txt" not in handle.path

        root = tmp_path / "public" / "uploads"
        assert not (root / "a.txt").exists()
        assert not (root / "thumb" / "a.txt").exists()
        assert (root / "thumb_small" / "b.txt").read_bytes() == TEN_BYTES + b"-thumb-small"

    def test_rename_without_pending_change_leaves_versions(self, config, record):
        calls = []
        uploader = Uploader(
            config, record=record, mounted_as="avatar",
            versions=[Version("thumb", suffix("thumb", calls))],
        )
        stored_uploader(uploader, record)
        before = uploader.versions
        calls.clear()

        assert uploader.check_stale() is False
        assert uploader.rename() is True

        assert calls == []
        assert uploader.versions == before

    @pytest.mark.parametrize("store_dir", ["./uploads", "uploads//", "/uploads"])
    def test_unnormalized_store_dir_leaves_versions(self, tmp_path, record, store_dir):
        config = UploaderConfig(root=str(tmp_path / "public"), store_dir=store_dir)
        calls = []
        uploader = Uploader(
            config, record=record, mounted_as="avatar",
            versions=[Version("thumb", suffix("thumb", calls))],
        )
        stored_uploader(uploader, record)
        calls.clear()

        uploader.check_stale()
        uploader.rename()
        uploader.check_stale()
        uploader.rename()

        assert calls == []
        assert uploader.version("thumb").path == uploader.store_path(version="thumb") == "uploads/thumb/a.txt"

    def test_rename_without_pending_change_restores_missing_versions(self, uploader, record):
        stored_uploader(uploader, record)
        uploader.version("thumb").delete()

        uploader.rename()

        assert uploader.version("thumb").read() == TEN_BYTES + b"-thumb"

    def test_rename_runs_before_recreate(self, config, record):
        events = []

        def thumb(file):
            events.append(("thumb", file.read()))
            return file.read()

        callbacks = CallbackRegistry()
        callbacks.before("rename", lambda uploader: events.append("before_rename"))
        callbacks.after("rename", lambda uploader: events.append("after_rename"))
        uploader = Uploader(
            config, record=record, mounted_as="avatar",
            versions=[Version("thumb", thumb)], callbacks=callbacks,
        )
        stored_uploader(uploader, record, content=b"original")
        events.clear()
        record.assign("avatar", "b.txt")
        uploader.check_stale()

        uploader.rename()

        # The version is derived from the file at its new path
        assert events == ["before_rename", ("thumb", b"original"), "after_rename"]

    def test_rename_failure_propagates_without_rollback(self, uploader, record, monkeypatch):
        stored_uploader(uploader, record)
        record.assign("avatar", "b.txt")
        uploader.check_stale()

        def failing_rename(file, new_path):
            raise BackendError("connection reset")

        monkeypatch.setattr(uploader.storage, "rename", failing_rename)

        with pytest.raises(BackendError):
            uploader.rename()

        assert uploader.state == UploaderState.RENAMING
        assert uploader.identifier == "a.txt"


class TestRemove:
    def test_remove_deletes_everything(self, uploader, record, tmp_path):
        stored_uploader(uploader, record)

        uploader.remove()

        assert uploader.state == UploaderState.EMPTY
        assert uploader.blank
        assert uploader.versions == {}
        assert FilesystemStorage(uploader.config).list_files("uploads") == []

    def test_remove_twice(self, uploader, record):
        stored_uploader(uploader, record)

        uploader.remove()
        uploader.remove()

    def test_remove_callbacks(self, config):
        calls = []
        callbacks = CallbackRegistry()
        callbacks.before("remove", lambda uploader: calls.append("before"))
        callbacks.after("remove", lambda uploader: calls.append("after"))
        uploader = Uploader(config, callbacks=callbacks)

        uploader.remove()

        assert calls == ["before", "after"]
