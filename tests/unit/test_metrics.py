"""
Unit tests for Prometheus metrics.
"""

import pytest

from fileshelf.common.metrics import (
    REGISTRY,
    get_metrics,
    get_metrics_content_type,
    track_storage_operation,
)
from fileshelf.files.sanitized import SanitizedFile
from fileshelf.storage.filesystem import FilesystemStorage


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class FakeBackend:
    backend_name = "fake"

    @track_storage_operation("store")
    def store(self, fail=False):
        if fail:
            raise RuntimeError("failed")
        return "stored"


class TestTrackStorageOperation:
    def test_counts_success(self):
        before = sample("storage_operations_total", backend="fake", operation="store", status="success")

        assert FakeBackend().store() == "stored"

        after = sample("storage_operations_total", backend="fake", operation="store", status="success")
        assert after == before + 1

    def test_counts_failure_and_reraises(self):
        before = sample("storage_operations_total", backend="fake", operation="store", status="failure")

        with pytest.raises(RuntimeError):
            FakeBackend().store(fail=True)

        after = sample("storage_operations_total", backend="fake", operation="store", status="failure")
        assert after == before + 1

    def test_observes_duration(self):
        before = sample("storage_operation_duration_seconds_count", backend="fake", operation="store")

        FakeBackend().store()

        assert sample("storage_operation_duration_seconds_count", backend="fake", operation="store") == before + 1

    def test_filesystem_backend_is_tracked(self, config):
        before = sample("storage_operations_total", backend="file", operation="store", status="success")

        FilesystemStorage(config).store(SanitizedFile(b"x"), "uploads/x.txt")

        assert sample("storage_operations_total", backend="file", operation="store", status="success") == before + 1


class TestExposition:
    def test_get_metrics(self):
        FakeBackend().store()

        output = get_metrics()

        assert b"storage_operations_total" in output
        assert b"renames_total" in output

    def test_content_type(self):
        assert get_metrics_content_type().startswith("text/plain")
