# Test configuration

import io
import os
import sys
from typing import Dict, Optional, Set

import boto3
import pytest
from moto import mock_aws
from PIL import Image

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fileshelf.config.settings import UploaderConfig
from tests.consts import TEST_BUCKET_NAME


class FakeRecord:
    """In-memory stand-in for a persisted model with one mounted attribute."""

    def __init__(self, persisted: bool = False):
        self.persisted = persisted
        self.attributes: Dict[str, Optional[str]] = {}
        self.changed: Set[str] = set()

    def is_persisted(self) -> bool:
        return self.persisted

    def attribute_changed(self, name: str) -> bool:
        return name in self.changed

    def read_identifier(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def write_identifier(self, name: str, identifier: Optional[str]) -> None:
        self.attributes[name] = identifier

    def assign(self, name: str, value: str) -> None:
        """Change an attribute the way application code would."""
        self.attributes[name] = value
        self.changed.add(name)

    def save(self) -> None:
        self.persisted = True
        self.changed.clear()


def make_image(width: int = 100, height: int = 80, format: str = "PNG", color=(200, 30, 30)) -> bytes:
    """Encode a solid-color image."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=format)
    return buffer.getvalue()


@pytest.fixture
def config(tmp_path):
    """Filesystem uploader config rooted in a temp directory."""
    return UploaderConfig(root=str(tmp_path / "public"))


@pytest.fixture
def record():
    return FakeRecord()


@pytest.fixture
def png_bytes():
    return make_image()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches real AWS."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def mocked_aws(aws_credentials):
    """Moto-backed S3 with the test bucket created."""
    with mock_aws():
        s3_client = boto3.client("s3", region_name="us-east-1")
        s3_client.create_bucket(Bucket=TEST_BUCKET_NAME)
        yield s3_client


@pytest.fixture
def s3_config(tmp_path):
    return UploaderConfig(
        storage="s3",
        root=str(tmp_path / "public"),
        s3_bucket=TEST_BUCKET_NAME,
        s3_region="us-east-1",
    )


@pytest.fixture
def image_factory():
    return make_image


@pytest.fixture
def record_factory():
    return FakeRecord
