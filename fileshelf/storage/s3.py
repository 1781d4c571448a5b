"""
S3 storage backend implementation (boto3).

Objects live at s3://{bucket}/{store path}. Every write carries the
configured canned ACL, the file's Content-Type and any extra put_object
parameters from config.s3_headers.

URLs depend on the access policy:
- authenticated_read: presigned GET URL, valid for
  config.s3_authenticated_url_expiration seconds (default 600)
- anything else: public URL on the bucket host, or on config.s3_cname

S3 has no move operation, so rename is read, put at the new key, then delete
the old key. The sequence is not atomic: a failure after the put leaves both
copies, a failure during the put leaves only the old one. Nothing is rolled
back.
"""

import logging
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from fileshelf.common.metrics import track_storage_operation
from fileshelf.config.settings import AccessPolicy, UploaderConfig
from fileshelf.errors import BackendError, ConfigurationError, NotFoundError
from fileshelf.files.sanitized import DEFAULT_CONTENT_TYPE, SanitizedFile
from fileshelf.storage.adapter import StorageAdapter, StoredFile

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in NOT_FOUND_CODES


class S3File(StoredFile):
    """Handle to an object in the configured bucket."""

    def __init__(self, storage: "S3Storage", path: str):
        super().__init__(path)
        self.storage = storage
        self._headers: Optional[Dict[str, Any]] = None

    @property
    def backend_name(self) -> str:
        return self.storage.backend_name

    @property
    def bucket(self) -> str:
        return self.storage.bucket

    @property
    def headers(self) -> Dict[str, Any]:
        """
        Object metadata from a HEAD request, cached on the handle.

        A missing object yields empty headers instead of an error.
        """
        if self._headers is None:
            try:
                response = self.storage.client.head_object(Bucket=self.bucket, Key=self.path)
            except ClientError as e:
                if _is_not_found(e):
                    return {}
                raise BackendError(f"Failed to fetch headers for {self.path}: {e}") from e
            except BotoCoreError as e:
                raise BackendError(f"Failed to fetch headers for {self.path}: {e}") from e
            self._headers = {
                "ContentType": response.get("ContentType"),
                "ContentLength": response.get("ContentLength", 0),
            }
        return self._headers

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("ContentType")

    @property
    def size(self) -> int:
        return int(self.headers.get("ContentLength") or 0)

    @property
    def url(self) -> str:
        if self.storage.access_policy == AccessPolicy.AUTHENTICATED_READ:
            return self.authenticated_url()
        return self.public_url()

    def public_url(self) -> str:
        cname = self.storage.config.s3_cname
        if cname:
            return f"https://{cname}/{self.path}"
        return f"https://{self.bucket}.s3.amazonaws.com/{self.path}"

    def authenticated_url(self) -> str:
        """Presigned GET URL that expires after the configured interval."""
        try:
            return self.storage.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": self.path},
                ExpiresIn=self.storage.config.s3_authenticated_url_expiration,
            )
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Failed to sign URL for {self.path}: {e}") from e

    @track_storage_operation("read")
    def read(self) -> bytes:
        try:
            response = self.storage.client.get_object(Bucket=self.bucket, Key=self.path)
            body = response["Body"].read()
        except ClientError as e:
            if _is_not_found(e):
                raise NotFoundError(f"File not found: s3://{self.bucket}/{self.path}") from e
            raise BackendError(f"Failed to read {self.path}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"Failed to read {self.path}: {e}") from e

        self._headers = {
            "ContentType": response.get("ContentType"),
            "ContentLength": response.get("ContentLength", len(body)),
        }
        return body

    def store(self, file: SanitizedFile) -> None:
        """Upload a file to this handle's key, replacing any existing object."""
        content_type = file.content_type or DEFAULT_CONTENT_TYPE
        body = file.read()
        self.storage.put(self.path, body, content_type)
        self._headers = {"ContentType": content_type, "ContentLength": len(body)}

    def rename(self, new_path: str) -> "S3File":
        """Copy this object to new_path and delete it. Not atomic."""
        body = self.read()
        content_type = self.content_type or DEFAULT_CONTENT_TYPE
        self.storage.put(new_path, body, content_type)
        self.delete()
        return S3File(self.storage, new_path)

    @track_storage_operation("delete")
    def delete(self) -> None:
        # S3 answers DeleteObject on a missing key with success
        try:
            self.storage.client.delete_object(Bucket=self.bucket, Key=self.path)
        except ClientError as e:
            if _is_not_found(e):
                return
            raise BackendError(f"Failed to delete {self.path}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"Failed to delete {self.path}: {e}") from e
        self._headers = None

    def exists(self) -> bool:
        return bool(self.headers)


class S3Storage(StorageAdapter):
    """
    S3-based storage implementation.

    The boto3 client is created on first use and reused for the lifetime of
    the storage instance.
    """

    backend_name = "s3"

    def __init__(self, config: UploaderConfig, client: Any = None):
        """
        Initialize S3 storage.

        Args:
            config: Uploader configuration (s3_* fields)
            client: Optional pre-built boto3 S3 client

        Raises:
            ConfigurationError: If no bucket is configured
        """
        super().__init__(config)
        if not config.s3_bucket:
            raise ConfigurationError("S3 storage requires s3_bucket to be configured")
        self.bucket = config.s3_bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.config.s3_region,
                endpoint_url=self.config.s3_endpoint_url,
                aws_access_key_id=self.config.s3_access_key_id,
                aws_secret_access_key=self.config.s3_secret_access_key,
            )
            logger.info(f"Using S3 bucket: {self.bucket}")
        return self._client

    @property
    def access_policy(self) -> AccessPolicy:
        return self.config.s3_access_policy

    def put(self, path: str, body: bytes, content_type: str) -> None:
        """Write an object with the configured ACL, content type and extra headers."""
        params = {
            "ACL": self.access_policy.acl,
            "ContentType": content_type,
        }
        params.update(self.config.s3_headers)
        try:
            self.client.put_object(Bucket=self.bucket, Key=path, Body=body, **params)
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Failed to upload s3://{self.bucket}/{path}: {e}") from e

    @track_storage_operation("store")
    def store(self, file: SanitizedFile, path: str) -> S3File:
        stored = S3File(self, path)
        stored.store(file)
        logger.debug(f"Uploaded {file.filename} to s3://{self.bucket}/{path}")
        return stored

    def retrieve(self, identifier: str, version: Optional[str] = None) -> S3File:
        return S3File(self, self.store_path(identifier, version))

    @track_storage_operation("rename")
    def rename(self, file: StoredFile, new_path: str) -> S3File:
        source = file if isinstance(file, S3File) else S3File(self, file.path)
        if source.path == new_path:
            return S3File(self, new_path)
        renamed = source.rename(new_path)
        logger.info(f"Renamed s3://{self.bucket}/{file.path} to {new_path}")
        return renamed

    def list_files(self, prefix: str = "") -> list[str]:
        keys = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Failed to list s3://{self.bucket}/{prefix}: {e}") from e
        return sorted(keys)
