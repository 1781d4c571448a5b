# Configuration management

from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError
from pydantic_settings import BaseSettings  # type: ignore

from fileshelf.errors import ConfigurationError


class StorageBackend(str, Enum):
    """Storage backends an uploader can persist to."""
    FILE = "file"
    S3 = "s3"

    @classmethod
    def parse(cls, value: Any) -> "StorageBackend":
        if isinstance(value, cls):
            return value
        aliases = {
            "file": cls.FILE,
            "fs://": cls.FILE,
            "filesystem": cls.FILE,
            "s3": cls.S3,
            "s3://": cls.S3,
        }
        try:
            return aliases[str(value).lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unsupported storage backend: {value}. "
                "Supported backends: 'file', 'fs://', 'filesystem', 's3', 's3://'"
            ) from None


class AccessPolicy(str, Enum):
    """Canned access policies applied to objects written to S3."""
    PRIVATE = "private"
    PUBLIC_READ = "public_read"
    PUBLIC_READ_WRITE = "public_read_write"
    AUTHENTICATED_READ = "authenticated_read"

    @property
    def acl(self) -> str:
        """ACL header value, e.g. 'public-read'."""
        return self.value.replace("_", "-")


class Settings(BaseSettings):
    # Storage
    storage_backend: str = "file"
    root: str = "./public"
    store_dir: str = "uploads"
    cache_dir: str = "uploads/tmp"
    asset_host: Optional[str] = None

    # S3
    s3_bucket: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: Optional[str] = None
    s3_access_policy: str = "public_read"
    s3_cname: Optional[str] = None
    s3_headers: Dict[str, Any] = {}
    s3_authenticated_url_expiration: int = 600  # seconds

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_prefix = "FILESHELF_"
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()


class UploaderConfig(BaseModel):
    """
    Immutable per-uploader configuration.

    Built once (usually from Settings) and handed to each Uploader; storage
    backends and the cache read everything they need from it.
    """
    storage: StorageBackend = StorageBackend.FILE
    root: str = "./public"
    store_dir: str = "uploads"
    cache_dir: str = "uploads/tmp"
    asset_host: Optional[str] = None

    s3_bucket: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: Optional[str] = None
    s3_access_policy: AccessPolicy = AccessPolicy.PUBLIC_READ
    s3_cname: Optional[str] = None
    s3_headers: Dict[str, Any] = {}
    s3_authenticated_url_expiration: int = 600

    class Config:
        frozen = True

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "UploaderConfig":
        """
        Build an uploader configuration from application settings.

        Args:
            settings: Settings to read (defaults to get_settings())
            **overrides: Field values that take precedence over settings

        Raises:
            ConfigurationError: If any value is invalid
        """
        settings = settings or get_settings()
        values = {
            "storage": settings.storage_backend,
            "root": settings.root,
            "store_dir": settings.store_dir,
            "cache_dir": settings.cache_dir,
            "asset_host": settings.asset_host,
            "s3_bucket": settings.s3_bucket,
            "s3_access_key_id": settings.s3_access_key_id,
            "s3_secret_access_key": settings.s3_secret_access_key,
            "s3_region": settings.s3_region,
            "s3_endpoint_url": settings.s3_endpoint_url,
            "s3_access_policy": settings.s3_access_policy,
            "s3_cname": settings.s3_cname,
            "s3_headers": dict(settings.s3_headers),
            "s3_authenticated_url_expiration": settings.s3_authenticated_url_expiration,
        }
        values.update(overrides)
        values["storage"] = StorageBackend.parse(values["storage"])
        return cls.build(**values)

    @classmethod
    def build(cls, **values) -> "UploaderConfig":
        """Construct a config, reporting validation failures as ConfigurationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid uploader configuration: {e}") from e
