"""
S3 storage provider for signed URL generation.

Features:
- Presigned GET URLs for private storage objects
- Storage path derivation from full URLs, s3:// URIs and legacy relative paths
- Works against AWS S3 and S3-compatible endpoints (MinIO, Supabase storage)

Integration:
- Uses chatsync.settings.storage for configuration
- boto3 calls are blocking and run in a worker thread
"""

import asyncio
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from chatsync.errors import SigningError
from chatsync.settings import StorageSettings, settings

# Path segments that precede the bucket name in storage API object URLs
# (e.g. /storage/v1/object/public/<bucket>/<path>)
_BUCKET_MARKERS = ("public", "sign", "authenticated")


def extract_storage_details(
    file_url: str, default_bucket: Optional[str] = None
) -> Optional[tuple[str, str]]:
    """
    Derive (bucket, path) from a stored file location.

    Supports:
    - Storage API URLs: https://host/storage/v1/object/public/<bucket>/<path>
    - S3 URIs: s3://<bucket>/<path>
    - Legacy relative paths containing "/documents/"
    - Bare relative paths (assumed to live in the default bucket)

    Args:
        file_url: Stored URL or path
        default_bucket: Bucket for relative paths (defaults to settings)

    Returns:
        (bucket, path) or None when the location cannot be signed
        (external URL, empty path)

    Example:
        >>> extract_storage_details("https://x.co/storage/v1/object/public/documents/u1/a.pdf")
        ('documents', 'u1/a.pdf')
    """
    if not file_url:
        return None

    bucket_default = default_bucket or settings.storage.default_bucket
    url = urlparse(file_url)

    if url.scheme == "s3":
        path = url.path.lstrip("/")
        return (url.netloc, path) if url.netloc and path else None

    if url.scheme in ("http", "https"):
        parts = [unquote(p) for p in url.path.split("/")]
        for marker in _BUCKET_MARKERS:
            if marker in parts:
                index = parts.index(marker)
                if index + 2 <= len(parts) - 1:
                    bucket = parts[index + 1]
                    path = "/".join(parts[index + 2 :])
                    if bucket and path:
                        return bucket, path
        if "/documents/" in url.path:
            return "documents", url.path.split("/documents/", 1)[1]
        # External link, nothing to sign
        return None

    if "/documents/" in file_url:
        return "documents", file_url.split("/documents/", 1)[1]

    path = file_url.lstrip("/")
    return (bucket_default, path) if path else None


class S3Provider:
    """
    S3 signer with chatsync settings integration.

    Falls back to the default credential chain when no access keys are
    configured (IRSA, instance profiles, environment).
    """

    def __init__(self, storage_settings: Optional[StorageSettings] = None, client: Any = None):
        """
        Initialize S3 client from settings.

        Args:
            storage_settings: Storage settings (defaults to global settings)
            client: Pre-built boto3 S3 client (tests, custom sessions)
        """
        self.settings = storage_settings or settings.storage
        self._client = client or self._create_s3_client()

    def _create_s3_client(self):
        """Create S3 client with configured credentials."""
        s3_config: dict[str, Any] = {
            "region_name": self.settings.region,
        }

        # Custom endpoint for MinIO/LocalStack/Supabase
        if self.settings.endpoint_url:
            s3_config["endpoint_url"] = self.settings.endpoint_url

        if self.settings.access_key_id and self.settings.secret_access_key:
            s3_config["aws_access_key_id"] = self.settings.access_key_id
            s3_config["aws_secret_access_key"] = self.settings.secret_access_key

        s3_config["use_ssl"] = self.settings.use_ssl

        return boto3.client("s3", **s3_config)

    async def create_signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        """
        Generate a presigned GET URL.

        Args:
            bucket: Bucket name
            path: Object key
            ttl_seconds: URL lifetime in seconds

        Returns:
            Presigned URL

        Raises:
            SigningError: If the URL could not be generated
        """
        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                "get_object",
                Params={"Bucket": bucket, "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as ex:
            logger.error(f"Failed to generate presigned URL for s3://{bucket}/{path}: {ex}")
            raise SigningError(f"could not sign s3://{bucket}/{path}") from ex
