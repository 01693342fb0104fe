"""
Storage access for chatsync.

Usage:
    from chatsync.services.fs import S3Provider, extract_storage_details

    signer = S3Provider()
    bucket, path = extract_storage_details(document["file_url"])
    url = await signer.create_signed_url(bucket, path, ttl_seconds=3600)
"""

from chatsync.services.fs.s3_provider import S3Provider, extract_storage_details

__all__ = [
    "S3Provider",
    "extract_storage_details",
]
