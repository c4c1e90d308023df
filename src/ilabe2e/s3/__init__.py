"""S3 client module for ilab-e2e."""

from .client import (
    S3AuthError,
    S3BucketError,
    S3Client,
    S3ConnectionError,
    S3Error,
    check_object_store,
)

__all__ = [
    "S3Client",
    "S3Error",
    "S3ConnectionError",
    "S3AuthError",
    "S3BucketError",
    "check_object_store",
]
