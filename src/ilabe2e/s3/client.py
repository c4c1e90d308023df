"""S3 client for the object-store preflight check."""

from __future__ import annotations

import socket
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

if TYPE_CHECKING:
    from ilabe2e.config import ObjectStoreConfig


class S3Error(Exception):
    """Base exception for S3 errors."""

    pass


class S3ConnectionError(S3Error):
    """Raised when S3 endpoint is unreachable."""

    pass


class S3AuthError(S3Error):
    """Raised when S3 authentication fails."""

    pass


class S3BucketError(S3Error):
    """Raised when bucket or object lookups fail."""

    pass


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


class S3Client:
    """S3 client for connectivity and data-presence checks.

    The in-cluster workflow reads its SDG input from the bucket; this
    client only answers whether that read can succeed. It never writes.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        region: str = "us-east-1",
        path_style: bool = True,
        verify_tls: bool = True,
    ):
        """Initialize S3 client.

        Args:
            endpoint: S3 endpoint URL; empty means the AWS default for the region
            access_key: S3 access key (empty falls back to the boto3 credential chain)
            secret_key: S3 secret key
            region: AWS region for signature compatibility
            path_style: Use path-style addressing (required for MinIO, ODF)
            verify_tls: Verify the endpoint certificate
        """
        self.endpoint = endpoint
        self.region = region or "us-east-1"
        self.path_style = path_style

        boto_config = BotoConfig(
            signature_version="s3v4",
            s3={"addressing_style": "path" if path_style else "virtual"},
            retries={"max_attempts": 3, "mode": "standard"},
            connect_timeout=10,
            read_timeout=30,
        )

        try:
            self._client = boto3.client(
                "s3",
                endpoint_url=endpoint or None,
                aws_access_key_id=access_key or None,
                aws_secret_access_key=secret_key or None,
                region_name=self.region,
                verify=verify_tls,
                config=boto_config,
            )
            self._init_error: str | None = None
        except Exception as e:
            self._client = None  # type: ignore[assignment]
            self._init_error = str(e)

    @classmethod
    def from_object_store(cls, store: ObjectStoreConfig) -> S3Client:
        """Create a client from the run's object-store block."""
        return cls(
            endpoint=store.endpoint,
            access_key=store.access_key,
            secret_key=store.secret_key,
            region=store.region,
            verify_tls=store.verify_tls.strip().lower() != "false",
        )

    def test_endpoint_reachable(self) -> tuple[bool, str]:
        """Test if the S3 endpoint accepts TCP connections.

        Returns:
            Tuple of (success, message)
        """
        if self._init_error:
            return False, f"Invalid endpoint: {self._init_error}"
        if not self.endpoint:
            return True, f"Using default AWS endpoint for {self.region}"

        parsed = urlparse(self.endpoint)
        host = parsed.hostname
        port = parsed.port or (443 if parsed.scheme == "https" else 80)

        if not host:
            return False, f"Invalid endpoint URL: {self.endpoint}"

        try:
            with socket.create_connection((host, port), timeout=5):
                return True, f"Endpoint {host}:{port} is reachable"
        except socket.gaierror:
            return False, f"Cannot resolve hostname: {host}"
        except TimeoutError:
            return False, f"Connection to {host}:{port} timed out"
        except OSError as e:
            return False, f"Cannot connect to {host}:{port}: {e}"

    def test_credentials(self) -> tuple[bool, str]:
        """Test if S3 credentials are valid.

        Returns:
            Tuple of (success, message)
        """
        try:
            self._client.list_buckets()
            return True, "Credentials are valid"
        except NoCredentialsError:
            return False, "No credentials provided"
        except ClientError as e:
            error_code = _error_code(e) or "Unknown"
            error_msg = e.response.get("Error", {}).get("Message", str(e))

            if error_code in ("InvalidAccessKeyId", "SignatureDoesNotMatch"):
                return False, f"Invalid credentials: {error_msg}"
            elif error_code == "AccessDenied":
                # Bucket-scoped keys may not list buckets; not conclusive
                return True, f"Credentials accepted (list denied: {error_msg})"
            else:
                return False, f"S3 error ({error_code}): {error_msg}"
        except EndpointConnectionError as e:
            return False, f"Cannot connect to endpoint: {e}"
        except Exception as e:
            return False, f"Unexpected error: {e}"

    def _lookup_failed(self, e: Exception, what: str) -> S3Error:
        if isinstance(e, EndpointConnectionError):
            return S3ConnectionError(f"Cannot connect to endpoint checking {what}: {e}")
        if isinstance(e, ClientError) and _error_code(e) in ("403", "AccessDenied"):
            return S3AuthError(f"Access denied to {what}")
        return S3BucketError(f"Error checking {what}: {e}")

    def bucket_exists(self, bucket_name: str) -> bool:
        """Check if a bucket exists.

        Raises:
            S3AuthError: If the credentials may not see the bucket
            S3ConnectionError: If the endpoint drops the request
            S3BucketError: On other errors
        """
        try:
            self._client.head_bucket(Bucket=bucket_name)
            return True
        except (ClientError, EndpointConnectionError) as e:
            if isinstance(e, ClientError) and _error_code(e) in ("404", "NoSuchBucket"):
                return False
            raise self._lookup_failed(e, f"bucket {bucket_name}")  # noqa: B904

    def object_exists(self, bucket_name: str, key: str) -> bool:
        """Check if an object exists in a bucket.

        Raises:
            S3Error: On errors other than not-found (see ``bucket_exists``)
        """
        try:
            self._client.head_object(Bucket=bucket_name, Key=key)
            return True
        except (ClientError, EndpointConnectionError) as e:
            if isinstance(e, ClientError) and _error_code(e) in ("404", "NoSuchKey", "NotFound"):
                return False
            raise self._lookup_failed(e, f"object s3://{bucket_name}/{key}")  # noqa: B904


def check_object_store(store: ObjectStoreConfig) -> dict[str, Any]:
    """Check that the SDG input data is reachable with the given settings.

    Returns:
        Dict with test results:
        {
            "endpoint_reachable": bool,
            "endpoint_message": str,
            "credentials_valid": bool,
            "credentials_message": str,
            "bucket_exists": bool,
            "data_key_exists": bool,
            "message": str,
            "overall_success": bool,
        }
    """
    result: dict[str, Any] = {
        "endpoint_reachable": False,
        "endpoint_message": "",
        "credentials_valid": False,
        "credentials_message": "",
        "bucket_exists": False,
        "data_key_exists": False,
        "message": "",
        "overall_success": False,
    }

    if not store.bucket or not store.data_key:
        result["message"] = "AWS_STORAGE_BUCKET and SDG_OBJECT_STORE_DATA_KEY must not be empty"
        return result

    client = S3Client.from_object_store(store)

    reachable, msg = client.test_endpoint_reachable()
    result["endpoint_reachable"] = reachable
    result["endpoint_message"] = msg
    if not reachable:
        result["message"] = msg
        return result

    valid, msg = client.test_credentials()
    result["credentials_valid"] = valid
    result["credentials_message"] = msg
    if not valid:
        result["message"] = msg
        return result

    try:
        if not client.bucket_exists(store.bucket):
            result["message"] = f"Bucket {store.bucket} does not exist"
            return result
        result["bucket_exists"] = True

        if not client.object_exists(store.bucket, store.data_key):
            result["message"] = f"Object s3://{store.bucket}/{store.data_key} not found"
            return result
        result["data_key_exists"] = True
    except S3Error as e:
        result["message"] = str(e)
        return result

    result["message"] = f"s3://{store.bucket}/{store.data_key} is readable"
    result["overall_success"] = True
    return result
