"""boto3-backed storage client for the retry engine."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, NoCredentialsError

from s3_retry.aws_services.constants import (
    S3_DEFAULT_MAX_WORKERS,
    S3_METADATA_HEADER_PREFIX,
    S3_PUT_HEADER_PARAMS,
)
from s3_retry.interfaces import PutRequest, StorageClient
from s3_retry.models import StorageCredentials

logger = logging.getLogger(__name__)


def headers_to_put_params(headers: Dict[str, str]) -> Dict[str, Any]:
    """
    Translate HTTP request headers into put_object keyword arguments.

    Args:
        headers: Request headers

    Returns:
        Dict: put_object parameters (ContentType, ContentLength, Metadata, ...)
    """
    params: Dict[str, Any] = {}
    metadata: Dict[str, str] = {}

    for name, value in headers.items():
        lowered = name.lower()
        if lowered.startswith(S3_METADATA_HEADER_PREFIX):
            metadata[lowered[len(S3_METADATA_HEADER_PREFIX):]] = value
        elif lowered == 'content-length':
            params['ContentLength'] = int(value)
        elif lowered in S3_PUT_HEADER_PARAMS:
            params[S3_PUT_HEADER_PARAMS[lowered]] = value
        else:
            logger.debug(f"Dropping header not supported by put_object: {name}")

    if metadata:
        params['Metadata'] = metadata
    return params


class S3PutRequest(PutRequest):
    """put_object call run on the storage client's executor."""

    def __init__(self, storage: "Boto3StorageClient", key: str, headers: Dict[str, str]):
        super().__init__(key, headers)
        self._storage = storage

    def end(self, payload: bytes) -> None:
        self._storage.executor.submit(self._send, payload)

    def _send(self, payload: bytes) -> None:
        try:
            response = self._storage.client.put_object(
                Bucket=self._storage.bucket,
                Key=self.key,
                Body=payload,
                **headers_to_put_params(self.headers)
            )
        except ClientError as e:
            status_code = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
            if status_code is None:
                logger.error(f"Failed to upload {self.key}: {e}")
                self.emit_error(e)
            else:
                logger.error(f"S3 rejected upload of {self.key} with HTTP {status_code}: {e}")
                self.emit_response(status_code, e.response)
            return
        except Exception as e:
            logger.error(f"Failed to upload {self.key}: {e}")
            self.emit_error(e)
            return

        status_code = response.get('ResponseMetadata', {}).get('HTTPStatusCode', 200)
        self.emit_response(status_code, response)


class Boto3StorageClient(StorageClient):
    """S3/R2 storage client. put requests return immediately and complete on a thread pool."""

    def __init__(
        self,
        credentials: StorageCredentials,
        s3_client=None,
        max_workers: int = S3_DEFAULT_MAX_WORKERS
    ):
        """
        Initialize the storage client.

        Args:
            credentials: Access key, secret, bucket, region and optional endpoint
            s3_client: Pre-built boto3 S3 client (created lazily when omitted)
            max_workers: Threads running put_object calls
        """
        self.credentials = credentials
        self.bucket = credentials.bucket
        self._client = s3_client
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def client(self):
        """Get S3 client with lazy initialization."""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="s3-retry-put"
            )
        return self._executor

    def _create_client(self):
        """Create configured S3 client from the credentials."""
        try:
            return boto3.client(
                's3',
                endpoint_url=self.credentials.endpoint_url,
                region_name=self.credentials.region,
                aws_access_key_id=self.credentials.access_key,
                aws_secret_access_key=self.credentials.secret_key,
                # Attempts are retried by the upload engine, not by botocore
                config=Config(retries={'max_attempts': 0})
            )
        except NoCredentialsError:
            logger.error("No AWS credentials found")
            raise
        except Exception as e:
            logger.error(f"Failed to create S3 client: {e}")
            raise

    def put(self, key: str, headers: Dict[str, str]) -> S3PutRequest:
        return S3PutRequest(self, key, headers)

    def object_url(self, key: str) -> str:
        """Construct S3 URL for object."""
        endpoint_url = self.credentials.endpoint_url
        if endpoint_url:
            # Custom endpoint (e.g., R2, LocalStack)
            return f"{endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        # Standard AWS S3
        return f"https://{self.bucket}.s3.{self.credentials.region}.amazonaws.com/{key}"

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
