"""Retrying uploader: files and buffers to object storage with exponential backoff."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Optional

from .aws_services.s3 import Boto3StorageClient
from .batch import BatchDoneCallback, BatchHandle, BatchUploader, FileInput
from .engine import DoneCallback, RetryEngine, UploadHandle
from .env import RetrySettings, load_settings
from .interfaces import ContentTypeResolver, FileReader, Scheduler, StorageClient
from .local_io import MimeTypesResolver, ThreadedFileReader
from .models import StorageCredentials

logger = logging.getLogger(__name__)

StorageClientFactory = Callable[[StorageCredentials], StorageClient]


def default_storage_client_factory(credentials: StorageCredentials) -> StorageClient:
    return Boto3StorageClient(credentials)


class RetryingUploader:
    """Uploads files and buffers to a bucket, retrying failed attempts."""

    def __init__(
        self,
        settings: Optional[RetrySettings] = None,
        *,
        storage_client_factory: Optional[StorageClientFactory] = None,
        content_type_resolver: Optional[ContentTypeResolver] = None,
        file_reader: Optional[FileReader] = None,
        scheduler: Optional[Scheduler] = None,
        cancel_on_error: bool = True,
        **options: Any
    ):
        """
        Initialize the uploader.

        Settings are validated before any client is created.

        Args:
            settings: Pre-built settings; built from ``options`` and the environment when omitted
            storage_client_factory: ``factory(credentials)`` returning a StorageClient (boto3 by default)
            content_type_resolver: Maps source paths to MIME types (``mimetypes`` by default)
            file_reader: Reads source files (thread pool by default)
            scheduler: Runs delayed re-attempts (threading timers by default)
            cancel_on_error: Cancel the rest of a batch when one upload fails
            **options: key, secret, bucket, region, endpoint_url, max_retries, backoff_interval, max_workers

        Raises:
            ConfigurationError: If credentials or the bucket are missing, or a value is invalid
        """
        self.settings = settings if settings is not None else load_settings(**options)

        factory = storage_client_factory or default_storage_client_factory
        self.storage_client = factory(self.settings.credentials)
        self.content_type_resolver = content_type_resolver or MimeTypesResolver()

        if file_reader is None:
            executor = ThreadPoolExecutor(max_workers=self.settings.max_workers, thread_name_prefix="s3-retry-read")
            file_reader = ThreadedFileReader(executor, owns_executor=True)
        self.file_reader = file_reader

        self.engine = RetryEngine(
            self.storage_client,
            max_retries=self.settings.max_retries,
            backoff_interval=self.settings.backoff_interval,
            scheduler=scheduler,
        )
        self.batch = BatchUploader(self.upload, cancel_on_error=cancel_on_error)

    @property
    def max_retries(self) -> int:
        return self.settings.max_retries

    @property
    def backoff_interval(self) -> float:
        return self.settings.backoff_interval

    def calculate_backoff(self, num_retries: int) -> float:
        """Randomized backoff in milliseconds after ``num_retries`` failed attempts."""
        return self.engine.calculate_backoff(num_retries)

    def upload_with_retries(
        self,
        data: bytes,
        headers: Optional[Dict[str, Any]],
        destination: str,
        on_done: Optional[DoneCallback] = None,
    ) -> UploadHandle:
        """
        Upload an in-memory buffer with automatic retries.

        Args:
            data: Bytes to upload
            headers: Request headers; Content-Type and Content-Length are defaulted
            destination: Destination object key
            on_done: Called once as ``on_done(error, response, attempts)``

        Returns:
            UploadHandle: Handle for the upload
        """
        return self.engine.upload_with_retries(data, headers, destination, on_done)

    def upload(self, source_path: str, destination: str, on_done: Optional[DoneCallback] = None) -> UploadHandle:
        """
        Upload a file at source_path with automatic retries and exponential backoff.

        A file that cannot be read fails immediately with LocalFileError and is
        never retried.

        Args:
            source_path: Location of the file on the filesystem
            destination: Destination object key
            on_done: Called once as ``on_done(error, response, attempts)``

        Returns:
            UploadHandle: Handle for the upload
        """
        handle = UploadHandle(destination, on_done)

        def on_read(error: Optional[Exception], data: Optional[bytes]) -> None:
            if error is not None:
                handle.complete(error, None, 0)
                return
            if handle.cancelled:
                return

            try:
                headers = {
                    "Content-Type": self.content_type_resolver.lookup(source_path),
                    "Content-Length": str(len(data)),
                }
                self.engine.upload_with_retries(data, headers, destination, handle=handle)
            except Exception as e:
                logger.error(f"Failed to start upload of {source_path}: {e}")
                handle.complete(e, None, 0)

        try:
            self.file_reader.read_file(source_path, on_read)
        except Exception as e:
            # e.g. the reader's executor was shut down by close()
            logger.error(f"Failed to schedule read of {source_path}: {e}")
            handle.complete(e, None, 0)
        return handle

    def upload_files(self, files: Iterable[FileInput], on_done: Optional[BatchDoneCallback] = None) -> BatchHandle:
        """
        Upload several files concurrently and join them into one completion.

        Args:
            files: (src, dest) pairs, {"src", "dest"} dicts or FileSpec objects
            on_done: Called once as ``on_done(error, results)``; results follow input order

        Returns:
            BatchHandle: Join state of the batch
        """
        return self.batch.upload_files(files, on_done)

    def close(self) -> None:
        self.file_reader.close()
        self.storage_client.close()

    def __enter__(self) -> "RetryingUploader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
