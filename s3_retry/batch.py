"""Batch upload coordinator: fans out uploads and joins them into one completion."""

import logging
import threading
from concurrent.futures import Future
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .engine import DoneCallback, UploadHandle
from .exceptions import BatchUploadError, UploadCancelledError
from .guards import OneShot
from .models import FileSpec, UploadResponse

logger = logging.getLogger(__name__)

FileInput = Union[FileSpec, Tuple[str, str], Dict[str, str]]
UploadFn = Callable[[str, str, DoneCallback], UploadHandle]
BatchDoneCallback = Callable[[Optional[Exception], List[Optional[UploadResponse]]], None]


def to_file_spec(item: FileInput) -> FileSpec:
    """Accept FileSpec, (src, dest) pairs or {"src": ..., "dest": ...} dicts."""
    if isinstance(item, FileSpec):
        return item
    if isinstance(item, dict):
        return FileSpec(**item)
    src, dest = item
    return FileSpec(src=src, dest=dest)


class BatchHandle:
    """Join state of one batch. Results keep the input order."""

    def __init__(self, files: List[FileSpec], on_done: Optional[BatchDoneCallback] = None):
        self.files = files
        self.results: List[Optional[UploadResponse]] = [None] * len(files)
        self.handles: List[Optional[UploadHandle]] = [None] * len(files)
        self.remaining = len(files)
        self.first_error: Optional[BatchUploadError] = None
        self.future: "Future[List[Optional[UploadResponse]]]" = Future()
        self.future.set_running_or_notify_cancel()
        self._on_done = on_done
        self._fired = OneShot()
        self._lock = threading.Lock()

    @property
    def failed(self) -> bool:
        return self.first_error is not None

    def done(self) -> bool:
        return self._fired.fired

    def result(self, timeout: Optional[float] = None) -> List[Optional[UploadResponse]]:
        return self.future.result(timeout)

    def record(self, index: int, error: Optional[Exception], response: Optional[UploadResponse]) -> bool:
        """
        Record one upload outcome.

        Returns:
            bool: True if this outcome is the first error of the batch
        """
        with self._lock:
            self.results[index] = response
            self.remaining -= 1
            is_first_error = error is not None and self.first_error is None
            if is_first_error:
                self.first_error = BatchUploadError(index, self.files[index].src, error)
            finished = self.remaining == 0
            batch_error = self.first_error
            snapshot = list(self.results)

        if is_first_error or finished:
            self.fire(batch_error, snapshot)
        return is_first_error

    def fire(self, error: Optional[Exception], results: List[Optional[UploadResponse]]) -> None:
        if not self._fired.claim():
            return

        if error is None:
            logger.info(f"Batch of {len(results)} file(s) uploaded")
            self.future.set_result(results)
        else:
            logger.error(f"Batch upload failed: {error}")
            self.future.set_exception(error)

        if self._on_done is not None:
            try:
                self._on_done(error, results)
            except Exception:
                logger.exception("Batch completion callback raised")

    def cancel(self) -> int:
        """Cancel every upload still in flight. Returns how many were cancelled."""
        cancelled = 0
        for handle in list(self.handles):
            if handle is not None and not handle.done() and handle.cancel():
                cancelled += 1
        return cancelled


class BatchUploader:
    """Launches one upload per file without waiting and joins the results."""

    def __init__(self, upload_fn: UploadFn, cancel_on_error: bool = True):
        """
        Args:
            upload_fn: ``upload_fn(src, dest, on_done)`` returning an UploadHandle
            cancel_on_error: Cancel in-flight siblings once any upload fails
        """
        self.upload_fn = upload_fn
        self.cancel_on_error = cancel_on_error

    def upload_files(self, files: Iterable[FileInput], on_done: Optional[BatchDoneCallback] = None) -> BatchHandle:
        """
        Upload files concurrently.

        ``on_done(None, results)`` fires once every upload succeeded;
        ``on_done(BatchUploadError, partial_results)`` fires on the first failure.

        Args:
            files: Sources and destinations
            on_done: Batch completion callback

        Returns:
            BatchHandle: Join state of the batch
        """
        specs = [to_file_spec(item) for item in files]
        batch = BatchHandle(specs, on_done)
        if not specs:
            batch.fire(None, [])
            return batch

        logger.info(f"Uploading batch of {len(specs)} file(s)")
        for index, spec in enumerate(specs):
            if self.cancel_on_error and batch.failed:
                batch.record(index, UploadCancelledError(spec.dest), None)
                continue
            batch.handles[index] = self.upload_fn(spec.src, spec.dest, partial(self._on_item_done, batch, index))

        # A failure may have landed before every handle was registered
        if self.cancel_on_error and batch.failed:
            batch.cancel()
        return batch

    def _on_item_done(
        self,
        batch: BatchHandle,
        index: int,
        error: Optional[Exception],
        response: Optional[UploadResponse],
        attempts: Any = None,
    ) -> None:
        is_first_error = batch.record(index, error, response)
        if is_first_error and self.cancel_on_error:
            cancelled = batch.cancel()
            if cancelled:
                logger.warning(f"Cancelled {cancelled} in-flight upload(s) after {batch.files[index].src} failed")
