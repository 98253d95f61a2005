"""Single-upload retry engine."""

import logging
import threading
from concurrent.futures import Future
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Optional

from tenacity import stop_after_attempt

from .backoff import wait_full_jitter
from .constants import DEFAULT_BACKOFF_INTERVAL, DEFAULT_MAX_RETRIES, SUCCESS_STATUS_CODE
from .exceptions import RetriesExhaustedError, UploadCancelledError, UploadStatusError
from .guards import OneShot
from .interfaces import Cancellable, Scheduler, StorageClient
from .models import UploadRequest, UploadResponse
from .scheduler import ThreadingScheduler

logger = logging.getLogger(__name__)

DoneCallback = Callable[[Optional[Exception], Optional[UploadResponse], int], None]


class UploadState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RetryState:
    """Attempt bookkeeping for one upload chain."""

    def __init__(self, max_attempts: int, backoff_unit: float):
        self.attempts_so_far = 0
        self.max_attempts = max_attempts
        self.backoff_unit = backoff_unit

    @property
    def attempt_number(self) -> int:
        # Read by tenacity stop and wait strategies
        return self.attempts_so_far


class UploadHandle:
    """
    Completion side of one logical upload.

    The ``on_done(error, response, attempts)`` callback and the future are
    settled exactly once, whatever the transport emits afterwards.
    """

    def __init__(self, key: str, on_done: Optional[DoneCallback] = None):
        self.key = key
        self.state = UploadState.IDLE
        self.attempts = 0
        self.future: "Future[UploadResponse]" = Future()
        # Callers cannot cancel the future behind our back; use cancel() instead
        self.future.set_running_or_notify_cancel()
        self._on_done = on_done
        self._completed = OneShot()
        self._cancelled = OneShot()
        self._lock = threading.Lock()
        self._pending: Optional[Cancellable] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.fired

    def done(self) -> bool:
        return self._completed.fired

    def result(self, timeout: Optional[float] = None) -> UploadResponse:
        return self.future.result(timeout)

    def set_pending(self, pending: Optional[Cancellable]) -> None:
        with self._lock:
            self._pending = pending

    def cancel(self) -> bool:
        """
        Stop issuing attempts and fail the upload with UploadCancelledError.

        An attempt already handed to the transport is not aborted; its outcome
        is ignored.

        Returns:
            bool: True if this call completed the upload
        """
        if self.done() or not self._cancelled.claim():
            return False
        with self._lock:
            pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()
        completed = self.complete(UploadCancelledError(self.key), None, self.attempts, UploadState.CANCELLED)
        if completed:
            logger.info(f"Upload of {self.key} cancelled after {self.attempts} attempt(s)")
        return completed

    def complete(
        self,
        error: Optional[Exception],
        response: Optional[UploadResponse],
        attempts: int,
        state: Optional[UploadState] = None,
    ) -> bool:
        """Fire the completion callback unless it already fired. Returns True if it fired now."""
        if not self._completed.claim():
            logger.debug(f"Ignoring completion signal for {self.key}: already completed")
            return False

        self.attempts = attempts
        self.state = state or (UploadState.FAILED if error is not None else UploadState.SUCCEEDED)
        if error is None:
            self.future.set_result(response)
        else:
            self.future.set_exception(error)

        if self._on_done is not None:
            try:
                self._on_done(error, response, attempts)
            except Exception:
                logger.exception(f"Completion callback for {self.key} raised")
        return True

    def __repr__(self) -> str:
        return f"UploadHandle(key={self.key!r}, state={self.state.value}, attempts={self.attempts})"


class _Attempt:
    """One put attempt; settles on its first response or error."""

    def __init__(self, number: int):
        self.number = number
        self.settled = OneShot()


class UploadChain:
    """Drives the attempts of one upload until success, exhaustion or cancellation."""

    def __init__(self, engine: "RetryEngine", request: UploadRequest, handle: UploadHandle):
        self.engine = engine
        self.request = request
        self.handle = handle
        self.state = RetryState(engine.max_retries, engine.wait.backoff_interval)

    @property
    def key(self) -> str:
        return self.request.destination

    def start(self) -> None:
        self._attempt()

    def _attempt(self) -> None:
        # Re-entered from the scheduler; the timer that got us here is spent
        self.handle.set_pending(None)
        if self.handle.cancelled:
            return

        attempt = _Attempt(self.state.attempts_so_far + 1)
        self.handle.state = UploadState.ATTEMPTING
        logger.debug(f"Uploading {self.key}, attempt {attempt.number}/{self.state.max_attempts}")

        try:
            put_request = self.engine.storage_client.put(self.key, dict(self.request.headers))
            put_request.on_response(partial(self._on_response, attempt))
            put_request.on_error(partial(self._on_error, attempt))
            put_request.end(self.request.payload)
        except Exception as e:
            logger.error(f"Failed to issue put for {self.key}: {e}")
            self._on_error(attempt, e)

    def _on_response(self, attempt: _Attempt, status_code: int, body: Any = None) -> None:
        if status_code != SUCCESS_STATUS_CODE:
            self._on_error(attempt, UploadStatusError(self.key, status_code, body))
            return

        if not attempt.settled.claim():
            logger.debug(f"Ignoring extra response for {self.key} attempt {attempt.number}")
            return

        self.state.attempts_so_far += 1
        attempts = self.state.attempts_so_far
        response = UploadResponse(
            key=self.key,
            status_code=status_code,
            body=body,
            attempts=attempts,
            url=self.engine.storage_client.object_url(self.key),
        )
        if self.handle.complete(None, response, attempts):
            logger.info(f"Uploaded {self.key} in {attempts} attempt(s)")

    def _on_error(self, attempt: _Attempt, error: Exception) -> None:
        if not attempt.settled.claim():
            logger.debug(f"Ignoring extra error for {self.key} attempt {attempt.number}: {error}")
            return

        self.state.attempts_so_far += 1
        attempts = self.state.attempts_so_far
        self.handle.attempts = attempts

        if self.engine.stop(self.state):
            logger.error(f"Upload of {self.key} failed after {attempts} attempt(s): {error}")
            self.handle.complete(RetriesExhaustedError(self.key, attempts, error), None, attempts)
            return

        if self.handle.cancelled:
            return

        delay = self.engine.wait.compute_delay(attempts)
        logger.warning(
            f"Upload of {self.key} failed on attempt {attempts}/{self.state.max_attempts}: {error}. "
            f"Retrying in {delay:.0f} ms"
        )
        self.handle.state = UploadState.RETRYING
        self.handle.set_pending(self.engine.scheduler.call_later(delay / 1000.0, self._attempt))


class RetryEngine:
    """Uploads buffers with retries and full-jitter exponential backoff."""

    def __init__(
        self,
        storage_client: StorageClient,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_interval: float = DEFAULT_BACKOFF_INTERVAL,
        scheduler: Optional[Scheduler] = None,
        wait: Optional[wait_full_jitter] = None,
    ):
        """
        Initialize the engine.

        Args:
            storage_client: Backend that performs put attempts
            max_retries: Attempts allowed before an upload fails
            backoff_interval: Backoff base unit in milliseconds
            scheduler: Runs delayed re-attempts (threading timers by default)
            wait: Backoff strategy; overrides backoff_interval when given
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.storage_client = storage_client
        self.max_retries = max_retries
        self.wait = wait or wait_full_jitter(backoff_interval)
        self.stop = stop_after_attempt(max_retries)
        self.scheduler = scheduler or ThreadingScheduler()

    def calculate_backoff(self, attempt: int) -> float:
        """Backoff in milliseconds before the attempt following ``attempt`` failures."""
        return self.wait.compute_delay(attempt)

    def upload_with_retries(
        self,
        data: bytes,
        headers: Optional[Dict[str, Any]],
        destination: str,
        on_done: Optional[DoneCallback] = None,
        handle: Optional[UploadHandle] = None,
    ) -> UploadHandle:
        """
        Upload a buffer, retrying failed attempts. Returns without waiting.

        Args:
            data: Bytes to upload
            headers: Request headers; Content-Type and Content-Length are filled in if absent
            destination: Destination object key
            on_done: Called once as ``on_done(error, response, attempts)``
            handle: Pre-created handle to complete instead of a new one

        Returns:
            UploadHandle: Handle for the upload
        """
        if handle is None:
            handle = UploadHandle(destination, on_done)
        request = UploadRequest.build(data, headers, destination)
        UploadChain(self, request, handle).start()
        return handle
