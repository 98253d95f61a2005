"""Abstract interfaces for the collaborators the retry engine depends on."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ResponseListener = Callable[[int, Any], None]
ErrorListener = Callable[[Exception], None]
ReadCallback = Callable[[Optional[Exception], Optional[bytes]], None]


class PutRequest(ABC):
    """
    A single put attempt.

    Listeners are registered before ``end`` is called. The request then emits
    either ``response(status_code, body)`` or ``error(err)``. Transports are not
    trusted to emit only once; consumers must tolerate duplicates.
    """

    def __init__(self, key: str, headers: Dict[str, str]):
        self.key = key
        self.headers = headers
        self._response_listeners: List[ResponseListener] = []
        self._error_listeners: List[ErrorListener] = []

    def on_response(self, listener: ResponseListener) -> "PutRequest":
        self._response_listeners.append(listener)
        return self

    def on_error(self, listener: ErrorListener) -> "PutRequest":
        self._error_listeners.append(listener)
        return self

    def emit_response(self, status_code: int, body: Any = None) -> None:
        for listener in list(self._response_listeners):
            listener(status_code, body)

    def emit_error(self, error: Exception) -> None:
        if not self._error_listeners:
            logger.error(f"Unhandled error on put request for {self.key}: {error}")
        for listener in list(self._error_listeners):
            listener(error)

    @abstractmethod
    def end(self, payload: bytes) -> None:
        """
        Flush the payload and send the request. Must not block the caller.

        Args:
            payload: Request body
        """


class StorageClient(ABC):
    """Abstract base class for object storage backends."""

    @abstractmethod
    def put(self, key: str, headers: Dict[str, str]) -> PutRequest:
        """
        Create a put request for an object.

        Args:
            key: Destination object key
            headers: Request headers, including Content-Type and Content-Length

        Returns:
            PutRequest: Request handle; nothing is sent until ``end`` is called
        """

    def object_url(self, key: str) -> Optional[str]:
        """URL of a stored object, if the backend can build one."""
        return None

    def close(self) -> None:
        """Release resources held by the client."""


class ContentTypeResolver(ABC):
    """Maps a path to a MIME type."""

    @abstractmethod
    def lookup(self, path: str) -> str:
        """Return a MIME type for ``path``; never fails."""


class FileReader(ABC):
    """Reads whole files asynchronously."""

    @abstractmethod
    def read_file(self, path: str, callback: ReadCallback) -> None:
        """
        Read ``path`` fully and invoke ``callback(error, data)`` exactly once.

        Args:
            path: File to read
            callback: Receives ``(None, data)`` or ``(error, None)``
        """

    def close(self) -> None:
        """Release resources held by the reader."""


class Cancellable(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Prevent the scheduled call from running."""


class Scheduler(ABC):
    """Runs callables after a delay without blocking the caller."""

    @abstractmethod
    def call_later(self, delay: float, fn: Callable[..., None], *args: Any) -> Cancellable:
        """
        Schedule ``fn(*args)``.

        Args:
            delay: Delay in seconds
            fn: Callable to run

        Returns:
            Cancellable: Handle that can cancel the call before it runs
        """
