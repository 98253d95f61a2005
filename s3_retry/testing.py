"""In-process collaborators for tests and local development."""

from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple, Union

from .exceptions import LocalFileError
from .interfaces import Cancellable, FileReader, PutRequest, ReadCallback, Scheduler, StorageClient
from .local_io import read_bytes
from .models import StorageCredentials

# An outcome is a status code, an exception, a sequence of those emitted in
# order on the same request, or None for a request that never answers.
Event = Union[int, Exception]
Outcome = Union[Event, Sequence[Event], None]


class ScriptedPutRequest(PutRequest):
    def __init__(self, client: "ScriptedStorageClient", key: str, headers: Dict[str, str], outcome: Outcome):
        super().__init__(key, headers)
        self._client = client
        self._outcome = outcome

    def end(self, payload: bytes) -> None:
        self._client.calls.append((self.key, dict(self.headers), payload))
        outcome = self._outcome
        if outcome is None:
            return
        events = outcome if isinstance(outcome, (list, tuple)) else [outcome]
        for event in events:
            if isinstance(event, Exception):
                self.emit_error(event)
            else:
                self.emit_response(event, {"status": event})


class ScriptedStorageClient(StorageClient):
    """
    Answers each put with the next scripted outcome, synchronously inside ``end``.

    The last outcome repeats once the script runs out.
    """

    def __init__(self, outcomes: Sequence[Outcome] = (200,), credentials: Optional[StorageCredentials] = None):
        if not outcomes:
            raise ValueError("outcomes must not be empty")
        self.outcomes = list(outcomes)
        self.credentials = credentials
        self.calls: List[Tuple[str, Dict[str, str], bytes]] = []
        self.closed = False

    @classmethod
    def always_succeeding(cls) -> "ScriptedStorageClient":
        return cls([200])

    @classmethod
    def always_failing(cls, error: Optional[Exception] = None) -> "ScriptedStorageClient":
        return cls([error if error is not None else ConnectionError("connection reset")])

    @property
    def put_count(self) -> int:
        return len(self.calls)

    def factory(self, credentials: StorageCredentials) -> "ScriptedStorageClient":
        self.credentials = credentials
        return self

    def put(self, key: str, headers: Dict[str, str]) -> ScriptedPutRequest:
        index = min(len(self.calls), len(self.outcomes) - 1)
        return ScriptedPutRequest(self, key, headers, self.outcomes[index])

    def object_url(self, key: str) -> Optional[str]:
        if self.credentials is None:
            return None
        return f"memory://{self.credentials.bucket}/{key}"

    def close(self) -> None:
        self.closed = True


class NoopStorageClient(ScriptedStorageClient):
    """Accepts every put with HTTP 200 and stores nothing."""

    def __init__(self, credentials: Optional[StorageCredentials] = None):
        super().__init__([200], credentials)


class ScheduledCall(Cancellable):
    def __init__(self, delay: float, fn: Callable[..., None], args: Tuple[Any, ...]):
        self.delay = delay
        self.fn = fn
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Queues delayed calls until ``run_pending`` is called. Delays are recorded, never slept."""

    def __init__(self):
        self.pending: Deque[ScheduledCall] = deque()
        self.delays: List[float] = []

    def call_later(self, delay: float, fn: Callable[..., None], *args: Any) -> ScheduledCall:
        call = ScheduledCall(delay, fn, args)
        self.pending.append(call)
        self.delays.append(delay)
        return call

    def run_pending(self, limit: int = 10000) -> int:
        """Run queued calls, including ones they schedule, until none are left. Returns how many ran."""
        ran = 0
        while self.pending:
            if ran >= limit:
                raise RuntimeError(f"More than {limit} scheduled calls; is something retrying forever?")
            call = self.pending.popleft()
            if call.cancelled:
                continue
            call.fn(*call.args)
            ran += 1
        return ran


class InlineFileReader(FileReader):
    """Reads files synchronously on the calling thread."""

    def __init__(self):
        self.paths: List[str] = []

    def read_file(self, path: str, callback: ReadCallback) -> None:
        self.paths.append(path)
        try:
            data = read_bytes(path)
        except Exception as e:
            callback(LocalFileError(path, e), None)
            return
        callback(None, data)
