"""Tests for the batch upload coordinator."""

import os

import pytest

from s3_retry.batch import BatchUploader, to_file_spec
from s3_retry.engine import UploadHandle, UploadState
from s3_retry.exceptions import BatchUploadError, LocalFileError, UploadCancelledError
from s3_retry.models import FileSpec, UploadResponse
from s3_retry.testing import InlineFileReader, ManualScheduler, ScriptedStorageClient
from s3_retry.uploader import RetryingUploader

CREDENTIALS = {"key": "test-key", "secret": "test-secret", "bucket": "test-bucket"}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in list(os.environ):
        if name.upper().startswith("S3_RETRY_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


class BatchRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, error, results):
        self.calls.append((error, results))


class HeldUploads:
    """upload_fn whose handles the test completes by hand."""

    def __init__(self):
        self.handles = []

    def __call__(self, src, dest, on_done):
        handle = UploadHandle(dest, on_done)
        self.handles.append(handle)
        return handle


def ok(key, attempts=1):
    return UploadResponse(key=key, status_code=200, attempts=attempts)


def make_uploader(client, **options):
    return RetryingUploader(
        storage_client_factory=client.factory,
        file_reader=InlineFileReader(),
        scheduler=ManualScheduler(),
        **{**CREDENTIALS, **options}
    )


def test_two_files_results_in_input_order(tmp_path):
    """Two successful uploads yield two results in input order."""
    first = tmp_path / "a.txt"
    second = tmp_path / "b.json"
    first.write_text("first")
    second.write_text("{}")
    client = ScriptedStorageClient.always_succeeding()
    done = BatchRecorder()

    batch = make_uploader(client).upload_files(
        [{"src": str(first), "dest": "docs/a.txt"}, {"src": str(second), "dest": "docs/b.json"}],
        done,
    )

    assert len(done.calls) == 1
    error, results = done.calls[0]
    assert error is None
    assert [result.key for result in results] == ["docs/a.txt", "docs/b.json"]
    assert batch.result(timeout=0) == results


def test_missing_source_reports_error(tmp_path):
    """A batch containing a missing file completes with an error."""
    present = tmp_path / "a.txt"
    present.write_text("here")
    client = ScriptedStorageClient.always_succeeding()
    done = BatchRecorder()

    batch = make_uploader(client).upload_files(
        [(str(present), "docs/a.txt"), (str(tmp_path / "gone.txt"), "docs/gone.txt")],
        done,
    )

    assert len(done.calls) == 1
    error, results = done.calls[0]
    assert isinstance(error, BatchUploadError)
    assert error.index == 1
    assert isinstance(error.cause, LocalFileError)
    assert results[0].key == "docs/a.txt"
    assert results[1] is None
    with pytest.raises(BatchUploadError):
        batch.result(timeout=0)


def test_results_keep_input_order_when_completed_out_of_order():
    """Completion order does not affect result order."""
    uploads = HeldUploads()
    done = BatchRecorder()

    BatchUploader(uploads).upload_files([("a", "k/a"), ("b", "k/b"), ("c", "k/c")], done)
    for handle in reversed(uploads.handles):
        handle.complete(None, ok(handle.key), 1)

    assert len(done.calls) == 1
    assert [result.key for result in done.calls[0][1]] == ["k/a", "k/b", "k/c"]


def test_first_error_cancels_siblings():
    """The first failure fires the batch callback once and cancels uploads still in flight."""
    uploads = HeldUploads()
    done = BatchRecorder()

    batch = BatchUploader(uploads).upload_files([("a", "k/a"), ("b", "k/b"), ("c", "k/c")], done)
    uploads.handles[0].complete(None, ok("k/a"), 1)
    uploads.handles[1].complete(ConnectionError("reset"), None, 3)

    assert len(done.calls) == 1
    error, results = done.calls[0]
    assert isinstance(error, BatchUploadError)
    assert error.index == 1
    assert results[0].key == "k/a"
    assert uploads.handles[2].state == UploadState.CANCELLED
    with pytest.raises(UploadCancelledError):
        uploads.handles[2].result(timeout=0)

    # A late success from the cancelled sibling changes nothing
    assert uploads.handles[2].complete(None, ok("k/c"), 1) is False
    assert len(done.calls) == 1
    assert batch.remaining == 0


def test_siblings_continue_without_cancel_on_error():
    """With cancel_on_error=False siblings keep running and their results are still recorded."""
    uploads = HeldUploads()
    done = BatchRecorder()

    batch = BatchUploader(uploads, cancel_on_error=False).upload_files([("a", "k/a"), ("b", "k/b")], done)
    uploads.handles[0].complete(ConnectionError("reset"), None, 3)

    assert len(done.calls) == 1
    assert uploads.handles[1].state == UploadState.IDLE

    uploads.handles[1].complete(None, ok("k/b"), 1)
    assert len(done.calls) == 1
    assert batch.results[1].key == "k/b"
    assert batch.remaining == 0


def test_synchronous_failure_skips_remaining_files(tmp_path):
    """When an early file fails before later ones start, the later ones are never launched."""
    later = tmp_path / "later.txt"
    later.write_text("later")
    client = ScriptedStorageClient.always_succeeding()
    done = BatchRecorder()

    batch = make_uploader(client).upload_files(
        [(str(tmp_path / "missing.txt"), "k/missing.txt"), (str(later), "k/later.txt")],
        done,
    )

    assert client.put_count == 0
    assert batch.handles[1] is None
    assert done.calls[0][1] == [None, None]
    assert batch.remaining == 0


def test_retries_inside_batch(tmp_path):
    """Each file in a batch is retried independently."""
    source = tmp_path / "a.txt"
    source.write_text("a")
    client = ScriptedStorageClient([503, 200])
    uploader = make_uploader(client)
    done = BatchRecorder()

    uploader.upload_files([(str(source), "k/a.txt")], done)
    assert done.calls == []
    uploader.engine.scheduler.run_pending()

    error, results = done.calls[0]
    assert error is None
    assert results[0].attempts == 2


def test_empty_batch_completes_immediately():
    """No files means immediate success with no results."""
    done = BatchRecorder()
    batch = BatchUploader(HeldUploads()).upload_files([], done)

    assert done.calls == [(None, [])]
    assert batch.done()


def test_file_spec_inputs():
    """FileSpec, tuples and dicts are accepted."""
    spec = FileSpec(src="a", dest="b")
    assert to_file_spec(spec) is spec
    assert to_file_spec(("a", "b")) == spec
    assert to_file_spec({"src": "a", "dest": "b"}) == spec
