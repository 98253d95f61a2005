"""Local file reads and content-type lookup."""

import logging
import mimetypes
from concurrent.futures import Executor
from typing import Optional

from .constants import DEFAULT_CONTENT_TYPE
from .exceptions import LocalFileError
from .interfaces import ContentTypeResolver, FileReader, ReadCallback

logger = logging.getLogger(__name__)


class MimeTypesResolver(ContentTypeResolver):
    """Content type from the file extension, falling back to a default."""

    def __init__(self, default: str = DEFAULT_CONTENT_TYPE):
        self.default = default

    def lookup(self, path: str) -> str:
        content_type, _ = mimetypes.guess_type(path, strict=False)
        return content_type or self.default


def read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


class ThreadedFileReader(FileReader):
    """Reads files on an executor and reports through a callback."""

    def __init__(self, executor: Executor, owns_executor: bool = False):
        self.executor = executor
        self.owns_executor = owns_executor

    def read_file(self, path: str, callback: ReadCallback) -> None:
        self.executor.submit(self._read, path, callback)

    def _read(self, path: str, callback: ReadCallback) -> None:
        data: Optional[bytes] = None
        try:
            data = read_bytes(path)
        except Exception as e:
            logger.error(f"Failed to read {path}: {e}")
            callback(LocalFileError(path, e), None)
            return
        try:
            callback(None, data)
        except Exception:
            # Nobody inspects the executor future
            logger.exception(f"Read callback for {path} raised")

    def close(self) -> None:
        if self.owns_executor:
            self.executor.shutdown(wait=True)
