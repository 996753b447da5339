import logging
from pathlib import PurePosixPath
from typing import Iterator
from urllib.parse import quote, unquote

import fsspec

from gitarchive.errors import BlobWriteFailed

__all__ = ["BlobStore", "BlobWriter"]

logger = logging.getLogger(__name__)


class BlobWriter:
    """Streaming sink for one blob.

    The underlying file is only opened on the first write, so a writer that
    never receives data leaves nothing behind in the store.
    """

    def __init__(self, fs, path: str, name: str):
        self.fs = fs
        self.path = path
        self.name = name
        self._file = None
        self.closed = False

    def write(self, data: bytes) -> int:
        try:
            if self._file is None:
                self._file = self.fs.open(self.path, "wb")
            return self._file.write(data)
        except OSError as e:
            raise BlobWriteFailed(self.name) from e

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self._file is None:
            return
        try:
            self._file.close()
        except OSError as e:
            raise BlobWriteFailed(self.name) from e

    def discard(self):
        """Close and remove whatever was written."""
        self.close()
        if self._file is not None:
            try:
                self.fs.rm(self.path)
            except OSError as e:
                raise BlobWriteFailed(self.name) from e

    @property
    def written(self) -> bool:
        return self._file is not None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
            return
        # Keep the original failure; the close error is only logged.
        try:
            self.close()
        except BlobWriteFailed:
            logger.warning(
                "Closing %s after %s also failed", self.name, exc_type.__name__, exc_info=True
            )


class BlobStore:
    """Write-once blobs addressed by arbitrary string names under an fsspec URL."""

    def __init__(self, url: str):
        fs, path = fsspec.core.url_to_fs(url)
        self.fs = fs
        self.base_path = PurePosixPath(path)
        self.fs.makedirs(str(self.base_path), exist_ok=True)

    def _path(self, name: str) -> str:
        # Pack names are URLs; quote them into a single flat key
        return str(self.base_path / quote(name, safe=""))

    def new_writer(self, name: str) -> BlobWriter:
        path = self._path(name)
        if self.fs.exists(path):
            raise BlobWriteFailed(name)
        logger.debug("Opening blob writer for %s", name)
        return BlobWriter(self.fs, path, name)

    def exists(self, name: str) -> bool:
        return self.fs.exists(self._path(name))

    def read(self, name: str) -> bytes:
        with self.fs.open(self._path(name), "rb") as f:
            return f.read()

    def names(self) -> Iterator[str]:
        try:
            entries = self.fs.ls(str(self.base_path), detail=False)
        except FileNotFoundError:
            entries = []
        for entry in sorted(entries):
            yield unquote(PurePosixPath(entry).name)
