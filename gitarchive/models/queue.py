import logging
import pathlib
from typing import Protocol

from gitarchive.errors import QueueFailed

__all__ = ["FileQueue", "WorkQueue"]

logger = logging.getLogger(__name__)


class WorkQueue(Protocol):
    def pop(self) -> tuple[str, str]:
        """Next ``(name, parent)``; an empty name means nothing to do right now.

        Failures are raised as QueueFailed.
        """


class FileQueue:
    """Serves ``owner/repo [parent]`` lines from a text file, in order.

    The file is re-read only once the lines already loaded run out, so an
    operator can append to it while the worker runs.
    """

    def __init__(self, path: pathlib.Path | str):
        self.path = pathlib.Path(path)
        self.position = 0
        self._lines: list[str] = []

    def _load(self):
        try:
            self._lines = self.path.read_text().splitlines()
        except FileNotFoundError:
            self._lines = []
        except OSError as e:
            raise QueueFailed(f"cannot read {self.path}: {e}") from e

    def pop(self) -> tuple[str, str]:
        if self.position >= len(self._lines):
            self._load()

        while self.position < len(self._lines):
            line = self._lines[self.position].strip()
            self.position += 1
            if not line or line.startswith("#"):
                continue
            name, _, parent = line.partition(" ")
            return name, parent.strip()
        return "", ""
