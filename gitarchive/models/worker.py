import functools
import logging
import sys
import threading
import time
from datetime import datetime, timezone
from typing import BinaryIO, Callable

import httpx

from gitarchive.models.blob import BlobStore
from gitarchive.models.fetch import FetchResult, GitFetch, repo_url
from gitarchive.models.index import ZERO_TIME, Index
from gitarchive.models.metrics import Counters
from gitarchive.models.queue import WorkQueue
from gitarchive.models.schedule import ALWAYS, Schedule

__all__ = ["Fetcher", "SCHEDULE_SLEEP", "EMPTY_QUEUE_SLEEP"]

logger = logging.getLogger(__name__)

SCHEDULE_SLEEP = 5 * 60
EMPTY_QUEUE_SLEEP = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Fetcher:
    def __init__(
        self,
        queue: WorkQueue | None,
        index: Index,
        blobs: BlobStore,
        *,
        schedule: Schedule = ALWAYS,
        counters: Counters | None = None,
        http_client: httpx.Client | None = None,
        progress: BinaryIO | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.queue = queue
        self.index = index
        self.blobs = blobs
        self.schedule = schedule
        self.counters = counters or Counters()
        self.http_client = http_client or httpx.Client(follow_redirects=True, timeout=60.0)
        self.progress = progress if progress is not None else sys.stderr.buffer
        self.clock = clock
        self.closing = threading.Event()

    def run(self):
        """Work until stopped. Any failure propagates and ends the loop."""
        while not self.closing.is_set():
            if not self.schedule.permits(self.clock().astimezone()):
                self.counters.add("sleep")
                logger.debug("Outside schedule, sleeping %ds", SCHEDULE_SLEEP)
                self.sleep(SCHEDULE_SLEEP)
                continue

            name, parent = self.queue.pop()
            if not name:
                self.counters.add("emptyqueue")
                logger.debug("Queue empty, sleeping %ds", EMPTY_QUEUE_SLEEP)
                self.sleep(EMPTY_QUEUE_SLEEP)
                continue

            self.fetch(name, parent)

    def sleep(self, seconds: float) -> bool:
        """Wait, returning False if interrupted by stop()."""
        return not self.closing.wait(seconds)

    def stop(self):
        self.closing.set()

    def close(self):
        self.http_client.close()

    def fetch(self, name: str, parent: str = "") -> FetchResult:
        self.counters.add("fetches")

        url = repo_url(name)
        url_parent = repo_url(parent)
        haves, deps = self.index.get_haves(url, url_parent)
        new = self.index.get_latest(url) == ZERO_TIME

        if new:
            self.counters.add("new")
        if parent:
            self.counters.add("forks")

        log_verb = "Cloning" if new else "Fetching"
        log_fork = f" (fork of {parent})" if parent else ""
        logger.info("[+] %s %s%s...", log_verb, name, log_fork)

        start = time.monotonic_ns()
        git = GitFetch(url, self.http_client)
        result = git.fetch(
            haves,
            self.blobs.new_writer,
            self.progress,
            on_bytes=functools.partial(self.counters.add, "fetchbytes"),
        )
        elapsed = time.monotonic_ns() - start

        if result.empty:
            self.counters.add("emptypack")
            logger.info("[+] Got %d refs, and an empty packfile.", len(result.refs))
        else:
            self.counters.add("fetchtime", elapsed)
            logger.info(
                "[+] Got %d refs, %d bytes in %.2fs.",
                len(result.refs),
                result.bytes_fetched,
                elapsed / 1e9,
            )

        self.index.add_fetch(url, url_parent, self.clock(), result.refs, result.pack_ref, deps)
        return result
