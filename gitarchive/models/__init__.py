from gitarchive.models.blob import BlobStore, BlobWriter
from gitarchive.models.fetch import FetchResult, GitFetch
from gitarchive.models.index import BlacklistState, Index
from gitarchive.models.metrics import Counters
from gitarchive.models.queue import FileQueue, WorkQueue
from gitarchive.models.schedule import WeekMap
from gitarchive.models.worker import Fetcher

__all__ = [
    "BlacklistState",
    "BlobStore",
    "BlobWriter",
    "Counters",
    "FetchResult",
    "Fetcher",
    "FileQueue",
    "GitFetch",
    "Index",
    "WeekMap",
    "WorkQueue",
]
