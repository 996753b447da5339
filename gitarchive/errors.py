__all__ = [
    "ArchiveError",
    "TransportError",
    "MalformedAdvertisement",
    "MalformedResponse",
    "RemoteRefused",
    "RemoteAborted",
    "BlobWriteFailed",
    "IndexFailed",
    "QueueFailed",
]


class ArchiveError(Exception):
    """Base class for every failure the fetcher reports."""


class TransportError(ArchiveError):
    def __init__(self, status: int | None, message: str = ""):
        self.status = status
        self.message = message
        super().__init__(f"transport error ({status}): {message}" if message else f"transport error ({status})")


class MalformedAdvertisement(ArchiveError):
    pass


class MalformedResponse(ArchiveError):
    pass


class RemoteRefused(ArchiveError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(f"remote refused: {message}")


class RemoteAborted(ArchiveError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(f"remote aborted: {message}")


class BlobWriteFailed(ArchiveError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"failed to write blob {name!r}")


class IndexFailed(ArchiveError):
    def __init__(self, op: str):
        self.op = op
        super().__init__(f"index operation {op} failed")


class QueueFailed(ArchiveError):
    pass
