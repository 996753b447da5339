import logging
from typing import BinaryIO, Callable, Iterable, Protocol

from gitarchive.errors import MalformedResponse, RemoteAborted
from gitarchive.models.pktline import PktLineError, PktLineReader

__all__ = [
    "SIDE_BAND_CHANNEL_DATA",
    "SIDE_BAND_CHANNEL_PROGRESS",
    "SIDE_BAND_CHANNEL_FATAL",
    "PackSink",
    "UploadPackDemuxer",
]

logger = logging.getLogger(__name__)

SIDE_BAND_CHANNEL_DATA = 1
SIDE_BAND_CHANNEL_PROGRESS = 2
SIDE_BAND_CHANNEL_FATAL = 3


class PackSink(Protocol):
    def write(self, data: bytes) -> int: ...


class UploadPackDemuxer:
    """Splits a side-band-64k upload-pack response.

    Channel 1 goes to ``pack``, channel 2 to ``progress``; channel 3 aborts.
    ``on_bytes`` is told about every chunk of pack data as it arrives.
    """

    def __init__(
        self,
        pack: PackSink,
        progress: BinaryIO | None = None,
        on_bytes: Callable[[int], None] | None = None,
    ):
        self.pack = pack
        self.progress = progress
        self.on_bytes = on_bytes
        self.bytes_fetched = 0

    def run(self, chunks: Iterable[bytes]) -> int:
        """Consume the response body; returns the number of pack bytes seen."""
        try:
            self._run(PktLineReader(chunks))
        except PktLineError as e:
            raise MalformedResponse(str(e)) from e
        return self.bytes_fetched

    def _run(self, reader: PktLineReader):
        # Acknowledgements come first; the first side-band frame ends them.
        # A flush only closes the ACK list, unless NAK already said there is
        # nothing to send.
        nak = False
        for payload in reader:
            if payload is None:
                if nak:
                    return
                continue
            if payload == b"NAK\n":
                nak = True
            if payload.startswith(b"ACK ") or payload == b"NAK\n":
                logger.debug("upload-pack: %s", payload.decode(errors="replace").strip())
                continue
            if payload.startswith(b"ERR "):
                raise RemoteAborted(payload[4:].decode(errors="replace").strip())
            self._handle_band(payload)
            break

        for payload in reader:
            if payload is None:
                return
            self._handle_band(payload)

    def _handle_band(self, payload: bytes):
        if not payload:
            raise MalformedResponse("empty side-band frame")
        channel, data = payload[0], payload[1:]
        match channel:
            case 1:
                self.pack.write(data)
                self.bytes_fetched += len(data)
                if self.on_bytes is not None:
                    self.on_bytes(len(data))
            case 2:
                if self.progress is not None:
                    self.progress.write(data)
                    self.progress.flush()
            case 3:
                raise RemoteAborted(data.decode(errors="replace").strip())
            case _:
                raise MalformedResponse(f"unknown side-band channel {channel}")

    @property
    def empty(self) -> bool:
        return self.bytes_fetched == 0
