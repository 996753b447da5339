from typing import Iterable, Iterator

__all__ = [
    "FLUSH_PKT",
    "MAX_PKT_LENGTH",
    "PktLineError",
    "PktLineReader",
    "decode_pkt_line",
    "pkt_line",
]

FLUSH_PKT = b"0000"
# Length prefix included
MAX_PKT_LENGTH = 65524


class PktLineError(ValueError):
    pass


def pkt_line(payload: str | bytes | None) -> bytes:
    """Frame one payload; ``None`` gives the flush packet."""
    if payload is None:
        return FLUSH_PKT
    if isinstance(payload, str):
        payload = payload.encode()

    # Length includes the 4-byte prefix itself
    length = len(payload) + 4
    if length > MAX_PKT_LENGTH:
        raise PktLineError(f"pkt-line too long: {length}")
    return f"{length:04x}".encode() + payload


def _parse_length(header: bytes) -> int:
    try:
        length = int(header.decode("ascii"), 16)
    except (UnicodeDecodeError, ValueError):
        raise PktLineError(f"invalid pkt-line length {header!r}") from None
    if length == 0:
        return length
    if length < 4 or length > MAX_PKT_LENGTH:
        raise PktLineError(f"pkt-line length out of range: {length}")
    return length


def decode_pkt_line(data: bytes) -> tuple[bytes | None, bytes]:
    """Split the first frame off ``data``.

    Returns ``(payload, rest)``; payload is ``None`` for a flush packet.
    """
    if len(data) < 4:
        raise PktLineError("incomplete pkt-line header")
    length = _parse_length(data[:4])
    if length == 0:
        return None, data[4:]
    if len(data) < length:
        raise PktLineError(f"incomplete pkt-line: need {length}, have {len(data)}")
    return data[4:length], data[length:]


class PktLineReader:
    """Reads frames from a stream of byte chunks without buffering the whole body."""

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks = iter(chunks)
        self._buffer = bytearray()
        self._eof = False

    def _fill(self, size: int) -> bool:
        while len(self._buffer) < size and not self._eof:
            try:
                self._buffer += next(self._chunks)
            except StopIteration:
                self._eof = True
        return len(self._buffer) >= size

    def _take(self, size: int) -> bytes:
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def read(self) -> bytes | None:
        """Return the next payload, ``None`` for flush.

        Raises EOFError when the stream ends cleanly between frames.
        """
        if not self._fill(4):
            if self._buffer:
                raise PktLineError("truncated pkt-line header")
            raise EOFError
        length = _parse_length(bytes(self._buffer[:4]))
        if length == 0:
            self._take(4)
            return None
        if not self._fill(length):
            raise PktLineError(f"truncated pkt-line: need {length}, have {len(self._buffer)}")
        return self._take(length)[4:]

    def __iter__(self) -> Iterator[bytes | None]:
        while True:
            try:
                yield self.read()
            except EOFError:
                return
