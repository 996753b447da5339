import pytest

from gitarchive.models.pktline import (
    FLUSH_PKT,
    PktLineError,
    PktLineReader,
    decode_pkt_line,
    pkt_line,
)


@pytest.mark.parametrize(
    "payload, expected",
    [
        ("done\n", b"0009done\n"),
        (b"NAK\n", b"0008NAK\n"),
        (b"", b"0004"),
        (None, b"0000"),
    ],
)
def test_pkt_line(payload, expected):
    assert pkt_line(payload) == expected


def test_pkt_line_too_long():
    with pytest.raises(PktLineError):
        pkt_line(b"x" * 65521)
    assert len(pkt_line(b"x" * 65520)) == 65524


@pytest.mark.parametrize("frame", [b"0009done\n", b"0000", b"0004", b"000b\x01PACK\x00\x00"])
def test_decode_then_encode(frame):
    payload, rest = decode_pkt_line(frame)
    assert rest == b""
    assert pkt_line(payload) == frame


def test_flush_is_not_empty_payload():
    assert decode_pkt_line(b"0000") == (None, b"")
    assert decode_pkt_line(b"0004") == (b"", b"")


@pytest.mark.parametrize("frame", [b"0001", b"0002", b"0003", b"fff5" + b"x" * 65521, b"zzzz", b"00"])
def test_decode_malformed(frame):
    with pytest.raises(PktLineError):
        decode_pkt_line(frame)


def test_decode_truncated():
    with pytest.raises(PktLineError):
        decode_pkt_line(b"0009don")


class TestPktLineReader:
    def test_reads_across_chunk_boundaries(self):
        data = pkt_line("want abc\n") + FLUSH_PKT + pkt_line("done\n")
        chunks = [data[i : i + 1] for i in range(len(data))]
        assert list(PktLineReader(chunks)) == [b"want abc\n", None, b"done\n"]

    def test_clean_eof(self):
        reader = PktLineReader([b"0008NAK\n"])
        assert reader.read() == b"NAK\n"
        with pytest.raises(EOFError):
            reader.read()

    def test_truncated_header(self):
        with pytest.raises(PktLineError):
            list(PktLineReader([b"0008NAK\n00"]))

    def test_truncated_payload(self):
        with pytest.raises(PktLineError):
            list(PktLineReader([b"0010short"]))

    def test_rejects_bad_length(self):
        with pytest.raises(PktLineError):
            list(PktLineReader([b"0002"]))
