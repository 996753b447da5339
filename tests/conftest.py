import httpx
import pytest

from gitarchive.models import BlobStore, Index
from gitarchive.models.pktline import pkt_line
from gitarchive.models.refs import RefParser

SHA_A = "a" * 39 + "1"
SHA_B = "b" * 39 + "2"
SHA_C = "c" * 39 + "3"
SHA_D = "d" * 39 + "4"

PACK_DATA = b"PACK\x00\x00\x00\x02\x00\x00\x00\x01" + b"x" * 100


def sideband(pack: bytes = PACK_DATA, progress: bytes = b"Counting objects: 1, done.\n") -> bytes:
    parts = [pkt_line(b"NAK\n"), pkt_line(b"\x02" + progress)]
    # Split the pack over several frames like a real server does
    for i in range(0, len(pack), 40):
        parts.append(pkt_line(b"\x01" + pack[i : i + 40]))
    parts.append(pkt_line(None))
    return b"".join(parts)


class FakeGitServer:
    """Answers info/refs and git-upload-pack for any repository."""

    def __init__(self, refs=None, upload_pack=b"", refs_status=200, upload_pack_status=200):
        self.refs = refs or {}
        self.upload_pack = upload_pack
        self.refs_status = refs_status
        self.upload_pack_status = upload_pack_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/info/refs"):
            assert request.url.params["service"] == "git-upload-pack"
            body = RefParser.format_refs(self.refs, ["multi_ack", "side-band-64k", "ofs-delta"])
            return httpx.Response(self.refs_status, content=body)
        if request.url.path.endswith("/git-upload-pack"):
            return httpx.Response(self.upload_pack_status, content=self.upload_pack)
        return httpx.Response(404)

    @property
    def posts(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def index(tmp_path):
    index = Index(f"sqlite:///{tmp_path / 'index.db'}")
    yield index
    index.close()


@pytest.fixture
def blobs(tmp_path):
    return BlobStore(str(tmp_path / "packs"))


class BrokenFile:
    """A blob file that accepts writes but fails to close."""

    def write(self, data: bytes) -> int:
        return len(data)

    def close(self):
        raise OSError("disk full")
