import logging
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Collection, Iterable, Mapping

import httpx

from gitarchive.errors import TransportError
from gitarchive.models.blob import BlobWriter
from gitarchive.models.pktline import pkt_line
from gitarchive.models.refs import RefParser, snapshot_refs
from gitarchive.models.upload_pack import UploadPackDemuxer

__all__ = [
    "GITHUB_BASE",
    "USER_AGENT",
    "CAPABILITIES",
    "EMPTY_PREFIX",
    "FetchResult",
    "GitFetch",
    "build_upload_pack_request",
    "compute_wants",
    "is_empty_pack_ref",
    "pack_ref_name",
    "repo_url",
]

logger = logging.getLogger(__name__)

GITHUB_BASE = "https://github.com/"
USER_AGENT = "github.com/thecodearchive/gitarchive/git"
CAPABILITIES = ("ofs-delta", "side-band-64k", "thin-pack")
EMPTY_PREFIX = "EMPTY|"
CHUNK_SIZE = 64 * 1024


def repo_url(name: str) -> str:
    if not name:
        return ""
    return f"{GITHUB_BASE}{name}.git"


def pack_ref_name(url: str, timestamp_ns: int, *, empty: bool = False) -> str:
    name = f"{url}|{timestamp_ns}"
    if empty:
        return EMPTY_PREFIX + name
    return name


def is_empty_pack_ref(pack_ref: str) -> bool:
    return pack_ref.startswith(EMPTY_PREFIX)


def compute_wants(refs: Mapping[str, str], haves: Collection[str]) -> list[str]:
    return sorted({sha1 for sha1 in refs.values() if sha1 not in haves})


def build_upload_pack_request(wants: Iterable[str], haves: Iterable[str]) -> bytes:
    body_parts = []
    for i, want in enumerate(wants):
        command = f"want {want}"
        if i == 0:
            command += " " + " ".join(CAPABILITIES)
        body_parts.append(pkt_line(command + "\n"))
    body_parts.append(pkt_line(None))
    for have in sorted(haves):
        body_parts.append(pkt_line(f"have {have}\n"))
    body_parts.append(pkt_line("done\n"))
    return b"".join(body_parts)


@dataclass
class FetchResult:
    refs: dict[str, str]
    pack_ref: str
    bytes_fetched: int = 0
    wants: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return is_empty_pack_ref(self.pack_ref)


class GitFetch:
    """Incremental smart-HTTP fetch of one repository into the blob store."""

    def __init__(
        self,
        repo_url: str,
        http_client: httpx.Client | None = None,
        *,
        user_agent: str = USER_AGENT,
        clock: Callable[[], int] = time.time_ns,
    ):
        self.repo_url = str(repo_url)
        self.http_client = http_client or httpx.Client(follow_redirects=True, timeout=60.0)
        self.user_agent = user_agent
        self.clock = clock

    def __enter__(self):
        self.http_client.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.http_client.__exit__(exc_type, exc_val, exc_tb)

    @staticmethod
    def _check(response: httpx.Response, what: str):
        if response.status_code != 200:
            raise TransportError(response.status_code, what)

    def fetch_refs(self) -> dict[str, str]:
        discover_url = f"{self.repo_url}/info/refs?service=git-upload-pack"
        headers = {"User-Agent": self.user_agent}
        try:
            with self.http_client.stream("GET", discover_url, headers=headers) as response:
                self._check(response, "GET /info/refs")
                return RefParser.parse_refs(response.iter_bytes(CHUNK_SIZE))
        except httpx.HTTPError as e:
            raise TransportError(None, str(e)) from e

    def fetch(
        self,
        haves: Collection[str],
        new_writer: Callable[[str], BlobWriter],
        progress: BinaryIO | None = None,
        on_bytes: Callable[[int], None] | None = None,
    ) -> FetchResult:
        """Fetch everything not covered by ``haves`` into a new blob.

        ``new_writer`` is called with the pack ref to get a streaming sink.
        Nothing is written when the remote has no new objects.
        """
        refs = snapshot_refs(self.fetch_refs())
        wants = compute_wants(refs, haves)
        if not wants:
            logger.debug("%s: nothing wanted, skipping upload-pack", self.repo_url)
            pack_ref = pack_ref_name(self.repo_url, self.clock(), empty=True)
            return FetchResult(refs, pack_ref, 0, wants)

        request_body = build_upload_pack_request(wants, haves)
        upload_pack_url = f"{self.repo_url}/git-upload-pack"
        headers = {
            "Content-Type": "application/x-git-upload-pack-request",
            "Accept": "application/x-git-upload-pack-result",
            "User-Agent": self.user_agent,
        }
        try:
            with self.http_client.stream(
                "POST", upload_pack_url, content=request_body, headers=headers
            ) as response:
                self._check(response, "POST /git-upload-pack")
                pack_ref = pack_ref_name(self.repo_url, self.clock())
                writer = new_writer(pack_ref)
                demuxer = UploadPackDemuxer(writer, progress, on_bytes)
                with writer:
                    demuxer.run(response.iter_bytes(CHUNK_SIZE))
                    if demuxer.empty:
                        writer.discard()
        except httpx.HTTPError as e:
            raise TransportError(None, str(e)) from e

        if demuxer.empty:
            return FetchResult(refs, EMPTY_PREFIX + pack_ref, 0, wants)
        return FetchResult(refs, pack_ref, demuxer.bytes_fetched, wants)
