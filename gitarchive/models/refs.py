import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from gitarchive.errors import MalformedAdvertisement, RemoteRefused
from gitarchive.models.pktline import PktLineError, PktLineReader, pkt_line

__all__ = ["GitRef", "RefParser", "snapshot_refs", "PULL_PREFIX", "SERVICE_LINE", "ZERO_ID"]

SERVICE_LINE = b"# service=git-upload-pack\n"
REFS_PREFIX = "refs/"
PULL_PREFIX = "refs/pull/"
PEELED_SUFFIX = "^{}"
ZERO_ID = "0" * 40

_EOF = object()

REGEX = re.compile(
    rb"""
([0-9a-f]{40})  # object id
\x20
([^\x00\s]+)    # name
""",
    re.VERBOSE,
)


@dataclass(frozen=True)
class GitRef:
    sha1: str
    ref_name: str

    @classmethod
    def from_line(cls, line: bytes):
        match = REGEX.fullmatch(line.rstrip(b"\n"))
        if match is None:
            raise MalformedAdvertisement(f"bad ref line {line!r}")
        sha1, ref_name = match.groups()
        return cls(sha1.decode(), ref_name.decode())


def snapshot_refs(refs: Mapping[str, str]) -> dict[str, str]:
    """The refs worth archiving: ``refs/`` names, minus pull requests and peeled tags."""
    return {
        name: sha1
        for name, sha1 in refs.items()
        if name.startswith(REFS_PREFIX)
        and not name.startswith(PULL_PREFIX)
        and not name.endswith(PEELED_SUFFIX)
    }


class RefParser:
    @staticmethod
    def parse_refs(chunks: Iterable[bytes]) -> dict[str, str]:
        """Parse an info/refs advertisement into ``{refname: sha1}``.

        Capabilities on the first line are discarded, as are zero ids.
        """
        frames = iter(PktLineReader(chunks))
        refs = {}
        try:
            line = next(frames, _EOF)
            if line is _EOF:
                raise MalformedAdvertisement("empty advertisement")
            if line == SERVICE_LINE:
                if next(frames, _EOF) is not None:
                    raise MalformedAdvertisement("missing flush after service line")
                line = next(frames, _EOF)
            if isinstance(line, bytes) and line.startswith(b"ERR "):
                raise RemoteRefused(line[4:].decode(errors="replace").strip())

            first = True
            while line is not None:
                if line is _EOF:
                    raise MalformedAdvertisement("advertisement ended before flush")
                if first:
                    line, _, _capabilities = line.partition(b"\x00")
                    first = False
                ref = GitRef.from_line(line)
                if ref.sha1 != ZERO_ID:
                    refs[ref.ref_name] = ref.sha1
                line = next(frames, _EOF)
        except PktLineError as e:
            raise MalformedAdvertisement(str(e)) from e
        return refs

    @staticmethod
    def format_refs(refs: Mapping[str, str], capabilities: Iterable[str] = ()) -> bytes:
        """Serialize ``refs`` the way an upload-pack server advertises them."""
        parts = [pkt_line(SERVICE_LINE), pkt_line(None)]
        caps = " ".join(capabilities).encode()
        for i, (name, sha1) in enumerate(sorted(refs.items())):
            line = f"{sha1} {name}".encode()
            if i == 0:
                line += b"\x00" + caps
            parts.append(pkt_line(line + b"\n"))
        parts.append(pkt_line(None))
        return b"".join(parts)
