import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum, auto
from typing import Iterator, Mapping, Sequence

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    bindparam,
    create_engine,
    exists,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from gitarchive.errors import IndexFailed

__all__ = ["BlacklistState", "FetchRecord", "Index", "ZERO_TIME"]

logger = logging.getLogger(__name__)

ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

# SQLite only auto-increments INTEGER PRIMARY KEY columns
PackID = BigInteger().with_variant(Integer, "sqlite")

metadata = MetaData()

fetches = Table(
    "Fetches",
    metadata,
    Column("Name", String(255), nullable=False, index=True),
    Column("Parent", String(255)),
    Column("Timestamp", DateTime),
    Column("Refs", Text),
    Column("PackID", PackID, primary_key=True, autoincrement=True),
    Column("PackRef", String(512)),
)

pack_deps = Table(
    "PackDeps",
    metadata,
    Column("ID", BigInteger, index=True),
    Column("Dep", BigInteger, index=True),
)

blacklist = Table(
    "Blacklist",
    metadata,
    Column("Name", String(255), nullable=False, index=True),
    Column("Whitelisted", Boolean, nullable=False, default=False, server_default="0"),
)


class BlacklistState(StrEnum):
    BLACKLISTED = auto()
    WHITELISTED = auto()
    NEUTRAL = auto()


@dataclass(frozen=True)
class FetchRecord:
    name: str
    parent: str
    timestamp: datetime
    refs: dict[str, str]
    pack_id: int
    pack_ref: str


def _to_db(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
    return timestamp


def _from_db(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


class Index:
    """Relational record of every fetch, its refs and the packs it builds on."""

    def __init__(self, url: str | Engine):
        self.engine = create_engine(url) if isinstance(url, str) else url
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise IndexFailed("open") from e

        # Built once and reused for every call.
        self._insert_fetch_q = fetches.insert()
        self._insert_dep_q = pack_deps.insert()
        self._select_q = (
            select(fetches.c.Parent, fetches.c.Refs, fetches.c.PackID)
            .where(fetches.c.Name == bindparam("name"))
            .order_by(fetches.c.Timestamp.desc(), fetches.c.PackID.desc())
            .limit(1)
        )
        self._latest_q = (
            select(fetches.c.Timestamp)
            .where(fetches.c.Name == bindparam("name"))
            .order_by(fetches.c.Timestamp.desc())
            .limit(1)
        )
        self._insert_blacklist_q = blacklist.insert()
        self._select_blacklist_q = select(blacklist.c.Whitelisted).where(
            blacklist.c.Name == bindparam("name")
        )

    def close(self):
        self.engine.dispose()

    def add_fetch(
        self,
        name: str,
        parent: str,
        timestamp: datetime,
        refs: Mapping[str, str],
        pack_ref: str,
        deps: Sequence[int],
    ) -> int:
        """Insert a fetch and its dependency edges; returns the new pack id.

        Both inserts share one transaction, so a failure leaves neither.
        """
        row = {
            "Name": name,
            "Parent": parent,
            "Timestamp": _to_db(timestamp),
            "Refs": json.dumps(dict(refs), sort_keys=True),
            "PackRef": pack_ref,
        }
        try:
            with self.engine.begin() as conn:
                result = conn.execute(self._insert_fetch_q, row)
                pack_id = result.inserted_primary_key[0]
                if deps:
                    conn.execute(self._insert_dep_q, [{"ID": pack_id, "Dep": dep} for dep in deps])
        except SQLAlchemyError as e:
            raise IndexFailed("add_fetch") from e
        logger.debug("Recorded pack %d for %s with deps %s", pack_id, name, list(deps))
        return pack_id

    def get_latest(self, name: str) -> datetime:
        try:
            with self.engine.connect() as conn:
                timestamp = conn.execute(self._latest_q, {"name": name}).scalar()
        except SQLAlchemyError as e:
            raise IndexFailed("get_latest") from e
        if timestamp is None:
            return ZERO_TIME
        return _from_db(timestamp)

    def get_haves(self, name: str, parent: str = "") -> tuple[set[str], list[int]]:
        """Return the objects already archived for ``name`` and the packs holding them.

        The latest fetch of ``name`` is used, plus the latest fetch of its
        parent (one hop only). With no fetch of ``name`` yet, ``parent``
        seeds the set so that a fork starts from its upstream.
        """
        haves, deps = set(), []
        try:
            with self.engine.connect() as conn:
                row = conn.execute(self._select_q, {"name": name}).first()
                if row is not None:
                    self._merge(row, haves, deps)
                    parent = row.Parent
                if parent:
                    row = conn.execute(self._select_q, {"name": parent}).first()
                    if row is not None:
                        self._merge(row, haves, deps)
        except SQLAlchemyError as e:
            raise IndexFailed("get_haves") from e
        return haves, deps

    @staticmethod
    def _merge(row, haves: set[str], deps: list[int]):
        try:
            refs = json.loads(row.Refs)
        except ValueError as e:
            raise IndexFailed("get_haves") from e
        haves.update(refs.values())
        deps.append(row.PackID)

    def history(self, name: str) -> list[FetchRecord]:
        query = select(fetches).where(fetches.c.Name == name).order_by(fetches.c.PackID)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as e:
            raise IndexFailed("history") from e
        return [
            FetchRecord(
                name=row.Name,
                parent=row.Parent or "",
                timestamp=_from_db(row.Timestamp),
                refs=json.loads(row.Refs),
                pack_id=row.PackID,
                pack_ref=row.PackRef,
            )
            for row in rows
        ]

    def get_deps(self, pack_id: int) -> list[int]:
        query = select(pack_deps.c.Dep).where(pack_deps.c.ID == pack_id).order_by(pack_deps.c.Dep)
        try:
            with self.engine.connect() as conn:
                return list(conn.execute(query).scalars())
        except SQLAlchemyError as e:
            raise IndexFailed("get_deps") from e

    def get_pack_chain(self, pack_id: int) -> list[tuple[int, str]]:
        """All packs ``pack_id`` transitively depends on, itself included.

        Sorted by pack id, which is the order to concatenate them in.
        """
        seen = {pack_id}
        frontier = [pack_id]
        try:
            with self.engine.connect() as conn:
                while frontier:
                    query = select(pack_deps.c.Dep).where(pack_deps.c.ID.in_(frontier))
                    frontier = [dep for dep in conn.execute(query).scalars() if dep not in seen]
                    seen.update(frontier)
                query = (
                    select(fetches.c.PackID, fetches.c.PackRef)
                    .where(fetches.c.PackID.in_(seen))
                    .order_by(fetches.c.PackID)
                )
                return [(row.PackID, row.PackRef) for row in conn.execute(query)]
        except SQLAlchemyError as e:
            raise IndexFailed("get_pack_chain") from e

    def find_underlinked(self) -> list[int]:
        """Pack ids of fetches that have an earlier fetch of the same name but no deps."""
        earlier = fetches.alias("earlier")
        query = (
            select(fetches.c.PackID)
            .where(~exists().where(pack_deps.c.ID == fetches.c.PackID))
            .where(
                exists().where(
                    (earlier.c.Name == fetches.c.Name) & (earlier.c.PackID < fetches.c.PackID)
                )
            )
            .order_by(fetches.c.PackID)
        )
        try:
            with self.engine.connect() as conn:
                return list(conn.execute(query).scalars())
        except SQLAlchemyError as e:
            raise IndexFailed("find_underlinked") from e

    def pack_refs(self) -> Iterator[str]:
        query = select(fetches.c.PackRef).order_by(fetches.c.PackID)
        try:
            with self.engine.connect() as conn:
                refs = list(conn.execute(query).scalars())
        except SQLAlchemyError as e:
            raise IndexFailed("pack_refs") from e
        yield from refs

    def add_blacklist(self, name: str, whitelisted: bool = False):
        try:
            with self.engine.begin() as conn:
                conn.execute(self._insert_blacklist_q, {"Name": name, "Whitelisted": whitelisted})
        except SQLAlchemyError as e:
            raise IndexFailed("add_blacklist") from e

    def blacklist_state(self, name: str) -> BlacklistState:
        try:
            with self.engine.connect() as conn:
                whitelisted = conn.execute(self._select_blacklist_q, {"name": name}).scalar()
        except SQLAlchemyError as e:
            raise IndexFailed("blacklist_state") from e
        if whitelisted is None:
            return BlacklistState.NEUTRAL
        if whitelisted:
            return BlacklistState.WHITELISTED
        return BlacklistState.BLACKLISTED
