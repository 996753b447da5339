import logging
import sys

from gitarchive.errors import ArchiveError
from gitarchive.models import BlobStore, Counters, Fetcher, FileQueue, Index, WeekMap
from gitarchive.models.fetch import is_empty_pack_ref, repo_url
from gitarchive.models.metrics import serve_counters
from gitarchive.utils import configure_logging, get_parser, install_signal_handlers

logger = logging.getLogger(__name__)


def run(args, index: Index):
    counters = Counters()
    if args.metrics_port:
        serve_counters(counters, args.metrics_port)
    fetcher = Fetcher(
        FileQueue(args.queue),
        index,
        BlobStore(args.bucket),
        schedule=WeekMap.parse(args.schedule),
        counters=counters,
    )
    install_signal_handlers(fetcher.stop)
    try:
        fetcher.run()
    finally:
        fetcher.close()
        logger.info("Counters: %s", counters)


def fetch(args, index: Index):
    fetcher = Fetcher(None, index, BlobStore(args.bucket))
    try:
        result = fetcher.fetch(args.name, args.parent)
    finally:
        fetcher.close()
    print(result.pack_ref)


def audit(args, index: Index):
    """Report fetches missing dependency edges, and blobs without a matching fetch."""
    blobs = BlobStore(args.bucket)
    stored = set(blobs.names())
    recorded = set(index.pack_refs())
    for pack_id in index.find_underlinked():
        print(f"underlinked\t{pack_id}")
    for name in sorted(stored - recorded):
        print(f"orphaned\t{name}")
    for name in sorted(recorded - stored):
        if not is_empty_pack_ref(name):
            print(f"missing\t{name}")


def main(argv=None):
    parser = get_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    index = Index(args.database)
    try:
        match args.command:
            case "run":
                return run(args, index)
            case "fetch":
                return fetch(args, index)
            case "blacklist":
                return index.add_blacklist(args.name, whitelisted=args.whitelist)
            case "blacklist-state":
                print(index.blacklist_state(args.name))
            case "latest":
                print(index.get_latest(repo_url(args.name)).isoformat())
            case "chain":
                for pack_id, pack_ref in index.get_pack_chain(args.pack_id):
                    print(f"{pack_id}\t{pack_ref}")
            case "audit":
                return audit(args, index)
            case _:
                parser.error(f"Unknown command {args.command!r}")
    except ArchiveError as e:
        logger.error("%s", e)
        sys.exit(1)
    finally:
        index.close()


if __name__ == "__main__":
    main()
