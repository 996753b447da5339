import logging
import os
import signal
from argparse import ArgumentParser

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def env(name: str, default: str) -> str:
    return os.environ.get(f"GITARCHIVE_{name}", default)


def get_parser():
    parser = ArgumentParser(prog="gitarchive")
    parser.add_argument(
        "--database",
        default=env("DATABASE", "sqlite:///gitarchive.db"),
        help="SQLAlchemy URL of the index",
    )
    parser.add_argument(
        "--bucket", default=env("BUCKET", "packs"), help="fsspec URL packs are written under"
    )
    parser.add_argument("--log-level", default=env("LOG_LEVEL", "INFO"))
    subparsers = parser.add_subparsers(dest="command")

    # run
    run_parser = subparsers.add_parser("run")
    run_parser.add_argument("--queue", default=env("QUEUE", "queue.txt"))
    run_parser.add_argument("--schedule", default=env("SCHEDULE", "*"))
    run_parser.add_argument(
        "--metrics-port", type=int, default=int(env("METRICS_PORT", "0"))
    )

    # fetch
    fetch_parser = subparsers.add_parser("fetch")
    fetch_parser.add_argument("name")
    fetch_parser.add_argument("-p", "--parent", default="")

    # blacklist
    blacklist_parser = subparsers.add_parser("blacklist")
    blacklist_parser.add_argument("name")
    blacklist_parser.add_argument("--whitelist", action="store_true")

    # blacklist-state
    blacklist_state_parser = subparsers.add_parser("blacklist-state")
    blacklist_state_parser.add_argument("name")

    # latest
    latest_parser = subparsers.add_parser("latest")
    latest_parser.add_argument("name")

    # chain
    chain_parser = subparsers.add_parser("chain")
    chain_parser.add_argument("pack_id", type=int)

    # audit
    _audit_parser = subparsers.add_parser("audit")

    return parser


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def install_signal_handlers(stop):
    """Call ``stop`` on SIGINT and SIGTERM instead of raising."""

    def handler(signum, _frame):
        logging.getLogger(__name__).info("Received %s, stopping after current fetch", signal.Signals(signum).name)
        stop()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)
