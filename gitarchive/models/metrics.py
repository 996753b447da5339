import json
import logging

from prometheus_client import CollectorRegistry, Counter, start_http_server

__all__ = ["COUNTERS", "Counters", "serve_counters"]

logger = logging.getLogger(__name__)

NAMESPACE = "gitarchive"

COUNTERS = {
    "fetches": "Fetches attempted",
    "new": "Fetches of repositories never archived before",
    "forks": "Fetches of repositories queued with a parent",
    "sleep": "Sleeps outside the schedule",
    "emptyqueue": "Sleeps on an empty queue",
    "emptypack": "Fetches that produced no pack data",
    "fetchbytes": "Pack bytes received",
    "fetchtime": "Nanoseconds spent on fetches that produced a pack",
}


class Counters:
    """The worker's named counters, kept in their own Prometheus registry."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self._counters = {
            name: Counter(name, documentation, namespace=NAMESPACE, registry=self.registry)
            for name, documentation in COUNTERS.items()
        }

    def add(self, name: str, delta: int = 1):
        self._counters[name].inc(delta)

    def get(self, name: str) -> int:
        value = self.registry.get_sample_value(f"{NAMESPACE}_{name}_total")
        return int(value or 0)

    def as_dict(self) -> dict[str, int]:
        values = {}
        prefix = f"{NAMESPACE}_"
        for metric in self.registry.collect():
            for sample in metric.samples:
                if sample.name.endswith("_total"):
                    name = sample.name.removeprefix(prefix).removesuffix("_total")
                    values[name] = int(sample.value)
        return values

    def __str__(self):
        return json.dumps(self.as_dict(), sort_keys=True)


def serve_counters(counters: Counters, port: int, host: str = "127.0.0.1"):
    """Expose ``counters`` in the Prometheus text format from a daemon thread."""
    server, _thread = start_http_server(port, addr=host, registry=counters.registry)
    logger.info("Serving counters on http://%s:%d/metrics", host, server.server_port)
    return server
