"""
Prometheus counters for pair resolution.
"""

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter


class ProbeMetrics:
    """
    Counters describing resolver traffic.

    - casper_dex_probes_total: dictionary reads issued, by key layout
    - casper_dex_pair_hits_total: resolutions that located a pair
    - casper_dex_pair_misses_total: resolutions that exhausted the probe range
    - casper_dex_probe_timeouts_total: remote reads that timed out
    - casper_dex_cache_hits_total: resolutions answered from the cache
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY

        self.probes_total = Counter(
            "casper_dex_probes_total",
            "Dictionary item reads issued while locating pairs",
            ["variant"],
            registry=self.registry,
        )
        self.pair_hits_total = Counter(
            "casper_dex_pair_hits_total",
            "Pair resolutions that located a record",
            registry=self.registry,
        )
        self.pair_misses_total = Counter(
            "casper_dex_pair_misses_total",
            "Pair resolutions that exhausted the probe range",
            registry=self.registry,
        )
        self.probe_timeouts_total = Counter(
            "casper_dex_probe_timeouts_total",
            "Remote reads that exceeded their timeout",
            registry=self.registry,
        )
        self.cache_hits_total = Counter(
            "casper_dex_cache_hits_total",
            "Pair resolutions answered from the cache",
            registry=self.registry,
        )

    def record_probe(self, variant_label: str) -> None:
        self.probes_total.labels(variant=variant_label).inc()

    def record_hit(self) -> None:
        self.pair_hits_total.inc()

    def record_miss(self) -> None:
        self.pair_misses_total.inc()

    def record_timeout(self) -> None:
        self.probe_timeouts_total.inc()

    def record_cache_hit(self) -> None:
        self.cache_hits_total.inc()
