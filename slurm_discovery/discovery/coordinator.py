"""Concurrent fan-out over every probe method, followed by merge and ranking."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait

from ..config import DiscoveryConfig
from . import ProbeMethod
from .deadline import Deadline
from .local_config import ConfigFileProbe, EnvironmentProbe
from .merge import rank_clusters
from .models import DiscoveredCluster
from .network import NetworkProbe
from .process import ProcessProbe
from .scontrol import ScontrolProbe
from .srv import DNSProbe

logger = logging.getLogger(__name__)


def default_probes(config: DiscoveryConfig, log: logging.Logger | None = None) -> list[ProbeMethod]:
    """The six built-in probes, freshly constructed."""
    return [
        EnvironmentProbe(config.default_port, log=log),
        ConfigFileProbe(config.default_port, log=log),
        DNSProbe(log=log),
        NetworkProbe(
            config.default_port,
            http_timeout=config.http_timeout_seconds,
            verify_ssl=config.verify_ssl,
            scan_subnets=config.scan_local_subnets,
            max_hosts_per_subnet=config.max_hosts_per_subnet,
            log=log,
        ),
        ProcessProbe(config.default_port, log=log),
        ScontrolProbe(config.scontrol_path, config.timeout_seconds, config.default_port, log=log),
    ]


class ClusterProbeCoordinator:
    """Runs all probes concurrently under one deadline and ranks the merged result.

    A failing probe contributes nothing. A probe still running when the
    deadline passes is abandoned and whatever it returns later is ignored.
    """

    def __init__(
        self,
        config: DiscoveryConfig | None = None,
        probes: list[ProbeMethod] | None = None,
        log: logging.Logger | None = None,
    ):
        self._config = config or DiscoveryConfig()
        self._probes = probes
        self._log = log or logger

    def discover_clusters(self) -> list[DiscoveredCluster]:
        probes = self._probes if self._probes is not None else default_probes(self._config, self._log)
        deadline = Deadline(self._config.timeout_seconds)
        start = time.monotonic()
        self._log.debug("Starting cluster discovery with %d probes", len(probes))

        futures: list[tuple[ProbeMethod, Future]] = []
        finished: set[Future] = set()
        executor = ThreadPoolExecutor(max_workers=max(1, len(probes)), thread_name_prefix="probe")
        try:
            for probe in probes:
                futures.append((probe, executor.submit(probe.discover, deadline)))
            finished, _ = wait([f for _, f in futures], timeout=deadline.remaining())
            # Stragglers see the cancellation on their next deadline check
            deadline.cancel()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        found: list[DiscoveredCluster] = []
        for probe, future in futures:
            found.extend(self._collect(probe, future, future in finished))

        ranked = rank_clusters(found)
        self._log.info(
            "Cluster discovery completed: found %d unique clusters", len(ranked),
            extra={"clusters": len(ranked), "elapsed_seconds": round(time.monotonic() - start, 3)},
        )
        return ranked

    def _collect(self, probe: ProbeMethod, future: Future, finished: bool) -> list[DiscoveredCluster]:
        """Results of one finished probe; failures and stragglers count as empty."""
        if not finished:
            self._log.warning(
                "Discovery method %s did not finish before the deadline", probe.name,
                extra={"probe": probe.name},
            )
            return []

        try:
            clusters = future.result()
        except Exception as exc:
            self._log.warning(
                "Discovery method %s failed: %s", probe.name, exc,
                extra={"probe": probe.name},
            )
            return []

        clusters = list(clusters or [])
        self._log.debug(
            "Discovery method %s found %d clusters", probe.name, len(clusters),
            extra={"probe": probe.name, "clusters": len(clusters)},
        )
        return clusters
