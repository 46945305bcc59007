"""Ordered, cached resolution of a single slurmrestd endpoint."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections.abc import Callable

from ..config import DiscoveryConfig
from ..exceptions import DiscoveryDisabledError, DiscoveryError, EndpointNotFoundError, ProbeError
from . import ProbeMethod
from .deadline import Deadline
from .models import DiscoveredEndpoint, StepResult
from .scontrol import ScontrolProbe
from .srv import SRV_SLURMCTLD, SRV_SLURMRESTD, DNS_QUERY_TIMEOUT, SrvLookup, local_domain, lookup_srv

logger = logging.getLogger(__name__)


def _copy(endpoint: DiscoveredEndpoint) -> DiscoveredEndpoint:
    return dataclasses.replace(endpoint, metadata=dict(endpoint.metadata))


class EndpointResolver:
    """Priority chain: SRV _slurmrestd, SRV _slurmctld, then ``scontrol ping``.

    The chain stops at the first step that yields an endpoint, and the result
    is cached for ``cache_seconds``. Only a disabled resolver or an exhausted
    chain raise; individual step failures are logged.
    """

    def __init__(
        self,
        config: DiscoveryConfig | None = None,
        hostname: str | None = None,
        srv_lookup: SrvLookup = lookup_srv,
        scontrol_probe: ProbeMethod | None = None,
        clock: Callable[[], float] = time.monotonic,
        log: logging.Logger | None = None,
    ):
        self._config = config or DiscoveryConfig()
        self._enabled = self._config.enabled and self._config.enable_endpoint
        self._hostname = hostname
        self._lookup = srv_lookup
        self._clock = clock
        self._log = log or logger
        self._scontrol = scontrol_probe or ScontrolProbe(
            self._config.scontrol_path,
            self._config.timeout_seconds,
            self._config.default_port,
            log=self._log,
        )

        self._cache_lock = threading.Lock()
        self._cached: DiscoveredEndpoint | None = None
        self._cache_expiry = 0.0

    # ── Enable / disable ───────────────────────────────────────────

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    # ── Discovery ──────────────────────────────────────────────────

    def discover_endpoint(self) -> DiscoveredEndpoint:
        """Return the cached endpoint or run the chain until one step succeeds."""
        if not self._enabled:
            raise DiscoveryDisabledError("auto-discovery is disabled")

        cached = self.get_cached_endpoint()
        if cached is not None:
            self._log.debug("Returning cached endpoint %s", cached.url)
            return cached

        self._log.debug("Starting endpoint auto-discovery")
        deadline = Deadline(self._config.timeout_seconds)
        start = self._clock()

        for source, step in self._steps():
            try:
                endpoint = step(deadline)
            except DiscoveryError as exc:
                self._log.debug("Discovery step %s failed: %s", source, exc)
                continue

            self._log.info(
                "Discovered slurmrestd endpoint %s via %s", endpoint.url, source,
                extra={"source": source, "endpoint": endpoint.url,
                       "elapsed_seconds": round(self._clock() - start, 3)},
            )
            self._store(endpoint)
            return endpoint

        raise EndpointNotFoundError("unable to discover slurmrestd endpoint: all discovery methods failed")

    def discover_endpoint_with_fallback(self) -> list[StepResult]:
        """Run every chain step, even after a hit, and report each outcome.

        Meant for troubleshooting output; the cache is neither read nor
        written.
        """
        deadline = Deadline(self._config.timeout_seconds)
        results: list[StepResult] = []
        for source, step in self._steps():
            try:
                results.append(StepResult(source=source, endpoint=step(deadline)))
            except DiscoveryError as exc:
                results.append(StepResult(source=source, error=exc))
        return results

    def _steps(self) -> list[tuple[str, Callable[[Deadline], DiscoveredEndpoint]]]:
        return [
            (f"srv-{SRV_SLURMRESTD}", self._via_slurmrestd_srv),
            (f"srv-{SRV_SLURMCTLD}", self._via_slurmctld_srv),
            ("scontrol", self._via_scontrol),
        ]

    def _via_slurmrestd_srv(self, deadline: Deadline) -> DiscoveredEndpoint:
        return self._via_srv(SRV_SLURMRESTD, deadline)

    def _via_slurmctld_srv(self, deadline: Deadline) -> DiscoveredEndpoint:
        # The controller's own port is not the REST port
        endpoint = self._via_srv(SRV_SLURMCTLD, deadline)
        endpoint.port = self._config.default_port
        endpoint.url = f"http://{endpoint.host}:{endpoint.port}"
        return endpoint

    def _via_srv(self, srv_name: str, deadline: Deadline) -> DiscoveredEndpoint:
        domain = local_domain(self._hostname)
        if not domain:
            raise ProbeError("unable to determine domain from hostname", probe="dns")

        full_name = f"{srv_name}.{domain}"
        record = self._lookup(full_name, deadline.bound(DNS_QUERY_TIMEOUT))[0]
        port = record.port or self._config.default_port

        return DiscoveredEndpoint(
            url=f"http://{record.target}:{port}",
            host=record.target,
            port=port,
            source=f"srv-{srv_name}",
            confidence=0.9,
            metadata={
                "srv_record": full_name,
                "priority": str(record.priority),
                "weight": str(record.weight),
            },
        )

    def _via_scontrol(self, deadline: Deadline) -> DiscoveredEndpoint:
        clusters = self._scontrol.discover(deadline)
        if not clusters:
            raise ProbeError("no clusters discovered via scontrol", probe="scontrol")

        cluster = clusters[0]
        if not cluster.rest_endpoints:
            raise ProbeError("no REST endpoints in discovered cluster", probe="scontrol")

        return DiscoveredEndpoint(
            url=cluster.rest_endpoints[0],
            host=cluster.host,
            port=cluster.port,
            source="scontrol",
            confidence=cluster.confidence,
            metadata=dict(cluster.metadata),
        )

    # ── Cache ──────────────────────────────────────────────────────

    def get_cached_endpoint(self) -> DiscoveredEndpoint | None:
        """The cached endpoint if it has not expired, without triggering discovery."""
        with self._cache_lock:
            if self._cached is not None and self._clock() < self._cache_expiry:
                return _copy(self._cached)
            return None

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cached = None
            self._cache_expiry = 0.0

    def _store(self, endpoint: DiscoveredEndpoint) -> None:
        with self._cache_lock:
            self._cached = _copy(endpoint)
            self._cache_expiry = self._clock() + self._config.cache_seconds
