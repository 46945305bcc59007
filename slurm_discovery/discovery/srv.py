"""DNS SRV lookups and the DNS probe method."""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable
from dataclasses import dataclass

import dns.exception
import dns.resolver

from ..exceptions import ProbeError
from .deadline import Deadline
from .models import DiscoveredCluster

logger = logging.getLogger(__name__)

SRV_SLURMRESTD = "_slurmrestd._tcp"
SRV_SLURMCTLD = "_slurmctld._tcp"
SRV_SLURM = "_slurm._tcp"

PROBE_SRV_NAMES = (SRV_SLURMRESTD, SRV_SLURM, SRV_SLURMCTLD)

# Per-query cap, further clamped by the shared deadline
DNS_QUERY_TIMEOUT = 5.0


@dataclass(frozen=True)
class SrvRecord:
    target: str
    port: int
    priority: int = 0
    weight: int = 0


SrvLookup = Callable[[str, float], list[SrvRecord]]


def local_domain(hostname: str | None = None) -> str:
    """Everything after the first label of the local hostname, or ``""``."""
    if hostname is None:
        hostname = socket.gethostname()
    if "." not in hostname:
        return ""
    return hostname.split(".", 1)[1].strip(".")


def lookup_srv(name: str, timeout: float) -> list[SrvRecord]:
    """Resolve SRV records for *name*, best (lowest priority, highest weight) first."""
    try:
        answer = dns.resolver.resolve(name, "SRV", lifetime=timeout)
    except dns.exception.DNSException as exc:
        raise ProbeError(f"SRV lookup failed for {name}: {exc}", probe="dns") from exc

    records: list[SrvRecord] = []
    for rr in answer:
        target = str(rr.target).rstrip(".")
        # A "." target means the service is decidedly not available
        if not target:
            continue
        records.append(SrvRecord(
            target=target,
            port=int(rr.port),
            priority=int(rr.priority),
            weight=int(rr.weight),
        ))
    if not records:
        raise ProbeError(f"no SRV records found for {name}", probe="dns")
    records.sort(key=lambda r: (r.priority, -r.weight))
    return records


class DNSProbe:
    """Candidates from the well-known SLURM SRV names under the local domain."""

    name = "dns"
    priority = 7

    def __init__(
        self,
        hostname: str | None = None,
        srv_lookup: SrvLookup = lookup_srv,
        log: logging.Logger | None = None,
    ):
        self._hostname = hostname
        self._lookup = srv_lookup
        self._log = log or logger

    def discover(self, deadline: Deadline) -> list[DiscoveredCluster]:
        clusters: list[DiscoveredCluster] = []
        domain = local_domain(self._hostname)
        if not domain:
            self._log.debug("No DNS domain in local hostname, skipping SRV probe")
            return clusters

        for srv_name in PROBE_SRV_NAMES:
            full_name = f"{srv_name}.{domain}"
            try:
                records = self._lookup(full_name, deadline.bound(DNS_QUERY_TIMEOUT))
            except ProbeError as exc:
                self._log.debug("%s", exc)
                continue

            for record in records:
                clusters.append(DiscoveredCluster(
                    name=f"dns-cluster-{record.target}",
                    host=record.target,
                    port=record.port,
                    rest_endpoints=[f"https://{record.target}:{record.port}"],
                    confidence=0.8,
                    detection_methods=["dns-srv"],
                    metadata={
                        "source": "dns",
                        "srv_record": full_name,
                        "priority": str(record.priority),
                        "weight": str(record.weight),
                    },
                ))

        return clusters
