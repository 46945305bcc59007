"""HTTP reachability probe for slurmrestd on the local host and subnets."""

from __future__ import annotations

import ipaddress
import itertools
import logging
import socket
from collections.abc import Callable

import psutil
import requests

from ..config import DEFAULT_REST_PORT
from .deadline import Deadline
from .models import DiscoveredCluster

logger = logging.getLogger(__name__)

PING_PATH = "/slurm/v0.0.40/ping"

# A slurmrestd that demands auth still answers 401/403
_PRESENT_STATUSES = frozenset({200, 401, 403})


def local_ipv4_networks() -> list[ipaddress.IPv4Network]:
    """Non-loopback IPv4 networks of the local interfaces, without duplicates."""
    networks: list[ipaddress.IPv4Network] = []
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.netmask:
                continue
            try:
                network = ipaddress.IPv4Network(f"{addr.address}/{addr.netmask}", strict=False)
            except ValueError:
                continue
            if network.is_loopback or network in networks:
                continue
            networks.append(network)
    return networks


class NetworkProbe:
    """Pings well-known local URLs and, when enabled, a few neighbouring hosts."""

    name = "network"
    priority = 6

    def __init__(
        self,
        default_port: int = DEFAULT_REST_PORT,
        http_timeout: float = 5.0,
        verify_ssl: bool = True,
        scan_subnets: bool = False,
        max_hosts_per_subnet: int = 5,
        session: requests.Session | None = None,
        networks: Callable[[], list[ipaddress.IPv4Network]] = local_ipv4_networks,
        log: logging.Logger | None = None,
    ):
        self._port = default_port
        self._timeout = http_timeout
        self._verify = verify_ssl
        self._scan_subnets = scan_subnets
        self._max_hosts = max_hosts_per_subnet
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._networks = networks
        self._log = log or logger

    def local_endpoints(self) -> list[str]:
        return [
            f"http://localhost:{self._port}",
            f"https://localhost:{self._port}",
            f"http://127.0.0.1:{self._port}",
            f"https://127.0.0.1:{self._port}",
        ]

    def discover(self, deadline: Deadline) -> list[DiscoveredCluster]:
        try:
            return self._discover(deadline)
        finally:
            if self._owns_session:
                self._session.close()

    def _discover(self, deadline: Deadline) -> list[DiscoveredCluster]:
        clusters: list[DiscoveredCluster] = []

        for endpoint in self.local_endpoints():
            if not self.test_endpoint(endpoint, deadline):
                continue
            clusters.append(DiscoveredCluster(
                name="local-cluster",
                host="localhost",
                port=self._port,
                rest_endpoints=[endpoint],
                confidence=0.7,
                detection_methods=["network-scan"],
                metadata={"source": "network", "endpoint": endpoint},
            ))

        if self._scan_subnets:
            clusters.extend(self.scan_local_networks(deadline))

        return clusters

    def test_endpoint(self, endpoint: str, deadline: Deadline) -> bool:
        """True if *endpoint* answers the ping path like a slurmrestd would."""
        url = endpoint + PING_PATH
        try:
            resp = self._session.get(url, timeout=deadline.bound(self._timeout), verify=self._verify)
        except requests.RequestException as exc:
            self._log.debug("No slurmrestd at %s: %s", endpoint, exc)
            return False
        resp.close()
        return resp.status_code in _PRESENT_STATUSES

    def scan_local_networks(self, deadline: Deadline) -> list[DiscoveredCluster]:
        clusters: list[DiscoveredCluster] = []
        try:
            networks = self._networks()
        except (OSError, psutil.Error) as exc:
            self._log.debug("Could not enumerate local interfaces: %s", exc)
            return clusters

        for network in networks:
            clusters.extend(self.scan_network(network, deadline))
        return clusters

    def scan_network(self, network: ipaddress.IPv4Network, deadline: Deadline) -> list[DiscoveredCluster]:
        """Sequentially ping the first few hosts of *network*."""
        clusters: list[DiscoveredCluster] = []
        self._log.debug("Scanning up to %d hosts in %s", self._max_hosts, network)

        for ip in itertools.islice(network.hosts(), self._max_hosts):
            endpoint = f"https://{ip}:{self._port}"
            if not self.test_endpoint(endpoint, deadline):
                continue
            clusters.append(DiscoveredCluster(
                name=f"network-cluster-{ip}",
                host=str(ip),
                port=self._port,
                rest_endpoints=[endpoint],
                confidence=0.5,
                detection_methods=["network-scan"],
                metadata={"source": "network-scan", "scanned_ip": str(ip)},
            ))
        return clusters
