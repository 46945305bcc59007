"""Process-table probe for locally running SLURM daemons."""

from __future__ import annotations

import logging

import psutil

from ..config import DEFAULT_REST_PORT
from .deadline import Deadline
from .models import DiscoveredCluster

logger = logging.getLogger(__name__)

# daemon name -> confidence that a local slurmrestd is reachable
DAEMON_CONFIDENCE = {
    "slurmctld": 0.6,
    "slurmrestd": 0.9,
}


class ProcessProbe:
    """Looks for slurmctld / slurmrestd in the local process table."""

    name = "process"
    priority = 4

    def __init__(self, default_port: int = DEFAULT_REST_PORT, log: logging.Logger | None = None):
        self._port = default_port
        self._log = log or logger

    def discover(self, deadline: Deadline) -> list[DiscoveredCluster]:
        running = self.running_daemons(deadline)
        clusters: list[DiscoveredCluster] = []

        for daemon, confidence in DAEMON_CONFIDENCE.items():
            if daemon not in running:
                continue
            clusters.append(DiscoveredCluster(
                name=f"local-{daemon}",
                host="localhost",
                port=self._port,
                rest_endpoints=[f"https://localhost:{self._port}"],
                confidence=confidence,
                detection_methods=["process-scan"],
                metadata={"source": "process", "process": daemon},
            ))
        return clusters

    def running_daemons(self, deadline: Deadline) -> set[str]:
        """Names from DAEMON_CONFIDENCE found in any process name or command line.

        A platform without a readable process table yields an empty set.
        """
        found: set[str] = set()
        try:
            for proc in psutil.process_iter(["name", "cmdline"]):
                deadline.check(self.name)
                info = proc.info
                haystack = " ".join([info.get("name") or "", *(info.get("cmdline") or [])])
                for daemon in DAEMON_CONFIDENCE:
                    if daemon in haystack:
                        found.add(daemon)
                if len(found) == len(DAEMON_CONFIDENCE):
                    break
        except (psutil.Error, OSError, NotImplementedError) as exc:
            self._log.debug("Process table unavailable: %s", exc)
            return set()
        return found
