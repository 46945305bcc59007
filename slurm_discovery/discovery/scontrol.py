"""``scontrol ping`` probe and output parser."""

from __future__ import annotations

import logging
import re
import subprocess

from ..config import DEFAULT_REST_PORT
from ..exceptions import CommandValidationError, ProbeError
from ..security import validate_and_resolve_command
from .deadline import Deadline
from .models import DiscoveredCluster, ScontrolResult

logger = logging.getLogger(__name__)

DEFAULT_SCONTROL = "scontrol"
DEFAULT_COMMAND_TIMEOUT = 10.0

# "Slurmctld(primary) at host1 is UP", then the role-less variant
_ROLE_PATTERN = re.compile(r"Slurmctld\((\w+)\)\s+at\s+(\S+)\s+is\s+(\w+)")
_PLAIN_PATTERN = re.compile(r"Slurmctld\s+at\s+(\S+)\s+is\s+(\w+)")


def parse_ping_output(output: str, log: logging.Logger | None = None) -> list[ScontrolResult]:
    """Parse ``scontrol ping`` text into one ScontrolResult per controller line.

    Lines that match neither format are logged and skipped.
    """
    log = log or logger
    results: list[ScontrolResult] = []

    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue

        match = _ROLE_PATTERN.search(line)
        if match:
            results.append(ScontrolResult(
                hostname=match.group(2),
                role=match.group(1).lower(),
                status=match.group(3).upper(),
            ))
            continue

        match = _PLAIN_PATTERN.search(line)
        if match:
            results.append(ScontrolResult(
                hostname=match.group(1),
                role="primary",
                status=match.group(2).upper(),
            ))
            continue

        log.debug("Could not parse scontrol line: %s", line)

    return results


def get_controller_hostname(output: str) -> tuple[str, bool]:
    """Best controller host: first UP primary, else first UP of any role."""
    results = parse_ping_output(output)

    for result in results:
        if result.role == "primary" and result.is_up:
            return result.hostname, True

    for result in results:
        if result.is_up:
            return result.hostname, True

    return "", False


def result_to_cluster(result: ScontrolResult, default_port: int = DEFAULT_REST_PORT) -> DiscoveredCluster | None:
    """Candidate for an UP controller; DOWN controllers yield None."""
    if not result.is_up:
        return None

    return DiscoveredCluster(
        name=f"scontrol-{result.hostname}",
        host=result.hostname,
        port=default_port,
        rest_endpoints=[f"http://{result.hostname}:{default_port}"],
        confidence=0.9 if result.role == "primary" else 0.85,
        detection_methods=["scontrol-ping"],
        metadata={
            "source": "scontrol",
            "controller_role": result.role,
            "status": result.status,
        },
    )


def results_to_clusters(results: list[ScontrolResult], default_port: int = DEFAULT_REST_PORT) -> list[DiscoveredCluster]:
    clusters = []
    for result in results:
        cluster = result_to_cluster(result, default_port)
        if cluster is None:
            logger.debug("Skipping controller %s (status: %s)", result.hostname, result.status)
            continue
        clusters.append(cluster)
    return clusters


def resolve_scontrol_path(path: str = DEFAULT_SCONTROL, log: logging.Logger | None = None) -> str:
    """Validated absolute path, or the configured path unchanged if validation fails."""
    path = path or DEFAULT_SCONTROL
    try:
        return validate_and_resolve_command(path, "slurm")
    except CommandValidationError as exc:
        (log or logger).debug("Using unvalidated scontrol path %s: %s", path, exc)
        return path


class ScontrolProbe:
    """Runs ``scontrol ping`` and turns the UP controllers into candidates."""

    name = "scontrol"
    priority = 5

    def __init__(
        self,
        scontrol_path: str = DEFAULT_SCONTROL,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
        default_port: int = DEFAULT_REST_PORT,
        log: logging.Logger | None = None,
    ):
        self._log = log or logger
        self.scontrol_path = resolve_scontrol_path(scontrol_path, self._log)
        self._timeout = timeout or DEFAULT_COMMAND_TIMEOUT
        self._port = default_port or DEFAULT_REST_PORT

    def discover(self, deadline: Deadline) -> list[DiscoveredCluster]:
        output = self.run_ping(deadline)
        results = parse_ping_output(output, self._log)
        if not results:
            self._log.debug("No controllers found in scontrol ping output")
            return []

        clusters = results_to_clusters(results, self._port)
        self._log.debug("scontrol discovery found %d clusters", len(clusters))
        return clusters

    def run_ping(self, deadline: Deadline) -> str:
        """Execute ``scontrol ping`` and return its standard output."""
        self._log.debug("Running %s ping", self.scontrol_path)
        try:
            proc = subprocess.run(
                [self.scontrol_path, "ping"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=deadline.bound(self._timeout),
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProbeError(f"scontrol ping timed out after {exc.timeout:.1f}s", probe=self.name) from exc
        except OSError as exc:
            raise ProbeError(f"scontrol ping failed: {exc}", probe=self.name) from exc

        if proc.returncode != 0:
            if proc.stderr.strip():
                self._log.debug("scontrol stderr: %s", proc.stderr.strip()[:500])
            raise ProbeError(f"scontrol ping exited with status {proc.returncode}", probe=self.name)

        return proc.stdout
