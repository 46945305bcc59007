"""Environment-variable and slurm.conf based probe methods."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping, Sequence
from pathlib import Path

from ..config import DEFAULT_REST_PORT
from .deadline import Deadline
from .models import DiscoveredCluster

logger = logging.getLogger(__name__)

ENV_CONTROLLER_HOST = "SLURM_CONTROLLER_HOST"
ENV_CONF = "SLURM_CONF"
ENV_CONF_DIR = "SLURM_CONF_DIR"

# SlurmctldHost=<name>(<addr>[:<port>])
_CTLD_HOST_PATTERN = re.compile(r"^([^(]+)\(([^:)]+)(?::(\d+))?\)")


def default_config_paths() -> list[Path]:
    return [
        Path("/etc/slurm/slurm.conf"),
        Path("/usr/local/etc/slurm.conf"),
        Path("/opt/slurm/etc/slurm.conf"),
        Path("/usr/local/etc/slurm/slurm.conf"),
        Path.home() / ".slurm" / "slurm.conf",
    ]


def parse_slurm_conf(
    path: str | Path,
    default_port: int = DEFAULT_REST_PORT,
    log: logging.Logger | None = None,
) -> DiscoveredCluster | None:
    """Extract cluster name and controller address from a slurm.conf file.

    Returns None when the file cannot be read. The first controller entry
    wins, since SLURM lists the primary controller first.
    """
    log = log or logger
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            lines = f.readlines()
    except OSError:
        return None

    name = ""
    host = ""
    port = 0
    for raw in lines:
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue

        if line.startswith("ClusterName="):
            name = line[len("ClusterName="):].strip()
        elif line.startswith("ControlMachine=") and not host:
            host = line[len("ControlMachine="):].strip()
        elif line.startswith("SlurmctldHost=") and not host:
            value = line[len("SlurmctldHost="):].strip()
            if "(" not in value:
                host = value
                continue
            match = _CTLD_HOST_PATTERN.match(value)
            if not match:
                log.debug("Skipping malformed SlurmctldHost in %s: %s", path, value)
                continue
            host = match.group(2).strip()
            if match.group(3):
                port = int(match.group(3))

    if host and not port:
        port = default_port

    return DiscoveredCluster(
        name=name or "config-cluster",
        host=host,
        port=port if host else 0,
        rest_endpoints=[f"https://{host}:{port}"] if host else [],
        config_path=str(path),
        confidence=0.9,
        detection_methods=["config-file"],
        metadata={
            "source": "config-file",
            "config_path": str(path),
        },
    )


class EnvironmentProbe:
    """Candidates from SLURM_CONTROLLER_HOST, SLURM_CONF and SLURM_CONF_DIR."""

    name = "environment"
    priority = 10

    def __init__(
        self,
        default_port: int = DEFAULT_REST_PORT,
        environ: Mapping[str, str] | None = None,
        log: logging.Logger | None = None,
    ):
        self._default_port = default_port
        self._environ = environ if environ is not None else os.environ
        self._log = log or logger

    def discover(self, deadline: Deadline) -> list[DiscoveredCluster]:
        clusters: list[DiscoveredCluster] = []

        ctld_host = self._environ.get(ENV_CONTROLLER_HOST, "")
        if ctld_host:
            clusters.append(DiscoveredCluster(
                name="environment-cluster",
                host=ctld_host,
                port=self._default_port,
                rest_endpoints=[f"https://{ctld_host}:{self._default_port}"],
                confidence=0.8,
                detection_methods=[ENV_CONTROLLER_HOST],
                metadata={"source": "environment", "host_env": ctld_host},
            ))

        candidates = []
        if self._environ.get(ENV_CONF):
            candidates.append((ENV_CONF, Path(self._environ[ENV_CONF])))
        if self._environ.get(ENV_CONF_DIR):
            candidates.append((ENV_CONF_DIR, Path(self._environ[ENV_CONF_DIR]) / "slurm.conf"))

        for variable, path in candidates:
            deadline.check(self.name)
            cluster = parse_slurm_conf(path, self._default_port, self._log)
            if cluster is None:
                self._log.debug("%s points at unreadable file %s", variable, path)
                continue
            cluster.detection_methods.append(variable)
            clusters.append(cluster)

        return clusters


class ConfigFileProbe:
    """Scans the conventional slurm.conf locations."""

    name = "config-files"
    priority = 8

    def __init__(
        self,
        default_port: int = DEFAULT_REST_PORT,
        paths: Sequence[str | Path] | None = None,
        log: logging.Logger | None = None,
    ):
        self._default_port = default_port
        self._paths = list(paths) if paths is not None else default_config_paths()
        self._log = log or logger

    def discover(self, deadline: Deadline) -> list[DiscoveredCluster]:
        clusters: list[DiscoveredCluster] = []
        for path in self._paths:
            deadline.check(self.name)
            cluster = parse_slurm_conf(path, self._default_port, self._log)
            if cluster is None:
                continue
            self._log.debug("Parsed SLURM config at %s", path)
            cluster.detection_methods = ["config-file-scan"]
            clusters.append(cluster)
        return clusters
