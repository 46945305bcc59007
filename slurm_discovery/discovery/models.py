"""Data models for discovered endpoints, clusters and controller status."""

from __future__ import annotations

from dataclasses import dataclass, field

PROFILE_API_VERSION = "v0.0.43"
PROFILE_TIMEOUT = "30s"


def _clamp(confidence: float) -> float:
    return min(1.0, max(0.0, float(confidence)))


def _profile(endpoint: str) -> dict[str, str]:
    return {
        "endpoint": endpoint,
        "api_version": PROFILE_API_VERSION,
        "timeout": PROFILE_TIMEOUT,
    }


@dataclass
class DiscoveredEndpoint:
    """A slurmrestd endpoint found by the resolver chain."""

    url: str
    host: str
    port: int
    source: str  # "srv-_slurmrestd._tcp", "srv-_slurmctld._tcp" or "scontrol"
    confidence: float = 0.0
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.confidence = _clamp(self.confidence)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "host": self.host,
            "port": self.port,
            "source": self.source,
            "confidence": self.confidence,
            "metadata": dict(self.metadata),
        }

    def to_cluster_profile(self) -> dict[str, str]:
        """Cluster profile fields the configuration layer persists."""
        return _profile(self.url)


@dataclass
class DiscoveredCluster:
    """A candidate cluster reported by one or more probe methods.

    Mutable on purpose: merge folds colliding candidates into the first one
    seen.
    """

    name: str = ""
    host: str = ""
    port: int = 0
    rest_endpoints: list[str] = field(default_factory=list)
    config_path: str = ""
    version: str = ""
    confidence: float = 0.0
    detection_methods: list[str] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.confidence = _clamp(self.confidence)

    @property
    def key(self) -> str:
        """Dedup key: host:port, else first REST endpoint, else name."""
        if self.host:
            return f"{self.host}:{self.port}"
        if self.rest_endpoints:
            return self.rest_endpoints[0]
        return self.name

    @property
    def primary_endpoint(self) -> str | None:
        return self.rest_endpoints[0] if self.rest_endpoints else None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "rest_endpoints": list(self.rest_endpoints),
            "config_path": self.config_path,
            "version": self.version,
            "confidence": self.confidence,
            "detection_methods": list(self.detection_methods),
            "metadata": dict(self.metadata),
        }

    def to_cluster_profile(self) -> dict[str, str]:
        return _profile(self.primary_endpoint or "")


@dataclass(frozen=True)
class ScontrolResult:
    """One controller line from ``scontrol ping``."""

    hostname: str
    role: str  # "primary" or "backup"
    status: str  # "UP" or "DOWN"

    @property
    def is_up(self) -> bool:
        return self.status == "UP"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one resolver chain step, kept for troubleshooting output."""

    source: str
    endpoint: DiscoveredEndpoint | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.endpoint is not None and self.error is None

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "endpoint": self.endpoint.to_dict() if self.endpoint else None,
            "error": str(self.error) if self.error else None,
        }
