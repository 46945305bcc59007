"""Custom exception hierarchy for the SLURM discovery engine."""


class DiscoveryError(Exception):
    """Base exception for all discovery errors."""


class ConfigError(DiscoveryError):
    """Invalid or missing configuration."""


class DiscoveryDisabledError(DiscoveryError):
    """Discovery was switched off by configuration; no I/O was attempted."""


class EndpointNotFoundError(DiscoveryError):
    """Every step of the endpoint resolution chain failed."""


class ProbeError(DiscoveryError):
    """A single probe or chain step failed."""

    def __init__(self, message: str, probe: str | None = None):
        super().__init__(message)
        self.probe = probe


class DeadlineExceeded(ProbeError):
    """The shared discovery deadline expired or was cancelled."""


class CommandValidationError(DiscoveryError):
    """An external command path failed validation."""


class TokenError(DiscoveryError):
    """A SLURM JWT token could not be resolved."""
