"""Resolution of SLURM JWT tokens once an endpoint is known."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .config import TokenConfig
from .discovery.scontrol import resolve_scontrol_path
from .exceptions import DiscoveryDisabledError, TokenError

logger = logging.getLogger(__name__)

ENV_JWT = "SLURM_JWT"

# Cached tokens this close to expiry are treated as expired
REFRESH_MARGIN = timedelta(minutes=5)
ASSUMED_ENV_LIFETIME = timedelta(hours=1)

_TOKEN_PATTERNS = (
    re.compile(r"SLURM_JWT=([A-Za-z0-9\-._~+/]+=*)"),
    re.compile(r"(?i)token[:\s]*([A-Za-z0-9\-._~+/]+=*)"),
)


@dataclass
class DiscoveredToken:
    token: str
    username: str = ""
    expires_at: datetime | None = None
    source: str = ""  # "environment" or "scontrol"
    metadata: dict[str, str] = field(default_factory=dict)

    def to_auth_header(self) -> dict[str, str]:
        return {"X-SLURM-USER-TOKEN": self.token, "X-SLURM-USER-NAME": self.username}

    def redacted(self) -> str:
        if len(self.token) <= 8:
            return "***"
        return f"{self.token[:4]}...{self.token[-4:]}"


def parse_token_output(output: str) -> str:
    """Extract the JWT from ``scontrol token`` output."""
    for line in output.strip().splitlines():
        line = line.strip()
        if line.startswith(f"{ENV_JWT}="):
            token = line[len(ENV_JWT) + 1:]
            if token:
                return token

    for pattern in _TOKEN_PATTERNS:
        match = pattern.search(output)
        if match and match.group(1):
            return match.group(1)

    raise TokenError(f"could not find token in scontrol output: {output.strip()[:200]}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TokenResolver:
    """Returns a cached token, $SLURM_JWT, or a fresh ``scontrol token``."""

    def __init__(
        self,
        config: TokenConfig | None = None,
        enabled: bool = True,
        environ: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] = _now,
        log: logging.Logger | None = None,
    ):
        self._config = config or TokenConfig()
        self._enabled = enabled
        self._environ = environ if environ is not None else os.environ
        self._clock = clock
        self._log = log or logger
        self.scontrol_path = resolve_scontrol_path(self._config.scontrol_path, self._log)

        self._lock = threading.Lock()
        self._cached: DiscoveredToken | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def resolve_token(self, cluster_name: str = "") -> DiscoveredToken:
        if not self._enabled:
            raise DiscoveryDisabledError("token discovery is disabled")

        self._log.debug("Starting token discovery for cluster %s", cluster_name or "<default>")

        cached = self._get_cached()
        if cached is not None:
            self._log.debug("Returning cached token for user %s", cached.username)
            return cached

        env_token = self._environ.get(ENV_JWT, "")
        if env_token:
            self._log.debug("Using token from %s", ENV_JWT)
            token = DiscoveredToken(
                token=env_token,
                username=self._environ.get("USER", ""),
                expires_at=self._clock() + ASSUMED_ENV_LIFETIME,
                source="environment",
                metadata={"env_var": ENV_JWT},
            )
        else:
            token = self._generate()

        self._store(token)
        return token

    def refresh_token(self) -> DiscoveredToken:
        """Generate a new token with scontrol, ignoring the cache and $SLURM_JWT."""
        self.clear_cache()
        token = self._generate()
        self._store(token)
        return token

    def _generate(self) -> DiscoveredToken:
        username = self._environ.get("USER", "")
        if not username:
            raise TokenError("USER environment variable not set")

        lifespan = self._config.lifespan_seconds
        self._log.debug("Generating SLURM token for %s with lifespan %ds", username, lifespan)
        try:
            proc = subprocess.run(
                [self.scontrol_path, "token", f"username={username}", f"lifespan={lifespan}"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self._config.timeout_seconds,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise TokenError(f"scontrol token failed: {exc}") from exc

        if proc.returncode != 0:
            raise TokenError(
                f"scontrol token exited with status {proc.returncode} (stderr: {proc.stderr.strip()})"
            )

        token = DiscoveredToken(
            token=parse_token_output(proc.stdout),
            username=username,
            expires_at=self._clock() + timedelta(seconds=lifespan),
            source="scontrol",
            metadata={"generated_by": "scontrol token", "lifespan": str(lifespan)},
        )
        self._log.info("Generated SLURM token, expires at %s", token.expires_at.isoformat())
        return token

    # ── Cache ──────────────────────────────────────────────────────

    def _get_cached(self) -> DiscoveredToken | None:
        with self._lock:
            token = self._cached
            if token is None or token.expires_at is None:
                return None
            if self._clock() + REFRESH_MARGIN >= token.expires_at:
                return None
            return token

    def _store(self, token: DiscoveredToken) -> None:
        with self._lock:
            self._cached = token

    def clear_cache(self) -> None:
        with self._lock:
            self._cached = None

    def is_token_expired(self) -> bool:
        with self._lock:
            if self._cached is None or self._cached.expires_at is None:
                return True
            return self._clock() >= self._cached.expires_at

    def expires_in(self) -> timedelta:
        with self._lock:
            if self._cached is None or self._cached.expires_at is None:
                return timedelta(0)
            return self._cached.expires_at - self._clock()
