"""Argument parsing, configuration loading, and discovery bootstrap."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys

from .config import AppConfig, load_config
from .discovery.coordinator import ClusterProbeCoordinator
from .discovery.resolver import EndpointResolver
from .exceptions import ConfigError, DiscoveryError, EndpointNotFoundError
from .logging_config import configure_logging
from .token_resolver import TokenResolver

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slurm-discovery",
        description="Locate a SLURM cluster's slurmrestd endpoint and credentials",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to the YAML configuration file (defaults apply when omitted)",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate the configuration file and exit",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--clusters",
        action="store_true",
        help="Run every probe concurrently and print all ranked clusters",
    )
    mode.add_argument(
        "--diagnose",
        action="store_true",
        help="Run every endpoint resolution step and print each outcome",
    )
    parser.add_argument(
        "--scan-subnets",
        action="store_true",
        help="Also probe a few hosts on each local IPv4 subnet",
    )
    parser.add_argument(
        "--token",
        action="store_true",
        help="Resolve a SLURM JWT token after the endpoint is found",
    )
    return parser


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _resolve_profile(config: AppConfig) -> dict | None:
    """Fast chain first, exhaustive probe run if it comes up empty."""
    resolver = EndpointResolver(config.discovery)
    try:
        endpoint = resolver.discover_endpoint()
        return {**endpoint.to_cluster_profile(), "discovered": endpoint.to_dict()}
    except EndpointNotFoundError as exc:
        logger.info("%s, falling back to full cluster probe", exc)

    clusters = ClusterProbeCoordinator(config.discovery).discover_clusters()
    if not clusters:
        return None
    best = clusters[0]
    return {**best.to_cluster_profile(), "discovered": best.to_dict()}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load config (minimal logging until config is loaded)
    try:
        config = load_config(args.config) if args.config else AppConfig()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(config.logging)

    if args.validate:
        logger.info("Configuration is valid")
        return 0

    if args.scan_subnets:
        config = dataclasses.replace(
            config, discovery=dataclasses.replace(config.discovery, scan_local_subnets=True),
        )

    try:
        if args.diagnose:
            steps = EndpointResolver(config.discovery).discover_endpoint_with_fallback()
            _print_json([step.to_dict() for step in steps])
            return 0 if any(step.ok for step in steps) else 1

        if args.clusters:
            clusters = ClusterProbeCoordinator(config.discovery).discover_clusters()
            _print_json([cluster.to_dict() for cluster in clusters])
            return 0 if clusters else 1

        profile = _resolve_profile(config)
        if profile is None:
            logger.error("No SLURM cluster found; configure the endpoint explicitly")
            return 1

        if args.token and config.discovery.enable_token:
            token = TokenResolver(config.token).resolve_token(profile["discovered"].get("name", ""))
            profile["token"] = {
                "value": token.redacted(),
                "username": token.username,
                "source": token.source,
                "expires_at": token.expires_at,
            }
        _print_json(profile)
    except DiscoveryError as exc:
        logger.error("Discovery failed: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130

    return 0
