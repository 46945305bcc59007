"""Key-based deduplication and confidence ranking of discovered clusters."""

from __future__ import annotations

import logging

from .models import DiscoveredCluster

logger = logging.getLogger(__name__)


def cluster_key(cluster: DiscoveredCluster) -> str:
    return cluster.key


def merge_clusters(clusters: list[DiscoveredCluster]) -> list[DiscoveredCluster]:
    """Fold clusters that share a dedup key into the first one seen.

    Each collision averages just the two confidences involved, so with three
    or more contributors later sources weigh more than earlier ones.
    Detection methods are concatenated as-is, metadata is overwritten by the
    incoming entry and REST endpoints are unioned. Candidates without any
    REST endpoint are dropped. Input order is preserved.
    """
    merged: dict[str, DiscoveredCluster] = {}

    for cluster in clusters:
        key = cluster_key(cluster)
        existing = merged.get(key)
        if existing is None:
            merged[key] = cluster
            continue

        logger.debug("Merging cluster %s into %s (key %s)", cluster.name, existing.name, key)
        existing.confidence = (existing.confidence + cluster.confidence) / 2
        existing.detection_methods.extend(cluster.detection_methods)
        existing.metadata.update(cluster.metadata)
        for endpoint in cluster.rest_endpoints:
            if endpoint not in existing.rest_endpoints:
                existing.rest_endpoints.append(endpoint)

    result = []
    for cluster in merged.values():
        if not cluster.rest_endpoints:
            logger.debug("Dropping cluster %s: no REST endpoint", cluster.name or cluster.key)
            continue
        result.append(cluster)
    return result


def sort_by_confidence(clusters: list[DiscoveredCluster]) -> list[DiscoveredCluster]:
    """Highest confidence first; equal confidences keep their discovery order."""
    return sorted(clusters, key=lambda c: c.confidence, reverse=True)


def rank_clusters(clusters: list[DiscoveredCluster]) -> list[DiscoveredCluster]:
    return sort_by_confidence(merge_clusters(clusters))
