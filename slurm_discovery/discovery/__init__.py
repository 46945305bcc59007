"""Discovery package: the probe method Protocol shared by every source."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .deadline import Deadline
    from .models import DiscoveredCluster


@runtime_checkable
class ProbeMethod(Protocol):
    """Protocol that every cluster probe must satisfy.

    ``priority`` is informational and only used to break ties; probes are
    never scheduled by it.
    """

    name: str
    priority: int

    def discover(self, deadline: Deadline) -> list[DiscoveredCluster]:
        """Return candidate clusters, raising on probe-local failure."""
        ...
