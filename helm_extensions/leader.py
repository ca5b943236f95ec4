"""Leadership queries used to run a single active reconciler per cluster."""

from abc import ABC, abstractmethod
import logging

__all__ = ["LeaderElector", "StaticLeaderElector"]

_LOGGER = logging.getLogger(__name__)


class LeaderElector(ABC):
    """Reports whether this process is the active replica.

    Implementations are queried on every reconciliation attempt and must
    return the current state, not a cached one.
    """

    @abstractmethod
    def is_leader(self) -> bool:
        """Return True if this process currently holds leadership."""


class StaticLeaderElector(LeaderElector):
    """A leader elector whose state is set explicitly.

    Used for single replica deployments, where it always reports leadership,
    and by callers that drive leadership from an external lease.
    """

    def __init__(self, leader: bool = True) -> None:
        """Initialize StaticLeaderElector."""
        self._leader = leader

    def is_leader(self) -> bool:
        """Return the current leadership state."""
        return self._leader

    def set_leader(self, leader: bool) -> None:
        """Acquire or lose leadership."""
        if leader != self._leader:
            _LOGGER.info("Leadership %s", "acquired" if leader else "lost")
        self._leader = leader
