"""Base class for projections."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from heartlink.contracts.game import Turn


class Projection(ABC):
    """Base class for turn log projections.

    A projection maintains derived state from the turn log.
    It is always rebuilt from a full snapshot, never patched by hand.
    """

    @abstractmethod
    def apply(self, turn: Turn) -> Any:
        """Apply one turn record to the projection state."""
        pass

    @abstractmethod
    def reset(self) -> None:
        """Reset projection to initial state."""
        pass

    def rebuild_from(self, turns: Iterable[Turn]) -> None:
        """Rebuild projection from a full log snapshot."""
        self.reset()
        for turn in turns:
            self.apply(turn)
