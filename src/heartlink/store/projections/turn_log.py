"""TurnLogProjection - derives whose turn it is from the shared turn log.

The log arrives as a snapshot fetched after a change notice. Nothing about
its order is trusted: turns are keyed by turn_number, and when two rows claim
the same number (two racing inserts) one of them is picked as canonical with
a rule that does not depend on arrival order.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from heartlink.contracts.game import Room, RoomStatus, Turn
from heartlink.contracts.view import Phase, ViewState
from heartlink.store.projections.base import Projection

logger = logging.getLogger(__name__)

_NEVER = datetime.max.replace(tzinfo=timezone.utc)


def _aware(ts: datetime | None) -> datetime:
    if ts is None:
        return _NEVER
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def canonical_rank(turn: Turn, position: int) -> tuple:
    """Sort key among rows sharing a turn_number; lowest wins.

    Earliest authored first, then earliest answered (unanswered last),
    then row id. Position in the snapshot only breaks exact ties.
    """
    return (_aware(turn.created_at), _aware(turn.answered_at), turn.id, position)


def compute_progress(closed_count: int, target: int) -> float:
    """Linear 0-100 progress over closed turns, capped at `target`."""
    if target <= 0:
        raise ValueError(f"progress target must be positive, got {target}")
    return min(100.0, closed_count * 100.0 / target)


@dataclass
class TurnLogProjection(Projection):
    """Canonical turn log keyed by turn_number."""

    canonical: dict[int, Turn] = field(default_factory=dict)
    duplicates: set[int] = field(default_factory=set)
    _ranks: dict[int, tuple] = field(default_factory=dict)
    _seen: int = 0

    def reset(self) -> None:
        """Reset to initial state."""
        self.canonical.clear()
        self.duplicates.clear()
        self._ranks.clear()
        self._seen = 0

    def apply(self, turn: Turn) -> None:
        """Fold one row into the canonical log."""
        position = self._seen
        self._seen += 1
        number = turn.turn_number
        existing = self.canonical.get(number)

        if existing is None:
            self.canonical[number] = turn
            self._ranks[number] = canonical_rank(turn, position)
            return

        if existing.id == turn.id:
            # Same row seen twice: a row only ever moves from open to closed
            if existing.is_open and turn.is_closed:
                self.canonical[number] = turn
            return

        self.duplicates.add(number)
        rank = canonical_rank(turn, position)
        if rank < self._ranks[number]:
            logger.debug(f"Turn {number}: {turn.id} replaces {existing.id} as canonical")
            self.canonical[number] = turn
            self._ranks[number] = rank
        else:
            logger.debug(f"Turn {number}: ignoring duplicate {turn.id}")

    def turns(self) -> list[Turn]:
        """Canonical turns ordered by turn_number ascending."""
        return [self.canonical[n] for n in sorted(self.canonical)]

    @property
    def max_turn_number(self) -> int:
        return max(self.canonical, default=0)

    def view(self, room: Room, local_player: str, progress_target: int) -> ViewState:
        """Derive the ViewState for `local_player`."""
        turns = self.turns()
        closed = [t for t in turns if t.is_closed]
        progress = compute_progress(len(closed), progress_target)

        common = dict(
            room_id=room.id,
            local_player=local_player,
            history=tuple(reversed(closed)),
            progress=progress,
            closed_count=len(closed),
            max_turn_number=self.max_turn_number,
            duplicate_turn_numbers=tuple(sorted(self.duplicates)),
            is_complete=progress >= 100.0,
        )

        if room.status == RoomStatus.WAITING and not room.player2:
            return ViewState(phase=Phase.LOBBY, **common)

        current_turn: Turn | None = None
        if not turns:
            active = room.player1
        elif turns[-1].is_closed:
            active = room.other_player(turns[-1].player_name)
        else:
            current_turn = turns[-1]
            active = current_turn.player_name

        mine = active == local_player
        if current_turn is None:
            phase = Phase.AWAITING_PROMPT_CHOICE if mine else Phase.WAITING
        else:
            phase = Phase.AWAITING_ANSWER if mine else Phase.WAITING_ON_OTHER

        return ViewState(
            active_player=active,
            phase=phase,
            current_turn=current_turn,
            **common,
        )


def project(
    room: Room,
    turns: Iterable[Turn],
    local_player: str,
    progress_target: int = 20,
) -> ViewState:
    """Pure projection of a log snapshot to a ViewState.

    Args:
        room: Latest known room metadata
        turns: Turn rows in any order, possibly with duplicate numbers
        local_player: Display name of the player this view is for
        progress_target: Closed turns needed for 100% progress

    Returns:
        The ViewState for `local_player`
    """
    projection = TurnLogProjection()
    projection.rebuild_from(turns)
    return projection.view(room, local_player, progress_target)
