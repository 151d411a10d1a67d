"""ActionSubmitter - the two writes a player can make to the turn log."""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from heartlink.contracts.game import PromptKind, Turn
from heartlink.contracts.view import Phase, ViewState
from heartlink.errors import (
    InvalidAction,
    NoOpenTurn,
    StaleTurnNumber,
    TurnConflict,
    TurnNotFound,
)
from heartlink.prompts.pool import PromptPool
from heartlink.runtime.sync_loop import SyncLoop
from heartlink.store.protocol import TurnRecordStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActionSubmitter:
    """Creates and closes turns on behalf of the local player.

    Every action is checked against the SyncLoop's current view. The
    submitter never patches that view itself; the store's change notice
    brings the new state back through the loop.
    """

    def __init__(
        self,
        store: TurnRecordStore,
        sync_loop: SyncLoop,
        prompt_pool: PromptPool,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.sync_loop = sync_loop
        self.prompt_pool = prompt_pool
        self.clock = clock

    @property
    def local_player(self) -> str:
        return self.sync_loop.local_player

    def _require(self, phase: Phase) -> ViewState:
        view = self.sync_loop.view
        if view is None or not self.sync_loop.is_active:
            raise InvalidAction("not connected to a room")
        if view.phase != phase:
            raise InvalidAction(
                f"{self.local_player} cannot do that while {view.phase.value}"
            )
        return view

    # ─────────────────────────────────────────────────────────────────────
    # Create next turn
    # ─────────────────────────────────────────────────────────────────────

    async def choose_prompt(self, kind: PromptKind | str) -> Turn:
        """Open the next turn with a prompt of the spun kind.

        On a turn number conflict the log is re-fetched and the insert is
        retried exactly once.

        Raises:
            InvalidAction: not the local player's turn to choose
            StaleTurnNumber: the retry conflicted as well
        """
        kind = PromptKind(kind)
        view = self._require(Phase.AWAITING_PROMPT_CHOICE)
        try:
            return await self._insert(view, kind)
        except TurnConflict as e:
            logger.warning(f"Turn {e.turn_number} already taken, re-fetching and retrying")

        view = await self.sync_loop.refresh()
        if view is None:
            raise StaleTurnNumber("turn log could not be re-fetched")

        current = view.current_turn
        if current is not None and current.player_name == self.local_player:
            logger.info(f"Turn {current.turn_number} is already open for {self.local_player}")
            return current
        if view.phase != Phase.AWAITING_PROMPT_CHOICE:
            raise StaleTurnNumber(f"the game moved on to {view.phase.value}")

        try:
            return await self._insert(view, kind)
        except TurnConflict as e:
            raise StaleTurnNumber(
                f"turn {e.turn_number} was taken twice, please try again"
            ) from e

    async def _insert(self, view: ViewState, kind: PromptKind) -> Turn:
        room = self.sync_loop.room
        if room is None:
            raise InvalidAction("not connected to a room")
        prompt = self.prompt_pool.pick_prompt(room.game_mode, kind)
        turn = await self.store.insert_turn(
            room.id,
            view.next_turn_number,
            self.local_player,
            kind,
            prompt,
        )
        logger.info(f"{self.local_player} opened turn {turn.turn_number} ({kind.value})")
        return turn

    # ─────────────────────────────────────────────────────────────────────
    # Close current turn
    # ─────────────────────────────────────────────────────────────────────

    async def submit_answer(self, text: str) -> Turn | None:
        """Record the local player's answer on their open turn.

        Returns:
            The closed turn, or None when the turn had already been closed
            elsewhere (the SyncLoop will catch up on its own)

        Raises:
            InvalidAction: no open turn for the local player, or empty answer
        """
        view = self._require(Phase.AWAITING_ANSWER)
        answer = text.strip()
        if not answer:
            raise InvalidAction("please enter an answer")

        try:
            return await self._close(view.current_turn, answer)
        except NoOpenTurn as e:
            logger.info(f"Answer not recorded: {e}")
            return None

    async def _close(self, turn: Turn | None, answer: str) -> Turn:
        if turn is None:
            raise NoOpenTurn("no open turn")
        try:
            closed = await self.store.update_turn_answer(turn.id, answer, self.clock())
        except TurnNotFound as e:
            raise NoOpenTurn(f"turn {turn.turn_number} is no longer open") from e
        logger.info(f"{self.local_player} answered turn {closed.turn_number}")
        return closed
