"""ViewState - the renderable summary derived from the turn log."""

from enum import Enum

from pydantic import BaseModel, Field

from heartlink.contracts.game import Turn


class Phase(str, Enum):
    """What the local player should be looking at."""

    LOBBY = "lobby"
    """Room still waiting for a second player."""

    AWAITING_PROMPT_CHOICE = "awaiting_prompt_choice"
    """Local player spins for truth or dare."""

    AWAITING_ANSWER = "awaiting_answer"
    """Local player has an open prompt to answer."""

    WAITING = "waiting"
    """The other player is about to choose a prompt."""

    WAITING_ON_OTHER = "waiting_on_other"
    """The other player has an open prompt."""


class ViewState(BaseModel):
    """Derived state for one client.

    Always recomputed from a full log snapshot; never stored or patched.
    """

    room_id: str
    local_player: str
    active_player: str | None = Field(
        default=None,
        description="Whose move it is (None while in the lobby)"
    )
    phase: Phase
    current_turn: Turn | None = Field(
        default=None,
        description="The open turn, if any"
    )
    history: tuple[Turn, ...] = Field(
        default=(),
        description="Closed turns, newest first"
    )
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    closed_count: int = Field(default=0, ge=0)
    max_turn_number: int = Field(default=0, ge=0)
    duplicate_turn_numbers: tuple[int, ...] = Field(
        default=(),
        description="Turn numbers that appeared more than once in the snapshot"
    )
    is_complete: bool = False

    model_config = {"frozen": True}

    @property
    def is_my_turn(self) -> bool:
        return self.active_player == self.local_player

    @property
    def next_turn_number(self) -> int:
        return self.max_turn_number + 1
