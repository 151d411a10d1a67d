"""Game contracts - rooms and turns as stored in the shared log."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GameMode(str, Enum):
    """Prompt flavour chosen when the room is created."""

    FRIENDLY = "friendly"
    CRUSH = "crush"
    ADULT = "adult"


class PromptKind(str, Enum):
    """The two prompt categories a player can land on."""

    TRUTH = "truth"
    DARE = "dare"


class RoomStatus(str, Enum):
    WAITING = "waiting"
    PLAYING = "playing"


class Room(BaseModel):
    """A two-seat game room.

    Once the room is playing both seats are filled and never change.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Room identifier")
    room_code: str = Field(default="", description="Short join code")
    game_mode: GameMode = Field(default=GameMode.FRIENDLY)
    player1: str = Field(min_length=1, description="Host display name")
    player2: str | None = Field(default=None, description="Guest display name")
    status: RoomStatus = Field(default=RoomStatus.WAITING)
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _seats_filled_when_playing(self) -> "Room":
        if self.status == RoomStatus.PLAYING and not (self.player2 or "").strip():
            raise ValueError("a playing room needs both player names")
        return self

    @property
    def players(self) -> tuple[str, ...]:
        """Seated players in seat order."""
        if self.player2:
            return (self.player1, self.player2)
        return (self.player1,)

    def other_player(self, name: str) -> str | None:
        """Return the opposite seat to `name` (None while seat 2 is empty)."""
        if name == self.player1:
            return self.player2
        return self.player1

    def has_player(self, name: str) -> bool:
        return name in self.players


class Turn(BaseModel):
    """One prompt-and-response unit authored by one player.

    A turn is open until an answer is recorded, then closed for good.
    Turns are never deleted or renumbered.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Row identifier")
    room_id: str = Field(description="Owning room")
    turn_number: int = Field(ge=1, description="1-based, gapless within the room")
    player_name: str = Field(min_length=1, description="Acting player")
    kind: PromptKind
    prompt: str = Field(description="Prompt text shown to the acting player")
    answer: str | None = None
    answered_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}

    @property
    def is_open(self) -> bool:
        return self.answer is None

    @property
    def is_closed(self) -> bool:
        return self.answer is not None
