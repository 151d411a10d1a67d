"""Change notices pushed by a TurnRecordStore subscription."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class ChangeTable(str, Enum):
    """Which collection a change touched."""

    ROOMS = "rooms"
    TURNS = "game_turns"


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


class ChangeNotice(BaseModel):
    """A "something changed in this room" signal.

    Subscribers must not trust the content beyond the room id: delivery is
    at-least-once and may be delayed or reordered. The only safe reaction is
    a full re-fetch.
    """

    room_id: str = Field(description="Room whose rows changed")
    table: ChangeTable = Field(default=ChangeTable.TURNS)
    kind: ChangeKind = Field(default=ChangeKind.UPDATE)
    ts_wall: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the store observed the change"
    )

    model_config = {"frozen": True}
