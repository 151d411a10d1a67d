"""
TurnRecordStore Protocol

The boundary the game core relies on. Any backend (the bundled SQLite store,
a hosted Postgres with realtime, a test fake) implements these operations.
"""

import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from heartlink.contracts.events import ChangeNotice
from heartlink.contracts.game import PromptKind, Room, Turn

ChangeCallback = Callable[[ChangeNotice], None]

_subscription_ids = itertools.count(1)


@dataclass(eq=False)
class Subscription:
    """Handle returned by `subscribe`; pass it back to `unsubscribe`."""

    room_id: str
    callback: ChangeCallback
    id: int = field(default_factory=lambda: next(_subscription_ids))
    active: bool = True


@runtime_checkable
class TurnRecordStore(Protocol):
    """Durable, turn_number-ordered turn rows with change subscriptions."""

    async def fetch_room(self, room_id: str) -> Room:
        """Return the room.

        Raises:
            RoomNotFound: the room does not exist
            StoreUnavailable: transport failure
        """
        ...

    async def fetch_turns(self, room_id: str) -> list[Turn]:
        """Return every turn of the room, turn_number ascending.

        Raises:
            RoomNotFound: the room does not exist
            StoreUnavailable: transport failure
        """
        ...

    async def insert_turn(
        self,
        room_id: str,
        turn_number: int,
        player_name: str,
        kind: PromptKind,
        prompt: str,
    ) -> Turn:
        """Insert a new open turn.

        Raises:
            TurnConflict: turn_number already used in this room
        """
        ...

    async def update_turn_answer(
        self, turn_id: str, answer: str, answered_at: datetime
    ) -> Turn:
        """Close an open turn.

        Raises:
            TurnNotFound: no open turn with this id
        """
        ...

    def subscribe(self, room_id: str, on_change: ChangeCallback) -> Subscription:
        """Call `on_change` on every insert/update touching the room."""
        ...

    def unsubscribe(self, subscription: Subscription) -> None:
        """Stop notifications; safe to call twice."""
        ...
