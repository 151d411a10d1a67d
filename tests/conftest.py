"""Shared fixtures: an in-memory TurnRecordStore with controllable timing."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from heartlink.contracts.events import ChangeNotice
from heartlink.contracts.game import GameMode, PromptKind, Room, RoomStatus, Turn
from heartlink.errors import RoomNotFound, StoreUnavailable, TurnConflict, TurnNotFound
from heartlink.prompts.pool import PromptPool
from heartlink.store.protocol import Subscription

T0 = datetime(2025, 2, 14, 20, 0, tzinfo=timezone.utc)


def make_turn(
    number: int,
    player: str,
    answer: str | None = None,
    kind: PromptKind = PromptKind.TRUTH,
    room_id: str = "room-1",
    created_offset: int | None = None,
    turn_id: str | None = None,
) -> Turn:
    created = T0 + timedelta(minutes=created_offset if created_offset is not None else number)
    return Turn(
        id=turn_id or f"turn-{number}-{player.lower()}",
        room_id=room_id,
        turn_number=number,
        player_name=player,
        kind=kind,
        prompt=f"prompt {number}",
        answer=answer,
        answered_at=created + timedelta(seconds=30) if answer is not None else None,
        created_at=created,
    )


class FakeTurnStore:
    """TurnRecordStore double.

    - fetch_turns snapshots the log when called, then optionally waits on
      a gate, so tests can make fetches complete out of order
    - writes made with `write_*` bypass notifications (another client
      whose notice has not arrived yet); `notify()` delivers one
    """

    def __init__(self, room: Room):
        self.rooms: dict[str, Room] = {room.id: room}
        self.turns: dict[str, list[Turn]] = {room.id: []}
        self.subscriptions: list[Subscription] = []
        self.fetch_count = 0
        self.fail_fetches: Exception | None = None
        self.fail_inserts: Exception | None = None
        self.always_conflict = False
        self.racing_rows: list[Turn] = []
        self._gates: list[asyncio.Event] = []

    # Test controls

    def hold_next_fetch(self) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates.append(gate)
        return gate

    def write_turn(self, turn: Turn) -> None:
        self.turns.setdefault(turn.room_id, []).append(turn)

    def write_answer(self, turn_id: str, answer: str) -> None:
        for room_turns in self.turns.values():
            for i, turn in enumerate(room_turns):
                if turn.id == turn_id:
                    room_turns[i] = turn.model_copy(
                        update={"answer": answer, "answered_at": T0 + timedelta(hours=1)}
                    )

    def write_room(self, room: Room) -> None:
        self.rooms[room.id] = room

    def notify(self, room_id: str) -> None:
        for subscription in list(self.subscriptions):
            if subscription.active and subscription.room_id == room_id:
                subscription.callback(ChangeNotice(room_id=room_id))

    # TurnRecordStore

    async def fetch_room(self, room_id: str) -> Room:
        if room_id not in self.rooms:
            raise RoomNotFound(room_id)
        return self.rooms[room_id]

    async def fetch_turns(self, room_id: str) -> list[Turn]:
        self.fetch_count += 1
        if room_id not in self.rooms:
            raise RoomNotFound(room_id)
        if self.fail_fetches is not None:
            raise self.fail_fetches
        snapshot = list(self.turns.get(room_id, []))
        if self._gates:
            await self._gates.pop(0).wait()
        return snapshot

    async def insert_turn(self, room_id, turn_number, player_name, kind, prompt) -> Turn:
        if self.fail_inserts is not None:
            raise self.fail_inserts
        if self.racing_rows:
            self.write_turn(self.racing_rows.pop(0))
        if self.always_conflict or any(
            t.turn_number == turn_number for t in self.turns[room_id]
        ):
            raise TurnConflict(room_id, turn_number)
        turn = Turn(
            room_id=room_id,
            turn_number=turn_number,
            player_name=player_name,
            kind=kind,
            prompt=prompt,
        )
        self.write_turn(turn)
        self.notify(room_id)
        return turn

    async def update_turn_answer(self, turn_id, answer, answered_at) -> Turn:
        for room_id, room_turns in self.turns.items():
            for i, turn in enumerate(room_turns):
                if turn.id == turn_id and turn.is_open:
                    closed = turn.model_copy(update={"answer": answer, "answered_at": answered_at})
                    room_turns[i] = closed
                    self.notify(room_id)
                    return closed
        raise TurnNotFound(turn_id)

    def subscribe(self, room_id, on_change) -> Subscription:
        subscription = Subscription(room_id=room_id, callback=on_change)
        self.subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        if subscription in self.subscriptions:
            self.subscriptions.remove(subscription)


async def settle(rounds: int = 10) -> None:
    """Let spawned refresh tasks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def room() -> Room:
    return Room(
        id="room-1",
        room_code="ABC234",
        game_mode=GameMode.FRIENDLY,
        player1="Alice",
        player2="Bob",
        status=RoomStatus.PLAYING,
    )


@pytest.fixture
def store(room) -> FakeTurnStore:
    return FakeTurnStore(room)


@pytest.fixture
def pool() -> PromptPool:
    bank = {
        mode: {kind: [f"{mode.value} {kind.value} prompt"] for kind in PromptKind}
        for mode in GameMode
    }
    return PromptPool(bank)
