"""Tests for the SQLite turn store."""

import asyncio
from datetime import datetime, timezone

import pytest

from conftest import settle
from heartlink.contracts.events import ChangeTable
from heartlink.contracts.game import GameMode, PromptKind, RoomStatus
from heartlink.contracts.view import Phase
from heartlink.errors import (
    RoomNotFound,
    RoomStateError,
    StoreUnavailable,
    TurnConflict,
    TurnNotFound,
)
from heartlink.prompts.pool import PromptPool
from heartlink.runtime.submitter import ActionSubmitter
from heartlink.runtime.sync_loop import SyncLoop
from heartlink.store.protocol import TurnRecordStore
from heartlink.store.sqlite_store import ROOM_CODE_ALPHABET, SQLiteTurnStore, generate_room_code

NOW = datetime(2025, 2, 14, 21, 0, tzinfo=timezone.utc)


async def playing_room(store: SQLiteTurnStore):
    room = await store.create_room("Alice", GameMode.CRUSH)
    await store.join_room(room.room_code, "Bob")
    return await store.start_room(room.id)


class TestRoomLifecycle:
    @pytest.mark.asyncio
    async def test_create_join_start(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")

        room = await store.create_room("  Alice ", GameMode.CRUSH)
        assert room.status == RoomStatus.WAITING
        assert room.player1 == "Alice"
        assert len(room.room_code) == 6

        joined = await store.join_room(room.room_code.lower(), "Bob")
        assert joined.player2 == "Bob"

        started = await store.start_room(room.id)
        assert started.status == RoomStatus.PLAYING
        assert started.started_at is not None
        assert (await store.fetch_room(room.id)) == started

    @pytest.mark.asyncio
    async def test_room_is_full(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await store.create_room("Alice")
        await store.join_room(room.room_code, "Bob")

        with pytest.raises(RoomStateError):
            await store.join_room(room.room_code, "Cara")

    @pytest.mark.asyncio
    async def test_join_started_room_not_found(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await playing_room(store)
        with pytest.raises(RoomNotFound):
            await store.join_room(room.room_code, "Cara")

    @pytest.mark.asyncio
    async def test_same_name_rejected(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await store.create_room("Alice")
        with pytest.raises(RoomStateError):
            await store.join_room(room.room_code, "Alice")

    @pytest.mark.asyncio
    async def test_start_needs_second_player(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await store.create_room("Alice")
        with pytest.raises(RoomStateError):
            await store.start_room(room.id)

    @pytest.mark.asyncio
    async def test_explicit_code_taken(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        await store.create_room("Alice", room_code="HEART2")
        with pytest.raises(RoomStateError):
            await store.create_room("Cara", room_code="heart2")
        assert (await store.get_room_by_code("heart2")).player1 == "Alice"

    def test_generated_codes_use_alphabet(self):
        code = generate_room_code()
        assert len(code) == 6
        assert set(code) <= set(ROOM_CODE_ALPHABET)


class TestTurns:
    @pytest.mark.asyncio
    async def test_insert_and_fetch_ordered(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await playing_room(store)

        await store.insert_turn(room.id, 2, "Bob", PromptKind.DARE, "two")
        await store.insert_turn(room.id, 1, "Alice", PromptKind.TRUTH, "one")

        turns = await store.fetch_turns(room.id)
        assert [t.turn_number for t in turns] == [1, 2]
        assert turns[0].kind == PromptKind.TRUTH
        assert turns[0].is_open
        assert store.count_turns(room.id) == 2

    @pytest.mark.asyncio
    async def test_duplicate_number_conflicts(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await playing_room(store)
        await store.insert_turn(room.id, 1, "Alice", PromptKind.TRUTH, "one")

        with pytest.raises(TurnConflict) as excinfo:
            await store.insert_turn(room.id, 1, "Alice", PromptKind.DARE, "again")
        assert excinfo.value.turn_number == 1
        assert store.count_turns(room.id) == 1

    @pytest.mark.asyncio
    async def test_insert_into_missing_room(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        with pytest.raises(RoomNotFound):
            await store.insert_turn("nope", 1, "Alice", PromptKind.TRUTH, "one")

    @pytest.mark.asyncio
    async def test_answer_once(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await playing_room(store)
        turn = await store.insert_turn(room.id, 1, "Alice", PromptKind.TRUTH, "one")

        closed = await store.update_turn_answer(turn.id, "blue", NOW)
        assert closed.answer == "blue"
        assert closed.answered_at == NOW

        with pytest.raises(TurnNotFound):
            await store.update_turn_answer(turn.id, "green", NOW)
        assert (await store.fetch_turns(room.id))[0].answer == "blue"

    @pytest.mark.asyncio
    async def test_fetch_missing_room(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        with pytest.raises(RoomNotFound):
            await store.fetch_room("nope")

    @pytest.mark.asyncio
    async def test_fetch_turns_of_missing_room(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        with pytest.raises(RoomNotFound):
            await store.fetch_turns("nope")

    def test_unopenable_database(self, tmp_path):
        with pytest.raises(StoreUnavailable):
            SQLiteTurnStore(tmp_path)

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(SQLiteTurnStore(tmp_path / "test.db"), TurnRecordStore)


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_notifies_after_write(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await playing_room(store)
        notices = []
        store.subscribe(room.id, notices.append)

        await store.insert_turn(room.id, 1, "Alice", PromptKind.TRUTH, "one")
        assert notices == []  # delivered on the next loop iteration

        await asyncio.sleep(0)
        assert len(notices) == 1
        assert notices[0].table == ChangeTable.TURNS

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_pending_delivery(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await playing_room(store)
        notices = []
        subscription = store.subscribe(room.id, notices.append)

        await store.insert_turn(room.id, 1, "Alice", PromptKind.TRUTH, "one")
        store.unsubscribe(subscription)
        store.unsubscribe(subscription)
        await asyncio.sleep(0)

        assert notices == []

    @pytest.mark.asyncio
    async def test_poll_detects_other_process(self, tmp_path):
        db_path = tmp_path / "shared.db"
        mine = SQLiteTurnStore(db_path)
        theirs = SQLiteTurnStore(db_path)
        room = await playing_room(theirs)

        notices = []
        mine.subscribe(room.id, notices.append)
        assert mine.poll_once() == []  # baseline recorded by subscribe

        await theirs.insert_turn(room.id, 1, "Alice", PromptKind.TRUTH, "one")
        assert mine.poll_once() == [room.id]
        assert mine.poll_once() == []

        await asyncio.sleep(0)
        assert len(notices) == 1

    @pytest.mark.asyncio
    async def test_write_right_after_activate_is_seen(self, tmp_path):
        db_path = tmp_path / "shared.db"
        mine = SQLiteTurnStore(db_path)
        theirs = SQLiteTurnStore(db_path)
        room = await playing_room(theirs)

        async with SyncLoop(mine, "Bob") as bob:
            await bob.activate(room.id)
            # Lands before the first poll tick
            await theirs.insert_turn(room.id, 1, "Alice", PromptKind.TRUTH, "one")
            assert mine.poll_once() == [room.id]

            view = await bob.wait_for(lambda v: v.max_turn_number == 1, timeout=1)

        assert view.phase == Phase.WAITING_ON_OTHER

    @pytest.mark.asyncio
    async def test_unbaselined_room_counts_as_changed(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await playing_room(store)
        store.subscribe(room.id, lambda notice: None)
        store._fingerprints.clear()

        assert store.poll_once() == [room.id]
        assert store.poll_once() == []

    @pytest.mark.asyncio
    async def test_deleted_room_is_fatal(self, tmp_path):
        db_path = tmp_path / "shared.db"
        mine = SQLiteTurnStore(db_path)
        room = await playing_room(mine)
        await mine.insert_turn(room.id, 1, "Alice", PromptKind.TRUTH, "one")

        bob = SyncLoop(mine, "Bob")
        fatal = []
        bob.on_fatal(fatal.append)
        await bob.activate(room.id)

        with mine._conn() as conn:
            conn.execute("DELETE FROM game_turns WHERE room_id = ?", (room.id,))
            conn.execute("DELETE FROM rooms WHERE id = ?", (room.id,))
        assert mine.poll_once() == [room.id]
        await settle()

        assert len(fatal) == 1
        assert isinstance(bob.fatal_error, RoomNotFound)
        assert not bob.is_active

    @pytest.mark.asyncio
    async def test_polling_task_lifecycle(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        store.start_polling(0.01)
        await asyncio.sleep(0.02)
        await store.stop_polling()
        assert store._poll_task is None


class TestTwoPlayers:
    @pytest.mark.asyncio
    async def test_full_exchange(self, tmp_path):
        store = SQLiteTurnStore(tmp_path / "test.db")
        room = await playing_room(store)
        pool = PromptPool()

        alice = SyncLoop(store, "Alice", progress_target=4)
        bob = SyncLoop(store, "Bob", progress_target=4)
        alice_actions = ActionSubmitter(store, alice, pool)
        bob_actions = ActionSubmitter(store, bob, pool)

        async with alice, bob:
            await alice.activate(room.id)
            await bob.activate(room.id)

            players = [(alice, alice_actions), (bob, bob_actions)]
            for n in range(4):
                loop, actions = players[n % 2]
                await loop.wait_for(lambda v: v.phase == Phase.AWAITING_PROMPT_CHOICE, timeout=1)
                await actions.choose_prompt("truth" if n % 2 else "dare")
                await loop.wait_for(lambda v: v.phase == Phase.AWAITING_ANSWER, timeout=1)
                await actions.submit_answer(f"answer {n + 1}")

            final = await bob.wait_for(lambda v: v.closed_count == 4, timeout=1)
            mirrored = await alice.wait_for(lambda v: v.closed_count == 4, timeout=1)

        assert final.is_complete
        assert [t.player_name for t in final.history] == ["Bob", "Alice", "Bob", "Alice"]
        assert final.history[0].prompt in pool.prompts_for(GameMode.CRUSH, PromptKind.TRUTH)
        assert mirrored.history == final.history
