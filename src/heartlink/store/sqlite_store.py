"""SQLite turn store - reference TurnRecordStore for local and LAN play.

Rooms and turns live in one SQLite file that both players' processes open.
Writes made through this object notify in-process subscribers immediately;
writes made by another process are picked up by the polling watcher.
"""

import asyncio
import logging
import secrets
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from heartlink.contracts.events import ChangeKind, ChangeNotice, ChangeTable
from heartlink.contracts.game import GameMode, PromptKind, Room, RoomStatus, Turn
from heartlink.errors import (
    RoomNotFound,
    RoomStateError,
    StoreUnavailable,
    TurnConflict,
    TurnNotFound,
)
from heartlink.store.protocol import ChangeCallback, Subscription

logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6


def generate_room_code() -> str:
    """Six characters, no easily confused glyphs (I, O, 0, 1)."""
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteTurnStore:
    """Rooms plus an append/update-only turn log in SQLite.

    Invariants:
    - (room_id, turn_number) is unique; a second insert is a TurnConflict
    - A turn is answered at most once
    - Player names of a playing room never change
    """

    def __init__(self, db_path: Path | str):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._subscriptions: dict[str, list[Subscription]] = {}
        self._fingerprints: dict[str, tuple] = {}
        self._poll_task: asyncio.Task | None = None

        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._conn() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS rooms (
                    id TEXT PRIMARY KEY,
                    room_code TEXT NOT NULL UNIQUE,
                    game_mode TEXT NOT NULL,
                    player1 TEXT NOT NULL,
                    player2 TEXT,
                    status TEXT NOT NULL DEFAULT 'waiting',
                    created_at TEXT NOT NULL,
                    started_at TEXT
                );

                CREATE TABLE IF NOT EXISTS game_turns (
                    id TEXT PRIMARY KEY,
                    room_id TEXT NOT NULL REFERENCES rooms(id),
                    turn_number INTEGER NOT NULL,
                    player_name TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    answer TEXT,
                    answered_at TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE(room_id, turn_number)
                );

                CREATE INDEX IF NOT EXISTS idx_turns_room
                    ON game_turns(room_id, turn_number);
            """)

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with automatic commit/rollback.

        Integrity errors propagate unchanged so callers can map them;
        every other sqlite failure becomes StoreUnavailable.
        """
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailable(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ─────────────────────────────────────────────────────────────────────
    # Row mapping
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_room(row: sqlite3.Row) -> Room:
        return Room(
            id=row["id"],
            room_code=row["room_code"],
            game_mode=GameMode(row["game_mode"]),
            player1=row["player1"],
            player2=row["player2"],
            status=RoomStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            started_at=_parse_ts(row["started_at"]),
        )

    @staticmethod
    def _row_to_turn(row: sqlite3.Row) -> Turn:
        return Turn(
            id=row["id"],
            room_id=row["room_id"],
            turn_number=row["turn_number"],
            player_name=row["player_name"],
            kind=PromptKind(row["kind"]),
            prompt=row["prompt"],
            answer=row["answer"],
            answered_at=_parse_ts(row["answered_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _select_room(self, conn: sqlite3.Connection, room_id: str) -> Room:
        row = conn.execute("SELECT * FROM rooms WHERE id = ?", (room_id,)).fetchone()
        if row is None:
            raise RoomNotFound(room_id)
        return self._row_to_room(row)

    # ─────────────────────────────────────────────────────────────────────
    # Room lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def create_room(
        self,
        player1: str,
        game_mode: GameMode = GameMode.FRIENDLY,
        room_code: str | None = None,
    ) -> Room:
        """Create a waiting room hosted by `player1`."""
        name = player1.strip()
        if not name:
            raise RoomStateError("player name is required")

        for _ in range(5):
            room = Room(
                room_code=(room_code or generate_room_code()).upper(),
                game_mode=game_mode,
                player1=name,
            )
            try:
                with self._conn() as conn:
                    conn.execute(
                        """
                        INSERT INTO rooms
                            (id, room_code, game_mode, player1, status, created_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            room.id,
                            room.room_code,
                            room.game_mode.value,
                            room.player1,
                            room.status.value,
                            room.created_at.isoformat(),
                        ),
                    )
            except sqlite3.IntegrityError:
                if room_code:
                    raise RoomStateError(f"room code {room_code} is taken")
                logger.debug(f"Room code {room.room_code} collided, regenerating")
                continue
            logger.info(f"Created room {room.room_code} ({room.id}) for {name}")
            return room

        raise RoomStateError("could not allocate a room code")

    async def join_room(self, room_code: str, player2: str) -> Room:
        """Take the second seat of a waiting room."""
        name = player2.strip()
        if not name:
            raise RoomStateError("player name is required")

        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM rooms WHERE room_code = ? AND status = ?",
                (room_code.strip().upper(), RoomStatus.WAITING.value),
            ).fetchone()
            if row is None:
                raise RoomNotFound(room_code)
            room = self._row_to_room(row)
            if room.player2:
                raise RoomStateError("room is full")
            if room.player1 == name:
                raise RoomStateError(f"{name} is already seated in this room")
            conn.execute(
                "UPDATE rooms SET player2 = ? WHERE id = ? AND player2 IS NULL",
                (name, room.id),
            )
            room = self._select_room(conn, room.id)

        self._notify(room.id, ChangeTable.ROOMS, ChangeKind.UPDATE)
        return room

    async def start_room(self, room_id: str) -> Room:
        """Move a full room from waiting to playing."""
        started_at = datetime.now(timezone.utc)
        with self._conn() as conn:
            room = self._select_room(conn, room_id)
            if room.status == RoomStatus.PLAYING:
                return room
            if not room.player2:
                raise RoomStateError("waiting for player 2 to join")
            conn.execute(
                "UPDATE rooms SET status = ?, started_at = ? WHERE id = ?",
                (RoomStatus.PLAYING.value, started_at.isoformat(), room_id),
            )
            room = self._select_room(conn, room_id)

        self._notify(room_id, ChangeTable.ROOMS, ChangeKind.UPDATE)
        return room

    # ─────────────────────────────────────────────────────────────────────
    # TurnRecordStore
    # ─────────────────────────────────────────────────────────────────────

    async def fetch_room(self, room_id: str) -> Room:
        with self._conn() as conn:
            return self._select_room(conn, room_id)

    async def fetch_turns(self, room_id: str) -> list[Turn]:
        with self._conn() as conn:
            self._select_room(conn, room_id)
            cursor = conn.execute(
                """
                SELECT * FROM game_turns
                WHERE room_id = ?
                ORDER BY turn_number
                """,
                (room_id,),
            )
            return [self._row_to_turn(row) for row in cursor]

    async def insert_turn(
        self,
        room_id: str,
        turn_number: int,
        player_name: str,
        kind: PromptKind,
        prompt: str,
    ) -> Turn:
        turn = Turn(
            room_id=room_id,
            turn_number=turn_number,
            player_name=player_name,
            kind=kind,
            prompt=prompt,
        )
        try:
            with self._conn() as conn:
                self._select_room(conn, room_id)
                conn.execute(
                    """
                    INSERT INTO game_turns
                        (id, room_id, turn_number, player_name, kind, prompt, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        turn.id,
                        turn.room_id,
                        turn.turn_number,
                        turn.player_name,
                        turn.kind.value,
                        turn.prompt,
                        turn.created_at.isoformat(),
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise TurnConflict(room_id, turn_number) from e

        self._notify(room_id, ChangeTable.TURNS, ChangeKind.INSERT)
        return turn

    async def update_turn_answer(
        self, turn_id: str, answer: str, answered_at: datetime
    ) -> Turn:
        with self._conn() as conn:
            cursor = conn.execute(
                """
                UPDATE game_turns SET answer = ?, answered_at = ?
                WHERE id = ? AND answer IS NULL
                """,
                (answer, answered_at.isoformat(), turn_id),
            )
            if cursor.rowcount == 0:
                raise TurnNotFound(turn_id)
            row = conn.execute(
                "SELECT * FROM game_turns WHERE id = ?", (turn_id,)
            ).fetchone()
            turn = self._row_to_turn(row)

        self._notify(turn.room_id, ChangeTable.TURNS, ChangeKind.UPDATE)
        return turn

    # ─────────────────────────────────────────────────────────────────────
    # Subscriptions
    # ─────────────────────────────────────────────────────────────────────

    def subscribe(self, room_id: str, on_change: ChangeCallback) -> Subscription:
        """Open a subscription for the room.

        The first subscription to a room records its poll baseline right
        away, so a write by another process after this call is announced
        even if it lands before the next poll tick.
        """
        subscription = Subscription(room_id=room_id, callback=on_change)
        if room_id not in self._subscriptions:
            try:
                self._fingerprints[room_id] = self._fingerprint(room_id)
            except StoreUnavailable as e:
                logger.warning(f"No poll baseline for room {room_id}: {e}")
        self._subscriptions.setdefault(room_id, []).append(subscription)
        logger.debug(f"Subscription {subscription.id} opened for room {room_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        subs = self._subscriptions.get(subscription.room_id, [])
        if subscription in subs:
            subs.remove(subscription)
            logger.debug(f"Subscription {subscription.id} released")
        if not subs:
            self._subscriptions.pop(subscription.room_id, None)
            self._fingerprints.pop(subscription.room_id, None)

    def _notify(self, room_id: str, table: ChangeTable, kind: ChangeKind) -> None:
        """Deliver a change notice to every subscriber of the room.

        With a running loop delivery is deferred with call_soon, so the
        writer's own coroutine finishes first, as with a remote push.
        """
        notice = ChangeNotice(room_id=room_id, table=table, kind=kind)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        for subscription in list(self._subscriptions.get(room_id, [])):
            if loop is None:
                self._deliver(subscription, notice)
            else:
                loop.call_soon(self._deliver, subscription, notice)

    @staticmethod
    def _deliver(subscription: Subscription, notice: ChangeNotice) -> None:
        if not subscription.active:
            return
        try:
            subscription.callback(notice)
        except Exception as e:
            logger.error(f"Subscriber {subscription.id} failed on {notice.kind.value}: {e}")

    # ─────────────────────────────────────────────────────────────────────
    # Cross-process change detection
    # ─────────────────────────────────────────────────────────────────────

    def _fingerprint(self, room_id: str) -> tuple:
        with self._conn() as conn:
            turns = conn.execute(
                """
                SELECT COUNT(*), COUNT(answer), COALESCE(MAX(turn_number), 0)
                FROM game_turns WHERE room_id = ?
                """,
                (room_id,),
            ).fetchone()
            room = conn.execute(
                "SELECT status, player2 FROM rooms WHERE id = ?", (room_id,)
            ).fetchone()
        return tuple(turns) + (tuple(room) if room else (None, None))

    def poll_once(self) -> list[str]:
        """Notify subscribers of rooms whose rows changed since the last poll.

        A room without a baseline counts as changed.

        Returns:
            Room ids for which a notice was sent
        """
        changed = []
        for room_id in list(self._subscriptions):
            fingerprint = self._fingerprint(room_id)
            previous = self._fingerprints.get(room_id)
            self._fingerprints[room_id] = fingerprint
            if previous != fingerprint:
                changed.append(room_id)
                self._notify(room_id, ChangeTable.TURNS, ChangeKind.UPDATE)
        return changed

    async def _poll_loop(self, interval: float) -> None:
        while True:
            try:
                self.poll_once()
            except StoreUnavailable as e:
                logger.warning(f"Change poll failed: {e}")
            await asyncio.sleep(interval)

    def start_polling(self, interval: float = 1.0) -> None:
        """Watch subscribed rooms for writes made by other processes."""
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(
                self._poll_loop(interval)
            )

    async def stop_polling(self) -> None:
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

    # ─────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────

    async def get_room_by_code(self, room_code: str) -> Room:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM rooms WHERE room_code = ?",
                (room_code.strip().upper(),),
            ).fetchone()
            if row is None:
                raise RoomNotFound(room_code)
            return self._row_to_room(row)

    def count_turns(self, room_id: str | None = None) -> int:
        """Count turns, optionally filtered by room."""
        with self._conn() as conn:
            if room_id:
                cursor = conn.execute(
                    "SELECT COUNT(*) FROM game_turns WHERE room_id = ?", (room_id,)
                )
            else:
                cursor = conn.execute("SELECT COUNT(*) FROM game_turns")
            return cursor.fetchone()[0]
