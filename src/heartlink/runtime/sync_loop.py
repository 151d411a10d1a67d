"""SyncLoop - keeps a local ViewState in step with the shared turn log.

Every change notice triggers a full re-fetch of the log and a fresh
projection. Fetches run as independent tasks tagged with a request counter,
so a stalled fetch never holds back newer ones, and a result that comes back
after a newer one has been applied is dropped.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from heartlink.contracts.events import ChangeNotice
from heartlink.contracts.game import Room, RoomStatus, Turn
from heartlink.contracts.view import ViewState
from heartlink.errors import HeartlinkError, InvalidAction, RoomNotFound, StoreUnavailable
from heartlink.store.projections.turn_log import project
from heartlink.store.protocol import Subscription, TurnRecordStore

logger = logging.getLogger(__name__)

ViewListener = Callable[[ViewState], None]
ErrorListener = Callable[[HeartlinkError], None]


class SyncLoop:
    """Publishes project(latest room, latest turns) for one local player.

    Guarantees:
    - Published views never go back to a lower max_turn_number
    - Nothing is published after deactivate()
    - A failed refresh leaves the previous view in place
    """

    def __init__(
        self,
        store: TurnRecordStore,
        local_player: str,
        progress_target: int = 20,
    ):
        self.store = store
        self.local_player = local_player
        self.progress_target = progress_target

        self.room: Room | None = None
        self.turns: list[Turn] = []
        self.view: ViewState | None = None
        self.fatal_error: HeartlinkError | None = None

        self._room_id: str | None = None
        self._active = False
        self._subscription: Subscription | None = None

        # Request counter: last issued and last applied fetch tags
        self._issued = 0
        self._applied = 0
        self._tasks: set[asyncio.Task] = set()

        self._view_listeners: list[ViewListener] = []
        self._notice_listeners: list[ErrorListener] = []
        self._fatal_listeners: list[ErrorListener] = []
        self._waiters: list[tuple[Callable[[ViewState], bool], asyncio.Future]] = []

    # ─────────────────────────────────────────────────────────────────────
    # Listeners
    # ─────────────────────────────────────────────────────────────────────

    def on_view(self, listener: ViewListener) -> None:
        """Call `listener` with every published ViewState."""
        self._view_listeners.append(listener)

    def on_notice(self, listener: ErrorListener) -> None:
        """Call `listener` with transient, recoverable store errors."""
        self._notice_listeners.append(listener)

    def on_fatal(self, listener: ErrorListener) -> None:
        """Call `listener` when the session cannot continue (room vanished)."""
        self._fatal_listeners.append(listener)

    def _emit(self, listeners: list[Callable[[Any], None]], value: Any) -> None:
        for listener in list(listeners):
            try:
                listener(value)
            except Exception as e:
                logger.error(f"Listener {listener!r} failed: {e}")

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def room_id(self) -> str | None:
        return self._room_id

    async def activate(self, room_id: str) -> ViewState | None:
        """Fetch the room and its log, publish the first view, start listening.

        The subscription is opened before the initial fetch so that a write
        landing in between still triggers a re-fetch.

        Raises:
            RoomNotFound: the room does not exist
            InvalidAction: the local player is not seated in the room
            StoreUnavailable: the initial fetch failed
        """
        if self._active and room_id == self._room_id and self.view is not None:
            return self.view
        if self._active:
            await self.deactivate()

        self._room_id = room_id
        self._active = True
        self.room = None
        self.turns = []
        self.view = None
        self.fatal_error = None
        self._subscription = self.store.subscribe(room_id, self._on_change)

        tag = self._next_tag()
        try:
            room = await self.store.fetch_room(room_id)
            if not room.has_player(self.local_player):
                raise InvalidAction(f"{self.local_player} is not seated in room {room_id}")
            turns = await self.store.fetch_turns(room_id)
        except BaseException:
            self._release()
            raise

        self._apply(tag, room_id, room, turns)
        logger.info(f"Sync active for room {room_id} as {self.local_player}")
        return self.view

    def _release(self) -> list[asyncio.Task]:
        """Drop the subscription, stop publishing, cancel in-flight fetches."""
        if self._subscription is not None:
            self.store.unsubscribe(self._subscription)
            self._subscription = None
        self._active = False

        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current and not t.done()]
        for task in pending:
            task.cancel()

        for _, future in self._waiters:
            if not future.done():
                future.cancel()
        self._waiters.clear()
        return pending

    async def deactivate(self) -> None:
        """Stop syncing. Safe to call more than once."""
        was_active = self._active
        pending = self._release()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if was_active:
            logger.info(f"Sync released for room {self._room_id}")

    async def __aenter__(self) -> "SyncLoop":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.deactivate()

    # ─────────────────────────────────────────────────────────────────────
    # Refresh
    # ─────────────────────────────────────────────────────────────────────

    def _next_tag(self) -> int:
        self._issued += 1
        return self._issued

    def _on_change(self, notice: ChangeNotice) -> None:
        """Store callback. The notice content is ignored beyond its arrival."""
        if not self._active or notice.room_id != self._room_id:
            return
        self._spawn_refresh()

    def _spawn_refresh(self) -> asyncio.Task:
        tag = self._next_tag()
        task = asyncio.get_running_loop().create_task(self._refresh(tag, self._room_id))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Refresh of room {self._room_id} crashed: {task.exception()!r}")

    async def refresh(self) -> ViewState | None:
        """Re-fetch now and return the current view once the fetch settles."""
        if not self._active:
            return self.view
        await asyncio.gather(self._spawn_refresh(), return_exceptions=True)
        return self.view

    async def _refresh(self, tag: int, room_id: str | None) -> None:
        if room_id is None:
            return
        try:
            room = self.room
            if room is None or room.status != RoomStatus.PLAYING:
                room = await self.store.fetch_room(room_id)
            turns = await self.store.fetch_turns(room_id)
        except RoomNotFound as e:
            if self._active and room_id == self._room_id:
                self._fail(e)
            return
        except StoreUnavailable as e:
            logger.warning(f"Refresh {tag} of room {room_id} failed: {e}")
            if self._active and room_id == self._room_id:
                self._emit(self._notice_listeners, e)
            return
        except HeartlinkError as e:
            logger.warning(f"Refresh {tag} of room {room_id} rejected: {e}")
            if self._active and room_id == self._room_id:
                self._emit(self._notice_listeners, e)
            return

        self._apply(tag, room_id, room, turns)

    def _fail(self, error: HeartlinkError) -> None:
        logger.error(f"Sync for room {self._room_id} stopped: {error}")
        self.fatal_error = error
        self._release()
        self._emit(self._fatal_listeners, error)

    # ─────────────────────────────────────────────────────────────────────
    # Publication
    # ─────────────────────────────────────────────────────────────────────

    def _apply(self, tag: int, room_id: str, room: Room, turns: list[Turn]) -> bool:
        """Project a fetched snapshot and publish it unless it is stale."""
        if not self._active or room_id != self._room_id:
            logger.debug(f"Dropping fetch {tag}: sync no longer active for {room_id}")
            return False
        if tag <= self._applied:
            logger.debug(f"Dropping fetch {tag}: fetch {self._applied} already applied")
            return False

        view = project(room, turns, self.local_player, self.progress_target)
        if self.view is not None and view.max_turn_number < self.view.max_turn_number:
            logger.debug(
                f"Dropping fetch {tag}: turn {view.max_turn_number} "
                f"is behind published turn {self.view.max_turn_number}"
            )
            return False

        self._applied = tag
        self.room = room
        self.turns = list(turns)
        if view == self.view:
            return False
        self.view = view

        self._emit(self._view_listeners, view)
        self._resolve_waiters(view)
        return True

    def _resolve_waiters(self, view: ViewState) -> None:
        remaining = []
        for predicate, future in self._waiters:
            if future.done():
                continue
            if predicate(view):
                future.set_result(view)
            else:
                remaining.append((predicate, future))
        self._waiters = remaining

    async def wait_for(
        self,
        predicate: Callable[[ViewState], bool],
        timeout: float | None = None,
    ) -> ViewState:
        """Wait until a published view satisfies `predicate`.

        Raises:
            asyncio.TimeoutError: no matching view within `timeout`
            asyncio.CancelledError: the loop was deactivated while waiting
            RuntimeError: the loop is not active
        """
        if self.view is not None and predicate(self.view):
            return self.view
        if not self._active:
            raise RuntimeError("sync loop is not active")
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.append((predicate, future))
        return await asyncio.wait_for(future, timeout)
