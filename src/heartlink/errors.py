"""Error taxonomy for store access and player actions."""


class HeartlinkError(Exception):
    """Base class for all Heartlink errors."""

    detail: str = "heartlink_error"
    user_visible: bool = False

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


# ─────────────────────────────────────────────────────────────────────────────
# Store errors
# ─────────────────────────────────────────────────────────────────────────────


class StoreError(HeartlinkError):
    """Raised by a TurnRecordStore."""

    detail = "store_error"


class StoreUnavailable(StoreError):
    """Transport-level failure of a fetch, insert or update.

    Recoverable: keep showing the previous view and surface a transient notice.
    """

    detail = "store_unavailable"
    user_visible = True


class TurnConflict(StoreError):
    """Insert rejected because the turn number already exists in the room."""

    detail = "turn_conflict"

    def __init__(self, room_id: str, turn_number: int) -> None:
        super().__init__(f"turn {turn_number} already exists in room {room_id}")
        self.room_id = room_id
        self.turn_number = turn_number


class NotFound(StoreError):
    """A room or turn vanished."""

    detail = "not_found"


class RoomNotFound(NotFound):
    """Fatal to the current session."""

    detail = "room_not_found"
    user_visible = True

    def __init__(self, room_id: str) -> None:
        super().__init__(f"room {room_id} not found")
        self.room_id = room_id


class TurnNotFound(NotFound):
    """No open turn with the given id (missing or already answered)."""

    detail = "turn_not_found"

    def __init__(self, turn_id: str) -> None:
        super().__init__(f"no open turn {turn_id}")
        self.turn_id = turn_id


# ─────────────────────────────────────────────────────────────────────────────
# Action errors
# ─────────────────────────────────────────────────────────────────────────────


class ActionError(HeartlinkError):
    """Raised by the ActionSubmitter."""

    detail = "action_error"
    user_visible = True


class InvalidAction(ActionError):
    """The action is not allowed in the current phase."""

    detail = "invalid_action"


class StaleTurnNumber(ActionError):
    """The turn number was taken twice in a row by a concurrent insert."""

    detail = "stale_turn_number"


class NoOpenTurn(ActionError):
    """The addressed turn was closed concurrently. Never surfaced to players."""

    detail = "no_open_turn"
    user_visible = False


class RoomStateError(StoreError):
    """Room lifecycle step not allowed (room full, name taken, not ready)."""

    detail = "room_state_error"
    user_visible = True
