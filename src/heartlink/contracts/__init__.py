"""Heartlink contracts - typed schemas shared by store, projector and runtime."""

from heartlink.contracts.events import ChangeKind, ChangeNotice, ChangeTable
from heartlink.contracts.game import GameMode, PromptKind, Room, RoomStatus, Turn
from heartlink.contracts.view import Phase, ViewState

__all__ = [
    # Game
    "GameMode",
    "PromptKind",
    "Room",
    "RoomStatus",
    "Turn",
    # View
    "Phase",
    "ViewState",
    # Events
    "ChangeKind",
    "ChangeNotice",
    "ChangeTable",
]
