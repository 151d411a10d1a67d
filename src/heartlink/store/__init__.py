"""Heartlink store - turn record store and projections."""

from heartlink.store.protocol import ChangeCallback, Subscription, TurnRecordStore
from heartlink.store.sqlite_store import SQLiteTurnStore, generate_room_code
from heartlink.store.projections.base import Projection
from heartlink.store.projections.turn_log import TurnLogProjection, project

__all__ = [
    "ChangeCallback",
    "Subscription",
    "TurnRecordStore",
    "SQLiteTurnStore",
    "generate_room_code",
    "Projection",
    "TurnLogProjection",
    "project",
]
