"""Projections - derived views from the turn log."""

from heartlink.store.projections.base import Projection
from heartlink.store.projections.turn_log import (
    TurnLogProjection,
    canonical_rank,
    compute_progress,
    project,
)

__all__ = [
    "Projection",
    "TurnLogProjection",
    "canonical_rank",
    "compute_progress",
    "project",
]
