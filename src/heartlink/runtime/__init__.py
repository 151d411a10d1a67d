"""Heartlink runtime - synchronization loop and action submitter."""

from heartlink.runtime.submitter import ActionSubmitter
from heartlink.runtime.sync_loop import SyncLoop

__all__ = ["ActionSubmitter", "SyncLoop"]
