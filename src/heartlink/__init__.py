"""Heartlink - two-player truth or dare over a shared turn log."""

__version__ = "0.3.0"
