"""Default configuration values for Heartlink."""

from typing import Literal

# Game
# Closed turns needed for a full heart. Earlier builds used 10.
PROGRESS_TARGET: int = 20

# Store
DATA_DIR: str = "data"
DB_FILENAME: str = "heartlink.db"
POLL_INTERVAL: float = 1.0  # seconds between cross-process change checks

# Prompts (None = bundled prompts.yaml)
PROMPTS_PATH: str | None = None

# Logging
LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

# All configurable keys (for validation)
CONFIG_KEYS = {
    "PROGRESS_TARGET",
    "DATA_DIR",
    "DB_FILENAME",
    "POLL_INTERVAL",
    "PROMPTS_PATH",
    "LOG_LEVEL",
}
