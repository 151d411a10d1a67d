"""
Heartlink Configuration

Copy this file to config.py and adjust the values.
config.py is gitignored so local paths stay local.
"""

# =============================================================================
# Game
# =============================================================================

# Closed turns needed to fill the heart progress bar (100%)
PROGRESS_TARGET = 20

# =============================================================================
# Store
# =============================================================================

# Both players point at the same database file
DATA_DIR = "data"
DB_FILENAME = "heartlink.db"

# Seconds between checks for writes made by the other player's process
POLL_INTERVAL = 1.0

# =============================================================================
# Prompts
# =============================================================================

# Custom prompt bank (same shape as heartlink/prompts/prompts.yaml), or None
PROMPTS_PATH = None

# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL = "INFO"  # DEBUG shows dropped stale fetches and duplicate turns
