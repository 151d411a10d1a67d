"""Prompt pool - truth and dare prompts keyed by game mode.

Prompts ship in prompts.yaml next to this module. A custom bank with the
same shape can be supplied through PROMPTS_PATH.
"""

import logging
import random
from pathlib import Path

import yaml

from heartlink.contracts.game import GameMode, PromptKind

logger = logging.getLogger(__name__)

BUNDLED_PROMPTS_PATH = Path(__file__).parent / "prompts.yaml"


def load_prompt_bank(path: Path | str | None = None) -> dict[GameMode, dict[PromptKind, list[str]]]:
    """Load and validate a prompt bank.

    Raises:
        KeyError: a game mode or prompt kind is missing
        ValueError: a list is empty or the file is malformed
    """
    path = Path(path) if path else BUNDLED_PROMPTS_PATH
    with open(path) as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of game modes")

    bank: dict[GameMode, dict[PromptKind, list[str]]] = {}
    for mode in GameMode:
        if mode.value not in data:
            raise KeyError(f"{path}: missing game mode '{mode.value}'")
        bank[mode] = {}
        for kind in PromptKind:
            prompts = data[mode.value].get(kind.value)
            if prompts is None:
                raise KeyError(f"{path}: missing '{kind.value}' prompts for '{mode.value}'")
            prompts = [str(p).strip() for p in prompts if str(p).strip()]
            if not prompts:
                raise ValueError(f"{path}: no '{kind.value}' prompts for '{mode.value}'")
            bank[mode][kind] = prompts

    logger.debug(f"Loaded prompt bank from {path}")
    return bank


class PromptPool:
    """Random selection from a prompt bank. Holds no game state."""

    def __init__(
        self,
        bank: dict[GameMode, dict[PromptKind, list[str]]] | None = None,
        rng: random.Random | None = None,
    ):
        self.bank = bank if bank is not None else load_prompt_bank()
        self._rng = rng or random.Random()

    @classmethod
    def from_path(cls, path: Path | str | None, rng: random.Random | None = None) -> "PromptPool":
        return cls(load_prompt_bank(path), rng)

    def pick_prompt(self, game_mode: GameMode | str, kind: PromptKind | str) -> str:
        """Pick a prompt for the room's game mode and the spun kind."""
        return self._rng.choice(self.bank[GameMode(game_mode)][PromptKind(kind)])

    def prompts_for(self, game_mode: GameMode | str, kind: PromptKind | str) -> list[str]:
        return list(self.bank[GameMode(game_mode)][PromptKind(kind)])
