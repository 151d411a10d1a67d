"""Prompt pool for truth and dare prompts."""

from heartlink.prompts.pool import BUNDLED_PROMPTS_PATH, PromptPool, load_prompt_bank

__all__ = ["BUNDLED_PROMPTS_PATH", "PromptPool", "load_prompt_bank"]
