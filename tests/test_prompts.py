"""Tests for the prompt pool."""

import random

import pytest

from heartlink.contracts.game import GameMode, PromptKind
from heartlink.prompts.pool import PromptPool, load_prompt_bank


class TestPromptBank:
    def test_bundled_bank_covers_every_mode_and_kind(self):
        bank = load_prompt_bank()
        for mode in GameMode:
            for kind in PromptKind:
                assert bank[mode][kind], f"{mode.value}/{kind.value} is empty"

    def test_missing_mode(self, tmp_path):
        path = tmp_path / "prompts.yaml"
        path.write_text("friendly:\n  truth: [a]\n  dare: [b]\n")
        with pytest.raises(KeyError):
            load_prompt_bank(path)

    def test_empty_kind(self, tmp_path):
        path = tmp_path / "prompts.yaml"
        body = "".join(
            f"{mode.value}:\n  truth: [a]\n  dare: []\n" for mode in GameMode
        )
        path.write_text(body)
        with pytest.raises(ValueError):
            load_prompt_bank(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "prompts.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_prompt_bank(path)


class TestPromptPool:
    def test_pick_is_from_requested_bucket(self):
        pool = PromptPool(rng=random.Random(7))
        for _ in range(20):
            prompt = pool.pick_prompt("crush", "dare")
            assert prompt in pool.prompts_for(GameMode.CRUSH, PromptKind.DARE)

    def test_seeded_rng_is_repeatable(self):
        first = PromptPool(rng=random.Random(42))
        second = PromptPool(rng=random.Random(42))
        picks = [first.pick_prompt(GameMode.ADULT, PromptKind.TRUTH) for _ in range(5)]
        assert picks == [second.pick_prompt(GameMode.ADULT, PromptKind.TRUTH) for _ in range(5)]

    def test_unknown_mode(self):
        pool = PromptPool()
        with pytest.raises(ValueError):
            pool.pick_prompt("spicy", "truth")

    def test_custom_path(self, tmp_path):
        path = tmp_path / "prompts.yaml"
        path.write_text("".join(
            f"{mode.value}:\n  truth: [only truth]\n  dare: [only dare]\n" for mode in GameMode
        ))
        pool = PromptPool.from_path(path)
        assert pool.pick_prompt("friendly", "dare") == "only dare"
