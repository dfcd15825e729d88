"""Unit tests for prompt loading."""

import pytest

from risk_tiering.utils.prompt_loader import load_prompt, split_messages


class TestLoadPrompt:
    def test_policy_extraction_prompt(self):
        prompt = load_prompt(
            "policy_extraction",
            policy_text="Tier 3 every 6 months",
            tiers=["T3", "T2"],
            current_frequencies={"T3": 12},
        )

        assert prompt["config"]["model"] == "gpt-4o"
        assert [m["role"] for m in prompt["messages"]] == ["system", "user"]
        user = prompt["messages"][1]["content"]
        assert "Tier 3 every 6 months" in user
        assert "T3, T2" in user
        assert "T3=12" in user

    def test_missing_variable_rejected(self):
        with pytest.raises(ValueError, match="render"):
            load_prompt("policy_extraction", policy_text="x", tiers=[])

    def test_missing_prompt_file(self):
        with pytest.raises(FileNotFoundError):
            load_prompt("nope")


class TestSplitMessages:
    def test_split(self):
        messages = split_messages("system:\nBe brief.\n\nuser:\nHello\n")
        assert messages == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hello"},
        ]

    def test_requires_markers(self):
        with pytest.raises(ValueError, match="markers"):
            split_messages("just text")
