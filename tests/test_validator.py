"""Tests for awb.utils.validator.validate_prompt."""

import pytest

from awb.utils.validator import validate_prompt


class TestValidatePrompt:
    def test_valid_string_returns_stripped(self):
        assert validate_prompt("A Pomodoro timer") == "A Pomodoro timer"

    def test_leading_trailing_whitespace_stripped(self):
        assert validate_prompt("  a clock \n") == "a clock"

    def test_empty_string_raises(self):
        with pytest.raises(ValueError):
            validate_prompt("")

    def test_whitespace_only_raises(self):
        with pytest.raises(ValueError):
            validate_prompt(" \t\n ")

    def test_none_raises(self):
        with pytest.raises(ValueError):
            validate_prompt(None)

    def test_non_string_raises(self):
        with pytest.raises(ValueError):
            validate_prompt(["a clock"])
