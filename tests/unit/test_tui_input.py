"""Tests for key-name normalisation."""

from __future__ import annotations

from wormsign.tui.input import normalize_key


def test_named_keys():
    assert normalize_key("\r") == "enter"
    assert normalize_key("\n") == "enter"
    assert normalize_key("\x7f") == "backspace"
    assert normalize_key(" ") == "space"


def test_plain_keys_pass_through():
    assert normalize_key("q") == "q"
    assert normalize_key("?") == "?"
