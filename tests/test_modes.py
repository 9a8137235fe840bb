"""Tests for output-mode selection."""

import pytest

from structured_client.modes import Mode, get_optimal_mode, select_mode, supports_native_structured_output


@pytest.mark.parametrize(
    "provider, model, native",
    [
        ("anthropic", "claude-3-5-sonnet-20241022", True),
        ("anthropic", "claude-sonnet-4-20250514", True),
        ("anthropic", "claude-3-haiku-20240307", True),
        ("anthropic", "claude-2.1", False),
        ("anthropic", "claude-instant-1.2", False),
        ("openai", "gpt-4o", True),
        ("openai", "gpt-4o-mini", True),
        ("openai", "gpt-3.5-turbo", True),
        ("openai", "o1", True),
        ("openai", "o1-mini", False),
        ("openai", "o1-preview", False),
        ("openai", "davinci-002", False),
        ("mystery", "gpt-4o", False),
    ],
)
def test_native_support(provider, model, native):
    assert supports_native_structured_output(provider, model) is native


def test_no_model_is_not_native():
    assert not supports_native_structured_output("anthropic", None)


def test_optimal_mode():
    assert get_optimal_mode("anthropic", "claude-3-opus-20240229") == Mode.TOOLS
    assert get_optimal_mode("anthropic", "claude-2.1") == Mode.JSON
    assert get_optimal_mode("openai", "o1-mini") == Mode.MD_JSON
    assert get_optimal_mode("mystery", "anything") == Mode.MD_JSON


def test_native_selection_falls_back_to_json():
    selection = select_mode("anthropic", "claude-sonnet-4-20250514")
    assert selection.mode == Mode.TOOLS
    assert selection.is_native
    assert selection.fallback_mode == Mode.JSON
    assert "claude-sonnet-4-20250514" in selection.reason


def test_non_native_selection_falls_back_to_md_json():
    selection = select_mode("anthropic", "claude-2.1")
    assert selection.mode == Mode.JSON
    assert not selection.is_native
    assert selection.fallback_mode == Mode.MD_JSON


def test_unknown_model_uses_conservative_mode():
    selection = select_mode("openai", None)
    assert selection.mode == Mode.MD_JSON
    assert "default" in selection.reason
