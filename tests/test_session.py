from __future__ import annotations

from pathlib import Path

from cattle_weight.session import (
    EMPTY_PROMPT,
    HINT_STEPS,
    Empty,
    Error,
    Loading,
    Result,
    SessionState,
    format_weight,
    render_message,
)


def test_format_weight_two_decimals() -> None:
    assert format_weight(42.5) == "42.50 kg"
    assert format_weight(387.126) == "387.13 kg"
    assert format_weight(-1.0) == "-1.00 kg"


def test_render_message_per_state() -> None:
    assert render_message(Empty()) == EMPTY_PROMPT
    assert render_message(Loading()) == "Predicting..."
    assert render_message(Error("Failed to decode image")) == "Failed to decode image"
    assert render_message(Result(42.5)) == "Estimated Weight: 42.50 kg"


def test_new_session_shows_empty_prompt() -> None:
    s = SessionState()
    assert isinstance(s.view, Empty)
    assert s.image is None and s.hint_visible is False
    assert s.message == EMPTY_PROMPT
    assert s.weight_text is None


def test_set_view_replaces_the_single_active_state() -> None:
    s = SessionState(image=Path("cow.jpg"))
    s.set_view(Result(10.0))
    assert s.weight_text == "10.00 kg"
    s.set_view(Error("boom"))
    assert s.weight_text is None
    assert s.view.kind == "error"


def test_toggle_hint_twice_restores_visibility() -> None:
    s = SessionState()
    before = s.hint_visible
    assert s.toggle_hint() is (not before)
    assert s.toggle_hint() is before
    assert s.hint_visible is before


def test_toggle_hint_does_not_touch_prediction_state() -> None:
    s = SessionState()
    s.set_view(Result(5.0))
    s.toggle_hint()
    assert s.view == Result(5.0)


def test_hint_has_four_instructions() -> None:
    assert len(HINT_STEPS) == 4
    assert HINT_STEPS[0].startswith("1.")
