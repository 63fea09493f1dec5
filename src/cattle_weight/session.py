from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Literal

HINT_TITLE: Final[str] = "Photo Taking Instructions:"
HINT_STEPS: Final[tuple[str, ...]] = (
    "1. Stand approximately 1.5-2 meters away from the cattle",
    "2. Place a 10cm green square reference marker on the cattle's body",
    "3. Ensure good lighting and clear visibility",
    "4. Capture the entire body of the cattle in the frame",
)
EMPTY_PROMPT: Final[str] = "Select or capture an image to predict weight"
LOADING_TEXT: Final[str] = "Predicting..."


@dataclass(frozen=True)
class Empty:
    kind: Literal["empty"] = "empty"


@dataclass(frozen=True)
class Loading:
    kind: Literal["loading"] = "loading"


@dataclass(frozen=True)
class Result:
    weight_kg: float
    kind: Literal["result"] = "result"


@dataclass(frozen=True)
class Error:
    message: str
    kind: Literal["error"] = "error"


ViewState = Empty | Loading | Result | Error


def format_weight(weight_kg: float) -> str:
    return f"{weight_kg:.2f} kg"


def render_message(view: ViewState) -> str:
    if isinstance(view, Loading):
        return LOADING_TEXT
    if isinstance(view, Error):
        return view.message
    if isinstance(view, Result):
        return f"Estimated Weight: {format_weight(view.weight_kg)}"
    return EMPTY_PROMPT


@dataclass
class SessionState:
    """What the single screen shows: the picked photo, one view state, the hint panel."""

    image: Path | None = None
    view: ViewState = field(default_factory=Empty)
    hint_visible: bool = False

    def set_view(self, view: ViewState) -> None:
        self.view = view

    def toggle_hint(self) -> bool:
        self.hint_visible = not self.hint_visible
        return self.hint_visible

    @property
    def weight_text(self) -> str | None:
        if isinstance(self.view, Result):
            return format_weight(self.view.weight_kg)
        return None

    @property
    def message(self) -> str:
        return render_message(self.view)
