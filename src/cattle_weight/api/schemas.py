from __future__ import annotations

from pydantic.dataclasses import dataclass as pydantic_dataclass


@pydantic_dataclass(frozen=True)
class HintResponse:
    title: str
    steps: list[str]


@pydantic_dataclass(frozen=True)
class SessionResponse:
    state: str
    message: str
    weight_kg: float | None
    weight_text: str | None
    error: str | None
    has_image: bool
    hint_visible: bool
    hint: HintResponse | None


@pydantic_dataclass(frozen=True)
class ModelResponse:
    model_id: str
    input_shape: list[int]
    output_shape: list[int]
    version: str | None
    preprocess_hash: str | None
