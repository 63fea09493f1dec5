from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from torch import Tensor

INPUT_SIZE: Final[int] = 128
INPUT_SHAPE: Final[tuple[int, int, int, int]] = (1, INPUT_SIZE, INPUT_SIZE, 3)
OUTPUT_SHAPE: Final[tuple[int, int]] = (1, 1)


@dataclass(frozen=True)
class PredictOutput:
    weight_kg: float
    model_id: str


@dataclass(frozen=True)
class PreprocessOutput:
    tensor: Tensor  # float32, INPUT_SHAPE, NHWC
    source_size: tuple[int, int]
