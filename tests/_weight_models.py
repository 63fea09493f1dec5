from __future__ import annotations

import io
import threading
from pathlib import Path

import torch
from PIL import Image


class ConstantWeight(torch.nn.Module):
    def __init__(self, value: float) -> None:
        super().__init__()
        self.value = value

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.full((1, 1), self.value, dtype=torch.float32) + x.sum() * 0.0


class RedMeanWeight(torch.nn.Module):
    """Weight is 100 x the mean red channel value."""

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return (x[:, :, :, 0].mean() * 100.0).reshape(1, 1)


class WrongShapeWeight(torch.nn.Module):
    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x.mean(dim=[1, 2])


def save_scripted(module: torch.nn.Module, path: Path) -> Path:
    torch.jit.script(module).save(path.as_posix())
    return path


class FakeModel:
    """Plain-Python stand-in satisfying the TorchModel protocol."""

    def __init__(self, value: float = 42.5) -> None:
        self.value = value
        self.calls = 0

    def eval(self) -> object:
        return self

    def __call__(self, x: torch.Tensor) -> torch.Tensor:
        self.calls += 1
        return torch.tensor([[self.value]], dtype=torch.float32)


class GatedModel:
    """Blocks inside the model call until ``gate`` is set."""

    def __init__(self) -> None:
        self.calls = 0
        self.started = threading.Event()
        self.gate = threading.Event()

    def eval(self) -> object:
        return self

    def __call__(self, x: torch.Tensor) -> torch.Tensor:
        self.calls += 1
        self.started.set()
        self.gate.wait(5.0)
        return (x[:, :, :, 0].mean() * 100.0).reshape(1, 1)


def png_bytes(size: tuple[int, int], color: tuple[int, int, int], mode: str = "RGB") -> bytes:
    img = Image.new("RGB", size, color)
    if mode != "RGB":
        img = img.convert(mode)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
