from __future__ import annotations

import io
from typing import Final

import torch
from PIL import Image, ImageFile, UnidentifiedImageError

from .errors import AppError, DecodeError
from .inference.types import INPUT_SHAPE, INPUT_SIZE, PreprocessOutput

ImageFile.LOAD_TRUNCATED_IMAGES = False

_PREPROCESS_SIGNATURE: Final[str] = "v1/rgb+box128+unit"


def decode_image(raw: bytes) -> Image.Image:
    """Decode raw bytes into a fully loaded Pillow image.

    Raises ``DecodeError`` for empty, unrecognized, truncated or oversized
    (decompression bomb) input.
    """
    if not raw:
        raise DecodeError("Failed to decode image: empty input")
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except UnidentifiedImageError:
        raise DecodeError() from None
    except Image.DecompressionBombError:
        raise DecodeError("Failed to decode image: decompression bomb") from None
    except (OSError, ValueError, SyntaxError) as exc:
        raise DecodeError(f"Failed to decode image: {exc}") from None
    return img


def run_preprocess(img: Image.Image) -> PreprocessOutput:
    """Squash ``img`` to the model's 128x128 RGB input in [0, 1].

    The aspect ratio is not preserved; the model was trained on squashed
    squares. Layout is row-major with interleaved R, G, B channels.
    """
    try:
        rgb = _to_rgb(img)
        resized = rgb.resize((INPUT_SIZE, INPUT_SIZE), resample=Image.Resampling.BOX)
        buf: bytes = resized.tobytes()
        if len(buf) != INPUT_SIZE * INPUT_SIZE * 3:
            raise DecodeError("unexpected buffer size")
        data: list[float] = [b / 255.0 for b in buf]
        t = torch.tensor(data, dtype=torch.float32).reshape(INPUT_SHAPE)
        return PreprocessOutput(tensor=t, source_size=(img.width, img.height))
    except AppError:
        raise
    except (ValueError, OSError, RuntimeError, TypeError) as exc:
        raise DecodeError(f"Failed to decode image: {exc}") from None


def preprocess_bytes(raw: bytes) -> PreprocessOutput:
    return run_preprocess(decode_image(raw))


def preprocess_signature() -> str:
    return _PREPROCESS_SIGNATURE


def _to_rgb(img: Image.Image) -> Image.Image:
    # Alpha is dropped, not composited onto a background
    if img.mode == "RGB":
        return img
    return img.convert("RGB")
