from __future__ import annotations

import asyncio
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import Protocol

from .config import Limits
from .errors import AcquisitionError, ErrorCode
from .logging import get_logger


class ImageSource(str, Enum):
    camera = "camera"
    gallery = "gallery"


class ImagePicker(Protocol):
    async def pick(self, source: ImageSource) -> Path | None:
        """Return the path of the picked photo, or None when the user cancelled."""
        ...

    def discard(self, path: Path) -> None:
        """Forget a photo returned by ``pick`` once nothing will read it again."""
        ...


class StaticImagePicker:
    """Picker that always hands back the same file (or a cancellation)."""

    def __init__(self, path: Path | None) -> None:
        self._path = path

    async def pick(self, source: ImageSource) -> Path | None:
        return self._path

    def discard(self, path: Path) -> None:
        # The configured file belongs to the caller.
        return None


class UploadImagePicker:
    """Picker fed by photos uploaded from the screen client.

    ``offer`` stages the bytes of the next photo; ``pick`` writes them to a
    private temporary directory and returns the path. Each pick gets its own
    file, removed by ``discard`` or when the picker is closed.
    """

    def __init__(self, limits: Limits) -> None:
        self._limits = limits
        self._pending: bytes | None = None
        self._pending_name = ""
        self._dir: Path | None = None
        self._seq = 0

    def offer(self, raw: bytes, filename: str | None = None) -> None:
        self._pending = raw
        self._pending_name = Path(filename or "").suffix.lower()

    async def pick(self, source: ImageSource) -> Path | None:
        raw = self._pending
        if raw is None:
            return None
        self._pending = None
        if len(raw) > self._limits.max_bytes:
            raise AcquisitionError(
                "Error picking image: file exceeds size limit", code=ErrorCode.too_large
            )
        self._seq += 1
        dest = self._workdir() / f"{source.value}-{self._seq}{self._pending_name or '.img'}"
        try:
            await asyncio.to_thread(_write_file, dest, raw)
        except OSError as exc:
            raise AcquisitionError(f"Error picking image: {exc}") from None
        return dest

    def discard(self, path: Path) -> None:
        if self._dir is not None and path.parent == self._dir:
            path.unlink(missing_ok=True)

    def close(self) -> None:
        d = self._dir
        self._dir = None
        if d is not None:
            shutil.rmtree(d, ignore_errors=True)

    def _workdir(self) -> Path:
        if self._dir is None:
            self._dir = Path(tempfile.mkdtemp(prefix="cattle-weight-"))
        return self._dir


def _write_file(dest: Path, raw: bytes) -> None:
    dest.write_bytes(raw)


async def read_image_bytes(path: Path) -> bytes:
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        get_logger().info("image_read_failed path=%s", path.as_posix())
        raise AcquisitionError(f"Error reading image: {exc}") from None
