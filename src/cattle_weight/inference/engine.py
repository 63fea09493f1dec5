from __future__ import annotations

import threading
import zipfile
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Final, Protocol

import torch
from torch import Tensor

from ..errors import InferenceError, ModelLoadError
from ..logging import get_logger
from ..preprocess import preprocess_signature
from .manifest import ModelManifest
from .types import INPUT_SHAPE, OUTPUT_SHAPE, PredictOutput

_LOAD_ERRORS: Final[tuple[type[BaseException], ...]] = (
    OSError,
    ValueError,
    RuntimeError,
    TypeError,
    EOFError,
    zipfile.BadZipFile,
)
_PREDICT_ERRORS: Final[tuple[type[BaseException], ...]] = (RuntimeError, ValueError, TypeError)


class TorchModel(Protocol):
    def eval(self) -> object: ...
    def __call__(self, x: Tensor) -> Tensor: ...


class WeightModel:
    """Owned adapter around a pre-trained weight regressor.

    Inference runs on a single worker thread, so concurrent submissions are
    executed one at a time. The adapter must be closed exactly once to release
    the model and its worker.
    """

    def __init__(
        self,
        model: TorchModel,
        model_id: str,
        manifest: ModelManifest | None = None,
    ) -> None:
        self._logger = get_logger()
        self._lock = threading.Lock()
        self._pool_lock = threading.Lock()
        self._model: TorchModel | None = model
        self._model_id = model_id
        self._manifest = manifest
        self._pool: ThreadPoolExecutor | None = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="predict"
        )
        model.eval()

    @classmethod
    def load(cls, path: Path) -> WeightModel:
        """Load the artifact at ``path`` and verify its tensor contract.

        A ``<path>.json`` manifest is validated when present. A zero-input
        probe run confirms the output shape before the adapter is handed out.
        Raises ``ModelLoadError`` on any failure.
        """
        logger = get_logger()
        logger.info("model_loading path=%s", path.as_posix())
        if not path.is_file():
            raise ModelLoadError(f"Failed to load model: artifact not found at {path.as_posix()}")
        manifest = _load_manifest(path)
        try:
            model = _load_script_module(path)
        except _LOAD_ERRORS as exc:
            raise ModelLoadError(f"Failed to load model: {exc}") from None

        model_id = manifest.model_id if manifest is not None else path.stem
        adapter = cls(model, model_id=model_id, manifest=manifest)
        try:
            adapter.predict(torch.zeros(INPUT_SHAPE, dtype=torch.float32))
        except InferenceError as exc:
            adapter.close()
            raise ModelLoadError(f"Failed to load model: probe run failed: {exc.message}") from None
        logger.info(
            "model_loaded model_id=%s input_shape=%s output_shape=%s",
            model_id,
            _fmt_shape(adapter.input_shape),
            _fmt_shape(adapter.output_shape),
        )
        return adapter

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def manifest(self) -> ModelManifest | None:
        return self._manifest

    @property
    def input_shape(self) -> tuple[int, ...]:
        return INPUT_SHAPE

    @property
    def output_shape(self) -> tuple[int, ...]:
        return OUTPUT_SHAPE

    @property
    def closed(self) -> bool:
        return self._model is None

    def predict(self, tensor: Tensor) -> Tensor:
        """Run one ``(1, 128, 128, 3)`` tensor through the model, returning ``(1, 1)``."""
        if tuple(tensor.shape) != INPUT_SHAPE:
            raise InferenceError(
                f"expected input shape {_fmt_shape(INPUT_SHAPE)}, "
                f"got {_fmt_shape(tuple(tensor.shape))}"
            )
        with self._lock:
            model = self._model
            if model is None:
                raise InferenceError("model is closed")
            try:
                with torch.no_grad():
                    out = model(tensor.to(dtype=torch.float32))
            except _PREDICT_ERRORS as exc:
                raise InferenceError(str(exc)) from None
        if not isinstance(out, Tensor) or tuple(out.shape) != OUTPUT_SHAPE:
            got = _fmt_shape(tuple(out.shape)) if isinstance(out, Tensor) else type(out).__name__
            raise InferenceError(f"expected output shape {_fmt_shape(OUTPUT_SHAPE)}, got {got}")
        return out.detach().to(dtype=torch.float32)

    def submit_predict(self, tensor: Tensor) -> Future[PredictOutput]:
        with self._pool_lock:
            pool = self._pool
            if pool is None:
                raise InferenceError("model is closed")
            try:
                return pool.submit(self._predict_impl, tensor)
            except RuntimeError as exc:
                raise InferenceError(str(exc)) from None

    def _predict_impl(self, tensor: Tensor) -> PredictOutput:
        out = self.predict(tensor)
        return PredictOutput(weight_kg=float(out[0][0].item()), model_id=self._model_id)

    def close(self) -> None:
        with self._lock:
            if self._model is None:
                return
            self._model = None
            with self._pool_lock:
                pool = self._pool
                self._pool = None
        if pool is not None:
            pool.shutdown(wait=True)
        self._logger.info("model_closed model_id=%s", self._model_id)

    def __enter__(self) -> WeightModel:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def _load_manifest(model_path: Path) -> ModelManifest | None:
    man_path = ModelManifest.path_for(model_path)
    if not man_path.exists():
        return None
    try:
        manifest = ModelManifest.from_path(man_path)
    except (OSError, ValueError) as exc:
        raise ModelLoadError(f"Failed to load model: invalid manifest: {exc}") from None
    if manifest.preprocess_hash != preprocess_signature():
        raise ModelLoadError("Failed to load model: preprocess signature mismatch")
    if manifest.input_shape != INPUT_SHAPE or manifest.output_shape != OUTPUT_SHAPE:
        raise ModelLoadError(
            "Failed to load model: manifest declares "
            f"{_fmt_shape(manifest.input_shape)} -> {_fmt_shape(manifest.output_shape)}"
        )
    return manifest


def _fmt_shape(shape: tuple[int, ...]) -> str:
    return "[" + ",".join(str(d) for d in shape) + "]"


if TYPE_CHECKING:

    def _load_script_module(path: Path) -> TorchModel: ...
else:

    def _load_script_module(path: Path) -> TorchModel:
        return torch.jit.load(path.as_posix(), map_location=torch.device("cpu"))
