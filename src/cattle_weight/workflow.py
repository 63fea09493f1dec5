from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Final

from .acquisition import ImagePicker, ImageSource, read_image_bytes
from .errors import AcquisitionError, DecodeError, InferenceError
from .inference.engine import WeightModel
from .logging import get_logger, log_event
from .preprocess import preprocess_bytes
from .session import Error, Loading, Result, SessionState, ViewState

MODEL_NOT_LOADED: Final[str] = "Model not loaded"


class PredictionWorkflow:
    """Drives the screen state machine: Empty -> Loading -> Result | Error.

    Every pick takes a ticket before the picker is asked for a photo, so the
    order of submission is fixed even when writing one photo takes longer than
    another. A request claims the screen with its ticket once it has a photo;
    an older ticket can no longer claim it. Predictions are serialized through
    one lock: a superseded request still waiting for the lock is skipped, and a
    superseded request that already ran has its outcome dropped. A cancelled
    pick claims nothing.
    """

    def __init__(
        self,
        model: WeightModel | None,
        picker: ImagePicker,
        session: SessionState | None = None,
    ) -> None:
        self._model = model
        self._picker = picker
        self.session = session if session is not None else SessionState()
        self._lock = asyncio.Lock()
        self._tickets = 0
        self._generation = 0
        self._logger = get_logger()

    @property
    def model(self) -> WeightModel | None:
        return self._model

    async def on_pick(self, source: ImageSource) -> SessionState:
        ticket = self._next_ticket()
        try:
            path = await self._picker.pick(source)
        except AcquisitionError as exc:
            self._logger.info("image_pick_failed source=%s", source.value)
            if self._claim(ticket):
                self.session.set_view(Error(exc.message))
            return self.session
        if path is None:
            self._logger.info("image_pick_cancelled source=%s", source.value)
            return self.session
        await self._predict(path, source, ticket)
        return self.session

    async def predict_image(self, path: Path, source: ImageSource | None = None) -> None:
        await self._predict(path, source, self._next_ticket())

    def toggle_hint(self) -> bool:
        return self.session.toggle_hint()

    def _next_ticket(self) -> int:
        self._tickets += 1
        return self._tickets

    def _claim(self, ticket: int) -> bool:
        if ticket < self._generation:
            return False
        self._generation = ticket
        return True

    async def _predict(self, path: Path, source: ImageSource | None, ticket: int) -> None:
        if not self._claim(ticket):
            self._logger.info("prediction_superseded stage=picked")
            self._picker.discard(path)
            return
        previous = self.session.image
        self.session.image = path
        if previous is not None and previous != path:
            self._picker.discard(previous)
        self.session.set_view(Loading())
        t0 = time.perf_counter()
        async with self._lock:
            if ticket != self._generation:
                self._logger.info("prediction_superseded stage=queued")
                return
            view = await self._run(path)
        if ticket != self._generation:
            self._logger.info("prediction_superseded stage=finished")
            return
        self.session.set_view(view)
        log_event(
            "prediction_finished" if isinstance(view, Result) else "prediction_failed",
            fields={
                "latency_ms": int((time.perf_counter() - t0) * 1000.0),
                "weight_kg": view.weight_kg if isinstance(view, Result) else None,
                "model_id": self._model.model_id if self._model is not None else None,
                "source": source.value if source is not None else None,
                "state": view.kind,
            },
        )

    async def _run(self, path: Path) -> ViewState:
        model = self._model
        if model is None or model.closed:
            # Prediction is unavailable for the whole session; skip decoding entirely.
            return Error(MODEL_NOT_LOADED)
        try:
            raw = await read_image_bytes(path)
            pre = await asyncio.to_thread(preprocess_bytes, raw)
            out = await asyncio.wrap_future(model.submit_predict(pre.tensor))
        except AcquisitionError as exc:
            return Error(exc.message)
        except DecodeError as exc:
            return Error(exc.message)
        except InferenceError as exc:
            self._logger.info("inference_failed model_id=%s", model.model_id)
            return Error(f"Error during prediction: {exc.message}")
        return Result(weight_kg=out.weight_kg)
