from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse

from ..acquisition import ImageSource, UploadImagePicker
from ..config import Limits, Settings
from ..errors import AppError, ErrorCode, ModelLoadError, new_error, status_for
from ..inference.engine import WeightModel
from ..logging import get_logger, init_logging
from ..middleware import RequestIdMiddleware
from ..request_context import request_id_var
from ..session import HINT_STEPS, HINT_TITLE, Error, Result, SessionState
from ..version import get_version
from ..workflow import MODEL_NOT_LOADED, PredictionWorkflow
from .schemas import ModelResponse, SessionResponse


async def _handle_app_error(_: Request, exc: Exception) -> JSONResponse:
    rid = request_id_var.get()
    if not isinstance(exc, AppError):
        body = new_error(ErrorCode.internal_error, rid, message=str(exc))
        return JSONResponse(status_code=500, content=body.to_dict())
    body = new_error(exc.code, rid, message=exc.message)
    return JSONResponse(status_code=exc.http_status, content=body.to_dict())


async def _handle_unexpected(_: Request, exc: Exception) -> JSONResponse:
    get_logger().error("unhandled_error type=%s", type(exc).__name__)
    body = new_error(ErrorCode.internal_error, request_id_var.get())
    return JSONResponse(status_code=500, content=body.to_dict())


def _load_model(settings: Settings) -> WeightModel | None:
    try:
        return WeightModel.load(settings.model.path)
    except ModelLoadError as exc:
        # The screen still starts; every prediction then reports the missing model.
        get_logger().error(
            "model_load_failed path=%s detail=%s", settings.model.path.as_posix(), exc.message
        )
        return None


def session_body(session: SessionState) -> dict[str, object]:
    view = session.view
    hint: dict[str, object] | None = None
    if session.hint_visible:
        hint = {"title": HINT_TITLE, "steps": list(HINT_STEPS)}
    return {
        "state": view.kind,
        "message": session.message,
        "weight_kg": view.weight_kg if isinstance(view, Result) else None,
        "weight_text": session.weight_text,
        "error": view.message if isinstance(view, Error) else None,
        "has_image": session.image is not None,
        "hint_visible": session.hint_visible,
        "hint": hint,
    }


def _register_basic(app: FastAPI, workflow: PredictionWorkflow) -> None:
    async def _healthz() -> dict[str, str]:
        return {"status": "ok"}

    async def _readyz() -> dict[str, object]:
        model = workflow.model
        if model is not None and not model.closed:
            return {"status": "ready"}
        return {"status": "not_ready", "model_loaded": False, "build": get_version().build}

    async def _version() -> dict[str, object]:
        v = get_version()
        return {"service": v.service, "version": v.version, "build": v.build, "commit": v.commit}

    app.add_api_route("/healthz", _healthz, methods=["GET"])
    app.add_api_route("/readyz", _readyz, methods=["GET"])
    app.add_api_route("/version", _version, methods=["GET"])


def _register_model(app: FastAPI, workflow: PredictionWorkflow) -> None:
    async def _model_info() -> dict[str, object]:
        model = workflow.model
        if model is None or model.closed:
            raise AppError(
                ErrorCode.service_not_ready,
                status_for(ErrorCode.service_not_ready),
                MODEL_NOT_LOADED,
            )
        man = model.manifest
        return {
            "model_id": model.model_id,
            "input_shape": list(model.input_shape),
            "output_shape": list(model.output_shape),
            "version": man.version if man is not None else None,
            "preprocess_hash": man.preprocess_hash if man is not None else None,
        }

    app.add_api_route("/v1/model", _model_info, methods=["GET"], response_model=ModelResponse)


def _register_session(
    app: FastAPI, workflow: PredictionWorkflow, picker: UploadImagePicker
) -> None:
    async def _get_session() -> dict[str, object]:
        return session_body(workflow.session)

    async def _pick_image(
        file: Annotated[UploadFile, File(...)],
        source: ImageSource = ImageSource.gallery,
    ) -> dict[str, object]:
        raw = await file.read()
        # Nothing may await between staging the upload and the picker consuming it.
        picker.offer(raw, file.filename)
        session = await workflow.on_pick(source)
        return session_body(session)

    async def _cancel_pick(source: ImageSource = ImageSource.gallery) -> dict[str, object]:
        session = await workflow.on_pick(source)
        return session_body(session)

    async def _toggle_hint() -> dict[str, object]:
        workflow.toggle_hint()
        return session_body(workflow.session)

    app.add_api_route(
        "/v1/session", _get_session, methods=["GET"], response_model=SessionResponse
    )
    app.add_api_route(
        "/v1/session/image", _pick_image, methods=["POST"], response_model=SessionResponse
    )
    app.add_api_route(
        "/v1/session/cancel", _cancel_pick, methods=["POST"], response_model=SessionResponse
    )
    app.add_api_route(
        "/v1/session/hint", _toggle_hint, methods=["POST"], response_model=SessionResponse
    )


def create_app(
    settings: Settings | None = None,
    model_provider: Callable[[], WeightModel | None] | None = None,
) -> FastAPI:
    """Application factory for the single weight-estimation screen.

    Parameters:
    - `settings`: Optional pre-loaded settings; when omitted, loads env/TOML settings.
    - `model_provider`: Optional provider for the model adapter (primarily for tests).
      Returning None models a failed startup load.

    The model is loaded once here and closed once when the application shuts down.
    """
    s = settings or Settings.load()
    init_logging()
    model = model_provider() if model_provider is not None else _load_model(s)
    picker = UploadImagePicker(Limits.from_settings(s))
    workflow = PredictionWorkflow(model, picker)

    @asynccontextmanager
    async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            if model is not None:
                # close() waits for an in-flight prediction to finish.
                await asyncio.to_thread(model.close)
            picker.close()

    app = FastAPI(title="cattle-weight", version=get_version().version, lifespan=_lifespan)
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AppError, _handle_app_error)
    app.add_exception_handler(Exception, _handle_unexpected)
    app.state.workflow = workflow

    _register_basic(app, workflow)
    _register_model(app, workflow)
    _register_session(app, workflow, picker)
    return app


# Default ASGI app for uvicorn
app = create_app()
