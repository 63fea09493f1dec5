from __future__ import annotations

import importlib

import pytest
from _logs import captured_logs

from cattle_weight.errors import (
    AcquisitionError,
    AppError,
    DecodeError,
    ErrorCode,
    InferenceError,
    ModelLoadError,
    new_error,
    status_for,
)
from cattle_weight.version import get_version


def test_status_mapping() -> None:
    assert status_for(ErrorCode.invalid_image) == 400
    assert status_for(ErrorCode.too_large) == 413
    assert status_for(ErrorCode.service_not_ready) == 503
    assert status_for(ErrorCode.model_load_failed) == 503
    assert status_for(ErrorCode.inference_failed) == 500
    assert status_for(ErrorCode.internal_error) == 500


def test_new_error_default_message() -> None:
    e = new_error(ErrorCode.service_not_ready, "abc-123")
    assert e.message == "Model not loaded."
    assert e.to_dict() == {
        "code": "service_not_ready",
        "message": "Model not loaded.",
        "request_id": "abc-123",
    }


def test_taxonomy_is_app_errors() -> None:
    errs: list[AppError] = [
        ModelLoadError("m"),
        AcquisitionError("a"),
        DecodeError(),
        InferenceError("i"),
    ]
    assert [e.code for e in errs] == [
        ErrorCode.model_load_failed,
        ErrorCode.acquisition_failed,
        ErrorCode.invalid_image,
        ErrorCode.inference_failed,
    ]
    assert str(DecodeError()) == "Failed to decode image"


def test_version_reports_service_name() -> None:
    assert get_version().service == "cattle-weight"


def test_version_fallback_logs_and_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    meta = importlib.import_module("importlib.metadata")

    def _missing(_: str) -> str:
        raise meta.PackageNotFoundError("cattle-weight")

    monkeypatch.setattr(meta, "version", _missing, raising=True)
    with captured_logs() as buf:
        v = get_version()
    assert v.version == "0.1.0"
    assert "pkg_version_fallback" in buf.getvalue()
