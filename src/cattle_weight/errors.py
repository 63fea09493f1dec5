from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final

from fastapi import status


class ErrorCode(str, Enum):
    model_load_failed = "model_load_failed"
    acquisition_failed = "acquisition_failed"
    invalid_image = "invalid_image"
    inference_failed = "inference_failed"
    too_large = "too_large"
    internal_error = "internal_error"
    service_not_ready = "service_not_ready"


_DEFAULT_MESSAGE: Final[dict[ErrorCode, str]] = {
    ErrorCode.model_load_failed: "Failed to load model.",
    ErrorCode.acquisition_failed: "Error picking image.",
    ErrorCode.invalid_image: "Failed to decode image.",
    ErrorCode.inference_failed: "Error during prediction.",
    ErrorCode.too_large: "File exceeds size limit.",
    ErrorCode.internal_error: "Internal server error.",
    ErrorCode.service_not_ready: "Model not loaded.",
}


@dataclass(frozen=True)
class ErrorResponse:
    code: ErrorCode
    message: str
    request_id: str

    def to_dict(self) -> dict[str, str]:
        return {
            "code": self.code.value,
            "message": self.message,
            "request_id": self.request_id,
        }


class AppError(Exception):
    def __init__(self, code: ErrorCode, http_status: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.http_status = http_status
        self.message = message


class ModelLoadError(AppError):
    """Model artifact missing or malformed; prediction stays unavailable."""

    def __init__(self, message: str) -> None:
        code = ErrorCode.model_load_failed
        super().__init__(code, status_for(code), message)


class AcquisitionError(AppError):
    """Genuine I/O failure while obtaining the photo (cancel is not an error)."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.acquisition_failed) -> None:
        super().__init__(code, status_for(code), message)


class DecodeError(AppError):
    def __init__(self, message: str = "Failed to decode image") -> None:
        super().__init__(ErrorCode.invalid_image, status_for(ErrorCode.invalid_image), message)


class InferenceError(AppError):
    def __init__(self, message: str) -> None:
        code = ErrorCode.inference_failed
        super().__init__(code, status_for(code), message)


def new_error(code: ErrorCode, request_id: str, message: str | None = None) -> ErrorResponse:
    msg = message if message is not None else _DEFAULT_MESSAGE.get(code, "")
    return ErrorResponse(code=code, message=msg, request_id=request_id)


def status_for(code: ErrorCode) -> int:
    if code is ErrorCode.invalid_image:
        return status.HTTP_400_BAD_REQUEST
    if code is ErrorCode.acquisition_failed:
        return status.HTTP_400_BAD_REQUEST
    if code is ErrorCode.too_large:
        return status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    if code is ErrorCode.model_load_failed:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if code is ErrorCode.service_not_ready:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR
