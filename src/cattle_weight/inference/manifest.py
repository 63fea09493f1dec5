from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Final

from .types import INPUT_SHAPE, OUTPUT_SHAPE

_ALLOWED_SCHEMA_VERSIONS: Final[tuple[str, ...]] = ("v1",)


@dataclass(frozen=True)
class ModelManifest:
    """Sidecar metadata shipped next to a model artifact (``<model>.json``)."""

    schema_version: str
    model_id: str
    version: str
    created_at: datetime
    preprocess_hash: str
    input_shape: tuple[int, ...]
    output_shape: tuple[int, ...]

    @staticmethod
    def path_for(model_path: Path) -> Path:
        return model_path.with_suffix(".json")

    @staticmethod
    def from_path(path: Path) -> ModelManifest:
        return ModelManifest.from_json(path.read_text(encoding="utf-8"))

    @staticmethod
    def from_json(s: str) -> ModelManifest:
        obj: object = json.loads(s)
        if not isinstance(obj, dict):
            raise ValueError("manifest must be a JSON object")
        data: dict[str, object] = {str(k): v for k, v in obj.items()}
        return ModelManifest.from_dict(data)

    @staticmethod
    def from_dict(d: dict[str, object]) -> ModelManifest:
        created_at_str = str(d["created_at"]) if "created_at" in d else ""
        created = datetime.fromisoformat(created_at_str) if created_at_str else datetime.now()
        schema_version = str(d.get("schema_version", "")).strip()
        model_id = str(d.get("model_id", "")).strip()
        version = str(d.get("version", "")).strip()
        preprocess_hash = str(d.get("preprocess_hash", "")).strip()
        if not schema_version or not model_id or not version or not preprocess_hash:
            raise ValueError("manifest is missing required fields")
        if schema_version not in _ALLOWED_SCHEMA_VERSIONS:
            raise ValueError("unsupported manifest schema version")
        input_shape = _shape(d.get("input_shape", list(INPUT_SHAPE)), "input_shape")
        output_shape = _shape(d.get("output_shape", list(OUTPUT_SHAPE)), "output_shape")
        return ModelManifest(
            schema_version=schema_version,
            model_id=model_id,
            version=version,
            created_at=created,
            preprocess_hash=preprocess_hash,
            input_shape=input_shape,
            output_shape=output_shape,
        )


def _shape(raw: object, name: str) -> tuple[int, ...]:
    if not isinstance(raw, list) or not raw:
        raise ValueError(f"{name} must be a non-empty list")
    dims: list[int] = []
    for v in raw:
        if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
            raise ValueError(f"{name} must contain positive integers")
        dims.append(v)
    return tuple(dims)
