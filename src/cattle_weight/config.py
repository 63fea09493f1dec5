from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final

_DEFAULT_CONFIG_PATH: Final[Path] = Path("config/cattle.toml")


@dataclass(frozen=True)
class AppConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass(frozen=True)
class ModelConfig:
    path: Path = Path("assets/cow_weight_model.pt")


@dataclass(frozen=True)
class ImageConfig:
    max_image_mb: int = 20


@dataclass(frozen=True)
class Settings:
    app: AppConfig
    model: ModelConfig
    image: ImageConfig

    @staticmethod
    def _toml_path() -> Path:
        env_val = os.getenv("CATTLE_CONFIG")
        if env_val:
            return Path(env_val)
        return _DEFAULT_CONFIG_PATH

    @classmethod
    def defaults(cls) -> Settings:
        return cls(app=AppConfig(), model=ModelConfig(), image=ImageConfig())

    @classmethod
    def load(cls) -> Settings:
        # Env first, then the optional TOML file overrides.
        base = cls(
            app=_load_app_from_env(),
            model=_load_model_from_env(),
            image=_load_image_from_env(),
        )
        cfg_path = cls._toml_path()
        if not cfg_path.exists():
            return base
        try:
            raw: object = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise RuntimeError(f"Failed to read config TOML: {cfg_path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise RuntimeError(f"Invalid TOML config: {cfg_path}") from exc
        return cls(
            app=_merge_app(base.app, _toml_table(raw, "app")),
            model=_merge_model(base.model, _toml_table(raw, "model")),
            image=_merge_image(base.image, _toml_table(raw, "image")),
        )


def _load_app_from_env() -> AppConfig:
    a = AppConfig()
    host = os.getenv("APP__HOST")
    pt = os.getenv("APP__PORT")
    if host:
        a = replace(a, host=host)
    if pt is not None and pt.isdigit():
        a = replace(a, port=_checked_port(int(pt), "APP__PORT"))
    return a


def _load_model_from_env() -> ModelConfig:
    m = ModelConfig()
    path = os.getenv("MODEL__PATH")
    if path:
        m = replace(m, path=Path(path))
    return m


def _load_image_from_env() -> ImageConfig:
    i = ImageConfig()
    mb = os.getenv("IMAGE__MAX_IMAGE_MB")
    if mb is not None:
        i = replace(i, max_image_mb=_checked_positive(mb, "IMAGE__MAX_IMAGE_MB"))
    return i


def _merge_app(base: AppConfig, data: dict[str, object]) -> AppConfig:
    out = base
    if "host" in data:
        out = replace(out, host=str(data["host"]))
    if "port" in data:
        out = replace(out, port=_checked_port(int(str(data["port"])), "port"))
    return out


def _merge_model(base: ModelConfig, data: dict[str, object]) -> ModelConfig:
    out = base
    if "path" in data:
        out = replace(out, path=Path(str(data["path"])))
    return out


def _merge_image(base: ImageConfig, data: dict[str, object]) -> ImageConfig:
    out = base
    if "max_image_mb" in data:
        mb = _checked_positive(str(data["max_image_mb"]), "max_image_mb")
        out = replace(out, max_image_mb=mb)
    return out


def _toml_table(raw: object, key: str) -> dict[str, object]:
    if isinstance(raw, dict):
        tab: object = raw.get(key, {})
        if isinstance(tab, dict):
            return {str(k): v for k, v in tab.items()}
    return {}


def _checked_port(port: int, name: str) -> int:
    if not (1 <= port <= 65535):
        raise RuntimeError(f"{name} out of range")
    return port


def _checked_positive(raw: str, name: str) -> int:
    try:
        val = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer") from None
    if val <= 0:
        raise RuntimeError(f"{name} must be positive")
    return val


@dataclass(frozen=True)
class Limits:
    max_bytes: int

    @staticmethod
    def from_settings(s: Settings) -> Limits:
        return Limits(max_bytes=int(s.image.max_image_mb) * 1024 * 1024)
