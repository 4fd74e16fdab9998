"""Configuration classes for the XAI Forge application."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _upload_root() -> Path:
    """Return the directory holding uploaded datasets and model artifacts."""

    override = os.environ.get("XAI_FORGE_UPLOAD_DIR")
    if override:
        return Path(override).expanduser()
    return BASE_DIR / "uploads"


class BaseConfig:
    DATABASE_URL = os.environ.get("XAI_FORGE_DATABASE_URL", f"sqlite:///{BASE_DIR / 'xai_forge.db'}")
    DATABASE_ECHO = False
    UPLOAD_ROOT = _upload_root()
    MODEL_STORE = {"root": str(UPLOAD_ROOT / "models"), "env": "XAI_FORGE_MODEL_STORE"}
    TRAINING_TIMEOUT_SECONDS = 300
    LOG_LEVEL = "INFO"
    TESTING = False


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    TRAINING_TIMEOUT_SECONDS = 60
    LOG_LEVEL = "WARNING"


__all__ = ["BASE_DIR", "BaseConfig", "TestingConfig"]
