"""Durable storage of fitted models."""

from __future__ import annotations

import os
import pickle
import uuid
import zlib
from pathlib import Path
from typing import Any, Mapping

import joblib

from common.errors import ArtifactCorrupt, ArtifactDeletionError, ArtifactMissing
from common.io import atomic_writer, secure_filename
from common.logging import get_logger

from .strategies import FittedModel

LOGGER = get_logger(__name__)

FORMAT_VERSION = 1
ARTIFACT_SUFFIX = ".joblib"
DEFAULT_ENV_VAR = "XAI_FORGE_MODEL_STORE"
DEFAULT_MODELS_DIR = "models"


class ModelArtifactStore:
    """Save, load and remove serialized :class:`FittedModel` files.

    Every artifact gets a ``<name>_<uuid4>`` filename, so concurrent saves
    never target the same path. Files are written through a temporary
    sibling and renamed into place; a path returned by :meth:`save` always
    refers to a complete file.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    @classmethod
    def from_config(
        cls,
        app_config: Mapping[str, Any],
        plugin_settings: Mapping[str, Any] | None,
        *,
        base_dir: Path,
    ) -> "ModelArtifactStore":
        """Pick the models root: environment, then plugin settings, then ``MODEL_STORE``.

        Relative roots are anchored at ``base_dir``.
        """

        store = app_config.get("MODEL_STORE") or {}
        plugin_settings = plugin_settings or {}
        env_var = plugin_settings.get("models_root_env") or store.get("env") or DEFAULT_ENV_VAR
        candidates = (os.getenv(env_var), plugin_settings.get("models_root"), store.get("root"))
        root = Path(str(next((item for item in candidates if item), DEFAULT_MODELS_DIR))).expanduser()
        return cls(root if root.is_absolute() else base_dir / root)

    def resolve(self, path: Path | str) -> Path:
        """Stored paths are relative to the models root; absolute ones pass through."""

        path = Path(path)
        return path if path.is_absolute() else self.root / path

    def relative_name(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.root))
        except ValueError:
            return str(path)

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def new_path(self, name: str) -> Path:
        stem = secure_filename(name, fallback="model").replace(".", "_")
        return self.root / f"{stem}_{uuid.uuid4().hex}{ARTIFACT_SUFFIX}"

    def save(self, model: FittedModel, name: str) -> Path:
        self.ensure_root()
        path = self.new_path(name)
        payload = {"format_version": FORMAT_VERSION, "model": model}
        with atomic_writer(path) as handle:
            joblib.dump(payload, handle)
        LOGGER.info("Saved model artifact %s", path.name)
        return path

    def load(self, path: Path | str) -> FittedModel:
        path = self.resolve(path)
        if not path.exists():
            raise ArtifactMissing(
                "Model artifact is missing",
                details={"path": path.name, "reason": "missing"},
            )
        try:
            payload = joblib.load(path)
        except (EOFError, pickle.UnpicklingError, ValueError, KeyError, IndexError, zlib.error, OSError) as exc:
            raise ArtifactCorrupt(
                "Model artifact could not be read",
                details={"path": path.name, "reason": "truncated"},
            ) from exc
        except (AttributeError, ImportError, TypeError) as exc:
            raise ArtifactCorrupt(
                "Model artifact was written by an incompatible version",
                details={"path": path.name, "reason": "incompatible_version"},
            ) from exc

        if not isinstance(payload, dict) or payload.get("format_version") != FORMAT_VERSION:
            found = payload.get("format_version") if isinstance(payload, dict) else None
            raise ArtifactCorrupt(
                "Model artifact was written by an incompatible version",
                details={
                    "path": path.name,
                    "reason": "incompatible_version",
                    "expected": FORMAT_VERSION,
                    "found": found,
                },
            )
        model = payload.get("model")
        if not isinstance(model, FittedModel):
            raise ArtifactCorrupt(
                "Model artifact does not contain a fitted model",
                details={"path": path.name, "reason": "incompatible_version"},
            )
        return model

    def delete(self, path: Path | str) -> None:
        path = self.resolve(path)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise ArtifactDeletionError(
                "Failed to delete model artifact",
                details={"path": path.name, "error": str(exc)},
            ) from exc

    def discard(self, path: Path | str | None) -> None:
        """Best-effort removal used on failure paths."""

        if not path:
            return
        try:
            self.resolve(path).unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.error("Could not discard artifact %s: %s", Path(path).name, exc)


__all__ = ["ARTIFACT_SUFFIX", "FORMAT_VERSION", "ModelArtifactStore"]
