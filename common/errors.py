"""Common error types for the training and explanation services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping


@dataclass(slots=True, eq=False)
class AppError(Exception):
    """Base application error with a JSON friendly payload."""

    message: str
    code: str = "error"
    details: Mapping[str, Any] | None = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Mapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": dict(self.details or {}),
        }
        return payload


@dataclass(slots=True, eq=False)
class ValidationAppError(AppError):
    """Error raised for invalid user input."""

    code: str = "validation_error"


@dataclass(slots=True, eq=False)
class InvalidDataset(ValidationAppError):
    """Dataset rejected by a training strategy."""

    code: str = "invalid_dataset"


@dataclass(slots=True, eq=False)
class ConfigurationError(AppError):
    """Raised for unknown model families or malformed settings."""

    code: str = "configuration_error"


@dataclass(slots=True, eq=False)
class NotFoundAppError(AppError):
    """Error raised when a resource is missing."""

    code: str = "not_found"


@dataclass(slots=True, eq=False)
class DatasetNotFound(NotFoundAppError):
    code: str = "dataset_not_found"


@dataclass(slots=True, eq=False)
class ModelNotFound(NotFoundAppError):
    code: str = "model_not_found"


@dataclass(slots=True, eq=False)
class AuthorizationDenied(AppError):
    """Raised when a call arrives without a usable owner id."""

    code: str = "authorization_denied"


@dataclass(slots=True, eq=False)
class ModelAlreadyExists(AppError):
    """A dataset may back at most one trained model."""

    code: str = "model_already_exists"


@dataclass(slots=True, eq=False)
class TrainingFailure(AppError):
    code: str = "training_failed"


@dataclass(slots=True, eq=False)
class TrainingTimeout(TrainingFailure):
    code: str = "training_timeout"


@dataclass(slots=True, eq=False)
class ArtifactCorrupt(AppError):
    """Serialized model could not be read back. Never retried."""

    code: str = "artifact_corrupt"
    retryable: bool = False


@dataclass(slots=True, eq=False)
class ArtifactMissing(ArtifactCorrupt):
    code: str = "artifact_missing"


@dataclass(slots=True, eq=False)
class ArtifactDeletionError(AppError):
    code: str = "artifact_delete_failed"


@dataclass(slots=True, eq=False)
class ExplanationUnavailable(AppError):
    code: str = "explanation_unavailable"


@dataclass(slots=True, eq=False)
class InternalAppError(AppError):
    """Generic internal error wrapper to avoid leaking implementation details."""

    code: str = "internal_error"


def ensure_app_error(error: AppError | Exception, *, fallback_code: str) -> AppError:
    """Coerce arbitrary exceptions into :class:`AppError` instances."""

    if isinstance(error, AppError):
        return error
    return InternalAppError(code=fallback_code, message=str(error))


__all__ = [
    "AppError",
    "ArtifactCorrupt",
    "ArtifactDeletionError",
    "ArtifactMissing",
    "AuthorizationDenied",
    "ConfigurationError",
    "DatasetNotFound",
    "ExplanationUnavailable",
    "InternalAppError",
    "InvalidDataset",
    "ModelAlreadyExists",
    "ModelNotFound",
    "NotFoundAppError",
    "TrainingFailure",
    "TrainingTimeout",
    "ValidationAppError",
    "ensure_app_error",
]
