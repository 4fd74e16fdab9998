"""Validation primitives for service inputs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, TypeVar

import pandas as pd
import pydantic
from pydantic import BaseModel

from common.errors import ValidationAppError


class ValidationError(ValidationAppError):
    """Raised when a payload does not match its schema."""


class SchemaModel(BaseModel):
    """Strict base model for request validation."""

    model_config = pydantic.ConfigDict(extra="forbid", str_strip_whitespace=True)


TModel = TypeVar("TModel", bound=SchemaModel)


def parse_model(model: type[TModel], payload: Mapping[str, Any] | None) -> TModel:
    payload = payload or {}
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            "Invalid request payload",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


@dataclass(slots=True)
class UploadLimit:
    max_size: int
    max_rows: int
    max_columns: int

    @classmethod
    def from_settings(
        cls,
        settings: Mapping[str, Any] | None,
        *,
        default_max_mb: int = 25,
        default_max_rows: int = 100_000,
        default_max_columns: int = 200,
    ) -> "UploadLimit":
        max_mb = default_max_mb
        max_rows = default_max_rows
        max_columns = default_max_columns

        if settings:
            try:
                max_mb = int(float(settings.get("max_mb", default_max_mb)))
            except (TypeError, ValueError):
                max_mb = default_max_mb
            try:
                max_rows = int(settings.get("max_rows", default_max_rows))
            except (TypeError, ValueError):
                max_rows = default_max_rows
            try:
                max_columns = int(settings.get("max_columns", default_max_columns))
            except (TypeError, ValueError):
                max_columns = default_max_columns

        return cls(
            max_size=max(max_mb, 1) * 1024 * 1024,
            max_rows=max(max_rows, 1),
            max_columns=max(max_columns, 1),
        )


def enforce_size(data: bytes, limit: UploadLimit) -> None:
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > limit.max_size:
        raise ValidationError("File exceeds allowed size")


def enforce_dataframe_limits(frame: pd.DataFrame, limit: UploadLimit) -> None:
    rows, columns = frame.shape
    if rows > limit.max_rows:
        raise ValidationError(
            f"Dataset has {rows} rows; the limit is {limit.max_rows}"
        )
    if columns > limit.max_columns:
        raise ValidationError(
            f"Dataset has {columns} columns; the limit is {limit.max_columns}"
        )


__all__ = [
    "SchemaModel",
    "UploadLimit",
    "ValidationError",
    "enforce_dataframe_limits",
    "enforce_size",
    "parse_model",
]
