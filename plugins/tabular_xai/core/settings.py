"""Explanation settings loaded from ``plugins.tabular_xai.xai``."""

from __future__ import annotations

from typing import Any, Mapping

import pydantic
from pydantic import BaseModel, Field

from common.errors import ConfigurationError
from common.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_FEATURE_MULTIPLIERS: tuple[tuple[str, float], ...] = (
    ("score", 1.5),
    ("grade", 1.5),
    ("age", 1.2),
    ("year", 1.2),
    ("length", 2.0),
    ("width", 2.0),
    ("color", 1.8),
    ("type", 1.8),
    ("size", 1.5),
    ("area", 1.5),
    ("count", 1.3),
    ("number", 1.3),
)

DEFAULT_MULTIPLIER = 1.0


class XaiSettings(BaseModel):
    """Immutable configuration handed to the explanation engine."""

    model_config = pydantic.ConfigDict(frozen=True, extra="forbid")

    regression_base_factor: float = Field(default=0.2, ge=0)
    classification_base_factor: float = Field(default=0.25, ge=0)
    feature_multipliers: tuple[tuple[str, float], ...] = DEFAULT_FEATURE_MULTIPLIERS
    enable_fallback_explanation: bool = True
    use_model_weights: bool = True
    max_features_in_explanation: int = Field(default=10, ge=1)
    min_contribution_threshold: float = Field(default=0.01, ge=0)

    @pydantic.field_validator("feature_multipliers", mode="before")
    @classmethod
    def _normalise_multipliers(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            value = list(value.items())
        if isinstance(value, (list, tuple)):
            return tuple((str(pattern).strip().lower(), multiplier) for pattern, multiplier in value)
        return value

    def multiplier_for(self, feature_name: str) -> float:
        """Exact case-insensitive match first, then first substring match."""

        lowered = feature_name.lower()
        for pattern, multiplier in self.feature_multipliers:
            if pattern == lowered:
                return multiplier
        for pattern, multiplier in self.feature_multipliers:
            if pattern and pattern in lowered:
                return multiplier
        return DEFAULT_MULTIPLIER

    def base_factor(self, model_type: object) -> float:
        tag = str(getattr(model_type, "value", model_type)).upper()
        if tag == "REGRESSION":
            return self.regression_base_factor
        if tag == "CLASSIFICATION":
            return self.classification_base_factor
        raise ConfigurationError(f"Unknown model type '{model_type}'", details={"model_type": str(model_type)})


def load_settings(raw: Mapping[str, object] | None) -> XaiSettings:
    """Build :class:`XaiSettings` from a loosely typed mapping.

    Keys that fail validation fall back to their defaults with a warning, so a
    single malformed entry in ``config.yml`` does not disable explanations.
    """

    raw = dict(raw or {})
    base_factors = raw.pop("base_factors", None)
    if isinstance(base_factors, Mapping):
        for family, factor in base_factors.items():
            raw.setdefault(f"{str(family).lower()}_base_factor", factor)

    accepted: dict[str, object] = {}
    for key, value in raw.items():
        if key not in XaiSettings.model_fields:
            LOGGER.warning("Ignoring unknown xai setting '%s'", key)
            continue
        try:
            XaiSettings.model_validate({key: value})
        except pydantic.ValidationError:
            LOGGER.warning("Invalid value for xai setting '%s'; using default", key)
            continue
        accepted[key] = value
    return XaiSettings.model_validate(accepted)


__all__ = [
    "DEFAULT_FEATURE_MULTIPLIERS",
    "DEFAULT_MULTIPLIER",
    "XaiSettings",
    "load_settings",
]
