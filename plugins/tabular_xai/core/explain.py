"""Per-feature attribution and explanation text."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from common.errors import ExplanationUnavailable
from common.logging import get_logger

from .settings import XaiSettings
from .strategies import FittedModel

LOGGER = get_logger(__name__)

TOP_FEATURES_IN_TEXT = 3
NO_CONTRIBUTION_TEXT = "No feature contributed enough to explain this prediction."
TEXT_PREFIX = "The model's prediction is primarily influenced by: "


class AttributionMethod(str, Enum):
    MODEL_WEIGHTS = "model_weights"
    HEURISTIC = "heuristic"


@dataclass(slots=True, frozen=True)
class Contribution:
    feature: str
    magnitude: float
    direction: str
    value: float
    method: AttributionMethod
    weight: float
    base_factor: Optional[float] = None

    @property
    def signed(self) -> float:
        return self.magnitude if self.direction == "positive" else -self.magnitude

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "feature": self.feature,
            "contribution": self.magnitude,
            "direction": self.direction,
            "value": self.value,
            "method": self.method.value,
            "weight": self.weight,
        }
        if self.base_factor is not None:
            payload["base_factor"] = self.base_factor
        return payload


@dataclass(slots=True)
class Attribution:
    method: AttributionMethod
    contributions: List[Contribution] = field(default_factory=list)
    text: str = NO_CONTRIBUTION_TEXT
    considered: int = 0


def _direction(signed: float) -> str:
    return "negative" if signed < 0 else "positive"


def natural_join(items: Sequence[str]) -> str:
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return f"{', '.join(items[:-1])} and {items[-1]}"


def render_text(contributions: Sequence[Contribution], *, top: int = TOP_FEATURES_IN_TEXT) -> str:
    if not contributions:
        return NO_CONTRIBUTION_TEXT
    parts = [
        f"{item.feature} ({item.direction} impact: {item.magnitude:.2f})"
        for item in contributions[:top]
    ]
    return f"{TEXT_PREFIX}{natural_join(parts)}."


class ExplanationEngine:
    """Attribute a prediction to its input features.

    Linear models are explained with their own weights: each feature gets
    ``weight * value``. When weights are unavailable (or disabled through
    ``use_model_weights``) the engine falls back to ``|value * multiplier|``
    using the configured multiplier table. Fallback directions follow the
    sign of the encoded value; they are a heuristic and do not come from the
    model.
    """

    def __init__(self, settings: XaiSettings | None = None):
        self.settings = settings or XaiSettings()

    def attribute(
        self,
        model: FittedModel,
        vector: Mapping[str, float],
        label: str | None = None,
    ) -> tuple[AttributionMethod, List[Contribution]]:
        weights = model.feature_weights(label) if self.settings.use_model_weights else None
        if weights is not None:
            return AttributionMethod.MODEL_WEIGHTS, self._weighted(model, vector, weights)
        if not self.settings.enable_fallback_explanation:
            raise ExplanationUnavailable(
                "Model weights are unavailable and fallback explanations are disabled",
                details={"algorithm": model.algorithm},
            )
        LOGGER.debug("Using heuristic attribution for %s", model.algorithm)
        return AttributionMethod.HEURISTIC, self._heuristic(model, vector)

    def _weighted(
        self,
        model: FittedModel,
        vector: Mapping[str, float],
        weights: Mapping[str, float],
    ) -> List[Contribution]:
        contributions: List[Contribution] = []
        for name in model.feature_names:
            if name not in vector:
                continue
            value = float(vector[name])
            weight = float(weights.get(name, 0.0))
            signed = weight * value
            contributions.append(
                Contribution(
                    feature=name,
                    magnitude=abs(signed),
                    direction=_direction(signed),
                    value=value,
                    method=AttributionMethod.MODEL_WEIGHTS,
                    weight=weight,
                )
            )
        return contributions

    def _heuristic(self, model: FittedModel, vector: Mapping[str, float]) -> List[Contribution]:
        base_factor = self.settings.base_factor(model.model_type)
        contributions: List[Contribution] = []
        for name in model.feature_names:
            if name not in vector:
                continue
            value = float(vector[name])
            multiplier = self.settings.multiplier_for(name)
            contributions.append(
                Contribution(
                    feature=name,
                    magnitude=abs(value * multiplier),
                    direction=_direction(value),
                    value=value,
                    method=AttributionMethod.HEURISTIC,
                    weight=multiplier,
                    base_factor=base_factor,
                )
            )
        return contributions

    def rank(self, contributions: Sequence[Contribution]) -> List[Contribution]:
        """Threshold, then stable sort by magnitude, then truncate."""

        threshold = self.settings.min_contribution_threshold
        kept = [item for item in contributions if item.magnitude >= threshold]
        kept.sort(key=lambda item: item.magnitude, reverse=True)
        return kept[: self.settings.max_features_in_explanation]

    def explain(
        self,
        model: FittedModel,
        vector: Mapping[str, float],
        label: str | None = None,
    ) -> Attribution:
        method, raw = self.attribute(model, vector, label)
        ranked = self.rank(raw)
        return Attribution(
            method=method,
            contributions=ranked,
            text=render_text(ranked),
            considered=len(raw),
        )


__all__ = [
    "Attribution",
    "AttributionMethod",
    "Contribution",
    "ExplanationEngine",
    "NO_CONTRIBUTION_TEXT",
    "natural_join",
    "render_text",
]
