"""Request schemas and result records for the Tabular XAI backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from common.validation import SchemaModel

from ..core.explain import Contribution

REGRESSION_CONFIDENCE = 1.0
"""Constant confidence reported for regression estimates.

Regression produces no probability for its estimate; this value only marks
the field as filled and must not be read as certainty.
"""


class TrainRequest(SchemaModel):
    dataset_id: int = Field(ge=1)
    model_name: str = Field(min_length=1, max_length=100)
    target_variable: str = Field(min_length=1)
    feature_names: List[str] = Field(default_factory=list)
    model_type: str
    params: Dict[str, object] = Field(default_factory=dict)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(slots=True)
class DatasetRecord:
    id: int
    owner_id: int
    file_name: str
    headers: List[str]
    row_count: int
    uploaded_at: datetime | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "file_name": self.file_name,
            "headers": list(self.headers),
            "row_count": self.row_count,
            "uploaded_at": _iso(self.uploaded_at),
        }


@dataclass(slots=True)
class TrainedModelRecord:
    id: int
    name: str
    model_type: str
    dataset_id: int
    feature_names: List[str]
    target_variable: str
    artifact_path: str
    accuracy: Optional[float]
    metadata: Dict[str, Any] = field(default_factory=dict)
    trained_at: datetime | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "model_type": self.model_type,
            "dataset_id": self.dataset_id,
            "feature_names": list(self.feature_names),
            "target_variable": self.target_variable,
            "artifact_path": self.artifact_path,
            "accuracy": self.accuracy,
            "metadata": dict(self.metadata),
            "trained_at": _iso(self.trained_at),
        }


@dataclass(slots=True)
class PredictionResult:
    """Prediction for one input row.

    ``probabilities`` is only set for classification. ``scores_normalized``
    tells whether those scores sum to one (``predict_proba``) or are raw
    decision scores. For regression ``confidence`` is
    :data:`REGRESSION_CONFIDENCE`.
    """

    model_id: int
    model_type: str
    prediction: str
    confidence: float
    input: Dict[str, str]
    probabilities: Optional[Dict[str, float]] = None
    scores_normalized: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "model_type": self.model_type,
            "prediction": self.prediction,
            "confidence": self.confidence,
            "probabilities": dict(self.probabilities) if self.probabilities is not None else None,
            "scores_normalized": self.scores_normalized,
            "input": dict(self.input),
        }


@dataclass(slots=True)
class Explanation:
    model_id: int
    prediction: str
    method: str
    contributions: List[Contribution]
    input: Dict[str, str]
    explanation_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "prediction": self.prediction,
            "method": self.method,
            "feature_contributions": [item.to_dict() for item in self.contributions],
            "input": dict(self.input),
            "explanation_text": self.explanation_text,
        }


__all__ = [
    "DatasetRecord",
    "Explanation",
    "PredictionResult",
    "REGRESSION_CONFIDENCE",
    "TrainRequest",
    "TrainedModelRecord",
]
