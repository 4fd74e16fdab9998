"""Single-row inference against stored models."""

from __future__ import annotations

from typing import Any, Dict, Mapping

import numpy as np

from app.security import require_owner
from common.errors import ArtifactMissing, ModelNotFound, ValidationAppError
from common.logging import get_logger, operation_context

from ..core.artifacts import ModelArtifactStore
from ..core.strategies import FittedModel, ModelType
from ..core.vectorizer import FeatureVector, FeatureVectorizer
from .registry import ModelRegistry
from .schemas import REGRESSION_CONFIDENCE, PredictionResult, TrainedModelRecord

LOGGER = get_logger(__name__)


def _echo(raw_input: Mapping[str, Any]) -> Dict[str, str]:
    return {str(key): "" if value is None else str(value) for key, value in raw_input.items()}


def check_input(raw_input: object) -> Mapping[str, Any]:
    if raw_input is None:
        return {}
    if not isinstance(raw_input, Mapping):
        raise ValidationAppError("Input must be a mapping of feature name to value")
    return raw_input


class PredictionService:
    def __init__(
        self,
        registry: ModelRegistry,
        artifacts: ModelArtifactStore,
        vectorizer: FeatureVectorizer | None = None,
    ):
        self.registry = registry
        self.artifacts = artifacts
        self.vectorizer = vectorizer or FeatureVectorizer()

    def load(self, record: TrainedModelRecord) -> FittedModel:
        """Load the artifact behind ``record``.

        A missing file whose row was deleted in the meantime is reported as
        :class:`ModelNotFound`; any other artifact error propagates.
        """

        try:
            return self.artifacts.load(record.artifact_path)
        except ArtifactMissing:
            if not self.registry.exists(record.id):
                raise ModelNotFound("Model not found", details={"model_id": record.id}) from None
            raise

    def resolve(self, model_id: int, owner_id: object) -> tuple[TrainedModelRecord, FittedModel]:
        record = self.registry.get(model_id, owner_id)
        return record, self.load(record)

    def predict(self, model_id: int, raw_input: Mapping[str, Any], owner_id: object) -> PredictionResult:
        owner = require_owner(owner_id)
        raw_input = check_input(raw_input)
        with operation_context("predict", owner_id=owner, model_id=model_id):
            record, fitted = self.resolve(model_id, owner)
            vector = self.vectorizer.vectorize(raw_input, record.feature_names)
            return self.infer(record, fitted, vector, raw_input)

    def infer(
        self,
        record: TrainedModelRecord,
        fitted: FittedModel,
        vector: FeatureVector,
        raw_input: Mapping[str, Any],
    ) -> PredictionResult:
        missing = [name for name in fitted.feature_names if name not in vector]
        if missing:
            LOGGER.debug("Filling %s absent features with training means", len(missing))
        matrix = fitted.design_matrix(vector)
        if fitted.model_type is ModelType.CLASSIFICATION:
            return self._classify(record, fitted, matrix, raw_input)
        estimate = float(np.ravel(fitted.estimator.predict(matrix))[0])
        return PredictionResult(
            model_id=record.id,
            model_type=fitted.model_type.value,
            prediction=str(estimate),
            confidence=REGRESSION_CONFIDENCE,
            input=_echo(raw_input),
        )

    def _classify(
        self,
        record: TrainedModelRecord,
        fitted: FittedModel,
        matrix: np.ndarray,
        raw_input: Mapping[str, Any],
    ) -> PredictionResult:
        estimator = fitted.estimator
        classes = [str(item) for item in estimator.classes_]
        if hasattr(estimator, "predict_proba"):
            scores = np.asarray(estimator.predict_proba(matrix)[0], dtype=float)
            normalized = True
        else:
            decision = np.ravel(estimator.decision_function(matrix))
            scores = np.array([-decision[0], decision[0]]) if len(classes) == 2 else decision.astype(float)
            normalized = False
        index = int(np.argmax(scores))
        return PredictionResult(
            model_id=record.id,
            model_type=fitted.model_type.value,
            prediction=classes[index],
            confidence=float(scores[index]),
            input=_echo(raw_input),
            probabilities={label: float(score) for label, score in zip(classes, scores)},
            scores_normalized=normalized,
        )


__all__ = ["PredictionService", "check_input"]
