"""Explanations of single predictions."""

from __future__ import annotations

from typing import Any, Mapping

from app.security import require_owner
from common.logging import operation_context

from ..core.explain import ExplanationEngine
from ..core.strategies import ModelType
from .prediction import PredictionService, check_input
from .schemas import Explanation


class ExplanationService:
    def __init__(self, predictions: PredictionService, engine: ExplanationEngine):
        self.predictions = predictions
        self.engine = engine

    def explain(self, model_id: int, raw_input: Mapping[str, Any], owner_id: object) -> Explanation:
        owner = require_owner(owner_id)
        raw_input = check_input(raw_input)
        with operation_context("explain", owner_id=owner, model_id=model_id) as context:
            record, fitted = self.predictions.resolve(model_id, owner)
            vector = self.predictions.vectorizer.vectorize(raw_input, record.feature_names)
            prediction = self.predictions.infer(record, fitted, vector, raw_input)
            label = prediction.prediction if fitted.model_type is ModelType.CLASSIFICATION else None
            attribution = self.engine.explain(fitted, vector, label)
            context["method"] = attribution.method.value
            return Explanation(
                model_id=record.id,
                prediction=prediction.prediction,
                method=attribution.method.value,
                contributions=attribution.contributions,
                input=prediction.input,
                explanation_text=attribution.text,
            )


__all__ = ["ExplanationService"]
