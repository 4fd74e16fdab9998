"""Model families and the training strategies that fit them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd
from sklearn.compose import TransformedTargetRegressor
from sklearn.linear_model import LogisticRegression, SGDRegressor
from sklearn.metrics import accuracy_score, r2_score
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from common.errors import ConfigurationError, InvalidDataset, TrainingFailure
from common.logging import get_logger

from .table import DatasetTable

LOGGER = get_logger(__name__)

RANDOM_STATE = 42


class ModelType(str, Enum):
    CLASSIFICATION = "CLASSIFICATION"
    REGRESSION = "REGRESSION"

    @classmethod
    def parse(cls, value: object) -> "ModelType":
        if isinstance(value, cls):
            return value
        tag = str(value or "").strip().upper()
        try:
            return cls(tag)
        except ValueError:
            raise ConfigurationError(
                f"Unknown model type '{value}'",
                details={"model_type": str(value), "allowed": [item.value for item in cls]},
            ) from None


@dataclass(slots=True)
class FittedModel:
    """Fitted estimator plus everything inference and attribution need."""

    model_type: ModelType
    algorithm: str
    estimator: Any
    feature_names: list[str]
    target_name: str
    fill_values: Dict[str, float]
    classes: Optional[list[str]] = None
    hyperparameters: Dict[str, object] = field(default_factory=dict)
    sample_count: int = 0

    def design_matrix(self, vector: Mapping[str, float]) -> np.ndarray:
        """One-row matrix; absent features take their training mean."""

        row = [float(vector.get(name, self.fill_values.get(name, 0.0))) for name in self.feature_names]
        return np.asarray([row], dtype=float)

    def feature_weights(self, label: str | None = None) -> Optional[Dict[str, float]]:
        """Linear weights expressed against raw (unscaled) feature values.

        For classification the weights belong to ``label``; a binary model
        stores one coefficient row for the positive class, so the row is
        negated when ``label`` is the negative class. Returns ``None`` when
        the estimator exposes no linear coefficients.
        """

        if self.model_type is ModelType.CLASSIFICATION:
            return self._classification_weights(label)
        return self._regression_weights()

    def _classification_weights(self, label: str | None) -> Optional[Dict[str, float]]:
        scaler, model = _linear_steps(self.estimator)
        coef = getattr(model, "coef_", None)
        if scaler is None or coef is None:
            return None
        coef = np.atleast_2d(np.asarray(coef, dtype=float))
        classes = [str(item) for item in getattr(model, "classes_", self.classes or [])]
        if coef.shape[0] == 1:
            row = coef[0]
            if label is not None and classes and str(label) == classes[0]:
                row = -row
        else:
            index = classes.index(str(label)) if label is not None and str(label) in classes else 0
            row = coef[index]
        raw = row / np.asarray(scaler.scale_, dtype=float)
        return {name: float(value) for name, value in zip(self.feature_names, raw)}

    def _regression_weights(self) -> Optional[Dict[str, float]]:
        regressor = getattr(self.estimator, "regressor_", None)
        transformer = getattr(self.estimator, "transformer_", None)
        if regressor is None:
            return None
        scaler, model = _linear_steps(regressor)
        coef = getattr(model, "coef_", None)
        if scaler is None or coef is None:
            return None
        y_scale = 1.0
        if transformer is not None and getattr(transformer, "scale_", None) is not None:
            y_scale = float(np.ravel(transformer.scale_)[0])
        raw = np.ravel(np.asarray(coef, dtype=float)) / np.asarray(scaler.scale_, dtype=float) * y_scale
        return {name: float(value) for name, value in zip(self.feature_names, raw)}


def _linear_steps(estimator: Any) -> tuple[Any, Any]:
    steps = getattr(estimator, "named_steps", None)
    if not steps:
        return None, None
    return steps.get("scale"), steps.get("model")


def _coerce_hyperparameter(key: str, value: object, definition: Mapping[str, Any]) -> object:
    if definition.get("nullable") and value in ("", None):
        return None
    param_type = definition.get("type")
    if param_type == "int":
        if isinstance(value, bool):
            raise InvalidDataset(f"Hyperparameter '{key}' must be an integer")
        try:
            value = int(float(value))
        except (TypeError, ValueError):
            raise InvalidDataset(f"Hyperparameter '{key}' must be an integer") from None
    elif param_type == "float":
        if isinstance(value, bool):
            raise InvalidDataset(f"Hyperparameter '{key}' must be numeric")
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InvalidDataset(f"Hyperparameter '{key}' must be numeric") from None
        if not np.isfinite(value):
            raise InvalidDataset(f"Hyperparameter '{key}' must be finite")
    elif param_type == "bool":
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "1", "yes"}:
                value = True
            elif lowered in {"false", "0", "no"}:
                value = False
            else:
                raise InvalidDataset(f"Hyperparameter '{key}' must be true or false")
        else:
            value = bool(value)
    elif param_type == "select":
        choices = definition.get("choices", [])
        if value not in choices:
            choices_desc = ", ".join(map(str, choices))
            raise InvalidDataset(f"Hyperparameter '{key}' must be one of: {choices_desc}")

    if param_type in {"int", "float"}:
        minimum = definition.get("min")
        maximum = definition.get("max")
        if minimum is not None and value < minimum:
            raise InvalidDataset(f"Hyperparameter '{key}' must be >= {minimum}")
        if maximum is not None and value > maximum:
            raise InvalidDataset(f"Hyperparameter '{key}' must be <= {maximum}")
    return value


class TrainingStrategy:
    """Validate a table for one model family and fit it with scikit-learn."""

    model_type: ModelType
    algorithm: str = ""
    metric_name: str = ""
    param_prefix: str = ""
    hyperparameters: Mapping[str, Mapping[str, Any]] = {}

    def validate(self, table: DatasetTable | None) -> None:
        if table is None:
            raise InvalidDataset("Dataset cannot be null")
        if table.size <= 0:
            raise InvalidDataset("Dataset cannot be empty")
        if not table.feature_names or table.features.shape[1] == 0:
            raise InvalidDataset("Dataset must have at least one feature")
        self._validate_target(table)

    def _validate_target(self, table: DatasetTable) -> None:
        raise NotImplementedError

    def build_estimator(self) -> Any:
        raise NotImplementedError

    def resolve_hyperparameters(self, params: Mapping[str, object] | None) -> Dict[str, object]:
        """Coerce known overrides; unknown names are ignored."""

        resolved: Dict[str, object] = {}
        for key, value in (params or {}).items():
            definition = self.hyperparameters.get(key)
            if definition is None:
                LOGGER.debug("Ignoring unknown hyperparameter '%s' for %s", key, self.algorithm)
                continue
            resolved[key] = _coerce_hyperparameter(key, value, definition)
        return resolved

    def defaults(self) -> Dict[str, object]:
        return {name: definition.get("default") for name, definition in self.hyperparameters.items()}

    def train(self, table: DatasetTable, params: Mapping[str, object] | None = None) -> FittedModel:
        self.validate(table)
        overrides = self.resolve_hyperparameters(params)
        estimator = self.build_estimator()
        if overrides:
            estimator.set_params(**{f"{self.param_prefix}{key}": value for key, value in overrides.items()})

        X = table.feature_matrix()
        y = self._target_values(table)
        try:
            estimator.fit(X, y)
        except Exception as exc:  # scikit-learn raises ValueError, LinAlgError and others
            raise TrainingFailure(
                f"{self.algorithm} training failed: {exc}",
                details={"algorithm": self.algorithm},
            ) from exc
        self._log_convergence(estimator)

        fill_values = {
            name: float(table.features[name].mean()) for name in table.feature_names
        }
        hyperparameters = self.defaults()
        hyperparameters.update(overrides)
        return FittedModel(
            model_type=self.model_type,
            algorithm=self.algorithm,
            estimator=estimator,
            feature_names=list(table.feature_names),
            target_name=str(table.target_name),
            fill_values=fill_values,
            classes=self._classes(estimator),
            hyperparameters=hyperparameters,
            sample_count=table.size,
        )

    def _log_convergence(self, estimator: Any) -> None:
        fitted = getattr(estimator, "regressor_", estimator)
        _, model = _linear_steps(fitted)
        n_iter = getattr(model, "n_iter_", None)
        max_iter = getattr(model, "max_iter", None)
        if n_iter is None or max_iter is None:
            return
        if int(np.max(n_iter)) >= int(max_iter):
            LOGGER.warning("%s stopped at max_iter=%s before converging", self.algorithm, max_iter)

    def score(self, model: FittedModel, table: DatasetTable) -> float:
        predictions = model.estimator.predict(table.feature_matrix())
        return self._metric(self._target_values(table), predictions)

    def _target_values(self, table: DatasetTable) -> np.ndarray:
        raise NotImplementedError

    def _metric(self, truth: np.ndarray, predictions: np.ndarray) -> float:
        raise NotImplementedError

    def _classes(self, estimator: Any) -> Optional[list[str]]:
        return None


class ClassificationStrategy(TrainingStrategy):
    model_type = ModelType.CLASSIFICATION
    algorithm = "logistic_regression"
    metric_name = "accuracy"
    param_prefix = "model__"
    hyperparameters = {
        "C": {"type": "float", "default": 1.0, "min": 1e-4, "max": 1e4},
        "max_iter": {"type": "int", "default": 1000, "min": 10, "max": 100_000},
        "tol": {"type": "float", "default": 1e-4, "min": 1e-10, "max": 1.0},
        "fit_intercept": {"type": "bool", "default": True},
        "class_weight": {"type": "select", "default": None, "choices": ["balanced"], "nullable": True},
    }

    def _validate_target(self, table: DatasetTable) -> None:
        if table.target is None or table.target.nunique(dropna=True) < 2:
            raise InvalidDataset("Classification requires at least 2 classes")

    def build_estimator(self) -> Pipeline:
        return Pipeline(
            [
                ("scale", StandardScaler()),
                ("model", LogisticRegression(solver="lbfgs", max_iter=1000, random_state=RANDOM_STATE)),
            ]
        )

    def _target_values(self, table: DatasetTable) -> np.ndarray:
        return table.target.map(_label).to_numpy(dtype=object)

    def _metric(self, truth: np.ndarray, predictions: np.ndarray) -> float:
        return float(accuracy_score(truth, predictions))

    def _classes(self, estimator: Any) -> Optional[list[str]]:
        return [str(item) for item in estimator.classes_]


class RegressionStrategy(TrainingStrategy):
    model_type = ModelType.REGRESSION
    algorithm = "sgd_regressor"
    metric_name = "r2"
    param_prefix = "regressor__model__"
    hyperparameters = {
        "alpha": {"type": "float", "default": 1e-4, "min": 0.0, "max": 10.0},
        "max_iter": {"type": "int", "default": 1000, "min": 10, "max": 100_000},
        "tol": {"type": "float", "default": 1e-3, "min": 1e-10, "max": 1.0, "nullable": True},
        "eta0": {"type": "float", "default": 0.01, "min": 1e-6, "max": 1.0},
        "learning_rate": {
            "type": "select",
            "default": "invscaling",
            "choices": ["constant", "optimal", "invscaling", "adaptive"],
        },
        "penalty": {"type": "select", "default": "l2", "choices": ["l2", "l1", "elasticnet"], "nullable": True},
    }

    def _validate_target(self, table: DatasetTable) -> None:
        if table.target is None or not table.target_name:
            raise InvalidDataset("Regression requires at least one output variable")
        numeric = pd.to_numeric(table.target, errors="coerce")
        if numeric.isna().any() or not np.isfinite(numeric.to_numpy(dtype=float)).all():
            raise InvalidDataset(
                "Regression target must be numeric",
                details={"target": table.target_name},
            )

    def build_estimator(self) -> TransformedTargetRegressor:
        regressor = Pipeline(
            [
                ("scale", StandardScaler()),
                ("model", SGDRegressor(max_iter=1000, tol=1e-3, random_state=RANDOM_STATE)),
            ]
        )
        return TransformedTargetRegressor(regressor=regressor, transformer=StandardScaler())

    def _target_values(self, table: DatasetTable) -> np.ndarray:
        return pd.to_numeric(table.target, errors="coerce").to_numpy(dtype=float)

    def _metric(self, truth: np.ndarray, predictions: np.ndarray) -> float:
        return float(r2_score(truth, predictions))


def _label(value: object) -> str:
    """Class labels are stored as text; integral floats lose their ``.0``."""

    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    if isinstance(value, (np.integer, np.floating, np.bool_)):
        return str(value.item())
    return str(value)


_STRATEGIES: dict[ModelType, TrainingStrategy] = {
    ModelType.CLASSIFICATION: ClassificationStrategy(),
    ModelType.REGRESSION: RegressionStrategy(),
}


def get_strategy(model_type: object) -> TrainingStrategy:
    return _STRATEGIES[ModelType.parse(model_type)]


def algorithm_metadata() -> Dict[str, object]:
    metadata: Dict[str, object] = {}
    for model_type, strategy in _STRATEGIES.items():
        metadata[model_type.value] = {
            "algorithm": strategy.algorithm,
            "metric": strategy.metric_name,
            "hyperparameters": [
                {"name": name, "label": name.replace("_", " ").title(), **definition}
                for name, definition in strategy.hyperparameters.items()
            ],
        }
    return metadata


__all__ = [
    "ClassificationStrategy",
    "FittedModel",
    "ModelType",
    "RegressionStrategy",
    "TrainingStrategy",
    "algorithm_metadata",
    "get_strategy",
]
