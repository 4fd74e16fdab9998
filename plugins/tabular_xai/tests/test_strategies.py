import numpy as np
import pandas as pd
import pytest

from common.errors import ConfigurationError, InvalidDataset
from plugins.tabular_xai.core.strategies import (
    ClassificationStrategy,
    ModelType,
    RegressionStrategy,
    algorithm_metadata,
    get_strategy,
)
from plugins.tabular_xai.core.table import DatasetTable, build_table


def _table(frame: pd.DataFrame, target: str) -> DatasetTable:
    features = [column for column in frame.columns if column != target]
    return build_table(frame, features, target)


def test_get_strategy_dispatches_by_tag():
    assert isinstance(get_strategy("classification"), ClassificationStrategy)
    assert isinstance(get_strategy(ModelType.REGRESSION), RegressionStrategy)


def test_unknown_model_type_is_configuration_error():
    with pytest.raises(ConfigurationError) as excinfo:
        get_strategy("CLUSTERING")
    assert excinfo.value.code == "configuration_error"


def test_validate_rejects_null_and_empty_tables():
    strategy = ClassificationStrategy()
    with pytest.raises(InvalidDataset, match="cannot be null"):
        strategy.validate(None)

    empty = _table(pd.DataFrame({"a": [], "target": []}), "target")
    with pytest.raises(InvalidDataset, match="cannot be empty"):
        strategy.validate(empty)


def test_validate_requires_a_feature_column():
    table = build_table(pd.DataFrame({"a": [1, 2], "target": [0, 1]}), [], "target")
    with pytest.raises(InvalidDataset, match="at least one feature"):
        RegressionStrategy().validate(table)


def test_classification_needs_two_classes():
    table = _table(pd.DataFrame({"a": [1, 2, 3], "target": ["x", "x", "x"]}), "target")
    with pytest.raises(InvalidDataset, match="at least 2 classes"):
        ClassificationStrategy().validate(table)


def test_classification_never_fits_single_class(monkeypatch):
    strategy = ClassificationStrategy()
    calls = []
    monkeypatch.setattr(strategy, "build_estimator", lambda: calls.append(1))
    table = _table(pd.DataFrame({"a": [1, 2, 3], "target": [1, 1, 1]}), "target")
    with pytest.raises(InvalidDataset):
        strategy.train(table)
    assert calls == []


def test_regression_target_must_be_numeric():
    table = _table(pd.DataFrame({"a": [1, 2, 3], "target": ["x", "y", "z"]}), "target")
    with pytest.raises(InvalidDataset, match="numeric"):
        RegressionStrategy().validate(table)


def test_classification_training_and_raw_weights(classification_frame):
    table = _table(classification_frame, "species")
    strategy = ClassificationStrategy()
    fitted = strategy.train(table)
    assert fitted.model_type is ModelType.CLASSIFICATION
    assert fitted.classes == ["big", "small"]
    assert fitted.sample_count == 60
    assert strategy.score(fitted, table) > 0.8

    big = fitted.feature_weights("big")
    small = fitted.feature_weights("small")
    assert set(big) == {"Width_cm", "length"}
    assert big["Width_cm"] > 0
    assert small["Width_cm"] == pytest.approx(-big["Width_cm"])


def test_raw_weights_reproduce_decision_function(classification_frame):
    table = _table(classification_frame, "species")
    fitted = ClassificationStrategy().train(table)
    weights = fitted.feature_weights("small")
    row = {"Width_cm": 5.5, "length": 9.0}
    matrix = fitted.design_matrix(row)
    model = fitted.estimator.named_steps["model"]
    scaler = fitted.estimator.named_steps["scale"]
    intercept = model.intercept_[0] - np.sum(model.coef_[0] * scaler.mean_ / scaler.scale_)
    linear = sum(weights[name] * value for name, value in row.items()) + intercept
    assert linear == pytest.approx(fitted.estimator.decision_function(matrix)[0])


def test_regression_training_recovers_linear_signal(regression_frame):
    table = _table(regression_frame, "target")
    strategy = RegressionStrategy()
    fitted = strategy.train(table)
    assert fitted.model_type is ModelType.REGRESSION
    assert fitted.classes is None
    assert strategy.score(fitted, table) > 0.9
    weights = fitted.feature_weights()
    assert weights["age"] == pytest.approx(0.5, rel=0.2)


def test_design_matrix_fills_missing_features_with_training_mean(regression_frame):
    fitted = RegressionStrategy().train(_table(regression_frame, "target"))
    matrix = fitted.design_matrix({"age": 30.0})
    assert matrix.shape == (1, 2)
    assert matrix[0, 1] == pytest.approx(regression_frame["income"].mean())


def test_hyperparameters_are_coerced_and_unknown_ignored(classification_frame):
    fitted = ClassificationStrategy().train(
        _table(classification_frame, "species"),
        {"C": "0.5", "max_iter": "200", "not_a_param": 3, "class_weight": ""},
    )
    model = fitted.estimator.named_steps["model"]
    assert model.C == 0.5
    assert model.max_iter == 200
    assert model.class_weight is None
    assert "not_a_param" not in fitted.hyperparameters


def test_bad_hyperparameter_value_is_invalid_dataset(regression_frame):
    strategy = RegressionStrategy()
    table = _table(regression_frame, "target")
    with pytest.raises(InvalidDataset, match="numeric"):
        strategy.train(table, {"alpha": "lots"})
    with pytest.raises(InvalidDataset, match="one of"):
        strategy.train(table, {"learning_rate": "warp"})
    with pytest.raises(InvalidDataset, match=">="):
        strategy.train(table, {"max_iter": 1})


def test_rows_with_missing_values_are_dropped():
    frame = pd.DataFrame({"a": [1.0, None, 3.0, 4.0], "target": [0, 1, None, 1]})
    table = build_table(frame, ["a"], "target")
    assert table.size == 2
    assert table.dropped_rows == 2


def test_algorithm_metadata_lists_both_families():
    metadata = algorithm_metadata()
    assert metadata["CLASSIFICATION"]["algorithm"] == "logistic_regression"
    assert metadata["REGRESSION"]["metric"] == "r2"
    names = {item["name"] for item in metadata["REGRESSION"]["hyperparameters"]}
    assert {"alpha", "eta0"} <= names
