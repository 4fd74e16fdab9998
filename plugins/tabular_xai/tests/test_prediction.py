import threading

import pytest

from app import create_app
from common.errors import (
    ArtifactCorrupt,
    ArtifactDeletionError,
    AuthorizationDenied,
    ExplanationUnavailable,
    ModelNotFound,
    ValidationAppError,
)
from plugins.tabular_xai.backend.prediction import check_input

OWNER = 1
OTHER_OWNER = 2


@pytest.fixture
def classifier(xai_app, classification_csv):
    dataset = xai_app.datasets.upload(classification_csv, "flowers.csv", OWNER)
    return xai_app.trainer.train_model(
        {
            "dataset_id": dataset.id,
            "model_name": "flowers",
            "target_variable": "species",
            "feature_names": ["Width_cm", "length"],
            "model_type": "classification",
        },
        OWNER,
    )


@pytest.fixture
def regressor(xai_app, regression_csv):
    dataset = xai_app.datasets.upload(regression_csv, "houses.csv", OWNER)
    return xai_app.trainer.train_model(
        {
            "dataset_id": dataset.id,
            "model_name": "houses",
            "target_variable": "target",
            "feature_names": ["age", "income"],
            "model_type": "REGRESSION",
        },
        OWNER,
    )


def test_classification_returns_normalized_probabilities(xai_app, classifier):
    result = xai_app.predictions.predict(classifier.id, {"Width_cm": "7.5", "length": "12"}, OWNER)
    assert result.model_type == "CLASSIFICATION"
    assert result.prediction == "big"
    assert result.scores_normalized is True
    assert set(result.probabilities) == {"big", "small"}
    assert sum(result.probabilities.values()) == pytest.approx(1.0)
    assert result.confidence == pytest.approx(result.probabilities["big"])
    assert result.to_dict()["input"] == {"Width_cm": "7.5", "length": "12"}


def test_partial_input_is_filled_from_training_means(xai_app, classifier):
    result = xai_app.predictions.predict(classifier.id, {"Width_cm": "2.0"}, OWNER)
    assert result.prediction == "small"


def test_other_owner_sees_not_found(xai_app, classifier):
    with pytest.raises(ModelNotFound):
        xai_app.predictions.predict(classifier.id, {"Width_cm": "5"}, OTHER_OWNER)
    with pytest.raises(ModelNotFound):
        xai_app.explanations.explain(classifier.id, {"Width_cm": "5"}, OTHER_OWNER)
    with pytest.raises(ModelNotFound):
        xai_app.registry.get(classifier.id, OTHER_OWNER)
    assert xai_app.registry.list_models(OTHER_OWNER) == []


def test_unknown_model_is_not_found(xai_app):
    with pytest.raises(ModelNotFound):
        xai_app.predictions.predict(999, {}, OWNER)


def test_prediction_requires_owner(xai_app, classifier):
    with pytest.raises(AuthorizationDenied):
        xai_app.predictions.predict(classifier.id, {}, None)


def test_input_must_be_a_mapping():
    assert check_input(None) == {}
    with pytest.raises(ValidationAppError):
        check_input(["Width_cm", "5"])


def test_corrupt_artifact_is_reported_not_retried(xai_app, regressor):
    path = xai_app.artifacts.resolve(regressor.artifact_path)
    path.write_bytes(b"not a model")
    with pytest.raises(ArtifactCorrupt) as excinfo:
        xai_app.predictions.predict(regressor.id, {"age": "30"}, OWNER)
    assert excinfo.value.retryable is False


def test_missing_artifact_with_live_row_is_corrupt(xai_app, regressor):
    xai_app.artifacts.resolve(regressor.artifact_path).unlink()
    with pytest.raises(ArtifactCorrupt) as excinfo:
        xai_app.predictions.predict(regressor.id, {"age": "30"}, OWNER)
    assert excinfo.value.details["reason"] == "missing"


def test_deleted_model_is_not_found(xai_app, regressor):
    xai_app.registry.delete(regressor.id, OWNER)
    with pytest.raises(ModelNotFound):
        xai_app.predictions.predict(regressor.id, {"age": "30"}, OWNER)
    assert not xai_app.artifacts.resolve(regressor.artifact_path).exists()


def test_stale_record_after_concurrent_delete_is_not_found(xai_app, regressor):
    record = xai_app.registry.get(regressor.id, OWNER)
    xai_app.registry.delete(regressor.id, OWNER)
    with pytest.raises(ModelNotFound):
        xai_app.predictions.load(record)


def test_classification_explanation_uses_model_weights(xai_app, classifier):
    explanation = xai_app.explanations.explain(classifier.id, {"Width_cm": "7.5", "length": "12"}, OWNER)
    assert explanation.prediction == "big"
    assert explanation.method == "model_weights"
    features = [item.feature for item in explanation.contributions]
    assert "Width_cm" in features
    width = next(item for item in explanation.contributions if item.feature == "Width_cm")
    assert width.direction == "positive"
    assert explanation.explanation_text.startswith("The model's prediction is primarily influenced by: ")

    payload = explanation.to_dict()
    assert payload["feature_contributions"][0]["feature"] == features[0]
    magnitudes = [item.magnitude for item in explanation.contributions]
    assert magnitudes == sorted(magnitudes, reverse=True)


def test_regression_explanation_matches_prediction(xai_app, regressor):
    raw = {"age": "34", "income": "50000"}
    prediction = xai_app.predictions.predict(regressor.id, raw, OWNER)
    explanation = xai_app.explanations.explain(regressor.id, raw, OWNER)
    assert explanation.prediction == prediction.prediction
    assert explanation.input == raw
    assert {item.feature for item in explanation.contributions} <= {"age", "income"}


def test_explanation_of_non_numeric_input_uses_surrogate(xai_app, regressor):
    explanation = xai_app.explanations.explain(regressor.id, {"age": "old"}, OWNER)
    assert explanation.input == {"age": "old"}
    assert [item.feature for item in explanation.contributions] == ["age"]


def test_reader_racing_a_delete_sees_intact_model_or_not_found(xai_app, regressor, monkeypatch):
    entered = threading.Event()
    release = threading.Event()
    original_find = xai_app.registry.find
    original_delete = xai_app.artifacts.delete
    pauses = {}

    def _paused(stage, func):
        def _wrapper(*args, **kwargs):
            result = func(*args, **kwargs)
            if threading.current_thread().name == "deleter" and stage not in pauses:
                pauses[stage] = True
                entered.set()
                release.wait(5)
            return result

        return _wrapper

    monkeypatch.setattr(xai_app.registry, "find", _paused("before_commit", original_find))
    monkeypatch.setattr(xai_app.artifacts, "delete", _paused("after_commit", lambda path: None))
    deleter = threading.Thread(target=xai_app.registry.delete, args=(regressor.id, OWNER), name="deleter")
    deleter.start()

    # row and file are both still in place
    assert entered.wait(5)
    result = xai_app.predictions.predict(regressor.id, {"age": "30"}, OWNER)
    assert result.model_id == regressor.id

    # row committed away, file not yet unlinked
    entered.clear()
    release.set()
    assert entered.wait(5)
    with pytest.raises(ModelNotFound):
        xai_app.predictions.predict(regressor.id, {"age": "30"}, OWNER)
    deleter.join(5)

    original_delete(regressor.artifact_path)
    with pytest.raises(ModelNotFound):
        xai_app.predictions.predict(regressor.id, {"age": "30"}, OWNER)


def test_failed_artifact_unlink_leaves_orphan_not_dangling_row(xai_app, regressor, monkeypatch):
    def _fail(path):
        raise ArtifactDeletionError("Failed to delete model artifact", details={"path": str(path)})

    monkeypatch.setattr(xai_app.artifacts, "delete", _fail)
    with pytest.raises(ArtifactDeletionError):
        xai_app.registry.delete(regressor.id, OWNER)
    assert xai_app.artifacts.resolve(regressor.artifact_path).exists()
    with pytest.raises(ModelNotFound):
        xai_app.registry.get(regressor.id, OWNER)


def test_model_ids_are_not_reused_after_delete(xai_app, regressor):
    stale = xai_app.registry.get(regressor.id, OWNER)
    xai_app.registry.delete(regressor.id, OWNER)
    replacement = xai_app.trainer.train_model(
        {
            "dataset_id": regressor.dataset_id,
            "model_name": "houses again",
            "target_variable": "target",
            "feature_names": ["age"],
            "model_type": "REGRESSION",
        },
        OWNER,
    )
    assert replacement.id > regressor.id
    with pytest.raises(ModelNotFound):
        xai_app.predictions.load(stale)
    with pytest.raises(ModelNotFound):
        xai_app.predictions.predict(regressor.id, {"age": "30"}, OWNER)


def test_explanation_unavailable_without_weights_or_fallback(tmp_path, monkeypatch, regression_csv):
    monkeypatch.delenv("XAI_FORGE_MODEL_STORE", raising=False)
    app = create_app(
        "TestingConfig",
        overrides={
            "DATABASE_URL": f"sqlite:///{tmp_path / 'strict.db'}",
            "UPLOAD_ROOT": tmp_path / "uploads",
            "MODEL_STORE": {"root": str(tmp_path / "models")},
            "XAI_SETTINGS": {"enable_fallback_explanation": False, "use_model_weights": False},
        },
    )
    try:
        dataset = app.datasets.upload(regression_csv, "houses.csv", OWNER)
        model = app.trainer.train_model(
            {
                "dataset_id": dataset.id,
                "model_name": "houses",
                "target_variable": "target",
                "feature_names": ["age", "income"],
                "model_type": "REGRESSION",
            },
            OWNER,
        )
        assert app.predictions.predict(model.id, {"age": "30"}, OWNER).prediction
        with pytest.raises(ExplanationUnavailable):
            app.explanations.explain(model.id, {"age": "30"}, OWNER)
    finally:
        app.close()
