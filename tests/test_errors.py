from common.errors import (
    AppError,
    ArtifactMissing,
    InternalAppError,
    ModelNotFound,
    NotFoundAppError,
    ensure_app_error,
)


def test_app_errors_render_their_message():
    error = ModelNotFound("Model not found", details={"model_id": 3})
    assert str(error) == "Model not found"
    assert isinstance(error, NotFoundAppError)
    assert error.to_dict() == {"code": "model_not_found", "message": "Model not found", "details": {"model_id": 3}}


def test_artifact_errors_are_never_retryable():
    assert ArtifactMissing("gone").retryable is False


def test_ensure_app_error_wraps_foreign_exceptions():
    wrapped = ensure_app_error(RuntimeError("boom"), fallback_code="internal_error")
    assert isinstance(wrapped, InternalAppError)
    assert wrapped.to_dict()["code"] == "internal_error"

    original = AppError("kept", code="custom")
    assert ensure_app_error(original, fallback_code="internal_error") is original
