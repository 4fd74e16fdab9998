import pydantic
import pytest

from common.errors import ConfigurationError, ExplanationUnavailable
from plugins.tabular_xai.core.explain import (
    NO_CONTRIBUTION_TEXT,
    AttributionMethod,
    Contribution,
    ExplanationEngine,
    natural_join,
    render_text,
)
from plugins.tabular_xai.core.settings import DEFAULT_FEATURE_MULTIPLIERS, XaiSettings, load_settings
from plugins.tabular_xai.core.strategies import FittedModel, ModelType, RegressionStrategy
from plugins.tabular_xai.core.table import build_table


def _opaque_model(feature_names, model_type=ModelType.REGRESSION) -> FittedModel:
    """A fitted model without linear weights, so attribution must fall back."""

    return FittedModel(
        model_type=model_type,
        algorithm="opaque",
        estimator=object(),
        feature_names=list(feature_names),
        target_name="target",
        fill_values={name: 0.0 for name in feature_names},
    )


def _contribution(name: str, magnitude: float, direction: str = "positive") -> Contribution:
    return Contribution(
        feature=name,
        magnitude=magnitude,
        direction=direction,
        value=magnitude,
        method=AttributionMethod.HEURISTIC,
        weight=1.0,
    )


def test_multiplier_lookup_matches_substring_case_insensitively():
    settings = XaiSettings()
    assert settings.multiplier_for("Width_cm") == 2.0
    assert settings.multiplier_for("AGE") == 1.2
    assert settings.multiplier_for("zzz") == 1.0


def test_multiplier_lookup_prefers_exact_match_over_substring():
    settings = XaiSettings(feature_multipliers=(("age", 1.2), ("page_age", 3.0)))
    assert settings.multiplier_for("Page_Age") == 3.0
    assert settings.multiplier_for("page_age_days") == 1.2


def test_multiplier_lookup_uses_first_substring_in_table_order():
    # "type_score" contains both "score" (first) and "type"
    assert XaiSettings().multiplier_for("type_score") == 1.5


def test_default_table_order_is_preserved():
    patterns = [pattern for pattern, _ in XaiSettings().feature_multipliers]
    assert patterns == [pattern for pattern, _ in DEFAULT_FEATURE_MULTIPLIERS]
    assert patterns[:4] == ["score", "grade", "age", "year"]


def test_settings_are_immutable():
    settings = XaiSettings()
    with pytest.raises(pydantic.ValidationError):
        settings.max_features_in_explanation = 3


def test_load_settings_falls_back_on_bad_values():
    settings = load_settings(
        {
            "max_features_in_explanation": "many",
            "min_contribution_threshold": 0.5,
            "feature_multipliers": {"Height": 4.0},
            "base_factors": {"regression": 0.3},
            "unexpected": True,
        }
    )
    assert settings.max_features_in_explanation == 10
    assert settings.min_contribution_threshold == 0.5
    assert settings.multiplier_for("height_cm") == 4.0
    assert settings.multiplier_for("width") == 1.0
    assert settings.base_factor(ModelType.REGRESSION) == 0.3
    assert settings.base_factor("CLASSIFICATION") == 0.25


def test_base_factor_rejects_unknown_family():
    with pytest.raises(ConfigurationError):
        XaiSettings().base_factor("CLUSTERING")


def test_fallback_width_feature_uses_width_multiplier():
    engine = ExplanationEngine(XaiSettings())
    result = engine.explain(_opaque_model(["Width_cm"]), {"Width_cm": 3.0})
    assert result.method is AttributionMethod.HEURISTIC
    (item,) = result.contributions
    assert item.weight == 2.0
    assert item.magnitude == pytest.approx(6.0)
    assert item.base_factor == 0.2


def test_fallback_direction_follows_value_sign():
    engine = ExplanationEngine(XaiSettings())
    result = engine.explain(_opaque_model(["a", "b"]), {"a": -2.0, "b": 1.0})
    directions = {item.feature: item.direction for item in result.contributions}
    assert directions == {"a": "negative", "b": "positive"}


def test_fallback_is_deterministic():
    engine = ExplanationEngine(XaiSettings())
    model = _opaque_model(["score", "color", "n"])
    vector = {"score": 2.0, "color": 1.5, "n": 4.0}
    first = engine.explain(model, vector)
    second = engine.explain(model, vector)
    assert first.contributions == second.contributions
    assert first.text == second.text


def test_disabled_fallback_raises_explanation_unavailable():
    engine = ExplanationEngine(XaiSettings(enable_fallback_explanation=False))
    with pytest.raises(ExplanationUnavailable):
        engine.explain(_opaque_model(["a"]), {"a": 1.0})


def test_threshold_and_truncation_are_both_enforced():
    names = [f"f{index:02d}" for index in range(15)]
    vector = {name: float(index + 1) for index, name in enumerate(names)}
    vector["f00"] = 0.001
    engine = ExplanationEngine(XaiSettings(max_features_in_explanation=10, min_contribution_threshold=0.01))
    result = engine.explain(_opaque_model(names), vector)
    assert result.considered == 15
    assert len(result.contributions) == 10
    assert "f00" not in {item.feature for item in result.contributions}
    assert [item.feature for item in result.contributions][0] == "f14"


def test_ranking_is_descending_and_stable_on_ties():
    engine = ExplanationEngine(XaiSettings())
    ranked = engine.rank(
        [
            _contribution("a", 1.0),
            _contribution("b", 3.0),
            _contribution("c", 1.0),
            _contribution("d", 3.0),
        ]
    )
    assert [item.feature for item in ranked] == ["b", "d", "a", "c"]


def test_render_text_names_top_three_with_two_decimals():
    text = render_text(
        [
            _contribution("A", 1.234),
            _contribution("B", 0.4, "negative"),
            _contribution("C", 0.1),
            _contribution("D", 0.05),
        ]
    )
    assert text == (
        "The model's prediction is primarily influenced by: "
        "A (positive impact: 1.23), B (negative impact: 0.40) and C (positive impact: 0.10)."
    )


def test_render_text_handles_short_lists():
    assert render_text([]) == NO_CONTRIBUTION_TEXT
    assert render_text([_contribution("A", 2.0)]).endswith("A (positive impact: 2.00).")
    assert natural_join(["x", "y"]) == "x and y"


def test_primary_attribution_uses_weight_times_value(regression_frame):
    table = build_table(regression_frame, ["age", "income"], "target")
    fitted = RegressionStrategy().train(table)
    weights = fitted.feature_weights()
    engine = ExplanationEngine(XaiSettings(min_contribution_threshold=0.0))
    result = engine.explain(fitted, {"age": 40.0, "income": 60000.0})
    assert result.method is AttributionMethod.MODEL_WEIGHTS
    by_name = {item.feature: item for item in result.contributions}
    assert by_name["age"].signed == pytest.approx(weights["age"] * 40.0)
    assert by_name["income"].signed == pytest.approx(weights["income"] * 60000.0)
    assert by_name["age"].base_factor is None


def test_use_model_weights_flag_forces_fallback(regression_frame):
    table = build_table(regression_frame, ["age", "income"], "target")
    fitted = RegressionStrategy().train(table)
    engine = ExplanationEngine(XaiSettings(use_model_weights=False))
    result = engine.explain(fitted, {"age": 40.0})
    assert result.method is AttributionMethod.HEURISTIC
    assert result.contributions[0].magnitude == pytest.approx(40.0 * 1.2)


def test_contribution_payload():
    payload = _contribution("A", 1.5).to_dict()
    assert payload["feature"] == "A"
    assert payload["contribution"] == 1.5
    assert payload["method"] == "heuristic"
    assert "base_factor" not in payload
