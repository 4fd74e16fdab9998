"""Core training, attribution and artifact primitives for Tabular XAI."""

from .artifacts import FORMAT_VERSION, ModelArtifactStore
from .explain import Attribution, AttributionMethod, Contribution, ExplanationEngine, render_text
from .settings import XaiSettings, load_settings
from .strategies import (
    ClassificationStrategy,
    FittedModel,
    ModelType,
    RegressionStrategy,
    TrainingStrategy,
    algorithm_metadata,
    get_strategy,
)
from .table import DatasetTable, build_table
from .vectorizer import FeatureVectorizer, encode_value, surrogate, vectorize

__all__ = [
    "Attribution",
    "AttributionMethod",
    "ClassificationStrategy",
    "Contribution",
    "DatasetTable",
    "ExplanationEngine",
    "FORMAT_VERSION",
    "FeatureVectorizer",
    "FittedModel",
    "ModelArtifactStore",
    "ModelType",
    "RegressionStrategy",
    "TrainingStrategy",
    "XaiSettings",
    "algorithm_metadata",
    "build_table",
    "encode_value",
    "get_strategy",
    "load_settings",
    "render_text",
    "surrogate",
    "vectorize",
]
