"""Encoding of raw string inputs into numeric feature vectors."""

from __future__ import annotations

import math
import zlib
from collections import OrderedDict
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

FeatureVector = OrderedDict[str, float]


def parse_number(raw: object) -> float | None:
    """Return ``raw`` as a finite float, or ``None`` when it is not numeric."""

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, np.integer, np.floating)):
        value = float(raw)
        return value if math.isfinite(value) else None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def surrogate(raw: object) -> float:
    """Stable numeric stand-in for a non-numeric value.

    CRC32 of the UTF-8 text, so the same string maps to the same number in
    every process. The mapping is lossy: distinct strings may collide and
    the magnitude carries no meaning.
    """

    text = "" if raw is None else str(raw).strip()
    return float(zlib.crc32(text.encode("utf-8")))


def encode_value(raw: object) -> float:
    parsed = parse_number(raw)
    if parsed is not None:
        return parsed
    return surrogate(raw)


def is_surrogate(raw: object) -> bool:
    return parse_number(raw) is None


def vectorize(raw_input: Mapping[str, object], feature_names: Iterable[str]) -> FeatureVector:
    """Build the feature vector for ``feature_names`` from ``raw_input``.

    Features missing from ``raw_input`` are left out of the result rather
    than zero filled. Malformed numbers never raise; they are encoded with
    :func:`surrogate`.
    """

    vector: FeatureVector = OrderedDict()
    for name in feature_names:
        if name not in raw_input:
            continue
        vector[name] = encode_value(raw_input[name])
    return vector


def encode_column(series: pd.Series) -> pd.Series:
    """Apply the vectorizer cell rule to a whole column, keeping missing cells."""

    numeric = pd.to_numeric(series, errors="coerce")
    if not numeric.isna().any() and np.isfinite(numeric.to_numpy(dtype=float)).all():
        return numeric.astype(float)

    def _cell(value: object) -> float:
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return math.nan
        if isinstance(value, str) and not value.strip():
            return math.nan
        return encode_value(value)

    return series.map(_cell).astype(float)


class FeatureVectorizer:
    """Object wrapper so services can share one vectorizer instance."""

    def vectorize(
        self, raw_input: Mapping[str, object], feature_names: Iterable[str]
    ) -> FeatureVector:
        return vectorize(raw_input, feature_names)


__all__ = [
    "FeatureVector",
    "FeatureVectorizer",
    "encode_column",
    "encode_value",
    "is_surrogate",
    "parse_number",
    "surrogate",
    "vectorize",
]
