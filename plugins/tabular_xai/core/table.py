"""Typed training tables built from stored CSV files."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd

from common.errors import InvalidDataset, ValidationAppError

from .vectorizer import encode_column


@dataclass(slots=True)
class DatasetTable:
    features: pd.DataFrame
    target: pd.Series | None
    feature_names: list[str]
    target_name: str | None
    dropped_rows: int = 0
    source_rows: int = 0

    @property
    def size(self) -> int:
        return int(self.features.shape[0])

    def feature_matrix(self) -> np.ndarray:
        return self.features[self.feature_names].to_numpy(dtype=float)


def read_csv_bytes(data: bytes) -> pd.DataFrame:
    try:
        return pd.read_csv(BytesIO(data))
    except Exception as exc:  # pandas raises several unrelated error types
        raise InvalidDataset("Invalid CSV file", details={"error": str(exc)}) from exc


def read_csv_path(path: Path) -> pd.DataFrame:
    try:
        return pd.read_csv(path)
    except FileNotFoundError:
        raise
    except Exception as exc:  # pandas raises several unrelated error types
        raise InvalidDataset("Invalid CSV file", details={"error": str(exc)}) from exc


def check_columns(headers: Sequence[str], feature_names: Sequence[str], target: str) -> None:
    """Reject unknown or overlapping column names before any parsing work."""

    known = set(headers)
    missing = [name for name in [*feature_names, target] if name not in known]
    if missing:
        raise ValidationAppError(
            "Columns not found in dataset: " + ", ".join(missing),
            details={"missing": missing},
        )
    if target in feature_names:
        raise ValidationAppError(
            f"Target column '{target}' cannot also be a feature",
            details={"target": target},
        )
    duplicates = sorted({name for name in feature_names if list(feature_names).count(name) > 1})
    if duplicates:
        raise ValidationAppError(
            "Duplicate feature names: " + ", ".join(duplicates),
            details={"duplicates": duplicates},
        )


def build_table(frame: pd.DataFrame, feature_names: Sequence[str], target: str) -> DatasetTable:
    """Select the requested columns and encode feature cells numerically.

    Rows with a missing feature or target value are dropped.
    """

    check_columns([str(column) for column in frame.columns], feature_names, target)
    features = pd.DataFrame(
        {name: encode_column(frame[name]) for name in feature_names},
        index=frame.index,
    )
    target_series = frame[target]
    complete = features.notna().all(axis=1) & target_series.notna()
    dropped = int((~complete).sum())
    return DatasetTable(
        features=features.loc[complete].reset_index(drop=True),
        target=target_series.loc[complete].reset_index(drop=True),
        feature_names=list(feature_names),
        target_name=target,
        dropped_rows=dropped,
        source_rows=int(frame.shape[0]),
    )


__all__ = [
    "DatasetTable",
    "build_table",
    "check_columns",
    "read_csv_bytes",
    "read_csv_path",
]
