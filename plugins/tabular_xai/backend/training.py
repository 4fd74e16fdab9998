"""End-to-end training workflow."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.security import require_owner
from common.errors import DatasetNotFound, ModelAlreadyExists, TrainingTimeout
from common.logging import get_logger, operation_context
from common.tasks import TaskTimeout, run_with_timeout
from common.validation import parse_model

from ..core.artifacts import FORMAT_VERSION, ModelArtifactStore
from ..core.strategies import FittedModel, TrainingStrategy, get_strategy
from ..core.table import DatasetTable, check_columns
from .database import session_scope
from .datasets import DatasetService
from .locks import DatasetLockRegistry
from .models import Dataset, TrainedModel
from .registry import ModelRegistry
from .schemas import TrainedModelRecord, TrainRequest

LOGGER = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0


def _timeout_from_settings(settings: Mapping[str, Any] | None) -> float:
    settings = settings or {}
    raw = settings.get("timeout_seconds")
    try:
        timeout = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_TIMEOUT_SECONDS
    return timeout if timeout > 0 else DEFAULT_TIMEOUT_SECONDS


def _already_exists(dataset_id: int) -> ModelAlreadyExists:
    return ModelAlreadyExists(
        "A model has already been trained for this dataset. Delete the existing model first.",
        details={"dataset_id": dataset_id},
    )


class TrainingOrchestrator:
    """Train at most one model per dataset and persist it atomically.

    Within a process a per-dataset lock serializes the check-then-train
    sequence. Across processes the unique constraint on
    ``trained_models.dataset_id`` decides the winner; the loser's insert
    fails, its artifact is discarded and it sees :class:`ModelAlreadyExists`.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        datasets: DatasetService,
        registry: ModelRegistry,
        artifacts: ModelArtifactStore,
        *,
        locks: DatasetLockRegistry | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.session_factory = session_factory
        self.datasets = datasets
        self.registry = registry
        self.artifacts = artifacts
        self.locks = locks or datasets.locks
        self.timeout_seconds = timeout_seconds

    @classmethod
    def timeout_from_settings(cls, settings: Mapping[str, Any] | None) -> float:
        return _timeout_from_settings(settings)

    def train_model(self, request: TrainRequest | Mapping[str, Any], owner_id: object) -> TrainedModelRecord:
        owner = require_owner(owner_id)
        if not isinstance(request, TrainRequest):
            request = parse_model(TrainRequest, request)

        with operation_context(
            "train_model",
            owner_id=owner,
            dataset_id=request.dataset_id,
            model_type=request.model_type,
        ) as context:
            dataset = self.datasets.get(request.dataset_id, owner)
            with self.locks.hold(dataset.id):
                if self.registry.has_model(dataset.id):
                    raise _already_exists(dataset.id)

                check_columns(dataset.headers, request.feature_names, request.target_variable)
                strategy = get_strategy(request.model_type)
                table = self.datasets.load_table(
                    dataset.id, owner, request.feature_names, request.target_variable
                )
                strategy.validate(table)
                fitted = self._fit(strategy, table, request.params)

                path = self.artifacts.save(fitted, request.model_name)
                try:
                    accuracy = self._accuracy(strategy, fitted, table)
                    record = self._persist(request, dataset.id, strategy, fitted, table, path, accuracy)
                except Exception:
                    self.artifacts.discard(path)
                    raise
            context["model_id"] = record.id
            return record

    def _fit(self, strategy: TrainingStrategy, table: DatasetTable, params: Mapping[str, object]) -> FittedModel:
        try:
            return run_with_timeout(lambda: strategy.train(table, params), self.timeout_seconds)
        except TaskTimeout as exc:
            raise TrainingTimeout(
                f"Training exceeded the {self.timeout_seconds:g}s limit",
                details={"timeout_seconds": self.timeout_seconds, "algorithm": strategy.algorithm},
            ) from exc

    def _accuracy(self, strategy: TrainingStrategy, fitted: FittedModel, table: DatasetTable) -> float | None:
        try:
            return strategy.score(fitted, table)
        except Exception as exc:  # the metric is optional; training already succeeded
            LOGGER.warning("Could not compute %s for %s: %s", strategy.metric_name, strategy.algorithm, exc)
            return None

    def _persist(
        self,
        request: TrainRequest,
        dataset_id: int,
        strategy: TrainingStrategy,
        fitted: FittedModel,
        table: DatasetTable,
        path: Path,
        accuracy: float | None,
    ) -> TrainedModelRecord:
        metadata = {
            "algorithm": fitted.algorithm,
            "metric": strategy.metric_name,
            "sample_count": fitted.sample_count,
            "dropped_rows": table.dropped_rows,
            "classes": fitted.classes,
            "hyperparameters": fitted.hyperparameters,
            "format_version": FORMAT_VERSION,
        }
        with session_scope(self.session_factory) as session:
            row = TrainedModel(
                name=request.model_name,
                model_type=fitted.model_type.value,
                dataset_id=dataset_id,
                feature_names=list(fitted.feature_names),
                target_variable=fitted.target_name,
                artifact_path=self.artifacts.relative_name(path),
                accuracy=accuracy,
                model_metadata=metadata,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if session.get(Dataset, dataset_id) is None:
                    raise DatasetNotFound("Dataset not found", details={"dataset_id": dataset_id}) from exc
                raise _already_exists(dataset_id) from exc
            return row.to_record()


__all__ = ["DEFAULT_TIMEOUT_SECONDS", "TrainingOrchestrator"]
