"""Owner-scoped lookup and deletion of trained models."""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from app.security import require_owner
from common.errors import ModelNotFound
from common.logging import get_logger, operation_context

from ..core.artifacts import ModelArtifactStore
from .database import session_scope
from .models import Dataset, TrainedModel
from .schemas import TrainedModelRecord

LOGGER = get_logger(__name__)


class ModelRegistry:
    def __init__(self, session_factory: sessionmaker, artifacts: ModelArtifactStore):
        self.session_factory = session_factory
        self.artifacts = artifacts

    @staticmethod
    def find(session: Session, model_id: int, owner_id: int) -> TrainedModel | None:
        return (
            session.query(TrainedModel)
            .join(Dataset, TrainedModel.dataset_id == Dataset.id)
            .filter(TrainedModel.id == model_id, Dataset.owner_id == owner_id)
            .one_or_none()
        )

    @staticmethod
    def for_dataset(session: Session, dataset_id: int) -> TrainedModel | None:
        return session.query(TrainedModel).filter(TrainedModel.dataset_id == dataset_id).one_or_none()

    def has_model(self, dataset_id: int) -> bool:
        with session_scope(self.session_factory) as session:
            return self.for_dataset(session, dataset_id) is not None

    def exists(self, model_id: int) -> bool:
        with session_scope(self.session_factory) as session:
            return session.get(TrainedModel, model_id) is not None

    def get(self, model_id: int, owner_id: object) -> TrainedModelRecord:
        owner = require_owner(owner_id)
        with session_scope(self.session_factory) as session:
            model = self.find(session, model_id, owner)
            if model is None:
                raise ModelNotFound("Model not found", details={"model_id": model_id})
            return model.to_record()

    def list_models(self, owner_id: object) -> list[TrainedModelRecord]:
        owner = require_owner(owner_id)
        with session_scope(self.session_factory) as session:
            rows = (
                session.query(TrainedModel)
                .join(Dataset, TrainedModel.dataset_id == Dataset.id)
                .filter(Dataset.owner_id == owner)
                .order_by(TrainedModel.id)
                .all()
            )
            return [row.to_record() for row in rows]

    def delete(self, model_id: int, owner_id: object) -> None:
        """Delete the row, then its artifact.

        The row goes first so no reader can resolve a model whose file is
        gone: until the commit the model is intact, afterwards it is not
        found. A failed unlink raises :class:`ArtifactDeletionError` and
        leaves an orphaned file behind, never a dangling row.
        """

        owner = require_owner(owner_id)
        with operation_context("delete_model", owner_id=owner, model_id=model_id):
            with session_scope(self.session_factory) as session:
                model = self.find(session, model_id, owner)
                if model is None:
                    raise ModelNotFound("Model not found", details={"model_id": model_id})
                artifact_path = model.artifact_path
                session.delete(model)
                session.commit()
            LOGGER.info("Deleted model %s", model_id)
            self.artifacts.delete(artifact_path)


__all__ = ["ModelRegistry"]
