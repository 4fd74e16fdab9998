"""ORM tables for uploaded datasets and trained models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint

from .database import Base
from .schemas import DatasetRecord, TrainedModelRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Dataset(Base):
    __tablename__ = "datasets"
    # ids are never reused after a delete
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    headers = Column(JSON, nullable=False)
    row_count = Column(Integer, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Dataset(id={self.id}, owner={self.owner_id}, file={self.file_name})>"

    def to_record(self) -> DatasetRecord:
        return DatasetRecord(
            id=self.id,
            owner_id=self.owner_id,
            file_name=self.file_name,
            headers=list(self.headers or []),
            row_count=self.row_count,
            uploaded_at=self.uploaded_at,
        )


class TrainedModel(Base):
    """At most one row per dataset; the constraint settles concurrent inserts."""

    __tablename__ = "trained_models"
    __table_args__ = (
        UniqueConstraint("dataset_id", name="uq_trained_models_dataset_id"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    model_type = Column(String(20), nullable=False)
    dataset_id = Column(Integer, ForeignKey("datasets.id"), nullable=False)
    feature_names = Column(JSON, nullable=False)
    target_variable = Column(String(255), nullable=False)
    artifact_path = Column(String(500), nullable=False)
    accuracy = Column(Float, nullable=True)
    model_metadata = Column("metadata", JSON, nullable=True)
    trained_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<TrainedModel(id={self.id}, dataset={self.dataset_id}, type={self.model_type})>"

    def to_record(self) -> TrainedModelRecord:
        return TrainedModelRecord(
            id=self.id,
            name=self.name,
            model_type=self.model_type,
            dataset_id=self.dataset_id,
            feature_names=list(self.feature_names or []),
            target_variable=self.target_variable,
            artifact_path=self.artifact_path,
            accuracy=self.accuracy,
            metadata=dict(self.model_metadata or {}),
            trained_at=self.trained_at,
        )


__all__ = ["Dataset", "TrainedModel"]
