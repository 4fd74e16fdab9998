"""Uploaded dataset storage and owner-scoped access."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Sequence

from sqlalchemy.orm import Session, sessionmaker

from app.security import require_owner
from common.errors import ArtifactDeletionError, DatasetNotFound, InvalidDataset, ValidationAppError
from common.io import secure_filename, write_bytes_atomic
from common.logging import get_logger, operation_context
from common.validation import UploadLimit, enforce_dataframe_limits, enforce_size

from ..core.artifacts import ModelArtifactStore
from ..core.table import DatasetTable, build_table, read_csv_bytes, read_csv_path
from .database import session_scope
from .locks import DatasetLockRegistry
from .models import Dataset, TrainedModel
from .schemas import DatasetRecord

LOGGER = get_logger(__name__)

ALLOWED_EXTENSIONS = {".csv"}


class DatasetService:
    def __init__(
        self,
        session_factory: sessionmaker,
        upload_root: Path,
        artifacts: ModelArtifactStore,
        *,
        locks: DatasetLockRegistry | None = None,
        limits: UploadLimit | None = None,
    ):
        self.session_factory = session_factory
        self.upload_root = Path(upload_root)
        self.artifacts = artifacts
        self.locks = locks or DatasetLockRegistry()
        self.limits = limits or UploadLimit.from_settings(None)

    @staticmethod
    def find(session: Session, dataset_id: int, owner_id: int) -> Dataset | None:
        return (
            session.query(Dataset)
            .filter(Dataset.id == dataset_id, Dataset.owner_id == owner_id)
            .one_or_none()
        )

    def upload(self, data: bytes, file_name: str, owner_id: object) -> DatasetRecord:
        owner = require_owner(owner_id)
        with operation_context("upload_dataset", owner_id=owner, file_name=file_name) as context:
            safe_name = secure_filename(file_name or "", fallback="dataset.csv")
            if Path(safe_name).suffix.lower() not in ALLOWED_EXTENSIONS:
                raise ValidationAppError("Only CSV files are allowed", details={"file_name": file_name})
            enforce_size(data, self.limits)
            frame = read_csv_bytes(data)
            headers = [str(column) for column in frame.columns]
            if not headers:
                raise InvalidDataset("Dataset must have a header row")
            enforce_dataframe_limits(frame, self.limits)

            target = self.upload_root / "datasets" / f"{uuid.uuid4().hex}.csv"
            write_bytes_atomic(target, data)
            try:
                with session_scope(self.session_factory) as session:
                    row = Dataset(
                        owner_id=owner,
                        file_name=file_name,
                        file_path=str(target),
                        headers=headers,
                        row_count=int(frame.shape[0]),
                    )
                    session.add(row)
                    session.commit()
                    record = row.to_record()
            except Exception:
                self.artifacts.discard(target)
                raise
            context["dataset_id"] = record.id
            return record

    def get(self, dataset_id: int, owner_id: object) -> DatasetRecord:
        owner = require_owner(owner_id)
        with session_scope(self.session_factory) as session:
            row = self.find(session, dataset_id, owner)
            if row is None:
                raise DatasetNotFound("Dataset not found", details={"dataset_id": dataset_id})
            return row.to_record()

    def list_datasets(self, owner_id: object) -> list[DatasetRecord]:
        owner = require_owner(owner_id)
        with session_scope(self.session_factory) as session:
            rows = session.query(Dataset).filter(Dataset.owner_id == owner).order_by(Dataset.id).all()
            return [row.to_record() for row in rows]

    def file_path(self, dataset_id: int, owner_id: object) -> Path:
        owner = require_owner(owner_id)
        with session_scope(self.session_factory) as session:
            row = self.find(session, dataset_id, owner)
            if row is None:
                raise DatasetNotFound("Dataset not found", details={"dataset_id": dataset_id})
            return Path(row.file_path)

    def load_table(
        self,
        dataset_id: int,
        owner_id: object,
        feature_names: Sequence[str],
        target: str,
    ) -> DatasetTable:
        path = self.file_path(dataset_id, owner_id)
        try:
            frame = read_csv_path(path)
        except FileNotFoundError:
            raise DatasetNotFound(
                "Dataset file is no longer available",
                details={"dataset_id": dataset_id},
            ) from None
        table = build_table(frame, feature_names, target)
        if table.dropped_rows:
            LOGGER.info(
                "Dropped %s of %s rows with missing values from dataset %s",
                table.dropped_rows,
                table.source_rows,
                dataset_id,
            )
        return table

    def delete(self, dataset_id: int, owner_id: object) -> None:
        """Delete the dataset together with its trained model, if any."""

        owner = require_owner(owner_id)
        with operation_context("delete_dataset", owner_id=owner, dataset_id=dataset_id):
            with self.locks.hold(dataset_id):
                with session_scope(self.session_factory) as session:
                    row = self.find(session, dataset_id, owner)
                    if row is None:
                        raise DatasetNotFound("Dataset not found", details={"dataset_id": dataset_id})
                    files = [row.file_path]
                    model = session.query(TrainedModel).filter(TrainedModel.dataset_id == row.id).one_or_none()
                    if model is not None:
                        files.insert(0, model.artifact_path)
                        session.delete(model)
                        session.flush()
                    session.delete(row)
                    session.commit()
                self._remove_files(files)

    def _remove_files(self, files: list[str]) -> None:
        """Unlink every file, then report the first failure."""

        failures: list[ArtifactDeletionError] = []
        for path in files:
            try:
                self.artifacts.delete(path)
            except ArtifactDeletionError as exc:
                LOGGER.error("Orphaned file left behind: %s", exc.details)
                failures.append(exc)
        if failures:
            raise failures[0]


__all__ = ["ALLOWED_EXTENSIONS", "DatasetService"]
