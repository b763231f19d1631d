"""
Annotation store: per-patient slice annotations and the reviewer's diagnosis.

The in-memory store lives as long as the process and is the default. The SQL
store keeps the same contract on top of SQLAlchemy for reviews that need to
outlive a session.
"""
import abc
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from . import crud, schemas
from .config import Config
from .database import SessionLocal

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnnotationStore(abc.ABC):
    """Shared source of truth for annotations and diagnoses, keyed by patient id."""

    @abc.abstractmethod
    def add_annotation(
        self, patient_id: str, slice_index: int, path_data: str, image_data: Optional[str] = None
    ) -> schemas.SliceAnnotation:
        """Create or fully replace the annotation for one slice."""

    @abc.abstractmethod
    def remove_annotation(self, patient_id: str, slice_index: int) -> None:
        """Delete the slice's annotation. Absent annotations are ignored."""

    @abc.abstractmethod
    def get_annotations(self, patient_id: str) -> List[schemas.SliceAnnotation]:
        """All annotations for the patient, ascending by slice index."""

    @abc.abstractmethod
    def get_annotation(self, patient_id: str, slice_index: int) -> Optional[schemas.SliceAnnotation]:
        ...

    @abc.abstractmethod
    def set_diagnosis(self, diagnosis: schemas.DiagnosisCreate) -> schemas.PatientDiagnosis:
        """Fully replace the patient's diagnosis, stamped with the current time."""

    @abc.abstractmethod
    def get_diagnosis(self, patient_id: str) -> Optional[schemas.PatientDiagnosis]:
        ...

    @staticmethod
    def _check_path_data(path_data: str) -> None:
        """Rejects an empty note and a note that is an empty JSON stroke list."""
        if not path_data or not path_data.strip():
            raise ValueError("path_data must hold at least one stroke")
        try:
            strokes = json.loads(path_data)
        except ValueError:
            # not JSON; the note stays opaque to the store
            return
        if strokes == []:
            raise ValueError("path_data must hold at least one stroke")


class InMemoryAnnotationStore(AnnotationStore):
    """Every read and write holds one lock, so sync endpoints on the thread pool never interleave."""

    def __init__(self):
        self._lock = threading.Lock()
        self._annotations: Dict[str, List[schemas.SliceAnnotation]] = {}
        self._diagnoses: Dict[str, schemas.PatientDiagnosis] = {}

    def add_annotation(self, patient_id, slice_index, path_data, image_data=None):
        self._check_path_data(path_data)
        annotation = schemas.SliceAnnotation(
            slice_index=slice_index, note=path_data, image_data=image_data, timestamp=utcnow()
        )
        with self._lock:
            kept = [a for a in self._annotations.get(patient_id, []) if a.slice_index != slice_index]
            kept.append(annotation)
            kept.sort(key=lambda a: a.slice_index)
            self._annotations[patient_id] = kept
        logger.debug("Saved annotation for %s slice %d", patient_id, slice_index)
        return annotation

    def remove_annotation(self, patient_id, slice_index):
        with self._lock:
            annotations = self._annotations.get(patient_id, [])
            self._annotations[patient_id] = [a for a in annotations if a.slice_index != slice_index]

    def get_annotations(self, patient_id):
        with self._lock:
            return list(self._annotations.get(patient_id, []))

    def get_annotation(self, patient_id, slice_index):
        with self._lock:
            for annotation in self._annotations.get(patient_id, []):
                if annotation.slice_index == slice_index:
                    return annotation
        return None

    def set_diagnosis(self, diagnosis):
        record = schemas.PatientDiagnosis(**diagnosis.model_dump(exclude={"timestamp"}), timestamp=utcnow())
        with self._lock:
            self._diagnoses[record.patient_id] = record
        logger.info("Recorded diagnosis for %s: %s (%s)", record.patient_id, record.diagnosis, record.confidence)
        return record

    def get_diagnosis(self, patient_id):
        with self._lock:
            return self._diagnoses.get(patient_id)


class SQLAnnotationStore(AnnotationStore):
    """Same contract as the in-memory store, one short-lived session per call."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add_annotation(self, patient_id, slice_index, path_data, image_data=None):
        self._check_path_data(path_data)
        with self._session_factory() as db:
            db_annotation = crud.upsert_annotation(db, patient_id, slice_index, path_data, image_data, utcnow())
            return schemas.SliceAnnotation.model_validate(db_annotation)

    def remove_annotation(self, patient_id, slice_index):
        with self._session_factory() as db:
            crud.delete_annotation(db, patient_id, slice_index)

    def get_annotations(self, patient_id):
        with self._session_factory() as db:
            return [schemas.SliceAnnotation.model_validate(a) for a in crud.get_annotations(db, patient_id)]

    def get_annotation(self, patient_id, slice_index):
        with self._session_factory() as db:
            db_annotation = crud.get_annotation(db, patient_id, slice_index)
            if db_annotation is None:
                return None
            return schemas.SliceAnnotation.model_validate(db_annotation)

    def set_diagnosis(self, diagnosis):
        with self._session_factory() as db:
            db_diagnosis = crud.upsert_diagnosis(db, diagnosis, utcnow())
            logger.info("Recorded diagnosis for %s: %s (%s)", diagnosis.patient_id, diagnosis.diagnosis, diagnosis.confidence)
            return schemas.PatientDiagnosis.model_validate(db_diagnosis)

    def get_diagnosis(self, patient_id):
        with self._session_factory() as db:
            db_diagnosis = crud.get_diagnosis(db, patient_id)
            if db_diagnosis is None:
                return None
            return schemas.PatientDiagnosis.model_validate(db_diagnosis)


def create_store(config: Config) -> AnnotationStore:
    backend = config.STORE_BACKEND.lower()
    if backend == "memory":
        return InMemoryAnnotationStore()
    if backend == "sql":
        logger.info("Using SQL annotation store")
        return SQLAnnotationStore(SessionLocal)
    raise ValueError(f"Unknown store backend: {config.STORE_BACKEND!r}")
