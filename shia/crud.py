from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from . import models, schemas

# --- Annotation CRUD ---

def get_annotations(db: Session, patient_id: str):
    return (
        db.query(models.SliceAnnotation)
        .filter(models.SliceAnnotation.patient_id == patient_id)
        .order_by(models.SliceAnnotation.slice_index)
        .all()
    )


def get_annotation(db: Session, patient_id: str, slice_index: int):
    return (
        db.query(models.SliceAnnotation)
        .filter(
            models.SliceAnnotation.patient_id == patient_id,
            models.SliceAnnotation.slice_index == slice_index,
        )
        .first()
    )


def upsert_annotation(
    db: Session,
    patient_id: str,
    slice_index: int,
    note: str,
    image_data: Optional[str],
    timestamp: datetime,
):
    """
    Writes the annotation for a slice, replacing every field of an existing one.
    """
    db_annotation = get_annotation(db, patient_id, slice_index)
    if db_annotation is None:
        db_annotation = models.SliceAnnotation(patient_id=patient_id, slice_index=slice_index)
        db.add(db_annotation)
    db_annotation.note = note
    db_annotation.image_data = image_data
    db_annotation.timestamp = timestamp
    db.commit()
    db.refresh(db_annotation)
    return db_annotation


def delete_annotation(db: Session, patient_id: str, slice_index: int) -> bool:
    deleted = (
        db.query(models.SliceAnnotation)
        .filter(
            models.SliceAnnotation.patient_id == patient_id,
            models.SliceAnnotation.slice_index == slice_index,
        )
        .delete()
    )
    db.commit()
    return deleted > 0

# --- Diagnosis CRUD ---

def get_diagnosis(db: Session, patient_id: str):
    return db.get(models.PatientDiagnosis, patient_id)


def upsert_diagnosis(db: Session, diagnosis: schemas.DiagnosisCreate, timestamp: datetime):
    db_diagnosis = get_diagnosis(db, diagnosis.patient_id)
    if db_diagnosis is None:
        db_diagnosis = models.PatientDiagnosis(patient_id=diagnosis.patient_id)
        db.add(db_diagnosis)
    db_diagnosis.diagnosis = diagnosis.diagnosis
    db_diagnosis.confidence = diagnosis.confidence
    db_diagnosis.notes = diagnosis.notes
    db_diagnosis.timestamp = timestamp
    db.commit()
    db.refresh(db_diagnosis)
    return db_diagnosis
