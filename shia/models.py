from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from .database import Base


class SliceAnnotation(Base):
    __tablename__ = "slice_annotations"
    __table_args__ = (UniqueConstraint("patient_id", "slice_index", name="uq_annotation_slice"),)

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String, index=True, nullable=False)
    slice_index = Column(Integer, nullable=False)
    note = Column(Text, nullable=False)
    image_data = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)


class PatientDiagnosis(Base):
    __tablename__ = "patient_diagnoses"

    patient_id = Column(String, primary_key=True)
    diagnosis = Column(String, nullable=True)
    confidence = Column(String, nullable=True)
    notes = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime(timezone=True), nullable=False)
