from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DiagnosisLabel = Literal["CN", "AD"]
ConfidenceLevel = Literal["low", "medium", "high"]

# --- Prediction Schemas (read-only, produced by the prediction pipeline) ---

class SlicePrediction(BaseModel):
    slice_index: int = Field(ge=0)
    slice_number: int
    predicted_class: int
    predicted_label: str
    confidence: float = Field(ge=0, le=1)
    cn_prob: float = Field(ge=0, le=1)
    ad_prob: float = Field(ge=0, le=1)
    original: str
    overlay: str
    cn_overlay: str
    ad_overlay: str


class PatientPrediction(BaseModel):
    prediction: int
    predicted_label: str
    ad_votes: int
    cn_votes: int
    total_slices: int
    confidence: float = Field(ge=0, le=1)
    avg_ad_prob: float
    max_ad_prob: float
    min_ad_prob: float
    std_ad_prob: float


class PatientData(BaseModel):
    patient_id: str
    true_diagnosis: str
    true_label: str
    num_slices: int = Field(gt=0)
    patient_prediction: PatientPrediction
    is_correct: bool
    slice_predictions: List[SlicePrediction]

    @model_validator(mode="after")
    def check_slice_range(self):
        """Slice indices must be unique and cover exactly [0, num_slices)."""
        indices = sorted(s.slice_index for s in self.slice_predictions)
        if indices != list(range(self.num_slices)):
            raise ValueError(
                f"slice_predictions for {self.patient_id} do not cover slices 0..{self.num_slices - 1}"
            )
        self.slice_predictions.sort(key=lambda s: s.slice_index)
        return self


class PatientSummary(BaseModel):
    patient_id: str
    true_diagnosis: str
    true_label: str
    num_slices: int
    prediction: str
    confidence: float
    ad_votes: int
    cn_votes: int
    is_correct: bool
    avg_ad_prob: float


class GlobalPredictions(BaseModel):
    total_patients: int
    threshold: float
    patients: List[PatientSummary] = []


# --- Review Schemas (owned by the annotation store) ---

def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SliceAnnotation(BaseModel):
    slice_index: int
    note: str
    image_data: Optional[str] = None
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    class Config:
        from_attributes = True


class DiagnosisBase(BaseModel):
    diagnosis: Optional[DiagnosisLabel] = None
    confidence: Optional[ConfidenceLevel] = None
    notes: str = ""

    @property
    def is_complete(self) -> bool:
        return self.diagnosis is not None and self.confidence is not None


class DiagnosisCreate(DiagnosisBase):
    patient_id: str


class PatientDiagnosis(DiagnosisCreate):
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    class Config:
        from_attributes = True


# --- API Schemas ---

class ReviewStatus(BaseModel):
    diagnosis_complete: bool
    diagnosis: Optional[DiagnosisLabel] = None
    confidence: Optional[ConfidenceLevel] = None
    annotated_slices: int = 0


class PatientListEntry(PatientSummary):
    review: ReviewStatus


class PatientListing(BaseModel):
    total_patients: int
    threshold: float
    patients: List[PatientListEntry] = []


class SliceView(BaseModel):
    patient_id: str
    slice_index: int
    num_slices: int
    prediction: SlicePrediction
    original_url: str
    gradcam_url: str
    annotation: Optional[SliceAnnotation] = None


class DiagnosisComparison(BaseModel):
    patient_id: str
    doctor_diagnosis: DiagnosisLabel
    doctor_confidence: ConfidenceLevel
    doctor_notes: str = ""
    true_diagnosis: str
    model_prediction: str
    model_confidence: float
    ad_votes: int
    total_slices: int
    doctor_correct: bool
    model_correct: bool
    agrees_with_model: bool
