"""
Diagnosis workflow for a single patient.

States::

    NO_DIAGNOSIS -> DRAFT -> SUBMITTED -> REVISING -> SUBMITTED

DRAFT and REVISING are form state held by the workflow object and never
written to the store. Only `submit()` touches the store, and only when the
form is complete.
"""
import enum
import logging
from typing import Optional

from . import schemas
from .store import AnnotationStore

logger = logging.getLogger(__name__)

INCOMPLETE_MESSAGE = "Please select both diagnosis and confidence level"


class DiagnosisState(str, enum.Enum):
    NO_DIAGNOSIS = "no_diagnosis"
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVISING = "revising"


class IncompleteDiagnosisError(ValueError):
    def __init__(self, message: str = INCOMPLETE_MESSAGE):
        super().__init__(message)


class InvalidTransitionError(RuntimeError):
    pass


class DiagnosisForm(schemas.DiagnosisBase):
    """Values the reviewer has picked but not yet submitted."""


def is_complete(diagnosis: Optional[schemas.DiagnosisBase]) -> bool:
    return diagnosis is not None and diagnosis.is_complete


class DiagnosisWorkflow:
    def __init__(self, store: AnnotationStore, patient_id: str):
        self.store = store
        self.patient_id = patient_id
        self.form: Optional[DiagnosisForm] = None

    @property
    def committed(self) -> Optional[schemas.PatientDiagnosis]:
        return self.store.get_diagnosis(self.patient_id)

    @property
    def state(self) -> DiagnosisState:
        submitted = is_complete(self.committed)
        if self.form is not None:
            return DiagnosisState.REVISING if submitted else DiagnosisState.DRAFT
        return DiagnosisState.SUBMITTED if submitted else DiagnosisState.NO_DIAGNOSIS

    def _open_form(self) -> DiagnosisForm:
        if self.form is None:
            committed = self.committed
            if committed is not None:
                # Revisions start from what is on record, not from a blank form
                self.form = DiagnosisForm(
                    diagnosis=committed.diagnosis, confidence=committed.confidence, notes=committed.notes
                )
            else:
                self.form = DiagnosisForm()
        return self.form

    def start_revision(self) -> DiagnosisForm:
        if self.state is not DiagnosisState.SUBMITTED:
            raise InvalidTransitionError(f"Cannot revise from state {self.state.value}")
        return self._open_form()

    def select_diagnosis(self, diagnosis: Optional[schemas.DiagnosisLabel]) -> DiagnosisForm:
        form = self._open_form()
        form.diagnosis = diagnosis
        return form

    def select_confidence(self, confidence: Optional[schemas.ConfidenceLevel]) -> DiagnosisForm:
        form = self._open_form()
        form.confidence = confidence
        return form

    def set_notes(self, notes: str) -> DiagnosisForm:
        form = self._open_form()
        form.notes = notes
        return form

    def fill(self, values: schemas.DiagnosisBase) -> DiagnosisForm:
        """Replace every form field at once, as a single form post does."""
        form = self._open_form()
        form.diagnosis = values.diagnosis
        form.confidence = values.confidence
        form.notes = values.notes
        return form

    def submit(self) -> schemas.PatientDiagnosis:
        if self.form is None:
            if self.state is DiagnosisState.SUBMITTED:
                raise InvalidTransitionError("Nothing to submit: open a revision first")
            raise IncompleteDiagnosisError()
        if not self.form.is_complete:
            logger.info("Rejected incomplete diagnosis for %s", self.patient_id)
            raise IncompleteDiagnosisError()
        record = self.store.set_diagnosis(
            schemas.DiagnosisCreate(patient_id=self.patient_id, **self.form.model_dump())
        )
        self.form = None
        return record

    def cancel(self) -> None:
        self.form = None


def compare(patient: schemas.PatientData, diagnosis: schemas.PatientDiagnosis) -> schemas.DiagnosisComparison:
    """Score the reviewer's diagnosis against ground truth and the model."""
    if not is_complete(diagnosis):
        raise IncompleteDiagnosisError()
    prediction = patient.patient_prediction
    return schemas.DiagnosisComparison(
        patient_id=patient.patient_id,
        doctor_diagnosis=diagnosis.diagnosis,
        doctor_confidence=diagnosis.confidence,
        doctor_notes=diagnosis.notes,
        true_diagnosis=patient.true_diagnosis,
        model_prediction=prediction.predicted_label,
        model_confidence=prediction.confidence,
        ad_votes=prediction.ad_votes,
        total_slices=prediction.total_slices,
        doctor_correct=diagnosis.diagnosis == patient.true_diagnosis,
        model_correct=patient.is_correct,
        agrees_with_model=diagnosis.diagnosis == prediction.predicted_label,
    )


def review_status(store: AnnotationStore, patient_id: str) -> schemas.ReviewStatus:
    diagnosis = store.get_diagnosis(patient_id)
    complete = is_complete(diagnosis)
    return schemas.ReviewStatus(
        diagnosis_complete=complete,
        diagnosis=diagnosis.diagnosis if complete else None,
        confidence=diagnosis.confidence if complete else None,
        annotated_slices=len(store.get_annotations(patient_id)),
    )
