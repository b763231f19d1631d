import logging
import os
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Response
from fastapi.responses import FileResponse, RedirectResponse
from pydantic import BaseModel

from . import schemas
from .annotations import CanvasPath, SketchCanvas, serialize_paths
from .config import config
from .predictions import (
    PatientNotFoundError,
    PredictionDataError,
    PredictionSource,
    clamp_slice_index,
    gradcam_filename,
)
from .store import AnnotationStore, create_store
from .workflow import DiagnosisWorkflow, IncompleteDiagnosisError, compare, is_complete, review_status

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


class AnnotationCreate(BaseModel):
    paths: List[CanvasPath] = []
    image_data: Optional[str] = None

# --- Configuration & Initialization ---

app = FastAPI(title="S.H.I.A - Alzheimer's MRI Review")

_store = create_store(config)
_predictions = PredictionSource(config.PREDICTIONS_ROOT, timeout=config.FETCH_TIMEOUT)
logger.info("Serving predictions from %s", config.PREDICTIONS_ROOT)


def get_store() -> AnnotationStore:
    return _store


def get_predictions() -> PredictionSource:
    return _predictions


def load_patient(patient_id: str, predictions: PredictionSource) -> schemas.PatientData:
    """Loads a patient document, mapping load failures onto HTTP errors."""
    try:
        return predictions.load_patient(patient_id)
    except PatientNotFoundError:
        raise HTTPException(status_code=404, detail="Patient not found")
    except PredictionDataError as e:
        logger.error("Failed to load patient %s: %s", patient_id, e)
        raise HTTPException(status_code=503, detail="Failed to load prediction data")


def check_slice(patient: schemas.PatientData, slice_index: int) -> None:
    if not 0 <= slice_index < patient.num_slices:
        raise HTTPException(status_code=404, detail="Slice not found")


def image_url(patient_id: str, filename: str) -> str:
    return f"/images/{patient_id}/{filename}"

# --- API Endpoints ---

@app.get("/api/patients", response_model=schemas.PatientListing)
def list_patients(
    store: AnnotationStore = Depends(get_store),
    predictions: PredictionSource = Depends(get_predictions),
):
    """Returns every patient with the reviewer's progress on each."""
    try:
        data = predictions.load_global()
    except PredictionDataError as e:
        logger.error("Failed to load patient list: %s", e)
        raise HTTPException(status_code=503, detail="Failed to load prediction data")
    entries = [
        schemas.PatientListEntry(**p.model_dump(), review=review_status(store, p.patient_id))
        for p in data.patients
    ]
    return schemas.PatientListing(total_patients=data.total_patients, threshold=data.threshold, patients=entries)


@app.get("/api/patients/{patient_id}", response_model=schemas.PatientData)
def get_patient(patient_id: str, predictions: PredictionSource = Depends(get_predictions)):
    return load_patient(patient_id, predictions)


@app.get("/api/patients/{patient_id}/slices/{slice_index}", response_model=schemas.SliceView)
def get_slice(
    patient_id: str,
    slice_index: int,
    store: AnnotationStore = Depends(get_store),
    predictions: PredictionSource = Depends(get_predictions),
):
    """Returns one slice. Out-of-range indices are clamped rather than rejected."""
    patient = load_patient(patient_id, predictions)
    index = clamp_slice_index(slice_index, patient.num_slices)
    prediction = patient.slice_predictions[index]
    return schemas.SliceView(
        patient_id=patient_id,
        slice_index=index,
        num_slices=patient.num_slices,
        prediction=prediction,
        original_url=image_url(patient_id, prediction.original),
        gradcam_url=image_url(patient_id, gradcam_filename(prediction)),
        annotation=store.get_annotation(patient_id, index),
    )


@app.get("/api/patients/{patient_id}/annotations", response_model=List[schemas.SliceAnnotation])
def list_annotations(patient_id: str, store: AnnotationStore = Depends(get_store)):
    return store.get_annotations(patient_id)


@app.get("/api/patients/{patient_id}/annotations/{slice_index}", response_model=schemas.SliceAnnotation)
def get_annotation(patient_id: str, slice_index: int, store: AnnotationStore = Depends(get_store)):
    annotation = store.get_annotation(patient_id, slice_index)
    if annotation is None:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return annotation


@app.put("/api/patients/{patient_id}/annotations/{slice_index}", response_model=Optional[schemas.SliceAnnotation])
def save_annotation(
    patient_id: str,
    slice_index: int,
    body: AnnotationCreate,
    store: AnnotationStore = Depends(get_store),
    predictions: PredictionSource = Depends(get_predictions),
):
    """
    Saves the drawing for a slice, replacing any earlier one.
    An empty stroke set saves nothing and returns null.
    """
    patient = load_patient(patient_id, predictions)
    check_slice(patient, slice_index)
    if not body.paths:
        return None
    image_data = body.image_data
    if image_data is None:
        canvas = SketchCanvas()
        canvas.load_paths(body.paths)
        try:
            image_data = canvas.export_image()
        except ValueError as e:
            raise HTTPException(status_code=422, detail=f"Cannot render drawing: {e}")
    return store.add_annotation(patient_id, slice_index, serialize_paths(body.paths), image_data)


@app.delete("/api/patients/{patient_id}/annotations/{slice_index}", status_code=204)
def delete_annotation(patient_id: str, slice_index: int, store: AnnotationStore = Depends(get_store)):
    store.remove_annotation(patient_id, slice_index)
    return Response(status_code=204)


@app.get("/api/patients/{patient_id}/diagnosis", response_model=schemas.PatientDiagnosis)
def get_diagnosis(patient_id: str, store: AnnotationStore = Depends(get_store)):
    diagnosis = store.get_diagnosis(patient_id)
    if diagnosis is None:
        raise HTTPException(status_code=404, detail="No diagnosis submitted")
    return diagnosis


@app.put("/api/patients/{patient_id}/diagnosis", response_model=schemas.PatientDiagnosis)
def submit_diagnosis(
    patient_id: str,
    form: schemas.DiagnosisBase,
    store: AnnotationStore = Depends(get_store),
    predictions: PredictionSource = Depends(get_predictions),
):
    """Submits a first diagnosis or a revision. Both overwrite the stored record."""
    load_patient(patient_id, predictions)
    workflow = DiagnosisWorkflow(store, patient_id)
    workflow.fill(form)
    try:
        return workflow.submit()
    except IncompleteDiagnosisError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.get("/api/patients/{patient_id}/results", response_model=schemas.DiagnosisComparison)
def get_results(
    patient_id: str,
    store: AnnotationStore = Depends(get_store),
    predictions: PredictionSource = Depends(get_predictions),
):
    """Compares the reviewer's diagnosis with the model and the ground truth."""
    patient = load_patient(patient_id, predictions)
    diagnosis = store.get_diagnosis(patient_id)
    if not is_complete(diagnosis):
        raise HTTPException(status_code=404, detail="No diagnosis submitted")
    return compare(patient, diagnosis)


@app.get("/images/{patient_id}/{filename}")
def get_image(patient_id: str, filename: str, predictions: PredictionSource = Depends(get_predictions)):
    try:
        path = predictions.image_location(patient_id, filename)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Image not found")
    if predictions.is_remote:
        return RedirectResponse(path)
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(path)


# --- Uvicorn Runner ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("shia.main:app", host="0.0.0.0", port=8000, reload=True)
