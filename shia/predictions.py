"""
Read-only access to the prediction pipeline's output.

Layout under the predictions root (a directory or an http(s) base URL)::

    predictions.json
    patients/<patient_id>/predictions.json
    patients/<patient_id>/slices/<image files>
"""
import logging
import os
import urllib.error
import urllib.request

from pydantic import ValidationError

from . import schemas

logger = logging.getLogger(__name__)


class PredictionDataError(Exception):
    """The prediction documents could not be read or parsed."""


class PatientNotFoundError(LookupError):
    def __init__(self, patient_id: str):
        super().__init__(f"Patient not found: {patient_id}")
        self.patient_id = patient_id


def _is_url(s: str) -> bool:
    return s.startswith("http://") or s.startswith("https://")


def _is_plain_segment(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


def clamp_slice_index(index: int, num_slices: int) -> int:
    """Pull a (possibly stale) slice index back into [0, num_slices - 1]."""
    return max(0, min(index, num_slices - 1))


def gradcam_filename(slice_prediction: schemas.SlicePrediction) -> str:
    # The overlay follows the slice's own prediction, not the patient-level one
    if slice_prediction.predicted_label == "AD":
        return slice_prediction.ad_overlay
    return slice_prediction.cn_overlay


class PredictionSource:
    def __init__(self, root: str, timeout: float = 10.0):
        self.root = root.rstrip("/") if _is_url(root) else root
        self.timeout = timeout

    def _location(self, *parts: str) -> str:
        if _is_url(self.root):
            return "/".join((self.root,) + parts)
        return os.path.join(self.root, *parts)

    def _read(self, location: str) -> bytes:
        """Fetch a document. Raises FileNotFoundError when it does not exist."""
        if _is_url(location):
            try:
                with urllib.request.urlopen(location, timeout=self.timeout) as response:
                    return response.read()
            except urllib.error.HTTPError as e:
                if e.code == 404:
                    raise FileNotFoundError(location) from e
                raise PredictionDataError(f"Failed to fetch {location}: HTTP {e.code}") from e
            except (urllib.error.URLError, OSError) as e:
                raise PredictionDataError(f"Failed to fetch {location}: {e}") from e
        try:
            with open(location, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise
        except OSError as e:
            raise PredictionDataError(f"Failed to read {location}: {e}") from e

    def load_global(self) -> schemas.GlobalPredictions:
        location = self._location("predictions.json")
        try:
            raw = self._read(location)
        except FileNotFoundError as e:
            logger.error("Global predictions missing at %s", location)
            raise PredictionDataError(f"No predictions found at {location}") from e
        try:
            return schemas.GlobalPredictions.model_validate_json(raw)
        except ValidationError as e:
            logger.error("Malformed global predictions at %s: %s", location, e)
            raise PredictionDataError(f"Malformed predictions document: {location}") from e

    def load_patient(self, patient_id: str) -> schemas.PatientData:
        if not _is_plain_segment(patient_id):
            raise PatientNotFoundError(patient_id)
        location = self._location("patients", patient_id, "predictions.json")
        try:
            raw = self._read(location)
        except FileNotFoundError as e:
            raise PatientNotFoundError(patient_id) from e
        try:
            patient = schemas.PatientData.model_validate_json(raw)
        except ValidationError as e:
            logger.error("Malformed predictions for %s: %s", patient_id, e)
            raise PredictionDataError(f"Malformed predictions document for {patient_id}") from e
        if patient.patient_id != patient_id:
            logger.error("Document at %s is for patient %s", location, patient.patient_id)
            raise PredictionDataError(f"Predictions document for {patient_id} names patient {patient.patient_id}")
        return patient

    def image_location(self, patient_id: str, filename: str) -> str:
        """Local path or URL of a slice image."""
        if not (_is_plain_segment(patient_id) and _is_plain_segment(filename)):
            raise FileNotFoundError(filename)
        return self._location("patients", patient_id, "slices", filename)

    @property
    def is_remote(self) -> bool:
        return _is_url(self.root)

