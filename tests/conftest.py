import json
import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shia import models, schemas  # noqa: F401  models registers the tables
from shia.database import Base
from shia.main import app, get_predictions, get_store
from shia.predictions import PredictionSource
from shia.store import InMemoryAnnotationStore, SQLAnnotationStore


def build_patient_doc(patient_id, num_slices=5, true_diagnosis="AD", predicted_label="AD", is_correct=True):
    slices = []
    for i in range(num_slices):
        ad_prob = 0.8 if i % 2 == 0 else 0.3
        label = "AD" if ad_prob >= 0.5 else "CN"
        slices.append({
            "slice_index": i,
            "slice_number": 60 + i,
            "predicted_class": 1 if label == "AD" else 0,
            "predicted_label": label,
            "confidence": max(ad_prob, 1 - ad_prob),
            "cn_prob": round(1 - ad_prob, 2),
            "ad_prob": ad_prob,
            "original": f"slice_{i:03d}_original.png",
            "overlay": f"slice_{i:03d}_overlay.png",
            "cn_overlay": f"slice_{i:03d}_cn_overlay.png",
            "ad_overlay": f"slice_{i:03d}_ad_overlay.png",
        })
    ad_votes = sum(1 for s in slices if s["predicted_label"] == "AD")
    return {
        "patient_id": patient_id,
        "true_diagnosis": true_diagnosis,
        "true_label": "1" if true_diagnosis == "AD" else "0",
        "num_slices": num_slices,
        "patient_prediction": {
            "prediction": 1 if predicted_label == "AD" else 0,
            "predicted_label": predicted_label,
            "ad_votes": ad_votes,
            "cn_votes": num_slices - ad_votes,
            "total_slices": num_slices,
            "confidence": 0.72,
            "avg_ad_prob": 0.6,
            "max_ad_prob": 0.8,
            "min_ad_prob": 0.3,
            "std_ad_prob": 0.25,
        },
        "is_correct": is_correct,
        "slice_predictions": slices,
    }


def summary_of(doc):
    prediction = doc["patient_prediction"]
    return {
        "patient_id": doc["patient_id"],
        "true_diagnosis": doc["true_diagnosis"],
        "true_label": doc["true_label"],
        "num_slices": doc["num_slices"],
        "prediction": prediction["predicted_label"],
        "confidence": prediction["confidence"],
        "ad_votes": prediction["ad_votes"],
        "cn_votes": prediction["cn_votes"],
        "is_correct": doc["is_correct"],
        "avg_ad_prob": prediction["avg_ad_prob"],
    }


def write_json(path, data):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f)


@pytest.fixture
def make_patient():
    def _make(patient_id="P001", **kwargs):
        return schemas.PatientData.model_validate(build_patient_doc(patient_id, **kwargs))
    return _make


@pytest.fixture
def predictions_root(tmp_path):
    """P001: AD, model right. P002: CN, model wrong."""
    root = tmp_path / "output_predictions"
    docs = [
        build_patient_doc("P001", num_slices=5, true_diagnosis="AD", predicted_label="AD", is_correct=True),
        build_patient_doc("P002", num_slices=4, true_diagnosis="CN", predicted_label="AD", is_correct=False),
    ]
    for doc in docs:
        write_json(str(root / "patients" / doc["patient_id"] / "predictions.json"), doc)
    write_json(str(root / "predictions.json"), {
        "total_patients": len(docs),
        "threshold": 0.5,
        "patients": [summary_of(d) for d in docs],
    })
    slices_dir = root / "patients" / "P001" / "slices"
    slices_dir.mkdir(parents=True)
    (slices_dir / "slice_000_original.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    return root


@pytest.fixture
def predictions(predictions_root):
    return PredictionSource(str(predictions_root))


@pytest.fixture
def memory_store():
    return InMemoryAnnotationStore()


@pytest.fixture
def sql_store():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield SQLAnnotationStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def client(memory_store, predictions):
    app.dependency_overrides[get_store] = lambda: memory_store
    app.dependency_overrides[get_predictions] = lambda: predictions
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
