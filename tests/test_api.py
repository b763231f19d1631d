import pytest

from shia.annotations import deserialize_paths
from shia.main import app, get_predictions
from shia.predictions import PredictionSource

STROKES = [{"paths": [{"x": 10, "y": 10}, {"x": 40, "y": 45}], "strokeWidth": 4, "strokeColor": "#FF0000", "drawMode": True}]


def test_list_patients_shows_review_status(client):
    client.put("/api/patients/P001/diagnosis", json={"diagnosis": "AD", "confidence": "high"})
    client.put("/api/patients/P001/annotations/2", json={"paths": STROKES})

    response = client.get("/api/patients")

    assert response.status_code == 200
    body = response.json()
    assert body["total_patients"] == 2
    reviews = {p["patient_id"]: p["review"] for p in body["patients"]}
    assert reviews["P001"] == {"diagnosis_complete": True, "diagnosis": "AD", "confidence": "high", "annotated_slices": 1}
    assert reviews["P002"]["diagnosis_complete"] is False


def test_list_patients_without_data(client, tmp_path):
    app.dependency_overrides[get_predictions] = lambda: PredictionSource(str(tmp_path / "missing"))
    response = client.get("/api/patients")
    assert response.status_code == 503
    assert response.json()["detail"] == "Failed to load prediction data"


def test_get_patient(client):
    response = client.get("/api/patients/P002")
    assert response.status_code == 200
    assert response.json()["num_slices"] == 4


def test_unknown_patient(client):
    response = client.get("/api/patients/NOPE")
    assert response.status_code == 404
    assert response.json()["detail"] == "Patient not found"


def test_service_survives_failures(client):
    assert client.get("/api/patients/NOPE").status_code == 404
    assert client.put("/api/patients/P001/diagnosis", json={"diagnosis": "AD"}).status_code == 422
    assert client.get("/api/patients/P001").status_code == 200


@pytest.mark.parametrize("requested, expected", [(2, 2), (42, 4), (-5, 0)])
def test_slice_view_clamps(client, requested, expected):
    response = client.get(f"/api/patients/P001/slices/{requested}")
    assert response.status_code == 200
    body = response.json()
    assert body["slice_index"] == expected
    assert body["prediction"]["slice_index"] == expected
    assert body["original_url"] == f"/images/P001/slice_{expected:03d}_original.png"


def test_slice_view_includes_annotation_and_gradcam(client):
    client.put("/api/patients/P001/annotations/1", json={"paths": STROKES})
    body = client.get("/api/patients/P001/slices/1").json()

    # slice 1 is predicted CN by the fixture data
    assert body["gradcam_url"] == "/images/P001/slice_001_cn_overlay.png"
    assert body["annotation"]["slice_index"] == 1


def test_save_annotation_renders_snapshot(client):
    response = client.put("/api/patients/P002/annotations/2", json={"paths": STROKES})

    assert response.status_code == 200
    body = response.json()
    assert body["slice_index"] == 2
    assert body["image_data"].startswith("data:image/png;base64,")
    assert [p.model_dump(by_alias=True) for p in deserialize_paths(body["note"])] == [
        {"paths": [{"x": 10.0, "y": 10.0}, {"x": 40.0, "y": 45.0}], "strokeWidth": 4.0, "strokeColor": "#FF0000", "drawMode": True}
    ]


def test_save_annotation_keeps_client_snapshot(client):
    body = client.put(
        "/api/patients/P002/annotations/0", json={"paths": STROKES, "image_data": "data:image/png;base64,AAAA"}
    ).json()
    assert body["image_data"] == "data:image/png;base64,AAAA"


def test_empty_stroke_save_is_noop(client, memory_store):
    client.put("/api/patients/P002/annotations/1", json={"paths": STROKES})

    response = client.put("/api/patients/P002/annotations/1", json={"paths": []})

    assert response.status_code == 200
    assert response.json() is None
    assert memory_store.get_annotation("P002", 1) is not None
    assert client.put("/api/patients/P002/annotations/3", json={"paths": []}).json() is None
    assert memory_store.get_annotation("P002", 3) is None


def test_annotation_outside_slice_range(client):
    assert client.put("/api/patients/P002/annotations/4", json={"paths": STROKES}).status_code == 404
    assert client.put("/api/patients/NOPE/annotations/0", json={"paths": STROKES}).status_code == 404


def test_bad_stroke_color(client):
    bad = [dict(STROKES[0], strokeColor="not-a-color")]
    assert client.put("/api/patients/P002/annotations/0", json={"paths": bad}).status_code == 422


def test_annotation_listing_and_delete(client):
    for index in [3, 0, 2]:
        client.put(f"/api/patients/P001/annotations/{index}", json={"paths": STROKES})

    assert [a["slice_index"] for a in client.get("/api/patients/P001/annotations").json()] == [0, 2, 3]

    assert client.delete("/api/patients/P001/annotations/2").status_code == 204
    assert client.get("/api/patients/P001/annotations/2").status_code == 404
    assert [a["slice_index"] for a in client.get("/api/patients/P001/annotations").json()] == [0, 3]
    # deleting again is not an error
    assert client.delete("/api/patients/P001/annotations/2").status_code == 204


def test_incomplete_diagnosis_rejected(client):
    response = client.put("/api/patients/P001/diagnosis", json={"confidence": "low", "notes": "unsure"})

    assert response.status_code == 422
    assert response.json()["detail"] == "Please select both diagnosis and confidence level"
    assert client.get("/api/patients/P001/diagnosis").status_code == 404


def test_invalid_diagnosis_value(client):
    response = client.put("/api/patients/P001/diagnosis", json={"diagnosis": "MCI", "confidence": "low"})
    assert response.status_code == 422


def test_diagnosis_for_unknown_patient(client):
    response = client.put("/api/patients/NOPE/diagnosis", json={"diagnosis": "AD", "confidence": "low"})
    assert response.status_code == 404


def test_submit_and_revise_diagnosis(client):
    first = client.put("/api/patients/P002/diagnosis", json={"diagnosis": "AD", "confidence": "low", "notes": "maybe"})
    assert first.status_code == 200

    revised = client.put("/api/patients/P002/diagnosis", json={"diagnosis": "CN", "confidence": "high"})
    assert revised.status_code == 200

    body = client.get("/api/patients/P002/diagnosis").json()
    assert (body["diagnosis"], body["confidence"], body["notes"]) == ("CN", "high", "")
    assert body["patient_id"] == "P002"


def test_results_scenario(client):
    client.put("/api/patients/P001/diagnosis", json={"diagnosis": "CN", "confidence": "medium"})

    response = client.get("/api/patients/P001/results")

    assert response.status_code == 200
    body = response.json()
    assert body["doctor_correct"] is False
    assert body["model_correct"] is True
    assert body["true_diagnosis"] == "AD"
    assert body["model_prediction"] == "AD"


def test_results_without_diagnosis(client):
    assert client.get("/api/patients/P001/results").status_code == 404


def test_image_served(client):
    response = client.get("/images/P001/slice_000_original.png")
    assert response.status_code == 200
    assert response.content.startswith(b"\x89PNG")


def test_missing_image(client):
    assert client.get("/images/P001/slice_004_original.png").status_code == 404
    assert client.get("/images/P002/slice_000_original.png").status_code == 404
