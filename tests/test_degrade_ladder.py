import json
import logging

import pytest

from helpers import make_pdf, pdf_data_uri

from app.services.submission.submission_repository import SubmissionRepository

SCREENSHOT = "data:image/png;base64," + "A" * 4096


async def test_emergency_records_and_stores_text_blob(student_client, instructor_client, services):
    response = await student_client.post("/api/submissions/emergency", json={
        "examId": "exam-1",
        "studentName": "Alice Kim",
        "imageData": SCREENSHOT,
        "forcedComplete": True,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["recorded"] is True

    detail = (await student_client.get(f"/api/submissions/{body['submissionId']}")).json()["data"]
    assert detail["isEmergency"] is True
    assert detail["studentId"] == "alice"
    assert detail["storageMode"] == "text-fallback"
    assert detail["degradedReason"] == "Forced complete emergency submission"
    # the text blob is written by a background task after the response
    assert detail["fileId"] is not None
    assert detail["reassemblyComplete"] is True

    blob = await services.blob_store.info(detail["fileId"])
    assert blob.metadata["isEmergencySubmission"] is True

    record = await instructor_client.get(f"/api/submissions/file/{body['submissionId']}")
    assert json.loads(record.content)["examId"] == "exam-1"


async def test_emergency_works_without_login(client, db):
    response = await client.post("/api/submissions/emergency", json={"examId": "exam-9", "studentId": "s-42"})

    assert response.status_code == 200
    assert response.json()["recorded"] is True
    [record] = await SubmissionRepository(db).find_by_exam("exam-9")
    assert record.student_id == "s-42"


async def test_emergency_record_does_not_block_real_submission(student_client):
    await student_client.post("/api/submissions/emergency", json={"examId": "exam-1"})

    response = await student_client.post("/api/submissions", json={
        "examId": "exam-1", "studentName": "Alice", "pdfData": pdf_data_uri(make_pdf()),
    })
    assert response.status_code == 201


@pytest.mark.parametrize("path", ["/api/submissions/emergency", "/api/submissions/simplified", "/api/exams/submit"])
async def test_missing_exam_id_is_the_only_rejection(client, path):
    response = await client.post(path, json={"studentName": "Alice"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Missing exam ID"}


async def test_simplified_skips_binary_storage(student_client, db):
    response = await student_client.post("/api/submissions/simplified", json={"examId": "exam-1"})

    assert response.status_code == 200
    [record] = await SubmissionRepository(db).find_by_exam("exam-1")
    assert record.primary_blob_id is None
    assert record.text_only is True
    assert record.degraded_reason == "Simplified text-only submission"


async def test_ultra_simple_accepts_anything(client, db):
    response = await client.post("/api/submissions/ultra-simple", json={"note": "no exam id at all"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["recorded"] is None
    [record] = await SubmissionRepository(db).find_by_exam("unknown")
    assert record.emergency_data["note"] == "no exam id at all"


async def test_ultra_simple_accepts_malformed_body(client):
    response = await client.post(
        "/api/submissions/ultra-simple",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True


async def test_exam_submit_keeps_payload_but_logs_only_its_size(client, db, caplog):
    with caplog.at_level(logging.WARNING):
        response = await client.post("/api/exams/submit", json={
            "examId": "exam-1",
            "studentName": "Alice",
            "imageData": SCREENSHOT,
        })

    assert response.status_code == 200
    assert response.json()["recorded"] is True
    assert SCREENSHOT not in caplog.text
    assert "<4KB>" in caplog.text

    [record] = await SubmissionRepository(db).find_by_exam("exam-1")
    assert record.emergency_data["imageData"] == SCREENSHOT
    assert record.degraded_reason == "Emergency submission via exams/submit endpoint"


@pytest.mark.parametrize("path", [
    "/api/submissions/emergency",
    "/api/submissions/simplified",
    "/api/submissions/ultra-simple",
    "/api/exams/submit",
])
async def test_record_store_failure_is_still_acknowledged(client, monkeypatch, path):
    async def broken_create(self, **fields):
        raise RuntimeError("database is on fire")

    monkeypatch.setattr(SubmissionRepository, "create", broken_create)

    response = await client.post(path, json={"examId": "exam-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["recorded"] in (False, None)
