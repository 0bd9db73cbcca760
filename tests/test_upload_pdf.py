from conftest import register
from helpers import make_pdf

from app.services.submission.submission_repository import SubmissionRepository


async def upload(client, pdf, exam_id="exam-1", **extra):
    payload = {"pdfBuffer": list(pdf), "fileName": "answers.pdf", "examId": exam_id, "metadata": {"pages": 2}}
    payload.update(extra)
    return await client.post("/api/upload-pdf/buffer", json=payload)


async def test_buffer_upload_goes_to_cdn(student_client, cdn_uploads, db):
    pdf = make_pdf(3000)

    response = await upload(student_client, pdf)

    assert response.status_code == 200
    submission = response.json()["submission"]
    assert submission["externalUrl"].startswith("https://files.example.test/examify_pdfs/exam-1/submission_alice_exam-1_")
    assert submission["fileName"] == "answers.pdf"

    [put] = cdn_uploads
    assert put["data"] == pdf
    assert put["metadata"]["userId"] == "alice"
    assert put["metadata"]["pages"] == 2

    record = await SubmissionRepository(db).get(submission["id"])
    assert record.storage_mode == "external-cdn"
    assert record.reassembly_complete is True
    assert record.external_ref == put["key"]


async def test_second_buffer_upload_conflicts(student_client, cdn_uploads):
    assert (await upload(student_client, make_pdf())).status_code == 200

    again = await upload(student_client, make_pdf())

    assert again.status_code == 409
    assert len(cdn_uploads) == 1


async def test_buffer_accepts_base64_strings(student_client, cdn_uploads):
    import base64

    pdf = make_pdf(1000)
    response = await upload(student_client, pdf, pdfBuffer=base64.b64encode(pdf).decode("ascii"))

    assert response.status_code == 200
    assert cdn_uploads[0]["data"] == pdf


async def test_missing_buffer(student_client, cdn_uploads):
    response = await student_client.post("/api/upload-pdf/buffer", json={"examId": "exam-1"})

    assert response.status_code == 400
    assert response.json()["message"] == "Missing PDF buffer"


async def test_unconfigured_cdn_is_unavailable(student_client, services):
    services.cdn.settings.CDN_BUCKET = None

    response = await upload(student_client, make_pdf())

    assert response.status_code == 503
    assert response.json()["success"] is False


async def test_upload_status_is_owner_only(student_client, make_client, cdn_uploads):
    submission_id = (await upload(student_client, make_pdf())).json()["submission"]["id"]

    status = await student_client.get(f"/api/upload-pdf/{submission_id}")
    assert status.status_code == 200
    assert status.json()["submission"]["storageMode"] == "external-cdn"

    bob = await make_client()
    await register(bob, "bob")
    assert (await bob.get(f"/api/upload-pdf/{submission_id}")).status_code == 403


async def test_instructor_file_request_redirects_to_cdn(student_client, instructor_client, cdn_uploads):
    submission = (await upload(student_client, make_pdf())).json()["submission"]

    response = await instructor_client.get(f"/api/submissions/file/{submission['id']}", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == submission["externalUrl"]


async def test_multipart_upload_goes_to_cdn(student_client, cdn_uploads, db):
    pdf = make_pdf(2000)

    response = await student_client.post(
        "/api/upload-pdf",
        data={"examId": "exam-1", "submissionType": "whiteboard"},
        files={"file": ("answers.pdf", pdf, "application/pdf")},
    )

    assert response.status_code == 201
    submission = response.json()["submission"]
    assert submission["fileName"] == "answers.pdf"
    [put] = cdn_uploads
    assert put["data"] == pdf
    assert put["metadata"]["submissionType"] == "whiteboard"

    record = await SubmissionRepository(db).get(submission["id"])
    assert record.storage_mode == "external-cdn"

    again = await student_client.post(
        "/api/upload-pdf", data={"examId": "exam-1"}, files={"file": ("answers.pdf", pdf, "application/pdf")}
    )
    assert again.status_code == 409


async def test_multipart_upload_validation(student_client, cdn_uploads):
    no_file = await student_client.post("/api/upload-pdf", data={"examId": "exam-1"})
    assert no_file.status_code == 400
    assert no_file.json()["message"] == "No file uploaded"

    no_exam = await student_client.post("/api/upload-pdf", files={"file": ("a.pdf", make_pdf(), "application/pdf")})
    assert no_exam.status_code == 400
    assert no_exam.json()["message"] == "Missing exam ID"
    assert cdn_uploads == []
