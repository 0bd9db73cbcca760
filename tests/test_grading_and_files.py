from conftest import register
from helpers import make_pdf, pdf_data_uri


async def create_exam(instructor_client, exam_id="exam-1"):
    response = await instructor_client.post("/api/exams", json={"id": exam_id, "title": "Midterm", "duration": 60})
    assert response.status_code == 201, response.text
    return response.json()


async def submit(client, exam_id="exam-1"):
    response = await client.post("/api/submissions", json={
        "examId": exam_id, "studentName": "Alice Kim", "pdfData": pdf_data_uri(make_pdf(2048)),
    })
    assert response.status_code == 201, response.text
    return response.json()["submissionId"]


async def test_instructor_grades_a_submission(student_client, instructor_client):
    submission_id = await submit(student_client)

    response = await instructor_client.put(f"/api/submissions/{submission_id}/grade", json={
        "grade": 92, "feedback": "Clear working",
    })

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["grade"] == 92
    assert data["feedback"] == "Clear working"
    assert data["status"] == "graded"
    assert data["gradedAt"] is not None
    assert data["state"] == "COMPLETE"
    assert data["storageMode"] == "chunked-store"


async def test_grading_rules(student_client, instructor_client):
    submission_id = await submit(student_client)

    student_attempt = await student_client.put(f"/api/submissions/{submission_id}/grade", json={"grade": 100})
    assert student_attempt.status_code == 403

    out_of_range = await instructor_client.put(f"/api/submissions/{submission_id}/grade", json={"grade": 150})
    assert out_of_range.status_code == 400
    assert out_of_range.json()["success"] is False

    unknown = await instructor_client.put(f"/api/submissions/{'f' * 32}/grade", json={"grade": 50})
    assert unknown.status_code == 404


async def test_exam_file_listing_is_scoped_to_exam_owner(student_client, instructor_client, make_client):
    await create_exam(instructor_client)
    submission_id = await submit(student_client)

    response = await instructor_client.get("/api/submissions/exam/exam-1/files")
    assert response.status_code == 200
    [item] = response.json()["data"]
    assert item["id"] == submission_id
    assert item["fileSize"] > 2000
    assert item["uploadDate"] is not None

    other = await make_client()
    await register(other, "prof2", role="instructor")
    assert (await other.get("/api/submissions/exam/exam-1/files")).status_code == 403
    assert (await instructor_client.get("/api/submissions/exam/nope/files")).status_code == 404
    assert (await student_client.get("/api/submissions/exam/exam-1/files")).status_code == 403


async def test_instructor_sees_submissions_across_their_exams(student_client, instructor_client):
    await create_exam(instructor_client, "exam-1")
    await create_exam(instructor_client, "exam-2")
    await submit(student_client, "exam-1")
    await submit(student_client, "exam-2")
    await submit(student_client, "exam-3")

    data = (await instructor_client.get("/api/exams/submissions")).json()["data"]

    assert sorted(item["examId"] for item in data) == ["exam-1", "exam-2"]


async def test_my_submissions_and_visibility(student_client, make_client):
    submission_id = await submit(student_client)

    mine = (await student_client.get("/api/submissions/my-submissions")).json()["data"]
    assert [item["id"] for item in mine] == [submission_id]

    bob = await make_client()
    await register(bob, "bob")
    assert (await bob.get(f"/api/submissions/{submission_id}")).status_code == 403
    assert (await bob.get("/api/submissions/my-submissions")).json()["data"] == []


async def test_file_download_requires_instructor(student_client):
    submission_id = await submit(student_client)

    response = await student_client.get(f"/api/submissions/file/{submission_id}")

    assert response.status_code == 403


async def test_instructor_lists_one_students_submissions(student_client, instructor_client, make_client):
    await create_exam(instructor_client, "exam-1")
    first = await submit(student_client, "exam-1")
    second = await submit(student_client, "exam-2")
    bob = await make_client()
    await register(bob, "bob")
    await submit(bob, "exam-1")

    response = await instructor_client.get("/api/submissions/student/alice")

    assert response.status_code == 200
    data = response.json()["data"]
    assert {item["id"] for item in data} == {first, second}
    assert all(item["studentId"] == "alice" for item in data)
    exams = {item["examId"]: item["exam"] for item in data}
    assert exams["exam-1"] == {"id": "exam-1", "title": "Midterm", "subject": None, "duration": 60}
    assert exams["exam-2"] is None

    assert (await student_client.get("/api/submissions/student/alice")).status_code == 403
    assert (await instructor_client.get("/api/submissions/student/nobody")).json()["data"] == []
