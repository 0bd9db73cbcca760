import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from app.client.uploader import SubmissionUploader, UploadError


async def accept(request):
    payload = await request.json()
    return web.json_response({
        "success": True,
        "submissionId": "s-1",
        "echo": payload,
        "cookie": request.cookies.get("session_id"),
    })


async def conflict(request):
    return web.json_response({"success": False, "message": "You have already submitted this exam"}, status=409)


async def crash(request):
    return web.Response(status=500, text="<html>Internal Server Error</html>", content_type="text/html")


async def slow(request):
    await asyncio.sleep(2)
    return web.json_response({"success": True})


@pytest.fixture
async def server():
    app = web.Application()
    app.router.add_post("/api/submissions", accept)
    app.router.add_post("/api/submissions/retry", conflict)
    app.router.add_post("/api/submissions/emergency", crash)
    app.router.add_post("/api/submissions/simplified", slow)
    server = test_utils.TestServer(app)
    await server.start_server()
    yield server
    await server.close()


def uploader_for(server, **kwargs):
    return SubmissionUploader(str(server.make_url("/api")), session_id="sid-123", **kwargs)


async def test_json_response_and_session_cookie(server):
    body = await uploader_for(server)._post_json("/submissions", {"examId": "exam-1"}, timeout=5)

    assert body["submissionId"] == "s-1"
    assert body["echo"] == {"examId": "exam-1"}
    assert body["cookie"] == "sid-123"


async def test_error_status_and_message_are_carried(server):
    with pytest.raises(UploadError) as excinfo:
        await uploader_for(server)._post_json("/submissions/retry", {}, timeout=5)

    assert excinfo.value.status == 409
    assert excinfo.value.message == "You have already submitted this exam"
    assert excinfo.value.retryable is False


async def test_non_json_error_body(server):
    with pytest.raises(UploadError) as excinfo:
        await uploader_for(server)._post_json("/submissions/emergency", {}, timeout=5)

    assert excinfo.value.status == 500
    assert excinfo.value.message == "Server error: 500"
    assert excinfo.value.retryable is True


async def test_timeout_becomes_retryable_error(server):
    with pytest.raises(UploadError) as excinfo:
        await uploader_for(server)._post_json("/submissions/simplified", {}, timeout=0.2)

    assert excinfo.value.status is None
    assert "timed out" in excinfo.value.message
    assert excinfo.value.retryable is True


async def test_conflict_from_retry_endpoint_ends_the_cascade(server):
    uploader = uploader_for(server, use_cdn=False, max_retries=1)
    uploader.submit_single_shot = _always_fail

    outcome = await uploader.submit(b"%PDF-1.4 test", "exam-1", "Alice")

    assert outcome.success is True
    assert outcome.tier == "already-submitted"


async def _always_fail(*args, **kwargs):
    raise UploadError("Server error: 502", 502)
