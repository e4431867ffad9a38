"""
Backend client tests against an in-memory httpx transport.
"""
import json

import httpx
import pytest

from qa_test_cbt.exceptions import AuthenticationError, CatalogError, SubmissionError
from qa_test_cbt.models.session_state import AnswerEntry, SubmissionPayload
from qa_test_cbt.services.api_client import LearningApiClient

BASE_URL = "http://backend.test/api"

TESTS_RESPONSE = [
    {
        "id": 1, "lesson": 3, "lesson_title": "Rivers", "title": "Rivers Q&A",
        "questions": [{"question": "Longest river?", "expected_points": "Nile"}],
        "time_limit": 10, "status": "approved", "num_questions": 1,
    },
    {
        "id": 2, "lesson": 3, "lesson_title": "Rivers", "title": "Draft",
        "questions": [{"question": "?"}], "time_limit": 10, "status": "draft",
    },
    {"id": 3, "title": "Broken", "status": "approved"},
]


def _payload() -> SubmissionPayload:
    return SubmissionPayload(
        test_id=1,
        answers=[AnswerEntry(question_index=0, answer="Nile")],
        elapsed_seconds=42,
        fullscreen_exit_count=1,
    )


def _client(handler, access="token-1", refresh="") -> LearningApiClient:
    return LearningApiClient(
        base_url=BASE_URL,
        access_token=access,
        refresh_token=refresh,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_lists_only_valid_approved_tests():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=TESTS_RESPONSE)

    tests = await _client(handler).list_available_tests()

    assert [t.id for t in tests] == [1]
    assert tests[0].questions[0].question == "Longest river?"
    assert seen["url"] == "http://backend.test/api/qa-tests/"
    assert seen["auth"] == "Bearer token-1"


@pytest.mark.asyncio
async def test_accepts_paginated_catalog():
    def handler(request):
        return httpx.Response(200, json={"count": 1, "results": TESTS_RESPONSE[:1]})

    tests = await _client(handler).list_available_tests()

    assert len(tests) == 1


@pytest.mark.asyncio
async def test_catalog_server_error():
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(CatalogError) as exc_info:
        await _client(handler).list_available_tests()

    assert exc_info.value.message == "Failed to load available tests"
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_catalog_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CatalogError):
        await _client(handler).list_available_tests()


@pytest.mark.asyncio
async def test_submit_sends_wire_format():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": 10, "status": "submitted"})

    receipt = await _client(handler).submit(_payload())

    assert seen["path"] == "/api/qa-submissions/submit/"
    assert seen["body"] == {
        "test_id": 1,
        "answers": [{"question_index": 0, "answer": "Nile"}],
        "time_taken": 42,
        "fullscreen_exits": 1,
    }
    assert receipt == {"id": 10, "status": "submitted"}


@pytest.mark.asyncio
async def test_submit_error_uses_server_message():
    def handler(request):
        return httpx.Response(400, json={"error": "You have already submitted this test"})

    with pytest.raises(SubmissionError) as exc_info:
        await _client(handler).submit(_payload())

    assert exc_info.value.message == "You have already submitted this test"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_submit_error_without_message_is_generic():
    def handler(request):
        return httpx.Response(502, text="<html>bad gateway</html>")

    with pytest.raises(SubmissionError) as exc_info:
        await _client(handler).submit(_payload())

    assert exc_info.value.message == "Failed to submit test"


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_request_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.url.path, request.headers.get("Authorization")))
        if request.url.path.endswith("/token/refresh/"):
            assert json.loads(request.content) == {"refresh": "refresh-1"}
            return httpx.Response(200, json={"access": "token-2"})
        if request.headers.get("Authorization") == "Bearer token-1":
            return httpx.Response(401, json={"detail": "expired"})
        return httpx.Response(200, json=TESTS_RESPONSE[:1])

    client = _client(handler, refresh="refresh-1")
    tests = await client.list_available_tests()

    assert len(tests) == 1
    assert client.access_token == "token-2"
    assert calls == [
        ("/api/qa-tests/", "Bearer token-1"),
        ("/api/token/refresh/", None),
        ("/api/qa-tests/", "Bearer token-2"),
    ]


@pytest.mark.asyncio
async def test_failed_refresh_clears_tokens():
    def handler(request):
        return httpx.Response(401, json={"detail": "invalid"})

    client = _client(handler, refresh="refresh-1")
    with pytest.raises(AuthenticationError):
        await client.list_available_tests()

    assert client.access_token == ""
    assert client.refresh_token == ""


@pytest.mark.asyncio
async def test_submit_auth_failure_becomes_submission_error():
    def handler(request):
        return httpx.Response(401, json={"detail": "invalid"})

    with pytest.raises(SubmissionError) as exc_info:
        await _client(handler, refresh="refresh-1").submit(_payload())

    assert "log in again" in exc_info.value.message


@pytest.mark.asyncio
async def test_submit_accepts_non_json_success_body():
    client = _client(lambda request: httpx.Response(200, text="<html>OK</html>"))

    assert await client.submit(_payload()) == {}


@pytest.mark.asyncio
async def test_catalog_html_body_is_catalog_error():
    client = _client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(CatalogError) as exc_info:
        await client.list_available_tests()

    assert exc_info.value.message == "Failed to load available tests"
    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [None, {"results": None}, {"detail": "ok"}])
async def test_catalog_without_list_is_catalog_error(body):
    client = _client(lambda request: httpx.Response(200, json=body))

    with pytest.raises(CatalogError):
        await client.list_available_tests()


@pytest.mark.asyncio
async def test_refresh_with_html_body_expires_session():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/token/refresh/"):
            return httpx.Response(200, text="<html>login</html>")
        return httpx.Response(401)

    client = _client(handler, refresh="refresh-1")

    with pytest.raises(AuthenticationError):
        await client.list_available_tests()
    assert client.access_token == ""
