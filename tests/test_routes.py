"""
Kiosk host routes driven the way the exam page drives them.
"""
import time

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from fakes import make_definition
from qa_test_cbt.exceptions import CatalogError
from qa_test_cbt.services.session_controller import SessionTimings

FAST_TIMINGS = SessionTimings(
    tick_seconds=3600, poll_interval=3600, reentry_delay=0.01,
    confirm_delay=0, start_retry_delay=0,
)


class FakeBackend:
    def __init__(self, tests=None, catalog_error=None):
        self.tests = tests if tests is not None else [make_definition(num_questions=2, test_id=1)]
        self.catalog_error = catalog_error
        self.payloads = []
        self.tokens = []

    def __call__(self, access_token="", refresh_token=""):
        self.tokens.append((access_token, refresh_token))
        return self

    async def list_available_tests(self):
        if self.catalog_error:
            raise self.catalog_error
        return list(self.tests)

    async def submit(self, payload):
        self.payloads.append(payload)
        return {"id": 1}


def _wait_for_status(client: TestClient, status: str, timeout: float = 3.0) -> dict:
    deadline = time.time() + timeout
    while time.time() < deadline:
        response = client.get("/api/session-state")
        if response.status_code == 200 and response.json()["status"] == status:
            return response.json()
        time.sleep(0.01)
    raise AssertionError(f"session never reached {status}")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(backend):
    app = create_app(
        api_client_factory=backend,
        session_timings=FAST_TIMINGS,
        fullscreen_timeout=1.0,
        start_cleanup=False,
    )
    with TestClient(app) as c:
        yield c


def _start_active_session(client: TestClient) -> dict:
    assert client.post("/api/start-test", json={"test_id": 1}).status_code == 200
    client.post("/api/fullscreen", json={"active": True})
    return _wait_for_status(client, "active")


def test_set_token_requires_value(client):
    response = client.post("/api/set-token", json={"access_token": "  "})
    assert response.status_code == 400


def test_set_token_creates_backend_client(client, backend):
    response = client.post("/api/set-token", json={"access_token": "abc", "refresh_token": "def"})

    assert response.status_code == 200
    assert backend.tokens[-1] == ("abc", "def")


def test_lists_tests(client):
    response = client.get("/api/tests")

    assert response.status_code == 200
    assert response.json()["tests"] == [{
        "id": 1,
        "title": "Geography Q&A",
        "lesson_title": "Capitals of Europe",
        "num_questions": 2,
        "time_limit": 1,
    }]


def test_catalog_failure_is_reported():
    backend = FakeBackend(catalog_error=CatalogError("Failed to load available tests", 500))
    app = create_app(api_client_factory=backend, session_timings=FAST_TIMINGS, start_cleanup=False)
    with TestClient(app) as c:
        response = c.get("/api/tests")

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to load available tests"


def test_unknown_test_is_404(client):
    assert client.post("/api/start-test", json={"test_id": 404}).status_code == 404


def test_full_exam_flow(client, backend):
    state = _start_active_session(client)
    assert state["answers"] == {"0": "", "1": ""}
    assert state["remaining_display"] == "1:00"

    events = client.get("/api/events").json()
    assert events["blocked_keys"] == ["Escape", "F11"]
    assert "Test Started!" in [e.get("title") for e in events["events"]]

    question = client.get("/api/question/1").json()
    assert question["question"] == "Question 2?"
    assert client.get("/api/question/5").status_code == 404

    assert client.post("/api/save-answer", json={"question_index": 0, "answer": "Paris"}).json()["unanswered_count"] == 1
    assert client.post("/api/navigate", json={"index": 99}).json()["index"] == 1
    assert client.post("/api/keydown", json={"key": "Escape"}).json() == {"suppressed": True}

    needs_confirm = client.post("/api/submit-test", json={})
    assert needs_confirm.status_code == 409
    assert needs_confirm.json()["detail"]["unanswered"] == 1
    assert _wait_for_status(client, "active")

    submitted = client.post("/api/submit-test", json={"confirm": True})
    assert submitted.status_code == 200
    assert submitted.json()["ok"] is True
    assert len(backend.payloads) == 1
    assert backend.payloads[0].answers[0].answer == "Paris"

    final = _wait_for_status(client, "submitted")
    assert final["submission"] == {"ok": True, "error": None}
    assert client.post("/api/save-answer", json={"question_index": 0, "answer": "late"}).status_code == 400
    assert client.post("/api/keydown", json={"key": "Escape"}).json() == {"suppressed": False}


def test_fullscreen_exit_is_counted(client):
    _start_active_session(client)

    response = client.post("/api/fullscreen", json={"active": False})
    assert response.json()["fullscreen_exit_count"] == 1

    deadline = time.time() + 2.0
    directives = []
    while time.time() < deadline and "request_fullscreen" not in directives:
        directives += [e["type"] for e in client.get("/api/events").json()["events"]]
        time.sleep(0.01)
    assert "request_fullscreen" in directives

    client.post("/api/fullscreen", json={"active": True})
    assert client.get("/api/session-state").json()["fullscreen_exit_count"] == 1


def test_cannot_start_twice_or_reset_while_active(client):
    _start_active_session(client)

    assert client.post("/api/start-test", json={"test_id": 1}).status_code == 409
    assert client.post("/api/reset").status_code == 409

    client.post("/api/submit-test", json={"confirm": True})
    assert client.post("/api/reset").status_code == 200
    assert client.get("/api/session-state").status_code == 404
