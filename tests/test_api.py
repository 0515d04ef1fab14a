"""
Tests for the HTTP API
"""

import base64
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from proctored_exam.models.proctoring_model import SampleResult
from proctored_exam.services.quiz_store import QuizStore

from conftest import LOUD_BINS, VALID_FRAME, FakeAnalyzer, FakeClassifier


@pytest.fixture
def client():
    """FastAPI test client with fake AI collaborators"""
    with patch("api.routes.VisionAnalyzer", return_value=FakeClassifier([SampleResult()])), \
            patch("api.routes.PerformanceAnalyzer", return_value=FakeAnalyzer()), \
            patch("api.routes.make_client", return_value=None):
        with TestClient(create_app(quiz_store=QuizStore())) as test_client:
            yield test_client
            # 이벤트 루프가 닫히기 전에 진행 중인 시험 정리
            test_client.post("/api/reset")


def _start_exam(client) -> dict:
    assert client.post("/api/set-api-key", json={"api_key": "sk-test"}).status_code == 200
    quiz_id = client.post("/api/sample-quiz").json()["quiz_id"]
    loaded = client.post("/api/exam/load", json={"quiz_id": quiz_id})
    assert loaded.status_code == 200
    client.post("/api/exam/permissions/camera-mic", json={"granted": True})
    client.post("/api/exam/permissions/screen", json={"granted": True, "display_surface": "monitor"})
    begun = client.post("/api/exam/begin")
    assert begun.status_code == 200
    return begun.json()


class TestSetup:
    def test_invalid_api_key(self, client):
        assert client.post("/api/set-api-key", json={"api_key": "nope"}).status_code == 400

    def test_save_and_read_quiz(self, client):
        body = {
            "topic": "Databases",
            "duration_minutes": 5,
            "questions": [{"question": "SQL?", "options": ["Yes", "No"], "correct_answer_index": 0}],
        }
        quiz_id = client.post("/api/quizzes", json=body).json()["quiz_id"]

        quiz = client.get(f"/api/quizzes/{quiz_id}").json()

        assert quiz["topic"] == "Databases"
        assert quiz["duration_minutes"] == 5

    def test_invalid_quiz_rejected(self, client):
        body = {"topic": "X", "questions": [{"question": "Q?", "options": ["A", "B"], "correct_answer_index": 5}]}
        assert client.post("/api/quizzes", json=body).status_code == 422

    def test_unknown_quiz(self, client):
        assert client.get("/api/quizzes/missing").status_code == 404

    def test_load_requires_api_key(self, client):
        quiz_id = client.post("/api/sample-quiz").json()["quiz_id"]
        assert client.post("/api/exam/load", json={"quiz_id": quiz_id}).status_code == 400

    def test_state_without_session(self, client):
        assert client.get("/api/exam/state").status_code == 404


class TestPermissionsApi:
    def _load(self, client):
        client.post("/api/set-api-key", json={"api_key": "sk-test"})
        quiz_id = client.post("/api/sample-quiz").json()["quiz_id"]
        client.post("/api/exam/load", json={"quiz_id": quiz_id})

    def test_camera_denied(self, client):
        self._load(client)
        response = client.post("/api/exam/permissions/camera-mic", json={"granted": False})
        assert response.status_code == 403

    def test_window_share_conflict(self, client):
        self._load(client)
        client.post("/api/exam/permissions/camera-mic", json={"granted": True})

        response = client.post("/api/exam/permissions/screen", json={"granted": True, "display_surface": "window"})

        assert response.status_code == 409
        assert client.get("/api/exam/state").json()["state"] == "acquiring_permissions"

    def test_begin_before_permissions(self, client):
        self._load(client)
        assert client.post("/api/exam/begin").status_code == 409


class TestExamFlow:
    def test_begin_sends_fullscreen_command(self, client):
        state = _start_exam(client)

        assert state["state"] == "in_progress"
        assert {"type": "command", "title": "enter_fullscreen"}.items() <= state["messages"][-1].items()
        assert "correct_answer_index" not in state["question"]

    def test_fullscreen_exit_blocks_answers(self, client):
        _start_exam(client)

        state = client.post("/api/exam/fullscreen", json={"is_fullscreen": False}).json()
        assert state["state"] == "paused"
        assert state["active_violation"]["kind"] == "fullscreen_exit"
        assert state["fullscreen_countdown"] == 30

        assert client.post("/api/exam/answer", json={"option_index": 1}).status_code == 423

        state = client.post("/api/exam/fullscreen", json={"is_fullscreen": True}).json()
        assert state["state"] == "in_progress"
        assert client.post("/api/exam/answer", json={"option_index": 1}).status_code == 200

    def test_tab_switch_and_resume(self, client):
        _start_exam(client)

        assert client.post("/api/exam/visibility", json={"hidden": True}).json()["state"] == "paused"
        client.post("/api/exam/visibility", json={"hidden": False})
        resumed = client.post("/api/exam/resume").json()

        assert resumed["resumed"] is True
        assert resumed["state"] == "in_progress"

    def test_frame_upload(self, client):
        _start_exam(client)
        response = client.post("/api/exam/frame", json={"image_data_uri": VALID_FRAME, "frequency_data": LOUD_BINS})
        assert response.status_code == 200

    def test_bad_pcm_rejected(self, client):
        _start_exam(client)
        response = client.post("/api/exam/frame", json={"pcm_base64": "***"})
        assert response.status_code == 422

    def test_odd_length_pcm_accepted(self, client):
        _start_exam(client)
        pcm = base64.b64encode(b"\x01\x02\x03").decode()
        response = client.post("/api/exam/frame", json={"pcm_base64": pcm})
        assert response.status_code == 200

    def test_restricted_action_warns(self, client):
        _start_exam(client)
        data = client.post("/api/exam/restricted-action", json={"action": "copy"}).json()

        assert data["blocked"] is True
        assert any(m["title"] == "Action Restricted" for m in data["messages"])

    def test_unknown_restricted_action(self, client):
        _start_exam(client)
        response = client.post("/api/exam/restricted-action", json={"action": "print"})
        assert response.status_code == 422

    def test_out_of_range_option(self, client):
        _start_exam(client)
        assert client.post("/api/exam/answer", json={"option_index": 7}).status_code == 422

    def test_submit_and_results(self, client):
        _start_exam(client)
        # 샘플 퀴즈 정답: 1, 2, 2, 1, 0
        for idx, option in enumerate([1, 2, 2]):
            client.post("/api/exam/navigate", json={"index": idx})
            client.post("/api/exam/answer", json={"option_index": option})

        submitted = client.post("/api/exam/submit")
        assert submitted.status_code == 200
        assert submitted.json()["score"] == 60.0

        results = client.get("/api/exam/results").json()
        assert results["correct_count"] == 3
        assert results["unanswered_count"] == 2
        assert results["passed"] is True

        assert client.post("/api/exam/answer", json={"option_index": 0}).status_code == 409

    def test_results_before_submit(self, client):
        _start_exam(client)
        assert client.get("/api/exam/results").status_code == 400

    def test_study_guide_pdf(self, client):
        _start_exam(client)
        client.post("/api/exam/submit")

        response = client.get("/api/exam/study-guide.pdf")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

    def test_reset_discards_exam(self, client):
        _start_exam(client)

        client.post("/api/reset")

        assert client.get("/api/exam/state").status_code == 404
        quiz_id = client.post("/api/sample-quiz").json()["quiz_id"]
        assert client.post("/api/exam/load", json={"quiz_id": quiz_id}).status_code == 200
