"""
HTTP API tests: admin CRUD, learner sessions, results and error mapping
"""
from uuid import uuid4

import pytest

from quiz_engine.exceptions import PersistenceError


ADMIN = "/api/admin/quizzes"
LEARNER = "/api/quizzes"


def create_quiz(client, **fields):
    payload = {"title": "Foundations", "passing_score": 50, "max_attempts": 2}
    payload.update(fields)
    response = client.post(f"{ADMIN}/", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def add_question(client, quiz_id, **fields):
    response = client.post(f"{ADMIN}/{quiz_id}/questions", json=fields)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def quiz_with_questions(client):
    """Course quiz with a multiple choice (2 pts) and a short answer (2 pts)"""
    course_id = str(uuid4())
    quiz = create_quiz(client, scope={"quiz_type": "course", "course_id": course_id})
    mc = add_question(
        client, quiz["id"],
        question_text="Capital of France?", question_type="multiple_choice", points=2,
        options=[{"text": "Paris", "correct": True}, {"text": "Rome"}],
    )
    short = add_question(
        client, quiz["id"],
        question_text="Process plants use to make food", question_type="short_answer",
        correct_answer="Photosynthesis", points=2,
    )
    return {"quiz": quiz, "course_id": course_id, "mc": mc, "short": short}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"


class TestAdminQuizzes:
    def test_create_and_get(self, client, quiz_with_questions):
        quiz_id = quiz_with_questions["quiz"]["id"]
        data = client.get(f"{ADMIN}/{quiz_id}").json()

        assert data["scope"] == {
            "quiz_type": "course",
            "course_id": quiz_with_questions["course_id"],
            "program_id": None,
            "bible_school_context": None,
        }
        assert data["question_count"] == 2
        assert data["total_points"] == 4

    def test_update_clears_scope_fields(self, client, quiz_with_questions):
        quiz_id = quiz_with_questions["quiz"]["id"]
        response = client.put(f"{ADMIN}/{quiz_id}", json={
            "title": "Foundations",
            "scope": {"quiz_type": "general"},
        })

        assert response.status_code == 200
        assert response.json()["scope"] == {
            "quiz_type": "general", "course_id": None, "program_id": None, "bible_school_context": None,
        }

    def test_scope_with_foreign_field_is_rejected(self, client):
        response = client.post(f"{ADMIN}/", json={
            "title": "Bad",
            "scope": {"quiz_type": "general", "course_id": str(uuid4())},
        })
        assert response.status_code == 422

    def test_question_validation_error(self, client):
        quiz = create_quiz(client)
        response = client.post(f"{ADMIN}/{quiz['id']}/questions", json={
            "question_text": "Pick", "question_type": "multiple_choice",
            "options": [{"text": "A", "correct": True}, {"text": "B", "correct": True}],
        })

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_answer_keys_visible_to_admin(self, client, quiz_with_questions):
        quiz_id = quiz_with_questions["quiz"]["id"]
        questions = client.get(f"{ADMIN}/{quiz_id}/questions").json()

        assert questions[0]["options"] == [
            {"text": "Paris", "correct": True}, {"text": "Rome", "correct": False},
        ]
        assert questions[1]["correct_answer"] == "Photosynthesis"
        assert questions[1]["options"] == []

    def test_move_question(self, client, quiz_with_questions):
        short_id = quiz_with_questions["short"]["id"]
        response = client.post(f"{ADMIN}/questions/{short_id}/move", json={"direction": "up"})

        assert response.status_code == 200
        assert [q["id"] for q in response.json()] == [short_id, quiz_with_questions["mc"]["id"]]

    def test_delete_quiz(self, client, quiz_with_questions):
        quiz_id = quiz_with_questions["quiz"]["id"]
        assert client.delete(f"{ADMIN}/{quiz_id}").status_code == 204

        response = client.get(f"{ADMIN}/{quiz_id}")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_search(self, client):
        create_quiz(client, title="Romans overview")
        create_quiz(client, title="Genesis")

        titles = [q["title"] for q in client.get(f"{ADMIN}/", params={"search": "roman"}).json()]
        assert titles == ["Romans overview"]


class TestLearnerListing:
    def test_listing_by_course_with_summary(self, client, quiz_with_questions):
        learner_id = str(uuid4())
        response = client.get(f"{LEARNER}/", params={
            "course_id": quiz_with_questions["course_id"], "learner_id": learner_id,
        })

        assert response.status_code == 200
        items = response.json()
        assert [item["id"] for item in items] == [quiz_with_questions["quiz"]["id"]]
        assert items[0]["summary"] == {
            "attempts_used": 0, "max_attempts": 2, "can_take": True, "best_attempt": None,
        }

    def test_listing_needs_one_context(self, client):
        response = client.get(f"{LEARNER}/")
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"


class TestSessions:
    def start(self, client, quiz_id, learner_id):
        return client.post(f"{LEARNER}/{quiz_id}/sessions", json={"learner_id": learner_id})

    def test_full_flow(self, client, quiz_with_questions):
        quiz_id = quiz_with_questions["quiz"]["id"]
        mc_id = quiz_with_questions["mc"]["id"]
        short_id = quiz_with_questions["short"]["id"]
        learner_id = str(uuid4())

        started = self.start(client, quiz_id, learner_id)
        assert started.status_code == 201
        session = started.json()
        assert session["state"] == "in_progress"
        assert session["remaining_seconds"] is None
        assert session["questions"][0]["options"] == ["Paris", "Rome"]
        assert "correct" not in str(session["questions"])
        session_id = session["session_id"]

        client.put(f"{LEARNER}/sessions/{session_id}/answers/{mc_id}", json={"value": "Paris"})
        answered = client.put(
            f"{LEARNER}/sessions/{session_id}/answers/{short_id}", json={"value": "  PHOTOSYNTHESIS "}
        ).json()
        assert answered["answered_count"] == 2

        moved = client.post(f"{LEARNER}/sessions/{session_id}/navigate", json={"index": 1}).json()
        assert moved["current_question"]["id"] == short_id

        submitted = client.post(f"{LEARNER}/sessions/{session_id}/submit")
        assert submitted.status_code == 200
        body = submitted.json()
        assert body["state"] == "completed"
        assert body["attempt"]["score"] == 4
        assert body["attempt"]["percentage"] == 100
        assert body["attempt"]["passed"] is True

        again = client.post(f"{LEARNER}/sessions/{session_id}/submit").json()
        assert again["attempt"]["id"] == body["attempt"]["id"]

        results = client.get(f"{LEARNER}/{quiz_id}/results", params={"learner_id": learner_id}).json()
        assert results["attempts_used"] == 1
        assert results["can_retake"] is True
        assert len(results["history"]) == 1

    def test_start_resumes_unfinished_session(self, client, quiz_with_questions):
        quiz_id = quiz_with_questions["quiz"]["id"]
        learner_id = str(uuid4())

        first = self.start(client, quiz_id, learner_id).json()
        second = self.start(client, quiz_id, learner_id).json()

        assert first["session_id"] == second["session_id"]

    def test_attempt_limit_returns_conflict_with_results_link(self, client, quiz_with_questions):
        quiz_id = quiz_with_questions["quiz"]["id"]
        learner_id = str(uuid4())

        for _ in range(2):
            session_id = self.start(client, quiz_id, learner_id).json()["session_id"]
            client.post(f"{LEARNER}/sessions/{session_id}/submit")

        response = self.start(client, quiz_id, learner_id)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "attempt_limit_exceeded"
        assert body["results_url"] == f"{LEARNER}/{quiz_id}/results?learner_id={learner_id}"

    def test_answer_after_submit_is_conflict(self, client, quiz_with_questions):
        quiz_id = quiz_with_questions["quiz"]["id"]
        mc_id = quiz_with_questions["mc"]["id"]
        session_id = self.start(client, quiz_id, str(uuid4())).json()["session_id"]
        client.post(f"{LEARNER}/sessions/{session_id}/submit")

        response = client.put(f"{LEARNER}/sessions/{session_id}/answers/{mc_id}", json={"value": "Rome"})

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_session_state"

    def test_quiz_without_questions_is_unavailable(self, client):
        quiz = create_quiz(client)
        response = self.start(client, quiz["id"], str(uuid4()))
        assert response.status_code == 404

    def test_unknown_session(self, client):
        assert client.get(f"{LEARNER}/sessions/{uuid4()}").status_code == 404

    def test_navigate_out_of_range(self, client, quiz_with_questions):
        quiz_id = quiz_with_questions["quiz"]["id"]
        session_id = self.start(client, quiz_id, str(uuid4())).json()["session_id"]

        response = client.post(f"{LEARNER}/sessions/{session_id}/navigate", json={"index": 5})
        assert response.status_code == 422

    def test_failed_submit_is_retryable(self, client, quiz_with_questions, registry, monkeypatch):
        quiz_id = quiz_with_questions["quiz"]["id"]
        session_id = self.start(client, quiz_id, str(uuid4())).json()["session_id"]
        working = registry.ledger.create_attempt

        def failing(record):
            raise PersistenceError("database unavailable")

        monkeypatch.setattr(registry.ledger, "create_attempt", failing)
        response = client.post(f"{LEARNER}/sessions/{session_id}/submit")
        assert response.status_code == 503
        assert response.json()["retryable"] is True

        state = client.get(f"{LEARNER}/sessions/{session_id}").json()
        assert state["state"] == "submitting"
        assert state["retryable_error"] == "database unavailable"

        monkeypatch.setattr(registry.ledger, "create_attempt", working)
        retried = client.post(f"{LEARNER}/sessions/{session_id}/submit").json()
        assert retried["state"] == "completed"
        assert retried["retryable_error"] is None


class TestReviewEndpoints:
    def test_review_flow(self, client):
        quiz = create_quiz(client, passing_score=70)
        essay = add_question(
            client, quiz["id"], question_text="Explain grace", question_type="long_answer", points=10,
        )
        add_question(
            client, quiz["id"], question_text="Grace is a gift", question_type="true_false",
            correct_answer="true", points=10,
        )
        learner_id = str(uuid4())
        session_id = client.post(
            f"{LEARNER}/{quiz['id']}/sessions", json={"learner_id": learner_id}
        ).json()["session_id"]
        client.put(f"{LEARNER}/sessions/{session_id}/answers/{essay['id']}", json={"value": "Unearned favour"})
        attempt = client.post(f"{LEARNER}/sessions/{session_id}/submit").json()["attempt"]
        assert attempt["needs_review"] is True

        ungraded = client.get(f"{ADMIN}/{quiz['id']}/attempts", params={"graded": "ungraded"}).json()
        assert [a["id"] for a in ungraded] == [attempt["id"]]

        reviewed = client.post(f"{ADMIN}/attempts/{attempt['id']}/review", json={
            "graded_by": str(uuid4()),
            "question_scores": {essay["id"]: 9},
            "feedback": "Good answer",
        })
        assert reviewed.status_code == 200
        body = reviewed.json()
        assert body["is_graded"] is True
        assert body["needs_review"] is False
        assert body["reviewed_score"] == 9
        assert body["reviewed_percentage"] == 45
        assert body["reviewed_passed"] is False
        assert body["feedback"] == "Good answer"

        graded = client.get(f"{ADMIN}/{quiz['id']}/attempts", params={"graded": "graded"}).json()
        assert [a["id"] for a in graded] == [attempt["id"]]
