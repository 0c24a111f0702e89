from __future__ import annotations

import json
from datetime import datetime, timedelta

from scrum_sensei.advisor import parse_advice_reply
from scrum_sensei.models import Advice


def _advice_reply(advice_type: str = "strategy", content: str = "Review your notes every evening.") -> str:
    return json.dumps({"type": advice_type, "content": content})


def test_parse_advice_reply_variants() -> None:
    assert parse_advice_reply(_advice_reply("weakness", "Practise estimation")) == {
        "type": "weakness",
        "content": "Practise estimation",
    }
    assert parse_advice_reply('{"type": "cheerful", "content": "Nice"}')["type"] == "general"
    assert parse_advice_reply("Just keep studying.") == {"type": "general", "content": "Just keep studying."}


def test_generate_advice_requires_user(client) -> None:
    assert client.post("/api/advice", json={}).status_code == 400


def test_generate_advice_is_stored_with_learning_summary(client, fake_llm, session) -> None:
    client.post(
        "/api/user/progress",
        json={
            "userId": "u1",
            "contentId": "1",
            "timeSpent": 300,
            "quizResult": {"quizId": "1", "score": 60, "totalQuestions": 5, "correctAnswers": 3},
        },
    )
    fake_llm.replies.append(_advice_reply())
    body = client.post("/api/advice", json={"userId": "u1"}).json()
    advice = body["advice"]
    assert advice["type"] == "strategy"
    assert advice["metadata"]["generatedFrom"] == {"quizCount": 1, "learningTime": 300, "contentCount": 1}

    prompt = fake_llm.calls[-1][-1]["content"]
    assert '"successRate": 60.0' in prompt
    assert session.get(Advice, advice["id"]) is not None


def test_latest_advice_is_reused_within_a_day(client, fake_llm, session) -> None:
    fake_llm.replies.extend([_advice_reply(content="First"), _advice_reply(content="Second")])
    first = client.get("/api/user/advice", params={"userId": "u1"}).json()["advice"]
    again = client.get("/api/user/advice", params={"userId": "u1"}).json()["advice"]
    assert again["id"] == first["id"]
    assert len(fake_llm.calls) == 1

    row = session.get(Advice, first["id"])
    row.created_at = datetime.utcnow() - timedelta(hours=25)
    session.commit()
    fresh = client.get("/api/user/advice", params={"userId": "u1"}).json()["advice"]
    assert fresh["content"] == "Second"


def test_forced_generation_defaults_user(client, fake_llm) -> None:
    fake_llm.replies.append("Plain text advice")
    advice = client.post("/api/user/advice/generate", json={}).json()["advice"]
    assert advice["userId"] == "default-user"
    assert advice["type"] == "general"
    assert advice["content"] == "Plain text advice"


def test_feedback_history_and_stats(client, fake_llm) -> None:
    fake_llm.replies.extend([_advice_reply("motivation", "One"), _advice_reply("alert", "Two")])
    first = client.post("/api/user/advice/generate", json={"userId": "u3"}).json()["advice"]
    second = client.post("/api/user/advice/generate", json={"userId": "u3"}).json()["advice"]

    assert client.post("/api/user/advice/feedback", json={"adviceId": first["id"]}).status_code == 400
    assert client.post(
        "/api/user/advice/feedback", json={"adviceId": first["id"], "feedback": "meh"}
    ).status_code == 400
    assert client.post(
        "/api/user/advice/feedback", json={"adviceId": "unknown", "feedback": "helpful"}
    ).status_code == 404

    ok = client.post("/api/user/advice/feedback", json={"adviceId": first["id"], "userId": "u3", "feedback": "helpful"})
    assert ok.status_code == 200
    assert ok.json()["result"]["feedback"] == "helpful"
    client.post("/api/user/advice/feedback", json={"adviceId": second["id"], "feedback": "not_helpful"})

    history = client.get("/api/user/advice/history", params={"userId": "u3", "limit": 1}).json()
    assert history["count"] == 1
    assert history["history"][0]["id"] in {first["id"], second["id"]}

    stats = client.get("/api/user/advice/stats", params={"userId": "u3"}).json()["stats"]
    assert stats["adviceCount"] == 2
    assert stats["feedbackCount"] == 2
    assert stats["helpfulRate"] == 50
    assert stats["adviceByType"]["motivation"] == 1
    assert stats["adviceByType"]["alert"] == 1
    assert stats["lastAdviceDate"] is not None


def test_reflection_questions(client, fake_llm) -> None:
    material = client.post("/api/admin/materials", json={"title": "Retrospectives"}).json()["material"]
    assert client.post("/api/user/reflection", json={"contentId": str(material["id"])}).status_code == 400
    assert client.post("/api/user/reflection", json={"userId": "u1"}).status_code == 400
    assert client.post("/api/user/reflection", json={"userId": "u1", "contentId": "999"}).status_code == 404

    fake_llm.replies.append(json.dumps({"questions": ["What went well?", "What will you change?"]}))
    body = client.post("/api/user/reflection", json={"userId": "u1", "contentId": str(material["id"])}).json()
    assert body["questions"] == ["What went well?", "What will you change?"]


def test_reflection_falls_back_to_default_questions(client, fake_llm) -> None:
    material = client.post("/api/admin/materials", json={"title": "Daily Scrum"}).json()["material"]
    fake_llm.replies.append("no json here")
    body = client.post("/api/user/reflection", json={"userId": "u1", "contentId": str(material["id"])}).json()
    assert len(body["questions"]) == 5
    assert "Daily Scrum" in body["questions"][0]


def test_chat_uses_material_and_progress_context(client, fake_llm) -> None:
    material = client.post(
        "/api/admin/materials", json={"title": "Sprint Goal", "description": "Why a sprint has one goal"}
    ).json()["material"]
    client.post(
        "/api/user/progress",
        json={"userId": "u1", "contentId": str(material["id"]), "status": "in-progress", "completionPercentage": 40},
    )
    assert client.post("/api/user/chat", json={"userId": "u1"}).status_code == 400

    fake_llm.replies.append("Focus on the outcome, not the tasks.")
    body = client.post(
        "/api/user/chat",
        json={"userId": "u1", "contentId": str(material["id"]), "message": "How do I write a sprint goal?"},
    ).json()
    assert body["message"] == "Focus on the outcome, not the tasks."
    messages = fake_llm.calls[-1]
    context = messages[1]["content"]
    assert "Sprint Goal" in context
    assert "40% complete" in context
    assert messages[-1] == {"role": "user", "content": "How do I write a sprint goal?"}


def test_health_reports_vendor_configuration(client) -> None:
    assert client.get("/api/health").json() == {
        "status": "ok",
        "gemini_configured": False,
        "openai_configured": False,
    }


def test_dashboard_totals_and_activities(client) -> None:
    client.post("/api/admin/materials", json={"title": "Notes"})
    client.post("/api/quiz", json={"title": "Roles quiz", "questions": [{"question": "Who?"}]})
    stats = client.get("/api/admin/dashboard").json()["stats"]
    assert stats["totalContents"] == 2
    assert stats["totalQuizzes"] == 1
    assert stats["totalPdfs"] == 0
    assert stats["materialsByType"]["text"] == 1
    assert {a["type"] for a in stats["recentActivities"]} == {"generate", "add"}
