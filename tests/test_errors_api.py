from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from scrum_sensei.errors import GENERIC_ERROR_MESSAGE, UpstreamError
from scrum_sensei.main import create_app
from scrum_sensei.models import Material


@pytest.fixture()
def unconfigured_client(settings):
    application = create_app(settings)
    with TestClient(application) as test_client:
        yield test_client
    application.state.database.dispose()


@pytest.mark.parametrize(
    "path",
    [
        "/api/generate-quiz",
        "/api/admin/tts",
        "/api/admin/tts/generate-content",
        "/api/admin/create-audio-material",
        "/api/advice",
        "/api/user/chat",
        "/api/user/reflection",
    ],
)
def test_missing_fields_are_rejected_without_api_keys(unconfigured_client, path: str) -> None:
    response = unconfigured_client.post(path, json={})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_missing_api_key_surfaces_once_a_call_is_made(unconfigured_client) -> None:
    response = unconfigured_client.post("/api/generate-quiz", json={"topic": "Scrum values"})
    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "OPENAI_API_KEY is not configured"

    response = unconfigured_client.post("/api/admin/tts", json={"text": "Daily Scrum"})
    assert response.status_code == 500
    assert response.json()["error"] == "GEMINI_API_KEY is not configured"


def test_vendor_failure_on_tts_is_reported_with_upstream_details(client, fake_gemini) -> None:
    async def _rate_limited(text, *, voice=None, model=None):
        raise UpstreamError(
            "Gemini API error: 429",
            status_code=429,
            body={"error": {"code": 429, "status": "RESOURCE_EXHAUSTED"}},
        )

    fake_gemini.synthesize_speech = _rate_limited
    response = client.post("/api/admin/tts", json={"text": "Sprint Planning"})
    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Gemini API error: 429",
        "upstream": {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED"}},
        "upstream_status": 429,
    }


def test_vendor_failure_on_advice_is_reported_with_upstream_details(client, fake_llm) -> None:
    async def _rate_limited(messages, *, temperature: float = 0.7, max_tokens=None):
        raise UpstreamError("OpenAI API error: 429", status_code=429, body={"error": {"type": "rate_limit"}})

    fake_llm.chat = _rate_limited
    response = client.post("/api/advice", json={"userId": "u1"})
    assert response.status_code == 500
    body = response.json()
    assert body["upstream_status"] == 429
    assert body["upstream"] == {"error": {"type": "rate_limit"}}


def test_unexpected_errors_get_a_generic_message(app, fake_llm) -> None:
    async def _broken(messages, *, temperature: float = 0.7, max_tokens=None):
        raise RuntimeError("connection pool exhausted")

    fake_llm.chat = _broken
    with TestClient(app, raise_server_exceptions=False) as test_client:
        response = test_client.post("/api/user/chat", json={"userId": "u1", "message": "What is a sprint?"})
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": GENERIC_ERROR_MESSAGE}
    assert GENERIC_ERROR_MESSAGE == "An unexpected error occurred"


def test_failed_audio_commit_removes_written_file(
    app, settings, fake_gemini, monkeypatch: pytest.MonkeyPatch
) -> None:
    with TestClient(app, raise_server_exceptions=False) as test_client:
        quiz = test_client.post("/api/quiz", json={"title": "Roles quiz", "questions": [{"question": "Who?"}]})
        material_id = quiz.json()["materialId"]

        def _failing_commit(self):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(Session, "commit", _failing_commit)
        response = test_client.post("/api/admin/create-audio-material", json={"materialId": material_id})
        monkeypatch.undo()

    assert response.status_code == 500
    assert fake_gemini.voices
    assert list((Path(settings.public_dir) / "audio").iterdir()) == []
    db = app.state.database.session()
    try:
        assert db.scalars(select(Material).where(Material.type == "audio")).all() == []
    finally:
        db.close()
