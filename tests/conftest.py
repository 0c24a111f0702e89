from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from fastapi.testclient import TestClient

from scrum_sensei.deps import get_gemini, get_llm
from scrum_sensei.main import create_app
from scrum_sensei.settings import Settings


class FakeLLM:
    """Stands in for ``OpenAIChatClient``; replies are popped in order."""

    def __init__(self, replies: Optional[List[str]] = None) -> None:
        self.replies = list(replies or [])
        self.calls: List[List[Dict[str, str]]] = []

    def _next(self) -> str:
        if self.replies:
            return self.replies.pop(0)
        return "{}"

    async def chat(self, messages, *, temperature: float = 0.7, max_tokens=None) -> str:
        self.calls.append(list(messages))
        return self._next()

    async def complete(self, prompt, *, system=None, temperature: float = 0.7, max_tokens=None) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        return await self.chat(messages, temperature=temperature, max_tokens=max_tokens)

    async def aclose(self) -> None:
        return None


class FakeGemini:
    def __init__(self, script: str = "Welcome to the lecture.", audio: bytes = b"\x00\x01" * 2400) -> None:
        self.script = script
        self.audio = audio
        self.prompts: List[str] = []
        self.voices: List[Optional[str]] = []

    async def generate(self, prompt: str, *, model: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        return self.script

    async def synthesize_speech(self, text: str, *, voice=None, model=None) -> bytes:
        self.voices.append(voice)
        return self.audio

    async def aclose(self) -> None:
        return None


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'scrum_sensei.db'}",
        public_dir=tmp_path / "public",
        gemini_api_key=None,
        openai_api_key=None,
        log_level="WARNING",
    )


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture()
def app(settings: Settings, fake_llm: FakeLLM, fake_gemini: FakeGemini):
    application = create_app(settings)
    application.dependency_overrides[get_llm] = lambda: fake_llm
    application.dependency_overrides[get_gemini] = lambda: fake_gemini
    yield application
    application.state.database.dispose()


@pytest.fixture()
def client(app) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def session(app):
    db = app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def build_pdf(lines: List[str]) -> bytes:
    fitz = pytest.importorskip("fitz")
    document = fitz.open()
    page = document.new_page()
    for index, line in enumerate(lines):
        page.insert_text((72, 72 + index * 18), line)
    buffer = io.BytesIO()
    document.save(buffer)
    document.close()
    return buffer.getvalue()


def quiz_reply(count: int = 2) -> str:
    questions: List[Dict[str, Any]] = []
    for index in range(count):
        questions.append({
            "id": f"q{index + 1}",
            "question": f"What does the Scrum Master do? ({index + 1})",
            "type": "multiple-choice",
            "options": [
                {"id": "a", "text": "Serves the team", "isCorrect": True},
                {"id": "b", "text": "Assigns tasks", "isCorrect": False},
            ],
            "correctAnswer": "a",
            "explanation": "The Scrum Master is a servant leader.",
        })
    return json.dumps(questions)
