from __future__ import annotations
from typing import Any, AsyncIterator, Callable, Optional

from fastapi import Depends, Request

from .gemini_client import GeminiClient
from .lecture import LectureAudioEngine, TTSSettings
from .openai_client import OpenAIChatClient
from .settings import Settings
from .storage import PublicStorage


def get_app_settings(request: Request) -> Settings:
	return request.app.state.settings


def get_storage(request: Request) -> PublicStorage:
	return request.app.state.storage


class LazyClient:
	"""
	Defers building a vendor client until a handler first calls it.

	Handlers validate their request body before touching the client, so a
	missing field is reported as 400 even when no API key is configured.
	"""

	def __init__(self, factory: Callable[[], Any]) -> None:
		self._factory = factory
		self._client: Optional[Any] = None

	def __getattr__(self, name: str) -> Any:
		if self._client is None:
			self._client = self._factory()
		return getattr(self._client, name)

	async def aclose(self) -> None:
		if self._client is not None:
			await self._client.aclose()
			self._client = None


async def get_llm(request: Request) -> AsyncIterator[OpenAIChatClient]:
	settings = request.app.state.settings
	client = LazyClient(lambda: OpenAIChatClient(settings=settings))
	try:
		yield client
	finally:
		await client.aclose()


async def get_gemini(request: Request) -> AsyncIterator[GeminiClient]:
	settings = request.app.state.settings
	client = LazyClient(lambda: GeminiClient(settings=settings))
	try:
		yield client
	finally:
		await client.aclose()


def get_lecture_engine(request: Request, client=Depends(get_gemini)) -> LectureAudioEngine:
	settings = request.app.state.settings
	return LectureAudioEngine(client, TTSSettings.from_settings(settings), text_model=settings.gemini_model)
