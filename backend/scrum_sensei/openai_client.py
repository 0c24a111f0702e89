from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ValidationError
from .errors import MissingAPIKeyError, UpstreamError
from .settings import Settings, get_settings


LOGGER = logging.getLogger(__name__)


class _Message(BaseModel):
	role: Optional[str] = None
	content: Optional[str] = None


class _Choice(BaseModel):
	message: _Message


class ChatCompletionResponse(BaseModel):
	choices: List[_Choice]


class OpenAIChatClient:
	"""Minimal Chat Completions client used for quizzes and coaching."""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		settings: Optional[Settings] = None,
		model: Optional[str] = None,
		base_url: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		settings = settings or get_settings()
		self.api_key = api_key or settings.openai_api_key
		if not self.api_key:
			raise MissingAPIKeyError("OPENAI_API_KEY is not configured")
		self.model = model or settings.openai_model
		self.base_url = base_url or settings.openai_base_url
		self._headers = {
			"Authorization": f"Bearer {self.api_key}",
			"Content-Type": "application/json",
		}
		self._client = httpx.AsyncClient(timeout=settings.request_timeout, transport=transport)

	async def chat(
		self,
		messages: List[Dict[str, str]],
		*,
		temperature: float = 0.7,
		max_tokens: Optional[int] = None,
	) -> str:
		payload: Dict[str, Any] = {
			"model": self.model,
			"messages": messages,
			"temperature": temperature,
		}
		if max_tokens is not None:
			payload["max_tokens"] = max_tokens
		try:
			r = await self._client.post(self.base_url, headers=self._headers, json=payload)
		except httpx.RequestError as net_err:
			raise UpstreamError(f"OpenAI request failed: {net_err}") from net_err
		if r.status_code >= 400:
			try:
				body: Any = r.json()
			except ValueError:
				body = r.text
			LOGGER.warning("OpenAI chat returned HTTP %s", r.status_code)
			raise UpstreamError(f"OpenAI API error: {r.status_code}", status_code=r.status_code, body=body)
		try:
			data = ChatCompletionResponse.model_validate(r.json())
		except (ValueError, ValidationError) as err:
			raise UpstreamError(f"Unexpected OpenAI response: {r.text[:500]}", status_code=r.status_code) from err
		if not data.choices or data.choices[0].message.content is None:
			raise UpstreamError("OpenAI response contained no message content", status_code=r.status_code, body=r.json())
		return data.choices[0].message.content

	async def complete(self, prompt: str, *, system: Optional[str] = None, temperature: float = 0.7, max_tokens: Optional[int] = None) -> str:
		messages: List[Dict[str, str]] = []
		if system:
			messages.append({"role": "system", "content": system})
		messages.append({"role": "user", "content": prompt})
		return await self.chat(messages, temperature=temperature, max_tokens=max_tokens)

	async def aclose(self) -> None:
		await self._client.aclose()
