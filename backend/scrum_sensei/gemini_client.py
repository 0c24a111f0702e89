from __future__ import annotations
import base64
import logging
import httpx
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ValidationError
from .errors import MissingAPIKeyError, UpstreamError
from .settings import Settings, get_settings


LOGGER = logging.getLogger(__name__)


class _InlineData(BaseModel):
	mimeType: Optional[str] = None
	data: str


class _Part(BaseModel):
	text: Optional[str] = None
	inlineData: Optional[_InlineData] = None


class _Content(BaseModel):
	parts: List[_Part]
	role: Optional[str] = None


class _Candidate(BaseModel):
	content: _Content


class GenerateContentResponse(BaseModel):
	candidates: List[_Candidate]


def _error_body(r: httpx.Response) -> Any:
	try:
		return r.json()
	except ValueError:
		return r.text


class GeminiClient:
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
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise MissingAPIKeyError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.tts_model = settings.gemini_tts_model
		self.voice = settings.gemini_tts_voice
		# Google AI Studio (Generative Language API), key passed in the query
		self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
		self._client = httpx.AsyncClient(timeout=settings.request_timeout, transport=transport)

	def _endpoint(self, model: str) -> str:
		return f"{self.base_url}/{model}:generateContent"

	async def generate(self, prompt: str, *, model: Optional[str] = None) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		data = await self._post_payload(payload, model=model or self.model)
		text = data.candidates[0].content.parts[0].text if data.candidates else None
		if text is None:
			raise UpstreamError("Gemini response contained no text", body=data.model_dump())
		return text

	async def synthesize_speech(self, text: str, *, voice: Optional[str] = None, model: Optional[str] = None) -> bytes:
		"""Return raw audio bytes for ``text`` from the Gemini TTS model."""
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": text}]}],
			"generationConfig": {
				"responseModalities": ["AUDIO"],
				"speechConfig": {
					"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice or self.voice}},
				},
			},
		}
		data = await self._post_payload(payload, model=model or self.tts_model)
		inline = data.candidates[0].content.parts[0].inlineData if data.candidates else None
		if inline is None:
			raise UpstreamError("Gemini TTS response contained no audio data", body=data.model_dump())
		try:
			return base64.b64decode(inline.data, validate=True)
		except ValueError as err:
			raise UpstreamError("Gemini TTS audio was not valid base64") from err

	async def _post_payload(self, payload: Dict[str, Any], *, model: str) -> GenerateContentResponse:
		params = {"key": self.api_key}
		try:
			r = await self._client.post(self._endpoint(model), params=params, json=payload)
		except httpx.RequestError as net_err:
			raise UpstreamError(f"Gemini request failed: {net_err}") from net_err
		if r.status_code >= 400:
			LOGGER.warning("Gemini %s returned HTTP %s", model, r.status_code)
			raise UpstreamError(
				f"Gemini API error: {r.status_code}",
				status_code=r.status_code,
				body=_error_body(r),
			)
		try:
			data = GenerateContentResponse.model_validate(r.json())
		except (ValueError, ValidationError) as err:
			raise UpstreamError(f"Unexpected Gemini response: {r.text[:500]}", status_code=r.status_code) from err
		if not data.candidates or not data.candidates[0].content.parts:
			raise UpstreamError("Gemini response contained no candidates", status_code=r.status_code, body=_error_body(r))
		return data

	async def aclose(self) -> None:
		await self._client.aclose()
