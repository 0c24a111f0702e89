"""Lecture scripts and narration audio generated with Gemini."""

from __future__ import annotations
import logging
import wave
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import MissingAPIKeyError, UpstreamError
from .settings import Settings


LOGGER = logging.getLogger(__name__)

# Gemini TTS returns 16-bit mono PCM at 24 kHz
PCM_SAMPLE_RATE = 24000
PCM_SAMPLE_WIDTH = 2
PCM_CHANNELS = 1

PDF_CONTEXT_LIMIT = 3000


@dataclass
class TTSSettings:
	model: str
	voice: str
	language: str
	style: str

	@classmethod
	def from_settings(cls, settings: Settings) -> "TTSSettings":
		return cls(
			model=settings.gemini_tts_model,
			voice=settings.gemini_tts_voice,
			language=settings.gemini_tts_language,
			style=settings.gemini_tts_style,
		)

	def merged(self, overrides: Optional[Dict[str, Any]]) -> "TTSSettings":
		if not overrides:
			return self
		known = {k: str(v) for k, v in overrides.items() if k in ("model", "voice", "language", "style") and v}
		return replace(self, **known)

	def as_dict(self) -> Dict[str, str]:
		return {"model": self.model, "voice": self.voice, "language": self.language, "style": self.style}


def styled_prompt(text: str, style: str) -> str:
	return (
		f"Read the following educational content in a {style or 'clear and friendly'} tone, "
		"appropriate for a learning environment.\n"
		"Speak at a comfortable pace that allows for easy comprehension:\n\n"
		f"{text}"
	)


def write_audio(audio: bytes, output_path: Path) -> Path:
	output_path.parent.mkdir(parents=True, exist_ok=True)
	if audio[:4] == b"RIFF":
		output_path.write_bytes(audio)
		return output_path
	with wave.open(str(output_path), "wb") as handle:
		handle.setnchannels(PCM_CHANNELS)
		handle.setsampwidth(PCM_SAMPLE_WIDTH)
		handle.setframerate(PCM_SAMPLE_RATE)
		handle.writeframes(audio)
	return output_path


def simple_lecture_script(quiz: Dict[str, Any]) -> str:
	title = quiz.get("title") or "this material"
	lines: List[str] = [
		f"This lecture covers {title}.",
		"",
		f"Today we will work through the key points of {title}.",
		"",
	]
	for idx, question in enumerate(quiz.get("questions") or []):
		lines.append(f"Point {idx + 1}.")
		lines.append(f"Let us look at: {str(question.get('question', '')).rstrip('?？')}.")
		lines.append("")
		if question.get("explanation"):
			lines.append(str(question["explanation"]))
			lines.append("")
		lines.append("Make sure this point is clear before moving on.")
		lines.append("")
	lines.append(f"That concludes the lecture on {title}. Review what you learned today to deepen your understanding.")
	return "\n".join(lines)


def _lecture_prompt(quiz: Dict[str, Any], pdf_content: str) -> str:
	questions = quiz.get("questions") or []
	topics = "\n".join(str(q.get("question", "")) for q in questions)
	explanations = "\n".join(str(q["explanation"]) for q in questions if q.get("explanation"))
	reference = f"[Reference material]\n{pdf_content[:PDF_CONTEXT_LIMIT]}\n\n" if pdf_content else ""
	return (
		"You are an excellent instructor. Using the information below, write an educational,"
		" easy-to-follow lecture script to be read aloud.\n\n"
		f"[Title]\n{quiz.get('title', '')}\n\n"
		f"[Topics to cover]\n{topics}\n\n"
		f"[Existing explanations]\n{explanations}\n\n"
		f"{reference}"
		"[Instructions]\n"
		"1. State the learning goals in the introduction\n"
		"2. Explain each topic in a logical order\n"
		"3. Use concrete examples\n"
		"4. Repeat and emphasise the key points\n"
		"5. Write in natural spoken language\n"
		"6. Aim for a 15-20 minute lecture\n"
		"7. Finish with a summary of the key points\n\n"
		"Write the script:"
	)


def _narration_prompt(title: Optional[str], content: str, topic: str) -> str:
	return (
		"You are an assistant that writes professional educational content.\n"
		"Write narration for an audio lesson based on the material and topic below.\n\n"
		f"# Material title\n{title or '(untitled)'}\n\n"
		f"# Topic\n{topic}\n\n"
		f"# Material content (reference)\n{content}\n\n"
		"# Instructions\n"
		"1. Focus on the topic, using the material as reference.\n"
		"2. Keep it around 500-1000 characters and easy to listen to.\n"
		"3. Use natural spoken language.\n"
		"4. Emphasise the key points briefly.\n"
		"5. Include an opening and a closing.\n\n"
		"Output only the narration, without notes or headings."
	)


class LectureAudioEngine:
	"""Text model for scripts plus the TTS model for audio, sharing one Gemini client."""

	def __init__(self, client, tts: TTSSettings, *, text_model: Optional[str] = None) -> None:
		self.client = client
		self.tts = tts
		self.text_model = text_model

	def with_overrides(self, overrides: Optional[Dict[str, Any]]) -> "LectureAudioEngine":
		return LectureAudioEngine(self.client, self.tts.merged(overrides), text_model=self.text_model)

	async def generate_lecture_script(self, quiz: Dict[str, Any], pdf_content: str = "") -> str:
		try:
			script = await self.client.generate(_lecture_prompt(quiz, pdf_content), model=self.text_model)
		except MissingAPIKeyError:
			raise
		except UpstreamError as err:
			LOGGER.warning("Lecture script generation failed, using simple script: %s", err.message)
			return simple_lecture_script(quiz)
		if not script.strip():
			return simple_lecture_script(quiz)
		return script

	async def text_to_speech(self, text: str, output_path: Path) -> Path:
		LOGGER.info("TTS model=%s voice=%s language=%s", self.tts.model, self.tts.voice, self.tts.language)
		audio = await self.client.synthesize_speech(
			styled_prompt(text, self.tts.style),
			voice=self.tts.voice,
			model=self.tts.model,
		)
		return write_audio(audio, output_path)


async def generate_audio_content(client, *, title: Optional[str], content: str, topic: str) -> str:
	"""Narration script for ``topic`` drawn from a material's text."""
	text = await client.generate(_narration_prompt(title, content, topic))
	if not text.strip():
		raise UpstreamError("Narration generation returned no text")
	return text
