from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .errors import JSONSalvageError, MissingAPIKeyError, UpstreamError
from .json_repair import salvage_json


LOGGER = logging.getLogger(__name__)

MIN_QUESTIONS = 1
MAX_QUESTIONS = 20
DEFAULT_QUESTIONS = 5
CONTEXT_LIMIT = 6000


def clamp_count(value: Any) -> int:
	if not value:
		return DEFAULT_QUESTIONS
	try:
		count = int(value)
	except (TypeError, ValueError):
		return DEFAULT_QUESTIONS
	return max(MIN_QUESTIONS, min(count, MAX_QUESTIONS))


def _build_quiz_prompt(topic: str, count: int, types: Sequence[str], context: str) -> str:
	return (
		f"Create {count} {', '.join(types)} questions about {topic} based on the text below.\n"
		"Mark the correct answer clearly.\n\n"
		f"Context:\n{context[:CONTEXT_LIMIT]}\n\n"
		"Return ONLY a JSON array in this format:\n"
		"[\n"
		"  {\n"
		'    "id": "q1",\n'
		'    "question": "Question text",\n'
		'    "type": "multiple-choice",\n'
		'    "options": [\n'
		'      {"id": "a", "text": "Choice 1", "isCorrect": false},\n'
		'      {"id": "b", "text": "Choice 2", "isCorrect": true},\n'
		'      {"id": "c", "text": "Choice 3", "isCorrect": false},\n'
		'      {"id": "d", "text": "Choice 4", "isCorrect": false}\n'
		"    ],\n"
		'    "correctAnswer": "b",\n'
		'    "explanation": "Why b is correct"\n'
		"  }\n"
		"]"
	)


def fallback_questions(topic: str, count: int) -> List[Dict[str, Any]]:
	return [
		{
			"id": f"q{i + 1}",
			"type": "multiple-choice",
			"question": f"Fallback question {i + 1} about {topic}",
			"options": [
				{"id": "a", "text": "Fallback choice A", "isCorrect": True},
				{"id": "b", "text": "Fallback choice B", "isCorrect": False},
				{"id": "c", "text": "Fallback choice C", "isCorrect": False},
				{"id": "d", "text": "Fallback choice D", "isCorrect": False},
			],
			"correctAnswer": "a",
			"explanation": "Question generation failed, so a placeholder question is shown.",
		}
		for i in range(count)
	]


def derive_correct_answer(options: Any, field: str = "id") -> str:
	"""``field`` of the first option flagged ``isCorrect``."""
	if not isinstance(options, list):
		return ""
	for option in options:
		if isinstance(option, dict) and option.get("isCorrect"):
			return str(option.get(field) or option.get("text") or "")
	return ""


def normalise_question(raw: Dict[str, Any], index: int, *, topic: str, difficulty: Optional[str]) -> Dict[str, Any]:
	options = raw.get("options") or raw.get("choices") or []
	correct = raw.get("correctAnswer") or raw.get("correct_answer") or raw.get("answer") or derive_correct_answer(options)
	return {
		"id": raw.get("id") or f"q_{index + 1}",
		"question": raw.get("question") or raw.get("text") or "",
		"type": raw.get("type") or "multiple-choice",
		"difficulty": raw.get("difficulty") or difficulty or "medium",
		"options": options if isinstance(options, list) else [],
		"correctAnswer": correct or "",
		"explanation": raw.get("explanation") or "No explanation provided.",
		"tags": raw.get("tags") or [topic],
	}


def _questions_from(value: Any) -> Optional[List[Dict[str, Any]]]:
	if isinstance(value, list):
		items = value
	elif isinstance(value, dict) and isinstance(value.get("questions"), list):
		items = value["questions"]
	else:
		return None
	questions = [item for item in items if isinstance(item, dict)]
	return questions or None


async def generate_quiz(
	llm,
	*,
	topic: str,
	count: int = DEFAULT_QUESTIONS,
	types: Sequence[str] = ("multiple-choice",),
	context: str = "",
	difficulty: Optional[str] = None,
) -> Dict[str, Any]:
	"""
	Ask the chat model for quiz questions and normalise them.

	Args:
		llm: Object exposing ``async complete(prompt, ...) -> str``.
		topic: Subject of the quiz.
		count: Requested question count, clamped to 1-20.
		types: Question types to request.
		context: Source text the questions should be based on.
		difficulty: Default difficulty for questions that carry none.

	Returns:
		Dict[str, Any]: ``{"quizTitle", "questions", "metadata"}``. When the
		model answer cannot be recovered the questions are placeholders and
		``metadata.fallback`` is True.
	"""
	count = clamp_count(count)
	context = context.strip() or f"General knowledge about {topic}."
	prompt = _build_quiz_prompt(topic, count, types, context)
	fallback = False
	try:
		text = await llm.complete(prompt, temperature=0.7)
		raw_questions = _questions_from(salvage_json(text))
		if raw_questions is None:
			raise JSONSalvageError("Model reply held no question list")
	except MissingAPIKeyError:
		raise
	except (JSONSalvageError, UpstreamError) as err:
		LOGGER.warning("Quiz generation for %r fell back to placeholders: %s", topic, err)
		raw_questions = fallback_questions(topic, count)
		fallback = True

	questions = [
		normalise_question(item, idx, topic=topic, difficulty=difficulty)
		for idx, item in enumerate(raw_questions[:count])
	]
	return {
		"quizTitle": f"Review quiz: {topic}",
		"questions": questions,
		"metadata": {
			"topic": topic,
			"count": count,
			"types": list(types),
			"createdAt": datetime.utcnow().isoformat(),
			"fallback": fallback,
		},
	}
