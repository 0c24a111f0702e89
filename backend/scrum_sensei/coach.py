from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from .errors import JSONSalvageError
from .json_repair import salvage_json


LOGGER = logging.getLogger(__name__)

COACH_SYSTEM_PROMPT = (
	"You are an experienced Scrum coach.\n"
	"Give learners practical, easy-to-follow answers to their questions.\n\n"
	"When answering:\n"
	"- give concrete, actionable advice\n"
	"- match the explanation to the learner's level\n"
	"- encourage and motivate\n"
	"- make the next step clear\n\n"
	"You can explain Scrum fundamentals, agile principles and values, sprint planning and"
	" execution, running retrospectives, improving team collaboration, and agile metrics."
)

CONTENT_EXCERPT_LIMIT = 2000


def default_reflection_questions(title: str) -> List[str]:
	return [
		f"What were the main points of {title}?",
		"How could you apply what you learned in practice?",
		"Was any part hard to understand? Why?",
		"What would you like to learn next about this topic?",
		"Summarise what you learned in your own words.",
	]


class LearningCoach:
	def __init__(self, llm) -> None:
		self.llm = llm

	async def reflection_questions(self, material: Dict[str, Any]) -> List[str]:
		title = material.get("title") or "this material"
		prompt = (
			f"Write five short reflection questions for a learner who just studied \"{title}\".\n"
			f"Description: {material.get('description') or ''}\n\n"
			'Return ONLY a JSON object: {"questions": ["...", "..."]}'
		)
		text = await self.llm.complete(prompt, system=COACH_SYSTEM_PROMPT, temperature=0.5)
		try:
			value = salvage_json(text)
		except JSONSalvageError:
			LOGGER.warning("Reflection reply was not JSON; using default questions")
			return default_reflection_questions(title)
		items = value.get("questions") if isinstance(value, dict) else value
		if not isinstance(items, list):
			return default_reflection_questions(title)
		questions = [str(q).strip() for q in items if isinstance(q, (str, int, float)) and str(q).strip()]
		return questions or default_reflection_questions(title)

	async def chat(
		self,
		message: str,
		*,
		material: Optional[Dict[str, Any]] = None,
		progress: Optional[Dict[str, Any]] = None,
		stats: Optional[Dict[str, Any]] = None,
	) -> str:
		context: List[str] = []
		if material:
			excerpt = (material.get("content") or "")[:CONTENT_EXCERPT_LIMIT]
			context.append(f"Current material: {material.get('title')}\n{material.get('description') or ''}\n{excerpt}".strip())
		if progress:
			context.append(
				f"Learner progress on this material: status {progress.get('status')},"
				f" {progress.get('completionPercentage')}% complete"
			)
		if stats:
			context.append(
				f"Overall: {stats.get('completedContents', 0)} completed, average quiz score {stats.get('averageScore', 0)}"
			)
		messages = [{"role": "system", "content": COACH_SYSTEM_PROMPT}]
		if context:
			messages.append({"role": "system", "content": "\n\n".join(context)})
		messages.append({"role": "user", "content": message})
		return await self.llm.chat(messages, temperature=0.7)
