from __future__ import annotations
import json
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import JSONSalvageError
from .json_repair import salvage_json
from .models import ADVICE_TYPES, Advice, AdviceFeedback, Material
from .progress import list_user_progress, recent_quiz_results, user_stats
from .repository import isoformat, new_id, parse_json


LOGGER = logging.getLogger(__name__)

ADVICE_MAX_AGE = timedelta(hours=24)

SYSTEM_PROMPT = (
	"You are an AI advisor who analyses learning data and gives personalised advice.\n\n"
	"Analyse the user's learning data (quiz results, study time, viewed content, progress,"
	" error patterns) and produce one piece of advice of one of these types:\n\n"
	"- motivation: advice that raises motivation\n"
	"- weakness: advice for overcoming weak areas\n"
	"- strategy: advice on study strategy\n"
	"- progress: a progress report with feedback\n"
	"- alert: a warning that needs attention\n"
	"- general: general advice\n\n"
	"Make the advice concrete and practical, tailored to the user's situation."
)


def advice_to_dict(advice: Advice) -> Dict[str, Any]:
	return {
		"id": advice.id,
		"userId": advice.user_id,
		"type": advice.type,
		"content": advice.content,
		"sources": parse_json(advice.sources, []),
		"metadata": parse_json(advice.metadata_json, {}),
		"createdAt": isoformat(advice.created_at),
	}


def parse_advice_reply(text: str) -> Dict[str, str]:
	"""``{type, content}`` from the model reply, or ``general`` plus the raw text."""
	try:
		value = salvage_json(text)
	except JSONSalvageError:
		return {"type": "general", "content": text.strip()}
	if not isinstance(value, dict):
		return {"type": "general", "content": text.strip()}
	advice_type = str(value.get("type") or "general").strip().lower()
	if advice_type not in ADVICE_TYPES:
		advice_type = "general"
	content = value.get("content")
	if not isinstance(content, str) or not content.strip():
		content = text.strip()
	return {"type": advice_type, "content": content}


class AdvisorService:
	def __init__(self, db: Session, llm) -> None:
		self.db = db
		self.llm = llm

	def collect_learning_data(self, user_id: str) -> Dict[str, Any]:
		progress = list_user_progress(self.db, user_id)
		results = recent_quiz_results(self.db, user_id)
		viewed: List[str] = []
		for item in progress[:10]:
			try:
				material = self.db.get(Material, int(item.content_id))
			except (TypeError, ValueError):
				material = None
			viewed.append(material.title if material else item.content_id)
		quiz_summary = None
		if results:
			correct = sum(r.correct_answers for r in results)
			total = sum(r.total_questions for r in results)
			quiz_summary = {
				"totalQuizzes": len(results),
				"correctAnswers": correct,
				"totalQuestions": total,
				"successRate": round(correct / total * 100, 1) if total else 0.0,
				"recentQuizDate": isoformat(results[0].completed_at),
			}
		stats = user_stats(self.db, user_id)
		return {
			"userId": user_id,
			"quizPerformance": quiz_summary,
			"learningHabits": {
				"totalMinutes": round(stats["totalTimeSpent"] / 60, 1),
				"lastSessionDate": isoformat(progress[0].last_accessed) if progress else None,
			},
			"contentEngagement": {"totalViewed": len(progress), "recentlyViewed": viewed[:3]} if progress else None,
			"progressSummary": stats,
			"quizCount": len(results),
			"contentCount": len(progress),
		}

	def _user_prompt(self, data: Dict[str, Any]) -> str:
		return (
			"Analyse the following learning data and produce suitable advice:\n\n"
			f"User ID: {data['userId']}\n"
			f"Quiz performance: {json.dumps(data['quizPerformance'], ensure_ascii=False)}\n"
			f"Study time: {json.dumps(data['learningHabits'], ensure_ascii=False)}\n"
			f"Viewed content: {json.dumps(data['contentEngagement'], ensure_ascii=False)}\n"
			f"Progress: {json.dumps(data['progressSummary'], ensure_ascii=False)}\n\n"
			"Reply with JSON in this format:\n"
			'{\n  "type": "motivation|weakness|strategy|progress|alert|general",\n  "content": "the advice"\n}'
		)

	async def generate_advice(self, user_id: str) -> Advice:
		data = self.collect_learning_data(user_id)
		reply = await self.llm.chat(
			[
				{"role": "system", "content": SYSTEM_PROMPT},
				{"role": "user", "content": self._user_prompt(data)},
			],
			temperature=0.7,
		)
		parsed = parse_advice_reply(reply)
		advice = Advice(
			id=new_id(),
			user_id=user_id,
			type=parsed["type"],
			content=parsed["content"],
			sources=json.dumps(["progress", "quiz_results"]),
			metadata_json=json.dumps({
				"generatedFrom": {
					"quizCount": data["quizCount"],
					"learningTime": data["progressSummary"]["totalTimeSpent"],
					"contentCount": data["contentCount"],
				},
			}),
			created_at=datetime.utcnow(),
		)
		self.db.add(advice)
		self.db.commit()
		self.db.refresh(advice)
		LOGGER.info("Stored %s advice %s for user %s", advice.type, advice.id, user_id)
		return advice

	def latest_advice(self, user_id: str) -> Optional[Advice]:
		stmt = select(Advice).where(Advice.user_id == user_id).order_by(Advice.created_at.desc()).limit(1)
		return self.db.scalars(stmt).first()

	async def advice_for_user(self, user_id: str) -> Advice:
		latest = self.latest_advice(user_id)
		if latest is not None and datetime.utcnow() - latest.created_at < ADVICE_MAX_AGE:
			return latest
		return await self.generate_advice(user_id)


def advice_history(db: Session, user_id: str, limit: int = 10) -> List[Advice]:
	stmt = select(Advice).where(Advice.user_id == user_id).order_by(Advice.created_at.desc()).limit(limit)
	return list(db.scalars(stmt))


def record_feedback(db: Session, advice: Advice, feedback: str, user_id: Optional[str]) -> AdviceFeedback:
	row = AdviceFeedback(
		id=new_id(),
		advice_id=advice.id,
		user_id=user_id,
		feedback=feedback,
		created_at=datetime.utcnow(),
	)
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


def advice_stats(db: Session, user_id: str) -> Dict[str, Any]:
	rows = list(db.scalars(select(Advice).where(Advice.user_id == user_id).order_by(Advice.created_at.desc())))
	by_type = Counter(row.type for row in rows)
	feedback = list(db.scalars(
		select(AdviceFeedback)
		.join(Advice, AdviceFeedback.advice_id == Advice.id)
		.where(Advice.user_id == user_id)
	))
	helpful = sum(1 for f in feedback if f.feedback == "helpful")
	return {
		"adviceCount": len(rows),
		"helpfulRate": round(helpful / len(feedback) * 100) if feedback else 0,
		"adviceByType": {t: by_type.get(t, 0) for t in ADVICE_TYPES},
		"feedbackCount": len(feedback),
		"lastAdviceDate": isoformat(rows[0].created_at) if rows else None,
	}
