"""Per-user learning progress: upserts, quiz results and aggregate statistics."""

from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import PROGRESS_STATUSES, AnswerDetail, Material, QuizResult, SectionProgress, UserProgress
from .repository import isoformat, new_id, parse_json


LOGGER = logging.getLogger(__name__)


class SectionProgressIn(BaseModel):
	sectionId: str
	completed: Optional[bool] = None
	timeSpent: Optional[int] = None


class AnswerIn(BaseModel):
	questionId: str
	userAnswer: Union[str, List[str], None] = None
	isCorrect: bool = False
	timeSpent: Optional[int] = None


class QuizResultIn(BaseModel):
	quizId: str
	score: int
	totalQuestions: int
	correctAnswers: int
	completedAt: Optional[datetime] = None
	timeSpent: int = 0
	answers: List[AnswerIn] = Field(default_factory=list)


class ProgressUpdate(BaseModel):
	status: Optional[str] = Field(default=None, pattern="^(" + "|".join(PROGRESS_STATUSES) + ")$")
	completionPercentage: Optional[int] = Field(default=None, ge=0, le=100)
	timeSpent: Optional[int] = Field(default=None, ge=0)
	lastAccessed: Optional[datetime] = None
	sectionProgress: List[SectionProgressIn] = Field(default_factory=list)
	quizResult: Optional[QuizResultIn] = None


class ProgressCreate(ProgressUpdate):
	userId: str = Field(min_length=1)
	contentId: str = Field(min_length=1)


def progress_to_dict(db: Session, progress: UserProgress) -> Dict[str, Any]:
	sections = db.scalars(select(SectionProgress).where(SectionProgress.progress_id == progress.id))
	results = db.scalars(
		select(QuizResult).where(QuizResult.progress_id == progress.id).order_by(QuizResult.completed_at.desc())
	)
	quiz_results = []
	for result in results:
		answers = db.scalars(select(AnswerDetail).where(AnswerDetail.quiz_result_id == result.id))
		quiz_results.append({
			"quizId": result.quiz_id,
			"score": result.score,
			"totalQuestions": result.total_questions,
			"correctAnswers": result.correct_answers,
			"completedAt": isoformat(result.completed_at),
			"timeSpent": result.time_spent,
			"answers": [
				{
					"questionId": a.question_id,
					"userAnswer": parse_json(a.user_answer, a.user_answer),
					"isCorrect": bool(a.is_correct),
					"timeSpent": a.time_spent,
				}
				for a in answers
			],
		})
	return {
		"id": progress.id,
		"userId": progress.user_id,
		"contentId": progress.content_id,
		"status": progress.status,
		"completionPercentage": progress.completion_percentage,
		"timeSpent": progress.time_spent,
		"lastAccessed": isoformat(progress.last_accessed),
		"sectionProgress": [
			{
				"sectionId": s.section_id,
				"completed": bool(s.completed),
				"timeSpent": s.time_spent,
				"lastAccessed": isoformat(s.last_accessed),
			}
			for s in sections
		],
		"quizResults": quiz_results,
	}


def get_progress(db: Session, progress_id: str) -> Optional[UserProgress]:
	return db.get(UserProgress, progress_id)


def find_progress(db: Session, user_id: str, content_id: str) -> Optional[UserProgress]:
	stmt = select(UserProgress).where(UserProgress.user_id == user_id, UserProgress.content_id == content_id)
	return db.scalars(stmt).first()


def list_user_progress(db: Session, user_id: str) -> List[UserProgress]:
	stmt = select(UserProgress).where(UserProgress.user_id == user_id).order_by(UserProgress.last_accessed.desc())
	return list(db.scalars(stmt))


def _apply_sections(db: Session, progress_id: str, sections: List[SectionProgressIn], now: datetime) -> None:
	for section in sections:
		existing = db.scalars(
			select(SectionProgress).where(
				SectionProgress.progress_id == progress_id,
				SectionProgress.section_id == section.sectionId,
			)
		).first()
		if existing is None:
			db.add(SectionProgress(
				id=new_id(),
				progress_id=progress_id,
				section_id=section.sectionId,
				completed=bool(section.completed),
				time_spent=section.timeSpent or 0,
				last_accessed=now,
				created_at=now,
				updated_at=now,
			))
			continue
		if section.completed is not None:
			existing.completed = section.completed
		if section.timeSpent is not None:
			existing.time_spent = (existing.time_spent or 0) + section.timeSpent
		existing.last_accessed = now
		existing.updated_at = now


def _append_quiz_result(db: Session, progress_id: str, data: QuizResultIn, now: datetime) -> None:
	result_id = new_id()
	db.add(QuizResult(
		id=result_id,
		progress_id=progress_id,
		quiz_id=data.quizId,
		score=data.score,
		total_questions=data.totalQuestions,
		correct_answers=data.correctAnswers,
		completed_at=data.completedAt or now,
		time_spent=data.timeSpent or 0,
		created_at=now,
	))
	for answer in data.answers:
		db.add(AnswerDetail(
			id=new_id(),
			quiz_result_id=result_id,
			question_id=answer.questionId,
			user_answer=json.dumps(answer.userAnswer, ensure_ascii=False),
			is_correct=answer.isCorrect,
			time_spent=answer.timeSpent or 0,
			created_at=now,
		))


def update_progress(db: Session, progress: UserProgress, data: ProgressUpdate) -> UserProgress:
	"""Apply a partial update; time spent accumulates, quiz results are appended."""
	now = datetime.utcnow()
	if data.status:
		progress.status = data.status
	if data.completionPercentage is not None:
		progress.completion_percentage = data.completionPercentage
	if data.timeSpent is not None:
		progress.time_spent = (progress.time_spent or 0) + data.timeSpent
	progress.last_accessed = data.lastAccessed or now
	progress.updated_at = now
	_apply_sections(db, progress.id, data.sectionProgress, now)
	if data.quizResult is not None:
		_append_quiz_result(db, progress.id, data.quizResult, now)
	db.commit()
	db.refresh(progress)
	return progress


def create_or_update_progress(db: Session, data: ProgressCreate) -> UserProgress:
	existing = find_progress(db, data.userId, data.contentId)
	if existing is not None:
		LOGGER.debug("Progress for %s/%s exists, updating", data.userId, data.contentId)
		return update_progress(db, existing, data)
	now = datetime.utcnow()
	progress = UserProgress(
		id=new_id(),
		user_id=data.userId,
		content_id=data.contentId,
		status=data.status or "not-started",
		completion_percentage=data.completionPercentage or 0,
		time_spent=data.timeSpent or 0,
		last_accessed=data.lastAccessed or now,
		created_at=now,
		updated_at=now,
	)
	db.add(progress)
	db.flush()
	_apply_sections(db, progress.id, data.sectionProgress, now)
	if data.quizResult is not None:
		_append_quiz_result(db, progress.id, data.quizResult, now)
	db.commit()
	db.refresh(progress)
	return progress


def user_stats(db: Session, user_id: str) -> Dict[str, Any]:
	total_time = db.scalar(select(func.sum(UserProgress.time_spent)).where(UserProgress.user_id == user_id)) or 0
	completed = db.scalar(
		select(func.count()).select_from(UserProgress).where(UserProgress.user_id == user_id, UserProgress.status == "completed")
	) or 0
	in_progress = db.scalar(
		select(func.count()).select_from(UserProgress).where(UserProgress.user_id == user_id, UserProgress.status == "in-progress")
	) or 0
	rows = db.execute(
		select(UserProgress.content_id, QuizResult.score)
		.join(QuizResult, QuizResult.progress_id == UserProgress.id)
		.where(UserProgress.user_id == user_id)
	).all()
	scores = [row.score for row in rows]
	average = sum(scores) / len(scores) if scores else 0

	# Topics are the titles of the materials a user has scored on
	per_content: Dict[str, List[int]] = {}
	for row in rows:
		per_content.setdefault(row.content_id, []).append(row.score)
	ranked = []
	for content_id, values in per_content.items():
		title = _material_title(db, content_id) or content_id
		ranked.append((title, sum(values) / len(values)))
	ranked.sort(key=lambda item: item[1], reverse=True)

	return {
		"totalTimeSpent": int(total_time),
		"completedContents": completed,
		"inProgressContents": in_progress,
		"averageScore": average,
		"strongTopics": [title for title, _ in ranked[:3]],
		"weakTopics": [title for title, _ in list(reversed(ranked))[:3]],
	}


def _material_title(db: Session, content_id: str) -> Optional[str]:
	try:
		material = db.get(Material, int(content_id))
	except (TypeError, ValueError):
		return None
	return material.title if material else None


def recent_quiz_results(db: Session, user_id: str, limit: int = 20) -> List[QuizResult]:
	stmt = (
		select(QuizResult)
		.join(UserProgress, QuizResult.progress_id == UserProgress.id)
		.where(UserProgress.user_id == user_id)
		.order_by(QuizResult.completed_at.desc())
		.limit(limit)
	)
	return list(db.scalars(stmt))
