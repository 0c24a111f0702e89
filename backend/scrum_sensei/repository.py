from __future__ import annotations
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import Material, MaterialSection, Question, Quiz, QuizQuestion


LOGGER = logging.getLogger(__name__)


def new_id() -> str:
	return str(uuid.uuid4())


def isoformat(value: Optional[datetime]) -> Optional[str]:
	return value.isoformat() if value else None


def parse_json(raw: Any, default: Any = None) -> Any:
	if raw is None or raw == "":
		return default
	if not isinstance(raw, str):
		return raw
	try:
		return json.loads(raw)
	except ValueError:
		LOGGER.warning("Stored JSON could not be decoded: %.80s", raw)
		return default


def parse_options(raw: Any) -> List[Any]:
	"""Options column as a list, whatever was stored."""
	value = parse_json(raw, [])
	if isinstance(value, list):
		return value
	LOGGER.warning("Question options are not a list: %.80r", value)
	return []


def question_to_dict(q: Question) -> Dict[str, Any]:
	return {
		"id": q.id,
		"material_id": q.material_id,
		"question": q.question,
		"type": q.type,
		"options": parse_options(q.options),
		"correct_answer": q.correct_answer,
		"correctAnswer": q.correct_answer,
		"explanation": q.explanation,
		"created_at": isoformat(q.created_at),
	}


def material_to_dict(m: Material, *, include_content: bool = True) -> Dict[str, Any]:
	data = {
		"id": m.id,
		"title": m.title,
		"description": m.description,
		"type": m.type,
		"status": m.status,
		"file_path": m.file_path,
		"created_at": isoformat(m.created_at),
		"updated_at": isoformat(m.updated_at),
		"published_at": isoformat(m.published_at),
	}
	if include_content:
		data["content"] = m.content
	return data


def section_to_dict(s: MaterialSection) -> Dict[str, Any]:
	return {
		"id": s.id,
		"title": s.title,
		"content": s.content,
		"audio_url": s.audio_url,
		"position": s.position,
	}


def get_material(db: Session, material_id: int, *, type: Optional[str] = None, status: Optional[str] = None) -> Optional[Material]:
	material = db.get(Material, material_id)
	if material is None:
		return None
	if type is not None and material.type != type:
		return None
	if status is not None and material.status != status:
		return None
	return material


def list_materials(db: Session, *, type: Optional[str] = None, status: Optional[str] = None) -> List[Material]:
	stmt = select(Material)
	if type is not None:
		stmt = stmt.where(Material.type == type)
	if status is not None:
		stmt = stmt.where(Material.status == status)
	stmt = stmt.order_by(Material.created_at.desc(), Material.id.desc())
	return list(db.scalars(stmt))


def list_questions(db: Session, material_id: int) -> List[Question]:
	stmt = select(Question).where(Question.material_id == material_id).order_by(Question.created_at, Question.id)
	return list(db.scalars(stmt))


def list_sections(db: Session, material_id: int) -> List[MaterialSection]:
	stmt = select(MaterialSection).where(MaterialSection.material_id == material_id).order_by(MaterialSection.position)
	return list(db.scalars(stmt))


def count_questions(db: Session, material_id: int) -> int:
	return db.scalar(select(func.count()).select_from(Question).where(Question.material_id == material_id)) or 0


def add_sections(db: Session, material_id: int, sections: Iterable[Dict[str, Any]]) -> None:
	now = datetime.utcnow()
	for position, section in enumerate(sections):
		db.add(MaterialSection(
			material_id=material_id,
			title=section.get("title") or f"Section {position + 1}",
			content=section.get("content") or "",
			position=position,
			created_at=now,
			updated_at=now,
		))


def delete_material_cascade(db: Session, material: Material) -> None:
	"""Delete sections, questions and the material itself in one transaction."""
	material_id = material.id
	try:
		for section in list_sections(db, material_id):
			db.delete(section)
		for question in list_questions(db, material_id):
			db.delete(question)
		db.flush()
		db.delete(material)
		db.commit()
	except Exception:
		db.rollback()
		LOGGER.exception("Cascade delete of material %s rolled back", material_id)
		raise


def delete_legacy_quiz_cascade(db: Session, quiz: Quiz) -> None:
	quiz_id = quiz.id
	try:
		for question in db.scalars(select(QuizQuestion).where(QuizQuestion.quiz_id == quiz_id)):
			db.delete(question)
		db.flush()
		db.delete(quiz)
		db.commit()
	except Exception:
		db.rollback()
		LOGGER.exception("Cascade delete of legacy quiz %s rolled back", quiz_id)
		raise


def create_quiz_material(
	db: Session,
	*,
	title: str,
	description: Optional[str],
	content: Any,
	questions: Iterable[Dict[str, Any]],
	status: str = "published",
) -> Material:
	"""
	Persist a quiz material together with its questions.

	Each question dict carries ``question``, ``type``, ``options`` (list),
	``correctAnswer`` and ``explanation``. Either everything is written or
	nothing is.
	"""
	now = datetime.utcnow()
	try:
		material = Material(
			title=title,
			description=description,
			content=content if isinstance(content, str) or content is None else json.dumps(content, ensure_ascii=False),
			type="quiz",
			status=status,
			published_at=now if status == "published" else None,
			created_at=now,
			updated_at=now,
		)
		db.add(material)
		db.flush()
		for item in questions:
			db.add(Question(
				material_id=material.id,
				question=item.get("question") or "",
				type=item.get("type") or "multiple-choice",
				options=json.dumps(item.get("options") or [], ensure_ascii=False),
				correct_answer=_answer_text(item.get("correctAnswer")),
				explanation=item.get("explanation") or "",
				created_at=now,
			))
		db.commit()
	except Exception:
		db.rollback()
		raise
	db.refresh(material)
	return material


def _answer_text(value: Any) -> str:
	if value is None:
		return ""
	if isinstance(value, (list, dict)):
		return json.dumps(value, ensure_ascii=False)
	return str(value)
