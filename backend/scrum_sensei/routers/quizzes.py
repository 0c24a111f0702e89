from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..db import get_db
from ..deps import get_llm, get_storage
from ..models import Material, Quiz
from ..pdf_text import extract_pdf_text
from ..quiz_generator import clamp_count, derive_correct_answer, generate_quiz
from ..repository import (
	count_questions,
	create_quiz_material,
	delete_legacy_quiz_cascade,
	delete_material_cascade,
	get_material,
	isoformat,
	list_materials,
	list_questions,
	parse_json,
	parse_options,
	question_to_dict,
)
from ..storage import PublicStorage


LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["quizzes"])


class GenerateQuizRequest(BaseModel):
	topic: Optional[str] = None
	difficulty: Optional[str] = None
	questionCount: Optional[int] = None
	pdfFileId: Optional[Union[str, int]] = None


class QuizQuestionIn(BaseModel):
	question: Optional[str] = None
	type: Optional[str] = None
	options: List[Any] = []
	correctAnswer: Optional[Union[str, List[str]]] = None
	explanation: Optional[str] = None


class QuizCreateRequest(BaseModel):
	title: Optional[str] = None
	description: Optional[str] = None
	questions: List[QuizQuestionIn] = []


def quiz_question_dict(q) -> Dict[str, Any]:
	return {
		"id": str(q.id),
		"question": q.question,
		"type": q.type,
		"options": parse_options(q.options),
		"correctAnswer": q.correct_answer,
		"explanation": q.explanation,
	}


def quiz_to_dict(db: Session, material: Material) -> Dict[str, Any]:
	return {
		"id": str(material.id),
		"title": material.title,
		"description": material.description,
		"status": material.status,
		"createdAt": isoformat(material.created_at),
		"updatedAt": isoformat(material.updated_at),
		"questions": [quiz_question_dict(q) for q in list_questions(db, material.id)],
	}


def quiz_summary(db: Session, material: Material) -> Dict[str, Any]:
	return {
		"id": str(material.id),
		"title": material.title,
		"description": material.description,
		"status": material.status,
		"createdAt": isoformat(material.created_at),
		"questionCount": count_questions(db, material.id),
	}


async def _pdf_context(db: Session, storage: PublicStorage, pdf_file_id: Union[str, int]) -> str:
	ref = str(pdf_file_id).strip()
	if ref.isdigit():
		material = get_material(db, int(ref), type="pdf")
		if material is None:
			raise HTTPException(status_code=404, detail="PDF material not found")
		chunks = parse_json(material.content, [])
		if isinstance(chunks, list) and chunks:
			return "\n".join(str(c.get("text", "")) for c in chunks if isinstance(c, dict))
		ref = material.file_path or ""
	path = storage.upload_file(ref)
	if not path.is_file():
		raise HTTPException(status_code=404, detail="PDF file not found")
	extracted = await run_in_threadpool(extract_pdf_text, path)
	return extracted["text"]


@router.post("/generate-quiz")
async def generate_quiz_material(
	req: GenerateQuizRequest,
	db: Session = Depends(get_db),
	storage: PublicStorage = Depends(get_storage),
	llm=Depends(get_llm),
):
	topic = (req.topic or "").strip()
	if not topic:
		raise HTTPException(status_code=400, detail="Topic is required")
	count = clamp_count(req.questionCount)
	difficulty = req.difficulty or "medium"
	context = ""
	if req.pdfFileId:
		context = await _pdf_context(db, storage, req.pdfFileId)
	LOGGER.info("Generating %d question(s) on %r (%s)", count, topic, difficulty)
	result = await generate_quiz(llm, topic=topic, count=count, context=context, difficulty=difficulty)
	questions = result["questions"]
	now = datetime.utcnow().isoformat()
	material = create_quiz_material(
		db,
		title=f"{topic} - AI quiz ({difficulty})",
		description=f"AI generated quiz: {topic} ({difficulty}) - {len(questions)} question(s)",
		content={"topic": topic, "difficulty": difficulty, "questionCount": len(questions), "generatedAt": now},
		questions=questions,
		status="published",
	)
	return {
		"success": True,
		"materialId": material.id,
		"questions": questions,
		"metadata": {
			"topic": topic,
			"difficulty": difficulty,
			"questionCount": len(questions),
			"generatedAt": now,
			"fallback": result["metadata"]["fallback"],
			"saved": True,
		},
	}


@router.post("/quiz")
def create_quiz(req: QuizCreateRequest, db: Session = Depends(get_db)):
	title = (req.title or "").strip()
	if not title:
		raise HTTPException(status_code=400, detail="Title is required")
	if not req.questions:
		raise HTTPException(status_code=400, detail="At least one question is required")
	questions = []
	for idx, item in enumerate(req.questions):
		correct = item.correctAnswer
		if not correct:
			correct = derive_correct_answer(item.options, "text")
		questions.append({
			"question": item.question or f"Question {idx + 1}",
			"type": item.type or "multiple-choice",
			"options": item.options,
			"correctAnswer": correct,
			"explanation": item.explanation or "",
		})
	material = create_quiz_material(
		db,
		title=title,
		description=req.description or f"Question set on {title}",
		content=[item.model_dump() for item in req.questions],
		questions=questions,
		status="published",
	)
	return {
		"success": True,
		"id": str(material.id),
		"materialId": material.id,
		"questionCount": len(questions),
		"message": "Quiz saved",
	}


@router.get("/quiz")
def list_quiz_materials(db: Session = Depends(get_db)):
	return {"success": True, "quizzes": [quiz_summary(db, m) for m in list_materials(db, type="quiz")]}


@router.get("/quizzes")
def list_quizzes(db: Session = Depends(get_db)):
	return {"success": True, "quizzes": [quiz_summary(db, m) for m in list_materials(db, type="quiz")]}


@router.get("/quiz/{material_id}")
def get_quiz(material_id: int, db: Session = Depends(get_db)):
	material = get_material(db, material_id, type="quiz")
	if material is None:
		raise HTTPException(status_code=404, detail="Quiz not found")
	return {"success": True, "quiz": quiz_to_dict(db, material)}


@router.delete("/quiz/{material_id}")
def delete_quiz(material_id: int, db: Session = Depends(get_db)):
	material = get_material(db, material_id, type="quiz")
	if material is None:
		raise HTTPException(status_code=404, detail="Quiz not found")
	delete_material_cascade(db, material)
	return {"success": True, "message": "Quiz deleted", "deletedId": str(material_id)}


@router.get("/materials/{material_id}/quiz")
def get_material_quiz(material_id: int, db: Session = Depends(get_db)):
	material = get_material(db, material_id)
	if material is None:
		raise HTTPException(status_code=404, detail="Material not found")
	return {"success": True, "quiz": quiz_to_dict(db, material)}


@router.get("/admin/quiz-materials")
def admin_quiz_materials(db: Session = Depends(get_db)):
	items = []
	for material in list_materials(db, type="quiz"):
		questions = [question_to_dict(q) for q in list_questions(db, material.id)]
		items.append({
			"id": material.id,
			"title": material.title,
			"description": material.description,
			"status": material.status,
			"created_at": isoformat(material.created_at),
			"questions": questions,
			"questionCount": len(questions),
		})
	return {"success": True, "materials": items, "count": len(items)}


@router.delete("/admin/quiz-materials/{quiz_id}")
def admin_delete_legacy_quiz(quiz_id: str, db: Session = Depends(get_db)):
	quiz = db.get(Quiz, quiz_id)
	if quiz is None:
		raise HTTPException(status_code=404, detail="Quiz not found")
	title = quiz.title
	delete_legacy_quiz_cascade(db, quiz)
	return {"success": True, "message": "Quiz deleted", "deletedId": quiz_id, "deletedTitle": title}


@router.get("/user/quiz")
def user_quizzes(db: Session = Depends(get_db)):
	return {"success": True, "quizzes": [quiz_summary(db, m) for m in list_materials(db, type="quiz", status="published")]}


@router.get("/user/quiz/{material_id}")
def user_quiz(material_id: int, db: Session = Depends(get_db)):
	material = get_material(db, material_id, type="quiz", status="published")
	if material is None:
		raise HTTPException(status_code=404, detail="Quiz not found")
	return {"success": True, "quiz": quiz_to_dict(db, material)}
