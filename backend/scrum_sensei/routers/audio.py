from __future__ import annotations
import json
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_gemini, get_lecture_engine, get_storage
from ..lecture import LectureAudioEngine, generate_audio_content
from ..models import Material
from ..repository import (
	count_questions,
	delete_material_cascade,
	get_material,
	isoformat,
	list_materials,
	list_questions,
	parse_json,
	parse_options,
)
from ..storage import PublicStorage


LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["audio"])

RELATED_PDF_LIMIT = 5000


class CreateAudioMaterialRequest(BaseModel):
	materialId: Optional[int] = None
	title: Optional[str] = None
	description: Optional[str] = None
	ttsSettings: Optional[Dict[str, Any]] = None


class TTSRequest(BaseModel):
	text: Optional[str] = None
	voice: Optional[str] = None


class GenerateContentRequest(BaseModel):
	materialId: Optional[Any] = None
	materialTitle: Optional[str] = None
	materialContent: Optional[str] = None
	topic: Optional[str] = None


def audio_to_dict(material: Material) -> Dict[str, Any]:
	content = parse_json(material.content, {})
	if not isinstance(content, dict):
		content = {}
	return {
		"id": str(material.id),
		"title": material.title,
		"description": material.description,
		"status": material.status,
		"audioUrl": material.file_path,
		"sourceText": content.get("audioScript") or content.get("text") or material.description or "",
		"questionCount": content.get("questionCount") or 0,
		"duration": content.get("duration") or 0,
		"originalMaterialId": content.get("originalMaterialId"),
		"materialTitle": content.get("originalTitle"),
		"ttsSettings": content.get("ttsSettings") or {},
		"createdAt": isoformat(material.created_at),
		"updatedAt": isoformat(material.updated_at),
	}


def _escape_like(value: str) -> str:
	return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def related_pdf_text(db: Session, title: str) -> str:
	"""Chunk text of the newest PDF material sharing the first two title words."""
	keywords = " ".join(title.split(" ")[:2])
	pattern = f"%{_escape_like(keywords)}%"
	stmt = (
		select(Material)
		.where(
			Material.type == "pdf",
			or_(Material.title.like(pattern, escape="\\"), Material.description.like(pattern, escape="\\")),
		)
		.order_by(Material.created_at.desc())
		.limit(1)
	)
	pdf = db.scalars(stmt).first()
	if pdf is None:
		return ""
	chunks = parse_json(pdf.content, [])
	if not isinstance(chunks, list):
		LOGGER.warning("PDF material %s has non-list content", pdf.id)
		return ""
	text = "\n".join(str(c.get("text", "")) for c in chunks if isinstance(c, dict))
	return text[:RELATED_PDF_LIMIT]


def _placeholder_questions(material: Material) -> list:
	return [
		{
			"id": 1,
			"question": f"Explain the basics of {material.title}",
			"type": "multiple-choice",
			"correct_answer": "A",
			"options": ["Choice A", "Choice B", "Choice C", "Choice D"],
			"explanation": f"Explanation based on {material.description or material.title}",
		},
		{
			"id": 2,
			"question": f"What are the key points of {material.title}?",
			"type": "multiple-choice",
			"correct_answer": "B",
			"options": ["Point 1", "Point 2", "Point 3", "Point 4"],
			"explanation": "Detailed explanation follows.",
		},
	]


@router.get("/admin/audio-materials")
def admin_audio_materials(db: Session = Depends(get_db)):
	return {"success": True, "materials": [audio_to_dict(m) for m in list_materials(db, type="audio")]}


@router.delete("/admin/audio-materials/{material_id}")
def admin_delete_audio_material(
	material_id: int,
	db: Session = Depends(get_db),
	storage: PublicStorage = Depends(get_storage),
):
	material = get_material(db, material_id, type="audio")
	if material is None:
		raise HTTPException(status_code=404, detail="Audio material not found")
	title = material.title
	if material.file_path:
		storage.remove(material.file_path)
	delete_material_cascade(db, material)
	return {"success": True, "message": f"Deleted audio material '{title}'", "deletedId": str(material_id)}


@router.get("/admin/create-audio-material")
def quiz_sources(db: Session = Depends(get_db)):
	items = [
		{
			"id": m.id,
			"title": m.title,
			"description": m.description,
			"created_at": isoformat(m.created_at),
			"questionCount": count_questions(db, m.id),
		}
		for m in list_materials(db, type="quiz")
	]
	return {"success": True, "quizMaterials": items}


@router.post("/admin/create-audio-material")
async def create_audio_material(
	req: CreateAudioMaterialRequest,
	db: Session = Depends(get_db),
	storage: PublicStorage = Depends(get_storage),
	engine: LectureAudioEngine = Depends(get_lecture_engine),
):
	if not req.materialId:
		raise HTTPException(status_code=400, detail="materialId is required")
	material = get_material(db, req.materialId, type="quiz")
	if material is None:
		raise HTTPException(status_code=404, detail="Quiz material not found")

	questions = [
		{
			"id": q.id,
			"question": q.question,
			"type": q.type,
			"correct_answer": q.correct_answer,
			"options": parse_options(q.options),
			"explanation": q.explanation,
		}
		for q in list_questions(db, material.id)
	]
	if not questions:
		LOGGER.info("Material %s has no questions; using placeholder outline", material.id)
		questions = _placeholder_questions(material)
	quiz = {"id": str(material.id), "title": material.title, "description": material.description, "questions": questions}

	engine = engine.with_overrides(req.ttsSettings)
	pdf_content = related_pdf_text(db, material.title)
	script = await engine.generate_lecture_script(quiz, pdf_content)

	target = storage.audio_path(f"audio_material_{material.id}")
	await engine.text_to_speech(script, Path(target["absolutePath"]))

	now = datetime.utcnow()
	audio_title = req.title or f"{material.title} - audio lecture"
	audio_description = req.description or f"Audio version of {material.description or material.title}"
	audio = Material(
		title=audio_title,
		description=audio_description,
		content=json.dumps({
			"originalMaterialId": material.id,
			"originalTitle": material.title,
			"audioScript": script,
			"questionCount": len(questions),
			"duration": math.ceil(len(script) / 10),
			"ttsSettings": req.ttsSettings or {},
			"generatedAt": now.isoformat(),
		}, ensure_ascii=False),
		type="audio",
		status="published",
		file_path=target["audioUrl"],
		published_at=now,
		created_at=now,
		updated_at=now,
	)
	try:
		db.add(audio)
		db.commit()
	except Exception:
		db.rollback()
		storage.remove(target["audioUrl"])
		raise
	db.refresh(audio)
	return {
		"success": True,
		"audioMaterialId": audio.id,
		"audioMaterial": {
			"id": audio.id,
			"title": audio_title,
			"description": audio_description,
			"type": "audio",
			"filePath": target["audioUrl"],
			"originalMaterialId": material.id,
			"questionCount": len(questions),
			"createdAt": now.isoformat(),
		},
		"message": "Audio material created",
	}


@router.post("/admin/tts")
async def text_to_speech(
	req: TTSRequest,
	storage: PublicStorage = Depends(get_storage),
	engine: LectureAudioEngine = Depends(get_lecture_engine),
):
	text = (req.text or "").strip()
	if not text:
		raise HTTPException(status_code=400, detail="Text is required")
	engine = engine.with_overrides({"voice": req.voice})
	target = storage.audio_path("tts")
	await engine.text_to_speech(text, Path(target["absolutePath"]))
	return {"success": True, "audioUrl": target["audioUrl"], "fileName": target["fileName"], "voice": engine.tts.voice}


@router.post("/admin/tts/generate-content")
async def generate_narration(req: GenerateContentRequest, client=Depends(get_gemini)):
	if not req.materialContent or not req.topic:
		raise HTTPException(status_code=400, detail="materialContent and topic are required")
	text = await generate_audio_content(client, title=req.materialTitle, content=req.materialContent, topic=req.topic)
	return {
		"success": True,
		"message": "Narration generated",
		"generatedContent": text,
		"materialId": req.materialId,
		"materialTitle": req.materialTitle,
		"topic": req.topic,
	}


@router.get("/user/audio-materials")
def user_audio_materials(db: Session = Depends(get_db)):
	return {"success": True, "materials": [audio_to_dict(m) for m in list_materials(db, type="audio", status="published")]}


@router.get("/audio-materials")
def audio_materials(materialId: Optional[int] = Query(default=None), db: Session = Depends(get_db)):
	if materialId is not None:
		material = get_material(db, materialId, type="audio", status="published")
		if material is None:
			raise HTTPException(status_code=404, detail="Audio material not found")
		return {"success": True, "material": audio_to_dict(material)}
	return {"success": True, "materials": [audio_to_dict(m) for m in list_materials(db, type="audio", status="published")]}
