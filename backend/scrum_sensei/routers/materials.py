from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_storage
from ..models import MATERIAL_STATUSES, MATERIAL_TYPES, Material
from ..repository import (
	add_sections,
	count_questions,
	delete_material_cascade,
	get_material,
	list_materials,
	list_questions,
	list_sections,
	material_to_dict,
	question_to_dict,
	section_to_dict,
)
from ..storage import PublicStorage


admin_router = APIRouter(prefix="/api/admin/materials", tags=["admin_materials"])
router = APIRouter(prefix="/api", tags=["materials"])


class SectionIn(BaseModel):
	title: Optional[str] = None
	content: Optional[str] = None


class MaterialCreateRequest(BaseModel):
	title: Optional[str] = None
	description: Optional[str] = None
	type: Optional[str] = None
	sections: List[SectionIn] = []


class MaterialUpdateRequest(BaseModel):
	title: Optional[str] = None
	description: Optional[str] = None
	type: Optional[str] = None
	status: Optional[str] = None


class PublishRequest(BaseModel):
	status: Optional[str] = None


def _require_material(db: Session, material_id: int) -> Material:
	material = get_material(db, material_id)
	if material is None:
		raise HTTPException(status_code=404, detail="Material not found")
	return material


def _remove_material(db: Session, storage: PublicStorage, material: Material) -> None:
	# File first, best effort; the row goes regardless
	if material.file_path:
		storage.remove(material.file_path)
	delete_material_cascade(db, material)


@admin_router.get("")
def admin_list_materials(db: Session = Depends(get_db)):
	items: List[Dict[str, Any]] = []
	for material in list_materials(db):
		data = material_to_dict(material, include_content=False)
		data["questionCount"] = count_questions(db, material.id)
		data["sections"] = [section_to_dict(s) for s in list_sections(db, material.id)]
		items.append(data)
	return {"success": True, "materials": items}


@admin_router.post("")
def admin_create_material(req: MaterialCreateRequest, db: Session = Depends(get_db)):
	title = (req.title or "").strip()
	if not title:
		raise HTTPException(status_code=400, detail="Title is required")
	material_type = req.type or "text"
	if material_type not in MATERIAL_TYPES:
		raise HTTPException(status_code=400, detail=f"Unknown material type: {material_type}")
	now = datetime.utcnow()
	material = Material(
		title=title,
		description=req.description,
		type=material_type,
		status="draft",
		created_at=now,
		updated_at=now,
	)
	try:
		db.add(material)
		db.flush()
		add_sections(db, material.id, [s.model_dump() for s in req.sections])
		db.commit()
	except Exception:
		db.rollback()
		raise
	db.refresh(material)
	return {"success": True, "material": material_to_dict(material)}


@admin_router.get("/{material_id}")
def admin_get_material(material_id: int, db: Session = Depends(get_db)):
	material = _require_material(db, material_id)
	data = material_to_dict(material)
	data["questions"] = [question_to_dict(q) for q in list_questions(db, material_id)]
	data["sections"] = [section_to_dict(s) for s in list_sections(db, material_id)]
	return {"success": True, "material": data}


@admin_router.put("/{material_id}")
def admin_update_material(material_id: int, req: MaterialUpdateRequest, db: Session = Depends(get_db)):
	material = _require_material(db, material_id)
	title = (req.title or "").strip()
	if not title:
		raise HTTPException(status_code=400, detail="Title is required")
	if req.type and req.type not in MATERIAL_TYPES:
		raise HTTPException(status_code=400, detail=f"Unknown material type: {req.type}")
	if req.status and req.status not in MATERIAL_STATUSES:
		raise HTTPException(status_code=400, detail="Status must be 'published' or 'draft'")
	material.title = title
	material.description = req.description or material.description
	material.type = req.type or material.type
	if req.status and req.status != material.status:
		material.status = req.status
		material.published_at = datetime.utcnow() if req.status == "published" else None
	material.updated_at = datetime.utcnow()
	db.commit()
	db.refresh(material)
	return {"success": True, "material": material_to_dict(material), "message": "Material updated"}


@admin_router.delete("/{material_id}")
def admin_delete_material(
	material_id: int,
	db: Session = Depends(get_db),
	storage: PublicStorage = Depends(get_storage),
):
	material = _require_material(db, material_id)
	_remove_material(db, storage, material)
	return {"success": True, "message": "Material deleted"}


@admin_router.patch("/publish/{material_id}")
def admin_publish_material(material_id: int, req: PublishRequest, db: Session = Depends(get_db)):
	material = _require_material(db, material_id)
	status = req.status
	if status not in MATERIAL_STATUSES:
		raise HTTPException(status_code=400, detail="Status must be 'published' or 'draft'")
	if material.status == status:
		return {
			"success": True,
			"material": material_to_dict(material),
			"message": f"Material is already {status}",
		}
	now = datetime.utcnow()
	material.status = status
	material.updated_at = now
	material.published_at = now if status == "published" else None
	db.commit()
	db.refresh(material)
	message = "Material published" if status == "published" else "Material moved back to draft"
	return {"success": True, "material": material_to_dict(material), "message": message}


@router.delete("/materials/{material_id}")
def delete_material(
	material_id: int,
	db: Session = Depends(get_db),
	storage: PublicStorage = Depends(get_storage),
):
	material = _require_material(db, material_id)
	_remove_material(db, storage, material)
	return {"success": True, "message": "Material deleted"}


@router.get("/user/content")
def user_content(
	type: Optional[str] = Query(default=None),
	includeQuizzes: bool = Query(default=True),
	db: Session = Depends(get_db),
):
	materials = list_materials(db, type=type, status="published")
	if not includeQuizzes:
		materials = [m for m in materials if m.type != "quiz"]
	items = []
	for material in materials:
		data = material_to_dict(material, include_content=False)
		if material.type == "quiz":
			data["questionCount"] = count_questions(db, material.id)
		items.append(data)
	return {"success": True, "contents": items, "count": len(items)}


@router.get("/user/content/{material_id}")
def user_content_detail(material_id: int, db: Session = Depends(get_db)):
	material = get_material(db, material_id, status="published")
	if material is None:
		raise HTTPException(status_code=404, detail="Content not found")
	data = material_to_dict(material)
	data["sections"] = [section_to_dict(s) for s in list_sections(db, material_id)]
	if material.type == "quiz":
		data["questions"] = [question_to_dict(q) for q in list_questions(db, material_id)]
	return {"success": True, "content": data}
