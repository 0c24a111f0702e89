from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_storage
from ..models import MATERIAL_TYPES, Material, Quiz
from ..storage import PublicStorage


router = APIRouter(prefix="/api/admin", tags=["dashboard"])

RECENT_PER_KIND = 5
MAX_ACTIVITIES = 10


def _recent_activities(db: Session) -> List[Dict[str, Any]]:
	activities = []
	quizzes = db.scalars(
		select(Material).where(Material.type == "quiz").order_by(Material.created_at.desc()).limit(RECENT_PER_KIND)
	)
	for quiz in quizzes:
		activities.append({
			"id": f"quiz-{quiz.id}",
			"action": f"Quiz '{quiz.title}' was generated",
			"date": quiz.created_at,
			"type": "generate",
		})
	others = db.scalars(
		select(Material).where(Material.type != "quiz").order_by(Material.updated_at.desc()).limit(RECENT_PER_KIND)
	)
	for material in others:
		edited = material.published_at is not None
		activities.append({
			"id": f"content-{material.id}",
			"action": f"Material '{material.title}' was {'edited' if edited else 'added'}",
			"date": material.updated_at or material.created_at,
			"type": "edit" if edited else "add",
		})
	activities.sort(key=lambda a: a["date"] or datetime.min, reverse=True)
	for activity in activities:
		activity["date"] = activity["date"].date().isoformat() if activity["date"] else None
	return activities[:MAX_ACTIVITIES]


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), storage: PublicStorage = Depends(get_storage)):
	counts = dict(db.execute(select(Material.type, func.count()).group_by(Material.type)).all())
	by_type = {t: counts.get(t, 0) for t in MATERIAL_TYPES}
	legacy_quizzes = db.scalar(select(func.count()).select_from(Quiz)) or 0
	return {
		"success": True,
		"stats": {
			"totalContents": sum(counts.values()),
			"materialsByType": by_type,
			"totalPdfs": len(storage.list_pdfs()),
			"totalQuizzes": by_type.get("quiz", 0) + legacy_quizzes,
			"recentActivities": _recent_activities(db),
		},
	}
