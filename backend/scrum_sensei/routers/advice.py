from __future__ import annotations
import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..advisor import AdvisorService, advice_history, advice_stats, advice_to_dict, record_feedback
from ..coach import LearningCoach
from ..db import get_db
from ..deps import get_llm
from ..models import Advice
from ..progress import find_progress, progress_to_dict, user_stats
from ..repository import get_material, material_to_dict


LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["advice"])

DEFAULT_USER = "default-user"


class AdviceRequest(BaseModel):
	userId: Optional[str] = None


class FeedbackRequest(BaseModel):
	adviceId: Optional[str] = None
	userId: Optional[str] = None
	feedback: Optional[Literal["helpful", "not_helpful"]] = None


class ReflectionRequest(BaseModel):
	userId: Optional[str] = None
	contentId: Optional[str] = None


class ChatRequest(BaseModel):
	userId: Optional[str] = None
	contentId: Optional[str] = None
	message: Optional[str] = None


def _content_material(db: Session, content_id: Optional[str]):
	ref = (content_id or "").strip()
	if not ref.isdigit():
		return None
	return get_material(db, int(ref))


@router.post("/advice")
async def create_advice(req: AdviceRequest, db: Session = Depends(get_db), llm=Depends(get_llm)):
	if not req.userId:
		raise HTTPException(status_code=400, detail="userId is required")
	advice = await AdvisorService(db, llm).generate_advice(req.userId)
	return {"success": True, "advice": advice_to_dict(advice), "timestamp": datetime.utcnow().isoformat()}


@router.get("/user/advice")
async def latest_advice(userId: str = Query(default=DEFAULT_USER), db: Session = Depends(get_db), llm=Depends(get_llm)):
	advice = await AdvisorService(db, llm).advice_for_user(userId or DEFAULT_USER)
	return {"success": True, "advice": advice_to_dict(advice)}


@router.post("/user/advice/generate")
async def force_advice(req: AdviceRequest, db: Session = Depends(get_db), llm=Depends(get_llm)):
	advice = await AdvisorService(db, llm).generate_advice(req.userId or DEFAULT_USER)
	return {"success": True, "advice": advice_to_dict(advice)}


@router.post("/user/advice/feedback")
def advice_feedback(req: FeedbackRequest, db: Session = Depends(get_db)):
	if not req.adviceId or not req.feedback:
		raise HTTPException(status_code=400, detail="adviceId and feedback are required")
	advice = db.get(Advice, req.adviceId)
	if advice is None:
		raise HTTPException(status_code=404, detail="Advice not found")
	row = record_feedback(db, advice, req.feedback, req.userId)
	LOGGER.info("Feedback %s on advice %s", req.feedback, advice.id)
	return {
		"success": True,
		"message": "Feedback saved",
		"result": {
			"id": row.id,
			"adviceId": advice.id,
			"userId": row.user_id,
			"feedback": row.feedback,
			"timestamp": row.created_at.isoformat(),
		},
	}


@router.get("/user/advice/history")
def history(
	userId: str = Query(default=DEFAULT_USER),
	limit: int = Query(default=10, ge=1, le=100),
	db: Session = Depends(get_db),
):
	items = [advice_to_dict(a) for a in advice_history(db, userId, limit)]
	return {"success": True, "history": items, "count": len(items)}


@router.get("/user/advice/stats")
def stats(userId: str = Query(default=DEFAULT_USER), db: Session = Depends(get_db)):
	return {"success": True, "stats": advice_stats(db, userId)}


@router.post("/user/reflection")
async def reflection(req: ReflectionRequest, db: Session = Depends(get_db), llm=Depends(get_llm)):
	if not req.userId:
		raise HTTPException(status_code=400, detail="userId is required")
	if not req.contentId:
		raise HTTPException(status_code=400, detail="contentId is required")
	material = _content_material(db, req.contentId)
	if material is None:
		raise HTTPException(status_code=404, detail="Content not found")
	questions = await LearningCoach(llm).reflection_questions(material_to_dict(material))
	return {"success": True, "questions": questions}


@router.post("/user/chat")
async def chat(req: ChatRequest, db: Session = Depends(get_db), llm=Depends(get_llm)):
	if not req.userId:
		raise HTTPException(status_code=400, detail="userId is required")
	message = (req.message or "").strip()
	if not message:
		raise HTTPException(status_code=400, detail="message is required")
	material = None
	progress = None
	if req.contentId:
		found = _content_material(db, req.contentId)
		material = material_to_dict(found) if found is not None else None
		row = find_progress(db, req.userId, req.contentId)
		progress = progress_to_dict(db, row) if row is not None else None
	reply = await LearningCoach(llm).chat(
		message,
		material=material,
		progress=progress,
		stats=user_stats(db, req.userId),
	)
	return {"success": True, "message": reply}
