from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..progress import (
	ProgressCreate,
	ProgressUpdate,
	create_or_update_progress,
	find_progress,
	get_progress,
	list_user_progress,
	progress_to_dict,
	update_progress,
	user_stats,
)


LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user/progress", tags=["progress"])


@router.get("")
def read_progress(
	userId: Optional[str] = Query(default=None),
	contentId: Optional[str] = Query(default=None),
	db: Session = Depends(get_db),
):
	if not userId:
		raise HTTPException(status_code=400, detail="userId is required")
	if contentId:
		progress = find_progress(db, userId, contentId)
		if progress is None:
			return {"success": True, "exists": False}
		return {"success": True, "exists": True, "progress": progress_to_dict(db, progress)}
	items = [progress_to_dict(db, p) for p in list_user_progress(db, userId)]
	return {"success": True, "progress": items, "stats": user_stats(db, userId), "count": len(items)}


@router.post("", status_code=201)
def create_progress(req: ProgressCreate, db: Session = Depends(get_db)):
	progress = create_or_update_progress(db, req)
	LOGGER.info("Recorded progress %s for %s/%s", progress.id, req.userId, req.contentId)
	return {"success": True, "progress": progress_to_dict(db, progress)}


@router.put("")
def put_progress(req: ProgressUpdate, id: Optional[str] = Query(default=None), db: Session = Depends(get_db)):
	if not id:
		raise HTTPException(status_code=400, detail="Progress id is required")
	progress = get_progress(db, id)
	if progress is None:
		raise HTTPException(status_code=404, detail="Progress not found")
	progress = update_progress(db, progress, req)
	return {"success": True, "progress": progress_to_dict(db, progress)}
