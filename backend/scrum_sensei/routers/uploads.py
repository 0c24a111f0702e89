from __future__ import annotations
import json
import logging
import os
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..db import get_db
from ..deps import get_storage
from ..models import Material
from ..pdf_text import chunk_text, extract_pdf_text
from ..repository import delete_material_cascade, get_material, list_materials
from ..storage import PublicStorage


LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["uploads"])

PDF_MIME = "application/pdf"


class ExtractPdfRequest(BaseModel):
	fileName: Optional[str] = None


async def _read_pdf_upload(file: Optional[UploadFile]) -> bytes:
	if file is None or not file.filename:
		raise HTTPException(status_code=400, detail="No file was sent")
	if (file.content_type or "").split(";")[0].strip().lower() != PDF_MIME:
		raise HTTPException(status_code=400, detail="Only PDF files can be uploaded")
	data = await file.read()
	if not data:
		raise HTTPException(status_code=400, detail="Uploaded file is empty")
	return data


@router.get("/admin/upload")
def list_uploads(storage: PublicStorage = Depends(get_storage)):
	files = [
		{"id": f["fileName"], "filename": f["fileName"], "url": f["filePath"], "size": f["size"], "modifiedAt": f["modifiedAt"]}
		for f in storage.list_pdfs()
	]
	return {"success": True, "files": files}


@router.post("/admin/upload")
async def admin_upload(file: Optional[UploadFile] = File(None), storage: PublicStorage = Depends(get_storage)):
	data = await _read_pdf_upload(file)
	saved = storage.save_upload(file.filename, data)
	return {
		"success": True,
		"message": "Upload complete",
		"file": {"id": saved["fileName"], "filename": file.filename, "url": saved["filePath"]},
	}


@router.delete("/admin/upload")
def admin_delete_upload(filename: Optional[str] = Query(default=None), storage: PublicStorage = Depends(get_storage)):
	if not filename:
		raise HTTPException(status_code=400, detail="filename is required")
	path = storage.upload_file(filename)
	if not path.is_file():
		raise HTTPException(status_code=404, detail="File not found")
	path.unlink()
	LOGGER.info("Deleted upload %s", path.name)
	return {"success": True, "message": "File deleted"}


@router.post("/upload")
async def upload_pdf_material(
	file: Optional[UploadFile] = File(None),
	db: Session = Depends(get_db),
	storage: PublicStorage = Depends(get_storage),
):
	data = await _read_pdf_upload(file)
	saved = storage.save_upload(file.filename, data)
	title = os.path.splitext(os.path.basename(file.filename))[0] or saved["fileName"]
	try:
		extracted = await run_in_threadpool(extract_pdf_text, saved["absolutePath"])
		chunks = chunk_text(extracted["text"], title, saved["fileName"])
	except Exception as err:
		LOGGER.warning("Text extraction failed for %s: %s", saved["fileName"], err)
		chunks = []
	now = datetime.utcnow()
	material = Material(
		title=title,
		description=f"Uploaded PDF file: {file.filename}",
		content=json.dumps(chunks, ensure_ascii=False),
		type="pdf",
		status="draft",
		file_path=saved["filePath"],
		created_at=now,
		updated_at=now,
	)
	db.add(material)
	db.commit()
	db.refresh(material)
	return {
		"success": True,
		"materialId": material.id,
		"fileName": saved["fileName"],
		"chunks": chunks,
		"questions": [],
		"metadata": {"chunkCount": len(chunks)},
	}


@router.get("/admin/pdf-files")
def list_pdf_files(db: Session = Depends(get_db), storage: PublicStorage = Depends(get_storage)):
	files = []
	for material in list_materials(db, type="pdf"):
		if not material.file_path:
			continue
		try:
			exists = storage.resolve(material.file_path).is_file()
		except ValueError:
			exists = False
		if not exists:
			continue
		files.append({
			"id": str(material.id),
			"filename": os.path.basename(material.file_path),
			"title": material.title,
			"description": material.description,
			"url": material.file_path,
			"created_at": material.created_at.isoformat() if material.created_at else None,
			"updated_at": material.updated_at.isoformat() if material.updated_at else None,
		})
	return {"success": True, "files": files}


@router.delete("/admin/pdf-files")
def delete_pdf_file(
	id: Optional[int] = Query(default=None),
	db: Session = Depends(get_db),
	storage: PublicStorage = Depends(get_storage),
):
	if id is None:
		raise HTTPException(status_code=400, detail="Material id is required")
	material = get_material(db, id, type="pdf")
	if material is None:
		raise HTTPException(status_code=404, detail="PDF material not found")
	title = material.title
	storage.remove(material.file_path)
	delete_material_cascade(db, material)
	return {"success": True, "message": f"Deleted PDF material '{title}'"}


@router.post("/admin/extract-pdf")
async def extract_pdf(req: ExtractPdfRequest, storage: PublicStorage = Depends(get_storage)):
	if not req.fileName:
		raise HTTPException(status_code=400, detail="fileName is required")
	path = storage.upload_file(req.fileName)
	if not path.is_file():
		raise HTTPException(status_code=404, detail="File not found")
	try:
		extracted = await run_in_threadpool(extract_pdf_text, path)
	except Exception as err:
		LOGGER.warning("Could not read %s: %s", path.name, err)
		raise HTTPException(status_code=400, detail="File is not a readable PDF") from err
	return {
		"success": True,
		"text": extracted["text"],
		"pageCount": extracted["pageCount"],
		"fileName": path.name,
	}
