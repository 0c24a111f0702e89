from __future__ import annotations
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Union

import fitz  # PyMuPDF


LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000

_WHITESPACE_RE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def _normalise(text: str) -> str:
	lines = [_WHITESPACE_RE.sub(" ", line).strip() for line in text.splitlines()]
	return "\n".join(lines).strip()


def extract_pdf_text(source: Union[str, Path, bytes]) -> Dict[str, Any]:
	"""
	Read every page of a PDF and return its text.

	Args:
		source: Path on disk or the raw PDF bytes.

	Returns:
		Dict[str, Any]: ``{"text": str, "pageCount": int, "pages": [str, ...]}``.
	"""
	if isinstance(source, (bytes, bytearray)):
		document = fitz.open(stream=bytes(source), filetype="pdf")
	else:
		document = fitz.open(str(source))
	with document:
		pages = [_normalise(page.get_text("text")) for page in document]
		page_count = document.page_count
	text = "\n\n".join(page for page in pages if page)
	LOGGER.debug("Extracted %d characters from %d page(s)", len(text), page_count)
	return {"text": text, "pageCount": page_count, "pages": pages}


def chunk_text(text: str, title: str, source: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[Dict[str, Any]]:
	"""Group paragraphs into chunks of roughly ``chunk_size`` characters."""
	paragraphs = [p.strip() for p in _BLANK_LINES_RE.split(text or "") if p.strip()]
	chunks: List[str] = []
	current = ""
	for paragraph in paragraphs:
		if current and len(current) + len(paragraph) + 2 > chunk_size:
			chunks.append(current)
			current = paragraph
		else:
			current = f"{current}\n\n{paragraph}" if current else paragraph
		while len(current) > chunk_size:
			chunks.append(current[:chunk_size])
			current = current[chunk_size:]
	if current:
		chunks.append(current)
	return [
		{"text": chunk, "metadata": {"title": title, "source": source, "chunk": idx}}
		for idx, chunk in enumerate(chunks)
	]
