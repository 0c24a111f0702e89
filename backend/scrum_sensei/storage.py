"""Files served from the public static directory (uploaded PDFs and generated audio)."""

from __future__ import annotations
import logging
import os
import random
import string
import time
from pathlib import Path
from typing import Dict, List, Optional


LOGGER = logging.getLogger(__name__)

UPLOADS_DIR = "uploads"
AUDIO_DIR = "audio"

_BASE36 = string.digits + string.ascii_lowercase


def _base36(value: int) -> str:
	if value == 0:
		return "0"
	digits = []
	while value:
		value, rem = divmod(value, 36)
		digits.append(_BASE36[rem])
	return "".join(reversed(digits))


def unique_name(original: str, ext: Optional[str] = None) -> str:
	"""``<stem>_<base36 millis>_<5 random chars><ext>`` built from a client filename."""
	base = os.path.basename(original or "file")
	stem, original_ext = os.path.splitext(base)
	ext = ext if ext is not None else original_ext
	if ext and not ext.startswith("."):
		ext = f".{ext}"
	stem = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in stem) or "file"
	stamp = _base36(int(time.time() * 1000))
	suffix = "".join(random.choices(_BASE36, k=5))
	return f"{stem}_{stamp}_{suffix}{ext.lower()}"


class PublicStorage:
	def __init__(self, public_dir: Path) -> None:
		self.root = Path(public_dir).resolve()
		self.uploads = self.root / UPLOADS_DIR
		self.audio = self.root / AUDIO_DIR

	def ensure(self) -> None:
		for directory in (self.root, self.uploads, self.audio):
			directory.mkdir(parents=True, exist_ok=True)

	def save_upload(self, original_name: str, data: bytes) -> Dict[str, str]:
		self.ensure()
		name = unique_name(original_name)
		path = self.uploads / name
		path.write_bytes(data)
		LOGGER.info("Stored upload %s (%d bytes)", name, len(data))
		return {"fileName": name, "filePath": f"/{UPLOADS_DIR}/{name}", "absolutePath": str(path)}

	def audio_path(self, stem: str) -> Dict[str, str]:
		self.ensure()
		name = unique_name(stem, ".wav")
		return {"fileName": name, "audioUrl": f"/{AUDIO_DIR}/{name}", "absolutePath": str(self.audio / name)}

	def list_pdfs(self) -> List[Dict[str, object]]:
		if not self.uploads.exists():
			return []
		files = []
		for entry in sorted(self.uploads.iterdir(), key=lambda p: p.stat().st_mtime, reverse=True):
			if entry.is_file() and entry.suffix.lower() == ".pdf":
				stat = entry.stat()
				files.append({
					"fileName": entry.name,
					"filePath": f"/{UPLOADS_DIR}/{entry.name}",
					"size": stat.st_size,
					"modifiedAt": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(stat.st_mtime)),
				})
		return files

	def upload_file(self, filename: str) -> Path:
		# Only the basename is honoured so callers cannot walk out of uploads/
		return self.uploads / os.path.basename(filename)

	def resolve(self, public_path: str) -> Path:
		"""Map ``/uploads/x.pdf`` style paths onto disk; refuse anything outside the root."""
		relative = public_path.lstrip("/")
		if relative.startswith("public/"):
			relative = relative[len("public/"):]
		candidate = (self.root / relative).resolve()
		if candidate != self.root and self.root not in candidate.parents:
			raise ValueError(f"Path escapes public directory: {public_path}")
		return candidate

	def remove(self, public_path: Optional[str]) -> bool:
		"""Delete a stored file; failures are logged and reported as False."""
		if not public_path:
			return False
		try:
			path = self.resolve(public_path)
			path.unlink()
			LOGGER.info("Removed %s", path)
			return True
		except FileNotFoundError:
			LOGGER.warning("File already gone: %s", public_path)
		except (OSError, ValueError) as err:
			LOGGER.warning("Could not remove %s: %s", public_path, err)
		return False
