"""
Best-effort recovery of JSON produced by language models.

Model completions are frequently almost-JSON: wrapped in markdown fences,
prefixed with a label, missing a comma between two fields, cut off in the
middle of an array, or carrying stray backslashes. ``salvage_json`` runs a
fixed sequence of increasingly lenient stages and returns the first result
that parses. Every stage works on the text as data; nothing is ever
evaluated as code.

Stages:
1. strict ``json.loads`` (well-formed input is returned unchanged)
2. cleanup: strip known prefixes and code fences, repair backslash escapes,
   blank out control characters, drop duplicated ``"answer"`` pairs
3. structural scan inserting missing commas and dropping trailing commas
4. the same scan closing strings and brackets left open by truncation
5. regex extraction of quiz questions into ``{"questions": [...]}``

Callers must still validate the shape of whatever comes back.
"""

from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from .errors import JSONSalvageError


LOGGER = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"^\s*(?:処理結果|Result|Output)\s*[:：]\s*", re.IGNORECASE)
_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
_ESCAPE_RE = re.compile(r"\\([\"\\/bfnrt]|u[0-9a-fA-F]{4})|\\")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_DUPLICATE_ANSWER_RE = re.compile(r'("answer"\s*:\s*"[^"]+"),\s*("answer"\s*:\s*"[^"]+")')

_QUESTION_RE = re.compile(r'question["\s:]+([^"]+)', re.IGNORECASE)
_OPTIONS_RE = re.compile(r'options["\s:]+\[([\s\S]*?)\]', re.IGNORECASE)
_OPTION_OBJECT_RE = re.compile(r"\{[^{}]*\}")
_OPTION_ID_RE = re.compile(r'"id"\s*:\s*"([^"]+)"')
_OPTION_TEXT_RE = re.compile(r'"text"\s*:\s*"([^"]+)"')
_OPTION_STRING_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')
_ANSWER_RE = re.compile(r'answer["\s:]+([^"]+)', re.IGNORECASE)
_EXPLANATION_RE = re.compile(r'explanation["\s:]+([^"]+)', re.IGNORECASE)

_VALUE_END = "value"
_KEY = "key"


def _loads(text: str) -> Any:
	return json.loads(text, strict=False)


def _fix_escapes(text: str) -> str:
	def _replace(match: re.Match) -> str:
		if match.group(1):
			return match.group(0)
		return "\\\\"

	return _ESCAPE_RE.sub(_replace, text)


def clean_model_text(text: str) -> str:
	"""Apply the textual cleanup stage without touching the structure."""
	cleaned = _PREFIX_RE.sub("", text, count=1)
	fence = _FENCE_RE.search(cleaned)
	if fence:
		cleaned = fence.group(1)
	cleaned = _fix_escapes(cleaned)
	cleaned = _CONTROL_RE.sub(" ", cleaned)
	cleaned = _DUPLICATE_ANSWER_RE.sub(r"\1", cleaned)
	return cleaned.strip()


def _read_string(text: str, start: int) -> Tuple[int, bool]:
	"""Return the index just past the string opening at ``start`` and whether it was closed."""
	i = start + 1
	n = len(text)
	while i < n:
		ch = text[i]
		if ch == "\\":
			i += 2
			continue
		if ch == '"':
			return i + 1, True
		i += 1
	return n, False


def repair_structure(text: str, *, close_truncated: bool = False) -> str:
	"""
	Walk the text as a token stream and patch its punctuation.

	Inserts commas where one value directly follows another inside a
	container and removes commas directly before a closing bracket. Parsing
	starts at the first ``{`` or ``[`` and stops once that container closes,
	so chatter around the payload is dropped.

	Args:
		text: Candidate JSON text.
		close_truncated: Also terminate an unterminated string and close any
			containers still open at the end of input.

	Returns:
		str: The patched text (may still be invalid JSON).
	"""
	starts = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
	if not starts:
		return text
	i = min(starts)
	n = len(text)
	out: List[str] = []
	stack: List[str] = []
	prev = ""
	truncated_string = False

	while i < n:
		ch = text[i]
		if ch.isspace():
			out.append(ch)
			i += 1
			continue
		if ch == '"':
			end, closed = _read_string(text, i)
			token = text[i:end]
			if not closed:
				truncated_string = True
				if (len(token) - len(token.rstrip("\\"))) % 2:
					# dangling escape cut off mid-sequence
					token = token[:-1]
			if prev in (_VALUE_END,) and stack:
				out.append(",")
				prev = ","
			if stack and stack[-1] == "{" and prev in ("{", ","):
				prev = _KEY
			else:
				prev = _VALUE_END
			out.append(token)
			i = end
			continue
		if ch in "{[":
			if prev == _VALUE_END and stack:
				out.append(",")
			stack.append(ch)
			out.append(ch)
			prev = ch
			i += 1
			continue
		if ch in "}]":
			if prev == ",":
				# drop the trailing comma before the closer
				for idx in range(len(out) - 1, -1, -1):
					if out[idx] == ",":
						del out[idx]
						break
			if stack:
				stack.pop()
			out.append("}" if ch == "}" else "]")
			prev = _VALUE_END
			i += 1
			if not stack:
				break
			continue
		if ch == ",":
			if prev not in (",", "{", "["):
				out.append(ch)
				prev = ","
			i += 1
			continue
		if ch == ":":
			out.append(ch)
			prev = ":"
			i += 1
			continue
		# bare literal: number, true, false, null
		j = i
		while j < n and not text[j].isspace() and text[j] not in ',:[]{}"':
			j += 1
		if prev == _VALUE_END and stack:
			out.append(",")
		out.append(text[i:j])
		prev = _VALUE_END
		i = j

	if close_truncated and (stack or truncated_string):
		if truncated_string:
			out.append('"')
		while out and out[-1].isspace():
			out.pop()
		if prev == ",":
			out.pop()
		elif prev == ":":
			out.append(" null")
		elif prev == _KEY:
			out.append(": null")
		for opener in reversed(stack):
			out.append("}" if opener == "{" else "]")

	return "".join(out)


def _clip_window(text: str, start: int, next_start: Optional[int]) -> str:
	end = start + 1000
	if next_start is not None:
		end = min(end, next_start)
	return text[start:end]


def extract_quiz_data(text: str) -> Optional[Dict[str, Any]]:
	"""
	Pull question/options/answer/explanation fragments out of broken text.

	Returns:
		Optional[Dict[str, Any]]: ``{"questions": [...]}`` or None when no
		question could be located.
	"""
	matches = list(_QUESTION_RE.finditer(text))
	questions: List[Dict[str, Any]] = []
	for idx, match in enumerate(matches):
		question_text = match.group(1).strip().replace('"', "").rstrip(",").strip()
		if not question_text:
			continue
		next_start = matches[idx + 1].start() if idx + 1 < len(matches) else None
		window = _clip_window(text, match.start(), next_start)

		options: List[Any] = []
		options_match = _OPTIONS_RE.search(window)
		if options_match:
			body = options_match.group(1)
			objects = _OPTION_OBJECT_RE.findall(body)
			if objects:
				for opt_idx, raw in enumerate(objects):
					id_match = _OPTION_ID_RE.search(raw)
					text_match = _OPTION_TEXT_RE.search(raw)
					if id_match and text_match:
						options.append({"id": id_match.group(1), "text": text_match.group(1)})
					else:
						options.append({"id": str(opt_idx + 1), "text": re.sub(r'[{}"]', "", raw).strip()})
			else:
				options = [s for s in _OPTION_STRING_RE.findall(body) if s.strip()]

		answer = ""
		answer_match = _ANSWER_RE.search(window)
		if answer_match:
			answer = answer_match.group(1).strip().replace('"', "").rstrip(",").strip()

		explanation = ""
		explanation_match = _EXPLANATION_RE.search(window)
		if explanation_match:
			explanation = explanation_match.group(1).strip().replace('"', "").rstrip(",").strip()

		questions.append({
			"question": question_text,
			"type": "multiple-choice",
			"options": options,
			"answer": answer,
			"explanation": explanation,
		})

	if questions:
		return {"questions": questions}
	return None


def salvage_json(text: str) -> Any:
	"""
	Parse model output as JSON, repairing it when strict parsing fails.

	Args:
		text: Raw model output expected to contain JSON.

	Returns:
		Any: The decoded value.

	Raises:
		JSONSalvageError: If no stage could recover a value.
	"""
	if text is None:
		raise JSONSalvageError("No text to parse")
	try:
		return json.loads(text)
	except (TypeError, ValueError):
		pass

	cleaned = clean_model_text(text)
	try:
		return _loads(cleaned)
	except ValueError:
		pass

	restructured = repair_structure(cleaned)
	try:
		value = _loads(restructured)
		LOGGER.debug("Recovered model JSON by inserting punctuation")
		return value
	except ValueError:
		pass

	closed = repair_structure(cleaned, close_truncated=True)
	try:
		value = _loads(closed)
	except ValueError:
		value = None
	# closing brackets around nothing is not a recovery
	if value:
		LOGGER.info("Recovered truncated model JSON by closing open containers")
		return value

	extracted = extract_quiz_data(cleaned)
	if extracted is not None:
		LOGGER.warning("Model JSON unrecoverable; extracted %d question(s) by pattern", len(extracted["questions"]))
		return extracted

	raise JSONSalvageError("Model output could not be parsed as JSON")


def extract_json_object(text: str) -> Dict[str, Any]:
	"""Like ``salvage_json`` but insists on a JSON object."""
	value = salvage_json(text)
	if not isinstance(value, dict):
		raise JSONSalvageError(f"Expected a JSON object, got {type(value).__name__}")
	return value


__all__ = [
	"clean_model_text",
	"extract_json_object",
	"extract_quiz_data",
	"repair_structure",
	"salvage_json",
]
