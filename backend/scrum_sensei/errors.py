from __future__ import annotations
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


LOGGER = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class UpstreamError(RuntimeError):
	"""An AI vendor call failed or returned a body of the wrong shape."""

	def __init__(self, message: str, *, status_code: Optional[int] = None, body: Any = None) -> None:
		super().__init__(message)
		self.message = message
		# Vendor HTTP status when the vendor answered at all
		self.status_code = status_code
		self.body = body


class MissingAPIKeyError(UpstreamError):
	"""The vendor key needed for a call is not configured."""


class JSONSalvageError(ValueError):
	"""Model output could not be recovered into JSON by any salvage stage."""


def error_payload(message: str, **extra: Any) -> dict:
	return {"success": False, "error": message, **extra}


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
	return JSONResponse(
		status_code=exc.status_code,
		content=error_payload(str(exc.detail)),
		headers=getattr(exc, "headers", None),
	)


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
	details = [
		{"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
		for err in exc.errors()
	]
	return JSONResponse(status_code=400, content=error_payload("Invalid request", details=details))


async def _upstream_exception_handler(request: Request, exc: UpstreamError) -> JSONResponse:
	LOGGER.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc.message)
	return JSONResponse(
		status_code=500,
		content=error_payload(exc.message, upstream=exc.body, upstream_status=exc.status_code),
	)


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
	LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
	return JSONResponse(status_code=500, content=error_payload(GENERIC_ERROR_MESSAGE))


def install_exception_handlers(app: FastAPI) -> None:
	app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
	app.add_exception_handler(RequestValidationError, _validation_exception_handler)
	app.add_exception_handler(UpstreamError, _upstream_exception_handler)
	app.add_exception_handler(Exception, _unhandled_exception_handler)
