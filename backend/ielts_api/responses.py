from __future__ import annotations
import logging
import math
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import AppError
from .settings import settings

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def envelope(success: bool, message: str, data: Any = None, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
	return {
		"success": success,
		"message": message,
		"data": data,
		"errors": errors,
		"timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
	}


def success_response(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
	return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope(True, message, data)))


def error_response(
	message: str,
	errors: Optional[List[Dict[str, Any]]] = None,
	status_code: int = 400,
	*,
	exc: Optional[BaseException] = None,
) -> JSONResponse:
	body = envelope(False, message, None, errors or [{"code": "error", "message": message}])
	if status_code >= 500 and exc is not None and not settings.is_production:
		body["trace"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
	return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def paginate(page: int = 1, limit: int = 10) -> Tuple[int, int, int]:
	"""Return (page, limit, offset) with page >= 1 and 1 <= limit <= MAX_PAGE_SIZE."""
	page = max(1, int(page))
	limit = max(1, min(int(limit), MAX_PAGE_SIZE))
	return page, limit, (page - 1) * limit


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, int]:
	return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if limit else 0}


def _validation_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
	out: List[Dict[str, Any]] = []
	for err in exc.errors():
		loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "form")]
		out.append({"field": ".".join(loc) or None, "message": err.get("msg", "invalid value"), "code": err.get("type", "invalid")})
	return out


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
	return error_response(exc.message, exc.errors, exc.status_code, exc=exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
	message = exc.detail if isinstance(exc.detail, str) else "Request failed"
	response = error_response(message, [{"code": "http_error", "message": message}], exc.status_code)
	if exc.headers:
		response.headers.update(exc.headers)
	return response


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
	return error_response("Validation failed", _validation_errors(exc), 400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
	logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
	message = "Internal server error" if settings.is_production else str(exc) or "Internal server error"
	return error_response(message, [{"code": "internal_error", "message": message}], 500, exc=exc)


def register_exception_handlers(app: FastAPI) -> None:
	app.add_exception_handler(AppError, app_error_handler)
	app.add_exception_handler(StarletteHTTPException, http_exception_handler)
	app.add_exception_handler(RequestValidationError, request_validation_handler)
	app.add_exception_handler(Exception, unhandled_exception_handler)
