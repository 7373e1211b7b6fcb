import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..db import get_engine
from ..responses import success_response
from ..settings import settings

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


def _database_ok() -> bool:
	try:
		with get_engine().connect() as conn:
			conn.execute(text("SELECT 1"))
		return True
	except (SQLAlchemyError, RuntimeError) as exc:
		logger.warning("Health check could not reach the database: %s", exc)
		return False


@router.get("/health")
async def health():
	db_ok = _database_ok()
	return success_response(
		"Service is running",
		{
			"status": "ok" if db_ok else "degraded",
			"environment": settings.environment,
			"gemini_configured": bool(settings.gemini_api_key),
			"database": "connected" if db_ok else "unavailable",
		},
	)
