import logging
import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .db import close_db, init_db, session_scope
from .gemini_client import close_gemini_client
from .responses import register_exception_handlers
from .security import ensure_seed_admin
from .settings import settings
from .routers import health, gemini
from .routers import auth
from .routers import questions
from .routers import reading
from .routers import listening

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="IELTS Prep API")

app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(questions.router)
app.include_router(gemini.router)
app.include_router(reading.router)
app.include_router(listening.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
	start = time.perf_counter()
	response = await call_next(request)
	duration = time.perf_counter() - start
	logger.info("%s %s - %s - %.3fs", request.method, request.url.path, response.status_code, duration)
	return response


@app.on_event("startup")
async def startup_event():
	init_db()
	with session_scope() as db:
		ensure_seed_admin(db)
	Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
	logger.info("IELTS Prep API started (%s)", settings.environment)


@app.on_event("shutdown")
async def shutdown_event():
	await close_gemini_client()
	close_db()


if __name__ == "__main__":
	import uvicorn

	uvicorn.run("ielts_api.main:app", host="0.0.0.0", port=8000)
