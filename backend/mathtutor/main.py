import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .db import Base, engine, get_db, ensure_schema
from .cleanup import purge_older_than_one_week
from .gemini_client import MissingCredentialsError, UpstreamError, require_credentials
from .settings import settings
from .routers import chat
from .routers import evaluator
from .routers import guardrail
from .routers import session
from .routers import tutor

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Math Tutor API")
app.include_router(tutor.router)
app.include_router(guardrail.router)
app.include_router(evaluator.router)
app.include_router(chat.router)
app.include_router(session.router)


@app.exception_handler(RequestValidationError)
async def _invalid_request(request: Request, exc: RequestValidationError):
	# Bad bodies are reported like any other failure on these endpoints
	logger.warning("Invalid request to %s: %s", request.url.path, exc.errors())
	return JSONResponse(status_code=500, content={"error": "Failed to process the request"})


@app.exception_handler(MissingCredentialsError)
async def _missing_credentials(request: Request, exc: MissingCredentialsError):
	logger.error("%s called without credentials: %s", request.url.path, exc)
	return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(UpstreamError)
async def _upstream_failure(request: Request, exc: UpstreamError):
	logger.error("Upstream failure on %s: %s", request.url.path, exc)
	return JSONResponse(status_code=500, content={"error": "Failed to process the request"})


@app.get("/info")
def root():
	return {"status": "ok", "llm_configured": bool(settings.gemini_api_key)}


def _run_cleanup() -> None:
	db = next(get_db())
	try:
		removed = purge_older_than_one_week(db)
		if removed:
			logger.info("Purged %d old session records", removed)
	finally:
		db.close()


async def _cleanup_watcher():
	# Startup already ran one pass; repeat daily
	while True:
		await asyncio.sleep(24 * 60 * 60)
		try:
			_run_cleanup()
		except Exception:
			logger.exception("Session cleanup failed")


async def _session_watcher():
	while True:
		await asyncio.sleep(settings.session_sweep_seconds)
		try:
			await session.sweep_sessions()
		except Exception:
			logger.exception("Session sweep failed")


@app.on_event("startup")
async def startup_event():
	if settings.require_llm_credentials:
		# Fatal: the tutor, guardrail and evaluator endpoints cannot serve without a key
		require_credentials()
	Base.metadata.create_all(bind=engine)
	ensure_schema()
	try:
		_run_cleanup()
	except Exception:
		logger.exception("Session cleanup failed")
	asyncio.create_task(_cleanup_watcher())
	asyncio.create_task(_session_watcher())
