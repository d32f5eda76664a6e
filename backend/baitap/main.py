import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import Base, engine
from .errors import EngineError
from .settings import settings
from .routers import auth
from .routers import exercises
from .routers import chapters
from .routers import subjects
from .routers import activity

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Baitap Assessment API")
app.include_router(auth.router)
app.include_router(exercises.router)
app.include_router(chapters.router)
app.include_router(subjects.router)
app.include_router(activity.router)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
	return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "type": type(exc).__name__})


@app.get("/info")
def root():
	return {"status": "ok", "vision_grading_configured": bool(settings.gemini_api_key)}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
