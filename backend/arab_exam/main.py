import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .db import Base, engine
from .settings import settings
from .uploads import uploads_dir
from .routers import access, admin, ai_tutor, attempts, auth, contact, exams
from .routers import profile, progress, speaking, subscriptions, writing

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Arab Exam API")

for module in (auth, profile, exams, attempts, progress, writing, speaking, ai_tutor, access, subscriptions, admin, contact):
	app.include_router(module.router, prefix="/api")

# Uploaded answer audio, e.g. /api/uploads/<attempt>_<question>.webm
app.mount("/api/uploads", StaticFiles(directory=uploads_dir()), name="uploads")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
	return JSONResponse(
		status_code=400,
		content={"detail": "Validation error", "errors": jsonable_encoder(exc.errors())},
	)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
	logger.exception("Unhandled error on %s %s", request.method, request.url.path)
	message = "Internal Server Error" if settings.is_production() else str(exc) or "Internal Server Error"
	return JSONResponse(status_code=500, content={"detail": message})


@app.get("/api/health")
def health():
	return {"ok": True, "timestamp": datetime.utcnow().isoformat()}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	logger.info("Arab Exam API started (%s)", settings.environment)
