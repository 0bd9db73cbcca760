from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn
from dotenv import load_dotenv
import asyncio
import logging
from datetime import datetime, timedelta
from app.database import init_db, engine
from app.routers import (
    auth_router,
    submission_router,
    exams_router,
    upload_pdf_router
)
from contextlib import asynccontextmanager, suppress
from app.core.config import settings
from app.core.errors import ExamifyError
from app.dependencies import init_services, services
from app.utils.session import session_store

# Logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

load_dotenv()

async def sweep_orphaned_chunks_forever(retention_hours: int, interval: int):
    """Periodically drop chunk blobs of submissions reassembled long ago"""
    while True:
        await asyncio.sleep(interval)
        try:
            cutoff = datetime.utcnow() - timedelta(hours=retention_hours)
            await services.intake_service.sweep_orphaned_chunks(cutoff)
        except Exception as e:
            logger.error(f"Orphaned chunk sweep failed: {str(e)}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    sweep_task = None
    try:
        await init_db()
        init_services(settings)
        # the app still serves degrade-ladder traffic when the store is down
        if not await services.blob_store.connect():
            logger.error("Binary store not ready at startup; writes will retry lazily")
        if settings.CHUNK_RETENTION_HOURS:
            sweep_task = asyncio.create_task(sweep_orphaned_chunks_forever(
                settings.CHUNK_RETENTION_HOURS,
                settings.CHUNK_SWEEP_INTERVAL_SECONDS
            ))
            logger.info(f"Orphaned chunk sweep enabled (retention {settings.CHUNK_RETENTION_HOURS}h)")
        logger.info("Application startup completed")
        yield
    finally:
        if sweep_task:
            sweep_task.cancel()
            with suppress(asyncio.CancelledError):
                await sweep_task
        await session_store.cleanup()
        await engine.dispose()
        logger.info("Application shutdown")

app = FastAPI(
    title="Examify API",
    description="Resilient exam submission pipeline",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(ExamifyError)
async def examify_error_handler(request: Request, exc: ExamifyError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": str(exc.detail)})

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid {field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "message": message})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})

def init_routers(app: FastAPI):
    app.include_router(auth_router, prefix="/api")
    app.include_router(submission_router, prefix="/api")
    app.include_router(exams_router, prefix="/api")
    app.include_router(upload_pdf_router, prefix="/api")

init_routers(app)

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "store_ready": bool(services.blob_store and services.blob_store.ready)
    }

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        reload_dirs=["app"]
    )
