import logging
from datetime import datetime

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from contextlib import asynccontextmanager

from core.config import settings
from core.exceptions import ComplianceRequiredError, QolaeError
from core.logging_config import setup_logging
from create_tables import create_tables, seed_nda_version

from modules.nda.dependencies import get_nda_storage, get_preview_cache
from modules.nda.job.preview_sweep import start_preview_sweep_job
from modules.auth.controllers.auth_controller import router as auth_router
from modules.auth.controllers.portal_controller import router as portal_router
from modules.nda.controllers.nda_controller import router as nda_router
from modules.readers.controllers.reader_controller import router as reader_router
from modules.admin.controllers.admin_controller import router as admin_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    setup_logging()
    logger.info("Starting %s (%s)", settings.APP_NAME, settings.ENVIRONMENT)
    create_tables()
    seed_nda_version()
    get_nda_storage().ensure_layout()
    scheduler = start_preview_sweep_job(get_preview_cache())
    logger.info("Preview sweep every %ss", settings.PREVIEW_SWEEP_INTERVAL_SECONDS)
    yield
    # --- Shutdown ---
    scheduler.shutdown(wait=False)
    logger.info("Application stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Readers portal: 2FA login, HR compliance gate, NDA e-signature, corrections and payments",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Accept",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Origin",
    ],
    max_age=86400,
)


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


@app.exception_handler(ComplianceRequiredError)
async def compliance_required_handler(request: Request, exc: ComplianceRequiredError):
    return RedirectResponse(exc.redirect_url, status_code=302)


@app.exception_handler(QolaeError)
async def qolae_error_handler(request: Request, exc: QolaeError):
    body = exc.to_dict()
    body["timestamp"] = _timestamp()
    if not body["details"]:
        del body["details"]
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal Server Error", "timestamp": _timestamp()},
    )


# Routers
app.include_router(auth_router)
app.include_router(portal_router)
app.include_router(nda_router)
app.include_router(reader_router)
app.include_router(admin_router)


@app.get("/health", tags=["health"])
def health():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "timestamp": _timestamp(),
        "environment": settings.ENVIRONMENT,
    }


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
