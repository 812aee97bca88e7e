"""FastAPI application entry point"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from lmeve.api.endpoints import auth, health, oauth, records, sde, site_data, status
from lmeve.api.endpoints import settings as settings_router
from lmeve.config import settings
from lmeve.utils.logger import setup_logging
from lmeve.exceptions import LmeveException

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager
    - Startup: Log configuration
    - Shutdown: Log shutdown
    """
    logger.info(f"Starting {settings.APP_NAME}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"SSO: {settings.SSO_BASE_URL} | ESI: {settings.ESI_BASE_URL}")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="LMeve corporation management backend",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def no_store(request: Request, call_next):
    """API responses are never cached by browsers or proxies"""
    response = await call_next(request)
    response.headers.setdefault("Cache-Control", "no-store")
    return response


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(settings_router.router, prefix="/api", tags=["settings"])
app.include_router(site_data.router, prefix="/api", tags=["settings"])
app.include_router(auth.router, prefix="/api", tags=["authentication"])
app.include_router(oauth.router, prefix="/api", tags=["sso"])
app.include_router(records.router, prefix="/api", tags=["corporation"])
app.include_router(sde.router, prefix="/api", tags=["static-data"])
app.include_router(status.router, prefix="/api", tags=["status"])


# Exception handlers
@app.exception_handler(LmeveException)
async def lmeve_exception_handler(request: Request, exc: LmeveException):
    """Render application errors as the {ok: false, error} envelope"""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.message}")
    else:
        logger.info(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Unhandled error", "detail": "An unexpected error occurred"}
    )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if settings.DEBUG else "disabled"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "lmeve.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
