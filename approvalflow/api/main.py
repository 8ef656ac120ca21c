import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from approvalflow import __version__
from approvalflow.core.config import get_settings
from approvalflow.core.errors import WorkflowError
from approvalflow.core.logger import configure_logging
from approvalflow.api.routers import health, processes, tasks, approvals, master
from approvalflow.api.middleware import AuditMiddleware, SecurityHeadersMiddleware

settings = get_settings()

configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Maker-checker approval workflow for item, plan and product reference data",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(SecurityHeadersMiddleware)

# Audit middleware - logs all API requests
app.add_middleware(AuditMiddleware)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    if exc.recoverable:
        logger.warning(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    else:
        logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# Include routers
app.include_router(health.router)
app.include_router(processes.router, prefix="/api")
app.include_router(tasks.router, prefix="/api")
app.include_router(approvals.router, prefix="/api")
app.include_router(master.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "engine": settings.engine_backend,
        "docs": "/docs" if settings.debug else None,
    }
