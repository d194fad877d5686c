"""
Posflow - Main Application Entry Point
Restaurant order-to-kitchen pipeline
"""

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from posflow.core.config import get_settings
from posflow.core.database import init_db
from posflow.core.dependencies import require_dine_in
from posflow.core.exceptions import PosflowError
from posflow.core.logging import configure_logging
from posflow.api import orders, public, table_sessions, tables, tickets

configure_logging()

logger = structlog.get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("posflow_starting", environment=settings.ENVIRONMENT)
    if settings.ENVIRONMENT == "development":
        # Production schemas are managed by Alembic migrations
        init_db()

    yield

    # Shutdown
    logger.info("posflow_stopping")


# Create FastAPI application
app = FastAPI(
    title="Posflow API",
    description="Restaurant order-to-kitchen pipeline: orders, kitchen tickets and table sessions",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure middleware stack
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PosflowError)
async def posflow_error_handler(request: Request, exc: PosflowError):
    """Map domain errors to JSON responses"""
    logger.info(
        "request_rejected",
        path=request.url.path,
        error=exc.code,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
prefix = settings.API_V1_PREFIX
dine_in = [Depends(require_dine_in)]
app.include_router(tables.router, prefix=f"{prefix}/tables", tags=["tables"], dependencies=dine_in)
app.include_router(
    table_sessions.router,
    prefix=f"{prefix}/table-sessions",
    tags=["table-sessions"],
    dependencies=dine_in,
)
app.include_router(orders.router, prefix=f"{prefix}/orders", tags=["orders"])
app.include_router(tickets.router, prefix=f"{prefix}/kitchen-tickets", tags=["kitchen-tickets"])
app.include_router(public.router, prefix=f"{prefix}/public", tags=["public"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "posflow-api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "posflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
