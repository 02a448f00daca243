"""FastAPI application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from peerlend.api.errors import domain_exception_handler
from peerlend.api.middleware import RequestIDMiddleware, MetricsMiddleware
from peerlend.api.v1 import accounts, activity, credit_reports, funded_loans, loans, negotiations
from peerlend.domain.exceptions import DomainException
from peerlend.infrastructure.database.session import init_db
from peerlend.infrastructure.observability.logging import setup_logging
from peerlend.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="PeerLend Marketplace",
        description="Peer-to-peer loan lifecycle and ledger service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(accounts.router, prefix="/v1", tags=["accounts"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(negotiations.router, prefix="/v1", tags=["negotiations"])
    app.include_router(funded_loans.router, prefix="/v1", tags=["funded-loans"])
    app.include_router(credit_reports.router, prefix="/v1", tags=["credit-reports"])
    app.include_router(activity.router, prefix="/v1", tags=["activity"])

    return app


app = create_app()
