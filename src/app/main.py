"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events for database initialization and lifecycle component wiring,
and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.app.config import get_settings
from src.app.core.database import close_db, get_session, init_db
from src.app.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.app.api.errors import register_exception_handlers
from src.app.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.app.api.v1.router import router as v1_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and lifecycle components."""
    import structlog

    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # ── Repositories ─────────────────────────────────────────────────────
    # Each component is wired in its own try/except; a failure leaves the
    # corresponding app.state attribute None and its routes answer 503.

    deal_repository = None
    project_repository = None
    try:
        from src.app.contracts.repository import ContractRepository
        from src.app.deals.repository import DealRepository
        from src.app.firm_offers.repository import FirmOfferRepository
        from src.app.projects.repository import ProjectRepository

        deal_repository = DealRepository(get_session)
        project_repository = ProjectRepository(get_session)
        contract_repository = ContractRepository(get_session)
        firm_offer_repository = FirmOfferRepository(get_session)
        app.state.project_repository = project_repository
        log.info("lifecycle.repositories_initialized")
    except Exception:
        log.warning("lifecycle.repositories_init_failed", exc_info=True)
        app.state.project_repository = None
        contract_repository = None
        firm_offer_repository = None

    # ── Notifications ────────────────────────────────────────────────────

    dispatcher = None
    try:
        from src.app.notifications.dispatcher import NotificationDispatcher
        from src.app.notifications.email import build_email_sender

        dispatcher = NotificationDispatcher(
            sender=build_email_sender(settings),
            admin_email=settings.admin_notification_address,
            public_base_url=settings.PUBLIC_BASE_URL,
        )
        log.info("lifecycle.notifications_initialized")
    except Exception:
        log.warning("lifecycle.notifications_init_failed", exc_info=True)

    # ── Project Materializer ─────────────────────────────────────────────

    materializer = None
    if project_repository is not None:
        try:
            from src.app.projects.materializer import ProjectMaterializer

            materializer = ProjectMaterializer(project_repository, deal_repository)
        except Exception:
            log.warning("lifecycle.materializer_init_failed", exc_info=True)

    # ── Deal Pipeline and Proposals ──────────────────────────────────────

    try:
        if deal_repository is None:
            raise RuntimeError("DealRepository unavailable")
        from src.app.deals.pipeline import DealPipeline
        from src.app.deals.proposals import ProposalService

        app.state.deal_pipeline = DealPipeline(deal_repository)
        app.state.proposal_service = ProposalService(
            deal_repository,
            dispatcher=dispatcher,
            materializer=materializer,
            public_base_url=settings.PUBLIC_BASE_URL,
            valid_days=settings.PROPOSAL_VALID_DAYS,
        )
        log.info("lifecycle.deals_initialized")
    except Exception:
        log.warning("lifecycle.deals_init_failed", exc_info=True)
        app.state.deal_pipeline = None
        app.state.proposal_service = None

    # ── Contracts ────────────────────────────────────────────────────────

    try:
        if contract_repository is None:
            raise RuntimeError("ContractRepository unavailable")
        from src.app.contracts.engine import ContractEngine

        app.state.contract_engine = ContractEngine(
            contract_repository,
            deal_repository,
            dispatcher=dispatcher,
            materializer=materializer,
            public_base_url=settings.PUBLIC_BASE_URL,
            expiry_days=settings.CONTRACT_EXPIRY_DAYS,
        )
        log.info("lifecycle.contracts_initialized")
    except Exception:
        log.warning("lifecycle.contracts_init_failed", exc_info=True)
        app.state.contract_engine = None

    # ── Firm Offers ──────────────────────────────────────────────────────

    try:
        if firm_offer_repository is None:
            raise RuntimeError("FirmOfferRepository unavailable")
        from src.app.firm_offers.engine import FirmOfferEngine

        app.state.firm_offer_engine = FirmOfferEngine(
            firm_offer_repository,
            deal_repository,
            dispatcher=dispatcher,
            materializer=materializer,
            public_base_url=settings.PUBLIC_BASE_URL,
        )
        log.info("lifecycle.firm_offers_initialized")
    except Exception:
        log.warning("lifecycle.firm_offers_init_failed", exc_info=True)
        app.state.firm_offer_engine = None

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Speaker Booking CRM API",
        version="0.1.0",
        description="Deal pipeline, contracts and firm offers for a speaker booking agency",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)

    # Include v1 API router (health, auth, deals, proposals, contracts, firm offers, projects)
    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
