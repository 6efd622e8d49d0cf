"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
the response envelope's exception handlers, lifespan events for database
initialization and service wiring, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.cally.api.envelope import register_exception_handlers
from src.cally.api.middleware import LoggingMiddleware, configure_structlog
from src.cally.api.v1.router import router as v1_router
from src.cally.config import get_settings
from src.cally.core.database import close_db, get_shared_session, get_tenant_session, init_db
from src.cally.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.cally.core.redis import close_redis, get_redis_pool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and services on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # Each block below is failure-tolerant: a service that cannot be built
    # is left as None and its routes answer 503.

    # ── Tenants ──────────────────────────────────────────────────────────
    try:
        from src.cally.tenants.provisioning import TenantProvisioner
        from src.cally.tenants.repository import TenantRepository

        tenant_repository = TenantRepository(
            session_factory=get_shared_session,
            redis_client=get_redis_pool(),
        )
        app.state.tenant_repository = tenant_repository
        app.state.tenant_provisioner = TenantProvisioner(repository=tenant_repository)
        log.info("startup.tenants_initialized")
    except Exception:
        log.warning("startup.tenants_init_failed", exc_info=True)
        app.state.tenant_repository = None
        app.state.tenant_provisioner = None

    # ── Provider Clients (only those with credentials) ───────────────────
    hms_client = None
    stripe_payments = None
    google_client = None
    outlook_client = None
    zoom_client = None
    email_sender = None
    try:
        from src.cally.integrations.email import EmailSender
        from src.cally.integrations.google_calendar import GoogleCalendarClient
        from src.cally.integrations.hms import HmsClient
        from src.cally.integrations.outlook import OutlookCalendarClient
        from src.cally.integrations.stripe_payments import StripePayments
        from src.cally.integrations.zoom import ZoomClient

        if settings.hms_configured:
            hms_client = HmsClient(
                access_key=settings.HMS_ACCESS_KEY,
                app_secret=settings.HMS_APP_SECRET,
                template_id=settings.HMS_TEMPLATE_ID,
            )
        if settings.STRIPE_SECRET_KEY:
            stripe_payments = StripePayments(secret_key=settings.STRIPE_SECRET_KEY)
        if settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET:
            google_client = GoogleCalendarClient(
                client_id=settings.GOOGLE_CLIENT_ID,
                client_secret=settings.GOOGLE_CLIENT_SECRET,
            )
        if settings.MICROSOFT_CLIENT_ID and settings.MICROSOFT_CLIENT_SECRET:
            outlook_client = OutlookCalendarClient(
                client_id=settings.MICROSOFT_CLIENT_ID,
                client_secret=settings.MICROSOFT_CLIENT_SECRET,
            )
        if settings.ZOOM_CLIENT_ID and settings.ZOOM_CLIENT_SECRET:
            zoom_client = ZoomClient(
                client_id=settings.ZOOM_CLIENT_ID,
                client_secret=settings.ZOOM_CLIENT_SECRET,
            )
        sa_path = settings.get_service_account_path()
        if sa_path and settings.EMAIL_SENDER_ADDRESS:
            email_sender = EmailSender(
                service_account_file=sa_path,
                sender_address=settings.EMAIL_SENDER_ADDRESS,
            )
        log.info(
            "startup.providers_initialized",
            hms=hms_client is not None,
            stripe=stripe_payments is not None,
            google=google_client is not None,
            outlook=outlook_client is not None,
            zoom=zoom_client is not None,
            email=email_sender is not None,
        )
    except Exception:
        log.warning("startup.providers_init_failed", exc_info=True)

    # ── Calendar, Bookings & Recording ───────────────────────────────────
    try:
        from src.cally.bookings.notifications import BookingNotifier
        from src.cally.bookings.refunds import RefundService
        from src.cally.bookings.service import VisitorCancellationService
        from src.cally.calendar.repository import CalendarEventRepository
        from src.cally.calendar.service import CalendarEventService
        from src.cally.calendar.sync import CalendarSyncService
        from src.cally.calendar.video import VideoConferenceService
        from src.cally.transcripts.recording import RecordingService
        from src.cally.transcripts.repository import TranscriptRepository, VideoRoomRepository

        tenant_repository = app.state.tenant_repository
        events = CalendarEventRepository(session_factory=get_tenant_session)
        transcripts = TranscriptRepository(session_factory=get_tenant_session)
        rooms = VideoRoomRepository(session_factory=get_shared_session)
        refunds = RefundService(events=events, payments=stripe_payments)
        notifier = BookingNotifier(sender=email_sender)

        app.state.calendar_service = CalendarEventService(
            events=events,
            sync=CalendarSyncService(
                events=events,
                tenants=tenant_repository,
                google=google_client,
                outlook=outlook_client,
            ),
            video=VideoConferenceService(tenants=tenant_repository, hms=hms_client, zoom=zoom_client),
            refunds=refunds,
            notifier=notifier,
            rooms=rooms,
        )
        app.state.cancellation_service = VisitorCancellationService(
            events=events, refunds=refunds, notifier=notifier
        )
        app.state.recording_service = RecordingService(
            events=events, transcripts=transcripts, hms=hms_client
        )
        log.info("startup.calendar_initialized")
    except Exception:
        log.warning("startup.calendar_init_failed", exc_info=True)
        app.state.calendar_service = None
        app.state.cancellation_service = None
        app.state.recording_service = None

    # ── Transcription ────────────────────────────────────────────────────
    try:
        from src.cally.transcripts.processor import TranscriptionProcessor
        from src.cally.transcripts.repository import TranscriptRepository, VideoRoomRepository

        app.state.transcription_processor = TranscriptionProcessor(
            transcripts=TranscriptRepository(session_factory=get_tenant_session),
            rooms=VideoRoomRepository(session_factory=get_shared_session),
            tenants=app.state.tenant_repository,
            hms=hms_client,
            transcription_model=settings.TRANSCRIPTION_MODEL,
            summary_model=settings.SUMMARY_MODEL,
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.LLM_TIMEOUT,
        )
        log.info("startup.transcription_initialized", model=settings.TRANSCRIPTION_MODEL)
    except Exception:
        log.warning("startup.transcription_init_failed", exc_info=True)
        app.state.transcription_processor = None

    # ── Ads & Audience ───────────────────────────────────────────────────
    try:
        from src.cally.ads.repository import AdRepository
        from src.cally.audience.repository import SubscriberRepository, WaitlistRepository

        app.state.ad_repository = AdRepository(session_factory=get_tenant_session)
        app.state.subscriber_repository = SubscriberRepository(session_factory=get_tenant_session)
        app.state.waitlist_repository = WaitlistRepository(session_factory=get_tenant_session)
        log.info("startup.ads_audience_initialized")
    except Exception:
        log.warning("startup.ads_audience_init_failed", exc_info=True)
        app.state.ad_repository = None
        app.state.subscriber_repository = None
        app.state.waitlist_repository = None

    yield

    # ── Shutdown ─────────────────────────────────────────────────────────
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Cally API",
        version="0.1.0",
        description="Multi-tenant scheduling and booking backend",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Middleware is added in reverse order (last added = outermost)

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
