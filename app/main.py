"""FastAPI application entrypoint.

REST routes prefixed /v1; the chat relay is mounted at /ws.

The chat components (store, session registry, classifier, escalation
service, relay) are created once during the lifespan and stored on app.state
for injection via Depends(). The liveness sweep runs on APScheduler every
HEARTBEAT_INTERVAL_SECONDS.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.chat_sessions import router as chat_sessions_router
from app.api.v1.health import router as health_router
from app.api.websocket import router as websocket_router
from app.core.config import Settings, settings
from app.core.exceptions import SupportOpsError
from app.db.database import build_engine, build_session_factory, close_engine, create_tables
from app.services.chat.classifier import SupportClassifier
from app.services.chat.delivery import SessionDelivery
from app.services.chat.escalation import AgentAssignment, EscalationService
from app.services.chat.liveness import LivenessMonitor
from app.services.chat.registry import SessionRegistry
from app.services.chat.relay import ChatRelay
from app.services.chat.store import ChatStore, DatabaseChatStore, InMemoryChatStore
from app.services.llm.base import LLMProvider
from app.services.llm.fallback import FallbackLLMProvider
from app.services.llm.gemini import GeminiProvider


def _configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


_configure_logging()

logger = structlog.get_logger(__name__)


def _build_llm_provider(config: Settings) -> LLMProvider:
    primary = GeminiProvider(
        api_key=config.gemini_api_key,
        model=config.gemini_model,
        timeout_seconds=config.classifier_timeout_seconds,
    )
    if not config.gemini_fallback_model:
        return primary
    return FallbackLLMProvider(
        primary=primary,
        secondary=GeminiProvider(
            api_key=config.gemini_api_key,
            model=config.gemini_fallback_model,
            timeout_seconds=config.classifier_timeout_seconds,
        ),
    )


def build_chat_relay(
    config: Settings,
    store: ChatStore,
    registry: SessionRegistry,
    classifier: SupportClassifier,
) -> ChatRelay:
    """Wire the delivery primitive, escalation service and relay together."""
    delivery = SessionDelivery(registry)
    escalation = EscalationService(
        store=store,
        classifier=classifier,
        delivery=delivery,
        agent=AgentAssignment(
            name=config.escalation_agent_name,
            team=config.escalation_agent_team,
        ),
        greeting_delay_seconds=config.agent_greeting_delay_seconds,
    )
    return ChatRelay(
        store=store,
        registry=registry,
        delivery=delivery,
        escalation=escalation,
        cancel_greeting_on_session_end=config.cancel_greeting_on_session_end,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle.

    Creates the singleton chat components and attaches them to app.state.
    Also starts the APScheduler liveness sweep.
    """
    # --- Startup ---
    logger.info(
        "app_startup", env=settings.app_env, storage_backend=settings.storage_backend
    )

    engine = None
    if settings.storage_backend == "memory":
        store: ChatStore = InMemoryChatStore()
    else:
        engine = build_engine(settings.database_url)
        if not settings.is_production:
            await create_tables(engine)
        store = DatabaseChatStore(build_session_factory(engine))

    registry = SessionRegistry()
    classifier = SupportClassifier(
        llm=_build_llm_provider(settings),
        timeout_seconds=settings.classifier_timeout_seconds,
    )
    relay = build_chat_relay(settings, store, registry, classifier)

    app.state.chat_store = store
    app.state.session_registry = registry
    app.state.chat_relay = relay

    scheduler = AsyncIOScheduler()
    monitor = LivenessMonitor(
        registry=registry,
        on_reap=relay.release,
        interval_seconds=settings.heartbeat_interval_seconds,
    )
    monitor.start(scheduler)
    scheduler.start()
    app.state.scheduler = scheduler

    logger.info("app_chat_relay_ready")
    yield

    # --- Shutdown ---
    logger.info("app_shutdown")

    scheduler.shutdown(wait=False)
    await relay.shutdown()

    if engine is not None:
        await close_engine(engine)


app = FastAPI(
    title="Support Ops — Chat Relay API",
    description="Real-time support chat with AI triage and human escalation.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS — permissive for development, locked down in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if not settings.is_production else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SupportOpsError)
async def support_ops_error_handler(request: Request, exc: SupportOpsError) -> JSONResponse:
    """Structured error response for all support-ops exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


# Mount routers
app.include_router(health_router, prefix="/v1")
app.include_router(chat_sessions_router, prefix="/v1")
app.include_router(websocket_router)
