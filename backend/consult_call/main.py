"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from consult_call.api.v1.endpoints import health
from consult_call.api.v1.routes import api_router
from consult_call.core.config import ConfigManager, get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Validates signaling/notification configuration
    - Initializes the call manager with the configured transport

    Shutdown:
    - Closes every live call and the transport
    """
    # ========================
    # STARTUP
    # ========================
    logger.info("Starting consultation call service...")

    settings = get_settings()
    strict_validation = settings.environment == "production"

    try:
        from consult_call.core.validation import validate_collaborators_on_startup
        validate_collaborators_on_startup(strict=strict_validation, transport=settings.signaling_transport)
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        else:
            logger.warning(f"Configuration warnings (non-fatal in {settings.environment}): {e}")

    try:
        from consult_call.domain.services.call_manager import CallManager
        from consult_call.infrastructure.media.factory import MediaEngineFactory
        from consult_call.infrastructure.notifications.factory import NotificationDispatcherFactory
        from consult_call.infrastructure.signaling.factory import SignalingTransportFactory

        call_settings = ConfigManager(env=settings.environment).get_call_settings()
        transport = SignalingTransportFactory.create(settings.signaling_transport, call_settings)
        dispatcher = NotificationDispatcherFactory.create(settings.signaling_transport, call_settings)
        manager = await CallManager.initialize(
            transport,
            dispatcher,
            MediaEngineFactory.provider(settings.media_engine),
            call_settings,
        )
        logger.info(f"CallManager initialized (transport: {manager.transport.name})")
    except (RuntimeError, ValueError) as e:
        if strict_validation:
            raise
        logger.warning(f"CallManager initialization warning: {e}")

    logger.info("Consultation call service started successfully")

    yield

    # ========================
    # SHUTDOWN
    # ========================
    logger.info("Shutting down consultation call service...")

    try:
        from consult_call.domain.services.call_manager import CallManager
        await CallManager.reset()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")

    logger.info("Consultation call service shutdown complete")


app = FastAPI(
    title="Consultation Video Call",
    description="Call signaling and session state for nutritionist video consultations",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(api_router, prefix=get_settings().api_prefix)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
