import asyncio
import logging

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.api.admin import router as admin_router
from app.api.messages import router as messages_router
from app.core.config import settings
from app.db.deps import get_db
from app.middleware.correlation_id import CorrelationIdFilter, CorrelationIdMiddleware
from app.services.messaging.infobip import InfobipWhatsAppClient
from app.services.realtime import RedisPublisher

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CorrelationIdFilter())

logger = logging.getLogger(__name__)

app = FastAPI(title="Quiz Campaign Bot")

app.add_middleware(CorrelationIdMiddleware)


def validate_settings() -> None:
    """Fail fast on configuration that cannot work in this environment."""
    if not settings.database_url:
        raise RuntimeError("Missing required environment variable: DATABASE_URL")

    if settings.app_env == "production":
        production_errors = []
        if settings.infobip_dry_run:
            production_errors.append("INFOBIP_DRY_RUN must be false in production.")
        for key in ("infobip_base_url", "infobip_api_key", "infobip_whatsapp_sender"):
            if not getattr(settings, key):
                production_errors.append(f"{key.upper()} is required in production.")
        if not settings.admin_api_key:
            production_errors.append(
                "ADMIN_API_KEY is required in production to protect broadcast triggers."
            )
        if production_errors:
            error_message = "Production environment validation failed:\n" + "\n".join(
                f"  - {error}" for error in production_errors
            )
            logger.error(error_message)
            raise RuntimeError(error_message)


@app.on_event("startup")
async def startup_event():
    """Validate settings and acquire the outbound capabilities."""
    validate_settings()

    app.state.messaging = InfobipWhatsAppClient.from_settings(settings)
    app.state.publisher = (
        RedisPublisher(settings.realtime_redis_url) if settings.realtime_redis_url else None
    )
    app.state.coupon_lock = asyncio.Lock()

    logger.info(
        "Startup: Configuration loaded - "
        f"Environment: {settings.app_env}, "
        f"Infobip dry-run: {settings.infobip_dry_run}, "
        f"Realtime: {'redis' if app.state.publisher else 'disabled'}, "
        f"Closing message: {'on' if settings.closing_message else 'off'}"
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Release the outbound capabilities."""
    messaging = getattr(app.state, "messaging", None)
    if messaging is not None and hasattr(messaging, "aclose"):
        await messaging.aclose()
    publisher = getattr(app.state, "publisher", None)
    if publisher is not None:
        await publisher.aclose()


@app.get("/health")
def health():
    return {
        "ok": True,
        "features": {
            "infobip_dry_run": settings.infobip_dry_run,
            "realtime_enabled": bool(settings.realtime_redis_url and settings.realtime_channel),
            "closing_message_enabled": bool(settings.closing_message),
            "inbound_dedupe_enabled": settings.inbound_dedupe_enabled,
        },
    }


@app.get("/ready")
def ready(db: Session = Depends(get_db)):
    """
    Readiness check endpoint - verifies database connectivity.

    Returns 200 if database is accessible, 503 if not.
    """
    try:
        db.execute(text("SELECT 1"))
        return {"ok": True, "database": "connected"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"ok": False, "database": "disconnected", "error": str(e)},
        )


app.include_router(messages_router, prefix="/message", tags=["messages"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])
