"""
Instagram Automation Engine - Main Application Entry Point
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI
from app.api import webhooks
from app.config import settings
from app.db import init_db, close_db
from app.version import __version__
import logging
import re

# (pattern, replacement) pairs applied to every log message
REDACTIONS = [
    # access_token query parameters in logged URLs
    (re.compile(r'access_token=[^&\s]+'), 'access_token=[REDACTED]'),
    # Authorization headers
    (re.compile(r'(Bearer\s+)[A-Za-z0-9._-]+'), r'\1[REDACTED]'),
    # 'access_token': 'IGAA...' in dict / JSON dumps
    (
        re.compile(r"(['\"]access_token['\"]:\s*['\"])(IG[A-Za-z0-9_-]+|EA[A-Za-z0-9]+)(['\"])"),
        r"\1[REDACTED]\3"
    ),
    # Fernet ciphertexts, Graph API message IDs and other long opaque values
    (re.compile(r'\b[A-Za-z0-9_-]{80,}\b'), '[ID_REDACTED]'),
]


class SensitiveDataFilter(logging.Filter):
    """Redacts credentials and long identifiers before a record is emitted"""

    def filter(self, record):
        if hasattr(record, 'msg'):
            msg = str(record.msg)
            for pattern, replacement in REDACTIONS:
                msg = pattern.sub(replacement, msg)
            record.msg = msg
        return True


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    sensitive_filter = SensitiveDataFilter()
    for handler in logging.root.handlers:
        handler.addFilter(sensitive_filter)

    # httpx logs every request URL at INFO
    logging.getLogger('httpx').addFilter(sensitive_filter)


configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown"""
    logger.info("🚀 Starting Instagram Automation Engine")
    logger.info(f"📦 Version: {__version__}")
    logger.info(f"📝 Environment: {settings.environment}")

    await init_db()

    if not settings.instagram_app_secret:
        logger.warning("⚠️  INSTAGRAM_APP_SECRET not set - webhook signatures will not be validated")
    if not settings.openai_api_key:
        logger.warning("⚠️  OPENAI_API_KEY not set - auto_dm_reply automations will fail to generate replies")

    logger.info("🔗 Webhook endpoint: /webhooks/instagram")

    yield

    logger.info("Shutting down...")
    await close_db()


app = FastAPI(
    title="Instagram Automation Engine",
    description="Comment-to-DM and auto-reply automations driven by Instagram webhooks",
    version=__version__,
    lifespan=lifespan,
)

# Register webhook routes
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "app": "Instagram Automation Engine",
        "version": __version__,
        "status": "running",
        "environment": settings.environment,
        "webhook_url": "/webhooks/instagram"
    }


@app.get("/health")
async def health_check():
    """Liveness check, plus which optional webhook features are switched on"""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "features": {
            "signature_validation": bool(settings.instagram_app_secret),
            "reply_generation": bool(settings.openai_api_key),
            "dedupe_events": settings.dedupe_events,
            "record_failed_replies": settings.record_failed_replies,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
