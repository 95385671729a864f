"""Configuration management using environment variables"""
import logging
import os
import secrets

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


def _get_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings - only what the webhook engine needs"""

    def __init__(self):
        # Environment
        self.environment = os.getenv("ENVIRONMENT", "development")

        # Webhook credentials
        if self.environment == "production":
            self.webhook_verify_token = self._get_required("INSTAGRAM_WEBHOOK_VERIFY_TOKEN")
            self.session_secret = self._get_required("SESSION_SECRET")
        else:
            # Development mode: Load from .env file (never commit secrets to git)
            self.webhook_verify_token = os.getenv("INSTAGRAM_WEBHOOK_VERIFY_TOKEN", "")
            session_secret_env = os.getenv("SESSION_SECRET", "")
            if session_secret_env:
                self.session_secret = session_secret_env
            else:
                self.session_secret = secrets.token_urlsafe(32)
                logger.warning(
                    "⚠️  No SESSION_SECRET provided - generated random secret for this session. "
                    "Stored access tokens will not decrypt after a restart. Set SESSION_SECRET in .env."
                )
            if not self.webhook_verify_token:
                logger.warning(
                    "⚠️  INSTAGRAM_WEBHOOK_VERIFY_TOKEN is not set - webhook verification will always fail"
                )

        # Optional: enables X-Hub-Signature-256 validation on webhook deliveries
        self.instagram_app_secret = os.getenv("INSTAGRAM_APP_SECRET", "")

        # Instagram Graph API
        self.instagram_graph_url = os.getenv("INSTAGRAM_GRAPH_URL", "https://graph.instagram.com/v21.0")
        self.facebook_graph_url = os.getenv("FACEBOOK_GRAPH_URL", "https://graph.facebook.com/v21.0")
        self.instagram_api_timeout = float(os.getenv("INSTAGRAM_API_TIMEOUT", "10.0"))  # seconds

        # Reply generation
        self.openai_api_key = os.getenv("OPENAI_API_KEY", "")
        self.openai_model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.openai_timeout = float(os.getenv("OPENAI_TIMEOUT", "30.0"))  # seconds

        # Dispatch behaviour
        self.dedupe_events = _get_bool("DEDUPE_EVENTS", "true")
        self.record_failed_replies = _get_bool("RECORD_FAILED_REPLIES", "false")

        # Server configuration
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", "8000"))

        # Database configuration
        self.database_url = os.getenv(
            "DATABASE_URL",
            "sqlite+aiosqlite:///./instagram_automation.db"
        )

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    def _get_required(self, key: str) -> str:
        """Get required environment variable or raise error."""
        value = os.getenv(key, "").strip()
        if not value:
            raise ValueError(
                f"Missing required environment variable: {key}. "
                f"Required in production mode."
            )
        return value


# Global settings instance
settings = Settings()
