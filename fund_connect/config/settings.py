"""
Application Configuration
Centralized configuration management using environment variables
"""
import os
from typing import List
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment variables"""

    APP_NAME: str = os.getenv("APP_NAME", "Fund Connect API")
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # CORS Configuration
    CORS_ORIGINS: List[str] = _env_list(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000"
    )

    # Supabase Configuration
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")  # Anon key for client
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    SUPABASE_JWT_SECRET: str = os.getenv("SUPABASE_JWT_SECRET", "")
    SUPABASE_JWT_AUDIENCE: str = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")

    # Realtime / WebSocket Configuration
    REALTIME_ENABLED: bool = _env_bool("REALTIME_ENABLED", "true")
    WEBSOCKET_ENABLED: bool = _env_bool("WEBSOCKET_ENABLED", "true")
    WEBSOCKET_KEEPALIVE_SECONDS: float = float(os.getenv("WEBSOCKET_KEEPALIVE_SECONDS", "30"))

    # Identity resolution: last-resort scan of the full agents/investors tables
    ROLE_BULK_SCAN_FALLBACK: bool = _env_bool("ROLE_BULK_SCAN_FALLBACK", "true")

    # Messaging
    MESSAGE_MAX_LENGTH: int = int(os.getenv("MESSAGE_MAX_LENGTH", "5000"))

    # Invitations
    INVITATION_CODE_LENGTH: int = int(os.getenv("INVITATION_CODE_LENGTH", "8"))

    # Defaults used when a role is assigned without registration details
    DEFAULT_AGENT_NAME: str = "New Agent"
    DEFAULT_AGENT_FIRM: str = "Your Company"
    DEFAULT_INVESTOR_NAME: str = "New Investor"

    @property
    def supabase_key(self) -> str:
        """Service role key when available (bypasses RLS), anon key otherwise"""
        return self.SUPABASE_SERVICE_KEY or self.SUPABASE_KEY

    @property
    def is_supabase_configured(self) -> bool:
        """Check if Supabase configuration is present"""
        return bool(self.SUPABASE_URL and self.supabase_key)

    @property
    def is_auth_configured(self) -> bool:
        """Check if JWT verification is possible"""
        return bool(self.SUPABASE_JWT_SECRET)

    @property
    def is_realtime_configured(self) -> bool:
        """Check if Supabase Realtime subscriptions can be opened"""
        return self.REALTIME_ENABLED and self.is_supabase_configured


# Global settings instance
settings = Settings()
