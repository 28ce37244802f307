"""
WanderMate Agent Configuration
Loads settings from environment variables
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from dotenv import load_dotenv

from .errors import ProviderNotConfigured

# Load environment variables
load_dotenv()


class Settings:
    """Application settings loaded from environment"""

    # API Configuration
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    API_ENV: str = os.getenv("API_ENV", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS Configuration
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")

    # Session Store
    SESSION_BACKEND: str = os.getenv("SESSION_BACKEND", "memory")  # "memory" or "redis"
    SESSION_TTL_HOURS: int = int(os.getenv("SESSION_TTL_HOURS", "24"))
    SESSION_LOCK_TIMEOUT: float = float(os.getenv("SESSION_LOCK_TIMEOUT", "5.0"))
    SESSION_EVICT_INTERVAL: int = int(os.getenv("SESSION_EVICT_INTERVAL", "600"))  # seconds

    # Redis Configuration
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))

    # Turn processing
    TURN_TIMEOUT: float = float(os.getenv("TURN_TIMEOUT", "20.0"))
    TOOL_MAX_ATTEMPTS: int = int(os.getenv("TOOL_MAX_ATTEMPTS", "3"))
    TOOL_RETRY_BASE_DELAY: float = float(os.getenv("TOOL_RETRY_BASE_DELAY", "0.5"))
    TOOL_RETRY_MAX_DELAY: float = float(os.getenv("TOOL_RETRY_MAX_DELAY", "4.0"))
    PROVIDER_TIMEOUT: float = float(os.getenv("PROVIDER_TIMEOUT", "10.0"))

    # Agent defaults
    DEFAULT_AUTONOMY_LEVEL: str = os.getenv("DEFAULT_AUTONOMY_LEVEL", "assisted")
    DEFAULT_LANGUAGE: str = os.getenv("DEFAULT_LANGUAGE", "en")
    DEFAULT_CITY: str = os.getenv("DEFAULT_CITY", "Varanasi")
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "INR")
    DEFAULT_COUNTRY_CODE: str = os.getenv("DEFAULT_COUNTRY_CODE", "91")

    # Intent classifier ("rules" or "openai")
    INTENT_CLASSIFIER: str = os.getenv("INTENT_CLASSIFIER", "rules")
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")

    # Booking provider (in-memory tour catalog when unset)
    BOOKING_SERVICE_URL: str = os.getenv("BOOKING_SERVICE_URL", "")

    # Razorpay
    RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID", os.getenv("NEXT_PUBLIC_RAZORPAY_KEY_ID", ""))
    RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET", "")
    RAZORPAY_BASE_URL: str = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1")

    # Weather / Navigation
    OPENWEATHER_API_KEY: str = os.getenv("OPENWEATHER_API_KEY", "")
    GOOGLE_MAPS_API_KEY: str = os.getenv("GOOGLE_MAPS_API_KEY", os.getenv("NEXT_PUBLIC_GOOGLE_MAPS_API_KEY", ""))

    # WhatsApp Business API
    WHATSAPP_API_VERSION: str = os.getenv("WHATSAPP_API_VERSION", "v18.0")
    WHATSAPP_ACCESS_TOKEN: str = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
    WHATSAPP_PHONE_NUMBER_ID: str = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    WHATSAPP_VERIFY_TOKEN: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
    WHATSAPP_APP_SECRET: str = os.getenv("WHATSAPP_APP_SECRET", "")

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def redis_url(self) -> str:
        """Get Redis connection URL"""
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def use_openai_classifier(self) -> bool:
        return self.INTENT_CLASSIFIER == "openai" and bool(self.OPENAI_API_KEY)


# ============================================
# Provider Readiness
# ============================================

@dataclass
class ProviderReadiness:
    """Which capability providers are usable, checked once at agent construction"""
    ready: Dict[str, bool] = field(default_factory=dict)
    issues: Dict[str, ProviderNotConfigured] = field(default_factory=dict)

    def is_ready(self, provider: str) -> bool:
        return self.ready.get(provider, False)

    def issue_for(self, provider: str) -> Optional[ProviderNotConfigured]:
        return self.issues.get(provider)

    def to_dict(self) -> Dict[str, str]:
        return {
            name: "ready" if ok else self.issues[name].reason
            for name, ok in self.ready.items()
        }


# Credentials each remote provider needs. The booking and weather providers
# have local fallbacks, so they are always ready.
_REQUIRED_CREDENTIALS = {
    "payment": ("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET"),
    "navigation": ("GOOGLE_MAPS_API_KEY",),
    "messaging": ("WHATSAPP_ACCESS_TOKEN", "WHATSAPP_PHONE_NUMBER_ID"),
}


def check_provider_readiness(config: Optional[Settings] = None) -> ProviderReadiness:
    """
    Check provider credentials once.

    Args:
        config: Settings to check (defaults to the global instance)

    Returns:
        ProviderReadiness with a ProviderNotConfigured issue per missing provider
    """
    config = config or settings
    readiness = ProviderReadiness(ready={"booking": True, "weather": True})

    for provider, keys in _REQUIRED_CREDENTIALS.items():
        missing = [key for key in keys if not getattr(config, key, "")]
        readiness.ready[provider] = not missing
        if missing:
            readiness.issues[provider] = ProviderNotConfigured(provider, missing)

    return readiness


# Global settings instance
settings = Settings()
