from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional, List

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"

    # Database
    DATABASE_URL: Optional[str] = None

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_TIMEOUT_SECONDS: float = 10.0
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Checkout redirects land here with ?success=true / ?canceled=true
    PUBLIC_BASE_URL: Optional[str] = None

    # Plan catalog override: JSON list of {priceId, name, messageLimit}
    PLAN_CATALOG_JSON: Optional[str] = None

    # Default tier for customers with no purchase yet
    FREE_TIER_AUTOPROVISION: bool = True
    FREE_PLAN_NAME: str = "free"
    FREE_MESSAGE_LIMIT: int = 10

    CORS_ALLOW_ORIGINS: str = "*"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]


settings = Settings()
