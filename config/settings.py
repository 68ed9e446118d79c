"""
Configuration settings for the application
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Plan types sold through Stripe Checkout
PLAN_MONTHLY = "monthly"
PLAN_YEARLY = "yearly"
PLAN_TYPES = (PLAN_MONTHLY, PLAN_YEARLY)

ENV_PROD = "prod"
ENV_DEV = "dev"


class ConfigurationError(Exception):
    """Raised when a required billing credential is not configured."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Deployment environment selects which Stripe credential of each pair is preferred
    environment: Optional[str] = Field(default=None, alias="ENVIRONMENT")

    # Stripe billing configuration (prod / test pairs)
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    test_stripe_secret_key: Optional[str] = Field(default=None, alias="TEST_STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    test_stripe_webhook_secret: Optional[str] = Field(default=None, alias="TEST_STRIPE_WEBHOOK_SECRET")
    stripe_price_id_monthly: Optional[str] = Field(default=None, alias="STRIPE_PRICE_ID_MONTHLY")
    test_stripe_price_id_monthly: Optional[str] = Field(default=None, alias="TEST_STRIPE_PRICE_ID_MONTHLY")
    stripe_price_id_yearly: Optional[str] = Field(default=None, alias="STRIPE_PRICE_ID_YEARLY")
    test_stripe_price_id_yearly: Optional[str] = Field(default=None, alias="TEST_STRIPE_PRICE_ID_YEARLY")

    # Checkout redirect targets (app base URLs)
    success_url: Optional[str] = Field(default=None, alias="SUCCESS_URL")
    test_success_url: Optional[str] = Field(default=None, alias="TEST_SUCCESS_URL")
    cancel_url: Optional[str] = Field(default=None, alias="CANCEL_URL")
    test_cancel_url: Optional[str] = Field(default=None, alias="TEST_CANCEL_URL")

    # Core authentication and security
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./sql_app.db", alias="DATABASE_URL")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    render_external_url: Optional[str] = Field(default=None, alias="RENDER_EXTERNAL_URL")
    render_service_name: Optional[str] = Field(default=None, alias="RENDER_SERVICE_NAME")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore",
    }


def normalize_environment(value: Optional[str]) -> str:
    """Map the ENVIRONMENT flag to "prod" or "dev" (defaults to prod)."""
    env = (value or "").lower().strip()
    if env in ("dev", "development"):
        return ENV_DEV
    return ENV_PROD


def _pick(environment: str, prod_value: Optional[str], test_value: Optional[str]) -> Optional[str]:
    """
    Pick the credential for the active environment, falling back to the other one.

    Blank values count as unset. Returns None when neither is configured.
    """
    preferred, fallback = (test_value, prod_value) if environment == ENV_DEV else (prod_value, test_value)
    for value in (preferred, fallback):
        if value and value.strip():
            return value.strip()
    return None


@dataclass(frozen=True)
class BillingConfig:
    """Billing credentials resolved for a single deployment environment."""

    environment: str
    billing_api_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    price_ids: Dict[str, Optional[str]] = field(default_factory=dict)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None

    def require(self, name: str) -> str:
        value = getattr(self, name, None)
        if not value:
            raise ConfigurationError(f"{name} is not configured for environment '{self.environment}'")
        return value

    def price_id_for(self, plan_type: str) -> str:
        price_id = self.price_ids.get(plan_type)
        if not price_id:
            raise ConfigurationError(f"Price ID is not configured for {plan_type} plan")
        return price_id

    def missing(self) -> list:
        """Names of credentials that resolved to nothing."""
        names = [
            name
            for name in ("billing_api_key", "webhook_secret", "success_url", "cancel_url")
            if not getattr(self, name)
        ]
        names.extend(f"price_ids.{plan}" for plan in PLAN_TYPES if not self.price_ids.get(plan))
        return names


def resolve_billing_config(source: Settings) -> BillingConfig:
    """Resolve every billing credential once for the configured environment."""
    environment = normalize_environment(source.environment)
    return BillingConfig(
        environment=environment,
        billing_api_key=_pick(environment, source.stripe_secret_key, source.test_stripe_secret_key),
        webhook_secret=_pick(environment, source.stripe_webhook_secret, source.test_stripe_webhook_secret),
        price_ids={
            PLAN_MONTHLY: _pick(environment, source.stripe_price_id_monthly, source.test_stripe_price_id_monthly),
            PLAN_YEARLY: _pick(environment, source.stripe_price_id_yearly, source.test_stripe_price_id_yearly),
        },
        success_url=_pick(environment, source.success_url, source.test_success_url),
        cancel_url=_pick(environment, source.cancel_url, source.test_cancel_url),
    )


# Instantiate settings object
settings = Settings()

# Resolved once at process start and injected into billing operations
billing_config = resolve_billing_config(settings)


def get_billing_config() -> BillingConfig:
    """FastAPI dependency returning the process-wide billing configuration."""
    return billing_config


# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render or settings.render_external_url)
