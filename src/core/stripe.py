"""Stripe SDK configuration."""

import logging
from typing import Any

import stripe

from src.core.config import get_settings

logger = logging.getLogger(__name__)

# Stripe retries with idempotency keys, so retried session creation never
# opens two sessions for one request.
STRIPE_NETWORK_RETRIES = 2


def configure_stripe() -> None:
    """Set the API key and retry policy on the Stripe module.

    Called once from the application lifespan. Missing keys are logged, not
    raised: checkout then fails with a clear error and webhooks are rejected,
    while the rest of the API keeps working.
    """
    settings = get_settings()

    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
        stripe.max_network_retries = STRIPE_NETWORK_RETRIES
    else:
        logger.warning("STRIPE_SECRET_KEY not set; checkout sessions cannot be created")

    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not set; every webhook will be rejected")


def stripe_configuration_status() -> dict[str, Any]:
    """Report whether payments can be taken and confirmed.

    Only inspects settings; makes no network call.

    Returns:
        dict: 'healthy' boolean and, when unhealthy, an 'error' naming the missing keys.
    """
    settings = get_settings()
    missing = [
        name
        for name, value in (
            ("STRIPE_SECRET_KEY", settings.stripe_secret_key),
            ("STRIPE_WEBHOOK_SECRET", settings.stripe_webhook_secret),
        )
        if not value
    ]
    if missing:
        return {"healthy": False, "error": f"missing {', '.join(missing)}"}
    return {"healthy": True}


def get_stripe() -> Any:
    """Return the configured Stripe module.

    The SDK keeps its configuration at module level; services take it from
    here so tests can substitute a mock.
    """
    return stripe
