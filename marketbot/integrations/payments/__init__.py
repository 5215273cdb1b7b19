"""
Payment provider factory.
"""

import logging
from functools import lru_cache

from marketbot.config import settings
from marketbot.integrations.payments.base import PaymentLink, PaymentProvider
from marketbot.integrations.payments.fapshi import FapshiClient

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_default_payments() -> PaymentProvider | None:
    """Get cached payment provider, None when credentials are not configured."""
    if not settings.fapshi_api_user or not settings.fapshi_api_key:
        logger.warning("Fapshi credentials missing, payments are disabled")
        return None
    return FapshiClient()


__all__ = [
    "FapshiClient",
    "PaymentLink",
    "PaymentProvider",
    "get_default_payments",
]
