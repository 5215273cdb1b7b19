"""
Fapshi payment provider implementation.
Mobile money payments (MTN / Orange) for Cameroon, amounts in FCFA.
"""

import logging
from typing import Any

import httpx

from marketbot.config import settings
from marketbot.core.errors import PaymentProviderError
from marketbot.integrations.payments.base import PaymentLink, PaymentProvider

logger = logging.getLogger(__name__)

# Fapshi rejects amounts below this
MIN_AMOUNT = 100


class FapshiClient(PaymentProvider):
    """Fapshi REST API client."""

    def __init__(
        self,
        api_user: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_user = api_user or settings.fapshi_api_user
        self.api_key = api_key or settings.fapshi_api_key
        self.base_url = (base_url or settings.fapshi_base_url).rstrip("/")
        self.timeout = timeout or settings.fapshi_timeout_seconds
        self._transport = transport

        if not self.api_user or not self.api_key:
            raise ValueError(
                "Fapshi credentials not provided. "
                "Set FAPSHI_API_USER and FAPSHI_API_KEY in .env file."
            )

    def _get_client(self) -> httpx.AsyncClient:
        """Create HTTP client with auth headers."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"apiuser": self.api_user, "apikey": self.api_key},
            transport=self._transport,
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> dict:
        try:
            async with self._get_client() as client:
                resp = await client.post(path, json=payload)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Fapshi {path} HTTP {e.response.status_code}: {e.response.text[:500]}"
            )
            raise PaymentProviderError(f"Fapshi {path} returned {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            logger.error(f"Fapshi {path} request failed: {e}")
            raise PaymentProviderError(f"Fapshi {path} unreachable") from e

    @staticmethod
    def _check_amount(amount: float) -> int:
        value = int(round(amount))
        if value < MIN_AMOUNT:
            raise PaymentProviderError(f"Amount {value} is below the Fapshi minimum of {MIN_AMOUNT}")
        return value

    async def create_checkout_payment(
        self,
        amount: float,
        reference: str,
        user_id: str | None = None,
        message: str | None = None,
    ) -> PaymentLink:
        """Create a hosted payment page (POST /initiate-pay)."""
        payload: dict[str, Any] = {
            "amount": self._check_amount(amount),
            "externalId": reference,
            "message": message or f"Marketplace payment {reference}",
        }
        if user_id:
            payload["userId"] = str(user_id)
        if settings.website_url:
            payload["redirectUrl"] = f"{settings.website_url.rstrip('/')}/payment/callback"

        data = await self._post("/initiate-pay", payload)
        if not data.get("link") or not data.get("transId"):
            raise PaymentProviderError(f"Fapshi initiate-pay returned no link for {reference}")

        logger.info(f"Fapshi payment link created for {reference}: {data['transId']}")
        return PaymentLink(link=data["link"], trans_id=data["transId"])

    async def direct_pay(
        self,
        amount: float,
        phone: str,
        reference: str,
        name: str | None = None,
        email: str | None = None,
        message: str | None = None,
    ) -> str:
        """Push a payment request to the payer's phone (POST /direct-pay)."""
        payload: dict[str, Any] = {
            "amount": self._check_amount(amount),
            "phone": phone,
            "externalId": reference,
            "message": message or f"Marketplace payment {reference}",
        }
        if name:
            payload["name"] = name
        if email:
            payload["email"] = email

        data = await self._post("/direct-pay", payload)
        if not data.get("transId"):
            raise PaymentProviderError(f"Fapshi direct-pay returned no transaction for {reference}")

        logger.info(f"Fapshi direct payment requested for {reference}: {data['transId']}")
        return data["transId"]

    @property
    def name(self) -> str:
        return "fapshi"
