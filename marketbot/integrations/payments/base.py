"""
Base interface for payment providers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class PaymentLink:
    """Hosted checkout created at the provider."""

    link: str
    trans_id: str


class PaymentProvider(ABC):
    """Abstract base class for payment providers."""

    @abstractmethod
    async def create_checkout_payment(
        self,
        amount: float,
        reference: str,
        user_id: str | None = None,
        message: str | None = None,
    ) -> PaymentLink:
        """
        Create a hosted payment page.

        Args:
            amount: Amount in the provider currency (whole units)
            reference: Our reference, echoed back by the webhook
            user_id: Payer id in our system
            message: Description shown to the payer

        Returns:
            PaymentLink with URL and provider transaction id
        """
        pass

    @abstractmethod
    async def direct_pay(
        self,
        amount: float,
        phone: str,
        reference: str,
        name: str | None = None,
        email: str | None = None,
        message: str | None = None,
    ) -> str:
        """Push a mobile money request to the payer's phone, returns transaction id."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        pass
