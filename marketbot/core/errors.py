"""
Exception types raised by integrations and caught at component seams.
"""


class MarketbotError(Exception):
    """Base class for marketplace bot errors."""


class AIExtractionError(MarketbotError):
    """The LLM extractor failed, timed out or returned unusable output."""


class PaymentProviderError(MarketbotError):
    """The payment provider rejected a request or was unreachable."""


class StoreError(MarketbotError):
    """The marketplace store failed to read or write."""
