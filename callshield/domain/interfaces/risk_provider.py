"""
Risk Provider Interface
Abstract base class for third-party spam/scam lookup services
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional


class ProviderError(Exception):
    """A provider failed to answer; its result is excluded from the round"""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class ProviderTimeoutError(ProviderError):
    """A provider did not answer within its timeout"""
    pass


class ProviderResponseError(ProviderError):
    """A provider answered with a payload missing required keys"""
    pass


class RiskProvider(ABC):
    """Abstract base class for risk providers"""

    @abstractmethod
    async def check_spam_number(
        self,
        phone_number: str,
        options: Optional[Dict[str, Any]] = None
    ) -> Mapping[str, Any]:
        """
        Look up a normalized phone number.

        Args:
            phone_number: Normalized number (E.164-like)
            options: Provider-specific request options

        Returns:
            Mapping with required keys ``risk_level``, ``confidence`` and
            ``action``; optional ``category``, ``auto_reject``, ``score``.
        """
        pass

    async def cleanup(self) -> None:
        """Release resources"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name"""
        pass

    def get_provider_info(self) -> Dict[str, Any]:
        """Descriptive info for the providers endpoint"""
        return {"name": self.name}
