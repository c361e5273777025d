"""
Risk Provider Factory
"""
import logging
from typing import Any, Dict, List, Type

from callshield.domain.interfaces.risk_provider import RiskProvider
from callshield.domain.services.risk_aggregator import RiskAggregator
from callshield.infrastructure.providers.demo import DemoRiskProvider
from callshield.infrastructure.providers.http import HttpRiskProvider

logger = logging.getLogger(__name__)

# Keys of a provider entry that belong to the aggregator binding
BINDING_KEYS = ("name", "type", "enabled", "weight", "priority", "timeout_ms")


class RiskProviderFactory:
    """Factory for creating risk provider instances from config entries"""

    _providers: Dict[str, Type[RiskProvider]] = {
        "demo": DemoRiskProvider,
        "http": HttpRiskProvider,
    }

    @classmethod
    def create(cls, provider_type: str, name: str, config: Dict[str, Any]) -> RiskProvider:
        """Create a provider; ``config`` holds the type-specific settings"""
        if provider_type not in cls._providers:
            available = ", ".join(cls._providers.keys()) if cls._providers else "None"
            raise ValueError(f"Unknown risk provider type: {provider_type}. Available: {available}")

        provider_class = cls._providers[provider_type]
        return provider_class(name=name, **config)

    @classmethod
    def register(cls, provider_type: str, provider_class: Type[RiskProvider]) -> None:
        """Register a provider type"""
        cls._providers[provider_type] = provider_class

    @classmethod
    def list_providers(cls) -> List[str]:
        """List available provider types"""
        return list(cls._providers.keys())


def register_providers_from_config(
    aggregator: RiskAggregator,
    entries: List[Dict[str, Any]]
) -> List[str]:
    """
    Build every configured provider and register it with the aggregator.

    Disabled entries are registered too (so they can be enabled at runtime)
    unless they fail to build, e.g. an HTTP provider with no url.

    Returns:
        Names of the registered providers
    """
    registered = []
    for entry in entries:
        name = entry["name"]
        enabled = bool(entry.get("enabled", True))
        settings = {k: v for k, v in entry.items() if k not in BINDING_KEYS}

        try:
            provider = RiskProviderFactory.create(entry.get("type", "demo"), name, settings)
        except (ValueError, TypeError) as e:
            if enabled:
                raise
            logger.warning(f"Skipping disabled provider {name}: {e}")
            continue

        aggregator.register(
            name,
            provider,
            weight=float(entry.get("weight", 1.0)),
            priority=int(entry.get("priority", 1)),
            timeout_ms=entry.get("timeout_ms"),
            enabled=enabled,
        )
        registered.append(name)

    return registered
