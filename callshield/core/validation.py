"""
Provider Validation Module
Validates risk provider and aggregator configuration on startup
"""
import logging
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass

from callshield.domain.models.assessment import AggregationStrategy

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""
    provider: str
    setting: str
    is_valid: bool
    message: str


class ProviderValidator:
    """
    Validates risk provider configuration at startup.

    Problems with enabled providers are errors; problems with disabled
    providers are warnings (errors in strict mode).
    """

    KNOWN_TYPES = ("demo", "http")

    def __init__(self, strict: bool = False):
        """
        Initialize validator.

        Args:
            strict: If True, treat warnings as errors
        """
        self.strict = strict
        self.results: List[ValidationResult] = []

    def validate_all(
        self,
        aggregator_config: Dict[str, Any],
        provider_entries: List[Dict[str, Any]]
    ) -> Tuple[bool, List[ValidationResult]]:
        """
        Validate the aggregator section and every provider entry.

        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []

        strategy = aggregator_config.get("strategy", AggregationStrategy.HIGHEST_RISK.value)
        valid_strategies = [s.value for s in AggregationStrategy]
        if strategy in valid_strategies:
            self._add_success("aggregator", "strategy", f"Strategy {strategy}")
        else:
            self._add_error("aggregator", "strategy",
                f"Unknown strategy {strategy!r} (expected one of {', '.join(valid_strategies)})")

        for key in ("default_timeout_ms", "overall_timeout_ms"):
            value = aggregator_config.get(key)
            if value is not None and not self._is_positive(value):
                self._add_error("aggregator", key, f"{key} must be a positive number")

        names = set()
        for entry in provider_entries:
            self._validate_entry(entry, names)

        if not any(e.get("enabled", True) for e in provider_entries):
            self._add_warning("aggregator", "providers",
                "No risk providers enabled (every remote check will allow by default)")

        errors = [r for r in self.results if not r.is_valid]
        return len(errors) == 0, self.results

    def _validate_entry(self, entry: Dict[str, Any], names: set) -> None:
        name = entry.get("name")
        if not name:
            self._add_error("providers", "name", "Provider entry without a name")
            return
        if name in names:
            self._add_error(name, "name", f"Duplicate provider name {name}")
        names.add(name)

        enabled = bool(entry.get("enabled", True))
        report = self._add_error if enabled else self._add_warning

        provider_type = entry.get("type", "demo")
        if provider_type not in self.KNOWN_TYPES:
            report(name, "type", f"Unknown provider type {provider_type!r}")
            return

        timeout = entry.get("timeout_ms")
        if timeout is not None and not self._is_positive(timeout):
            report(name, "timeout_ms", "timeout_ms must be a positive number")

        weight = entry.get("weight", 1.0)
        if not isinstance(weight, (int, float)) or weight < 0:
            report(name, "weight", "weight must be a non-negative number")

        if provider_type == "http":
            url = entry.get("url") or ""
            if not str(url).startswith(("http://", "https://")):
                report(name, "url", f"HTTP provider requires an http(s) url, got {url!r}")
                return

        self._add_success(name, "config", f"{provider_type} provider configured"
                          + ("" if enabled else " (disabled)"))

    @staticmethod
    def _is_positive(value: Any) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0

    def _add_success(self, provider: str, setting: str, message: str):
        """Add successful validation result."""
        self.results.append(ValidationResult(
            provider=provider,
            setting=setting,
            is_valid=True,
            message=message
        ))

    def _add_error(self, provider: str, setting: str, message: str):
        """Add error validation result."""
        self.results.append(ValidationResult(
            provider=provider,
            setting=setting,
            is_valid=False,
            message=message
        ))

    def _add_warning(self, provider: str, setting: str, message: str):
        """Add warning validation result."""
        self.results.append(ValidationResult(
            provider=provider,
            setting=setting,
            is_valid=not self.strict,  # Warnings become errors in strict mode
            message=f"WARNING: {message}"
        ))

    def log_results(self):
        """Log all validation results."""
        errors = [r for r in self.results if not r.is_valid]
        warnings = [r for r in self.results if r.is_valid and "WARNING" in r.message]
        successes = [r for r in self.results if r.is_valid and "WARNING" not in r.message]

        if successes:
            logger.info("Risk provider configuration validated:")
            for r in successes:
                logger.info(f"  ✓ [{r.provider}] {r.message}")

        for r in warnings:
            logger.warning(f"  ⚠ [{r.provider}] {r.message}")

        if errors:
            logger.error("Risk provider configuration errors:")
            for r in errors:
                logger.error(f"  ✗ [{r.provider}] {r.message}")

    def get_error_summary(self) -> Optional[str]:
        """Get summary of errors for exception message."""
        errors = [r for r in self.results if not r.is_valid]
        if not errors:
            return None

        lines = ["Risk provider configuration errors:"]
        for r in errors:
            lines.append(f"  - {r.provider}.{r.setting}: {r.message}")
        return "\n".join(lines)


def validate_providers_on_startup(
    aggregator_config: Dict[str, Any],
    provider_entries: List[Dict[str, Any]],
    strict: bool = False
) -> None:
    """
    Validate aggregator and provider configuration at startup.

    Called from the FastAPI lifespan.

    Args:
        aggregator_config: The ``aggregator`` config section
        provider_entries: The ``providers.risk`` list
        strict: If True, fail on warnings too

    Raises:
        RuntimeError: If the configuration is invalid
    """
    validator = ProviderValidator(strict=strict)
    all_valid, _ = validator.validate_all(aggregator_config, provider_entries)
    validator.log_results()

    if not all_valid:
        raise RuntimeError(validator.get_error_summary())

    logger.info("All risk provider configurations validated successfully")
