"""
Risk Aggregator
Fans a number out to every enabled risk provider and combines the answers
"""
import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from callshield.domain.interfaces.risk_provider import (
    RiskProvider,
    ProviderError,
    ProviderTimeoutError,
    ProviderResponseError,
)
from callshield.domain.models.assessment import (
    AggregatedAssessment,
    AggregationStrategy,
    ProviderAction,
    ProviderResult,
    ProviderVerdict,
)
from callshield.domain.models.risk import ConfidenceLevel, RiskCategory, RiskLevel
from callshield.domain.services.phone_normalizer import PhoneNormalizer

logger = logging.getLogger(__name__)


@dataclass
class ProviderConfig:
    """Per-provider binding settings"""
    weight: float = 1.0
    priority: int = 1          # 1 = highest
    timeout_ms: int = 5000
    enabled: bool = True


@dataclass
class ProviderStats:
    """Counters updated after every provider call"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    timeouts: int = 0
    total_response_time_ms: float = 0.0
    last_used: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    @property
    def average_response_time_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_response_time_ms / self.successful_requests


@dataclass
class ProviderBinding:
    name: str
    provider: RiskProvider
    config: ProviderConfig
    stats: ProviderStats = field(default_factory=ProviderStats)


@dataclass
class InFlightCheck:
    """A shared assessment round and the number of callers awaiting it"""
    task: asyncio.Task
    waiters: int = 0


class RiskAggregator:
    """
    Provider registry plus concurrent remote assessment.

    Each enabled provider runs in its own task bounded by its timeout; an
    overall deadline cancels whatever is still outstanding. Failed providers
    are excluded from the round; with no usable answer the result is the
    fail-open safe default (LOW / allow). Concurrent checks of the same
    number share one in-flight round when ``coalesce_requests`` is set.
    """

    def __init__(
        self,
        strategy: Union[AggregationStrategy, str] = AggregationStrategy.HIGHEST_RISK,
        default_timeout_ms: int = 5000,
        overall_timeout_ms: int = 15000,
        coalesce_requests: bool = True,
        normalizer: Optional[PhoneNormalizer] = None
    ):
        self.strategy = AggregationStrategy(strategy)
        self.default_timeout_ms = default_timeout_ms
        self.overall_timeout_ms = overall_timeout_ms
        self.coalesce_requests = coalesce_requests
        self._normalizer = normalizer or PhoneNormalizer()

        self._bindings: Dict[str, ProviderBinding] = {}
        self._in_flight: Dict[str, InFlightCheck] = {}

    # ========== Registry ==========

    def register(
        self,
        name: str,
        provider: RiskProvider,
        weight: float = 1.0,
        priority: int = 1,
        timeout_ms: Optional[int] = None,
        enabled: bool = True
    ) -> None:
        """Register (or replace) a provider under ``name``"""
        if weight < 0:
            raise ValueError(f"Provider weight must be >= 0: {weight}")
        config = ProviderConfig(
            weight=weight,
            priority=priority,
            timeout_ms=timeout_ms or self.default_timeout_ms,
            enabled=enabled,
        )
        if name in self._bindings:
            logger.warning(f"Replacing registered provider: {name}")
        self._bindings[name] = ProviderBinding(name=name, provider=provider, config=config)
        logger.info(
            f"Registered {name} provider (priority={priority}, weight={weight}, "
            f"timeout={config.timeout_ms}ms, enabled={enabled})"
        )

    def unregister(self, name: str) -> Optional[RiskProvider]:
        binding = self._bindings.pop(name, None)
        if binding:
            logger.info(f"Unregistered {name} provider")
            return binding.provider
        return None

    def set_provider_enabled(self, name: str, enabled: bool) -> bool:
        binding = self._bindings.get(name)
        if binding is None:
            return False
        binding.config.enabled = enabled
        logger.info(f"{'Enabled' if enabled else 'Disabled'} {name} provider")
        return True

    def update_provider_config(self, name: str, **changes: Any) -> bool:
        """
        Update weight / priority / timeout_ms / enabled for one provider.

        Raises:
            ValueError: On an unknown setting or a negative weight
        """
        binding = self._bindings.get(name)
        if binding is None:
            return False

        for key, value in changes.items():
            if value is None:
                continue
            if not hasattr(binding.config, key):
                raise ValueError(f"Unknown provider setting: {key}")
            if key == "weight" and value < 0:
                raise ValueError(f"Provider weight must be >= 0: {value}")
            setattr(binding.config, key, value)

        logger.info(f"Updated {name} provider configuration: {asdict(binding.config)}")
        return True

    def set_strategy(self, strategy: Union[AggregationStrategy, str]) -> None:
        self.strategy = AggregationStrategy(strategy)
        logger.info(f"Aggregation strategy set to {self.strategy.value}")

    def has_provider(self, name: str) -> bool:
        return name in self._bindings

    def list_providers(self) -> List[str]:
        return list(self._bindings.keys())

    def enabled_providers(self) -> List[str]:
        """Enabled provider names, in priority order"""
        bindings = sorted(self._bindings.values(), key=lambda b: b.config.priority)
        return [b.name for b in bindings if b.config.enabled]

    # ========== Assessment ==========

    async def check_number(
        self,
        number: str,
        options: Optional[Dict[str, Any]] = None
    ) -> AggregatedAssessment:
        """
        Assess a number across all enabled providers.

        Never raises for provider failures. A shared round survives the
        cancellation of any one caller; cancelling the last caller still
        waiting on it cancels every outstanding provider call.
        """
        normalized = self._normalizer.normalize(number)

        if not self.coalesce_requests or options:
            return await self._run_check(normalized, options)

        shared = self._in_flight.get(normalized)
        if shared is None or shared.task.done():
            task = asyncio.create_task(self._run_check(normalized, options))
            shared = InFlightCheck(task=task)
            self._in_flight[normalized] = shared
            task.add_done_callback(lambda t, key=normalized: self._forget_in_flight(key, t))
        else:
            logger.debug(f"Joining in-flight assessment for {normalized}")

        # Every caller awaits through a shield; the round is cancelled only
        # once its last caller has left
        shared.waiters += 1
        try:
            return await asyncio.shield(shared.task)
        finally:
            shared.waiters -= 1
            if shared.waiters == 0 and not shared.task.done():
                logger.debug(f"Last caller left, cancelling assessment for {normalized}")
                shared.task.cancel()
                await asyncio.gather(shared.task, return_exceptions=True)

    def _forget_in_flight(self, key: str, task: asyncio.Task) -> None:
        shared = self._in_flight.get(key)
        if shared is not None and shared.task is task:
            del self._in_flight[key]

    async def _run_check(
        self,
        number: str,
        options: Optional[Dict[str, Any]]
    ) -> AggregatedAssessment:
        start_time = time.perf_counter()
        bindings = [b for b in self._bindings.values() if b.config.enabled]

        if not bindings:
            logger.warning(f"No enabled risk providers, allowing {number} by default")
            return AggregatedAssessment.safe_default(
                number,
                error="No providers available",
                strategy=self.strategy.value,
            )

        logger.info(f"Checking {number} with {len(bindings)} providers")

        tasks = {
            asyncio.create_task(self._call_provider(binding, number, options)): binding
            for binding in bindings
        }

        try:
            done, pending = await asyncio.wait(
                tasks.keys(),
                timeout=self.overall_timeout_ms / 1000
            )
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks.keys(), return_exceptions=True)
            raise

        for task in pending:
            task.cancel()
            binding = tasks[task]
            self._record_failure(binding, "overall deadline exceeded", timed_out=True)
            logger.warning(f"{binding.name} cancelled at overall deadline for {number}")
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: List[ProviderResult] = []
        for task in done:
            error = task.exception()
            if error is None:
                results.append(task.result())
            else:
                logger.warning(f"Provider excluded for {number}: {error}")

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        assessment = self.aggregate(number, results, total_providers=len(bindings))
        assessment.response_time_ms = round(elapsed_ms, 2)

        logger.info(
            f"Assessment for {number}: {assessment.risk_level.value} / {assessment.action.value} "
            f"({assessment.successful_providers}/{len(bindings)} providers, {elapsed_ms:.0f}ms)",
            extra={"number": number, "strategy": assessment.strategy}
        )
        return assessment

    async def _call_provider(
        self,
        binding: ProviderBinding,
        number: str,
        options: Optional[Dict[str, Any]]
    ) -> ProviderResult:
        """
        Call one provider under its timeout and validate the payload.

        Raises:
            ProviderTimeoutError: No answer within timeout_ms
            ProviderResponseError: Payload missing or malformed required keys
            ProviderError: Any other provider failure
        """
        timeout_ms = binding.config.timeout_ms
        start_time = time.perf_counter()

        try:
            payload = await asyncio.wait_for(
                binding.provider.check_spam_number(number, options),
                timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            self._record_failure(binding, "timeout", timed_out=True)
            raise ProviderTimeoutError(binding.name, f"no answer within {timeout_ms}ms")
        except ProviderError as e:
            self._record_failure(binding, str(e))
            raise
        except Exception as e:
            self._record_failure(binding, str(e))
            raise ProviderError(binding.name, str(e)) from e

        elapsed_ms = (time.perf_counter() - start_time) * 1000

        try:
            verdict = ProviderVerdict.model_validate(dict(payload))
        except (ValidationError, TypeError, ValueError) as e:
            self._record_failure(binding, "invalid response")
            raise ProviderResponseError(binding.name, f"invalid response: {e}") from e

        stats = binding.stats
        stats.total_requests += 1
        stats.successful_requests += 1
        stats.total_response_time_ms += elapsed_ms
        stats.last_used = datetime.utcnow()

        logger.debug(f"{binding.name} answered {verdict.risk_level.value} in {elapsed_ms:.0f}ms")
        return ProviderResult.from_verdict(
            provider=binding.name,
            verdict=verdict,
            response_time_ms=round(elapsed_ms, 2),
            weight=binding.config.weight,
            priority=binding.config.priority,
        )

    @staticmethod
    def _record_failure(binding: ProviderBinding, error: str, timed_out: bool = False) -> None:
        stats = binding.stats
        stats.total_requests += 1
        stats.failed_requests += 1
        if timed_out:
            stats.timeouts += 1
        stats.last_used = datetime.utcnow()
        stats.last_error = error

    # ========== Strategies ==========

    def aggregate(
        self,
        number: str,
        results: List[ProviderResult],
        total_providers: Optional[int] = None
    ) -> AggregatedAssessment:
        """Combine successful provider results with the current strategy"""
        total = total_providers if total_providers is not None else len(results)
        round_info = {
            "strategy": self.strategy.value,
            "total_providers": total,
            "successful_providers": len(results),
            "failed_providers": max(0, total - len(results)),
        }

        if not results:
            return AggregatedAssessment.safe_default(
                number, error="All providers failed", **round_info
            )

        if len(results) == 1:
            only = results[0]
            return AggregatedAssessment(
                number=number,
                risk_level=only.risk_level,
                confidence=only.confidence,
                action=only.action,
                auto_reject=only.auto_reject,
                category=only.category,
                sources=[only.provider],
                primary_source=only.provider,
                **round_info
            )

        if self.strategy == AggregationStrategy.MAJORITY_VOTE:
            combined = self._aggregate_by_majority_vote(results)
        elif self.strategy == AggregationStrategy.WEIGHTED_AVERAGE:
            combined = self._aggregate_by_weighted_average(results)
        else:
            combined = self._aggregate_by_highest_risk(results)

        return AggregatedAssessment(
            number=number,
            sources=[r.provider for r in results],
            **combined,
            **round_info
        )

    @staticmethod
    def _aggregate_by_highest_risk(results: List[ProviderResult]) -> Dict[str, Any]:
        """Greatest risk wins; ties go to the lowest priority value"""
        winner = min(results, key=lambda r: (-r.risk_level.ordinal, r.priority))
        return {
            "risk_level": winner.risk_level,
            "confidence": winner.confidence,
            "action": winner.action,
            "auto_reject": winner.auto_reject,
            "category": winner.category,
            "primary_source": winner.provider,
        }

    @staticmethod
    def _aggregate_by_majority_vote(results: List[ProviderResult]) -> Dict[str, Any]:
        """
        Plurality risk level and plurality action, voted independently.
        Ties go to the lower risk level and to allow.
        """
        risk_counts = Counter(r.risk_level for r in results)
        action_counts = Counter(r.action for r in results)

        risk_level = max(risk_counts, key=lambda level: (risk_counts[level], -level.ordinal))
        action = max(
            action_counts,
            key=lambda a: (action_counts[a], a == ProviderAction.ALLOW)
        )

        voters = sorted(
            (r for r in results if r.risk_level == risk_level),
            key=lambda r: r.priority
        )
        blocked = action == ProviderAction.BLOCK

        return {
            "risk_level": risk_level,
            "confidence": ConfidenceLevel.MEDIUM.score,
            "action": action,
            "auto_reject": blocked,
            "category": RiskCategory.SUSPICIOUS if blocked else RiskCategory.UNKNOWN,
            "primary_source": voters[0].provider,
            "vote_counts": {
                "risk_level": {level.value: count for level, count in risk_counts.items()},
                "action": {a.value: count for a, count in action_counts.items()},
            },
        }

    @staticmethod
    def _aggregate_by_weighted_average(results: List[ProviderResult]) -> Dict[str, Any]:
        """Weighted mean of risk ordinals mapped back onto a level"""
        total_weight = sum(r.weight for r in results)
        weighted_score = sum(r.risk_level.ordinal * r.weight for r in results)
        average = weighted_score / total_weight if total_weight > 0 else 0.0

        if average >= 2.5:
            risk_level, action = RiskLevel.HIGH, ProviderAction.BLOCK
        elif average >= 1.5:
            risk_level, action = RiskLevel.MEDIUM, ProviderAction.ALLOW
        else:
            risk_level, action = RiskLevel.LOW, ProviderAction.ALLOW

        blocked = action == ProviderAction.BLOCK
        heaviest = max(results, key=lambda r: (r.weight, -r.priority))

        return {
            "risk_level": risk_level,
            "confidence": ConfidenceLevel.MEDIUM.score,
            "action": action,
            "auto_reject": blocked,
            "category": RiskCategory.SUSPICIOUS if blocked else RiskCategory.UNKNOWN,
            "primary_source": heaviest.provider,
            "average_score": round(average, 2),
        }

    # ========== Stats / lifecycle ==========

    def get_provider_stats(self) -> Dict[str, Dict[str, Any]]:
        """Counters, success rate, average response time and config per provider"""
        stats = {}
        for name, binding in self._bindings.items():
            s = binding.stats
            stats[name] = {
                "total_requests": s.total_requests,
                "successful_requests": s.successful_requests,
                "failed_requests": s.failed_requests,
                "timeouts": s.timeouts,
                "success_rate": round(s.success_rate, 4),
                "average_response_time_ms": round(s.average_response_time_ms, 2),
                "last_used": s.last_used.isoformat() if s.last_used else None,
                "last_error": s.last_error,
                "config": asdict(binding.config),
                "info": binding.provider.get_provider_info(),
            }
        return stats

    async def shutdown(self):
        """Cancel in-flight rounds and release provider resources"""
        tasks = [shared.task for shared in self._in_flight.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()

        for binding in self._bindings.values():
            try:
                await binding.provider.cleanup()
            except Exception as e:
                logger.error(f"Error cleaning up {binding.name} provider: {e}")
        logger.info("RiskAggregator shutdown complete")
