"""
Tiered Risk Cache
Local whitelist / scam / spam tiers answering "what do we already know"
without a network call
"""
import asyncio
import logging
import math
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from callshield.domain.interfaces.risk_store import RiskStore
from callshield.domain.models.risk import (
    CacheLookup,
    CacheTier,
    LookupOutcome,
    RiskLevel,
    RiskRecord,
)
from callshield.domain.services.phone_normalizer import PhoneNormalizer

logger = logging.getLogger(__name__)


# Lookup precedence: whitelist always wins
TIER_ORDER = (
    (CacheTier.WHITELIST, LookupOutcome.SAFE),
    (CacheTier.SCAM, LookupOutcome.SCAM),
    (CacheTier.SPAM, LookupOutcome.SPAM),
)


class TieredRiskCache:
    """
    Three-tier verdict cache over a RiskStore.

    Failure semantics:
    - store read errors degrade to MISS
    - store write errors are logged and swallowed

    Reads take no lock; upserts (with eviction) serialize on a writer lock.
    Expiry is evaluated lazily at lookup; ``start_sweeper`` adds an optional
    periodic purge that is cancelled by ``shutdown``.
    """

    DEFAULT_MAX_SIZE = 10_000
    DEFAULT_SCAM_TTL = timedelta(days=30)
    DEFAULT_SPAM_TTL = timedelta(days=7)
    DEFAULT_EVICTION_FRACTION = 0.1

    def __init__(
        self,
        store: RiskStore,
        normalizer: Optional[PhoneNormalizer] = None,
        max_size: int = DEFAULT_MAX_SIZE,
        scam_ttl: Optional[timedelta] = DEFAULT_SCAM_TTL,
        spam_ttl: Optional[timedelta] = DEFAULT_SPAM_TTL,
        eviction_fraction: float = DEFAULT_EVICTION_FRACTION,
        clock: Optional[Callable[[], datetime]] = None
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if not 0 < eviction_fraction <= 1:
            raise ValueError("eviction_fraction must be in (0, 1]")

        self._store = store
        self._normalizer = normalizer or PhoneNormalizer()
        self.max_size = max_size
        self.scam_ttl = scam_ttl
        self.spam_ttl = spam_ttl
        self.eviction_fraction = eviction_fraction
        self._clock = clock or datetime.utcnow

        self._write_lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None
        self._last_sync_at: Optional[datetime] = None
        self._evicted_total = 0

    @property
    def normalizer(self) -> PhoneNormalizer:
        return self._normalizer

    # ========== Reads ==========

    def lookup(self, number: str) -> CacheLookup:
        """
        Look a number up across tiers: whitelist, scam, spam.

        Expired entries are skipped. Never raises.
        """
        normalized = self._normalizer.normalize(number)
        now = self._clock()

        for tier, outcome in TIER_ORDER:
            try:
                record = self._store.get(tier, normalized)
            except Exception as e:
                logger.warning(
                    f"Cache read failed for {normalized} ({tier.value}), treating as miss: {e}",
                    extra={"number": normalized, "tier": tier.value}
                )
                return CacheLookup(number=normalized, outcome=LookupOutcome.MISS, error=str(e))

            if record is None:
                continue
            if record.is_expired(now):
                logger.debug(f"Expired {tier.value} entry ignored for {normalized}")
                continue

            return CacheLookup(number=normalized, outcome=outcome, record=record)

        return CacheLookup(number=normalized, outcome=LookupOutcome.MISS)

    def is_whitelisted(self, number: str) -> bool:
        return self.lookup(number).outcome == LookupOutcome.SAFE

    # ========== Writes ==========

    def put_scam(
        self,
        number: str,
        risk_level: RiskLevel,
        confidence: float,
        source: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[RiskRecord]:
        """Upsert a number into the scam tier (default 30 day expiry)"""
        return self._upsert(
            CacheTier.SCAM, number, risk_level, confidence, source, metadata, self.scam_ttl
        )

    def put_spam(
        self,
        number: str,
        risk_level: RiskLevel,
        confidence: float,
        source: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[RiskRecord]:
        """Upsert a number into the spam tier (default 7 day expiry)"""
        return self._upsert(
            CacheTier.SPAM, number, risk_level, confidence, source, metadata, self.spam_ttl
        )

    def add_to_whitelist(self, number: str, source: str) -> Optional[RiskRecord]:
        """Trust a number; whitelist entries never expire"""
        return self._upsert(
            CacheTier.WHITELIST, number, RiskLevel.SAFE, 1.0, source, None, None
        )

    def remove_from_whitelist(self, number: str) -> bool:
        return self.remove(CacheTier.WHITELIST, number)

    def remove(self, tier: CacheTier, number: str) -> bool:
        """Remove one entry; False if missing or the store failed"""
        normalized = self._normalizer.normalize(number)
        with self._write_lock:
            try:
                removed = self._store.delete(tier, normalized)
            except Exception as e:
                logger.error(f"Failed to remove {normalized} from {tier.value} tier: {e}")
                return False
        if removed:
            logger.info(f"Removed {normalized} from {tier.value} tier")
        return removed

    def _upsert(
        self,
        tier: CacheTier,
        number: str,
        risk_level: RiskLevel,
        confidence: float,
        source: str,
        metadata: Optional[Dict[str, Any]],
        ttl: Optional[timedelta]
    ) -> Optional[RiskRecord]:
        normalized = self._normalizer.normalize(number)
        if not normalized:
            logger.warning(f"Refusing to cache unusable number: {number!r}")
            return None

        now = self._clock()
        with self._write_lock:
            try:
                existing = self._store.get(tier, normalized)
                record = RiskRecord(
                    number=normalized,
                    tier=tier,
                    risk_level=RiskLevel.parse(risk_level),
                    confidence=min(1.0, max(0.0, float(confidence))),
                    source=source,
                    report_count=existing.report_count + 1 if existing else 1,
                    metadata={**(existing.metadata if existing else {}), **(metadata or {})},
                    created_at=existing.created_at if existing else now,
                    last_updated_at=now,
                    expires_at=now + ttl if ttl else None,
                )
                self._store.put(record)
            except Exception as e:
                logger.error(
                    f"Failed to write {normalized} to {tier.value} tier: {e}",
                    extra={"number": normalized, "tier": tier.value}
                )
                return None

            # The record is stored; a failed eviction only leaves the tier oversized
            try:
                self._evict_if_needed(tier, exclude=normalized)
            except Exception as e:
                logger.error(
                    f"Eviction failed for {tier.value} tier after writing {normalized}: {e}",
                    extra={"number": normalized, "tier": tier.value}
                )

        logger.info(
            f"Cached {normalized} in {tier.value} tier ({record.risk_level.value}, "
            f"confidence={record.confidence:.2f}, source={source})"
        )
        return record

    def _evict_if_needed(self, tier: CacheTier, exclude: str) -> int:
        """
        Oldest-report eviction: drop entries with the oldest last_updated_at
        until the tier is below max_size. Caller holds the write lock.
        """
        count = self._store.count(tier)
        if count <= self.max_size:
            return 0

        to_remove = max(
            math.ceil(count * self.eviction_fraction),
            count - self.max_size + 1
        )
        victims = self._store.oldest(tier, to_remove, exclude=exclude)
        for victim in victims:
            self._store.delete(tier, victim)

        self._evicted_total += len(victims)
        logger.info(f"Evicted {len(victims)} oldest entries from {tier.value} tier")
        return len(victims)

    # ========== Maintenance ==========

    def purge_expired(self) -> int:
        """Delete expired entries from every tier"""
        with self._write_lock:
            try:
                purged = self._store.purge_expired(self._clock())
            except Exception as e:
                logger.error(f"Expiry sweep failed: {e}")
                return 0
        if purged:
            logger.info(f"Purged {purged} expired cache entries")
        return purged

    def import_records(
        self,
        scam: Iterable[Dict[str, Any]] = (),
        spam: Iterable[Dict[str, Any]] = (),
        source: str = "backend_sync"
    ) -> Dict[str, int]:
        """
        Bulk-load verdicts from a backend feed.

        Each entry needs ``phone_number``; ``risk_level``, ``confidence``,
        ``source`` and ``metadata`` are optional.
        """
        imported = {"scam": 0, "spam": 0}

        for tier_name, entries, writer, default_risk, default_conf in (
            ("scam", scam, self.put_scam, RiskLevel.HIGH, 0.9),
            ("spam", spam, self.put_spam, RiskLevel.MEDIUM, 0.7),
        ):
            for entry in entries:
                number = entry.get("phone_number") or entry.get("number")
                if not number:
                    continue
                record = writer(
                    number,
                    RiskLevel.parse(entry.get("risk_level", default_risk)),
                    float(entry.get("confidence", default_conf)),
                    entry.get("source", source),
                    entry.get("metadata"),
                )
                if record is not None:
                    imported[tier_name] += 1

        self._last_sync_at = self._clock()
        logger.info(f"Imported {imported['scam']} scam and {imported['spam']} spam numbers")
        return imported

    def clear(self, tier: Optional[CacheTier] = None) -> None:
        with self._write_lock:
            try:
                self._store.clear(tier)
            except Exception as e:
                logger.error(f"Failed to clear cache: {e}")
                return
        logger.info(f"Cleared {'all tiers' if tier is None else tier.value + ' tier'}")

    def get_stats(self) -> Dict[str, Any]:
        """Per-tier counts and cache settings"""
        counts: Dict[str, Optional[int]] = {}
        for tier in CacheTier:
            try:
                counts[tier.value] = self._store.count(tier)
            except Exception as e:
                logger.warning(f"Could not count {tier.value} tier: {e}")
                counts[tier.value] = None

        return {
            "tiers": counts,
            "max_size": self.max_size,
            "evicted_total": self._evicted_total,
            "last_sync": self._last_sync_at.isoformat() if self._last_sync_at else None,
        }

    def start_sweeper(self, interval_seconds: float) -> None:
        """Start the periodic expiry sweep on the running loop"""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._periodic_sweep(interval_seconds))

    async def _periodic_sweep(self, interval_seconds: float):
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                self.purge_expired()
            except asyncio.CancelledError:
                logger.info("Cache sweep task cancelled")
                break
            except Exception as e:
                logger.error(f"Error in cache sweep: {e}")

    async def shutdown(self):
        """Cancel the sweep task and close the store"""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        self._store.close()
