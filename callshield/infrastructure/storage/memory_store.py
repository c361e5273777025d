"""
In-Memory Risk Store
Process-local store for tests and memory-only deployments
"""
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from callshield.domain.interfaces.risk_store import RiskStore
from callshield.domain.models.risk import CacheTier, RiskRecord


class InMemoryRiskStore(RiskStore):
    """Dict-backed RiskStore; state is lost on restart"""

    def __init__(self):
        self._records: Dict[CacheTier, Dict[str, RiskRecord]] = {tier: {} for tier in CacheTier}
        self._counters: Dict[str, int] = {}
        self._counter_lock = threading.Lock()

    def get(self, tier: CacheTier, number: str) -> Optional[RiskRecord]:
        record = self._records[tier].get(number)
        return record.model_copy(deep=True) if record else None

    def put(self, record: RiskRecord) -> None:
        self._records[record.tier][record.number] = record.model_copy(deep=True)

    def delete(self, tier: CacheTier, number: str) -> bool:
        return self._records[tier].pop(number, None) is not None

    def count(self, tier: CacheTier) -> int:
        return len(self._records[tier])

    def oldest(self, tier: CacheTier, limit: int, exclude: Optional[str] = None) -> List[str]:
        candidates: List[Tuple[datetime, str]] = [
            (record.last_updated_at, number)
            for number, record in self._records[tier].items()
            if number != exclude
        ]
        candidates.sort()
        return [number for _, number in candidates[:limit]]

    def purge_expired(self, now: datetime) -> int:
        purged = 0
        for tier_records in self._records.values():
            expired = [n for n, r in tier_records.items() if r.is_expired(now)]
            for number in expired:
                del tier_records[number]
            purged += len(expired)
        return purged

    def clear(self, tier: Optional[CacheTier] = None) -> None:
        tiers = [tier] if tier else list(CacheTier)
        for t in tiers:
            self._records[t].clear()

    def increment_counter(self, name: str, amount: int = 1) -> int:
        with self._counter_lock:
            self._counters[name] = self._counters.get(name, 0) + amount
            return self._counters[name]

    def get_counters(self) -> Dict[str, int]:
        return dict(self._counters)
