"""
Usage Counters
Per-action totals (allowed, silenced, blocked, auto_rejected)
"""
import logging
import threading
from typing import Dict

from callshield.domain.interfaces.risk_store import RiskStore
from callshield.domain.models.decision import ACTION_COUNTERS

logger = logging.getLogger(__name__)


class UsageCounters:
    """
    Counters persisted through the RiskStore.

    If the store fails, increments are kept in memory and folded into
    ``get_all`` so a broken database never loses the tally of this process.
    """

    def __init__(self, store: RiskStore):
        self._store = store
        self._pending: Dict[str, int] = {}
        self._lock = threading.Lock()

    def increment(self, name: str, amount: int = 1) -> int:
        try:
            return self._store.increment_counter(name, amount)
        except Exception as e:
            logger.warning(f"Counter {name} kept in memory, store failed: {e}")
            with self._lock:
                self._pending[name] = self._pending.get(name, 0) + amount
                return self._pending[name]

    def get_all(self) -> Dict[str, int]:
        """Every action counter (zero when never incremented)"""
        totals = {name: 0 for name in ACTION_COUNTERS.values()}
        try:
            totals.update(self._store.get_counters())
        except Exception as e:
            logger.warning(f"Could not read counters from store: {e}")

        with self._lock:
            for name, value in self._pending.items():
                totals[name] = totals.get(name, 0) + value
        return totals
