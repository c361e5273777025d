"""
Risk Store Interface
Durable persistence behind the tiered risk cache
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from callshield.domain.models.risk import CacheTier, RiskRecord


class CacheUnavailableError(Exception):
    """The backing store could not be read or written"""
    pass


class RiskStore(ABC):
    """
    Storage for cache tiers and aggregate usage counters.

    Implementations raise CacheUnavailableError on I/O failure; the cache
    decides how to degrade.
    """

    @abstractmethod
    def get(self, tier: CacheTier, number: str) -> Optional[RiskRecord]:
        """Fetch one record or None"""
        pass

    @abstractmethod
    def put(self, record: RiskRecord) -> None:
        """Insert or replace a record keyed by (tier, number)"""
        pass

    @abstractmethod
    def delete(self, tier: CacheTier, number: str) -> bool:
        """Remove a record; True if it existed"""
        pass

    @abstractmethod
    def count(self, tier: CacheTier) -> int:
        """Number of records in a tier"""
        pass

    @abstractmethod
    def oldest(self, tier: CacheTier, limit: int, exclude: Optional[str] = None) -> List[str]:
        """Numbers in a tier ordered by last_updated_at ascending"""
        pass

    @abstractmethod
    def purge_expired(self, now: datetime) -> int:
        """Delete every record whose expires_at has passed; return count"""
        pass

    @abstractmethod
    def clear(self, tier: Optional[CacheTier] = None) -> None:
        """Delete all records in a tier, or in every tier"""
        pass

    @abstractmethod
    def increment_counter(self, name: str, amount: int = 1) -> int:
        """Increment a usage counter and return the new value"""
        pass

    @abstractmethod
    def get_counters(self) -> Dict[str, int]:
        """All usage counters"""
        pass

    def close(self) -> None:
        """Release resources"""
        pass
