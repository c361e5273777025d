"""
SQL Risk Store
SQLAlchemy-backed RiskStore; cache tiers and counters survive restarts
"""
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from callshield.domain.interfaces.risk_store import RiskStore, CacheUnavailableError
from callshield.domain.models.risk import CacheTier, RiskLevel, RiskRecord
from callshield.infrastructure.storage.database import (
    create_db_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from callshield.infrastructure.storage.models import RiskRecordRow, UsageCounterRow

logger = logging.getLogger(__name__)


class SQLRiskStore(RiskStore):
    """
    RiskStore over any SQLAlchemy database (SQLite by default).

    Every SQLAlchemyError is re-raised as CacheUnavailableError.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None and not database_url:
            raise ValueError("database_url or engine is required")

        self._engine = engine or create_db_engine(database_url)
        self._session_factory = create_session_factory(self._engine)
        self._counter_lock = threading.Lock()

        try:
            init_db(self._engine)
        except SQLAlchemyError as e:
            raise CacheUnavailableError(f"Could not initialize risk store: {e}") from e

        logger.info(f"SQLRiskStore ready ({self._engine.url.render_as_string(hide_password=True)})")

    # ========== Mapping ==========

    @staticmethod
    def _to_record(row: RiskRecordRow) -> RiskRecord:
        return RiskRecord(
            number=row.phone_number,
            tier=CacheTier(row.tier),
            risk_level=RiskLevel.parse(row.risk_level),
            confidence=row.confidence,
            source=row.source,
            report_count=row.report_count,
            metadata=dict(row.metadata_json or {}),
            created_at=row.created_at,
            last_updated_at=row.last_updated_at,
            expires_at=row.expires_at,
        )

    # ========== RiskStore ==========

    def get(self, tier: CacheTier, number: str) -> Optional[RiskRecord]:
        try:
            with session_scope(self._session_factory) as db:
                row = db.get(RiskRecordRow, (tier.value, number))
                return self._to_record(row) if row else None
        except SQLAlchemyError as e:
            raise CacheUnavailableError(str(e)) from e

    def put(self, record: RiskRecord) -> None:
        try:
            with session_scope(self._session_factory) as db:
                row = db.get(RiskRecordRow, (record.tier.value, record.number))
                if row is None:
                    row = RiskRecordRow(tier=record.tier.value, phone_number=record.number)
                    db.add(row)
                row.risk_level = record.risk_level.value
                row.confidence = record.confidence
                row.source = record.source
                row.report_count = record.report_count
                row.metadata_json = record.metadata
                row.created_at = record.created_at
                row.last_updated_at = record.last_updated_at
                row.expires_at = record.expires_at
        except SQLAlchemyError as e:
            raise CacheUnavailableError(str(e)) from e

    def delete(self, tier: CacheTier, number: str) -> bool:
        try:
            with session_scope(self._session_factory) as db:
                deleted = db.query(RiskRecordRow).filter(
                    RiskRecordRow.tier == tier.value,
                    RiskRecordRow.phone_number == number
                ).delete(synchronize_session=False)
                return deleted > 0
        except SQLAlchemyError as e:
            raise CacheUnavailableError(str(e)) from e

    def count(self, tier: CacheTier) -> int:
        try:
            with session_scope(self._session_factory) as db:
                return db.query(func.count(RiskRecordRow.phone_number)).filter(
                    RiskRecordRow.tier == tier.value
                ).scalar() or 0
        except SQLAlchemyError as e:
            raise CacheUnavailableError(str(e)) from e

    def oldest(self, tier: CacheTier, limit: int, exclude: Optional[str] = None) -> List[str]:
        try:
            with session_scope(self._session_factory) as db:
                query = db.query(RiskRecordRow.phone_number).filter(RiskRecordRow.tier == tier.value)
                if exclude:
                    query = query.filter(RiskRecordRow.phone_number != exclude)
                rows = query.order_by(
                    RiskRecordRow.last_updated_at.asc(),
                    RiskRecordRow.phone_number.asc()
                ).limit(limit).all()
                return [row.phone_number for row in rows]
        except SQLAlchemyError as e:
            raise CacheUnavailableError(str(e)) from e

    def purge_expired(self, now: datetime) -> int:
        try:
            with session_scope(self._session_factory) as db:
                return db.query(RiskRecordRow).filter(
                    RiskRecordRow.expires_at.isnot(None),
                    RiskRecordRow.expires_at <= now
                ).delete(synchronize_session=False)
        except SQLAlchemyError as e:
            raise CacheUnavailableError(str(e)) from e

    def clear(self, tier: Optional[CacheTier] = None) -> None:
        try:
            with session_scope(self._session_factory) as db:
                query = db.query(RiskRecordRow)
                if tier is not None:
                    query = query.filter(RiskRecordRow.tier == tier.value)
                query.delete(synchronize_session=False)
        except SQLAlchemyError as e:
            raise CacheUnavailableError(str(e)) from e

    def increment_counter(self, name: str, amount: int = 1) -> int:
        try:
            with self._counter_lock, session_scope(self._session_factory) as db:
                row = db.get(UsageCounterRow, name)
                if row is None:
                    row = UsageCounterRow(name=name, value=0)
                    db.add(row)
                row.value = (row.value or 0) + amount
                row.updated_at = datetime.utcnow()
                return row.value
        except SQLAlchemyError as e:
            raise CacheUnavailableError(str(e)) from e

    def get_counters(self) -> Dict[str, int]:
        try:
            with session_scope(self._session_factory) as db:
                return {row.name: row.value for row in db.query(UsageCounterRow).all()}
        except SQLAlchemyError as e:
            raise CacheUnavailableError(str(e)) from e

    def close(self) -> None:
        self._engine.dispose()
