"""
SQLAlchemy Database Models
Persisted cache tiers and usage counters
"""
from sqlalchemy import Column, String, Integer, DateTime, Float, JSON, Index
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()


class RiskRecordRow(Base):
    """Cached verdict - maps to risk_records table"""
    __tablename__ = "risk_records"

    tier = Column(String(20), primary_key=True)
    phone_number = Column(String(32), primary_key=True)
    risk_level = Column(String(20), nullable=False, default="UNKNOWN")
    confidence = Column(Float, nullable=False, default=0.0)
    source = Column(String(100), nullable=False, default="unknown")
    report_count = Column(Integer, nullable=False, default=1)
    metadata_json = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_risk_records_tier_updated", "tier", "last_updated_at"),
        Index("ix_risk_records_expires", "expires_at"),
    )


class UsageCounterRow(Base):
    """Aggregate action counter - maps to usage_counters table"""
    __tablename__ = "usage_counters"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
