"""Domain services"""
from .phone_normalizer import PhoneNormalizer, normalize_phone_number
from .risk_cache import TieredRiskCache
from .risk_aggregator import RiskAggregator
from .session_tracker import SessionTracker
from .usage_counters import UsageCounters
from .decision_engine import DecisionEngine, InvalidCallRequestError
