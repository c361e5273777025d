"""
API Dependencies
Resolve the screening components built by the application lifespan
"""
from fastapi import Request

from callshield.domain.services.decision_engine import DecisionEngine
from callshield.domain.services.phone_normalizer import PhoneNormalizer
from callshield.domain.services.risk_aggregator import RiskAggregator
from callshield.domain.services.risk_cache import TieredRiskCache
from callshield.domain.services.session_tracker import SessionTracker
from callshield.domain.services.usage_counters import UsageCounters
from callshield.infrastructure.telephony.call_controller import LoggingCallController


def get_normalizer(request: Request) -> PhoneNormalizer:
    return request.app.state.normalizer


def get_cache(request: Request) -> TieredRiskCache:
    return request.app.state.cache


def get_aggregator(request: Request) -> RiskAggregator:
    return request.app.state.aggregator


def get_session_tracker(request: Request) -> SessionTracker:
    return request.app.state.sessions


def get_counters(request: Request) -> UsageCounters:
    return request.app.state.counters


def get_call_controller(request: Request) -> LoggingCallController:
    return request.app.state.controller


def get_decision_engine(request: Request) -> DecisionEngine:
    return request.app.state.engine
