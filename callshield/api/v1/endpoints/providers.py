"""
Risk Provider Endpoints
Provider stats, runtime configuration and direct remote checks
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from callshield.api.v1.dependencies import get_aggregator, get_normalizer
from callshield.domain.models.assessment import AggregatedAssessment, AggregationStrategy
from callshield.domain.services.phone_normalizer import PhoneNormalizer
from callshield.domain.services.risk_aggregator import RiskAggregator
from callshield.infrastructure.providers.factory import RiskProviderFactory

router = APIRouter(prefix="/providers", tags=["providers"])


class ProviderUpdateRequest(BaseModel):
    """Fields left out are unchanged"""
    enabled: Optional[bool] = None
    weight: Optional[float] = Field(None, ge=0.0)
    priority: Optional[int] = Field(None, ge=1)
    timeout_ms: Optional[int] = Field(None, gt=0)


class StrategyRequest(BaseModel):
    strategy: AggregationStrategy


class CheckNumberRequest(BaseModel):
    phone_number: str
    options: Optional[Dict[str, Any]] = None


@router.get("/")
async def list_providers(aggregator: RiskAggregator = Depends(get_aggregator)) -> Dict[str, Any]:
    """Registered providers with counters, success rate and config"""
    return {
        "strategy": aggregator.strategy.value,
        "providers": aggregator.get_provider_stats(),
        "available_types": RiskProviderFactory.list_providers(),
    }


@router.patch("/{name}")
async def update_provider(
    name: str,
    request: ProviderUpdateRequest,
    aggregator: RiskAggregator = Depends(get_aggregator)
) -> Dict[str, Any]:
    """Enable/disable a provider or change its weight, priority or timeout"""
    if not aggregator.has_provider(name):
        raise HTTPException(status_code=404, detail=f"Unknown provider: {name}")

    try:
        aggregator.update_provider_config(name, **request.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"name": name, **aggregator.get_provider_stats()[name]}


@router.put("/strategy")
async def set_strategy(
    request: StrategyRequest,
    aggregator: RiskAggregator = Depends(get_aggregator)
) -> Dict[str, str]:
    aggregator.set_strategy(request.strategy)
    return {"strategy": aggregator.strategy.value}


@router.post("/check", response_model=AggregatedAssessment)
async def check_number(
    request: CheckNumberRequest,
    aggregator: RiskAggregator = Depends(get_aggregator),
    normalizer: PhoneNormalizer = Depends(get_normalizer)
):
    """
    Run a remote assessment only.

    Bypasses the cache and the decision engine; nothing is written back.
    """
    if not normalizer.normalize(request.phone_number):
        raise HTTPException(status_code=400, detail=f"Invalid phone number: {request.phone_number!r}")
    return await aggregator.check_number(request.phone_number, request.options)
