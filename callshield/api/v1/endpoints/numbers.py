"""
Number Reputation Endpoints
Inspect and maintain the local whitelist / scam / spam tiers
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from callshield.api.v1.dependencies import get_cache
from callshield.domain.models.risk import CacheTier, LookupOutcome, RiskLevel, RiskRecord
from callshield.domain.services.risk_cache import TieredRiskCache

router = APIRouter(prefix="/numbers", tags=["numbers"])


class NumberLookupResponse(BaseModel):
    """What the local cache knows about a number"""
    number: str
    outcome: LookupOutcome
    tier: Optional[CacheTier] = None
    record: Optional[RiskRecord] = None
    error: Optional[str] = None


class ReportNumberRequest(BaseModel):
    """Report a number into the scam or spam tier"""
    phone_number: str
    risk_level: Optional[RiskLevel] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    source: str = "user_report"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WhitelistRequest(BaseModel):
    phone_number: str
    source: str = "user"


class SyncEntry(BaseModel):
    phone_number: str
    risk_level: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    source: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class SyncRequest(BaseModel):
    """Backend feed of known scam and spam numbers"""
    scam_numbers: List[SyncEntry] = Field(default_factory=list)
    spam_numbers: List[SyncEntry] = Field(default_factory=list)
    source: str = "backend_sync"


def _require_number(cache: TieredRiskCache, raw: str) -> str:
    normalized = cache.normalizer.normalize(raw)
    if not normalized:
        raise HTTPException(status_code=400, detail=f"Invalid phone number: {raw!r}")
    return normalized


def _stored(record: Optional[RiskRecord]) -> RiskRecord:
    if record is None:
        raise HTTPException(status_code=503, detail="Risk store unavailable")
    return record


@router.get("/stats/summary")
async def cache_stats(cache: TieredRiskCache = Depends(get_cache)) -> Dict[str, Any]:
    """Per-tier counts, max size, evictions and last sync time"""
    return cache.get_stats()


@router.get("/{number}", response_model=NumberLookupResponse)
async def lookup_number(number: str, cache: TieredRiskCache = Depends(get_cache)):
    """Tiered lookup: whitelist, then scam, then spam"""
    _require_number(cache, number)
    lookup = cache.lookup(number)
    return NumberLookupResponse(
        number=lookup.number,
        outcome=lookup.outcome,
        tier=lookup.record.tier if lookup.record else None,
        record=lookup.record,
        error=lookup.error,
    )


@router.post("/scam", response_model=RiskRecord)
async def report_scam(request: ReportNumberRequest, cache: TieredRiskCache = Depends(get_cache)):
    """Add or refresh a scam-tier entry (30 day expiry)"""
    _require_number(cache, request.phone_number)
    return _stored(cache.put_scam(
        request.phone_number,
        request.risk_level or RiskLevel.HIGH,
        0.9 if request.confidence is None else request.confidence,
        request.source,
        request.metadata,
    ))


@router.post("/spam", response_model=RiskRecord)
async def report_spam(request: ReportNumberRequest, cache: TieredRiskCache = Depends(get_cache)):
    """Add or refresh a spam-tier entry (7 day expiry)"""
    _require_number(cache, request.phone_number)
    return _stored(cache.put_spam(
        request.phone_number,
        request.risk_level or RiskLevel.MEDIUM,
        0.7 if request.confidence is None else request.confidence,
        request.source,
        request.metadata,
    ))


@router.post("/whitelist", response_model=RiskRecord)
async def add_to_whitelist(request: WhitelistRequest, cache: TieredRiskCache = Depends(get_cache)):
    """Trust a number; whitelisted numbers are always allowed"""
    _require_number(cache, request.phone_number)
    return _stored(cache.add_to_whitelist(request.phone_number, request.source))


@router.delete("/whitelist/{number}")
async def remove_from_whitelist(number: str, cache: TieredRiskCache = Depends(get_cache)):
    normalized = _require_number(cache, number)
    if not cache.remove_from_whitelist(number):
        raise HTTPException(status_code=404, detail=f"{normalized} is not whitelisted")
    return {"number": normalized, "removed": True}


@router.post("/sync")
async def sync_numbers(request: SyncRequest, cache: TieredRiskCache = Depends(get_cache)):
    """Bulk-import scam and spam numbers from a backend feed"""
    imported = cache.import_records(
        scam=[e.model_dump(exclude_none=True) for e in request.scam_numbers],
        spam=[e.model_dump(exclude_none=True) for e in request.spam_numbers],
        source=request.source,
    )
    return {"imported": imported, "last_sync": cache.get_stats()["last_sync"]}


@router.post("/purge-expired")
async def purge_expired(cache: TieredRiskCache = Depends(get_cache)):
    return {"purged": cache.purge_expired()}
