"""
Demo Risk Provider
Pattern-driven stand-in for a commercial caller-ID service (Hiya, Truecaller, ...)
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from callshield.domain.interfaces.risk_provider import RiskProvider

logger = logging.getLogger(__name__)


class DemoRiskProvider(RiskProvider):
    """
    Flags numbers by substring.

    - any scam pattern: HIGH / block, category scam
    - any suspicious pattern: MEDIUM / allow, category suspicious
    - anything else: LOW / allow, category legitimate
    """

    def __init__(
        self,
        name: str,
        scam_patterns: Iterable[str] = ("666",),
        suspicious_patterns: Iterable[str] = ("555",),
        latency_ms: int = 0
    ):
        self._name = name
        self.scam_patterns = [str(p) for p in scam_patterns]
        self.suspicious_patterns = [str(p) for p in suspicious_patterns]
        self.latency_ms = latency_ms

    @property
    def name(self) -> str:
        return self._name

    async def check_spam_number(
        self,
        phone_number: str,
        options: Optional[Dict[str, Any]] = None
    ) -> Mapping[str, Any]:
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)

        if any(p in phone_number for p in self.scam_patterns):
            result = {
                "risk_level": "HIGH",
                "confidence": 0.85,
                "action": "block",
                "auto_reject": True,
                "category": "scam",
                "score": 0.85,
            }
        elif any(p in phone_number for p in self.suspicious_patterns):
            result = {
                "risk_level": "MEDIUM",
                "confidence": "MEDIUM",
                "action": "allow",
                "category": "suspicious",
                "score": 0.5,
            }
        else:
            result = {
                "risk_level": "LOW",
                "confidence": "LOW",
                "action": "allow",
                "category": "legitimate",
                "score": 0.05,
            }

        logger.debug(f"{self._name} result for {phone_number}: {result['risk_level']}")
        return result

    def get_provider_info(self) -> Dict[str, Any]:
        return {
            "name": self._name,
            "type": "demo",
            "scam_patterns": self.scam_patterns,
            "suspicious_patterns": self.suspicious_patterns,
        }
