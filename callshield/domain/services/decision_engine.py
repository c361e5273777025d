"""
Decision Engine
Resolves an incoming call to allow / silence / block / auto_reject
"""
import logging
from typing import List, Optional, Union

from callshield.domain.interfaces.call_controller import CallController
from callshield.domain.interfaces.contact_resolver import ContactResolver
from callshield.domain.models.assessment import AggregatedAssessment
from callshield.domain.models.decision import (
    CallAction,
    CallDecision,
    DecisionState,
    ScreeningPreferences,
    transition,
)
from callshield.domain.models.risk import LookupOutcome, RiskLevel
from callshield.domain.models.session import CallDirection, SessionWarning, WarningLevel
from callshield.domain.services.risk_aggregator import RiskAggregator
from callshield.domain.services.risk_cache import TieredRiskCache
from callshield.domain.services.session_tracker import SessionTracker
from callshield.domain.services.usage_counters import UsageCounters

logger = logging.getLogger(__name__)


AUTO_REJECT_CONFIDENCE = 0.8
SPAM_BLOCK_CONFIDENCE = 0.6

SCAM_WARNING_MESSAGE = (
    "This call has been automatically blocked due to high scam risk. "
    "The number is known for tactics commonly used by scammers."
)
PRIVACY_WARNING_MESSAGE = (
    "This caller has been reported as suspicious. Make sure you know and trust "
    "the person you are talking with before sharing sensitive information."
)


class InvalidCallRequestError(ValueError):
    """The incoming call carries no usable phone number"""
    pass


class DecisionEngine:
    """
    Screening flow for one incoming call.

    UNKNOWN -> cache lookup (WHITELISTED / CACHE_SCAM / CACHE_SPAM / CACHE_MISS)
    CACHE_MISS -> contacts (CONTACT_MATCH) or remote providers (REMOTE_CHECKED)

    The resolved action increments its usage counter, is handed to the call
    controller exactly once, and the whole screening is logged to a session.
    """

    def __init__(
        self,
        cache: TieredRiskCache,
        aggregator: RiskAggregator,
        contacts: Optional[ContactResolver] = None,
        controller: Optional[CallController] = None,
        sessions: Optional[SessionTracker] = None,
        counters: Optional[UsageCounters] = None,
        preferences: Optional[ScreeningPreferences] = None
    ):
        self._cache = cache
        self._aggregator = aggregator
        self._contacts = contacts
        self._controller = controller
        self._sessions = sessions
        self._counters = counters
        self.preferences = preferences or ScreeningPreferences()

    async def screen_call(
        self,
        raw_number: Optional[str],
        user_phone: Optional[str] = None,
        direction: Union[CallDirection, str] = CallDirection.INCOMING,
        preferences: Optional[ScreeningPreferences] = None,
        contacts: Optional[ContactResolver] = None
    ) -> CallDecision:
        """
        Screen one call end to end.

        Args:
            raw_number: Caller number as received
            user_phone: Protected user's number (logged on the session)
            direction: Call direction
            preferences: Overrides the engine-wide screening preferences
            contacts: Overrides the engine-wide contact resolver

        Returns:
            CallDecision with the action already applied

        Raises:
            InvalidCallRequestError: If the number is missing or has no digits
        """
        number = self._cache.normalizer.normalize(raw_number or "")
        if not number:
            raise InvalidCallRequestError(f"Invalid phone number: {raw_number!r}")

        prefs = preferences or self.preferences
        session_id = None
        if self._sessions:
            session_id = self._sessions.create_session(number, user_phone, direction).id

        try:
            decision = await self._resolve(number, raw_number, prefs, contacts or self._contacts, session_id)
            decision.session_id = session_id

            self._increment(decision.action)
            await self._apply(decision)
            self._record_warning(decision)
        finally:
            if session_id:
                self._sessions.close_session(session_id)

        logger.info(
            f"Call from {number}: {decision.action.value} via {decision.state.value} "
            f"(risk={decision.risk_level.value}, confidence={decision.confidence:.2f})",
            extra={"number": number, "action": decision.action.value, "session_id": session_id}
        )
        return decision

    async def _resolve(
        self,
        number: str,
        raw_number: str,
        prefs: ScreeningPreferences,
        contacts: Optional[ContactResolver],
        session_id: Optional[str]
    ) -> CallDecision:
        state = DecisionState.UNKNOWN
        path: List[DecisionState] = [state]

        if not prefs.protection_enabled:
            logger.info(f"Protection disabled, allowing {number} without lookup")
            self._log_result(session_id, {"stage": "protection_disabled"})
            return CallDecision(number=number, raw_number=raw_number, action=CallAction.ALLOW,
                                path=path, source="protection_disabled")

        lookup = self._cache.lookup(number)
        self._log_result(session_id, {
            "stage": "cache_lookup",
            "outcome": lookup.outcome.value,
            "tier": lookup.record.tier.value if lookup.record else None,
            "error": lookup.error,
        })

        if lookup.outcome == LookupOutcome.SAFE:
            state = transition(state, DecisionState.WHITELISTED)
            path.append(state)
            return CallDecision(
                number=number, raw_number=raw_number, action=CallAction.ALLOW,
                state=state, path=path, risk_level=RiskLevel.SAFE,
                confidence=lookup.record.confidence, source=lookup.record.source,
            )

        if lookup.outcome in (LookupOutcome.SCAM, LookupOutcome.SPAM):
            is_scam = lookup.outcome == LookupOutcome.SCAM
            state = transition(
                state, DecisionState.CACHE_SCAM if is_scam else DecisionState.CACHE_SPAM
            )
            path.append(state)
            record = lookup.record
            action = self.decide(
                state, record.risk_level, record.confidence,
                is_scam=is_scam, is_spam=not is_scam,
                silence_unknown_numbers=prefs.silence_unknown_numbers,
            )
            return CallDecision(
                number=number, raw_number=raw_number, action=action, state=state, path=path,
                risk_level=record.risk_level, confidence=record.confidence,
                is_scam=is_scam, is_spam=not is_scam, source=record.source,
            )

        state = transition(state, DecisionState.CACHE_MISS)
        path.append(state)

        if contacts and await self._is_contact(contacts, number):
            state = transition(state, DecisionState.CONTACT_MATCH)
            path.append(state)
            self._cache.add_to_whitelist(number, source="contacts")
            display_name = await self._display_name(contacts, number)
            if session_id:
                self._sessions.mark_contact(session_id)
            self._log_result(session_id, {"stage": "contact_match", "display_name": display_name})
            return CallDecision(
                number=number, raw_number=raw_number, action=CallAction.ALLOW,
                state=state, path=path, risk_level=RiskLevel.SAFE, confidence=1.0,
                source="contacts", display_name=display_name,
            )

        assessment = await self._aggregator.check_number(number)
        state = transition(state, DecisionState.REMOTE_CHECKED)
        path.append(state)
        self._log_result(session_id, {
            "stage": "remote_assessment",
            **assessment.model_dump(mode="json", exclude={"number"}),
        })

        action = self.decide(
            state, assessment.risk_level, assessment.confidence,
            is_scam=assessment.is_scam, is_spam=assessment.is_spam,
            silence_unknown_numbers=prefs.silence_unknown_numbers,
        )
        cached = self._write_back(number, assessment)

        return CallDecision(
            number=number, raw_number=raw_number, action=action, state=state, path=path,
            risk_level=assessment.risk_level, confidence=assessment.confidence,
            is_scam=assessment.is_scam, is_spam=assessment.is_spam,
            source=assessment.primary_source or "none", cached=cached, assessment=assessment,
        )

    @staticmethod
    def decide(
        state: DecisionState,
        risk_level: RiskLevel,
        confidence: float,
        is_scam: bool = False,
        is_spam: bool = False,
        silence_unknown_numbers: bool = False
    ) -> CallAction:
        """
        Pure action rule, evaluated top to bottom:

        1. whitelisted / contact -> allow
        2. HIGH, confidence > 0.8, scam (cache scam tier or remote) -> auto_reject
        3. scam, or spam with confidence > 0.6 -> block
        4. unknown risk or low-confidence spam, silencing opted in -> silence
        5. allow
        """
        if state in (DecisionState.WHITELISTED, DecisionState.CONTACT_MATCH):
            return CallAction.ALLOW

        if (
            state in (DecisionState.CACHE_SCAM, DecisionState.REMOTE_CHECKED)
            and risk_level == RiskLevel.HIGH
            and confidence > AUTO_REJECT_CONFIDENCE
            and is_scam
        ):
            return CallAction.AUTO_REJECT

        if is_scam or (is_spam and confidence > SPAM_BLOCK_CONFIDENCE):
            return CallAction.BLOCK

        unknown_or_weak = risk_level == RiskLevel.UNKNOWN or (
            is_spam and confidence <= SPAM_BLOCK_CONFIDENCE
        )
        if unknown_or_weak and silence_unknown_numbers:
            return CallAction.SILENCE

        return CallAction.ALLOW

    # ========== Side effects ==========

    def _write_back(self, number: str, assessment: AggregatedAssessment) -> bool:
        """Cache every remote verdict that is not LOW: scam tier if scam, else spam tier"""
        if assessment.risk_level in (RiskLevel.LOW, RiskLevel.SAFE):
            return False

        writer = self._cache.put_scam if assessment.is_scam else self._cache.put_spam
        record = writer(
            number,
            assessment.risk_level,
            assessment.confidence,
            assessment.primary_source or "remote",
            {
                "sources": assessment.sources,
                "strategy": assessment.strategy,
                "category": assessment.category.value,
            },
        )
        return record is not None

    async def _is_contact(self, contacts: ContactResolver, number: str) -> bool:
        try:
            return await contacts.is_known_contact(number)
        except Exception as e:
            logger.warning(f"Contact lookup failed for {number}, treating as unknown: {e}")
            return False

    async def _display_name(self, contacts: ContactResolver, number: str) -> Optional[str]:
        try:
            return await contacts.display_name_for(number)
        except Exception as e:
            logger.warning(f"Contact name lookup failed for {number}: {e}")
            return None

    def _increment(self, action: CallAction) -> None:
        if self._counters:
            self._counters.increment(action.counter_name)

    async def _apply(self, decision: CallDecision) -> None:
        """Hand the action to the call controller; failures are logged only"""
        if self._controller is None:
            return
        try:
            if decision.action == CallAction.ALLOW:
                await self._controller.allow_call(decision.number)
            elif decision.action == CallAction.SILENCE:
                await self._controller.silence_call(decision.number)
            else:
                await self._controller.terminate_call(
                    decision.number, immediate=decision.action == CallAction.AUTO_REJECT
                )
        except Exception as e:
            logger.error(
                f"Call controller failed to {decision.action.value} {decision.number}: {e}",
                extra={"number": decision.number, "action": decision.action.value}
            )

    def _log_result(self, session_id: Optional[str], payload: dict) -> None:
        if session_id:
            self._sessions.add_result(session_id, payload)

    def _record_warning(self, decision: CallDecision) -> None:
        if not decision.session_id:
            return

        if decision.should_block:
            warning = SessionWarning(
                level=WarningLevel.SCAM,
                type="scamWarning",
                title="Scam call blocked",
                message=SCAM_WARNING_MESSAGE,
                confidence=decision.confidence,
                auto_blocked=decision.auto_reject,
                source=decision.source,
            )
        elif decision.action == CallAction.SILENCE or decision.risk_level == RiskLevel.MEDIUM:
            warning = SessionWarning(
                level=WarningLevel.PRIVACY,
                type="privacyWarning",
                title="Information sharing warning",
                message=PRIVACY_WARNING_MESSAGE,
                confidence=decision.confidence,
                source=decision.source,
            )
        else:
            return

        self._sessions.add_warning(decision.session_id, warning)
