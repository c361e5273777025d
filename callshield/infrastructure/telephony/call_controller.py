"""
Logging Call Controller
Records call-control commands instead of driving a handset
"""
import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List

from callshield.domain.interfaces.call_controller import CallController

logger = logging.getLogger(__name__)


class LoggingCallController(CallController):
    """
    Server-side CallController.

    The native app polls ``GET /calls/commands`` (or applies the screening
    response directly); the last ``max_commands`` commands are kept.
    """

    def __init__(self, max_commands: int = 500):
        self._commands: Deque[Dict[str, Any]] = deque(maxlen=max_commands)

    async def allow_call(self, phone_number: str) -> None:
        self._record("allow", phone_number)

    async def silence_call(self, phone_number: str) -> None:
        self._record("silence", phone_number)

    async def terminate_call(self, phone_number: str, immediate: bool = False) -> None:
        self._record("reject" if immediate else "terminate", phone_number)

    def _record(self, command: str, phone_number: str) -> None:
        self._commands.append({
            "command": command,
            "phone_number": phone_number,
            "timestamp": datetime.utcnow().isoformat(),
        })
        logger.info(f"Call control: {command} {phone_number}")

    def recent_commands(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent commands, newest first"""
        return list(reversed(self._commands))[:limit]
