"""
Call Controller Interface
Native call-control capability invoked once per screened call
"""
from abc import ABC, abstractmethod


class CallController(ABC):
    """Abstract base class for call control backends"""

    @abstractmethod
    async def allow_call(self, phone_number: str) -> None:
        """Let the call ring normally"""
        pass

    @abstractmethod
    async def silence_call(self, phone_number: str) -> None:
        """Mute the ringer; voicemail stays reachable"""
        pass

    @abstractmethod
    async def terminate_call(self, phone_number: str, immediate: bool = False) -> None:
        """
        End the call.

        Args:
            phone_number: Caller number
            immediate: Reject before ringing (auto-reject) instead of after
                a minimal ring (block)
        """
        pass
