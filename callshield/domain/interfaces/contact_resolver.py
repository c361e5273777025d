"""
Contact Resolver Interface
Host-platform address book lookups
"""
from abc import ABC, abstractmethod
from typing import Optional


class ContactResolver(ABC):
    """
    Answers whether a caller is one of the user's contacts.

    Implementations may raise (e.g. permission denied); callers must treat
    any failure as "not a contact".
    """

    @abstractmethod
    async def is_known_contact(self, phone_number: str) -> bool:
        """True if the number belongs to a saved contact"""
        pass

    @abstractmethod
    async def display_name_for(self, phone_number: str) -> Optional[str]:
        """Contact name for the number, if any"""
        pass
