"""
Static Contact Resolver
Address book supplied as a number -> name mapping
"""
from typing import Dict, Optional

from callshield.domain.interfaces.contact_resolver import ContactResolver
from callshield.domain.services.phone_normalizer import PhoneNormalizer


class StaticContactResolver(ContactResolver):
    """Contacts keyed by normalized number"""

    def __init__(
        self,
        contacts: Optional[Dict[str, Optional[str]]] = None,
        normalizer: Optional[PhoneNormalizer] = None
    ):
        self._normalizer = normalizer or PhoneNormalizer()
        self._contacts: Dict[str, Optional[str]] = {}
        for number, name in (contacts or {}).items():
            self.add(number, name)

    def add(self, phone_number: str, display_name: Optional[str] = None) -> None:
        normalized = self._normalizer.normalize(phone_number)
        if normalized:
            self._contacts[normalized] = display_name

    async def is_known_contact(self, phone_number: str) -> bool:
        return self._normalizer.normalize(phone_number) in self._contacts

    async def display_name_for(self, phone_number: str) -> Optional[str]:
        return self._contacts.get(self._normalizer.normalize(phone_number))
