"""
Phone Number Normalizer
Canonicalizes raw caller numbers so cache keys compare equal
"""
import re

_NON_DIGITS = re.compile(r"\D")
_SIGNIFICANT = re.compile(r"[\d+]")


class PhoneNormalizer:
    """
    Best-effort E.164-style normalization.

    - keeps digits, plus a "+" when it is the first significant character
    - a national trunk "0" is replaced by the default country code
    - a bare number gets "+" prepended
    - input without digits normalizes to ""

    Never raises: lookups must not block on validation.
    normalize(normalize(x)) == normalize(x) for every x.
    """

    def __init__(self, default_country_code: str = "27"):
        code = _NON_DIGITS.sub("", str(default_country_code or ""))
        self.default_country_code = code

    def normalize(self, raw: str) -> str:
        text = "" if raw is None else str(raw)

        digits = _NON_DIGITS.sub("", text)
        if not digits:
            return ""

        first = _SIGNIFICANT.search(text)
        has_plus = first is not None and first.group() == "+"

        if has_plus:
            return f"+{digits}"

        if digits.startswith("0") and self.default_country_code:
            return f"+{self.default_country_code}{digits[1:]}"

        return f"+{digits}"

    __call__ = normalize


def normalize_phone_number(raw: str, default_country_code: str = "27") -> str:
    """Module-level helper for one-off normalization"""
    return PhoneNormalizer(default_country_code).normalize(raw)
