from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from leadscore.core.logging import get_logger
from leadscore.services.policies import ScoringConfig

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

_WHITESPACE = re.compile(r"\s+")
_SPECIAL_CHARS = re.compile(r"[^\w\s]|_", re.UNICODE)
_NON_DIGITS = re.compile(r"\D+")

EMAIL_FIELDS = frozenset({"email"})
EMAIL_DOMAIN_FIELDS = frozenset({"email_domain"})
PHONE_FIELDS = frozenset({"phone", "mobile", "telephone", "tel", "fax"})


@dataclass(frozen=True)
class NormalizedValue:
    field: str
    value: str = ""
    domain: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.value

    @classmethod
    def empty(cls, field: str) -> "NormalizedValue":
        return cls(field=field)


def field_kind(field_name: str) -> str:
    name = field_name.strip().lower()
    if name in EMAIL_FIELDS:
        return "email"
    if name in EMAIL_DOMAIN_FIELDS:
        return "email_domain"
    if name in PHONE_FIELDS:
        return "phone"
    return "text"


def phone_digits(phone: Optional[str]) -> str:
    """Digit-only phone form; a leading NANP country code on 11 digits is dropped."""
    if not phone:
        return ""
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    return digits


def split_email(email: Optional[str]) -> Tuple[str, str]:
    if not email or "@" not in email:
        return (email or "").strip(), ""
    local, domain = email.strip().rsplit("@", 1)
    return local, domain.lower()


def _clean_text(raw_value: Any) -> str:
    text = raw_value if isinstance(raw_value, str) else str(raw_value)
    text = unicodedata.normalize("NFKC", text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize(field_name: str, raw_value: Any, config: ScoringConfig) -> NormalizedValue:
    """Canonicalize one raw field value for comparison.

    Missing or blank input gives an empty NormalizedValue. Any failure while
    cleaning is logged and also gives an empty value, so a single malformed
    record never aborts a comparison batch.
    """
    if raw_value is None:
        return NormalizedValue.empty(field_name)

    try:
        text = _clean_text(raw_value)
    except Exception as e:
        logger.warning("normalization.failed", field=field_name, error=str(e))
        return NormalizedValue.empty(field_name)

    if not text:
        return NormalizedValue.empty(field_name)

    kind = field_kind(field_name)

    if kind == "phone":
        if config.normalize_phone:
            return NormalizedValue(field_name, phone_digits(text))
        return NormalizedValue(field_name, text if config.case_sensitive else text.casefold())

    if kind == "email":
        value = text if config.case_sensitive else text.casefold()
        domain = None
        if config.email_domain_check:
            domain = split_email(text)[1] or None
        return NormalizedValue(field_name, value, domain)

    if kind == "email_domain":
        if not config.email_domain_check:
            return NormalizedValue.empty(field_name)
        return NormalizedValue(field_name, text.lstrip("@").lower())

    value = text if config.case_sensitive else text.casefold()
    if config.ignore_special_chars:
        value = _WHITESPACE.sub(" ", _SPECIAL_CHARS.sub("", value)).strip()
    return NormalizedValue(field_name, value)
