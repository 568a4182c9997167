# leadscore/schemas/lead.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leadscore.core.exceptions import MissingFieldError

# Bookkeeping attributes that are never compared or merged as contact data.
_NON_CONTACT_FIELDS = frozenset({"id", "created_at", "submission_rate"})


class LeadRecord(BaseModel):
    """An ingested contact record. Immutable; only a merge produces a new one."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str = Field(min_length=1, max_length=128)
    created_at: datetime

    name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=32)
    company: Optional[str] = Field(default=None, max_length=200)
    address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=128)
    postal_code: Optional[str] = Field(default=None, max_length=16)
    source: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=5000)

    # Submissions per hour from the same contact, as observed at ingestion.
    submission_rate: Optional[float] = Field(default=None, ge=0)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def contact_fields(self) -> Tuple[str, ...]:
        declared = [f for f in type(self).model_fields if f not in _NON_CONTACT_FIELDS]
        extra = sorted(self.model_extra or {})
        return tuple(declared + extra)

    def field_value(self, name: str) -> Optional[Any]:
        if name == "email_domain":
            email = (self.email or "").strip()
            if "@" not in email:
                return None
            return email.rsplit("@", 1)[1] or None
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name)

    def has_value(self, name: str) -> bool:
        value = self.field_value(name)
        if value is None:
            return False
        return bool(str(value).strip())

    def require(self, name: str) -> Any:
        if not self.has_value(name):
            raise MissingFieldError(name, lead_id=self.id)
        return self.field_value(name)

    def contact_data(self) -> Dict[str, Any]:
        return {f: self.field_value(f) for f in self.contact_fields()}
