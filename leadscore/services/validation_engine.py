from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from leadscore.core.logging import get_logger
from leadscore.schemas.lead import LeadRecord
from leadscore.services.duplicate_scoring import DuplicateScoreResult
from leadscore.services.normalization import EMAIL_PATTERN, phone_digits, split_email
from leadscore.services.policies import ValidationConfig

logger = get_logger(__name__)


class ValidationIssue(str, Enum):
    INVALID_EMAIL = "invalid_email"
    INVALID_PHONE = "invalid_phone"
    FAKE_COMPANY = "fake_company"
    SPAM_SIGNALS = "spam_signals"
    INCOMPLETE_DATA = "incomplete_data"
    POSSIBLE_DUPLICATE = "possible_duplicate"


# Fixed penalty table; the score starts at 100 and never drops below 0.
EMAIL_FORMAT_PENALTY = 40
EMAIL_DOMAIN_PENALTY = 15
PHONE_PATTERN_PENALTY = 30
FAKE_COMPANY_PENALTY = 15
SPAM_PENALTY = 25
INCOMPLETE_DATA_PENALTY = 20

_MIN_PHONE_DIGITS = 10
_MAX_PHONE_DIGITS = 15

_REPEATED_CHARS = re.compile(r"(.)\1{4,}")
_DOMAIN_LABEL = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_NON_WORD = re.compile(r"[^\w\s]+")


@dataclass(frozen=True)
class Penalty:
    issue: ValidationIssue
    points: int
    reason: str


@dataclass(frozen=True)
class ValidationResult:
    lead_id: str
    validation_score: int
    issues: Tuple[ValidationIssue, ...]
    penalties: Tuple[Penalty, ...] = ()
    potential_duplicates: Tuple[str, ...] = ()

    def has_issue(self, issue: ValidationIssue) -> bool:
        return issue in self.issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "validation_score": self.validation_score,
            "issues": [i.value for i in self.issues],
            "penalties": [
                {"issue": p.issue.value, "points": p.points, "reason": p.reason}
                for p in self.penalties
            ],
            "potential_duplicates": list(self.potential_duplicates),
        }


def _malformed_domain(domain: str) -> bool:
    labels = domain.split(".")
    if len(labels) < 2:
        return True
    return not all(_DOMAIN_LABEL.match(label) for label in labels)


def _is_disposable(domain: str, disposable: Iterable[str]) -> bool:
    return any(domain == d or domain.endswith("." + d) for d in disposable)


def _check_email(lead: LeadRecord, config: ValidationConfig) -> Optional[Penalty]:
    if not config.email_validation or not lead.has_value("email"):
        return None
    email = lead.email.strip()
    if not EMAIL_PATTERN.match(email):
        return Penalty(ValidationIssue.INVALID_EMAIL, EMAIL_FORMAT_PENALTY, "email_format")
    domain = split_email(email)[1]
    if _malformed_domain(domain):
        return Penalty(ValidationIssue.INVALID_EMAIL, EMAIL_DOMAIN_PENALTY, "email_domain_malformed")
    if _is_disposable(domain, config.disposable_domains):
        return Penalty(ValidationIssue.INVALID_EMAIL, EMAIL_DOMAIN_PENALTY, "email_domain_disposable")
    return None


def _check_phone(lead: LeadRecord, config: ValidationConfig) -> Optional[Penalty]:
    if not config.phone_validation or not lead.has_value("phone"):
        return None
    digits = phone_digits(lead.phone)
    if not (_MIN_PHONE_DIGITS <= len(digits) <= _MAX_PHONE_DIGITS) or len(set(digits)) == 1:
        return Penalty(ValidationIssue.INVALID_PHONE, PHONE_PATTERN_PENALTY, "phone_pattern")
    return None


def _check_company(lead: LeadRecord, config: ValidationConfig) -> Optional[Penalty]:
    if not config.company_validation:
        return None
    company = " ".join((lead.company or "").split()).casefold()
    if not company:
        return Penalty(ValidationIssue.FAKE_COMPANY, FAKE_COMPANY_PENALTY, "company_missing")
    if company in config.placeholder_companies or len(set(company.replace(" ", ""))) == 1:
        return Penalty(ValidationIssue.FAKE_COMPANY, FAKE_COMPANY_PENALTY, "company_placeholder")
    return None


def _check_spam(lead: LeadRecord, config: ValidationConfig) -> Optional[Penalty]:
    if not config.spam_detection:
        return None
    texts = [t for t in (lead.name, lead.company, lead.notes) if t]
    signals = []
    if any(_REPEATED_CHARS.search(t.casefold()) for t in texts):
        signals.append("repeated_characters")
    words = " ".join(_NON_WORD.sub(" ", t.casefold()) for t in texts)
    padded = f" {' '.join(words.split())} "
    if any(f" {keyword} " in padded for keyword in config.spam_keywords):
        signals.append("blacklist_keyword")
    if lead.submission_rate is not None and lead.submission_rate > config.max_submissions_per_hour:
        signals.append("submission_rate")
    if not signals:
        return None
    return Penalty(ValidationIssue.SPAM_SIGNALS, SPAM_PENALTY, ",".join(signals))


def _check_completeness(lead: LeadRecord, config: ValidationConfig) -> Optional[Penalty]:
    missing = [f for f in ("name", "email", "phone") if not lead.has_value(f)]
    if not missing:
        return None
    return Penalty(ValidationIssue.INCOMPLETE_DATA, INCOMPLETE_DATA_PENALTY, "missing:" + ",".join(missing))


_CHECKS: Tuple[Callable[[LeadRecord, ValidationConfig], Optional[Penalty]], ...] = (
    _check_email,
    _check_phone,
    _check_company,
    _check_spam,
    _check_completeness,
)


def validate(
    lead: LeadRecord,
    config: ValidationConfig,
    duplicates: Iterable[DuplicateScoreResult] = (),
) -> ValidationResult:
    """Data-quality score of a lead, independent of its duplicate status.

    Each triggered check subtracts its fixed penalty once. ``possible_duplicate``
    carries no penalty; it is raised when any duplicate result scores above
    ``config.duplicate_threshold``.
    """
    penalties: List[Penalty] = []
    for check in _CHECKS:
        penalty = check(lead, config)
        if penalty is not None:
            penalties.append(penalty)

    issues = [p.issue for p in penalties]
    potential = tuple(
        d.candidate_id for d in duplicates if d.aggregate_score > config.duplicate_threshold
    )
    if potential:
        issues.append(ValidationIssue.POSSIBLE_DUPLICATE)

    score = max(0, 100 - sum(p.points for p in penalties))

    logger.debug(
        "validation.complete",
        lead_id=lead.id,
        validation_score=score,
        issues=[i.value for i in issues],
    )

    return ValidationResult(
        lead_id=lead.id,
        validation_score=score,
        issues=tuple(issues),
        penalties=tuple(penalties),
        potential_duplicates=potential,
    )
