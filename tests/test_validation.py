import pytest

from leadscore.services.duplicate_scoring import DuplicateScoreResult
from leadscore.services.validation_engine import ValidationIssue, validate


def _dup(candidate_id, score):
    return DuplicateScoreResult(
        lead_id="lead-1",
        candidate_id=candidate_id,
        contributions=(),
        raw_score=float(score),
        aggregate_score=score,
    )


def test_clean_lead_scores_100(make_lead, validation_config):
    result = validate(make_lead(), validation_config())
    assert result.validation_score == 100
    assert result.issues == ()
    assert result.penalties == ()


def test_invalid_email_format(make_lead, validation_config):
    result = validate(make_lead(email="jane.doe@"), validation_config())
    assert result.issues == (ValidationIssue.INVALID_EMAIL,)
    assert result.validation_score == 60


@pytest.mark.parametrize("email", ["jane@mailinator.com", "jane@eu.mailinator.com", "jane@-acme.io"])
def test_bad_email_domain(make_lead, validation_config, email):
    result = validate(make_lead(email=email), validation_config())
    assert result.issues == (ValidationIssue.INVALID_EMAIL,)
    assert result.validation_score == 85


def test_email_checks_disabled(make_lead, validation_config):
    result = validate(make_lead(email="not-an-email"), validation_config(email_validation=False))
    assert result.validation_score == 100


@pytest.mark.parametrize("phone", ["555-0123", "0000000000", "(111) 111-1111", "1234567890123456"])
def test_invalid_phone(make_lead, validation_config, phone):
    result = validate(make_lead(phone=phone), validation_config())
    assert ValidationIssue.INVALID_PHONE in result.issues
    assert result.validation_score == 70


@pytest.mark.parametrize("company", [None, "", "N/A", "  test ", "xxxx"])
def test_fake_company(make_lead, validation_config, company):
    result = validate(make_lead(company=company), validation_config())
    assert result.issues == (ValidationIssue.FAKE_COMPANY,)
    assert result.validation_score == 85


def test_company_check_disabled(make_lead, validation_config):
    result = validate(make_lead(company=None), validation_config(company_validation=False))
    assert result.validation_score == 100


@pytest.mark.parametrize(
    "fields,reason",
    [
        ({"notes": "Heyyyyyy call me"}, "repeated_characters"),
        ({"notes": "Best casino bonus, click here!"}, "blacklist_keyword"),
        ({"submission_rate": 42.0}, "submission_rate"),
    ],
)
def test_spam_signals(make_lead, validation_config, fields, reason):
    result = validate(make_lead(**fields), validation_config())
    assert result.issues == (ValidationIssue.SPAM_SIGNALS,)
    assert result.validation_score == 75
    assert reason in result.penalties[0].reason


def test_spam_penalty_applies_once(make_lead, validation_config):
    result = validate(
        make_lead(notes="FREE MONEY!!!!!! viagra", submission_rate=100),
        validation_config(),
    )
    assert result.issues == (ValidationIssue.SPAM_SIGNALS,)
    assert result.validation_score == 75


def test_keyword_must_be_whole_word(make_lead, validation_config):
    result = validate(make_lead(company="Winnersh Logistics"), validation_config())
    assert result.validation_score == 100


def test_incomplete_data(make_lead, validation_config):
    result = validate(make_lead(phone=None), validation_config())
    assert result.issues == (ValidationIssue.INCOMPLETE_DATA,)
    assert result.validation_score == 80
    assert result.penalties[0].reason == "missing:phone"


def test_score_floors_at_zero(make_lead, validation_config):
    lead = make_lead(
        name="aaaaaa",
        email="bad",
        phone="123",
        company="test",
        notes="casino",
    )
    result = validate(lead, validation_config())
    # 40 + 30 + 15 + 25 = 110
    assert result.validation_score == 0
    assert result.issues == (
        ValidationIssue.INVALID_EMAIL,
        ValidationIssue.INVALID_PHONE,
        ValidationIssue.FAKE_COMPANY,
        ValidationIssue.SPAM_SIGNALS,
    )


def test_possible_duplicate_has_no_penalty(make_lead, validation_config):
    result = validate(make_lead(), validation_config(), duplicates=[_dup("b", 51), _dup("c", 50)])
    assert result.issues == (ValidationIssue.POSSIBLE_DUPLICATE,)
    assert result.potential_duplicates == ("b",)
    assert result.validation_score == 100


def test_validate_is_idempotent(make_lead, validation_config):
    lead = make_lead(email="jane@mailinator.com", company="n/a")
    config = validation_config()
    assert validate(lead, config) == validate(lead, config)
