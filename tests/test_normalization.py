import pytest

from leadscore.services.normalization import NormalizedValue, normalize, phone_digits, split_email


def test_normalize_text_casefold_and_whitespace(scoring_config):
    config = scoring_config()
    assert normalize("name", "  Jane   DOE ", config).value == "jane doe"
    assert normalize("name", "O'Brien-Smith", config).value == "obriensmith"


def test_normalize_text_case_sensitive(scoring_config):
    config = scoring_config(case_sensitive=True, ignore_special_chars=False)
    assert normalize("name", "Jane O'Brien", config).value == "Jane O'Brien"


def test_normalize_nfkc(scoring_config):
    assert normalize("company", "Ｆｕｌｌ Width", scoring_config()).value == "full width"


def test_normalize_phone_digits_only(scoring_config):
    config = scoring_config()
    assert normalize("phone", "(512) 555-0123", config).value == "5125550123"
    assert normalize("phone", "512.555.0123", config).value == "5125550123"
    assert normalize("phone", "+1 512 555 0123", config).value == "5125550123"


def test_normalize_phone_disabled_keeps_text(scoring_config):
    config = scoring_config(normalize_phone=False)
    assert normalize("phone", "(512) 555-0123", config).value == "(512) 555-0123"


def test_normalize_email_keeps_punctuation(scoring_config):
    config = scoring_config()
    value = normalize("email", " Jane.Doe+crm@Acme.IO ", config)
    assert value.value == "jane.doe+crm@acme.io"
    assert value.domain == "acme.io"


def test_normalize_email_without_domain_check(scoring_config):
    config = scoring_config(email_domain_check=False)
    assert normalize("email", "jane@acme.io", config).domain is None
    assert normalize("email_domain", "acme.io", config).is_empty


def test_normalize_missing_values(scoring_config):
    config = scoring_config()
    assert normalize("name", None, config) == NormalizedValue.empty("name")
    assert normalize("name", "", config).is_empty
    assert normalize("name", "   ", config).is_empty
    assert normalize("phone", "n/a", config).is_empty


def test_normalize_non_string_value(scoring_config):
    assert normalize("postal_code", 78701, scoring_config()).value == "78701"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("15125550123", "5125550123"),
        ("+44 20 7946 0958", "442079460958"),
        ("", ""),
        (None, ""),
    ],
)
def test_phone_digits(raw, expected):
    assert phone_digits(raw) == expected


def test_split_email():
    assert split_email("Jane@Acme.IO") == ("Jane", "acme.io")
    assert split_email("no-at-sign") == ("no-at-sign", "")
    assert split_email(None) == ("", "")
