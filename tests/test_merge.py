from datetime import datetime, timedelta, timezone

import pytest

from leadscore.core.exceptions import IncompleteMergeSpec, LeaseError, MergeError
from leadscore.services.merge import MergeLease, merge
from leadscore.services.policies import MergeStrategy

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _lease(*ids, expires_in=60):
    return MergeLease(holder="worker-1", record_ids=frozenset(ids), expires_at=NOW + timedelta(seconds=expires_in))


def test_newest_fills_empty_primary_field(make_lead):
    primary = make_lead("p", days_ago=5, phone=None)
    secondary = make_lead("s", days_ago=0, phone="9876543210")

    merged = merge(primary, [secondary], MergeStrategy.NEWEST)
    assert merged.record.phone == "9876543210"
    assert merged.resolution("phone").source_id == "s"
    assert merged.record.id == "p"
    assert merged.record.created_at == primary.created_at
    assert merged.source_ids == ("p", "s")


def test_newest_and_oldest_pick_by_created_at(make_lead):
    primary = make_lead("p", days_ago=3, company="Acme")
    older = make_lead("o", days_ago=10, company="Acme Old")
    newer = make_lead("n", days_ago=1, company="Acme New")

    assert merge(primary, [older, newer], "newest").record.company == "Acme New"
    assert merge(primary, [older, newer], "oldest").record.company == "Acme Old"


def test_ties_favour_primary_then_input_order(make_lead):
    primary = make_lead("p", company="From Primary")
    a = make_lead("a", company="From A")
    b = make_lead("b", company="From B")
    assert merge(primary, [a, b], "newest").record.company == "From Primary"

    no_company = make_lead("p", company=None)
    assert merge(no_company, [a, b], "oldest").record.company == "From A"


@pytest.mark.parametrize("strategy", ["newest", "oldest"])
def test_every_present_field_survives(make_lead, strategy):
    primary = make_lead("p", days_ago=2, phone=None, city="Austin")
    secondary = make_lead("s", days_ago=1, company=None, postal_code="78701", linkedin="in/jane")

    merged = merge(primary, [secondary], strategy)
    for source in (primary, secondary):
        for name in source.contact_fields():
            if source.has_value(name):
                assert merged.record.has_value(name), name
    assert merged.record.linkedin == "in/jane"


def test_single_source_field_carries_over(make_lead):
    primary = make_lead("p", notes="called twice")
    secondary = make_lead("s", notes=None)
    merged = merge(primary, [secondary], "oldest")
    assert merged.resolution("notes").rule == "single_source"


def test_manual_requires_map_for_every_shared_field(make_lead):
    primary = make_lead("p", company="Acme", phone="5125550123")
    secondary = make_lead("s", company="Acme Inc", phone="5125550123", city="Austin")

    with pytest.raises(IncompleteMergeSpec) as exc_info:
        merge(primary, [secondary], MergeStrategy.MANUAL)
    assert exc_info.value.missing_fields == ("name", "email", "phone", "company")
    assert "company" in exc_info.value.message

    field_map = {"name": "p", "email": "p", "phone": "s", "company": "s"}
    merged = merge(primary, [secondary], MergeStrategy.MANUAL, manual_field_map=field_map)
    assert merged.record.company == "Acme Inc"
    assert merged.record.phone == "5125550123"
    assert merged.record.city == "Austin"
    assert merged.resolution("company").rule == "manual"
    assert merged.resolution("phone").source_id == "s"
    assert merged.resolution("city").rule == "single_source"


def test_manual_agreeing_values_still_need_a_choice(make_lead):
    primary = make_lead("p", company="Acme", phone="5125550123")
    secondary = make_lead("s", company="Acme", phone="5125550123")

    with pytest.raises(IncompleteMergeSpec) as exc_info:
        merge(primary, [secondary], "manual", manual_field_map={})
    assert exc_info.value.missing_fields == ("name", "email", "phone", "company")

    with pytest.raises(IncompleteMergeSpec) as exc_info:
        merge(primary, [secondary], "manual", manual_field_map={"name": "p", "email": "p", "phone": "p"})
    assert exc_info.value.missing_fields == ("company",)


def test_manual_map_outside_group(make_lead):
    with pytest.raises(IncompleteMergeSpec):
        merge(make_lead("p"), [make_lead("s")], "manual", manual_field_map={"company": "zzz"})


def test_manual_map_to_empty_source(make_lead):
    primary = make_lead("p", company="Acme")
    secondary = make_lead("s", company=None)
    field_map = {"name": "p", "email": "p", "phone": "p", "company": "s"}
    with pytest.raises(IncompleteMergeSpec) as exc_info:
        merge(primary, [secondary], "manual", manual_field_map=field_map)
    assert exc_info.value.missing_fields == ("company",)


def test_structural_errors(make_lead):
    p = make_lead("p")
    with pytest.raises(MergeError):
        merge(p, [], "newest")
    with pytest.raises(MergeError):
        merge(p, [make_lead("s"), make_lead("s")], "newest")
    with pytest.raises(MergeError):
        merge(p, [make_lead("p")], "newest")
    with pytest.raises(MergeError):
        merge(p, [make_lead("s")], "random")


def test_lease_must_cover_group(make_lead):
    p, s = make_lead("p"), make_lead("s")
    merged = merge(p, [s], "newest", lease=_lease("p", "s", "x"), now=NOW)
    assert merged.source_ids == ("p", "s")

    with pytest.raises(LeaseError) as exc_info:
        merge(p, [s], "newest", lease=_lease("p"), now=NOW)
    assert exc_info.value.details["uncovered"] == ["s"]


def test_expired_lease(make_lead):
    with pytest.raises(LeaseError):
        merge(make_lead("p"), [make_lead("s")], "newest", lease=_lease("p", "s", expires_in=-1), now=NOW)


def test_sources_are_untouched(make_lead):
    primary = make_lead("p", phone=None)
    secondary = make_lead("s", phone="9876543210")
    merge(primary, [secondary], "newest")
    assert primary.phone is None
    assert secondary.phone == "9876543210"
