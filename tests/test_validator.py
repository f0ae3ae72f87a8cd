"""
Tests for identity-matching profile validation
"""

import pytest

from conftest import build_patient
from priorauth.mpi.models import Profile
from priorauth.mpi.validator import Predicate, ProfileValidator, has_contact, total_weight


def _validate(normalizer, validator, resource):
    return validator.validate(normalizer.normalize(resource), resource)


class TestTotalWeight:

    def test_identifiers(self, normalizer):
        assert total_weight(normalizer.normalize(build_patient(ppn="P"))) == 10
        assert total_weight(normalizer.normalize(build_patient(ppn="P", dl="D"))) == 20

    def test_composite_counts_once(self, normalizer):
        resource = build_patient(
            other_identifier="MRN1",
            email="a@example.org",
            phone="555-0100",
            address=("1 Main St", "Boston", "MA"),
        )
        assert total_weight(normalizer.normalize(resource)) == 4

    def test_name_and_birth_date(self, normalizer):
        resource = build_patient(given="Ada", family="Lovelace", birth_date="1815-12-10")
        assert total_weight(normalizer.normalize(resource)) == 6

    def test_partial_name_and_address_do_not_count(self, normalizer):
        resource = build_patient(family="Lovelace")
        resource["address"] = [{"use": "home", "city": "London"}]
        assert total_weight(normalizer.normalize(resource)) == 0

    def test_photo_toggle(self, normalizer):
        record = normalizer.normalize(build_patient(photo=True))
        assert total_weight(record) == 4
        assert total_weight(record, include_photo=False) == 0


class TestContact:

    @pytest.mark.parametrize("contact", [
        {"name": {"family": "Byron"}},
        {"telecom": [{"system": "phone", "value": "555-0100"}]},
        {"address": {"city": "London"}},
        {"organization": {"reference": "Organization/1"}},
    ])
    def test_any_populated_element(self, contact):
        assert has_contact({"contact": [contact]})

    def test_missing_or_empty(self):
        assert not has_contact({})
        assert not has_contact({"contact": []})
        assert not has_contact({"contact": [{"relationship": [{"text": "mother"}]}]})
        assert not has_contact({"contact": ["not-a-dict"]})

    def test_only_first_contact_is_considered(self):
        assert not has_contact({"contact": [{"gender": "female"}, {"name": {"family": "Byron"}}]})


class TestProfileValidator:

    def test_base_needs_any_demographic(self, normalizer, validator):
        outcome = _validate(normalizer, validator, build_patient(birth_date="1815-12-10"))
        assert outcome.ok
        assert outcome.profile is Profile.BASE

    @pytest.mark.parametrize("system", ["fax", "sms", "pager", "url"])
    def test_base_accepts_any_telecom(self, normalizer, validator, system):
        resource = {
            "resourceType": "Patient",
            "telecom": [{"system": system, "value": "555-0199"}],
            "contact": [{"name": {"family": "Byron"}}],
        }
        outcome = _validate(normalizer, validator, resource)
        assert outcome.ok
        assert outcome.weight == 0

    def test_base_ignores_empty_telecom(self, normalizer, validator):
        resource = build_patient()
        resource["telecom"] = [{"system": "fax", "value": "  "}]
        assert not _validate(normalizer, validator, resource).ok

    def test_base_with_nothing(self, normalizer, validator):
        outcome = _validate(normalizer, validator, build_patient())
        assert not outcome.ok
        assert outcome.failed == (Predicate.MINIMUM_INFORMATION,)
        assert "IDI-Patient profile" in outcome.message

    def test_l0_threshold(self, normalizer, validator):
        assert _validate(normalizer, validator, build_patient(dl="Z9", profile="l0")).ok
        outcome = _validate(
            normalizer, validator,
            build_patient(given="Ada", family="Lovelace", birth_date="1815-12-10", profile="l0"),
        )
        assert not outcome.ok
        assert outcome.weight == 6
        assert "below 10" in outcome.message

    def test_l1_threshold(self, normalizer, validator):
        outcome = _validate(normalizer, validator, build_patient(dl="Z9", profile="l1"))
        assert outcome.failed == (Predicate.MINIMUM_INFORMATION,)
        assert _validate(normalizer, validator, build_patient(dl="Z9", ppn="X1", profile="l1")).ok

    def test_missing_contact(self, normalizer, validator):
        outcome = _validate(normalizer, validator, build_patient(dl="Z9", profile="l0", contact=False))
        assert outcome.failed == (Predicate.CONTACT,)
        assert "contact predicate" in outcome.message

    def test_both_predicates_reported(self, normalizer, validator):
        outcome = _validate(normalizer, validator, build_patient(contact=False, profile="l1"))
        assert outcome.failed == (Predicate.CONTACT, Predicate.MINIMUM_INFORMATION)
        assert "contact predicate" in outcome.message
        assert "minimum-information predicate" in outcome.message

    def test_photo_excluded_from_weight(self, normalizer):
        validator = ProfileValidator(include_photo=False)
        resource = build_patient(given="Ada", family="Lovelace", birth_date="1815-12-10", photo=True, profile="l0")
        assert _validate(normalizer, validator, resource).weight == 6
