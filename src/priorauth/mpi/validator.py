"""
Profile Validator

Checks that a $match input Patient carries the minimum information required by
the identity-matching profile it claims (IDI-Patient, IDI-Patient-L0,
IDI-Patient-L1). Two predicates are evaluated independently and must both hold:

- contact: the Patient names a contact with a name, telecom, address or
  organization
- minimum information: profile dependent; BASE needs any one demographic,
  L0 and L1 need a total weight of at least 10 and 20
"""
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

import structlog

from priorauth.mpi.models import PatientRecord, Profile
from priorauth.mpi.normalizer import clean

logger = structlog.get_logger(__name__)


class Predicate(str, Enum):
    CONTACT = "contact"
    MINIMUM_INFORMATION = "minimum-information"


# Minimum total weight per weighted profile
WEIGHT_THRESHOLDS = {
    Profile.L0: 10,
    Profile.L1: 20,
}

PROFILE_LABELS = {
    Profile.BASE: "IDI-Patient",
    Profile.L0: "IDI-Patient-L0",
    Profile.L1: "IDI-Patient-L1",
}


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of validating a $match input against its claimed profile."""
    profile: Profile
    weight: int
    failed: tuple[Predicate, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def message(self) -> str | None:
        if self.ok:
            return None
        label = PROFILE_LABELS[self.profile]
        reasons = []
        if Predicate.CONTACT in self.failed:
            reasons.append(
                "contact predicate failed: Patient.contact must have a name, "
                "telecom, address or organization"
            )
        if Predicate.MINIMUM_INFORMATION in self.failed:
            threshold = WEIGHT_THRESHOLDS.get(self.profile)
            if threshold is None:
                reasons.append(
                    "minimum-information predicate failed: Patient must have an "
                    "identifier, telecom, full name, full home address or birth date"
                )
            else:
                reasons.append(
                    f"minimum-information predicate failed: total weight {self.weight} "
                    f"is below {threshold}"
                )
        return (
            "The request does not conform to the specification. Patient resource "
            f"does not meet the {label} profile: " + "; ".join(reasons)
        )


def total_weight(record: PatientRecord, include_photo: bool = True) -> int:
    """
    Weight of the search criteria carried by an input record.

    10 each for passport and driver's license, 4 when any of full home
    address, other identifier, e-mail, phone or photo is present, 4 for a full
    name and 2 for a birth date.
    """
    weight = 0
    if record.passport_number:
        weight += 10
    if record.drivers_license:
        weight += 10
    if (
        record.has_full_home_address
        or record.other_identifiers
        or record.email
        or record.phone
        or (include_photo and record.has_photo)
    ):
        weight += 4
    if record.has_full_name:
        weight += 4
    if record.birth_date:
        weight += 2
    return weight


def has_contact(resource: Mapping) -> bool:
    """Whether the first Patient.contact carries a name, telecom, address or organization."""
    contacts = resource.get("contact")
    if not isinstance(contacts, list) or not contacts:
        return False
    contact = contacts[0]
    if not isinstance(contact, Mapping):
        return False
    return any(contact.get(key) for key in ("name", "telecom", "address", "organization"))


def has_telecom(resource: Mapping) -> bool:
    """Whether any Patient.telecom entry carries a value, whatever its system."""
    telecom = resource.get("telecom")
    if not isinstance(telecom, list):
        return False
    return any(clean(point.get("value")) for point in telecom if isinstance(point, Mapping))


def has_minimum_information(record: PatientRecord, resource: Mapping) -> bool:
    """BASE profile: any one of the demographic criteria."""
    return (
        record.has_identifier
        or has_telecom(resource)
        or record.has_full_name
        or record.has_full_home_address
        or record.birth_date is not None
    )


class ProfileValidator:
    """
    Validates $match inputs against the claimed identity-matching profile.

    Args:
        include_photo: Count Patient.photo toward the composite 4-point weight
    """

    def __init__(self, include_photo: bool = True):
        self.include_photo = include_photo

    def validate(self, record: PatientRecord, resource: Mapping) -> ValidationOutcome:
        profile = record.claimed_profile.effective
        weight = total_weight(record, include_photo=self.include_photo)

        failed = []
        if not has_contact(resource):
            failed.append(Predicate.CONTACT)

        threshold = WEIGHT_THRESHOLDS.get(profile)
        if threshold is None:
            minimum_ok = has_minimum_information(record, resource)
        else:
            minimum_ok = weight >= threshold
        if not minimum_ok:
            failed.append(Predicate.MINIMUM_INFORMATION)

        outcome = ValidationOutcome(profile=profile, weight=weight, failed=tuple(failed))
        if not outcome.ok:
            logger.info(
                "Patient rejected by profile validation",
                profile=profile.value,
                weight=weight,
                failed=[p.value for p in outcome.failed],
            )
        return outcome
