"""
Patient Normalizer

Projects a FHIR Patient resource (JSON-shaped dict) onto a flat PatientRecord.
Normalization never fails: malformed elements leave the field absent.
"""
from collections.abc import Mapping
from datetime import date
from typing import Any
import re

import structlog

from priorauth.mpi.models import (
    CodedValue,
    Gender,
    HomeAddress,
    PatientRecord,
    Profile,
)

logger = structlog.get_logger(__name__)

PASSPORT_CODE = "PPN"
DRIVERS_LICENSE_CODE = "DL"

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def clean(value: Any) -> str | None:
    """Trim a string; empty strings and non-strings become absent."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _elements(resource: Mapping, key: str) -> list[Mapping]:
    """Return the list under key, keeping only dict elements."""
    value = resource.get(key)
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, Mapping)]


def parse_birth_date(value: Any) -> date | None:
    text = clean(value)
    if text is None:
        return None
    if _ISO_DATE.match(text):
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
    logger.warning("Unparseable birthDate", birth_date=text)
    return None


def identifier_type_code(identifier: Mapping) -> str | None:
    """Code of the first coding in identifier.type, upper-cased."""
    id_type = identifier.get("type")
    if not isinstance(id_type, Mapping):
        return None
    codings = _elements(id_type, "coding")
    if not codings:
        return None
    code = clean(codings[0].get("code"))
    return code.upper() if code else None


class PatientNormalizer:
    """
    Normalizes Patient resources for matching.

    Args:
        profile_urls: Mapping of BASE/L0/L1 to their StructureDefinition URLs
    """

    def __init__(self, profile_urls: Mapping[Profile, str]):
        self._profiles_by_url = {url: profile for profile, url in profile_urls.items()}

    def normalize(self, resource: Mapping) -> PatientRecord:
        passport, license_number, others = self._identifiers(resource)
        first_name, last_name = self._name(resource)
        email, phone = self._telecom(resource)

        return PatientRecord(
            id=clean(resource.get("id")),
            passport_number=passport,
            drivers_license=license_number,
            other_identifiers=others,
            first_name=first_name,
            last_name=last_name,
            birth_date=parse_birth_date(resource.get("birthDate")),
            gender=self._gender(resource),
            marital_status=self._marital_status(resource),
            home_address=self._home_address(resource),
            email=email,
            phone=phone,
            has_photo=bool(_elements(resource, "photo")),
            claimed_profile=self.claimed_profile(resource),
        )

    def claimed_profile(self, resource: Mapping) -> Profile:
        meta = resource.get("meta")
        if not isinstance(meta, Mapping):
            return Profile.UNKNOWN
        profiles = meta.get("profile")
        if not isinstance(profiles, list) or not profiles:
            return Profile.UNKNOWN
        return self._profiles_by_url.get(clean(profiles[0]), Profile.UNKNOWN)

    def _identifiers(self, resource: Mapping) -> tuple[str | None, str | None, frozenset[str]]:
        passport = None
        license_number = None
        others: set[str] = set()

        for identifier in _elements(resource, "identifier"):
            value = clean(identifier.get("value"))
            if value is None:
                continue
            code = identifier_type_code(identifier)
            if code == PASSPORT_CODE:
                if passport is None:
                    passport = value
            elif code == DRIVERS_LICENSE_CODE:
                if license_number is None:
                    license_number = value
            else:
                others.add(value)

        return passport, license_number, frozenset(others)

    def _name(self, resource: Mapping) -> tuple[str | None, str | None]:
        names = _elements(resource, "name")
        if not names:
            return None, None
        name = names[0]
        given = name.get("given")
        first = clean(given[0]) if isinstance(given, list) and given else None
        return first, clean(name.get("family"))

    def _telecom(self, resource: Mapping) -> tuple[str | None, str | None]:
        email = None
        phone = None
        for contact_point in _elements(resource, "telecom"):
            system = contact_point.get("system")
            value = clean(contact_point.get("value"))
            if value is None:
                continue
            if system == "email" and email is None:
                email = value
            elif system == "phone" and phone is None:
                phone = value
        return email, phone

    def _home_address(self, resource: Mapping) -> HomeAddress | None:
        for address in _elements(resource, "address"):
            if address.get("use") != "home":
                continue
            lines = address.get("line")
            line = clean(lines[0]) if isinstance(lines, list) and lines else None
            return HomeAddress(
                line=line,
                city=clean(address.get("city")),
                state=clean(address.get("state")),
            )
        return None

    def _gender(self, resource: Mapping) -> Gender | None:
        try:
            return Gender(clean(resource.get("gender")))
        except ValueError:
            return None

    def _marital_status(self, resource: Mapping) -> CodedValue | None:
        status = resource.get("maritalStatus")
        if not isinstance(status, Mapping):
            return None
        for coding in _elements(status, "coding"):
            code = clean(coding.get("code"))
            if code:
                return CodedValue(system=clean(coding.get("system")), code=code)
        return None
