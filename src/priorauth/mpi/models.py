"""MPI Data Models"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class Profile(str, Enum):
    """Identity-matching profile a Patient claims in meta.profile."""
    BASE = "base"
    L0 = "l0"
    L1 = "l1"
    UNKNOWN = "unknown"

    @property
    def effective(self) -> "Profile":
        """Unrecognized profiles are validated as BASE."""
        return Profile.BASE if self is Profile.UNKNOWN else self


@dataclass(frozen=True)
class CodedValue:
    system: str | None
    code: str


@dataclass(frozen=True)
class HomeAddress:
    line: str | None = None
    city: str | None = None
    state: str | None = None

    @property
    def is_full(self) -> bool:
        return self.line is not None and self.city is not None

    @property
    def match_key(self) -> str | None:
        """Line, city and state compared as one unit."""
        if not self.is_full:
            return None
        parts = [self.line, self.city, self.state or ""]
        return "|".join(p.casefold() for p in parts)


@dataclass(frozen=True)
class PatientRecord:
    """Flat projection of a Patient resource onto the attributes the matcher understands."""
    id: str | None = None
    passport_number: str | None = None
    drivers_license: str | None = None
    other_identifiers: frozenset[str] = field(default_factory=frozenset)
    first_name: str | None = None
    last_name: str | None = None
    birth_date: date | None = None
    gender: Gender | None = None
    marital_status: CodedValue | None = None
    home_address: HomeAddress | None = None
    email: str | None = None
    phone: str | None = None
    has_photo: bool = False
    claimed_profile: Profile = Profile.UNKNOWN

    @property
    def has_full_name(self) -> bool:
        return self.first_name is not None and self.last_name is not None

    @property
    def full_name_key(self) -> str | None:
        if not self.has_full_name:
            return None
        return f"{self.first_name} {self.last_name}".casefold()

    @property
    def has_full_home_address(self) -> bool:
        return self.home_address is not None and self.home_address.is_full

    @property
    def has_identifier(self) -> bool:
        return bool(self.passport_number or self.drivers_license or self.other_identifiers)


@dataclass(frozen=True)
class Candidate:
    """A stored Patient resource together with its normalized record."""
    resource: dict
    record: PatientRecord


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    score: int
    field_scores: dict[str, int] = field(default_factory=dict, compare=False, hash=False)

    @property
    def id(self) -> str:
        return self.candidate.record.id or ""

    @property
    def sort_key(self) -> tuple[int, str]:
        """Score descending, then id ascending."""
        return (-self.score, self.id)
