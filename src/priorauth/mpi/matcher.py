"""
Weighted Patient Match Scoring

Each scored field contributes, for input value i and candidate value c:
    0   when i is absent (the input asserts nothing)
    0   when c is absent
    +W  when i and c are equal after normalization
    -W  otherwise

The default scheme scores passport number (10), driver's license (10) and
full name (4, first and last compared as one unit). The extended scheme adds
birth date, e-mail, phone and full home address.
"""
from collections.abc import AsyncIterable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from priorauth.mpi.models import Candidate, PatientRecord, ScoredCandidate

logger = structlog.get_logger(__name__)


class ScoringScheme(str, Enum):
    DEFAULT = "default"
    EXTENDED = "extended"


@dataclass(frozen=True)
class ScoredField:
    name: str
    weight: int
    key: Callable[[PatientRecord], str | None]

    def contribution(self, input_record: PatientRecord, candidate: PatientRecord) -> int:
        wanted = self.key(input_record)
        if wanted is None:
            return 0
        found = self.key(candidate)
        if found is None:
            return 0
        return self.weight if found == wanted else -self.weight


def _folded(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


DEFAULT_FIELDS = (
    ScoredField("passport_number", 10, lambda r: r.passport_number),
    ScoredField("drivers_license", 10, lambda r: r.drivers_license),
    ScoredField("full_name", 4, lambda r: r.full_name_key),
)

EXTENDED_FIELDS = DEFAULT_FIELDS + (
    ScoredField("birth_date", 2, lambda r: r.birth_date.isoformat() if r.birth_date else None),
    ScoredField("email", 4, lambda r: _folded(r.email)),
    ScoredField("phone", 4, lambda r: _folded(r.phone)),
    ScoredField("home_address", 4, lambda r: r.home_address.match_key if r.home_address else None),
)

SCHEME_FIELDS = {
    ScoringScheme.DEFAULT: DEFAULT_FIELDS,
    ScoringScheme.EXTENDED: EXTENDED_FIELDS,
}


def field_scores(
    input_record: PatientRecord,
    candidate: PatientRecord,
    scheme: ScoringScheme = ScoringScheme.DEFAULT,
) -> dict[str, int]:
    return {f.name: f.contribution(input_record, candidate) for f in SCHEME_FIELDS[scheme]}


def score(
    input_record: PatientRecord,
    candidate: PatientRecord,
    scheme: ScoringScheme = ScoringScheme.DEFAULT,
) -> int:
    """Signed match score of candidate against the input record."""
    return sum(field_scores(input_record, candidate, scheme).values())


@dataclass
class MatchConfig:
    score_floor: int = 0
    max_results: int | None = None
    scheme: ScoringScheme = ScoringScheme.DEFAULT


@dataclass
class RankedMatches:
    """Admitted candidates in rank order; total counts all admitted before truncation."""
    matches: list[ScoredCandidate] = field(default_factory=list)
    total: int = 0


class PatientMatcher:
    """
    Scores candidates, drops those below the score floor and ranks the rest by
    score descending, then id ascending.
    """

    def __init__(self, config: MatchConfig | None = None):
        self.config = config or MatchConfig()

    def evaluate(self, input_record: PatientRecord, candidate: Candidate) -> ScoredCandidate:
        scores = field_scores(input_record, candidate.record, self.config.scheme)
        scored = ScoredCandidate(candidate=candidate, score=sum(scores.values()), field_scores=scores)
        logger.debug(
            "Candidate scored",
            candidate_id=scored.id,
            score=scored.score,
            field_scores=scores,
        )
        return scored

    def admits(self, scored: ScoredCandidate) -> bool:
        return scored.score >= self.config.score_floor

    def rank(self, input_record: PatientRecord, candidates: Iterable[Candidate]) -> RankedMatches:
        ranking = _Ranking(self.config.max_results)
        for candidate in candidates:
            scored = self.evaluate(input_record, candidate)
            if self.admits(scored):
                ranking.add(scored)
        return ranking.result()

    async def rank_stream(
        self,
        input_record: PatientRecord,
        candidates: AsyncIterable[Candidate],
    ) -> RankedMatches:
        """Rank a candidate stream, holding at most the admitted candidates in memory."""
        ranking = _Ranking(self.config.max_results)
        async for candidate in candidates:
            scored = self.evaluate(input_record, candidate)
            if self.admits(scored):
                ranking.add(scored)
        return ranking.result()


class _Ranking:
    """Accumulates admitted candidates, pruning to the best max_results as it goes."""

    def __init__(self, max_results: int | None):
        self.max_results = max_results
        self.total = 0
        self._kept: list[ScoredCandidate] = []

    def add(self, scored: ScoredCandidate) -> None:
        self.total += 1
        self._kept.append(scored)
        if self.max_results is not None and len(self._kept) >= 2 * self.max_results:
            self._prune()

    def _prune(self) -> None:
        self._kept.sort(key=lambda s: s.sort_key)
        if self.max_results is not None:
            del self._kept[self.max_results:]

    def result(self) -> RankedMatches:
        self._prune()
        return RankedMatches(matches=self._kept, total=self.total)
