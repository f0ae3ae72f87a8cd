"""
Patient/$match Service

Runs one $match request through its stages:

    RECEIVE -> PARSE -> VALIDATE_SHAPE -> VALIDATE_MIN -> RETRIEVE -> SCORE -> EMIT

Any stage may end in ERROR. The outcome is returned as a tagged result
(MatchSuccess or MatchFailure); the HTTP layer only renders it. Faults that are
not the client's doing (undecodable body, store failures, anything unexpected)
collapse into one FATAL failure whose details go to the log only.
"""
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
import asyncio

import structlog

from priorauth.db.store import PatientStore, StoreError
from priorauth.fhir.codec import FhirFormat, FhirParseError, parse
from priorauth.fhir.resources import IssueSeverity, IssueType, operation_outcome, searchset_bundle
from priorauth.mpi.matcher import MatchConfig, PatientMatcher, RankedMatches, ScoringScheme
from priorauth.mpi.normalizer import PatientNormalizer
from priorauth.mpi.retriever import CandidateRetriever
from priorauth.mpi.validator import ProfileValidator
from priorauth.security.audit import AuditOutcome

logger = structlog.get_logger(__name__)

REQUIRES_PARAMETERS = (
    "Patient matching Patient/$match Operation requires a Parameters resource "
    "containing a single Patient resource in parameter field."
)
MISSING_PARAMETER = "Missing Parameters.parameter"
REQUIRES_PATIENT = "Parameters.parameter must contain a Patient resource as its first element."
PROCESS_FAILED = "Unable to process the request properly. Check the log for more details."
TIMED_OUT = "The match request did not complete before its deadline."


class MatchStage(str, Enum):
    RECEIVE = "receive"
    PARSE = "parse"
    VALIDATE_SHAPE = "validate-shape"
    VALIDATE_MIN = "validate-min"
    RETRIEVE = "retrieve"
    SCORE = "score"
    EMIT = "emit"
    ERROR = "error"


@dataclass(frozen=True)
class MatchSuccess:
    bundle: dict
    ranked: RankedMatches

    status_code = 200
    audit_outcome = AuditOutcome.SUCCESS

    @property
    def resource(self) -> dict:
        return self.bundle


@dataclass(frozen=True)
class MatchFailure:
    status_code: int
    severity: IssueSeverity
    code: IssueType
    diagnostics: str
    audit_outcome: AuditOutcome
    failed_at: MatchStage

    @property
    def resource(self) -> dict:
        return operation_outcome(self.severity, self.code, self.diagnostics)


MatchResult = MatchSuccess | MatchFailure


def _invalid(diagnostics: str, stage: MatchStage) -> MatchFailure:
    return MatchFailure(
        status_code=400,
        severity=IssueSeverity.ERROR,
        code=IssueType.INVALID,
        diagnostics=diagnostics,
        audit_outcome=AuditOutcome.MINOR_FAILURE,
        failed_at=stage,
    )


def _fatal(stage: MatchStage) -> MatchFailure:
    return MatchFailure(
        status_code=500,
        severity=IssueSeverity.FATAL,
        code=IssueType.STRUCTURE,
        diagnostics=PROCESS_FAILED,
        audit_outcome=AuditOutcome.SERIOUS_FAILURE,
        failed_at=stage,
    )


def patient_from_parameters(resource: Mapping) -> dict | MatchFailure:
    """Pull the Patient out of the first parameter of a Parameters resource."""
    if resource.get("resourceType") != "Parameters":
        logger.error("Body is not a Parameters resource", resource_type=resource.get("resourceType"))
        return _invalid(REQUIRES_PARAMETERS, MatchStage.VALIDATE_SHAPE)

    parameters = resource.get("parameter")
    if not isinstance(parameters, list) or not parameters:
        logger.error("Parameters.parameter field is missing")
        return _invalid(MISSING_PARAMETER, MatchStage.VALIDATE_SHAPE)

    first = parameters[0]
    patient = first.get("resource") if isinstance(first, Mapping) else None
    if not isinstance(patient, dict) or patient.get("resourceType") != "Patient":
        logger.error("First parameter does not hold a Patient")
        return _invalid(REQUIRES_PATIENT, MatchStage.VALIDATE_SHAPE)
    return patient


class MatchService:
    """
    Stateless $match pipeline over a Patient store.

    Args:
        store: Record store to recall candidates from
        normalizer: Patient normalizer (shared by input and candidates)
        validator: Profile validator for the input Patient
        matcher: Scorer/ranker
        timeout_seconds: Deadline for retrieval and scoring
    """

    def __init__(
        self,
        store: PatientStore,
        normalizer: PatientNormalizer,
        validator: ProfileValidator,
        matcher: PatientMatcher,
        timeout_seconds: float | None = None,
    ):
        self.normalizer = normalizer
        self.validator = validator
        self.matcher = matcher
        self.retriever = CandidateRetriever(store, normalizer)
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, store: PatientStore, settings) -> "MatchService":
        match = settings.match
        return cls(
            store=store,
            normalizer=PatientNormalizer(match.profile_urls),
            validator=ProfileValidator(include_photo=match.include_photo_in_composite_weight),
            matcher=PatientMatcher(
                MatchConfig(
                    score_floor=match.score_floor,
                    max_results=match.max_results,
                    scheme=ScoringScheme(match.scoring_scheme),
                )
            ),
            timeout_seconds=match.timeout_seconds,
        )

    async def match(self, body: str | bytes, fmt: FhirFormat, base_url: str) -> MatchResult:
        log = logger.bind(format=fmt.value)
        stage = MatchStage.PARSE
        try:
            resource = parse(body, fmt)

            stage = MatchStage.VALIDATE_SHAPE
            patient = patient_from_parameters(resource)
            if isinstance(patient, MatchFailure):
                return patient

            stage = MatchStage.VALIDATE_MIN
            record = self.normalizer.normalize(patient)
            validation = self.validator.validate(record, patient)
            if not validation.ok:
                return _invalid(validation.message, stage)

            stage = MatchStage.RETRIEVE
            ranked = await asyncio.wait_for(
                self.matcher.rank_stream(record, self.retriever.candidates(record)),
                timeout=self.timeout_seconds,
            )

            stage = MatchStage.EMIT
            bundle = searchset_bundle(
                (scored.candidate.resource for scored in ranked.matches),
                base_url=base_url,
                total=ranked.total,
            )
            log.info(
                "Patient match completed",
                profile=validation.profile.value,
                admitted=ranked.total,
                returned=len(ranked.matches),
            )
            return MatchSuccess(bundle=bundle, ranked=ranked)

        except FhirParseError as e:
            log.error("Failed to decode $match body", error=str(e))
            return _fatal(stage)
        except asyncio.TimeoutError:
            log.warning("Patient match timed out", timeout_seconds=self.timeout_seconds)
            return MatchFailure(
                status_code=500,
                severity=IssueSeverity.ERROR,
                code=IssueType.STRUCTURE,
                diagnostics=TIMED_OUT,
                audit_outcome=AuditOutcome.MINOR_FAILURE,
                failed_at=stage,
            )
        except StoreError as e:
            log.error("Patient store failed during match", error=str(e))
            return _fatal(stage)
        except Exception:
            log.exception("Patient match failed", stage=stage.value)
            return _fatal(stage)
