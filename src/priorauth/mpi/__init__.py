"""Master Patient Index - identity matching for Patient/$match"""
from priorauth.mpi.matcher import MatchConfig, PatientMatcher, RankedMatches, ScoringScheme, score
from priorauth.mpi.models import Candidate, Gender, PatientRecord, Profile, ScoredCandidate
from priorauth.mpi.normalizer import PatientNormalizer
from priorauth.mpi.retriever import CandidateRetriever
from priorauth.mpi.validator import ProfileValidator, ValidationOutcome, total_weight

__all__ = [
    "Candidate",
    "CandidateRetriever",
    "Gender",
    "MatchConfig",
    "PatientMatcher",
    "PatientNormalizer",
    "PatientRecord",
    "Profile",
    "ProfileValidator",
    "RankedMatches",
    "ScoredCandidate",
    "ScoringScheme",
    "ValidationOutcome",
    "score",
    "total_weight",
]
