"""Session integrity: quality scoring, validation, recovery and QA reports."""

from .quality import QUALITY_WEIGHTS, calculate_quality_score, quality_grade, validate_session_structure
from .recovery import (
    BackupStrategy,
    NotApplicable,
    PartialExtractionStrategy,
    Recovered,
    RecoveryResult,
    recover_session,
)
from .report import build_report, generate_recommendations, render_markdown
from .verifier import IntegrityVerifier

__all__ = [
    "IntegrityVerifier",
    "QUALITY_WEIGHTS",
    "calculate_quality_score",
    "quality_grade",
    "validate_session_structure",
    "BackupStrategy",
    "PartialExtractionStrategy",
    "Recovered",
    "NotApplicable",
    "RecoveryResult",
    "recover_session",
    "build_report",
    "generate_recommendations",
    "render_markdown",
]
