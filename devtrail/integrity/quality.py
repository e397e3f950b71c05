"""
Session quality scoring and structural validation.

Five weighted factors, each in [0, 1]:

    completeness          0.30  id, timestamps, non-empty lists
    consistency           0.20  timestamps on the first 10 activities
    activity_level        0.25  stepped on activity count
    problem_resolution    0.15  solutions / problems
    structural_integrity  0.10  metadata present and counts agree
"""

from __future__ import annotations

from typing import Any

from ..errors import CorruptionError, error_record

QUALITY_WEIGHTS: dict[str, float] = {
    "completeness": 0.30,
    "consistency": 0.20,
    "activity_level": 0.25,
    "problem_resolution": 0.15,
    "structural_integrity": 0.10,
}

LIST_FIELDS = (
    "activities",
    "fileChanges",
    "gitCommits",
    "commands",
    "decisions",
    "problems",
    "solutions",
)

CONSISTENCY_SAMPLE = 10


def _list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    return value if isinstance(value, list) else []


def assess_completeness(data: dict[str, Any]) -> float:
    score = 0.0
    if data.get("sessionId"):
        score += 0.2
    if data.get("start") and data.get("lastUpdate"):
        score += 0.2
    if _list(data, "activities"):
        score += 0.3
    if _list(data, "fileChanges"):
        score += 0.2
    if _list(data, "gitCommits"):
        score += 0.1
    return min(score, 1.0)


def assess_consistency(data: dict[str, Any]) -> float:
    score = 1.0
    for activity in _list(data, "activities")[:CONSISTENCY_SAMPLE]:
        if not isinstance(activity, dict) or not activity.get("timestamp"):
            score -= 0.1
    return max(score, 0.0)


def assess_activity_level(data: dict[str, Any]) -> float:
    count = len(_list(data, "activities"))
    if count == 0:
        return 0.0
    if count < 5:
        return 0.3
    if count < 20:
        return 0.6
    if count < 50:
        return 0.8
    return 1.0


def assess_problem_resolution(data: dict[str, Any]) -> float:
    problems = len(_list(data, "problems"))
    solutions = len(_list(data, "solutions"))
    if problems == 0:
        return 0.8 if solutions > 0 else 0.5
    return min(solutions / problems, 1.0)


def assess_structural_integrity(data: dict[str, Any]) -> float:
    score = 1.0
    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        score -= 0.3
        metadata = {}
    activities = data.get("activities")
    if isinstance(activities, list) and metadata.get("activitiesCount") != len(activities):
        score -= 0.2
    return max(score, 0.0)


FACTORS = {
    "completeness": assess_completeness,
    "consistency": assess_consistency,
    "activity_level": assess_activity_level,
    "problem_resolution": assess_problem_resolution,
    "structural_integrity": assess_structural_integrity,
}


def quality_grade(score: float) -> str:
    if score >= 0.9:
        return "A"
    if score >= 0.8:
        return "B"
    if score >= 0.7:
        return "C"
    if score >= 0.6:
        return "D"
    return "F"


def calculate_quality_score(data: Any) -> dict[str, Any]:
    """
    Weighted quality score for a parsed session document.

    Returns:
        ``{overall, factors, weights, grade}``; overall is rounded to two
        decimals and clamped to [0, 1], and the grade is taken from it.
    """
    if not isinstance(data, dict):
        data = {}
    factors = {name: round(assess(data), 4) for name, assess in FACTORS.items()}
    overall = sum(score * QUALITY_WEIGHTS[name] for name, score in factors.items())
    overall = min(max(round(overall, 2), 0.0), 1.0)
    return {
        "overall": overall,
        "factors": factors,
        "weights": dict(QUALITY_WEIGHTS),
        "grade": quality_grade(overall),
    }


def zero_quality_score() -> dict[str, Any]:
    """Score reported when a session could not be assessed."""
    return {"overall": 0.0, "factors": {}, "weights": dict(QUALITY_WEIGHTS), "grade": "F"}


def validate_session_structure(data: Any) -> dict[str, Any]:
    """
    Check required fields and list-typed fields.

    Returns:
        ``{isValid, errors, warnings}`` with typed error records
    """
    errors: list[dict[str, Any]] = []
    warnings: list[dict[str, Any]] = []

    if not isinstance(data, dict):
        errors.append(
            CorruptionError(f"Session document is a {type(data).__name__}, expected an object").to_dict()
        )
        return {"isValid": False, "errors": errors, "warnings": warnings}

    if not data.get("sessionId"):
        errors.append(error_record("missing_field", "critical", "Missing sessionId", field="sessionId"))
    if not data.get("start"):
        errors.append(error_record("missing_field", "high", "Missing start", field="start"))

    for field in LIST_FIELDS:
        value = data.get(field)
        if value is not None and not isinstance(value, list):
            errors.append(
                error_record(
                    "invalid_type",
                    "high",
                    f"{field} should be an array, got {type(value).__name__}",
                    field=field,
                    expected="array",
                )
            )

    activities = _list(data, "activities")
    if not activities:
        warnings.append(error_record("empty_activities", "medium", "Session has no activities"))

    missing = sum(1 for a in activities if not isinstance(a, dict) or not a.get("timestamp"))
    if missing:
        warnings.append(
            error_record("missing_timestamp", "low", f"{missing} activities have no timestamp", count=missing)
        )

    return {"isValid": not errors, "errors": errors, "warnings": warnings}


__all__ = [
    "QUALITY_WEIGHTS",
    "LIST_FIELDS",
    "assess_completeness",
    "assess_consistency",
    "assess_activity_level",
    "assess_problem_resolution",
    "assess_structural_integrity",
    "quality_grade",
    "calculate_quality_score",
    "zero_quality_score",
    "validate_session_structure",
]
