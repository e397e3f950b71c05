"""
IntegrityVerifier - audits persisted session files.

Operations return JSON-compatible dicts and never raise past this class.
Corrupted inputs are only ever read; recovered data goes to
``<session_dir>/recovered/<id>.json``.
"""

from __future__ import annotations

import json
import logging
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import VerifierConfig
from ..errors import CircuitOpenError, CorruptionError, error_record
from ..serialization import BoundedSerializer, CircuitBreaker
from ..session_schema import now_iso
from ..storage import atomic_write_text
from .quality import calculate_quality_score, validate_session_structure, zero_quality_score
from .recovery import DEFAULT_STRATEGIES, RecoveryStrategy, recover_session
from .report import build_report, generate_recommendations, render_markdown

logger = logging.getLogger(__name__)

HEALTHY_THRESHOLD = 0.7
EMPTY_THRESHOLD = 0.3


@dataclass
class _Inspection:
    """Result of reading one session file."""

    validation: dict[str, Any]
    data: Any = None
    parsed: bool = False


def _is_session_file(path: Path) -> bool:
    name = path.name
    return (
        path.is_file()
        and name.endswith(".json")
        and not name.endswith(".backup.json")
        and not name.startswith(".")
    )


class IntegrityVerifier:
    """
    Quality assessment, integrity validation and recovery for sessions.

    Owns one CircuitBreaker: repeated unexpected assessment failures open it
    and ``analyze_session`` is skipped until the cooldown elapses. Corrupt
    session data is a finding, not a failure, and does not count toward it.
    """

    def __init__(
        self,
        session_dir: Path | str | None = None,
        reports_dir: Path | str | None = None,
        config: VerifierConfig | None = None,
        strategies: tuple[RecoveryStrategy, ...] = DEFAULT_STRATEGIES,
        breaker: CircuitBreaker | None = None,
    ):
        self.config = config or VerifierConfig()
        self.session_dir = Path(session_dir or self.config.session_dir).expanduser()
        self.reports_dir = Path(reports_dir or self.config.reports_dir).expanduser()
        self.strategies = strategies
        self.breaker = breaker or CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            timeout=self.config.circuit_breaker_timeout,
            name="quality check",
        )
        self.serializer = BoundedSerializer(
            max_string_length=10 * 1024 * 1024,
            max_content_length=5 * 1024,
            max_array_items=100,
        )

    def _primary_path(self, session_id: str) -> Path:
        return self.session_dir / f"{session_id}.json"

    def _corrupted_path(self, session_id: str) -> Path:
        return self.session_dir / f"{session_id}.json.corrupted"

    def _backup_path(self, session_id: str) -> Path:
        return self.session_dir / f"{session_id}.backup.json"

    # ------------------------------------------------------------------
    # Integrity validation
    # ------------------------------------------------------------------

    def _inspect(self, session_id: str) -> _Inspection:
        primary = self._primary_path(session_id)
        corrupted = self._corrupted_path(session_id)

        target = primary
        is_corrupted = False
        if not primary.exists():
            if corrupted.exists():
                logger.warning(f"Using corrupted file for validation: {session_id}")
                target = corrupted
                is_corrupted = True
            else:
                logger.error(f"Session file not found: {session_id}")
                return _Inspection(
                    validation={
                        "isValid": False,
                        "errors": [
                            error_record(
                                "file_not_found",
                                "critical",
                                f"Session file does not exist: {primary} or {corrupted}",
                            )
                        ],
                        "warnings": [],
                        "metadata": {
                            "fileSize": 0,
                            "lastModified": None,
                            "hasBackup": self._backup_path(session_id).exists(),
                            "isCorrupted": False,
                            "filePath": None,
                        },
                    }
                )

        stat = target.stat()
        metadata = {
            "fileSize": stat.st_size,
            "lastModified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            "hasBackup": self._backup_path(session_id).exists(),
            "isCorrupted": is_corrupted,
            "filePath": str(target),
        }

        data: Any = None
        parsed = False
        warnings: list[dict[str, Any]] = []
        if stat.st_size == 0:
            logger.warning(f"Empty session file detected: {session_id}")
            errors = [error_record("empty_file", "critical", "Session file is empty")]
        else:
            try:
                data = json.loads(target.read_text(encoding="utf-8"))
                parsed = True
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.error(f"Failed to parse session {session_id}: {e}")
                errors = [CorruptionError(f"JSON parsing failed: {e}").to_dict()]
            else:
                structure = validate_session_structure(data)
                errors = structure["errors"]
                warnings = structure["warnings"]

        if is_corrupted:
            errors = [error_record("file_corrupted", "critical", "Using .corrupted file")] + errors

        validation = {
            "isValid": not errors,
            "errors": errors,
            "warnings": warnings,
            "metadata": metadata,
        }
        return _Inspection(validation=validation, data=data, parsed=parsed and not is_corrupted)

    def validate_session_integrity(self, session_id: str) -> dict[str, Any]:
        """
        Check a session file for existence, emptiness, parse errors and structure.

        Returns:
            ``{isValid, errors, warnings, metadata}``
        """
        try:
            return self._inspect(session_id).validation
        except Exception as e:
            logger.error(f"Session integrity validation failed for {session_id}: {e}")
            return {
                "isValid": False,
                "errors": [error_record("validation_error", "critical", f"Validation failed: {e}")],
                "warnings": [],
                "metadata": None,
            }

    # ------------------------------------------------------------------
    # Quality assessment
    # ------------------------------------------------------------------

    def analyze_session(self, session_id: str) -> dict[str, Any]:
        """Assess one session: quality score, integrity and completeness flags."""
        if self.breaker.is_open():
            logger.warning("Quality check circuit breaker activated - skipping analysis")
            return {
                "sessionId": session_id,
                "circuitBreakerActive": True,
                "timestamp": now_iso(),
                "message": "Quality assessment skipped - circuit breaker is open",
                "errors": [
                    CircuitOpenError(
                        "Too many recent failures, circuit breaker activated",
                        failures=self.breaker.failures,
                    ).to_dict()
                ],
                "warnings": [],
            }

        try:
            logger.info(f"Analyzing session: {session_id}")
            inspection = self._inspect(session_id)
            assessment = self._assess(session_id, inspection)
            self.breaker.record_success()
            logger.info(
                f"Session analysis complete: {session_id}, score: {assessment['qualityScore']['overall']}"
            )
            return assessment
        except Exception as e:
            self.breaker.record_failure()
            logger.error(
                f"Quality analysis failed for {session_id}: {e} "
                f"(type={type(e).__name__}, failures={self.breaker.failures})"
            )
            return {
                "sessionId": session_id,
                "timestamp": now_iso(),
                "qualityScore": zero_quality_score(),
                "errors": [error_record("assessment_error", "critical", str(e), stack=traceback.format_exc())],
                "warnings": [],
            }

    def _assess(self, session_id: str, inspection: _Inspection) -> dict[str, Any]:
        validation = inspection.validation

        if not inspection.parsed:
            errors = list(validation["errors"])
            if not self._primary_path(session_id).exists():
                errors.insert(
                    0,
                    error_record(
                        "load_failure",
                        "critical",
                        f"Could not load session data from {self._primary_path(session_id)}",
                    ),
                )
            return {
                "sessionId": session_id,
                "timestamp": now_iso(),
                "qualityScore": zero_quality_score(),
                "integrity": validation,
                "errors": errors,
                "warnings": validation["warnings"],
            }

        data = inspection.data if isinstance(inspection.data, dict) else {}

        def _count(key: str) -> int:
            value = data.get(key)
            return len(value) if isinstance(value, list) else 0

        return {
            "sessionId": data.get("sessionId") or session_id,
            "timestamp": now_iso(),
            "qualityScore": calculate_quality_score(data),
            "integrity": validation,
            "completeness": {
                "hasActivities": _count("activities") > 0,
                "hasFileChanges": _count("fileChanges") > 0,
                "hasCommits": _count("gitCommits") > 0,
                "hasDecisions": _count("decisions") > 0,
            },
            "metadata": {
                "activitiesCount": _count("activities"),
                "fileChangesCount": _count("fileChanges"),
                "commitsCount": _count("gitCommits"),
                "assessmentTime": now_iso(),
            },
            "errors": validation["errors"],
            "warnings": validation["warnings"],
        }

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def attempt_session_recovery(self, session_id: str, write: bool = True) -> dict[str, Any]:
        """
        Recover a session from its backup or corrupted text.

        Args:
            session_id: Session to recover
            write: Write recovered data to ``recovered/<id>.json``

        Returns:
            ``{recoverable, status, data, source, attempts, recoveredPath}``
        """
        logger.info(f"Attempting recovery for session: {session_id}")
        try:
            result = recover_session(self.session_dir, session_id, self.strategies)
            if result.recoverable and write and result.data is not None:
                target = self.session_dir / "recovered" / f"{session_id}.json"
                atomic_write_text(target, json.dumps(result.data, indent=2, default=str))
                result.recovered_path = str(target)
                logger.info(f"Recovered data for {session_id} written to {target}")
            return result.to_dict()
        except Exception as e:
            logger.error(f"Recovery attempt failed for {session_id}: {e}")
            return {
                "recoverable": False,
                "status": "recovery_failed",
                "data": None,
                "source": None,
                "attempts": [],
                "recoveredPath": None,
                "error": error_record("recovery_failed", "critical", f"Recovery attempt failed: {e}"),
            }

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    def list_session_ids(self, directory: Path | None = None) -> list[str]:
        target = Path(directory) if directory else self.session_dir
        if not target.is_dir():
            return []
        return sorted(path.name[: -len(".json")] for path in target.iterdir() if _is_session_file(path))

    def process_session_batch(self, directory: Path | str | None = None) -> dict[str, Any]:
        """
        Analyze every session file in ``directory`` and classify the results.

        Sessions are processed in id order, so two runs over an unchanged
        directory give identical counts and average score.
        """
        target = Path(directory).expanduser() if directory else self.session_dir
        results: dict[str, Any] = {
            "directory": str(target),
            "totalSessions": 0,
            "processedSessions": 0,
            "healthySessions": 0,
            "problematicSessions": 0,
            "corruptedSessions": 0,
            "emptySessions": 0,
            "totalQualityScore": 0.0,
            "averageQualityScore": 0.0,
            "details": [],
            "recommendations": [],
        }

        try:
            session_ids = self.list_session_ids(target)
        except OSError as e:
            logger.error(f"Batch processing failed: {e}")
            results["errors"] = [error_record("batch_error", "critical", f"Batch processing failed: {e}")]
            return results

        results["totalSessions"] = len(session_ids)
        logger.info(f"Processing batch of {len(session_ids)} sessions from {target}")

        # Sessions in another directory are analyzed through a scoped verifier.
        verifier = self if target == self.session_dir else self._scoped(target)

        for session_id in session_ids:
            assessment = verifier.analyze_session(session_id)
            results["details"].append(assessment)
            results["processedSessions"] += 1
            results[self._classify(assessment)] += 1
            score = assessment.get("qualityScore") or {}
            results["totalQualityScore"] += score.get("overall", 0) or 0

        if results["processedSessions"]:
            results["averageQualityScore"] = round(
                results["totalQualityScore"] / results["processedSessions"], 4
            )
        results["totalQualityScore"] = round(results["totalQualityScore"], 4)
        results["recommendations"] = generate_recommendations(results)

        logger.info(
            f"Batch processing complete: {results['processedSessions']}/{results['totalSessions']} sessions"
        )
        return results

    def _scoped(self, directory: Path) -> "IntegrityVerifier":
        return IntegrityVerifier(
            session_dir=directory,
            reports_dir=self.reports_dir,
            config=self.config,
            strategies=self.strategies,
            breaker=self.breaker,
        )

    @staticmethod
    def _classify(assessment: dict[str, Any]) -> str:
        errors = assessment.get("errors") or []
        if errors:
            if any(e.get("type") == "corruption" for e in errors):
                return "corruptedSessions"
            return "problematicSessions"

        overall = (assessment.get("qualityScore") or {}).get("overall", 0)
        if overall > HEALTHY_THRESHOLD:
            return "healthySessions"
        if overall < EMPTY_THRESHOLD:
            return "emptySessions"
        return "problematicSessions"

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def generate_quality_report(self, results: dict[str, Any], write: bool = True) -> dict[str, Any]:
        """
        Build the QA report for a batch result and write JSON + Markdown.

        Returns:
            ``{success, reportPath, reportId, summary, recommendations, systemHealth}``
        """
        report = build_report(results, self.breaker.state, self.breaker.failures)
        report_path: Path | None = None

        if write:
            try:
                report_path = self.reports_dir / f"{report['reportId']}.json"
                atomic_write_text(report_path, self.serializer.safe_stringify(report, indent=2))
                atomic_write_text(report_path.with_suffix(".md"), render_markdown(report))
                logger.info(f"Quality report generated: {report_path}")
            except OSError as e:
                logger.error(f"Failed to generate quality report: {e}")
                return {
                    "success": False,
                    "reportPath": None,
                    "reportId": report["reportId"],
                    "error": error_record("report_error", "high", f"Report generation failed: {e}"),
                }

        return {
            "success": True,
            "reportPath": str(report_path) if report_path else None,
            "reportId": report["reportId"],
            "summary": report["summary"],
            "recommendations": report["recommendations"],
            "systemHealth": report["systemHealth"],
        }


__all__ = ["IntegrityVerifier"]
