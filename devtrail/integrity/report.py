"""QA report assembly, recommendations and Markdown rendering."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

from ..session_schema import now_iso


def generate_recommendations(results: dict[str, Any]) -> list[dict[str, str]]:
    """Recommendations derived from batch aggregate counts."""
    recommendations = []

    corrupted = results.get("corruptedSessions", 0)
    if corrupted > 0:
        recommendations.append(
            {
                "priority": "high",
                "category": "data_integrity",
                "message": (
                    f"{corrupted} corrupted sessions detected. "
                    "Consider implementing more robust backup strategies."
                ),
            }
        )

    if results.get("averageQualityScore", 0) < 0.7:
        recommendations.append(
            {
                "priority": "medium",
                "category": "quality_improvement",
                "message": "Low average quality score. Review session capture processes and data validation.",
            }
        )

    empty = results.get("emptySessions", 0)
    if empty > 0:
        recommendations.append(
            {
                "priority": "low",
                "category": "session_monitoring",
                "message": f"{empty} empty sessions found. Consider improving session lifecycle management.",
            }
        )

    return recommendations


def new_report_id() -> str:
    return f"qa-report-{datetime.now().strftime('%Y-%m-%d')}-{int(time.time() * 1000)}"


def build_report(
    results: dict[str, Any],
    circuit_state: str,
    recent_failures: int,
    report_id: str | None = None,
) -> dict[str, Any]:
    """Assemble the JSON report for a batch result."""
    now = now_iso()
    return {
        "reportId": report_id or new_report_id(),
        "timestamp": now,
        "summary": {
            "totalSessions": results.get("totalSessions", 0),
            "averageQualityScore": results.get("averageQualityScore", 0),
            "healthySessions": results.get("healthySessions", 0),
            "problematicSessions": results.get("problematicSessions", 0),
            "corruptedSessions": results.get("corruptedSessions", 0),
            "emptySessions": results.get("emptySessions", 0),
        },
        "details": results.get("details", []),
        "recommendations": generate_recommendations(results),
        "systemHealth": {
            "circuitBreakerStatus": circuit_state,
            "recentFailures": recent_failures,
            "lastAssessment": now,
        },
    }


def render_markdown(report: dict[str, Any]) -> str:
    summary = report["summary"]
    health = report["systemHealth"]
    recommendations = "\n".join(
        f"- **{r['category']}** ({r['priority']}): {r['message']}" for r in report["recommendations"]
    )
    if not recommendations:
        recommendations = "- None"

    return f"""# QA Report - {report['reportId']}

## Summary
- **Total Sessions**: {summary['totalSessions']}
- **Average Quality Score**: {summary['averageQualityScore']:.2f}
- **Healthy Sessions**: {summary['healthySessions']}
- **Problematic Sessions**: {summary['problematicSessions']}
- **Corrupted Sessions**: {summary['corruptedSessions']}
- **Empty Sessions**: {summary['emptySessions']}

## System Health
- **Circuit Breaker**: {health['circuitBreakerStatus']}
- **Recent Failures**: {health['recentFailures']}
- **Last Assessment**: {health['lastAssessment']}

## Recommendations
{recommendations}

Generated on: {report['timestamp']}
"""


__all__ = ["generate_recommendations", "new_report_id", "build_report", "render_markdown"]
