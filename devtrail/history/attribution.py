"""
Keyword-based project attribution.

Attribution is a heuristic: a commit message or path that mentions a
configured keyword is assigned to that keyword's project. Results are
labelled with ``CONFIDENCE = "low"`` and must not drive anything that needs
to be correct.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from ..config import DEFAULT_PROJECT_KEYWORDS

CONFIDENCE = "low"


@dataclass(frozen=True)
class Attribution:
    project: str
    matched_keyword: str | None
    confidence: str = CONFIDENCE


class ProjectAttributor:
    """
    Assign text to a project by keyword.

    Keywords are tried in mapping order and matched case-insensitively; when
    several match, the first configured keyword wins. No match yields the
    default project with ``matched_keyword=None``.
    """

    def __init__(
        self,
        keywords: Mapping[str, str] | None = None,
        default_project: str = "pachacuti",
    ):
        self.keywords = dict(DEFAULT_PROJECT_KEYWORDS if keywords is None else keywords)
        self.default_project = default_project

    def attribute(self, *texts: str) -> Attribution:
        haystack = " ".join(t for t in texts if t).lower()
        for keyword, project in self.keywords.items():
            if keyword.lower() in haystack:
                return Attribution(project=project, matched_keyword=keyword)
        return Attribution(project=self.default_project, matched_keyword=None)


__all__ = ["CONFIDENCE", "Attribution", "ProjectAttributor"]
