"""Knowledge index: SQLite/FTS5 storage, hybrid search and export."""

from .export import export_knowledge, render_knowledge_markdown, render_session_report
from .index import BM25_WEIGHTS, KnowledgeIndex, extract_commit_tags, extract_session_tags, fts_query

__all__ = [
    "KnowledgeIndex",
    "BM25_WEIGHTS",
    "extract_commit_tags",
    "extract_session_tags",
    "fts_query",
    "export_knowledge",
    "render_knowledge_markdown",
    "render_session_report",
]
