"""devtrail: resilient development-session capture and knowledge indexing.

Records developer activity into durable per-session JSON files, audits and
recovers those files, mines git and auxiliary history, and folds everything
into a searchable SQLite/FTS5 knowledge index.

Layers:
- Serialization: bounded JSON encoding behind a circuit breaker
- Capture: ActivityRecorder and SessionMonitor
- Integrity: quality scoring, validation and recovery
- History: git mining, commit watching and aggregation
- Knowledge: indexing, hybrid search and export
"""

__version__ = "0.1.0"

# Serialization
from .serialization import BoundedSerializer, CircuitBreaker

# Capture
from .capture import ActivityRecorder, SessionMonitor, generate_session_id

# Integrity
from .integrity import IntegrityVerifier

# History
from .history import GitLogMiner, GitWatcher, HistoryAggregator, ProjectAttributor

# Knowledge
from .knowledge import KnowledgeIndex, export_knowledge, render_session_report

# Types, errors & config
from .config import DevtrailConfig
from .errors import (
    CapacityError,
    CircuitOpenError,
    CorruptionError,
    DevtrailError,
    RecoveryExhaustedError,
    ValidationError,
)
from .logging_config import configure_logging
from .session_schema import ActivityType, SessionRecord, SessionSnapshot, SessionSummary

__all__ = [
    # Serialization
    "BoundedSerializer",
    "CircuitBreaker",
    # Capture
    "ActivityRecorder",
    "SessionMonitor",
    "generate_session_id",
    # Integrity
    "IntegrityVerifier",
    # History
    "GitLogMiner",
    "GitWatcher",
    "HistoryAggregator",
    "ProjectAttributor",
    # Knowledge
    "KnowledgeIndex",
    "export_knowledge",
    "render_session_report",
    # Types, errors & config
    "DevtrailConfig",
    "DevtrailError",
    "ValidationError",
    "CorruptionError",
    "CapacityError",
    "CircuitOpenError",
    "RecoveryExhaustedError",
    "configure_logging",
    "ActivityType",
    "SessionRecord",
    "SessionSnapshot",
    "SessionSummary",
]
