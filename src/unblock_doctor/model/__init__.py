"""Model package - Core data structures for unblock-doctor."""

from unblock_doctor.model.analysis import (
    LOG_SOURCES,
    AnalysisResult,
    OperationResult,
    RemediationOutcome,
    SubsystemOutcome,
)
from unblock_doctor.model.host import Host, PanelType

__all__ = [
    "LOG_SOURCES",
    "AnalysisResult",
    "Host",
    "OperationResult",
    "PanelType",
    "RemediationOutcome",
    "SubsystemOutcome",
]
