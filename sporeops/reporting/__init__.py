"""Enterprise reporting: bundles, exports, access policy and audit log."""

from .builder import ReportingBuilder
from .engine import ReportingEngine
from .log import ReportingLog
from .policy import ReportingPolicyEngine
from .types import (
    ReportAccessError,
    ReportBundle,
    ReportInputError,
    ReportNotFoundError,
    ReportQuery,
    ReportResult,
    ReportingData,
    ReportingError,
    ReportingPolicyContext,
)

__all__ = [
    "ReportAccessError",
    "ReportBundle",
    "ReportInputError",
    "ReportNotFoundError",
    "ReportQuery",
    "ReportResult",
    "ReportingBuilder",
    "ReportingData",
    "ReportingEngine",
    "ReportingError",
    "ReportingLog",
    "ReportingPolicyContext",
    "ReportingPolicyEngine",
]
