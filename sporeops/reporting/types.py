"""Enterprise reporting records, inputs and vocabularies."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Union

from sporeops.core.clock import parse_timestamp


REPORT_CATEGORIES = (
    "executive-summary",
    "sla-compliance",
    "capacity-scheduling",
    "operator-performance",
    "risk-drift",
    "audit-governance",
    "documentation-completeness",
    "cross-engine-operational",
    "compliance-pack",
)
CATEGORY_TITLES = {
    "executive-summary": "Executive Summary Report",
    "sla-compliance": "SLA Compliance Report",
    "capacity-scheduling": "Capacity & Scheduling Report",
    "operator-performance": "Operator Performance Report",
    "risk-drift": "Risk & Drift Analysis Report",
    "audit-governance": "Audit & Governance Report",
    "documentation-completeness": "Documentation Completeness Report",
    "cross-engine-operational": "Cross-Engine Operational Report",
    "compliance-pack": "Enterprise Compliance Pack",
}
REPORT_FORMATS = ("json", "markdown", "html", "csv")
REPORT_TIME_PERIODS = ("daily", "weekly", "monthly", "quarterly", "custom")
PERIOD_DAYS = {"daily": 1, "weekly": 7, "monthly": 30, "quarterly": 90}
DEFAULT_PERIOD_DAYS = 30
REPORTING_ROLES = ("executive", "admin", "manager", "operator", "auditor")
SECTION_TYPES = (
    "executive-summary",
    "kpi-overview",
    "detailed-metrics",
    "trend-analysis",
    "compliance-status",
    "risk-assessment",
    "recommendations",
    "references",
)
LOG_ENTRY_TYPES = ("report-generated", "report-exported", "policy-decision", "error")

MetricValue = Union[int, float, str]


class ReportingError(RuntimeError):
    """Base error for enterprise reporting operations."""


class ReportInputError(ReportingError):
    """Request payload could not be parsed into reporting records."""


class ReportNotFoundError(ReportingError):
    """Requested bundle id has not been generated by this engine."""


class ReportAccessError(ReportingError):
    """Caller may not see the requested bundle."""


def _optional_str(raw: Any) -> str | None:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def _require_str(raw: dict[str, Any], key: str, *, kind: str) -> str:
    value = _optional_str(raw.get(key))
    if value is None:
        raise ReportInputError(f"{kind} requires non-empty '{key}'")
    return value


def _number(raw: dict[str, Any], key: str, *, kind: str, default: float | None = None) -> float:
    value = raw.get(key, default)
    if value is None:
        raise ReportInputError(f"{kind} requires numeric '{key}'")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ReportInputError(f"{kind} '{key}' must be numeric") from exc


def _count(raw: dict[str, Any], key: str, *, kind: str) -> int:
    return int(_number(raw, key, kind=kind, default=0))


def _object(raw: Any, *, field_name: str) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ReportInputError(f"'{field_name}' must be an object")
    return raw


def _bool(raw: dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(slots=True)
class ReportScope:
    tenant_id: str | None = None
    facility_id: str | None = None
    federation_id: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> ReportScope:
        data = _object(raw, field_name="scope")
        return cls(
            tenant_id=_optional_str(data.get("tenant_id")),
            facility_id=_optional_str(data.get("facility_id")),
            federation_id=_optional_str(data.get("federation_id")),
        )


@dataclass(slots=True)
class TimeRange:
    start: str
    end: str

    @property
    def start_at(self) -> datetime | None:
        return parse_timestamp(self.start)

    @property
    def end_at(self) -> datetime | None:
        return parse_timestamp(self.end)

    @classmethod
    def from_dict(cls, raw: Any) -> TimeRange | None:
        if raw is None:
            return None
        data = _object(raw, field_name="custom_time_range")
        return cls(
            start=_require_str(data, "start", kind="custom_time_range"),
            end=_require_str(data, "end", kind="custom_time_range"),
        )


@dataclass(slots=True)
class ReportQuery:
    query_id: str
    description: str
    scope: ReportScope
    category: str
    time_period: str
    format: str
    requested_by: str
    requested_at: str
    custom_time_range: TimeRange | None = None
    include_summary: bool = True
    include_details: bool = True
    include_recommendations: bool = True
    include_references: bool = True
    include_metadata: bool = True

    @classmethod
    def from_dict(
        cls,
        raw: dict[str, Any],
        *,
        default_format: str = "json",
        default_time_period: str = "monthly",
    ) -> ReportQuery:
        category = _require_str(raw, "category", kind="report query")
        if category not in REPORT_CATEGORIES:
            raise ReportInputError(f"unknown report category '{category}'")
        report_format = str(raw.get("format", default_format)).lower()
        if report_format not in REPORT_FORMATS:
            raise ReportInputError(f"unknown report format '{report_format}'")
        time_period = str(raw.get("time_period", default_time_period)).lower()
        if time_period not in REPORT_TIME_PERIODS:
            raise ReportInputError(f"unknown report time period '{time_period}'")
        return cls(
            query_id=_require_str(raw, "query_id", kind="report query"),
            description=str(raw.get("description", "")),
            scope=ReportScope.from_dict(raw.get("scope")),
            category=category,
            time_period=time_period,
            format=report_format,
            requested_by=_require_str(raw, "requested_by", kind="report query"),
            requested_at=str(raw.get("requested_at", "")),
            custom_time_range=TimeRange.from_dict(raw.get("custom_time_range")),
            include_summary=_bool(raw, "include_summary", True),
            include_details=_bool(raw, "include_details", True),
            include_recommendations=_bool(raw, "include_recommendations", True),
            include_references=_bool(raw, "include_references", True),
            include_metadata=_bool(raw, "include_metadata", True),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ReportTable:
    table_id: str
    title: str
    headers: list[str]
    rows: list[list[MetricValue]]
    footer: str | None = None


@dataclass(slots=True)
class ReportChart:
    chart_id: str
    title: str
    chart_type: str
    labels: list[str]
    datasets: list[dict[str, Any]]


@dataclass(slots=True)
class ReportSection:
    section_id: str
    title: str
    section_type: str
    computed_at: str
    summary: str | None = None
    metrics: dict[str, MetricValue] = field(default_factory=dict)
    tables: list[ReportTable] = field(default_factory=list)
    charts: list[ReportChart] = field(default_factory=list)
    text: str | None = None
    data_sources: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ExecutiveSummary:
    overview: str
    key_findings: list[str] = field(default_factory=list)
    critical_issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ReportReferences:
    insight_ids: list[str] = field(default_factory=list)
    metric_ids: list[str] = field(default_factory=list)
    signal_ids: list[str] = field(default_factory=list)
    projection_ids: list[str] = field(default_factory=list)
    schedule_ids: list[str] = field(default_factory=list)
    task_ids: list[str] = field(default_factory=list)
    alert_ids: list[str] = field(default_factory=list)
    drift_ids: list[str] = field(default_factory=list)
    audit_finding_ids: list[str] = field(default_factory=list)

    def total(self) -> int:
        return sum(len(getattr(self, name)) for name in self.__slots__)


@dataclass(slots=True)
class BundleMetadata:
    generated_at: str
    generated_by: str
    format: str
    page_count: int
    word_count: int
    data_sources_used: list[str]
    computation_time_ms: float


@dataclass(slots=True)
class ReportBundle:
    bundle_id: str
    report_id: str
    title: str
    category: str
    time_period: str
    period_start: str
    period_end: str
    scope: ReportScope
    sections: list[ReportSection]
    executive_summary: ExecutiveSummary
    references: ReportReferences
    metadata: BundleMetadata

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ExportedContent:
    format: str
    content: str
    filename: str
    size_bytes: int


@dataclass(slots=True)
class ReportingPolicyContext:
    user_id: str
    user_tenant_id: str
    role: str
    permissions: list[str] = field(default_factory=list)
    user_federation_id: str | None = None

    def has(self, permission: str) -> bool:
        return permission in self.permissions

    @classmethod
    def from_dict(cls, raw: Any) -> ReportingPolicyContext:
        data = _object(raw, field_name="context")
        role = _require_str(data, "role", kind="policy context").lower()
        if role not in REPORTING_ROLES:
            raise ReportInputError(f"unknown reporting role '{role}'")
        permissions_raw = data.get("permissions", [])
        if not isinstance(permissions_raw, list):
            raise ReportInputError("'context.permissions' must be a list")
        return cls(
            user_id=_require_str(data, "user_id", kind="policy context"),
            user_tenant_id=_require_str(data, "user_tenant_id", kind="policy context"),
            role=role,
            permissions=[str(item).strip() for item in permissions_raw if str(item).strip()],
            user_federation_id=_optional_str(data.get("user_federation_id")),
        )


@dataclass(slots=True)
class ReportingPolicyDecision:
    allowed: bool
    reason: str
    violations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    restrictions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ReportingPolicyAudit:
    audit_id: str
    timestamp: str
    user_id: str
    user_role: str
    tenant_id: str
    query_id: str
    query_description: str
    query_scope: ReportScope
    decision: ReportingPolicyDecision
    policy_version: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ReportResult:
    result_id: str
    query: ReportQuery
    success: bool
    generated_at: str
    generation_time_ms: float = 0.0
    sections_generated: int = 0
    references_included: int = 0
    bundle: ReportBundle | None = None
    exported: ExportedContent | None = None
    decision: ReportingPolicyDecision | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ReportLogEntry:
    entry_id: str
    entry_type: str
    timestamp: str
    user_id: str
    tenant_id: str | None = None
    facility_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ReportStatistics:
    total_reports: int = 0
    total_exports: int = 0
    total_policy_decisions: int = 0
    total_errors: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    by_tenant: dict[str, int] = field(default_factory=dict)
    by_time_period: dict[str, int] = field(default_factory=dict)
    by_format: dict[str, int] = field(default_factory=dict)
    average_generation_time_ms: float = 0.0
    trends: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Upstream inputs, one record type per phase.


@dataclass(slots=True)
class InsightResult:
    result_id: str
    summaries: list[Any] = field(default_factory=list)
    trends: list[Any] = field(default_factory=list)
    correlations: list[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> InsightResult:
        kind = "insight"
        lists = {}
        for key in ("summaries", "trends", "correlations"):
            value = raw.get(key, [])
            if not isinstance(value, list):
                raise ReportInputError(f"{kind} '{key}' must be a list")
            lists[key] = value
        return cls(result_id=_require_str(raw, "result_id", kind=kind), **lists)


@dataclass(slots=True)
class OperatorMetric:
    operator_id: str
    operator_name: str
    utilization_rate: float
    task_completion_rate: float
    sla_compliance_rate: float
    tenant_id: str
    facility_id: str | None = None

    @property
    def performance_score(self) -> float:
        return self.utilization_rate * 0.3 + self.task_completion_rate * 0.4 + self.sla_compliance_rate * 0.3

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> OperatorMetric:
        kind = "operator metric"
        operator_id = _require_str(raw, "operator_id", kind=kind)
        return cls(
            operator_id=operator_id,
            operator_name=str(raw.get("operator_name") or operator_id),
            utilization_rate=_number(raw, "utilization_rate", kind=kind),
            task_completion_rate=_number(raw, "task_completion_rate", kind=kind),
            sla_compliance_rate=_number(raw, "sla_compliance_rate", kind=kind),
            tenant_id=_require_str(raw, "tenant_id", kind=kind),
            facility_id=_optional_str(raw.get("facility_id")),
        )


@dataclass(slots=True)
class RealTimeSignal:
    signal_id: str
    metric: str
    value: float
    severity: str
    timestamp: str
    tenant_id: str
    facility_id: str | None = None
    room_id: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> RealTimeSignal:
        kind = "real-time signal"
        return cls(
            signal_id=_require_str(raw, "signal_id", kind=kind),
            metric=str(raw.get("metric", "")),
            value=_number(raw, "value", kind=kind, default=0.0),
            severity=str(raw.get("severity", "info")).lower(),
            timestamp=str(raw.get("timestamp", "")),
            tenant_id=_require_str(raw, "tenant_id", kind=kind),
            facility_id=_optional_str(raw.get("facility_id")),
            room_id=_optional_str(raw.get("room_id")),
        )


@dataclass(slots=True)
class CapacityProjection:
    projection_id: str
    category: str
    projected_capacity: float
    risk_level: str
    window_start: str
    window_end: str
    tenant_id: str
    facility_id: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CapacityProjection:
        kind = "capacity projection"
        return cls(
            projection_id=_require_str(raw, "projection_id", kind=kind),
            category=str(raw.get("category", "uncategorized")),
            projected_capacity=_number(raw, "projected_capacity", kind=kind),
            risk_level=str(raw.get("risk_level", "low")).lower(),
            window_start=str(raw.get("window_start", "")),
            window_end=str(raw.get("window_end", "")),
            tenant_id=_require_str(raw, "tenant_id", kind=kind),
            facility_id=_optional_str(raw.get("facility_id")),
        )


@dataclass(slots=True)
class ScheduleSummary:
    schedule_id: str
    total_slots: int
    total_conflicts: int
    critical_conflicts: int
    average_capacity_utilization: float
    sla_risk_score: float
    tenant_id: str
    facility_id: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ScheduleSummary:
        kind = "schedule"
        return cls(
            schedule_id=_require_str(raw, "schedule_id", kind=kind),
            total_slots=_count(raw, "total_slots", kind=kind),
            total_conflicts=_count(raw, "total_conflicts", kind=kind),
            critical_conflicts=_count(raw, "critical_conflicts", kind=kind),
            average_capacity_utilization=_number(raw, "average_capacity_utilization", kind=kind, default=0.0),
            sla_risk_score=_number(raw, "sla_risk_score", kind=kind, default=0.0),
            tenant_id=_require_str(raw, "tenant_id", kind=kind),
            facility_id=_optional_str(raw.get("facility_id")),
        )


@dataclass(slots=True)
class TaskRecord:
    task_id: str
    priority: str
    status: str
    tenant_id: str
    facility_id: str | None = None
    completed_at: str | None = None
    sla_deadline: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TaskRecord:
        kind = "task"
        return cls(
            task_id=_require_str(raw, "task_id", kind=kind),
            priority=str(raw.get("priority", "medium")).lower(),
            status=str(raw.get("status", "pending")).lower(),
            tenant_id=_require_str(raw, "tenant_id", kind=kind),
            facility_id=_optional_str(raw.get("facility_id")),
            completed_at=_optional_str(raw.get("completed_at")),
            sla_deadline=_optional_str(raw.get("sla_deadline")),
        )


@dataclass(slots=True)
class AlertRecord:
    alert_id: str
    severity: str
    category: str
    status: str
    tenant_id: str
    facility_id: str | None = None
    sla_deadline: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AlertRecord:
        kind = "alert"
        return cls(
            alert_id=_require_str(raw, "alert_id", kind=kind),
            severity=str(raw.get("severity", "info")).lower(),
            category=str(raw.get("category", "uncategorized")),
            status=str(raw.get("status", "open")).lower(),
            tenant_id=_require_str(raw, "tenant_id", kind=kind),
            facility_id=_optional_str(raw.get("facility_id")),
            sla_deadline=_optional_str(raw.get("sla_deadline")),
        )


@dataclass(slots=True)
class DriftEvent:
    drift_id: str
    severity: float
    category: str
    detected: str
    tenant_id: str
    facility_id: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> DriftEvent:
        kind = "drift event"
        severity = _number(raw, "severity", kind=kind)
        if not 0.0 <= severity <= 100.0:
            raise ReportInputError(f"{kind} 'severity' must be between 0 and 100")
        return cls(
            drift_id=_require_str(raw, "drift_id", kind=kind),
            severity=severity,
            category=str(raw.get("category", "uncategorized")),
            detected=str(raw.get("detected", "")),
            tenant_id=_require_str(raw, "tenant_id", kind=kind),
            facility_id=_optional_str(raw.get("facility_id")),
        )


@dataclass(slots=True)
class AuditFindingRecord:
    finding_id: str
    severity: str
    category: str
    status: str
    tenant_id: str
    facility_id: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AuditFindingRecord:
        kind = "audit finding"
        return cls(
            finding_id=_require_str(raw, "finding_id", kind=kind),
            severity=str(raw.get("severity", "info")).lower(),
            category=str(raw.get("category", "uncategorized")),
            status=str(raw.get("status", "open")).lower(),
            tenant_id=_require_str(raw, "tenant_id", kind=kind),
            facility_id=_optional_str(raw.get("facility_id")),
        )


_DATA_KINDS: dict[str, tuple[type, str]] = {
    "insights": (InsightResult, "Phase 58: Executive Insights"),
    "operator_metrics": (OperatorMetric, "Phase 54: Operator Analytics"),
    "real_time_signals": (RealTimeSignal, "Phase 55: Real-Time Monitoring"),
    "capacity_projections": (CapacityProjection, "Phase 56: Capacity Planning"),
    "schedules": (ScheduleSummary, "Phase 57: Workload Orchestration"),
    "tasks": (TaskRecord, "Phase 53: Action Center"),
    "alerts": (AlertRecord, "Phase 52: Alert Center"),
    "drift_events": (DriftEvent, "Phase 51: Integrity Monitor"),
    "audit_findings": (AuditFindingRecord, "Phase 50: Auditor"),
}
DATA_SOURCE_LABELS = {kind: label for kind, (_, label) in _DATA_KINDS.items()}


@dataclass(slots=True)
class ReportingData:
    """Upstream records; ``None`` means the phase supplied nothing at all."""

    insights: list[InsightResult] | None = None
    operator_metrics: list[OperatorMetric] | None = None
    real_time_signals: list[RealTimeSignal] | None = None
    capacity_projections: list[CapacityProjection] | None = None
    schedules: list[ScheduleSummary] | None = None
    tasks: list[TaskRecord] | None = None
    alerts: list[AlertRecord] | None = None
    drift_events: list[DriftEvent] | None = None
    audit_findings: list[AuditFindingRecord] | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> ReportingData:
        data = _object(raw, field_name="data")
        unknown = sorted(set(data) - set(_DATA_KINDS))
        if unknown:
            raise ReportInputError(f"unknown reporting data kinds: {', '.join(unknown)}")
        parsed: dict[str, list[Any] | None] = {}
        for kind, (record_type, _) in _DATA_KINDS.items():
            items = data.get(kind)
            if items is None:
                parsed[kind] = None
                continue
            if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
                raise ReportInputError(f"'{kind}' must be a list of objects")
            parsed[kind] = [record_type.from_dict(item) for item in items]
        return cls(**parsed)

    def data_sources(self) -> list[str]:
        return [label for kind, (_, label) in _DATA_KINDS.items() if getattr(self, kind)]
