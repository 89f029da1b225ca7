"""Action center records and vocabularies."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from sporeops.core.clock import parse_timestamp


ACTION_CATEGORIES = (
    "alert-remediation",
    "audit-remediation",
    "integrity-drift-remediation",
    "governance-lineage-issue",
    "documentation-completeness",
    "fabric-link-breakage",
    "compliance-pack-issue",
    "simulation-mismatch",
)
ACTION_SEVERITIES = ("critical", "high", "medium", "low", "info")
SEVERITY_RANK = {severity: index for index, severity in enumerate(ACTION_SEVERITIES)}
ACTION_STATUSES = ("new", "acknowledged", "assigned", "in-progress", "resolved", "dismissed")
ACTION_SOURCES = (
    "alert-center",
    "auditor",
    "integrity-monitor",
    "governance-system",
    "governance-lineage",
    "documentation-bundler",
    "knowledge-fabric",
    "compliance-engine",
    "simulation-engine",
)
GROUP_TYPES = ("category", "severity", "entity", "source", "status")
LIFECYCLE_OPERATIONS = ("acknowledge", "assign", "start", "resolve", "dismiss")
LOG_ENTRY_TYPES = ("task", "query", "group", "routing", "policy-decision", "lifecycle-change", "error")
INPUT_KINDS = {
    "alerts": "alert_id",
    "audit_findings": "finding_id",
    "drift_alerts": "alert_id",
    "governance_issues": "issue_id",
    "documentation_issues": "issue_id",
    "fabric_issues": "link_id",
    "compliance_issues": "pack_id",
    "simulation_issues": "scenario_id",
}


class ActionCenterError(RuntimeError):
    """Base error for action center operations."""


class ActionInputError(ActionCenterError):
    """Request payload could not be parsed into action records."""


class ActionTaskNotFoundError(ActionCenterError):
    """Requested task id is not tracked by the engine."""


class ActionAuthorizationError(ActionCenterError):
    """Caller is not permitted to perform the requested operation."""


class ActionTransitionError(ActionCenterError):
    """Lifecycle operation is not valid from the task's current status."""


def _optional_str(raw: Any) -> str | None:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def _require_str(raw: dict[str, Any], key: str, *, kind: str) -> str:
    value = _optional_str(raw.get(key))
    if value is None:
        raise ActionInputError(f"{kind} requires non-empty '{key}'")
    return value


def _str_list(raw: Any, *, field_name: str) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ActionInputError(f"'{field_name}' must be a list")
    return [str(item).strip() for item in raw if str(item).strip()]


def _object(raw: Any, *, field_name: str) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ActionInputError(f"'{field_name}' must be an object")
    return raw


def _object_list(raw: Any, *, field_name: str) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise ActionInputError(f"'{field_name}' must be a list of objects")
    return raw


@dataclass(slots=True)
class ActionScope:
    tenant_id: str
    facility_id: str | None = None
    room_id: str | None = None
    include_archived: bool = False

    @classmethod
    def from_dict(cls, raw: Any) -> ActionScope:
        data = _object(raw, field_name="scope")
        return cls(
            tenant_id=_require_str(data, "tenant_id", kind="scope"),
            facility_id=_optional_str(data.get("facility_id")),
            room_id=_optional_str(data.get("room_id")),
            include_archived=bool(data.get("include_archived", False)),
        )


@dataclass(slots=True)
class ActionReference:
    reference_id: str
    reference_type: str
    title: str
    source_engine: str
    entity_id: str | None = None
    entity_type: str | None = None
    url: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ActionReference:
        return cls(
            reference_id=_require_str(raw, "reference_id", kind="reference"),
            reference_type=str(raw.get("reference_type", "document")),
            title=str(raw.get("title", "")),
            source_engine=str(raw.get("source_engine", "")),
            entity_id=_optional_str(raw.get("entity_id")),
            entity_type=_optional_str(raw.get("entity_type")),
            url=_optional_str(raw.get("url")),
        )


@dataclass(slots=True)
class AffectedEntity:
    entity_id: str
    entity_type: str
    title: str = ""
    status: str | None = None

    @property
    def key(self) -> str:
        return f"{self.entity_type}:{self.entity_id}"

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AffectedEntity:
        return cls(
            entity_id=_require_str(raw, "entity_id", kind="affected entity"),
            entity_type=_require_str(raw, "entity_type", kind="affected entity"),
            title=str(raw.get("title", "")),
            status=_optional_str(raw.get("status")),
        )


@dataclass(slots=True)
class RemediationMetadata:
    suggested_action: str
    estimated_effort: str
    required_permissions: list[str] = field(default_factory=list)
    related_documentation: list[str] = field(default_factory=list)
    related_sop: str | None = None
    prerequisite_tasks: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ActionTask:
    task_id: str
    title: str
    description: str
    category: str
    severity: str
    status: str
    source: str
    scope: ActionScope
    created_at: str
    updated_at: str
    affected_entities: list[AffectedEntity] = field(default_factory=list)
    related_references: list[ActionReference] = field(default_factory=list)
    remediation: RemediationMetadata | None = None
    acknowledged_by: str | None = None
    acknowledged_at: str | None = None
    assigned_to: str | None = None
    assigned_by: str | None = None
    assigned_at: str | None = None
    started_by: str | None = None
    started_at: str | None = None
    resolved_by: str | None = None
    resolved_at: str | None = None
    resolution_notes: str | None = None
    dismissed_by: str | None = None
    dismissed_at: str | None = None
    dismissal_reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def created(self) -> datetime | None:
        return parse_timestamp(self.created_at)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ActionGroup:
    group_id: str
    group_type: str
    group_key: str
    title: str
    tasks: list[ActionTask]
    summary: dict[str, Any]
    references: list[ActionReference]
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class DateRange:
    start: datetime
    end: datetime

    def contains(self, value: datetime | None) -> bool:
        return value is not None and self.start <= value <= self.end

    @classmethod
    def from_dict(cls, raw: Any, *, field_name: str = "date_range") -> DateRange | None:
        if raw is None:
            return None
        data = _object(raw, field_name=field_name)
        start = parse_timestamp(data.get("start"))
        end = parse_timestamp(data.get("end"))
        if start is None or end is None:
            raise ActionInputError(f"'{field_name}' requires ISO-8601 'start' and 'end'")
        if end < start:
            raise ActionInputError(f"'{field_name}' end precedes start")
        return cls(start=start, end=end)

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(slots=True)
class ActionQueryOptions:
    include_dismissed: bool = False
    include_resolved: bool = False
    max_tasks: int | None = None
    sort_by: str = "severity"
    sort_order: str = "desc"
    group_by: str | None = None
    merge_duplicates: bool = True


_SORT_FIELDS = {"severity", "createdAt", "category", "status", "priority"}


@dataclass(slots=True)
class ActionQuery:
    query_id: str
    description: str
    scope: ActionScope
    triggered_by: str
    triggered_at: str
    categories: list[str] = field(default_factory=list)
    severities: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    statuses: list[str] = field(default_factory=list)
    entity_id: str | None = None
    entity_type: str | None = None
    assigned_to: str | None = None
    date_range: DateRange | None = None
    options: ActionQueryOptions = field(default_factory=ActionQueryOptions)

    @classmethod
    def from_dict(
        cls,
        raw: dict[str, Any],
        *,
        default_sort_by: str = "severity",
        default_sort_order: str = "desc",
        default_max_tasks: int = 0,
        default_merge_duplicates: bool = True,
    ) -> ActionQuery:
        options_raw = _object(raw.get("options"), field_name="options")
        sort_by = str(options_raw.get("sort_by", default_sort_by))
        if sort_by not in _SORT_FIELDS:
            raise ActionInputError(f"invalid sort field '{sort_by}'")
        sort_order = str(options_raw.get("sort_order", default_sort_order)).lower()
        if sort_order not in {"asc", "desc"}:
            raise ActionInputError(f"invalid sort order '{sort_order}'")
        group_by = _optional_str(options_raw.get("group_by"))
        if group_by is not None and group_by not in GROUP_TYPES:
            raise ActionInputError(f"invalid group type '{group_by}'")
        max_tasks_raw = options_raw.get("max_tasks", default_max_tasks or None)
        max_tasks = int(max_tasks_raw) if max_tasks_raw is not None else None
        if max_tasks is not None and max_tasks <= 0:
            max_tasks = None
        categories = _str_list(raw.get("categories"), field_name="categories")
        unknown = [item for item in categories if item not in ACTION_CATEGORIES]
        if unknown:
            raise ActionInputError(f"unknown action categories: {', '.join(unknown)}")
        return cls(
            query_id=_require_str(raw, "query_id", kind="query"),
            description=str(raw.get("description", "")),
            scope=ActionScope.from_dict(raw.get("scope")),
            triggered_by=_require_str(raw, "triggered_by", kind="query"),
            triggered_at=str(raw.get("triggered_at", "")),
            categories=categories,
            severities=[item.lower() for item in _str_list(raw.get("severities"), field_name="severities")],
            sources=_str_list(raw.get("sources"), field_name="sources"),
            statuses=_str_list(raw.get("statuses"), field_name="statuses"),
            entity_id=_optional_str(raw.get("entity_id")),
            entity_type=_optional_str(raw.get("entity_type")),
            assigned_to=_optional_str(raw.get("assigned_to")),
            date_range=DateRange.from_dict(raw.get("date_range")),
            options=ActionQueryOptions(
                include_dismissed=bool(options_raw.get("include_dismissed", False)),
                include_resolved=bool(options_raw.get("include_resolved", False)),
                max_tasks=max_tasks,
                sort_by=sort_by,
                sort_order=sort_order,
                group_by=group_by,
                merge_duplicates=bool(options_raw.get("merge_duplicates", default_merge_duplicates)),
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["date_range"] = self.date_range.to_dict() if self.date_range else None
        return payload


@dataclass(slots=True)
class ActionPolicyContext:
    tenant_id: str
    performed_by: str
    facility_id: str | None = None
    user_roles: list[str] = field(default_factory=list)
    user_permissions: list[str] = field(default_factory=list)
    federation_enabled: bool = False

    def has(self, permission: str) -> bool:
        return permission in self.user_permissions

    @classmethod
    def from_dict(cls, raw: Any) -> ActionPolicyContext:
        data = _object(raw, field_name="context")
        return cls(
            tenant_id=_require_str(data, "tenant_id", kind="policy context"),
            performed_by=_require_str(data, "performed_by", kind="policy context"),
            facility_id=_optional_str(data.get("facility_id")),
            user_roles=_str_list(data.get("user_roles"), field_name="context.user_roles"),
            user_permissions=_str_list(data.get("user_permissions"), field_name="context.user_permissions"),
            federation_enabled=bool(data.get("federation_enabled", False)),
        )


@dataclass(slots=True)
class ActionPolicyDecision:
    authorized: bool
    reason: str | None = None
    denied_categories: list[str] = field(default_factory=list)
    denied_sources: list[str] = field(default_factory=list)
    restricted_operations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_SOURCE_RECORD_KEYS = {
    "id",
    "title",
    "description",
    "severity",
    "status",
    "scope",
    "affected_entities",
    "related_references",
    "detected_at",
    "created_at",
    "timestamp",
    "audited_at",
    "issue_type",
    "mismatch_type",
    "metadata",
}


@dataclass(slots=True)
class SourceRecord:
    """Common shape of an upstream alert, finding, drift or issue."""

    record_id: str
    title: str
    description: str
    severity: str
    status: str
    scope: ActionScope
    detected_at: str
    issue_type: str = ""
    affected_entities: list[AffectedEntity] = field(default_factory=list)
    related_references: list[ActionReference] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any], *, id_key: str = "id") -> SourceRecord:
        record_id = _optional_str(raw.get(id_key)) or _optional_str(raw.get("id"))
        if record_id is None:
            raise ActionInputError(f"upstream record requires non-empty '{id_key}'")
        detected = (
            raw.get("detected_at") or raw.get("audited_at") or raw.get("created_at") or raw.get("timestamp") or ""
        )
        metadata = dict(_object(raw.get("metadata"), field_name="metadata"))
        for key, value in raw.items():
            if key not in _SOURCE_RECORD_KEYS and key != id_key:
                metadata.setdefault(key, value)
        return cls(
            record_id=record_id,
            title=str(raw.get("title", "")),
            description=str(raw.get("description", "")),
            severity=str(raw.get("severity", "info")),
            status=str(raw.get("status", "open")),
            scope=ActionScope.from_dict(raw.get("scope")),
            detected_at=str(detected),
            issue_type=str(raw.get("issue_type") or raw.get("mismatch_type") or ""),
            affected_entities=[
                AffectedEntity.from_dict(item)
                for item in _object_list(raw.get("affected_entities"), field_name="affected_entities")
            ],
            related_references=[
                ActionReference.from_dict(item)
                for item in _object_list(raw.get("related_references"), field_name="related_references")
            ],
            metadata=metadata,
        )


@dataclass(slots=True)
class EngineInputs:
    alerts: list[SourceRecord] = field(default_factory=list)
    audit_findings: list[SourceRecord] = field(default_factory=list)
    drift_alerts: list[SourceRecord] = field(default_factory=list)
    governance_issues: list[SourceRecord] = field(default_factory=list)
    documentation_issues: list[SourceRecord] = field(default_factory=list)
    fabric_issues: list[SourceRecord] = field(default_factory=list)
    compliance_issues: list[SourceRecord] = field(default_factory=list)
    simulation_issues: list[SourceRecord] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Any) -> EngineInputs:
        data = _object(raw, field_name="inputs")
        unknown = sorted(set(data) - set(INPUT_KINDS))
        if unknown:
            raise ActionInputError(f"unknown input kinds: {', '.join(unknown)}")
        parsed: dict[str, list[SourceRecord]] = {}
        for kind, id_key in INPUT_KINDS.items():
            parsed[kind] = [
                SourceRecord.from_dict(item, id_key=id_key)
                for item in _object_list(data.get(kind), field_name=kind)
            ]
        return cls(**parsed)


@dataclass(slots=True)
class ActionResult:
    result_id: str
    query: ActionQuery
    executed_at: str
    success: bool = True
    tasks: list[ActionTask] = field(default_factory=list)
    groups: list[ActionGroup] = field(default_factory=list)
    total_tasks: int = 0
    new_tasks: int = 0
    summary: dict[str, Any] = field(default_factory=dict)
    decision: ActionPolicyDecision | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["query"] = self.query.to_dict()
        return payload


@dataclass(slots=True)
class ActionLogEntry:
    entry_id: str
    entry_type: str
    timestamp: str
    tenant_id: str
    performed_by: str
    success: bool = True
    facility_id: str | None = None
    error: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    task: ActionTask | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class LifecycleOutcome:
    success: bool
    task: ActionTask | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
