"""Normalization of upstream alerts, findings and issues into action tasks."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable

from sporeops.actions.types import (
    ActionReference,
    ActionTask,
    EngineInputs,
    RemediationMetadata,
    SourceRecord,
)
from sporeops.core.clock import Clock, isoformat, parse_timestamp, utc_now


_KNOWN_SEVERITIES = {"critical", "high", "medium", "low"}


def normalize_severity(severity: str) -> str:
    value = str(severity or "").strip().lower()
    return value if value in _KNOWN_SEVERITIES else "info"


def effort_from_severity(severity: str) -> str:
    value = normalize_severity(severity)
    if value in {"critical", "high"}:
        return "high"
    if value == "medium":
        return "medium"
    return "low"


@dataclass(frozen=True, slots=True)
class _Route:
    kind: str
    id_prefix: str
    title_prefix: str
    category: str
    source: str
    reference_type: str
    view_permission: str
    documentation: str
    tags: tuple[str, ...]
    suggested_action: Callable[[SourceRecord], str]
    effort: Callable[[SourceRecord], str]
    metadata: Callable[[SourceRecord], dict[str, Any]]


def _governance_is_lineage(record: SourceRecord) -> bool:
    return record.issue_type == "lineage-break"


def _drift_rule_id(record: SourceRecord) -> str | None:
    rule = record.metadata.get("rule")
    if isinstance(rule, dict) and rule.get("rule_id"):
        return str(rule["rule_id"])
    value = record.metadata.get("rule_id")
    return str(value) if value else None


_ROUTES: dict[str, _Route] = {
    "alerts": _Route(
        kind="alerts",
        id_prefix="task-alert-",
        title_prefix="Remediate: ",
        category="alert-remediation",
        source="alert-center",
        reference_type="alert",
        view_permission="alert.view",
        documentation="/app/alertCenter",
        tags=("alert", "phase-52"),
        suggested_action=lambda record: f"Review and resolve alert: {record.title}",
        effort=lambda record: effort_from_severity(record.severity),
        metadata=lambda record: {"source_alert_id": record.record_id},
    ),
    "audit_findings": _Route(
        kind="audit_findings",
        id_prefix="task-audit-",
        title_prefix="Remediate Audit Finding: ",
        category="audit-remediation",
        source="auditor",
        reference_type="finding",
        view_permission="audit.view",
        documentation="/app/auditor",
        tags=("audit", "phase-50"),
        suggested_action=lambda record: f"Address audit finding: {record.title}",
        effort=lambda record: "high" if normalize_severity(record.severity) == "critical" else "medium",
        metadata=lambda record: {
            "source_finding_id": record.record_id,
            "audit_id": record.metadata.get("audit_id"),
        },
    ),
    "drift_alerts": _Route(
        kind="drift_alerts",
        id_prefix="task-integrity-",
        title_prefix="Remediate Drift: ",
        category="integrity-drift-remediation",
        source="integrity-monitor",
        reference_type="drift",
        view_permission="integrity.view",
        documentation="/app/integrityMonitor",
        tags=("integrity", "phase-51"),
        suggested_action=lambda record: f"Investigate and resolve integrity drift: {record.title}",
        effort=lambda record: effort_from_severity(record.severity),
        metadata=lambda record: {
            "source_drift_id": record.record_id,
            "rule_id": _drift_rule_id(record),
            "evidence": record.metadata.get("evidence"),
        },
    ),
    "governance_issues": _Route(
        kind="governance_issues",
        id_prefix="task-governance-",
        title_prefix="Remediate Governance Issue: ",
        category="governance-lineage-issue",
        source="governance-system",
        reference_type="decision",
        view_permission="governance.view",
        documentation="/app/governance",
        tags=("governance",),
        suggested_action=lambda record: (
            "Restore governance lineage chain"
            if _governance_is_lineage(record)
            else "Align governance decision with approved baseline"
        ),
        effort=lambda record: "medium",
        metadata=lambda record: {"issue_type": record.issue_type},
    ),
    "documentation_issues": _Route(
        kind="documentation_issues",
        id_prefix="task-doc-",
        title_prefix="Remediate Documentation Issue: ",
        category="documentation-completeness",
        source="documentation-bundler",
        reference_type="bundle",
        view_permission="documentation.view",
        documentation="/app/documentation",
        tags=("documentation", "phase-47"),
        suggested_action=lambda record: (
            "Complete missing documentation sections"
            if record.issue_type == "completeness"
            else "Update documentation to match current state"
        ),
        effort=lambda record: "low",
        metadata=lambda record: {"issue_type": record.issue_type},
    ),
    "fabric_issues": _Route(
        kind="fabric_issues",
        id_prefix="task-fabric-",
        title_prefix="Remediate Fabric Link Issue: ",
        category="fabric-link-breakage",
        source="knowledge-fabric",
        reference_type="link",
        view_permission="fabric.view",
        documentation="/app/fabric",
        tags=("fabric", "phase-46"),
        suggested_action=lambda record: (
            "Restore broken fabric link or remove orphaned reference"
            if record.issue_type == "breakage"
            else "Resolve unresolved fabric link"
        ),
        effort=lambda record: "low",
        metadata=lambda record: {"issue_type": record.issue_type},
    ),
    "compliance_issues": _Route(
        kind="compliance_issues",
        id_prefix="task-compliance-",
        title_prefix="Remediate Compliance Issue: ",
        category="compliance-pack-issue",
        source="compliance-engine",
        reference_type="pattern",
        view_permission="compliance.view",
        documentation="/app/compliance",
        tags=("compliance", "phase-32"),
        suggested_action=lambda record: (
            "Implement missing compliance control"
            if record.issue_type == "control-missing"
            else "Fix compliance pack configuration"
        ),
        effort=lambda record: "high" if record.issue_type == "control-missing" else "medium",
        metadata=lambda record: {"issue_type": record.issue_type, "pack_id": record.record_id},
    ),
    "simulation_issues": _Route(
        kind="simulation_issues",
        id_prefix="task-simulation-",
        title_prefix="Remediate Simulation Mismatch: ",
        category="simulation-mismatch",
        source="simulation-engine",
        reference_type="scenario",
        view_permission="simulation.view",
        documentation="/app/simulation",
        tags=("simulation", "phase-49"),
        suggested_action=lambda record: (
            "Update forecast parameters to match current state"
            if record.issue_type == "forecast-drift"
            else "Align simulation parameters with actual values"
        ),
        effort=lambda record: "medium",
        metadata=lambda record: {"mismatch_type": record.issue_type},
    ),
}


class ActionRouter:
    """Turns tenant-scoped upstream records into action tasks.

    Records belonging to another tenant are dropped before normalization, so a
    task is never built from data the router's tenant cannot see.
    """

    def __init__(self, tenant_id: str, *, clock: Clock = utc_now) -> None:
        self.tenant_id = tenant_id
        self._clock = clock

    def route_from_alert_center(self, alerts: list[SourceRecord]) -> list[ActionTask]:
        return self._route(_ROUTES["alerts"], alerts)

    def route_from_auditor(self, findings: list[SourceRecord]) -> list[ActionTask]:
        return self._route(_ROUTES["audit_findings"], findings)

    def route_from_integrity_monitor(self, drifts: list[SourceRecord]) -> list[ActionTask]:
        return self._route(_ROUTES["drift_alerts"], drifts)

    def route_from_governance(self, issues: list[SourceRecord]) -> list[ActionTask]:
        return self._route(_ROUTES["governance_issues"], issues)

    def route_from_documentation(self, issues: list[SourceRecord]) -> list[ActionTask]:
        return self._route(_ROUTES["documentation_issues"], issues)

    def route_from_fabric(self, issues: list[SourceRecord]) -> list[ActionTask]:
        return self._route(_ROUTES["fabric_issues"], issues)

    def route_from_compliance(self, issues: list[SourceRecord]) -> list[ActionTask]:
        return self._route(_ROUTES["compliance_issues"], issues)

    def route_from_simulation(self, mismatches: list[SourceRecord]) -> list[ActionTask]:
        return self._route(_ROUTES["simulation_issues"], mismatches)

    def route_all(self, inputs: EngineInputs) -> dict[str, list[ActionTask]]:
        """Route every input kind; keys follow ``EngineInputs`` field names."""
        routed: dict[str, list[ActionTask]] = {}
        for kind, route in _ROUTES.items():
            records: list[SourceRecord] = getattr(inputs, kind)
            if records:
                routed[kind] = self._route(route, records)
        return routed

    def _route(self, route: _Route, records: list[SourceRecord]) -> list[ActionTask]:
        return [self._normalize(route, record) for record in records if record.scope.tenant_id == self.tenant_id]

    def _normalize(self, route: _Route, record: SourceRecord) -> ActionTask:
        source = route.source
        documentation = route.documentation
        tags = list(route.tags)
        if route.kind == "governance_issues":
            lineage = _governance_is_lineage(record)
            source = "governance-lineage" if lineage else "governance-system"
            documentation = "/app/governance/lineage" if lineage else "/app/governance"
            tags.append("phase-45" if lineage else "phase-44")

        created = parse_timestamp(record.detected_at)
        created_at = isoformat(created) if created else isoformat(self._clock())
        metadata = {key: value for key, value in route.metadata(record).items() if value is not None}
        metadata["tags"] = tags

        return ActionTask(
            task_id=f"{route.id_prefix}{record.record_id}",
            title=f"{route.title_prefix}{record.title}",
            description=record.description,
            category=route.category,
            severity=normalize_severity(record.severity),
            status="resolved" if record.status == "resolved" else "new",
            source=source,
            scope=replace(record.scope),
            created_at=created_at,
            updated_at=created_at,
            affected_entities=[replace(entity) for entity in record.affected_entities],
            related_references=[
                ActionReference(
                    reference_id=record.record_id,
                    reference_type=route.reference_type,
                    title=record.title,
                    source_engine=source,
                ),
                *(replace(reference) for reference in record.related_references),
            ],
            remediation=RemediationMetadata(
                suggested_action=route.suggested_action(record),
                estimated_effort=route.effort(record),
                required_permissions=["action.resolve", route.view_permission],
                related_documentation=[documentation],
            ),
            metadata=metadata,
        )
