from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Callable

import pytest


FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

ALL_ACTION_PERMISSIONS = [
    "action.view-all",
    "action.acknowledge",
    "action.assign",
    "action.assign-others",
    "action.start",
    "action.resolve",
    "action.dismiss",
]


class MutableClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def action_context() -> dict[str, Any]:
    return {
        "tenant_id": "default",
        "performed_by": "ops-lead",
        "user_roles": ["manager"],
        "user_permissions": list(ALL_ACTION_PERMISSIONS),
    }


@pytest.fixture
def action_inputs() -> dict[str, Any]:
    main = {"tenant_id": "default", "facility_id": "facility-main"}
    return {
        "alerts": [
            {
                "alert_id": "alert-1",
                "title": "Humidity spike",
                "description": "Relative humidity above 75% for 20 minutes",
                "severity": "critical",
                "status": "open",
                "scope": {**main, "room_id": "room-1"},
                "created_at": "2026-03-01T10:00:00Z",
                "affected_entities": [
                    {"entity_id": "room-1", "entity_type": "room", "title": "Flower Room 1"},
                ],
            },
            {
                "alert_id": "alert-2",
                "title": "CO2 sensor offline",
                "severity": "medium",
                "status": "resolved",
                "scope": main,
                "created_at": "2026-02-28T09:00:00Z",
            },
            {
                "alert_id": "alert-x",
                "title": "Partner irrigation fault",
                "severity": "high",
                "scope": {"tenant_id": "partner-farm", "facility_id": "facility-north"},
                "created_at": "2026-03-01T08:00:00Z",
            },
        ],
        "audit_findings": [
            {
                "finding_id": "finding-1",
                "title": "Missing SOP signature",
                "severity": "high",
                "scope": main,
                "audited_at": "2026-02-27T08:00:00Z",
                "audit_id": "audit-9",
            },
        ],
        "drift_alerts": [
            {
                "alert_id": "drift-1",
                "title": "Nutrient recipe drift",
                "severity": "low",
                "scope": main,
                "detected_at": "2026-03-01T11:00:00Z",
                "rule": {"rule_id": "rule-7"},
            },
        ],
        "governance_issues": [
            {
                "issue_id": "gov-1",
                "title": "Broken approval chain",
                "severity": "medium",
                "issue_type": "lineage-break",
                "scope": main,
                "created_at": "2026-02-25T12:00:00Z",
            },
        ],
    }


@pytest.fixture
def action_payload(action_context: dict[str, Any], action_inputs: dict[str, Any]) -> dict[str, Any]:
    return {
        "query": {"query_id": "q-1", "triggered_by": "ops-lead", "scope": {"tenant_id": "default"}},
        "context": action_context,
        "inputs": action_inputs,
    }


@pytest.fixture
def reporting_data() -> dict[str, Any]:
    main = {"tenant_id": "default", "facility_id": "facility-main"}
    partner = {"tenant_id": "partner-farm", "facility_id": "facility-north"}
    return {
        "insights": [{"result_id": "ins-1", "summaries": [{"headline": "Yield steady"}]}],
        "tasks": [
            {
                "task_id": "t1",
                "status": "completed",
                "completed_at": "2026-02-28T10:00:00Z",
                "sla_deadline": "2026-02-28T12:00:00Z",
                **main,
            },
            {"task_id": "t2", "status": "in-progress", "sla_deadline": "2026-03-01T12:30:00Z", **main},
            {"task_id": "t3", "status": "pending", "sla_deadline": "2026-03-01T08:00:00Z", **main},
            {"task_id": "t4", "status": "pending", **main},
            {"task_id": "t5", "status": "completed", **partner},
        ],
        "alerts": [
            {"alert_id": "a1", "severity": "critical", "status": "open", "sla_deadline": "2026-03-02T00:00:00Z", **main},
            {"alert_id": "a2", "severity": "high", "status": "resolved", "sla_deadline": "2026-02-27T00:00:00Z", **main},
            {"alert_id": "a3", "severity": "low", "status": "open", **main},
            {"alert_id": "a4", "severity": "critical", "status": "open", **partner},
        ],
        "operator_metrics": [
            {
                "operator_id": "op-1",
                "operator_name": "Avery",
                "utilization_rate": 85,
                "task_completion_rate": 90,
                "sla_compliance_rate": 95,
                **main,
            },
            {
                "operator_id": "op-2",
                "operator_name": "Blake",
                "utilization_rate": 60,
                "task_completion_rate": 70,
                "sla_compliance_rate": 80,
                **main,
            },
            {
                "operator_id": "op-3",
                "operator_name": "Casey",
                "utilization_rate": 30,
                "task_completion_rate": 50,
                "sla_compliance_rate": 60,
                **main,
            },
            {
                "operator_id": "op-x",
                "operator_name": "Partner Operator",
                "utilization_rate": 99,
                "task_completion_rate": 99,
                "sla_compliance_rate": 99,
                **partner,
            },
        ],
        "drift_events": [
            {"drift_id": "d1", "severity": 90, "category": "nutrient", **main},
            {"drift_id": "d2", "severity": 40, "category": "climate", **main},
            {"drift_id": "d3", "severity": 20, "category": "climate", **main},
        ],
        "audit_findings": [
            {"finding_id": "f1", "severity": "critical", "category": "documentation", "status": "open", **main},
            {"finding_id": "f2", "severity": "medium", "category": "documentation", "status": "resolved", **main},
            {"finding_id": "f3", "severity": "low", "category": "safety", "status": "resolved", **main},
        ],
        "schedules": [
            {
                "schedule_id": "s1",
                "total_slots": 100,
                "total_conflicts": 5,
                "critical_conflicts": 1,
                "average_capacity_utilization": 70,
                "sla_risk_score": 20,
                **main,
            },
            {
                "schedule_id": "s2",
                "total_slots": 50,
                "total_conflicts": 10,
                "critical_conflicts": 2,
                "average_capacity_utilization": 80,
                "sla_risk_score": 40,
                **main,
            },
        ],
        "capacity_projections": [
            {"projection_id": "p1", "category": "flower", "projected_capacity": 70, "risk_level": "low", **main},
            {"projection_id": "p2", "category": "flower", "projected_capacity": 90, "risk_level": "high", **main},
            {"projection_id": "p3", "category": "veg", "projected_capacity": 50, "risk_level": "critical", **main},
        ],
        "real_time_signals": [
            {"signal_id": "sig-1", "metric": "vpd", "value": 1.9, "severity": "critical", **main},
            {"signal_id": "sig-2", "metric": "temp", "value": 24.1, "severity": "info", **main},
        ],
    }


@pytest.fixture
def executive_context() -> dict[str, Any]:
    return {"user_id": "exec-1", "user_tenant_id": "default", "role": "executive", "permissions": []}


@pytest.fixture
def report_payload(reporting_data: dict[str, Any], executive_context: dict[str, Any]) -> dict[str, Any]:
    return {
        "query": {
            "query_id": "rq-1",
            "category": "executive-summary",
            "requested_by": "exec-1",
            "scope": {"tenant_id": "default"},
        },
        "context": executive_context,
        "data": reporting_data,
    }


@pytest.fixture
def report_query_factory() -> Callable[..., dict[str, Any]]:
    def _factory(category: str = "executive-summary", **overrides: Any) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "query_id": "rq-1",
            "category": category,
            "requested_by": "exec-1",
            "scope": {"tenant_id": "default"},
        }
        raw.update(overrides)
        return raw

    return _factory
