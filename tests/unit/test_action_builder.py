from typing import Any

import pytest

from sporeops.actions.builder import ActionTaskBuilder
from sporeops.actions.types import (
    ActionReference,
    ActionScope,
    ActionTask,
    AffectedEntity,
    DateRange,
    RemediationMetadata,
)
from sporeops.core.clock import parse_timestamp


def _task(task_id: str, **overrides: Any) -> ActionTask:
    fields: dict[str, Any] = {
        "task_id": task_id,
        "title": f"Task {task_id}",
        "description": "",
        "category": "alert-remediation",
        "severity": "medium",
        "status": "new",
        "source": "alert-center",
        "scope": ActionScope(tenant_id="default", facility_id="facility-main"),
        "created_at": "2026-03-01T00:00:00.000Z",
        "updated_at": "2026-03-01T00:00:00.000Z",
    }
    fields.update(overrides)
    return ActionTask(**fields)


def test_sort_tasks_orders_by_severity_then_newest(clock) -> None:
    builder = ActionTaskBuilder(clock=clock)
    ordered = builder.sort_tasks(
        [
            _task("low", severity="low"),
            _task("old-critical", severity="critical", created_at="2026-02-01T00:00:00Z"),
            _task("new-critical", severity="critical", created_at="2026-02-20T00:00:00Z"),
            _task("high", severity="high"),
        ]
    )
    assert [task.task_id for task in ordered] == ["new-critical", "old-critical", "high", "low"]


def test_group_by_category_summarizes_members(clock) -> None:
    builder = ActionTaskBuilder(clock=clock)
    groups = builder.group_by_category(
        [
            _task("a", severity="high"),
            _task("b", category="audit-remediation", source="auditor", status="resolved"),
            _task("c", severity="critical"),
        ]
    )
    assert [group.group_key for group in groups] == ["alert-remediation", "audit-remediation"]
    alerts = groups[0]
    assert alerts.group_id == "group-category-alert-remediation"
    assert alerts.title == "Category: alert-remediation"
    assert [task.task_id for task in alerts.tasks] == ["c", "a"]
    assert alerts.summary["total_tasks"] == 2
    assert alerts.summary["new_tasks"] == 2
    assert alerts.summary["by_severity"] == {"critical": 1, "high": 1}
    assert groups[1].summary["resolved_tasks"] == 1
    assert alerts.created_at == "2026-03-01T12:00:00.000Z"


def test_group_by_entity_places_task_in_every_entity_group(clock) -> None:
    builder = ActionTaskBuilder(clock=clock)
    shared = _task(
        "shared",
        affected_entities=[
            AffectedEntity(entity_id="room-1", entity_type="room"),
            AffectedEntity(entity_id="batch-4", entity_type="batch"),
        ],
    )
    solo = _task("solo", affected_entities=[AffectedEntity(entity_id="room-1", entity_type="room")])
    groups = {group.group_key: group for group in builder.group([shared, solo], "entity")}
    assert set(groups) == {"room:room-1", "batch:batch-4"}
    assert len(groups["room:room-1"].tasks) == 2
    assert len(groups["batch:batch-4"].tasks) == 1


def test_group_rejects_unknown_type(clock) -> None:
    with pytest.raises(ValueError, match="unknown group type"):
        ActionTaskBuilder(clock=clock).group([], "owner")


def test_merge_duplicates_keeps_first_and_unions_references(clock) -> None:
    builder = ActionTaskBuilder(clock=clock)
    entity = AffectedEntity(entity_id="room-1", entity_type="room")
    first = _task(
        "first",
        title="Remediate: Humidity spike",
        affected_entities=[entity],
        related_references=[ActionReference("alert-1", "alert", "Humidity spike", "alert-center")],
    )
    second = _task(
        "second",
        title="Remediate: Humidity spike",
        affected_entities=[entity],
        related_references=[
            ActionReference("alert-1", "alert", "Humidity spike", "alert-center"),
            ActionReference("alert-2", "alert", "Humidity spike", "alert-center"),
        ],
    )
    other = _task("other", title="Remediate: Humidity spike", category="audit-remediation")
    merged = builder.merge_duplicates([first, second, other])
    assert [task.task_id for task in merged] == ["first", "other"]
    assert [ref.reference_id for ref in merged[0].related_references] == ["alert-1", "alert-2"]
    assert [ref.reference_id for ref in first.related_references] == ["alert-1"]


def test_calculate_priority_combines_severity_age_and_category(clock) -> None:
    builder = ActionTaskBuilder(clock=clock)
    fresh_audit = _task(
        "audit",
        severity="high",
        category="audit-remediation",
        created_at="2026-03-01T10:00:00Z",
    )
    assert builder.calculate_priority(fresh_audit) == pytest.approx(75 + 2 + 20)

    ancient = _task("ancient", severity="low", category="fabric-link-breakage", created_at="2025-01-01T00:00:00Z")
    assert builder.calculate_priority(ancient) == pytest.approx(25 + 100 + 5)

    working = _task("working", severity="info", status="in-progress", created_at="2026-03-01T12:00:00Z")
    assert builder.calculate_priority(working) == pytest.approx(10 + 0 + 10 + 10)

    closed = _task("closed", severity="critical", status="dismissed", created_at="2026-03-01T12:00:00Z")
    assert builder.calculate_priority(closed) == pytest.approx(100 + 10 - 500)


def test_sort_by_priority_puts_open_urgent_first(clock) -> None:
    builder = ActionTaskBuilder(clock=clock)
    ordered = builder.sort_by_priority(
        [
            _task("resolved", severity="critical", status="resolved"),
            _task("medium", severity="medium"),
            _task("critical", severity="critical"),
        ]
    )
    assert [task.task_id for task in ordered] == ["critical", "medium", "resolved"]


def test_filters(clock) -> None:
    builder = ActionTaskBuilder(clock=clock)
    tasks = [
        _task("mine", assigned_to="sam", scope=ActionScope("default", "facility-main", "room-1")),
        _task("north", scope=ActionScope("default", "facility-north"), created_at="2026-01-01T00:00:00Z"),
        _task(
            "restricted",
            remediation=RemediationMetadata(
                suggested_action="fix",
                estimated_effort="low",
                required_permissions=["action.resolve", "audit.view"],
            ),
        ),
    ]
    assert [task.task_id for task in builder.filter_by_assignee(tasks, "sam")] == ["mine"]
    assert [task.task_id for task in builder.filter_by_facility(tasks, "facility-north")] == ["north"]
    assert [task.task_id for task in builder.filter_by_room(tasks, "room-1")] == ["mine"]

    window = DateRange(start=parse_timestamp("2026-02-01T00:00:00Z"), end=parse_timestamp("2026-03-31T00:00:00Z"))
    assert [task.task_id for task in builder.filter_by_date_range(tasks, window)] == ["mine", "restricted"]
    assert [task.task_id for task in builder.filter_by_permissions(tasks, ["action.resolve"])] == ["mine", "north"]
