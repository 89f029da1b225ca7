"""Grouping, de-duplication, ordering and filtering of action tasks."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Iterable

from sporeops.actions.types import (
    ActionGroup,
    ActionReference,
    ActionTask,
    DateRange,
    SEVERITY_RANK,
)
from sporeops.core.clock import Clock, isoformat, timestamp_or_epoch, utc_now


_SEVERITY_POINTS = {"critical": 100, "high": 75, "medium": 50, "low": 25, "info": 10}
_CATEGORY_BONUS = {
    "audit-remediation": 20,
    "compliance-pack-issue": 20,
    "integrity-drift-remediation": 15,
    "governance-lineage-issue": 15,
    "alert-remediation": 10,
}
_DEFAULT_CATEGORY_BONUS = 5
_MAX_AGE_POINTS = 100
_CLOSED_PENALTY = 500
_IN_PROGRESS_BONUS = 10
_STATUS_COUNTERS = {
    "new": "new_tasks",
    "acknowledged": "acknowledged_tasks",
    "assigned": "assigned_tasks",
    "in-progress": "in_progress_tasks",
    "resolved": "resolved_tasks",
    "dismissed": "dismissed_tasks",
}


def _severity_key(task: ActionTask) -> tuple[int, float]:
    return (SEVERITY_RANK.get(task.severity, len(SEVERITY_RANK)), -timestamp_or_epoch(task.created_at).timestamp())


class ActionTaskBuilder:
    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._clock = clock

    def group_by_category(self, tasks: list[ActionTask]) -> list[ActionGroup]:
        return self._group(tasks, "category", lambda task: [task.category])

    def group_by_severity(self, tasks: list[ActionTask]) -> list[ActionGroup]:
        return self._group(tasks, "severity", lambda task: [task.severity])

    def group_by_entity(self, tasks: list[ActionTask]) -> list[ActionGroup]:
        return self._group(tasks, "entity", lambda task: [entity.key for entity in task.affected_entities])

    def group_by_source(self, tasks: list[ActionTask]) -> list[ActionGroup]:
        return self._group(tasks, "source", lambda task: [task.source])

    def group_by_status(self, tasks: list[ActionTask]) -> list[ActionGroup]:
        return self._group(tasks, "status", lambda task: [task.status])

    def group(self, tasks: list[ActionTask], group_type: str) -> list[ActionGroup]:
        grouper = {
            "category": self.group_by_category,
            "severity": self.group_by_severity,
            "entity": self.group_by_entity,
            "source": self.group_by_source,
            "status": self.group_by_status,
        }.get(group_type)
        if grouper is None:
            raise ValueError(f"unknown group type '{group_type}'")
        return grouper(tasks)

    def _group(
        self,
        tasks: list[ActionTask],
        group_type: str,
        keys_for: Callable[[ActionTask], list[str]],
    ) -> list[ActionGroup]:
        buckets: dict[str, list[ActionTask]] = {}
        for task in tasks:
            for key in keys_for(task):
                buckets.setdefault(key, []).append(task)
        created_at = isoformat(self._clock())
        groups: list[ActionGroup] = []
        for key, members in buckets.items():
            ordered = self.sort_tasks(members)
            groups.append(
                ActionGroup(
                    group_id=f"group-{group_type}-{key}",
                    group_type=group_type,
                    group_key=key,
                    title=f"{group_type.capitalize()}: {key}",
                    tasks=ordered,
                    summary=self.summarize(ordered),
                    references=self.merge_references(ordered),
                    created_at=created_at,
                )
            )
        return groups

    @staticmethod
    def merge_references(tasks: Iterable[ActionTask]) -> list[ActionReference]:
        merged: dict[str, ActionReference] = {}
        for task in tasks:
            for reference in task.related_references:
                merged.setdefault(reference.reference_id, reference)
        return list(merged.values())

    @staticmethod
    def summarize(tasks: list[ActionTask]) -> dict[str, Any]:
        summary: dict[str, Any] = {"total_tasks": len(tasks)}
        summary.update({counter: 0 for counter in _STATUS_COUNTERS.values()})
        by_severity: dict[str, int] = {}
        by_category: dict[str, int] = {}
        for task in tasks:
            counter = _STATUS_COUNTERS.get(task.status)
            if counter:
                summary[counter] += 1
            by_severity[task.severity] = by_severity.get(task.severity, 0) + 1
            by_category[task.category] = by_category.get(task.category, 0) + 1
        summary["by_severity"] = by_severity
        summary["by_category"] = by_category
        return summary

    @staticmethod
    def duplicate_key(task: ActionTask) -> str:
        entities = ",".join(sorted(entity.key for entity in task.affected_entities))
        return f"{task.title}|{task.category}|{entities}"

    def merge_duplicates(self, tasks: list[ActionTask]) -> list[ActionTask]:
        """Collapse tasks sharing title, category and entity set.

        The first occurrence wins and absorbs the references of later
        duplicates. Input tasks are left untouched.
        """
        merged: dict[str, ActionTask] = {}
        for task in tasks:
            key = self.duplicate_key(task)
            existing = merged.get(key)
            if existing is None:
                merged[key] = replace(task, related_references=list(task.related_references))
                continue
            known = {reference.reference_id for reference in existing.related_references}
            for reference in task.related_references:
                if reference.reference_id not in known:
                    existing.related_references.append(reference)
                    known.add(reference.reference_id)
        return list(merged.values())

    @staticmethod
    def sort_tasks(tasks: list[ActionTask]) -> list[ActionTask]:
        return sorted(tasks, key=_severity_key)

    def calculate_priority(self, task: ActionTask, now: datetime | None = None) -> float:
        reference = now or self._clock()
        score = float(_SEVERITY_POINTS.get(task.severity, _SEVERITY_POINTS["info"]))
        created = task.created
        if created is not None:
            age_hours = max(0.0, (reference - created).total_seconds() / 3600.0)
            score += min(age_hours, float(_MAX_AGE_POINTS))
        score += _CATEGORY_BONUS.get(task.category, _DEFAULT_CATEGORY_BONUS)
        if task.status in {"resolved", "dismissed"}:
            score -= _CLOSED_PENALTY
        elif task.status == "in-progress":
            score += _IN_PROGRESS_BONUS
        return score

    def sort_by_priority(self, tasks: list[ActionTask]) -> list[ActionTask]:
        now = self._clock()
        return sorted(tasks, key=lambda task: self.calculate_priority(task, now), reverse=True)

    @staticmethod
    def filter_by_assignee(tasks: list[ActionTask], assignee: str) -> list[ActionTask]:
        return [task for task in tasks if task.assigned_to == assignee]

    @staticmethod
    def filter_by_facility(tasks: list[ActionTask], facility_id: str) -> list[ActionTask]:
        return [task for task in tasks if task.scope.facility_id == facility_id]

    @staticmethod
    def filter_by_room(tasks: list[ActionTask], room_id: str) -> list[ActionTask]:
        return [task for task in tasks if task.scope.room_id == room_id]

    @staticmethod
    def filter_by_date_range(tasks: list[ActionTask], date_range: DateRange) -> list[ActionTask]:
        return [task for task in tasks if date_range.contains(task.created)]

    @staticmethod
    def filter_by_permissions(tasks: list[ActionTask], permissions: Iterable[str]) -> list[ActionTask]:
        held = set(permissions)
        return [
            task
            for task in tasks
            if task.remediation is None or all(item in held for item in task.remediation.required_permissions)
        ]
