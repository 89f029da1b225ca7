"""Append-only audit trail for the action center."""

from __future__ import annotations

import copy
from datetime import datetime, timedelta
from typing import Any

from sporeops.actions.types import (
    ActionGroup,
    ActionLogEntry,
    ActionPolicyDecision,
    ActionQuery,
    ActionTask,
    LOG_ENTRY_TYPES,
)
from sporeops.core.clock import EPOCH, Clock, isoformat, new_id, parse_timestamp, utc_now
from sporeops.core.logging import EventLogger, get_logger


def _most_common(distribution: dict[str, int]) -> str:
    best_key = ""
    best_count = 0
    for key, count in distribution.items():
        if count > best_count:
            best_key, best_count = key, count
    return best_key


class ActionLog:
    def __init__(self, *, clock: Clock = utc_now, event_logger: EventLogger | None = None) -> None:
        self._clock = clock
        self._entries: list[ActionLogEntry] = []
        self._events = event_logger or EventLogger(logger=get_logger("sporeops.actions"), service_name="sporeops")

    def _append(self, entry: ActionLogEntry) -> ActionLogEntry:
        if entry.entry_type not in LOG_ENTRY_TYPES:
            raise ValueError(f"unknown action log entry type '{entry.entry_type}'")
        self._entries.append(entry)
        self._events.emit(
            message=f"action {entry.entry_type}",
            component="actions",
            action=entry.entry_type,
            tenant_id=entry.tenant_id,
            user_id=entry.performed_by,
            outcome="success" if entry.success else "failure",
            payload={"entry_id": entry.entry_id, "error": entry.error, **entry.payload},
            level="INFO" if entry.success else "WARNING",
        )
        return entry

    def _entry(
        self,
        entry_type: str,
        *,
        tenant_id: str,
        performed_by: str,
        facility_id: str | None = None,
        success: bool = True,
        error: str | None = None,
        payload: dict[str, Any] | None = None,
        task: ActionTask | None = None,
    ) -> ActionLogEntry:
        return self._append(
            ActionLogEntry(
                entry_id=new_id(entry_type.replace("-", "")),
                entry_type=entry_type,
                timestamp=isoformat(self._clock()),
                tenant_id=tenant_id,
                performed_by=performed_by,
                facility_id=facility_id,
                success=success,
                error=error,
                payload=payload or {},
                task=copy.deepcopy(task) if task is not None else None,
            )
        )

    def log_task(self, task: ActionTask, performed_by: str) -> ActionLogEntry:
        return self._entry(
            "task",
            tenant_id=task.scope.tenant_id,
            facility_id=task.scope.facility_id,
            performed_by=performed_by,
            payload={"task_id": task.task_id, "category": task.category, "status": task.status},
            task=task,
        )

    def log_query(
        self,
        query: ActionQuery,
        *,
        result_count: int,
        execution_time_ms: float,
        success: bool = True,
        error: str | None = None,
    ) -> ActionLogEntry:
        return self._entry(
            "query",
            tenant_id=query.scope.tenant_id,
            facility_id=query.scope.facility_id,
            performed_by=query.triggered_by,
            success=success,
            error=error,
            payload={
                "query_id": query.query_id,
                "result_count": result_count,
                "execution_time_ms": round(execution_time_ms, 3),
            },
        )

    def log_group(self, group: ActionGroup, *, tenant_id: str, performed_by: str) -> ActionLogEntry:
        return self._entry(
            "group",
            tenant_id=tenant_id,
            performed_by=performed_by,
            payload={
                "group_id": group.group_id,
                "group_type": group.group_type,
                "task_count": len(group.tasks),
            },
        )

    def log_routing(
        self,
        *,
        source: str,
        routed: int,
        filtered: int,
        tenant_id: str,
        performed_by: str,
    ) -> ActionLogEntry:
        return self._entry(
            "routing",
            tenant_id=tenant_id,
            performed_by=performed_by,
            payload={"source": source, "tasks_routed": routed, "tasks_filtered": filtered},
        )

    def log_policy_decision(
        self,
        decision: ActionPolicyDecision,
        *,
        tenant_id: str,
        performed_by: str,
        facility_id: str | None = None,
        subject: str = "query",
    ) -> ActionLogEntry:
        return self._entry(
            "policy-decision",
            tenant_id=tenant_id,
            facility_id=facility_id,
            performed_by=performed_by,
            success=decision.authorized,
            error=None if decision.authorized else decision.reason,
            payload={"subject": subject, "decision": decision.to_dict()},
        )

    def log_lifecycle_change(
        self,
        task: ActionTask,
        *,
        operation: str,
        previous_status: str,
        performed_by: str,
        notes: str | None = None,
    ) -> ActionLogEntry:
        return self._entry(
            "lifecycle-change",
            tenant_id=task.scope.tenant_id,
            facility_id=task.scope.facility_id,
            performed_by=performed_by,
            payload={
                "task_id": task.task_id,
                "operation": operation,
                "previous_status": previous_status,
                "new_status": task.status,
                "notes": notes,
            },
            task=task,
        )

    def log_error(
        self,
        error: str,
        *,
        tenant_id: str,
        performed_by: str,
        context: dict[str, Any] | None = None,
    ) -> ActionLogEntry:
        return self._entry(
            "error",
            tenant_id=tenant_id,
            performed_by=performed_by,
            success=False,
            error=error,
            payload=context or {},
        )

    def get_all_entries(self) -> list[ActionLogEntry]:
        return list(self._entries)

    def get_entries_by_type(self, entry_type: str) -> list[ActionLogEntry]:
        return [entry for entry in self._entries if entry.entry_type == entry_type]

    def get_entries_in_range(self, start: datetime, end: datetime) -> list[ActionLogEntry]:
        selected: list[ActionLogEntry] = []
        for entry in self._entries:
            stamp = parse_timestamp(entry.timestamp)
            if stamp is not None and start <= stamp <= end:
                selected.append(entry)
        return selected

    def get_entries_by_performer(self, performed_by: str) -> list[ActionLogEntry]:
        return [entry for entry in self._entries if entry.performed_by == performed_by]

    def get_entries_by_tenant(self, tenant_id: str) -> list[ActionLogEntry]:
        return [entry for entry in self._entries if entry.tenant_id == tenant_id]

    def get_recent_entries(self, limit: int = 50) -> list[ActionLogEntry]:
        if limit <= 0:
            return []
        return list(reversed(self._entries[-limit:]))

    def get_all_tasks(self) -> list[ActionTask]:
        """Latest logged snapshot of every task, in first-seen order."""
        latest: dict[str, ActionTask] = {}
        for entry in self._entries:
            if entry.task is not None:
                latest[entry.task.task_id] = entry.task
        return list(latest.values())

    def get_tasks_by_category(self, category: str) -> list[ActionTask]:
        return [task for task in self.get_all_tasks() if task.category == category]

    def get_tasks_by_severity(self, severity: str) -> list[ActionTask]:
        return [task for task in self.get_all_tasks() if task.severity == severity]

    def get_tasks_by_source(self, source: str) -> list[ActionTask]:
        return [task for task in self.get_all_tasks() if task.source == source]

    def get_tasks_by_status(self, status: str) -> list[ActionTask]:
        return [task for task in self.get_all_tasks() if task.status == status]

    def statistics(self, now: datetime | None = None) -> dict[str, Any]:
        reference = now or self._clock()
        day = timedelta(days=1)
        week = timedelta(days=7)
        tasks = self.get_all_tasks()
        stats: dict[str, Any] = {
            "total_tasks": len(tasks),
            "new_tasks": 0,
            "acknowledged_tasks": 0,
            "assigned_tasks": 0,
            "in_progress_tasks": 0,
            "resolved_tasks": 0,
            "dismissed_tasks": 0,
            "by_category": {},
            "by_severity": {},
            "by_source": {},
            "by_status": {},
        }
        trends = {
            "tasks_created_today": 0,
            "tasks_resolved_today": 0,
            "tasks_created_this_week": 0,
            "tasks_resolved_this_week": 0,
            "average_resolution_time_hours": 0.0,
        }
        resolution_hours: list[float] = []
        for task in tasks:
            counter = f"{task.status.replace('-', '_')}_tasks"
            if counter in stats:
                stats[counter] += 1
            for bucket, key in (
                ("by_category", task.category),
                ("by_severity", task.severity),
                ("by_source", task.source),
                ("by_status", task.status),
            ):
                stats[bucket][key] = stats[bucket].get(key, 0) + 1

            created = task.created
            if created is not None:
                age = reference - created
                if age <= day:
                    trends["tasks_created_today"] += 1
                if age <= week:
                    trends["tasks_created_this_week"] += 1
            resolved = parse_timestamp(task.resolved_at)
            if resolved is not None:
                since = reference - resolved
                if since <= day:
                    trends["tasks_resolved_today"] += 1
                if since <= week:
                    trends["tasks_resolved_this_week"] += 1
                if created is not None:
                    resolution_hours.append((resolved - created).total_seconds() / 3600.0)
        if resolution_hours:
            trends["average_resolution_time_hours"] = sum(resolution_hours) / len(resolution_hours)
        stats["trends"] = trends
        stats["most_common_category"] = _most_common(stats["by_category"])
        stats["most_common_severity"] = _most_common(stats["by_severity"]) or "info"
        stats["most_common_source"] = _most_common(stats["by_source"])
        return stats

    def export(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        entry_types: list[str] | None = None,
        performed_by: str | None = None,
        tenant_id: str | None = None,
        success_only: bool = False,
        failure_only: bool = False,
    ) -> dict[str, Any]:
        entries = list(self._entries)
        if start is not None or end is not None:
            entries = self.get_entries_in_range(start or EPOCH, end or self._clock())
        if entry_types:
            entries = [entry for entry in entries if entry.entry_type in entry_types]
        if performed_by:
            entries = [entry for entry in entries if entry.performed_by == performed_by]
        if tenant_id:
            entries = [entry for entry in entries if entry.tenant_id == tenant_id]
        if success_only:
            entries = [entry for entry in entries if entry.success]
        if failure_only:
            entries = [entry for entry in entries if not entry.success]
        return {
            "entries": [entry.to_dict() for entry in entries],
            "exported_at": isoformat(self._clock()),
            "filters": {
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
                "entry_types": entry_types,
                "performed_by": performed_by,
                "tenant_id": tenant_id,
                "success_only": success_only,
                "failure_only": failure_only,
            },
        }

    def clear_old_entries(self, days_to_keep: int = 90) -> int:
        cutoff = self._clock() - timedelta(days=days_to_keep)
        kept = [
            entry
            for entry in self._entries
            if (parse_timestamp(entry.timestamp) or cutoff) >= cutoff
        ]
        removed = len(self._entries) - len(kept)
        self._entries = kept
        return removed

    def clear_all(self) -> None:
        self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)
