"""Action center orchestration: query execution and task lifecycle."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any, Callable

from sporeops.actions.builder import ActionTaskBuilder
from sporeops.actions.log import ActionLog
from sporeops.actions.policy import ActionPolicyEngine
from sporeops.actions.router import ActionRouter
from sporeops.actions.types import (
    ActionAuthorizationError,
    ActionCenterError,
    ActionPolicyContext,
    ActionPolicyDecision,
    ActionQuery,
    ActionQueryOptions,
    ActionResult,
    ActionTask,
    ActionTaskNotFoundError,
    ActionTransitionError,
    EngineInputs,
    INPUT_KINDS,
    LIFECYCLE_OPERATIONS,
    LifecycleOutcome,
    SEVERITY_RANK,
)
from sporeops.config.schema import ActionsConfig
from sporeops.core.clock import Clock, isoformat, new_id, timestamp_or_epoch, utc_now
from sporeops.core.logging import EventLogger, emit_metric, get_logger


UPSTREAM_ACTOR = "upstream"
_OPEN_STATUSES = frozenset({"new", "acknowledged", "assigned", "in-progress"})
_TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "acknowledge": (frozenset({"new"}), "acknowledged"),
    "assign": (frozenset({"new", "acknowledged", "assigned"}), "assigned"),
    "start": (frozenset({"acknowledged", "assigned"}), "in-progress"),
    "resolve": (_OPEN_STATUSES, "resolved"),
    "dismiss": (_OPEN_STATUSES, "dismissed"),
}
_SOURCE_FOR_KIND = {
    "alerts": "alert-center",
    "audit_findings": "auditor",
    "drift_alerts": "integrity-monitor",
    "governance_issues": "governance-system",
    "documentation_issues": "documentation-bundler",
    "fabric_issues": "knowledge-fabric",
    "compliance_issues": "compliance-engine",
    "simulation_issues": "simulation-engine",
}


class ActionEngine:
    """Runs action queries for one tenant and owns the lifecycle of routed tasks."""

    def __init__(
        self,
        tenant_id: str,
        *,
        config: ActionsConfig | None = None,
        clock: Clock = utc_now,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.config = config or ActionsConfig()
        self._clock = clock
        self.router = ActionRouter(tenant_id, clock=clock)
        self.builder = ActionTaskBuilder(clock=clock)
        self.policy = ActionPolicyEngine(clock=clock)
        self.log = ActionLog(clock=clock, event_logger=event_logger)
        self.logger = get_logger("sporeops.actions.engine")
        self._tasks: dict[str, ActionTask] = {}

    def parse_query(self, raw: dict[str, Any]) -> ActionQuery:
        return ActionQuery.from_dict(
            raw,
            default_sort_by=self.config.default_sort_by,
            default_sort_order=self.config.default_sort_order,
            default_max_tasks=self.config.max_tasks,
            default_merge_duplicates=self.config.merge_duplicates,
        )

    def execute_query(
        self,
        query: ActionQuery,
        context: ActionPolicyContext,
        inputs: EngineInputs,
    ) -> ActionResult:
        started = time.perf_counter()
        executed_at = isoformat(self._clock())
        decision = self.policy.authorize_query(query, context)
        self.log.log_policy_decision(
            decision,
            tenant_id=context.tenant_id,
            facility_id=context.facility_id,
            performed_by=context.performed_by,
        )
        if not decision.authorized:
            error = f"Authorization failed: {decision.reason}"
            self.log.log_query(
                query,
                result_count=0,
                execution_time_ms=(time.perf_counter() - started) * 1000.0,
                success=False,
                error=error,
            )
            return ActionResult(
                result_id=new_id("result"),
                query=query,
                executed_at=executed_at,
                success=False,
                decision=decision,
                error=error,
            )

        try:
            routed = self._route(query, context, inputs)
            filtered = self._apply_filters(routed, query, decision)
            if query.options.merge_duplicates:
                filtered = self.builder.merge_duplicates(filtered)
            ordered = self._sort(filtered, query.options)
            limited = ordered[: query.options.max_tasks] if query.options.max_tasks else ordered
            groups = self.builder.group(limited, query.options.group_by) if query.options.group_by else []
            summary = self._summarize(limited)
        except ActionCenterError as exc:
            return self._failed(query, context, decision, executed_at, started, str(exc))
        except Exception as exc:
            self.logger.exception("action query failed", extra={"component": "actions"})
            return self._failed(query, context, decision, executed_at, started, f"Query execution failed: {exc}")

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        self.log.log_query(query, result_count=len(limited), execution_time_ms=elapsed_ms)
        for task in limited:
            self.log.log_task(task, context.performed_by)
        for group in groups:
            self.log.log_group(group, tenant_id=query.scope.tenant_id, performed_by=context.performed_by)
        emit_metric(
            self.logger,
            name="action_query_ms",
            value=elapsed_ms,
            component="actions",
            payload={"tenant_id": query.scope.tenant_id, "tasks": len(limited)},
        )
        return ActionResult(
            result_id=new_id("result"),
            query=query,
            executed_at=executed_at,
            tasks=limited,
            groups=groups,
            total_tasks=len(limited),
            new_tasks=sum(1 for task in limited if task.status == "new"),
            summary=summary,
            decision=decision,
        )

    def _failed(
        self,
        query: ActionQuery,
        context: ActionPolicyContext,
        decision: ActionPolicyDecision,
        executed_at: str,
        started: float,
        error: str,
    ) -> ActionResult:
        self.log.log_error(
            error,
            tenant_id=query.scope.tenant_id,
            performed_by=context.performed_by,
            context={"query_id": query.query_id},
        )
        self.log.log_query(
            query,
            result_count=0,
            execution_time_ms=(time.perf_counter() - started) * 1000.0,
            success=False,
            error=error,
        )
        return ActionResult(
            result_id=new_id("result"),
            query=query,
            executed_at=executed_at,
            success=False,
            decision=decision,
            error=error,
        )

    def _route(self, query: ActionQuery, context: ActionPolicyContext, inputs: EngineInputs) -> list[ActionTask]:
        router = self.router
        if query.scope.tenant_id != self.tenant_id:
            router = ActionRouter(query.scope.tenant_id, clock=self._clock)
        routed = router.route_all(inputs)
        tasks: list[ActionTask] = []
        for kind in INPUT_KINDS:
            records = getattr(inputs, kind)
            if not records:
                continue
            kind_tasks = routed.get(kind, [])
            self.log.log_routing(
                source=_SOURCE_FOR_KIND[kind],
                routed=len(kind_tasks),
                filtered=len(records) - len(kind_tasks),
                tenant_id=query.scope.tenant_id,
                performed_by=context.performed_by,
            )
            tasks.extend(self._track(task) for task in kind_tasks)
        return tasks

    def _track(self, task: ActionTask) -> ActionTask:
        existing = self._tasks.get(task.task_id)
        if existing is None:
            self._tasks[task.task_id] = task
            return task
        # Upstream resolution closes a task that is still open here.
        if task.status == "resolved" and existing.status in _OPEN_STATUSES:
            previous = existing.status
            now = isoformat(self._clock())
            existing.status = "resolved"
            existing.resolved_by = UPSTREAM_ACTOR
            existing.resolved_at = now
            existing.updated_at = now
            self.log.log_lifecycle_change(
                existing,
                operation="resolve",
                previous_status=previous,
                performed_by=UPSTREAM_ACTOR,
                notes="resolved upstream",
            )
        return existing

    def _apply_filters(
        self,
        tasks: list[ActionTask],
        query: ActionQuery,
        decision: ActionPolicyDecision,
    ) -> list[ActionTask]:
        checks: list[Callable[[ActionTask], bool]] = []
        if query.categories:
            checks.append(lambda task: task.category in query.categories)
        if query.severities:
            checks.append(lambda task: task.severity in query.severities)
        if query.sources:
            checks.append(lambda task: task.source in query.sources)
        if query.statuses:
            checks.append(lambda task: task.status in query.statuses)
        if query.entity_id and query.entity_type:
            checks.append(
                lambda task: any(
                    entity.entity_id == query.entity_id and entity.entity_type == query.entity_type
                    for entity in task.affected_entities
                )
            )
        if query.assigned_to:
            checks.append(lambda task: task.assigned_to == query.assigned_to)
        if query.date_range:
            checks.append(lambda task: query.date_range.contains(task.created))
        if query.scope.facility_id:
            checks.append(lambda task: task.scope.facility_id == query.scope.facility_id)
        if query.scope.room_id:
            checks.append(lambda task: task.scope.room_id == query.scope.room_id)
        if decision.denied_categories:
            checks.append(lambda task: task.category not in decision.denied_categories)
        if decision.denied_sources:
            checks.append(lambda task: task.source not in decision.denied_sources)
        if not query.options.include_resolved:
            checks.append(lambda task: task.status != "resolved")
        if not query.options.include_dismissed:
            checks.append(lambda task: task.status != "dismissed")
        return [task for task in tasks if all(check(task) for check in checks)]

    def _sort(self, tasks: list[ActionTask], options: ActionQueryOptions) -> list[ActionTask]:
        descending = options.sort_order == "desc"
        if options.sort_by == "severity":
            ordered = self.builder.sort_tasks(tasks)
            if not descending:
                ordered = sorted(ordered, key=lambda task: SEVERITY_RANK.get(task.severity, 0), reverse=True)
            return ordered
        if options.sort_by == "priority":
            ordered = self.builder.sort_by_priority(tasks)
            return ordered if descending else list(reversed(ordered))
        if options.sort_by == "createdAt":
            return sorted(tasks, key=lambda task: timestamp_or_epoch(task.created_at), reverse=descending)
        if options.sort_by == "category":
            return sorted(tasks, key=lambda task: task.category, reverse=descending)
        return sorted(tasks, key=lambda task: task.status, reverse=descending)

    @staticmethod
    def _summarize(tasks: list[ActionTask]) -> dict[str, Any]:
        by_category: dict[str, int] = {}
        by_severity: dict[str, int] = {}
        by_source: dict[str, int] = {}
        by_status: dict[str, int] = {}
        entities: dict[str, dict[str, Any]] = {}
        for task in tasks:
            by_category[task.category] = by_category.get(task.category, 0) + 1
            by_severity[task.severity] = by_severity.get(task.severity, 0) + 1
            by_source[task.source] = by_source.get(task.source, 0) + 1
            by_status[task.status] = by_status.get(task.status, 0) + 1
            for entity in task.affected_entities:
                bucket = entities.setdefault(
                    entity.key,
                    {
                        "entity_id": entity.entity_id,
                        "entity_type": entity.entity_type,
                        "title": entity.title,
                        "task_count": 0,
                    },
                )
                bucket["task_count"] += 1
        return {
            "by_category": by_category,
            "by_severity": by_severity,
            "by_source": by_source,
            "by_status": by_status,
            "affected_entities": sorted(entities.values(), key=lambda item: item["task_count"], reverse=True),
        }

    def get_task(self, task_id: str) -> ActionTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise ActionTaskNotFoundError(f"Task not found: {task_id}")
        return task

    def tasks(self) -> list[ActionTask]:
        return list(self._tasks.values())

    def acknowledge_task(self, task_id: str, context: ActionPolicyContext) -> LifecycleOutcome:
        return self.apply_operation("acknowledge", task_id, context)

    def assign_task(self, task_id: str, assignee: str, context: ActionPolicyContext) -> LifecycleOutcome:
        return self.apply_operation("assign", task_id, context, assignee=assignee)

    def start_task(self, task_id: str, context: ActionPolicyContext) -> LifecycleOutcome:
        return self.apply_operation("start", task_id, context)

    def resolve_task(
        self,
        task_id: str,
        context: ActionPolicyContext,
        notes: str | None = None,
    ) -> LifecycleOutcome:
        return self.apply_operation("resolve", task_id, context, notes=notes)

    def dismiss_task(
        self,
        task_id: str,
        context: ActionPolicyContext,
        reason: str | None = None,
    ) -> LifecycleOutcome:
        return self.apply_operation("dismiss", task_id, context, notes=reason)

    def apply_operation(
        self,
        operation: str,
        task_id: str,
        context: ActionPolicyContext,
        *,
        assignee: str | None = None,
        notes: str | None = None,
    ) -> LifecycleOutcome:
        try:
            task = self._transition(operation, task_id, context, assignee=assignee, notes=notes)
        except ActionTaskNotFoundError as exc:
            return self._lifecycle_failure(operation, task_id, context, str(exc), "not_found")
        except ActionAuthorizationError as exc:
            return self._lifecycle_failure(operation, task_id, context, str(exc), "forbidden")
        except ActionTransitionError as exc:
            return self._lifecycle_failure(operation, task_id, context, str(exc), "invalid_transition")
        return LifecycleOutcome(success=True, task=task)

    def _lifecycle_failure(
        self,
        operation: str,
        task_id: str,
        context: ActionPolicyContext,
        error: str,
        error_code: str,
    ) -> LifecycleOutcome:
        self.log.log_error(
            error,
            tenant_id=context.tenant_id,
            performed_by=context.performed_by,
            context={"task_id": task_id, "operation": operation, "error_code": error_code},
        )
        return LifecycleOutcome(success=False, error=error, error_code=error_code)

    def _transition(
        self,
        operation: str,
        task_id: str,
        context: ActionPolicyContext,
        *,
        assignee: str | None,
        notes: str | None,
    ) -> ActionTask:
        if operation not in LIFECYCLE_OPERATIONS:
            raise ActionTransitionError(f"unknown lifecycle operation '{operation}'")
        task = self.get_task(task_id)
        if operation == "assign" and not assignee:
            raise ActionTransitionError("assign requires an assignee")
        decision = self.policy.authorize_lifecycle_change(task, operation, context, assignee=assignee)
        self.log.log_policy_decision(
            decision,
            tenant_id=context.tenant_id,
            facility_id=context.facility_id,
            performed_by=context.performed_by,
            subject=f"{operation}:{task_id}",
        )
        if not decision.authorized:
            raise ActionAuthorizationError(decision.reason or f"{operation} not permitted")
        allowed_from, target = _TRANSITIONS[operation]
        if task.status not in allowed_from:
            raise ActionTransitionError(f"cannot {operation} task in status '{task.status}'")

        previous = task.status
        now = isoformat(self._clock())
        actor = context.performed_by
        if operation == "acknowledge":
            task.acknowledged_by, task.acknowledged_at = actor, now
        elif operation == "assign":
            task.assigned_to, task.assigned_by, task.assigned_at = assignee, actor, now
        elif operation == "start":
            task.started_by, task.started_at = actor, now
        elif operation == "resolve":
            task.resolved_by, task.resolved_at, task.resolution_notes = actor, now, notes
        else:
            task.dismissed_by, task.dismissed_at, task.dismissal_reason = actor, now, notes
        task.status = target
        task.updated_at = now
        self.log.log_lifecycle_change(
            task,
            operation=operation,
            previous_status=previous,
            performed_by=actor,
            notes=notes,
        )
        return task

    def prune(self) -> dict[str, int]:
        """Drop log entries and closed tasks older than the retention window; open tasks are kept."""
        cutoff = self._clock() - timedelta(days=self.config.log_retention_days)
        expired = [
            task_id
            for task_id, task in self._tasks.items()
            if task.status not in _OPEN_STATUSES and timestamp_or_epoch(task.updated_at) < cutoff
        ]
        for task_id in expired:
            del self._tasks[task_id]
        return {
            "log_entries": self.log.clear_old_entries(self.config.log_retention_days),
            "tasks": len(expired),
        }

    def statistics(self) -> dict[str, Any]:
        return self.log.statistics()

    def policy_statistics(self) -> dict[str, Any]:
        return self.policy.policy_statistics()

    def snapshot(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "tracked_tasks": len(self._tasks),
            "open_tasks": sum(1 for task in self._tasks.values() if task.status in _OPEN_STATUSES),
            "log_entries": self.log.size,
        }
