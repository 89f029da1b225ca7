"""Tenant isolation and permission checks for action queries and task lifecycle."""

from __future__ import annotations

from typing import Any

from sporeops.actions.types import (
    ACTION_CATEGORIES,
    ACTION_SOURCES,
    ActionLogEntry,
    ActionPolicyContext,
    ActionPolicyDecision,
    ActionQuery,
    ActionTask,
)
from sporeops.core.clock import Clock, isoformat, new_id, utc_now


VIEW_ALL = "action.view-all"
QUERY = "action.query"
FEDERATED = "action.federated"
ASSIGN_OTHERS = "action.assign-others"
CROSS_FACILITY = "facility.action.query"


class ActionPolicyEngine:
    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._decisions: list[ActionLogEntry] = []

    def authorize_query(self, query: ActionQuery, context: ActionPolicyContext) -> ActionPolicyDecision:
        cross_tenant = query.scope.tenant_id != context.tenant_id
        if cross_tenant and not context.federation_enabled:
            return self._record(context, ActionPolicyDecision(False, "Query tenant does not match user tenant"))
        if cross_tenant and not context.has(FEDERATED):
            return self._record(context, ActionPolicyDecision(False, "Federation not enabled for this user"))
        if not (context.has(QUERY) or context.has(VIEW_ALL)):
            return self._record(context, ActionPolicyDecision(False, f"Missing {QUERY} permission"))

        denied_categories: list[str] = []
        denied_sources: list[str] = []
        if not context.has(VIEW_ALL):
            denied_categories = [
                category
                for category in (query.categories or ACTION_CATEGORIES)
                if not context.has(f"action.{category}")
            ]
            denied_sources = [
                source
                for source in (query.sources or ACTION_SOURCES)
                if not context.has(f"action.source.{source}")
            ]
        if denied_categories or denied_sources:
            return self._record(
                context,
                ActionPolicyDecision(
                    True,
                    "Partial authorization",
                    denied_categories=denied_categories,
                    denied_sources=denied_sources,
                ),
            )
        return self._record(context, ActionPolicyDecision(True))

    @staticmethod
    def authorize_task(task: ActionTask, context: ActionPolicyContext) -> ActionPolicyDecision:
        if task.scope.tenant_id != context.tenant_id and not context.federation_enabled:
            return ActionPolicyDecision(False, "Task from different tenant (federation disabled)")
        category_permission = f"action.{task.category}"
        if not (context.has(category_permission) or context.has(VIEW_ALL)):
            return ActionPolicyDecision(False, f"Missing {category_permission} permission")
        source_permission = f"action.source.{task.source}"
        if not (context.has(source_permission) or context.has(VIEW_ALL)):
            return ActionPolicyDecision(False, f"Missing {source_permission} permission")
        if (
            task.scope.facility_id
            and context.facility_id
            and task.scope.facility_id != context.facility_id
            and not context.has(CROSS_FACILITY)
        ):
            return ActionPolicyDecision(False, "Task from different facility")
        return ActionPolicyDecision(True)

    def authorize_lifecycle_change(
        self,
        task: ActionTask,
        operation: str,
        context: ActionPolicyContext,
        *,
        assignee: str | None = None,
    ) -> ActionPolicyDecision:
        visibility = self.authorize_task(task, context)
        if not visibility.authorized:
            return visibility
        permission = f"action.{operation}"
        if not context.has(permission):
            return ActionPolicyDecision(False, f"Missing {permission} permission", restricted_operations=[operation])
        if operation == "assign" and (assignee or context.performed_by) != context.performed_by:
            if not context.has(ASSIGN_OTHERS):
                return ActionPolicyDecision(
                    False,
                    f"Missing {ASSIGN_OTHERS} permission",
                    restricted_operations=["assign-others"],
                )
        return ActionPolicyDecision(True)

    def _record(self, context: ActionPolicyContext, decision: ActionPolicyDecision) -> ActionPolicyDecision:
        self._decisions.append(
            ActionLogEntry(
                entry_id=new_id("policy"),
                entry_type="policy-decision",
                timestamp=isoformat(self._clock()),
                tenant_id=context.tenant_id,
                facility_id=context.facility_id,
                performed_by=context.performed_by,
                success=decision.authorized,
                payload={"decision": decision.to_dict()},
            )
        )
        return decision

    def policy_log(self) -> list[ActionLogEntry]:
        return list(self._decisions)

    def policy_statistics(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "total_decisions": len(self._decisions),
            "authorized": 0,
            "denied": 0,
            "partially_authorized": 0,
            "by_reason": {},
            "by_tenant": {},
            "by_performer": {},
        }
        for entry in self._decisions:
            decision = entry.payload["decision"]
            if not decision["authorized"]:
                stats["denied"] += 1
            elif decision["denied_categories"] or decision["denied_sources"]:
                stats["partially_authorized"] += 1
            else:
                stats["authorized"] += 1
            reason = decision.get("reason")
            if reason:
                stats["by_reason"][reason] = stats["by_reason"].get(reason, 0) + 1
            stats["by_tenant"][entry.tenant_id] = stats["by_tenant"].get(entry.tenant_id, 0) + 1
            stats["by_performer"][entry.performed_by] = stats["by_performer"].get(entry.performed_by, 0) + 1
        return stats

    def clear_policy_log(self) -> None:
        self._decisions.clear()
