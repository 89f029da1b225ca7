"""Wires configuration, tenancy and the pipeline engines together."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from sporeops.actions.engine import ActionEngine
from sporeops.actions.types import (
    ActionInputError,
    ActionPolicyContext,
    EngineInputs,
    LifecycleOutcome,
)
from sporeops.config.schema import AppConfig
from sporeops.core.clock import Clock, utc_now
from sporeops.core.logging import EventLogger, configure_logging, get_logger
from sporeops.core.tenant import TenantManager
from sporeops.reporting.engine import ReportingEngine
from sporeops.reporting.types import (
    ExportedContent,
    ReportInputError,
    ReportResult,
    ReportingData,
    ReportingPolicyContext,
)


RETENTION_CHECK_INTERVAL = timedelta(hours=1)


def _payload_object(payload: dict[str, Any], key: str, *, error: type[Exception]) -> dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise error(f"'{key}' must be an object")
    return value


class Orchestrator:
    def __init__(self, config: AppConfig, *, clock: Clock = utc_now) -> None:
        self.config = config
        self._clock = clock
        configure_logging(config.logging)
        self.logger = get_logger("sporeops.orchestrator", level=config.logging.level)
        self.event_logger = EventLogger(
            logger=get_logger("sporeops.events", level=config.logging.level),
            service_name=config.logging.service_name,
        )
        self.tenant_manager = TenantManager(config.multi_tenant)
        self.reporting = ReportingEngine(config=config.reporting, clock=clock, event_logger=self.event_logger)
        self._action_engines: dict[str, ActionEngine] = {}
        self._last_prune = clock()

    def action_engine(self, tenant_id: str | None = None) -> ActionEngine:
        requested = tenant_id or self.config.multi_tenant.default_tenant
        if not self.tenant_manager.is_known(requested):
            raise ActionInputError(f"unknown tenant '{requested}'")
        engine = self._action_engines.get(requested)
        if engine is None:
            engine = ActionEngine(
                requested,
                config=self.config.actions,
                clock=self._clock,
                event_logger=self.event_logger,
            )
            self._action_engines[requested] = engine
            self.logger.info(
                "action engine created",
                extra={"component": "orchestrator", "tenant_id": requested},
            )
        return engine

    def action_engines(self) -> dict[str, ActionEngine]:
        return dict(self._action_engines)

    def run_action_query(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Execute an action query, then any follow-up lifecycle operations listed in the payload."""
        self._maybe_prune()
        context = ActionPolicyContext.from_dict(payload.get("context"))
        engine = self.action_engine(context.tenant_id)
        query = engine.parse_query(_payload_object(payload, "query", error=ActionInputError))
        inputs = EngineInputs.from_dict(payload.get("inputs"))
        result = engine.execute_query(query, context, inputs)

        operations = payload.get("operations") or []
        if not isinstance(operations, list):
            raise ActionInputError("'operations' must be a list")
        outcomes: list[dict[str, Any]] = []
        for item in operations:
            if not isinstance(item, dict):
                raise ActionInputError("each operation must be an object")
            outcome = engine.apply_operation(
                str(item.get("operation", "")),
                str(item.get("task_id", "")),
                context,
                assignee=item.get("assignee"),
                notes=item.get("notes"),
            )
            outcomes.append(outcome.to_dict())
        return {"result": result.to_dict(), "operations": outcomes}

    def apply_action_operation(
        self,
        tenant_id: str,
        task_id: str,
        operation: str,
        payload: dict[str, Any],
    ) -> LifecycleOutcome:
        engine = self.action_engine(tenant_id)
        context = ActionPolicyContext.from_dict(payload.get("context"))
        return engine.apply_operation(
            operation,
            task_id,
            context,
            assignee=payload.get("assignee"),
            notes=payload.get("notes"),
        )

    def _reporting_context(self, raw: Any) -> ReportingPolicyContext:
        context = ReportingPolicyContext.from_dict(raw)
        if context.user_federation_id is None:
            context.user_federation_id = self.tenant_manager.federation_for(context.user_tenant_id)
        return context

    def run_report(self, payload: dict[str, Any]) -> ReportResult:
        self._maybe_prune()
        query = self.reporting.parse_query(_payload_object(payload, "query", error=ReportInputError))
        context = self._reporting_context(payload.get("context"))
        data = ReportingData.from_dict(payload.get("data"))
        return self.reporting.execute_query(query, context, data)

    def reexport_report(self, bundle_id: str, report_format: str, payload: dict[str, Any]) -> ExportedContent:
        context = self._reporting_context(payload.get("context"))
        return self.reporting.reexport(bundle_id, report_format, context)

    def prune_logs(self) -> dict[str, Any]:
        """Apply retention to the reporting engine and every tenant's action engine."""
        self._last_prune = self._clock()
        removed = {
            "reporting": self.reporting.prune_log(),
            "actions": {tenant_id: engine.prune() for tenant_id, engine in self._action_engines.items()},
        }
        self.logger.info("retention applied", extra={"component": "orchestrator", "payload": removed})
        return removed

    def _maybe_prune(self) -> None:
        if self._clock() - self._last_prune >= RETENTION_CHECK_INTERVAL:
            self.prune_logs()

    def status(self) -> dict[str, Any]:
        return {
            "environment": self.config.environment,
            "multi_tenant": self.tenant_manager.snapshot(),
            "reporting": self.reporting.snapshot(),
            "actions": {tenant_id: engine.snapshot() for tenant_id, engine in self._action_engines.items()},
        }
