"""Enterprise reporting orchestration: policy, generation, export and audit."""

from __future__ import annotations

import time
import traceback
from datetime import timedelta
from typing import Any

from sporeops.config.schema import ReportingConfig
from sporeops.core.clock import Clock, isoformat, new_id, parse_timestamp, utc_now
from sporeops.core.logging import EventLogger, emit_metric, get_logger
from sporeops.reporting.builder import ReportingBuilder
from sporeops.reporting.export import render_bundle
from sporeops.reporting.log import ReportingLog
from sporeops.reporting.policy import ReportingPolicyEngine
from sporeops.reporting.types import (
    DEFAULT_PERIOD_DAYS,
    PERIOD_DAYS,
    ExportedContent,
    ReportAccessError,
    ReportBundle,
    ReportNotFoundError,
    ReportQuery,
    ReportResult,
    ReportStatistics,
    ReportingData,
    ReportingPolicyContext,
)


class ReportingEngine:
    """Generates report bundles and keeps them available for re-export."""

    def __init__(
        self,
        *,
        config: ReportingConfig | None = None,
        clock: Clock = utc_now,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.config = config or ReportingConfig()
        self._clock = clock
        self.builder = ReportingBuilder(config=self.config, clock=clock)
        self.policy = ReportingPolicyEngine(config=self.config, clock=clock)
        self.log = ReportingLog(clock=clock, event_logger=event_logger)
        self.logger = get_logger("sporeops.reporting.engine")
        self._bundles: dict[str, ReportBundle] = {}

    def parse_query(self, raw: dict[str, Any]) -> ReportQuery:
        return ReportQuery.from_dict(
            raw,
            default_format=self.config.default_format,
            default_time_period=self.config.default_time_period,
        )

    def execute_query(
        self,
        query: ReportQuery,
        context: ReportingPolicyContext,
        data: ReportingData,
    ) -> ReportResult:
        started = time.perf_counter()
        decision = self.policy.evaluate_query_policy(query, context)
        self.policy.create_audit_entry(query, context, decision)
        self.log.log_policy_decision(query.query_id, query.scope, decision, context.user_id)
        if not decision.allowed:
            self.log.log_error(
                query.query_id,
                error_code="POLICY_VIOLATION",
                message=decision.reason,
                details="; ".join(decision.violations),
                tenant_id=query.scope.tenant_id,
                user_id=context.user_id,
            )
            return self._error_result(query, decision.reason, started, decision=decision)

        try:
            period_start, period_end = self.period_bounds(query)
            bundle = self.builder.build_bundle(
                query,
                data,
                bundle_id=new_id("bundle"),
                report_id=new_id("report"),
                period_start=period_start,
                period_end=period_end,
            )
            build_ms = (time.perf_counter() - started) * 1000.0
            self.log.log_report_generated(bundle, context.user_id, generation_time_ms=build_ms)
            self._store_bundle(bundle)
            exported = None
            if query.format != "json":
                exported = self.export_bundle(
                    bundle,
                    query.format,
                    context.user_id,
                    include_metadata=query.include_metadata,
                )
        except Exception as exc:
            self.logger.exception("report generation failed", extra={"component": "reporting"})
            self.log.log_error(
                query.query_id,
                error_code="GENERATION_ERROR",
                message=str(exc),
                details=traceback.format_exc(),
                tenant_id=query.scope.tenant_id,
                user_id=context.user_id,
            )
            return self._error_result(query, f"Report generation failed: {exc}", started, decision=decision)

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        emit_metric(
            self.logger,
            name="report_generation_ms",
            value=elapsed_ms,
            component="reporting",
            payload={"category": query.category, "tenant_id": query.scope.tenant_id},
        )
        return ReportResult(
            result_id=new_id("result"),
            query=query,
            success=True,
            generated_at=isoformat(self._clock()),
            generation_time_ms=round(elapsed_ms, 3),
            sections_generated=len(bundle.sections),
            references_included=bundle.references.total(),
            bundle=bundle,
            exported=exported,
            decision=decision,
        )

    def period_bounds(self, query: ReportQuery) -> tuple[str, str]:
        if query.time_period == "custom" and query.custom_time_range is not None:
            return query.custom_time_range.start, query.custom_time_range.end
        now = self._clock()
        days = PERIOD_DAYS.get(query.time_period, DEFAULT_PERIOD_DAYS)
        return isoformat(now - timedelta(days=days)), isoformat(now)

    def export_bundle(
        self,
        bundle: ReportBundle,
        report_format: str,
        user_id: str,
        *,
        include_metadata: bool = True,
    ) -> ExportedContent:
        exported = render_bundle(bundle, report_format, include_metadata=include_metadata)
        self.log.log_report_exported(
            bundle.bundle_id,
            report_format=exported.format,
            filename=exported.filename,
            size_bytes=exported.size_bytes,
            tenant_id=bundle.scope.tenant_id,
            exported_by=user_id,
        )
        return exported

    def get_bundle(self, bundle_id: str, context: ReportingPolicyContext) -> ReportBundle:
        bundle = self._bundles.get(bundle_id)
        if bundle is None:
            raise ReportNotFoundError(f"Report bundle not found: {bundle_id}")
        if not self.policy.evaluate_bundle_visibility(bundle, context):
            raise ReportAccessError(f"Report bundle not visible to {context.user_id}")
        return bundle

    def reexport(self, bundle_id: str, report_format: str, context: ReportingPolicyContext) -> ExportedContent:
        return self.export_bundle(self.get_bundle(bundle_id, context), report_format, context.user_id)

    def bundles(self) -> list[ReportBundle]:
        return list(self._bundles.values())

    def statistics(self) -> ReportStatistics:
        return self.log.statistics()

    def _store_bundle(self, bundle: ReportBundle) -> None:
        self._bundles[bundle.bundle_id] = bundle
        while len(self._bundles) > self.config.max_bundles:
            evicted = next(iter(self._bundles))
            del self._bundles[evicted]
            self.logger.info(
                "report bundle evicted",
                extra={"component": "reporting", "bundle_id": evicted},
            )

    def prune_bundles(self) -> int:
        cutoff = self._clock() - timedelta(days=self.config.log_retention_days)
        expired = [
            bundle_id
            for bundle_id, bundle in self._bundles.items()
            if (parse_timestamp(bundle.metadata.generated_at) or cutoff) < cutoff
        ]
        for bundle_id in expired:
            del self._bundles[bundle_id]
        return len(expired)

    def prune_log(self) -> dict[str, int]:
        """Drop log entries and bundles older than the retention window."""
        return {
            "log_entries": self.log.clear_old_entries(self.config.log_retention_days),
            "bundles": self.prune_bundles(),
        }

    def _error_result(
        self,
        query: ReportQuery,
        error: str,
        started: float,
        *,
        decision: Any = None,
    ) -> ReportResult:
        return ReportResult(
            result_id=new_id("result"),
            query=query,
            success=False,
            generated_at=isoformat(self._clock()),
            generation_time_ms=round((time.perf_counter() - started) * 1000.0, 3),
            decision=decision,
            error=error,
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "bundles": len(self._bundles),
            "log_entries": self.log.size,
            "policy_version": self.config.policy_version,
        }
