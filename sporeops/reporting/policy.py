"""Access rules for report generation and bundle visibility."""

from __future__ import annotations

from sporeops.config.schema import ReportingConfig
from sporeops.core.clock import Clock, isoformat, new_id, utc_now
from sporeops.reporting.types import (
    DEFAULT_PERIOD_DAYS,
    PERIOD_DAYS,
    ReportBundle,
    ReportQuery,
    ReportScope,
    ReportingPolicyAudit,
    ReportingPolicyContext,
    ReportingPolicyDecision,
    TimeRange,
)


CROSS_TENANT_READ = "reporting:cross-tenant-read"
FEDERATION_ADMIN = "reporting:federation-admin"
EXECUTIVE_VIEW = "reporting:executive-view"
COMPLIANCE_PACK = "reporting:compliance-pack"
LONG_RANGE = "reporting:long-range-reports"

EXECUTIVE_CATEGORIES = frozenset({"executive-summary", "cross-engine-operational"})
EXECUTIVE_ROLES = frozenset({"executive", "admin"})
COMPLIANCE_ROLES = frozenset({"auditor", "executive", "admin"})


def period_days(time_period: str, custom_range: TimeRange | None = None) -> float:
    """Length of a reporting period in days; unknown periods count as 30."""
    if time_period == "custom" and custom_range is not None:
        start, end = custom_range.start_at, custom_range.end_at
        if start is not None and end is not None:
            return (end - start).total_seconds() / 86400.0
    return float(PERIOD_DAYS.get(time_period, DEFAULT_PERIOD_DAYS))


class ReportingPolicyEngine:
    def __init__(self, *, config: ReportingConfig | None = None, clock: Clock = utc_now) -> None:
        self.config = config or ReportingConfig()
        self._clock = clock
        self._audits: list[ReportingPolicyAudit] = []

    def evaluate_query_policy(
        self,
        query: ReportQuery,
        context: ReportingPolicyContext,
    ) -> ReportingPolicyDecision:
        violations = self._scope_violations(query.scope, context)
        warnings: list[str] = []

        if query.category in EXECUTIVE_CATEGORIES and not self._is_executive(context):
            violations.append("Executive-level reports require executive permissions")
        if query.category == "compliance-pack" and not self._may_compile_pack(context):
            violations.append("Compliance pack generation requires auditor role or permission")

        if query.time_period == "custom":
            violations.extend(self._custom_range_violations(query.custom_time_range))

        limit = self.config.long_range_days
        days = period_days(query.time_period, query.custom_time_range)
        if days > limit and not context.has(LONG_RANGE):
            violations.append(f"Time period exceeds {limit} days without long-range reporting permission")
        elif days > limit:
            warnings.append("Long-range reports may have reduced data availability")

        allowed = not violations
        return ReportingPolicyDecision(
            allowed=allowed,
            reason="All policy checks passed" if allowed else f"Policy violations: {', '.join(violations)}",
            violations=violations,
            warnings=warnings,
        )

    def evaluate_bundle_visibility(self, bundle: ReportBundle, context: ReportingPolicyContext) -> bool:
        if self._scope_violations(bundle.scope, context):
            return False
        if bundle.category in EXECUTIVE_CATEGORIES and not self._is_executive(context):
            return False
        if bundle.category == "compliance-pack" and not self._may_compile_pack(context):
            return False
        return True

    def create_audit_entry(
        self,
        query: ReportQuery,
        context: ReportingPolicyContext,
        decision: ReportingPolicyDecision,
    ) -> ReportingPolicyAudit:
        audit = ReportingPolicyAudit(
            audit_id=new_id("audit"),
            timestamp=isoformat(self._clock()),
            user_id=context.user_id,
            user_role=context.role,
            tenant_id=context.user_tenant_id,
            query_id=query.query_id,
            query_description=query.description,
            query_scope=query.scope,
            decision=decision,
            policy_version=self.config.policy_version,
        )
        self._audits.append(audit)
        return audit

    def audits(self) -> list[ReportingPolicyAudit]:
        return list(self._audits)

    @staticmethod
    def _scope_violations(scope: ReportScope, context: ReportingPolicyContext) -> list[str]:
        violations: list[str] = []
        if scope.tenant_id and scope.tenant_id != context.user_tenant_id:
            if not (context.has(CROSS_TENANT_READ) or context.has(FEDERATION_ADMIN)):
                violations.append("Cross-tenant report access denied")
        if scope.federation_id and scope.federation_id != context.user_federation_id:
            if not (context.has(FEDERATION_ADMIN) or context.has(f"reporting:federation:{scope.federation_id}")):
                violations.append("Federation report access denied")
        return violations

    @staticmethod
    def _is_executive(context: ReportingPolicyContext) -> bool:
        return context.role in EXECUTIVE_ROLES or context.has(EXECUTIVE_VIEW)

    @staticmethod
    def _may_compile_pack(context: ReportingPolicyContext) -> bool:
        return context.role in COMPLIANCE_ROLES or context.has(COMPLIANCE_PACK)

    @staticmethod
    def _custom_range_violations(custom_range: TimeRange | None) -> list[str]:
        if custom_range is None:
            return ["Custom time period requires a time range"]
        start, end = custom_range.start_at, custom_range.end_at
        if start is None or end is None:
            return ["Custom time range must use ISO-8601 timestamps"]
        if end < start:
            return ["Custom time range end precedes start"]
        return []
