from typing import Any

import pytest

from sporeops.config.schema import ReportingConfig
from sporeops.reporting.policy import ReportingPolicyEngine, period_days
from sporeops.reporting.types import (
    BundleMetadata,
    ExecutiveSummary,
    ReportBundle,
    ReportQuery,
    ReportReferences,
    ReportScope,
    ReportingPolicyContext,
    TimeRange,
)


def _query(category: str = "risk-drift", **overrides: Any) -> ReportQuery:
    raw: dict[str, Any] = {
        "query_id": "rq-1",
        "category": category,
        "requested_by": "u-1",
        "scope": {"tenant_id": "default"},
    }
    raw.update(overrides)
    return ReportQuery.from_dict(raw)


def _context(role: str = "manager", *permissions: str, **overrides: Any) -> ReportingPolicyContext:
    fields: dict[str, Any] = {
        "user_id": "u-1",
        "user_tenant_id": "default",
        "role": role,
        "permissions": list(permissions),
    }
    fields.update(overrides)
    return ReportingPolicyContext(**fields)


def _bundle(category: str, scope: ReportScope) -> ReportBundle:
    return ReportBundle(
        bundle_id="bundle-1",
        report_id="report-1",
        title="Bundle",
        category=category,
        time_period="monthly",
        period_start="",
        period_end="",
        scope=scope,
        sections=[],
        executive_summary=ExecutiveSummary(overview=""),
        references=ReportReferences(),
        metadata=BundleMetadata(
            generated_at="",
            generated_by="u-1",
            format="json",
            page_count=0,
            word_count=0,
            data_sources_used=[],
            computation_time_ms=0.0,
        ),
    )


@pytest.mark.parametrize(
    ("time_period", "expected"),
    [("daily", 1.0), ("weekly", 7.0), ("monthly", 30.0), ("quarterly", 90.0), ("custom", 30.0)],
)
def test_period_days(time_period: str, expected: float) -> None:
    assert period_days(time_period) == expected


def test_period_days_for_custom_range() -> None:
    custom = TimeRange(start="2026-01-01T00:00:00Z", end="2026-01-11T12:00:00Z")
    assert period_days("custom", custom) == pytest.approx(10.5)


def test_same_tenant_manager_is_allowed(clock) -> None:
    decision = ReportingPolicyEngine(clock=clock).evaluate_query_policy(_query(), _context())
    assert decision.allowed is True
    assert decision.reason == "All policy checks passed"
    assert decision.violations == []
    assert decision.warnings == []


def test_cross_tenant_access(clock) -> None:
    policy = ReportingPolicyEngine(clock=clock)
    query = _query(scope={"tenant_id": "partner-farm"})
    denied = policy.evaluate_query_policy(query, _context())
    assert denied.allowed is False
    assert denied.violations == ["Cross-tenant report access denied"]
    assert denied.reason == "Policy violations: Cross-tenant report access denied"

    assert policy.evaluate_query_policy(query, _context("manager", "reporting:cross-tenant-read")).allowed is True
    assert policy.evaluate_query_policy(query, _context("manager", "reporting:federation-admin")).allowed is True


def test_federation_access(clock) -> None:
    policy = ReportingPolicyEngine(clock=clock)
    query = _query(scope={"tenant_id": "default", "federation_id": "north-coop"})
    assert policy.evaluate_query_policy(query, _context()).violations == ["Federation report access denied"]
    assert policy.evaluate_query_policy(query, _context(user_federation_id="north-coop")).allowed is True
    assert policy.evaluate_query_policy(query, _context("manager", "reporting:federation:north-coop")).allowed is True


@pytest.mark.parametrize("category", ["executive-summary", "cross-engine-operational"])
def test_executive_categories_need_executive_access(clock, category: str) -> None:
    policy = ReportingPolicyEngine(clock=clock)
    denied = policy.evaluate_query_policy(_query(category), _context("manager"))
    assert denied.violations == ["Executive-level reports require executive permissions"]
    assert policy.evaluate_query_policy(_query(category), _context("executive")).allowed is True
    assert policy.evaluate_query_policy(_query(category), _context("admin")).allowed is True
    assert policy.evaluate_query_policy(_query(category), _context("manager", "reporting:executive-view")).allowed


def test_compliance_pack_needs_auditor(clock) -> None:
    policy = ReportingPolicyEngine(clock=clock)
    query = _query("compliance-pack")
    assert policy.evaluate_query_policy(query, _context("operator")).violations == [
        "Compliance pack generation requires auditor role or permission"
    ]
    assert policy.evaluate_query_policy(query, _context("auditor")).allowed is True
    assert policy.evaluate_query_policy(query, _context("operator", "reporting:compliance-pack")).allowed is True


@pytest.mark.parametrize(
    ("custom_range", "violation"),
    [
        (None, "Custom time period requires a time range"),
        ({"start": "last tuesday", "end": "2026-01-02T00:00:00Z"}, "Custom time range must use ISO-8601 timestamps"),
        ({"start": "2026-01-05T00:00:00Z", "end": "2026-01-02T00:00:00Z"}, "Custom time range end precedes start"),
    ],
)
def test_custom_range_validation(clock, custom_range: dict[str, str] | None, violation: str) -> None:
    query = _query(time_period="custom", custom_time_range=custom_range)
    decision = ReportingPolicyEngine(clock=clock).evaluate_query_policy(query, _context())
    assert decision.allowed is False
    assert violation in decision.violations


def test_long_range_reports(clock) -> None:
    policy = ReportingPolicyEngine(clock=clock)
    long_range = {"start": "2025-09-01T00:00:00Z", "end": "2026-01-01T00:00:00Z"}
    query = _query(time_period="custom", custom_time_range=long_range)

    denied = policy.evaluate_query_policy(query, _context())
    assert denied.violations == ["Time period exceeds 90 days without long-range reporting permission"]

    allowed = policy.evaluate_query_policy(query, _context("manager", "reporting:long-range-reports"))
    assert allowed.allowed is True
    assert allowed.warnings == ["Long-range reports may have reduced data availability"]

    assert policy.evaluate_query_policy(_query(time_period="quarterly"), _context()).allowed is True


def test_long_range_limit_is_configurable(clock) -> None:
    policy = ReportingPolicyEngine(config=ReportingConfig(long_range_days=7), clock=clock)
    decision = policy.evaluate_query_policy(_query(time_period="monthly"), _context())
    assert decision.violations == ["Time period exceeds 7 days without long-range reporting permission"]


def test_multiple_violations_are_joined(clock) -> None:
    query = _query("executive-summary", scope={"tenant_id": "partner-farm"})
    decision = ReportingPolicyEngine(clock=clock).evaluate_query_policy(query, _context("operator"))
    assert decision.reason == (
        "Policy violations: Cross-tenant report access denied, "
        "Executive-level reports require executive permissions"
    )


def test_bundle_visibility(clock) -> None:
    policy = ReportingPolicyEngine(clock=clock)
    own = _bundle("risk-drift", ReportScope(tenant_id="default"))
    foreign = _bundle("risk-drift", ReportScope(tenant_id="partner-farm"))
    executive = _bundle("executive-summary", ReportScope(tenant_id="default"))
    pack = _bundle("compliance-pack", ReportScope(tenant_id="default"))

    assert policy.evaluate_bundle_visibility(own, _context()) is True
    assert policy.evaluate_bundle_visibility(foreign, _context()) is False
    assert policy.evaluate_bundle_visibility(executive, _context()) is False
    assert policy.evaluate_bundle_visibility(executive, _context("executive")) is True
    assert policy.evaluate_bundle_visibility(pack, _context("operator")) is False
    assert policy.evaluate_bundle_visibility(pack, _context("auditor")) is True


def test_audit_entries_record_decisions(clock) -> None:
    policy = ReportingPolicyEngine(config=ReportingConfig(policy_version="2.1.0"), clock=clock)
    query = _query(description="monthly drift review")
    context = _context()
    decision = policy.evaluate_query_policy(query, context)
    audit = policy.create_audit_entry(query, context, decision)

    assert audit.audit_id.startswith("audit")
    assert audit.timestamp == "2026-03-01T12:00:00.000Z"
    assert audit.user_role == "manager"
    assert audit.tenant_id == "default"
    assert audit.query_description == "monthly drift review"
    assert audit.policy_version == "2.1.0"
    assert audit.decision is decision
    assert policy.audits() == [audit]
