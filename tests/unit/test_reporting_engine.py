from datetime import timedelta
from typing import Any

import pytest

from sporeops.config.schema import ReportingConfig
from sporeops.reporting.engine import ReportingEngine
from sporeops.reporting.types import (
    ReportAccessError,
    ReportInputError,
    ReportNotFoundError,
    ReportingData,
    ReportingPolicyContext,
)


def _execute(engine: ReportingEngine, payload: dict[str, Any], **query_overrides: Any):
    raw = dict(payload["query"])
    raw.update(query_overrides)
    return engine.execute_query(
        engine.parse_query(raw),
        ReportingPolicyContext.from_dict(payload["context"]),
        ReportingData.from_dict(payload["data"]),
    )


def test_generates_executive_summary(clock, report_payload: dict[str, Any]) -> None:
    engine = ReportingEngine(clock=clock)
    result = _execute(engine, report_payload)

    assert result.success is True
    assert result.error is None
    assert result.sections_generated == 3
    assert result.references_included == 24
    assert result.generated_at == "2026-03-01T12:00:00.000Z"
    assert result.exported is None
    assert result.bundle is not None
    assert result.bundle.period_start == "2026-01-30T12:00:00.000Z"
    assert result.bundle.period_end == "2026-03-01T12:00:00.000Z"
    assert result.decision is not None and result.decision.allowed is True

    assert [entry.entry_type for entry in engine.log.get_entries()] == ["policy-decision", "report-generated"]
    assert len(engine.policy.audits()) == 1
    assert engine.bundles() == [result.bundle]


def test_non_json_format_is_exported(clock, report_payload: dict[str, Any]) -> None:
    engine = ReportingEngine(clock=clock)
    result = _execute(engine, report_payload, format="markdown")
    assert result.exported is not None
    assert result.exported.filename == f"{result.bundle.bundle_id}.md"
    assert result.exported.content.startswith("# Executive Summary Report")
    assert engine.log.get_entries(entry_type="report-exported")[0].details["format"] == "markdown"


def test_policy_denial_is_logged(clock, report_payload: dict[str, Any]) -> None:
    engine = ReportingEngine(clock=clock)
    report_payload["context"]["role"] = "operator"
    result = _execute(engine, report_payload)

    assert result.success is False
    assert result.bundle is None
    assert result.error == "Policy violations: Executive-level reports require executive permissions"
    error = engine.log.get_entries(entry_type="error")[0]
    assert error.details["error_code"] == "POLICY_VIOLATION"
    assert error.details["details"] == "Executive-level reports require executive permissions"
    assert engine.bundles() == []


def test_generation_failure_is_logged(
    clock, report_payload: dict[str, Any], monkeypatch: pytest.MonkeyPatch
) -> None:
    engine = ReportingEngine(clock=clock)

    def _boom(*args: Any, **kwargs: Any):
        raise ValueError("missing schedule window")

    monkeypatch.setattr(engine.builder, "build_bundle", _boom)
    result = _execute(engine, report_payload)

    assert result.success is False
    assert result.error == "Report generation failed: missing schedule window"
    error = engine.log.get_entries(entry_type="error")[0]
    assert error.details["error_code"] == "GENERATION_ERROR"
    assert "ValueError" in error.details["details"]


def test_custom_period_bounds_are_passed_through(clock, report_payload: dict[str, Any]) -> None:
    engine = ReportingEngine(clock=clock)
    result = _execute(
        engine,
        report_payload,
        time_period="custom",
        custom_time_range={"start": "2026-02-01T00:00:00Z", "end": "2026-02-15T00:00:00Z"},
    )
    assert result.success is True
    assert result.bundle.period_start == "2026-02-01T00:00:00Z"
    assert result.bundle.period_end == "2026-02-15T00:00:00Z"


def test_parse_query_uses_configured_defaults(clock) -> None:
    engine = ReportingEngine(config=ReportingConfig(default_format="html", default_time_period="weekly"), clock=clock)
    query = engine.parse_query({"query_id": "q", "category": "risk-drift", "requested_by": "u"})
    assert query.format == "html"
    assert query.time_period == "weekly"
    with pytest.raises(ReportInputError, match="unknown report category 'weather'"):
        engine.parse_query({"query_id": "q", "category": "weather", "requested_by": "u"})


def test_reexport_checks_visibility(clock, report_payload: dict[str, Any]) -> None:
    engine = ReportingEngine(clock=clock)
    bundle = _execute(engine, report_payload).bundle
    executive = ReportingPolicyContext.from_dict(report_payload["context"])

    exported = engine.reexport(bundle.bundle_id, "csv", executive)
    assert exported.filename == f"{bundle.bundle_id}.csv"
    assert engine.log.get_entries(entry_type="report-exported")[-1].user_id == "exec-1"

    operator = ReportingPolicyContext(user_id="op-1", user_tenant_id="default", role="operator")
    with pytest.raises(ReportAccessError):
        engine.reexport(bundle.bundle_id, "csv", operator)
    with pytest.raises(ReportNotFoundError, match="Report bundle not found: bundle-missing"):
        engine.get_bundle("bundle-missing", executive)


def test_statistics_snapshot_and_pruning(clock, report_payload: dict[str, Any]) -> None:
    engine = ReportingEngine(config=ReportingConfig(log_retention_days=10, policy_version="3.0.0"), clock=clock)
    _execute(engine, report_payload)
    stats = engine.statistics()
    assert stats.total_reports == 1
    assert stats.total_policy_decisions == 1
    assert stats.by_category["executive-summary"] == 1
    assert stats.by_tenant == {"default": 1}

    assert engine.snapshot() == {"bundles": 1, "log_entries": 2, "policy_version": "3.0.0"}
    clock.now += timedelta(days=11)
    assert engine.prune_log() == {"log_entries": 2, "bundles": 1}
    assert engine.snapshot()["log_entries"] == 0
    assert engine.bundles() == []


def test_bundles_expire_with_the_retention_window(clock, report_payload: dict[str, Any]) -> None:
    engine = ReportingEngine(config=ReportingConfig(log_retention_days=10), clock=clock)
    first = _execute(engine, report_payload).bundle
    clock.now += timedelta(days=5)
    second = _execute(engine, report_payload).bundle
    clock.now += timedelta(days=6)

    assert engine.prune_log() == {"log_entries": 2, "bundles": 1}
    assert engine.bundles() == [second]
    executive = ReportingPolicyContext.from_dict(report_payload["context"])
    with pytest.raises(ReportNotFoundError):
        engine.get_bundle(first.bundle_id, executive)

    clock.now += timedelta(days=400)
    assert engine.prune_log()["bundles"] == 1
    assert engine.snapshot()["bundles"] == 0


def test_bundle_store_is_capped(clock, report_payload: dict[str, Any]) -> None:
    engine = ReportingEngine(config=ReportingConfig(max_bundles=2), clock=clock)
    bundles = [_execute(engine, report_payload).bundle for _ in range(3)]
    assert engine.bundles() == bundles[1:]
    executive = ReportingPolicyContext.from_dict(report_payload["context"])
    with pytest.raises(ReportNotFoundError):
        engine.reexport(bundles[0].bundle_id, "csv", executive)
    assert engine.reexport(bundles[2].bundle_id, "csv", executive).format == "csv"
