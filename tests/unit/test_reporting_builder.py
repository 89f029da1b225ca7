from typing import Any

import pytest

from sporeops.config.schema import ReportingConfig
from sporeops.reporting.builder import ReportingBuilder, counts_by, mean, pct, ratio
from sporeops.reporting.types import (
    ReportInputError,
    ReportQuery,
    ReportScope,
    ReportingData,
)


def _sections(builder: ReportingBuilder, category: str, data: ReportingData, **scope: str) -> dict[str, Any]:
    sections = builder.build_sections(category, data, ReportScope(**(scope or {"tenant_id": "default"})))
    return {section.section_id: section for section in sections}


def test_helpers_treat_empty_sets_as_zero() -> None:
    assert ratio(1, 0) == 0.0
    assert ratio(1, 4) == 25.0
    assert mean([]) == 0.0
    assert pct(58.3333) == "58.3%"
    assert pct(10, 2) == "10.00%"
    assert counts_by(["a", "b", "a"], lambda item: item) == {"a": 2, "b": 1}


def test_executive_summary_sections(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(clock=clock)
    sections = _sections(builder, "executive-summary", ReportingData.from_dict(reporting_data))

    assert list(sections) == ["section-kpi", "section-risk", "section-capacity-overview"]
    assert sections["section-kpi"].metrics == {
        "Total Tasks": 4,
        "Completed Tasks": 1,
        "Task Completion Rate": "25.0%",
        "Total Alerts": 3,
        "Critical Alerts": 1,
        "Resolved Alerts": 1,
        "Total Operators": 3,
        "Average Utilization": "58.3%",
    }
    assert sections["section-kpi"].section_type == "kpi-overview"
    assert sections["section-kpi"].computed_at == "2026-03-01T12:00:00.000Z"
    assert sections["section-risk"].metrics == {
        "Total Drift Events": 3,
        "Critical Drifts": 1,
        "Average Drift Severity": "50.0",
        "Total Audit Findings": 3,
        "Critical Findings": 1,
        "Unresolved Findings": 1,
    }
    assert sections["section-capacity-overview"].metrics == {
        "Total Scheduled Slots": 150,
        "Total Conflicts": 15,
        "Conflict Rate": "10.0%",
        "Average Capacity Utilization": "75.0%",
    }


def test_executive_summary_without_optional_data_has_only_kpis(clock) -> None:
    builder = ReportingBuilder(clock=clock)
    sections = _sections(builder, "executive-summary", ReportingData())
    assert list(sections) == ["section-kpi"]
    assert sections["section-kpi"].metrics["Task Completion Rate"] == "0.0%"
    assert sections["section-kpi"].metrics["Average Utilization"] == "0.0%"


def test_sla_compliance_sections(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(clock=clock)
    sections = _sections(builder, "sla-compliance", ReportingData.from_dict(reporting_data))

    task_sla = sections["section-task-sla"]
    assert task_sla.metrics == {
        "Tasks with SLA": 3,
        "Tasks Met SLA": 1,
        "Tasks At Risk": 2,
        "Tasks Breached": 1,
        "Compliance Rate": "33.3%",
    }
    table = task_sla.tables[0]
    assert table.rows == [["Met SLA", 1, "33.3%"], ["At Risk", 2, "66.7%"], ["Breached", 1, "33.3%"]]
    assert table.footer == "Overall Task SLA Compliance: 33.3%"
    assert task_sla.summary == "Task SLA compliance analysis for 3 tasks with SLA deadlines."

    assert sections["section-alert-sla"].metrics == {
        "Alerts with SLA": 2,
        "Alerts Resolved": 1,
        "Alerts Breached": 1,
        "Compliance Rate": "50.0%",
    }
    assert sections["section-schedule-sla"].metrics == {
        "Total Schedules": 2,
        "Average SLA Risk Score": "30.0",
        "Estimated Compliance": "70.0%",
    }


def test_sla_at_risk_window_is_configurable(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(config=ReportingConfig(sla_at_risk_seconds=600), clock=clock)
    sections = _sections(builder, "sla-compliance", ReportingData.from_dict(reporting_data))
    # Only the breached task is left inside a ten minute window.
    assert sections["section-task-sla"].metrics["Tasks At Risk"] == 1


def test_breached_open_task_also_counts_as_at_risk(clock) -> None:
    builder = ReportingBuilder(clock=clock)
    data = ReportingData.from_dict(
        {
            "tasks": [
                {
                    "task_id": "late",
                    "status": "pending",
                    "sla_deadline": "2026-02-20T00:00:00Z",
                    "tenant_id": "default",
                },
            ]
        }
    )
    metrics = _sections(builder, "sla-compliance", data)["section-task-sla"].metrics
    assert metrics["Tasks At Risk"] == 1
    assert metrics["Tasks Breached"] == 1
    assert metrics["Compliance Rate"] == "0.0%"


def test_schedule_compliance_is_zero_without_schedules(clock) -> None:
    builder = ReportingBuilder(clock=clock)
    sections = _sections(builder, "sla-compliance", ReportingData(schedules=[]))
    assert list(sections) == ["section-schedule-sla"]
    assert sections["section-schedule-sla"].metrics["Estimated Compliance"] == "0.0%"


def test_capacity_scheduling_sections(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(clock=clock)
    sections = _sections(builder, "capacity-scheduling", ReportingData.from_dict(reporting_data))

    capacity = sections["section-capacity"]
    assert capacity.metrics == {
        "Total Projections": 3,
        "Average Capacity": "70.0%",
        "Peak Capacity": "90.0%",
        "Low Risk Windows": 1,
        "High Risk Windows": 2,
    }
    assert capacity.tables[0].rows == [["flower", 2, "80.0%"], ["veg", 1, "50.0%"]]
    assert sections["section-scheduling"].metrics == {
        "Total Scheduled Slots": 150,
        "Total Conflicts": 15,
        "Critical Conflicts": 3,
        "Conflict Rate": "10.00%",
        "Average Utilization": "75.0%",
    }


def test_operator_performance_ranks_top_performers(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(config=ReportingConfig(top_performer_limit=2), clock=clock)
    sections = _sections(builder, "operator-performance", ReportingData.from_dict(reporting_data))

    operators = sections["section-operators"]
    assert operators.metrics == {
        "Total Operators": 3,
        "Average Utilization": "58.3%",
        "Average Task Completion": "70.0%",
        "Average SLA Compliance": "78.3%",
        "Underutilized (<40%)": 1,
        "Optimal (40-80%)": 1,
        "Overutilized (>80%)": 1,
    }
    table = operators.tables[0]
    assert table.title == "Top 2 Performers"
    assert table.rows == [["Avery", "85.0%", "90.0%", "95.0%"], ["Blake", "60.0%", "70.0%", "80.0%"]]


def test_operator_section_is_omitted_without_metrics(clock) -> None:
    assert ReportingBuilder(clock=clock).build_sections("operator-performance", ReportingData(), ReportScope()) == []


def test_risk_drift_sections(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(clock=clock)
    sections = _sections(builder, "risk-drift", ReportingData.from_dict(reporting_data))

    drift = sections["section-drift"]
    assert drift.metrics == {
        "Total Drift Events": 3,
        "Critical Drifts": 1,
        "Average Severity": "50.0",
        "Integrity Score": "50.0",
    }
    assert drift.tables[0].rows == [["nutrient", 1, "33.3%"], ["climate", 2, "66.7%"]]
    chart = drift.charts[0]
    assert chart.chart_type == "bar"
    assert chart.labels == ["nutrient", "climate"]
    assert chart.datasets == [{"label": "Drift Events", "data": [1, 2]}]
    assert sections["section-audit"].metrics == {
        "Total Findings": 3,
        "Critical Findings": 1,
        "Unresolved Findings": 1,
        "Compliance Score": "66.7",
    }


def test_integrity_score_is_zero_without_drifts(clock) -> None:
    sections = _sections(ReportingBuilder(clock=clock), "risk-drift", ReportingData(drift_events=[]))
    assert sections["section-drift"].metrics["Integrity Score"] == "0.0"


def test_critical_drift_threshold_is_configurable(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(config=ReportingConfig(critical_drift_threshold=40.0), clock=clock)
    sections = _sections(builder, "risk-drift", ReportingData.from_dict(reporting_data))
    assert sections["section-drift"].metrics["Critical Drifts"] == 2


def test_audit_governance_and_documentation_sections(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(clock=clock)
    data = ReportingData.from_dict(reporting_data)

    governance = _sections(builder, "audit-governance", data)["section-governance"]
    assert governance.metrics == {
        "Total Findings": 3,
        "Resolved Findings": 2,
        "Open Findings": 1,
        "Compliance Rate": "66.7%",
    }
    assert governance.tables[0].rows == [["critical", 1, "33.3%"], ["medium", 1, "33.3%"], ["low", 1, "33.3%"]]
    assert governance.tables[1].rows == [["documentation", 2], ["safety", 1]]

    documentation = _sections(builder, "documentation-completeness", data)["section-documentation"]
    assert documentation.metrics == {
        "Documentation Findings": 2,
        "Resolved Gaps": 1,
        "Open Gaps": 1,
        "Critical Gaps": 1,
        "Completeness Score": "50.0%",
    }
    assert documentation.data_sources == ["Phase 50: Auditor"]


def test_cross_engine_section_counts_every_phase(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(clock=clock)
    section = _sections(builder, "cross-engine-operational", ReportingData.from_dict(reporting_data))[
        "section-cross-engine"
    ]
    assert section.metrics == {
        "Total Tasks": 4,
        "Completed Tasks": 1,
        "Total Alerts": 3,
        "Critical Alerts": 1,
        "Drift Events": 3,
        "Audit Findings": 3,
        "Scheduled Slots": 150,
        "Total Operators": 3,
        "Real-Time Signals": 2,
        "Critical Signals": 1,
        "Capacity Projections": 3,
        "Insight Results": 1,
    }
    assert len(section.data_sources) == 9


def test_compliance_pack_combines_compliance_sections(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(clock=clock)
    sections = _sections(builder, "compliance-pack", ReportingData.from_dict(reporting_data))
    assert list(sections) == [
        "section-task-sla",
        "section-alert-sla",
        "section-schedule-sla",
        "section-governance",
        "section-documentation",
        "section-drift",
        "section-audit",
    ]


def test_facility_scope_filters_records(clock, reporting_data: dict[str, Any]) -> None:
    builder = ReportingBuilder(clock=clock)
    sections = _sections(
        builder,
        "executive-summary",
        ReportingData.from_dict(reporting_data),
        facility_id="facility-north",
    )
    kpi = sections["section-kpi"].metrics
    assert kpi["Total Tasks"] == 1
    assert kpi["Completed Tasks"] == 1
    assert kpi["Total Alerts"] == 1
    assert kpi["Total Operators"] == 1


def test_executive_summary_flags_issues(clock, reporting_data: dict[str, Any], report_query_factory) -> None:
    builder = ReportingBuilder(clock=clock)
    query = ReportQuery.from_dict(report_query_factory())
    data = ReportingData.from_dict(reporting_data)
    summary = builder.build_executive_summary(query, data, builder.build_sections(query.category, data, query.scope))

    assert summary.overview == (
        "This executive summary report covers the monthly operational period and includes 3 detailed "
        "sections with metrics aggregated from operational systems (Phases 50-58)."
    )
    assert summary.key_findings == ["Task completion rate: 25.0%"]
    assert summary.critical_issues == [
        "Task completion rate below target threshold (80%)",
        "1 critical alerts require immediate attention",
        "1 critical drift events detected",
    ]
    assert summary.recommendations == [
        "Review task prioritization and resource allocation",
        "Prioritize resolution of critical alerts",
        "Investigate root causes of integrity drift",
    ]


def test_executive_summary_defaults_when_healthy(clock, report_query_factory) -> None:
    builder = ReportingBuilder(clock=clock)
    data = ReportingData.from_dict(
        {"tasks": [{"task_id": "t1", "status": "completed", "tenant_id": "default"}]}
    )
    summary = builder.build_executive_summary(ReportQuery.from_dict(report_query_factory()), data, [])
    assert summary.key_findings == ["Task completion rate: 100.0%"]
    assert summary.critical_issues == []
    assert summary.recommendations == ["Continue current operational practices", "Monitor metrics for emerging trends"]

    quiet = ReportQuery.from_dict(report_query_factory(include_recommendations=False))
    assert builder.build_executive_summary(quiet, data, []).recommendations == []


def test_build_bundle_assembles_metadata(clock, reporting_data: dict[str, Any], report_query_factory) -> None:
    builder = ReportingBuilder(clock=clock)
    query = ReportQuery.from_dict(report_query_factory())
    bundle = builder.build_bundle(
        query,
        ReportingData.from_dict(reporting_data),
        bundle_id="bundle-1",
        report_id="report-1",
        period_start="2026-01-30T12:00:00.000Z",
        period_end="2026-03-01T12:00:00.000Z",
    )
    assert bundle.title == "Executive Summary Report - Tenant default (monthly)"
    assert len(bundle.sections) == 3
    assert bundle.references.total() == 24
    assert bundle.references.insight_ids == ["ins-1"]
    assert bundle.references.task_ids == ["t1", "t2", "t3", "t4"]
    assert bundle.metadata.page_count == 1
    assert bundle.metadata.word_count == 345
    assert bundle.metadata.generated_by == "exec-1"
    assert bundle.metadata.generated_at == "2026-03-01T12:00:00.000Z"
    assert bundle.metadata.data_sources_used[0] == "Phase 58: Executive Insights"
    assert len(bundle.metadata.data_sources_used) == 9


def test_include_flags_trim_bundle(clock, reporting_data: dict[str, Any], report_query_factory) -> None:
    builder = ReportingBuilder(clock=clock)
    query = ReportQuery.from_dict(
        report_query_factory(
            "risk-drift",
            include_summary=False,
            include_details="false",
            include_references=False,
        )
    )
    bundle = builder.build_bundle(
        query,
        ReportingData.from_dict(reporting_data),
        bundle_id="bundle-2",
        report_id="report-2",
        period_start="",
        period_end="",
    )
    assert all(section.summary is None for section in bundle.sections)
    assert all(section.tables == [] and section.charts == [] for section in bundle.sections)
    assert bundle.references.total() == 0


def test_title_prefers_facility_scope(report_query_factory) -> None:
    query = ReportQuery.from_dict(
        report_query_factory(
            "risk-drift",
            time_period="weekly",
            scope={"tenant_id": "default", "facility_id": "facility-main"},
        )
    )
    assert ReportingBuilder.build_title(query) == "Risk & Drift Analysis Report - Facility facility-main (weekly)"
    unscoped = ReportQuery.from_dict(report_query_factory("risk-drift", scope=None))
    assert ReportingBuilder.build_title(unscoped) == "Risk & Drift Analysis Report (monthly)"


def test_reporting_data_validation() -> None:
    with pytest.raises(ReportInputError, match="unknown reporting data kinds: weather"):
        ReportingData.from_dict({"weather": []})
    with pytest.raises(ReportInputError, match="between 0 and 100"):
        ReportingData.from_dict({"drift_events": [{"drift_id": "d", "severity": 120, "tenant_id": "default"}]})
    with pytest.raises(ReportInputError, match="requires non-empty 'tenant_id'"):
        ReportingData.from_dict({"alerts": [{"alert_id": "a"}]})
    with pytest.raises(ReportInputError, match="must be numeric"):
        ReportingData.from_dict(
            {
                "operator_metrics": [
                    {
                        "operator_id": "op",
                        "utilization_rate": "high",
                        "task_completion_rate": 1,
                        "sla_compliance_rate": 1,
                        "tenant_id": "default",
                    }
                ]
            }
        )
    assert ReportingData.from_dict(None).data_sources() == []
