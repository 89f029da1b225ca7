"""Assemble report bundles from upstream phase records."""

from __future__ import annotations

import math
import time
from typing import Any, Callable, Iterable, TypeVar

from sporeops.config.schema import ReportingConfig
from sporeops.core.clock import Clock, isoformat, parse_timestamp, utc_now
from sporeops.reporting.types import (
    CATEGORY_TITLES,
    DATA_SOURCE_LABELS,
    BundleMetadata,
    ExecutiveSummary,
    MetricValue,
    ReportBundle,
    ReportChart,
    ReportQuery,
    ReportReferences,
    ReportScope,
    ReportSection,
    ReportTable,
    ReportingData,
)


T = TypeVar("T")

_TASKS = DATA_SOURCE_LABELS["tasks"]
_ALERTS = DATA_SOURCE_LABELS["alerts"]
_OPERATORS = DATA_SOURCE_LABELS["operator_metrics"]
_SIGNALS = DATA_SOURCE_LABELS["real_time_signals"]
_PROJECTIONS = DATA_SOURCE_LABELS["capacity_projections"]
_SCHEDULES = DATA_SOURCE_LABELS["schedules"]
_DRIFTS = DATA_SOURCE_LABELS["drift_events"]
_AUDITS = DATA_SOURCE_LABELS["audit_findings"]
_INSIGHTS = DATA_SOURCE_LABELS["insights"]


def pct(value: float, digits: int = 1) -> str:
    return f"{value:.{digits}f}%"


def ratio(part: float, whole: float) -> float:
    """Percentage of ``part`` in ``whole``; 0 when ``whole`` is empty."""
    if not whole:
        return 0.0
    return part / whole * 100.0


def mean(values: Iterable[float]) -> float:
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


def counts_by(items: Iterable[T], key: Callable[[T], str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for item in items:
        name = key(item)
        counts[name] = counts.get(name, 0) + 1
    return counts


class ReportingBuilder:
    def __init__(self, *, config: ReportingConfig | None = None, clock: Clock = utc_now) -> None:
        self.config = config or ReportingConfig()
        self._clock = clock

    @staticmethod
    def filter_by_scope(records: list[T] | None, scope: ReportScope) -> list[T]:
        items = list(records or [])
        if scope.tenant_id:
            items = [item for item in items if getattr(item, "tenant_id", None) == scope.tenant_id]
        if scope.facility_id:
            items = [item for item in items if getattr(item, "facility_id", None) == scope.facility_id]
        return items

    def build_bundle(
        self,
        query: ReportQuery,
        data: ReportingData,
        *,
        bundle_id: str,
        report_id: str,
        period_start: str,
        period_end: str,
    ) -> ReportBundle:
        started = time.perf_counter()
        sections = self.build_sections(query.category, data, query.scope)
        self._apply_include_flags(sections, query)
        executive_summary = self.build_executive_summary(query, data, sections)
        references = self.collect_references(data, query.scope) if query.include_references else ReportReferences()
        metadata = BundleMetadata(
            generated_at=isoformat(self._clock()),
            generated_by=query.requested_by,
            format=query.format,
            page_count=math.ceil(len(sections) / 3),
            word_count=self.estimate_word_count(sections),
            data_sources_used=data.data_sources(),
            computation_time_ms=round((time.perf_counter() - started) * 1000.0, 3),
        )
        return ReportBundle(
            bundle_id=bundle_id,
            report_id=report_id,
            title=self.build_title(query),
            category=query.category,
            time_period=query.time_period,
            period_start=period_start,
            period_end=period_end,
            scope=query.scope,
            sections=sections,
            executive_summary=executive_summary,
            references=references,
            metadata=metadata,
        )

    def build_sections(self, category: str, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        builders: dict[str, Callable[[ReportingData, ReportScope], list[ReportSection]]] = {
            "executive-summary": self.executive_summary_sections,
            "sla-compliance": self.sla_compliance_sections,
            "capacity-scheduling": self.capacity_scheduling_sections,
            "operator-performance": self.operator_performance_sections,
            "risk-drift": self.risk_drift_sections,
            "audit-governance": self.audit_governance_sections,
            "documentation-completeness": self.documentation_sections,
            "cross-engine-operational": self.cross_engine_sections,
            "compliance-pack": self.compliance_pack_sections,
        }
        return builders[category](data, scope)

    def _section(
        self,
        section_id: str,
        title: str,
        section_type: str,
        *,
        summary: str,
        metrics: dict[str, MetricValue],
        data_sources: list[str],
        tables: list[ReportTable] | None = None,
        charts: list[ReportChart] | None = None,
        text: str | None = None,
    ) -> ReportSection:
        return ReportSection(
            section_id=section_id,
            title=title,
            section_type=section_type,
            computed_at=isoformat(self._clock()),
            summary=summary,
            metrics=metrics,
            tables=tables or [],
            charts=charts or [],
            text=text,
            data_sources=data_sources,
        )

    @staticmethod
    def _apply_include_flags(sections: list[ReportSection], query: ReportQuery) -> None:
        for section in sections:
            if not query.include_summary:
                section.summary = None
            if not query.include_details:
                section.tables = []
                section.charts = []

    # Section families, one per category.

    def executive_summary_sections(self, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        tasks = self.filter_by_scope(data.tasks, scope)
        alerts = self.filter_by_scope(data.alerts, scope)
        operators = self.filter_by_scope(data.operator_metrics, scope)
        completed = sum(1 for task in tasks if task.status == "completed")
        sections = [
            self._section(
                "section-kpi",
                "Key Performance Indicators",
                "kpi-overview",
                summary="Overview of key operational metrics for the reporting period.",
                metrics={
                    "Total Tasks": len(tasks),
                    "Completed Tasks": completed,
                    "Task Completion Rate": pct(ratio(completed, len(tasks))),
                    "Total Alerts": len(alerts),
                    "Critical Alerts": sum(1 for alert in alerts if alert.severity == "critical"),
                    "Resolved Alerts": sum(1 for alert in alerts if alert.status == "resolved"),
                    "Total Operators": len(operators),
                    "Average Utilization": pct(mean(op.utilization_rate for op in operators)),
                },
                data_sources=[_TASKS, _ALERTS, _OPERATORS],
            )
        ]

        if data.drift_events is not None or data.audit_findings is not None:
            drifts = self.filter_by_scope(data.drift_events, scope)
            findings = self.filter_by_scope(data.audit_findings, scope)
            sections.append(
                self._section(
                    "section-risk",
                    "Risk Assessment",
                    "risk-assessment",
                    summary="Risk indicators from integrity drift monitoring and audit findings.",
                    metrics={
                        "Total Drift Events": len(drifts),
                        "Critical Drifts": self._critical_drifts(drifts),
                        "Average Drift Severity": f"{mean(d.severity for d in drifts):.1f}",
                        "Total Audit Findings": len(findings),
                        "Critical Findings": sum(1 for f in findings if f.severity == "critical"),
                        "Unresolved Findings": sum(1 for f in findings if f.status != "resolved"),
                    },
                    data_sources=[_DRIFTS, _AUDITS],
                )
            )

        if data.schedules is not None:
            schedules = self.filter_by_scope(data.schedules, scope)
            slots = sum(s.total_slots for s in schedules)
            conflicts = sum(s.total_conflicts for s in schedules)
            sections.append(
                self._section(
                    "section-capacity-overview",
                    "Capacity & Scheduling",
                    "detailed-metrics",
                    summary="Scheduling load and capacity utilization across workload plans.",
                    metrics={
                        "Total Scheduled Slots": slots,
                        "Total Conflicts": conflicts,
                        "Conflict Rate": pct(ratio(conflicts, slots)),
                        "Average Capacity Utilization": pct(
                            mean(s.average_capacity_utilization for s in schedules)
                        ),
                    },
                    data_sources=[_SCHEDULES],
                )
            )
        return sections

    def sla_compliance_sections(self, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        sections: list[ReportSection] = []
        now = self._clock()

        if data.tasks is not None:
            met = at_risk = breached = 0
            tracked = 0
            window = self.config.sla_at_risk_seconds
            for task in self.filter_by_scope(data.tasks, scope):
                deadline = parse_timestamp(task.sla_deadline)
                if deadline is None:
                    continue
                tracked += 1
                completed = parse_timestamp(task.completed_at)
                if completed is not None:
                    if completed <= deadline:
                        met += 1
                    continue
                remaining = (deadline - now).total_seconds()
                if remaining < window:
                    at_risk += 1
                if remaining < 0:
                    breached += 1
            compliance = ratio(met, tracked)
            table = ReportTable(
                table_id="task-sla-table",
                title="Task SLA Status",
                headers=["Status", "Count", "Percentage"],
                rows=[
                    ["Met SLA", met, pct(ratio(met, tracked))],
                    ["At Risk", at_risk, pct(ratio(at_risk, tracked))],
                    ["Breached", breached, pct(ratio(breached, tracked))],
                ],
                footer=f"Overall Task SLA Compliance: {pct(compliance)}",
            )
            sections.append(
                self._section(
                    "section-task-sla",
                    "Task SLA Compliance",
                    "compliance-status",
                    summary=f"Task SLA compliance analysis for {tracked} tasks with SLA deadlines.",
                    metrics={
                        "Tasks with SLA": tracked,
                        "Tasks Met SLA": met,
                        "Tasks At Risk": at_risk,
                        "Tasks Breached": breached,
                        "Compliance Rate": pct(compliance),
                    },
                    tables=[table],
                    data_sources=[_TASKS],
                )
            )

        if data.alerts is not None:
            alerts = [a for a in self.filter_by_scope(data.alerts, scope) if a.sla_deadline]
            resolved = sum(1 for alert in alerts if alert.status == "resolved")
            sections.append(
                self._section(
                    "section-alert-sla",
                    "Alert SLA Compliance",
                    "compliance-status",
                    summary=f"Alert SLA compliance analysis for {len(alerts)} alerts with SLA deadlines.",
                    metrics={
                        "Alerts with SLA": len(alerts),
                        "Alerts Resolved": resolved,
                        "Alerts Breached": len(alerts) - resolved,
                        "Compliance Rate": pct(ratio(resolved, len(alerts))),
                    },
                    data_sources=[_ALERTS],
                )
            )

        if data.schedules is not None:
            schedules = self.filter_by_scope(data.schedules, scope)
            risk = mean(s.sla_risk_score for s in schedules)
            sections.append(
                self._section(
                    "section-schedule-sla",
                    "Schedule SLA Compliance",
                    "compliance-status",
                    summary=f"Schedule SLA compliance based on risk scores from {len(schedules)} schedules.",
                    metrics={
                        "Total Schedules": len(schedules),
                        "Average SLA Risk Score": f"{risk:.1f}",
                        "Estimated Compliance": pct(100.0 - risk if schedules else 0.0),
                    },
                    data_sources=[_SCHEDULES],
                )
            )
        return sections

    def capacity_scheduling_sections(self, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        sections: list[ReportSection] = []

        if data.capacity_projections is not None:
            projections = self.filter_by_scope(data.capacity_projections, scope)
            capacities = [p.projected_capacity for p in projections]
            rows: list[list[MetricValue]] = []
            for category, count in counts_by(projections, lambda p: p.category).items():
                category_mean = mean(p.projected_capacity for p in projections if p.category == category)
                rows.append([category, count, pct(category_mean)])
            sections.append(
                self._section(
                    "section-capacity",
                    "Capacity Analysis",
                    "detailed-metrics",
                    summary=f"Capacity projection analysis across {len(projections)} time windows.",
                    metrics={
                        "Total Projections": len(projections),
                        "Average Capacity": pct(mean(capacities)),
                        "Peak Capacity": pct(max(capacities, default=0.0)),
                        "Low Risk Windows": sum(1 for p in projections if p.risk_level == "low"),
                        "High Risk Windows": sum(1 for p in projections if p.risk_level in {"high", "critical"}),
                    },
                    tables=[
                        ReportTable(
                            table_id="capacity-category-table",
                            title="Capacity by Category",
                            headers=["Category", "Projections", "Avg Capacity"],
                            rows=rows,
                        )
                    ],
                    data_sources=[_PROJECTIONS],
                )
            )

        if data.schedules is not None:
            schedules = self.filter_by_scope(data.schedules, scope)
            slots = sum(s.total_slots for s in schedules)
            conflicts = sum(s.total_conflicts for s in schedules)
            sections.append(
                self._section(
                    "section-scheduling",
                    "Scheduling Efficiency",
                    "detailed-metrics",
                    summary=f"Scheduling analysis across {len(schedules)} schedules.",
                    metrics={
                        "Total Scheduled Slots": slots,
                        "Total Conflicts": conflicts,
                        "Critical Conflicts": sum(s.critical_conflicts for s in schedules),
                        "Conflict Rate": pct(ratio(conflicts, slots), 2),
                        "Average Utilization": pct(mean(s.average_capacity_utilization for s in schedules)),
                    },
                    data_sources=[_SCHEDULES],
                )
            )
        return sections

    def operator_performance_sections(self, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        if data.operator_metrics is None:
            return []
        operators = self.filter_by_scope(data.operator_metrics, scope)
        limit = self.config.top_performer_limit
        ranked = sorted(operators, key=lambda op: op.performance_score, reverse=True)[:limit]
        table = ReportTable(
            table_id="top-performers-table",
            title=f"Top {limit} Performers",
            headers=["Operator", "Utilization", "Completion", "SLA Compliance"],
            rows=[
                [
                    op.operator_name,
                    pct(op.utilization_rate),
                    pct(op.task_completion_rate),
                    pct(op.sla_compliance_rate),
                ]
                for op in ranked
            ],
        )
        return [
            self._section(
                "section-operators",
                "Operator Performance Overview",
                "detailed-metrics",
                summary=f"Performance analysis for {len(operators)} operators.",
                metrics={
                    "Total Operators": len(operators),
                    "Average Utilization": pct(mean(op.utilization_rate for op in operators)),
                    "Average Task Completion": pct(mean(op.task_completion_rate for op in operators)),
                    "Average SLA Compliance": pct(mean(op.sla_compliance_rate for op in operators)),
                    "Underutilized (<40%)": sum(1 for op in operators if op.utilization_rate < 40),
                    "Optimal (40-80%)": sum(1 for op in operators if 40 <= op.utilization_rate <= 80),
                    "Overutilized (>80%)": sum(1 for op in operators if op.utilization_rate > 80),
                },
                tables=[table],
                data_sources=[_OPERATORS],
            )
        ]

    def risk_drift_sections(self, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        sections: list[ReportSection] = []

        if data.drift_events is not None:
            drifts = self.filter_by_scope(data.drift_events, scope)
            severity = mean(d.severity for d in drifts)
            by_category = counts_by(drifts, lambda d: d.category)
            sections.append(
                self._section(
                    "section-drift",
                    "Drift & Integrity Analysis",
                    "risk-assessment",
                    summary=f"Analysis of {len(drifts)} drift events detected during the period.",
                    metrics={
                        "Total Drift Events": len(drifts),
                        "Critical Drifts": self._critical_drifts(drifts),
                        "Average Severity": f"{severity:.1f}",
                        "Integrity Score": f"{(100.0 - severity) if drifts else 0.0:.1f}",
                    },
                    tables=[
                        ReportTable(
                            table_id="drift-category-table",
                            title="Drift Events by Category",
                            headers=["Category", "Count", "Percentage"],
                            rows=[
                                [category, count, pct(ratio(count, len(drifts)))]
                                for category, count in by_category.items()
                            ],
                        )
                    ],
                    charts=[
                        ReportChart(
                            chart_id="drift-category-chart",
                            title="Drift Events by Category",
                            chart_type="bar",
                            labels=list(by_category),
                            datasets=[{"label": "Drift Events", "data": list(by_category.values())}],
                        )
                    ],
                    data_sources=[_DRIFTS],
                )
            )

        if data.audit_findings is not None:
            findings = self.filter_by_scope(data.audit_findings, scope)
            unresolved = sum(1 for f in findings if f.status != "resolved")
            sections.append(
                self._section(
                    "section-audit",
                    "Audit Findings",
                    "risk-assessment",
                    summary=f"Summary of {len(findings)} audit findings.",
                    metrics={
                        "Total Findings": len(findings),
                        "Critical Findings": sum(1 for f in findings if f.severity == "critical"),
                        "Unresolved Findings": unresolved,
                        "Compliance Score": f"{ratio(len(findings) - unresolved, len(findings)):.1f}",
                    },
                    data_sources=[_AUDITS],
                )
            )
        return sections

    def audit_governance_sections(self, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        if data.audit_findings is None:
            return []
        findings = self.filter_by_scope(data.audit_findings, scope)
        resolved = sum(1 for f in findings if f.status == "resolved")
        by_severity = counts_by(findings, lambda f: f.severity)
        by_category = counts_by(findings, lambda f: f.category)
        return [
            self._section(
                "section-governance",
                "Governance & Compliance Overview",
                "compliance-status",
                summary=f"Governance compliance status across {len(findings)} audit findings.",
                metrics={
                    "Total Findings": len(findings),
                    "Resolved Findings": resolved,
                    "Open Findings": len(findings) - resolved,
                    "Compliance Rate": pct(ratio(resolved, len(findings))),
                },
                tables=[
                    ReportTable(
                        table_id="audit-severity-table",
                        title="Findings by Severity",
                        headers=["Severity", "Count", "Percentage"],
                        rows=[
                            [severity, count, pct(ratio(count, len(findings)))]
                            for severity, count in by_severity.items()
                        ],
                    ),
                    ReportTable(
                        table_id="audit-category-table",
                        title="Findings by Category",
                        headers=["Category", "Count"],
                        rows=[[category, count] for category, count in by_category.items()],
                    ),
                ],
                data_sources=[_AUDITS],
            )
        ]

    def documentation_sections(self, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        findings = [
            f for f in self.filter_by_scope(data.audit_findings, scope) if f.category == "documentation"
        ]
        resolved = sum(1 for f in findings if f.status == "resolved")
        gaps = len(findings) - resolved
        return [
            self._section(
                "section-documentation",
                "Documentation Completeness",
                "compliance-status",
                summary=f"Documentation completeness derived from {len(findings)} documentation findings.",
                metrics={
                    "Documentation Findings": len(findings),
                    "Resolved Gaps": resolved,
                    "Open Gaps": gaps,
                    "Critical Gaps": sum(1 for f in findings if f.severity == "critical" and f.status != "resolved"),
                    "Completeness Score": pct(ratio(resolved, len(findings))),
                },
                data_sources=[_AUDITS] if data.audit_findings is not None else [],
            )
        ]

    def cross_engine_sections(self, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        tasks = self.filter_by_scope(data.tasks, scope)
        alerts = self.filter_by_scope(data.alerts, scope)
        signals = self.filter_by_scope(data.real_time_signals, scope)
        metrics: dict[str, MetricValue] = {
            "Total Tasks": len(tasks),
            "Completed Tasks": sum(1 for task in tasks if task.status == "completed"),
            "Total Alerts": len(alerts),
            "Critical Alerts": sum(1 for alert in alerts if alert.severity == "critical"),
            "Drift Events": len(self.filter_by_scope(data.drift_events, scope)),
            "Audit Findings": len(self.filter_by_scope(data.audit_findings, scope)),
            "Scheduled Slots": sum(s.total_slots for s in self.filter_by_scope(data.schedules, scope)),
            "Total Operators": len(self.filter_by_scope(data.operator_metrics, scope)),
            "Real-Time Signals": len(signals),
            "Critical Signals": sum(1 for signal in signals if signal.severity == "critical"),
            "Capacity Projections": len(self.filter_by_scope(data.capacity_projections, scope)),
            "Insight Results": len(data.insights or []),
        }
        return [
            self._section(
                "section-cross-engine",
                "Cross-Engine Operational Summary",
                "executive-summary",
                summary="Consolidated operational metrics across all engine systems.",
                metrics=metrics,
                data_sources=data.data_sources(),
            )
        ]

    def compliance_pack_sections(self, data: ReportingData, scope: ReportScope) -> list[ReportSection]:
        return [
            *self.sla_compliance_sections(data, scope),
            *self.audit_governance_sections(data, scope),
            *self.documentation_sections(data, scope),
            *self.risk_drift_sections(data, scope),
        ]

    def _critical_drifts(self, drifts: list[Any]) -> int:
        return sum(1 for drift in drifts if drift.severity >= self.config.critical_drift_threshold)

    # Bundle-level pieces.

    def build_executive_summary(
        self,
        query: ReportQuery,
        data: ReportingData,
        sections: list[ReportSection],
    ) -> ExecutiveSummary:
        scope = query.scope
        overview = (
            f"This {CATEGORY_TITLES[query.category].lower()} covers the {query.time_period} operational period "
            f"and includes {len(sections)} detailed sections with metrics aggregated from operational systems "
            "(Phases 50-58)."
        )
        findings: list[str] = []
        issues: list[str] = []
        recommendations: list[str] = []

        tasks = self.filter_by_scope(data.tasks, scope)
        if tasks:
            completed = sum(1 for task in tasks if task.status == "completed")
            rate = ratio(completed, len(tasks))
            findings.append(f"Task completion rate: {pct(rate)}")
            target = self.config.completion_target_percent
            if rate < target:
                issues.append(f"Task completion rate below target threshold ({target:g}%)")
                recommendations.append("Review task prioritization and resource allocation")

        critical_alerts = sum(
            1 for alert in self.filter_by_scope(data.alerts, scope) if alert.severity == "critical"
        )
        if critical_alerts:
            issues.append(f"{critical_alerts} critical alerts require immediate attention")
            recommendations.append("Prioritize resolution of critical alerts")

        critical_drifts = self._critical_drifts(self.filter_by_scope(data.drift_events, scope))
        if critical_drifts:
            issues.append(f"{critical_drifts} critical drift events detected")
            recommendations.append("Investigate root causes of integrity drift")

        if not recommendations:
            recommendations = [
                "Continue current operational practices",
                "Monitor metrics for emerging trends",
            ]
        if not query.include_recommendations:
            recommendations = []
        return ExecutiveSummary(
            overview=overview,
            key_findings=findings,
            critical_issues=issues,
            recommendations=recommendations,
        )

    def collect_references(self, data: ReportingData, scope: ReportScope) -> ReportReferences:
        return ReportReferences(
            insight_ids=[item.result_id for item in data.insights or []],
            metric_ids=[item.operator_id for item in self.filter_by_scope(data.operator_metrics, scope)],
            signal_ids=[item.signal_id for item in self.filter_by_scope(data.real_time_signals, scope)],
            projection_ids=[
                item.projection_id for item in self.filter_by_scope(data.capacity_projections, scope)
            ],
            schedule_ids=[item.schedule_id for item in self.filter_by_scope(data.schedules, scope)],
            task_ids=[item.task_id for item in self.filter_by_scope(data.tasks, scope)],
            alert_ids=[item.alert_id for item in self.filter_by_scope(data.alerts, scope)],
            drift_ids=[item.drift_id for item in self.filter_by_scope(data.drift_events, scope)],
            audit_finding_ids=[item.finding_id for item in self.filter_by_scope(data.audit_findings, scope)],
        )

    @staticmethod
    def build_title(query: ReportQuery) -> str:
        title = CATEGORY_TITLES[query.category]
        if query.scope.facility_id:
            title += f" - Facility {query.scope.facility_id}"
        elif query.scope.tenant_id:
            title += f" - Tenant {query.scope.tenant_id}"
        return f"{title} ({query.time_period})"

    @staticmethod
    def estimate_word_count(sections: list[ReportSection]) -> int:
        words = 0
        for section in sections:
            words += 5
            if section.summary:
                words += 50
            words += len(section.metrics) * 10
            for table in section.tables:
                words += len(table.rows) * len(table.headers) * 5
            if section.text:
                words += len(section.text.split())
        return words
