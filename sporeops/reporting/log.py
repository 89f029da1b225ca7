"""Append-only audit trail for report generation and export."""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timedelta
from typing import Any

from sporeops.core.clock import Clock, isoformat, new_id, parse_timestamp, utc_now
from sporeops.core.logging import EventLogger, get_logger
from sporeops.reporting.types import (
    LOG_ENTRY_TYPES,
    REPORT_CATEGORIES,
    REPORT_FORMATS,
    REPORT_TIME_PERIODS,
    ReportBundle,
    ReportLogEntry,
    ReportScope,
    ReportStatistics,
    ReportingPolicyDecision,
)


CSV_HEADERS = ["Entry ID", "Entry Type", "Timestamp", "Tenant ID", "Details"]


def _trend(current: int, previous: int) -> str:
    if previous <= 0:
        return "N/A"
    change = round((current - previous) / previous * 100.0)
    return f"{change}%" if change < 0 else f"+{change}%"


class ReportingLog:
    def __init__(self, *, clock: Clock = utc_now, event_logger: EventLogger | None = None) -> None:
        self._clock = clock
        self._entries: list[ReportLogEntry] = []
        self._events = event_logger or EventLogger(logger=get_logger("sporeops.reporting"), service_name="sporeops")

    def _append(
        self,
        entry_type: str,
        *,
        user_id: str,
        tenant_id: str | None,
        facility_id: str | None = None,
        details: dict[str, Any],
    ) -> ReportLogEntry:
        if entry_type not in LOG_ENTRY_TYPES:
            raise ValueError(f"unknown reporting log entry type '{entry_type}'")
        entry = ReportLogEntry(
            entry_id=new_id("entry"),
            entry_type=entry_type,
            timestamp=isoformat(self._clock()),
            user_id=user_id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            details=details,
        )
        self._entries.append(entry)
        failed = entry_type == "error" or (entry_type == "policy-decision" and not details.get("allowed"))
        self._events.emit(
            message=f"report {entry_type}",
            component="reporting",
            action=entry_type,
            tenant_id=tenant_id,
            user_id=user_id,
            outcome="failure" if failed else "success",
            payload={"entry_id": entry.entry_id, **details},
            level="WARNING" if failed else "INFO",
        )
        return entry

    def log_report_generated(
        self,
        bundle: ReportBundle,
        generated_by: str,
        *,
        generation_time_ms: float = 0.0,
    ) -> ReportLogEntry:
        return self._append(
            "report-generated",
            user_id=generated_by,
            tenant_id=bundle.scope.tenant_id,
            facility_id=bundle.scope.facility_id,
            details={
                "bundle_id": bundle.bundle_id,
                "category": bundle.category,
                "time_period": bundle.time_period,
                "sections_generated": len(bundle.sections),
                "format": bundle.metadata.format,
                "generation_time_ms": round(generation_time_ms, 3),
            },
        )

    def log_report_exported(
        self,
        bundle_id: str,
        *,
        report_format: str,
        filename: str,
        size_bytes: int,
        tenant_id: str | None,
        exported_by: str,
    ) -> ReportLogEntry:
        return self._append(
            "report-exported",
            user_id=exported_by,
            tenant_id=tenant_id,
            details={
                "bundle_id": bundle_id,
                "format": report_format,
                "filename": filename,
                "size_bytes": size_bytes,
            },
        )

    def log_policy_decision(
        self,
        query_id: str,
        scope: ReportScope,
        decision: ReportingPolicyDecision,
        user_id: str,
    ) -> ReportLogEntry:
        return self._append(
            "policy-decision",
            user_id=user_id,
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            details={
                "query_id": query_id,
                "scope": {
                    "tenant_id": scope.tenant_id,
                    "facility_id": scope.facility_id,
                    "federation_id": scope.federation_id,
                },
                "allowed": decision.allowed,
                "reason": decision.reason,
                "violations": list(decision.violations),
                "warnings": list(decision.warnings),
            },
        )

    def log_error(
        self,
        query_id: str,
        *,
        error_code: str,
        message: str,
        user_id: str,
        tenant_id: str | None = None,
        details: str | None = None,
    ) -> ReportLogEntry:
        return self._append(
            "error",
            user_id=user_id,
            tenant_id=tenant_id,
            details={
                "query_id": query_id,
                "error_code": error_code,
                "message": message,
                "details": details,
            },
        )

    def get_entries(
        self,
        *,
        entry_type: str | None = None,
        tenant_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[ReportLogEntry]:
        entries = list(self._entries)
        if entry_type:
            entries = [entry for entry in entries if entry.entry_type == entry_type]
        if tenant_id:
            entries = [entry for entry in entries if entry.tenant_id == tenant_id]
        if start is not None or end is not None:
            selected: list[ReportLogEntry] = []
            for entry in entries:
                stamp = parse_timestamp(entry.timestamp)
                if stamp is None:
                    continue
                if start is not None and stamp < start:
                    continue
                if end is not None and stamp > end:
                    continue
                selected.append(entry)
            entries = selected
        if limit:
            entries = entries[-limit:]
        return entries

    def get_latest_entries(self, limit: int = 100) -> list[ReportLogEntry]:
        if limit <= 0:
            return []
        return self._entries[-limit:]

    def statistics(self, now: datetime | None = None) -> ReportStatistics:
        reference = now or self._clock()
        generated = self.get_entries(entry_type="report-generated")
        exported = self.get_entries(entry_type="report-exported")
        stats = ReportStatistics(
            total_reports=len(generated),
            total_exports=len(exported),
            total_policy_decisions=len(self.get_entries(entry_type="policy-decision")),
            total_errors=len(self.get_entries(entry_type="error")),
            by_category={category: 0 for category in REPORT_CATEGORIES},
            by_time_period={period: 0 for period in REPORT_TIME_PERIODS},
            by_format={report_format: 0 for report_format in REPORT_FORMATS},
        )
        durations: list[float] = []
        for entry in generated:
            details = entry.details
            stats.by_category[details["category"]] = stats.by_category.get(details["category"], 0) + 1
            stats.by_time_period[details["time_period"]] = stats.by_time_period.get(details["time_period"], 0) + 1
            stats.by_format[details["format"]] = stats.by_format.get(details["format"], 0) + 1
            if entry.tenant_id:
                stats.by_tenant[entry.tenant_id] = stats.by_tenant.get(entry.tenant_id, 0) + 1
            durations.append(float(details.get("generation_time_ms", 0.0)))
        if durations:
            stats.average_generation_time_ms = round(sum(durations) / len(durations), 3)

        day_ago = reference - timedelta(days=1)
        two_days_ago = reference - timedelta(days=2)
        stats.trends = {
            "reports_change": _trend(*self._window_counts(generated, day_ago, two_days_ago)),
            "exports_change": _trend(*self._window_counts(exported, day_ago, two_days_ago)),
        }
        return stats

    @staticmethod
    def _window_counts(
        entries: list[ReportLogEntry],
        day_ago: datetime,
        two_days_ago: datetime,
    ) -> tuple[int, int]:
        current = previous = 0
        for entry in entries:
            stamp = parse_timestamp(entry.timestamp)
            if stamp is None:
                continue
            if stamp >= day_ago:
                current += 1
            elif stamp >= two_days_ago:
                previous += 1
        return current, previous

    def export_json(self, **filters: Any) -> str:
        return json.dumps([entry.to_dict() for entry in self.get_entries(**filters)], indent=2)

    def export_csv(self, **filters: Any) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for entry in self.get_entries(**filters):
            writer.writerow(
                [entry.entry_id, entry.entry_type, entry.timestamp, entry.tenant_id or "", self._describe(entry)]
            )
        return buffer.getvalue()

    @staticmethod
    def _describe(entry: ReportLogEntry) -> str:
        details = entry.details
        if entry.entry_type == "report-generated":
            return f"{details['category']} - {details['sections_generated']} sections"
        if entry.entry_type == "report-exported":
            return f"{details['format']} - {details['filename']}"
        if entry.entry_type == "policy-decision":
            verdict = "Allowed" if details["allowed"] else "Denied"
            return f"{verdict} - {details['reason']}"
        return f"{details['error_code']} - {details['message']}"

    def clear_old_entries(self, retention_days: int = 90) -> int:
        cutoff = self._clock() - timedelta(days=retention_days)
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
