"""Renderers that turn a report bundle into a downloadable document."""

from __future__ import annotations

import csv
import io
import json
from html import escape
from typing import Callable

from sporeops.reporting.types import ExportedContent, ReportBundle, ReportInputError


EXTENSIONS = {"json": "json", "markdown": "md", "html": "html", "csv": "csv"}

_HTML_STYLE = """
    body { font-family: Arial, sans-serif; max-width: 900px; margin: 40px auto; padding: 20px; }
    h1 { color: #2c3e50; border-bottom: 3px solid #3498db; padding-bottom: 10px; }
    h2 { color: #34495e; margin-top: 30px; border-bottom: 1px solid #ecf0f1; padding-bottom: 5px; }
    h3 { color: #7f8c8d; }
    table { width: 100%; border-collapse: collapse; margin: 20px 0; }
    th, td { border: 1px solid #ddd; padding: 12px; text-align: left; }
    th { background-color: #3498db; color: white; }
    tr:nth-child(even) { background-color: #f2f2f2; }
    .meta { color: #7f8c8d; font-size: 0.9em; margin: 5px 0; }
    .summary-box { background: #ecf0f1; padding: 15px; border-left: 4px solid #3498db; margin: 20px 0; }
"""


def _summary_lists(bundle: ReportBundle) -> list[tuple[str, list[str]]]:
    summary = bundle.executive_summary
    return [
        ("Key Findings", summary.key_findings),
        ("Critical Issues", summary.critical_issues),
        ("Recommendations", summary.recommendations),
    ]


def render_json(bundle: ReportBundle, *, include_metadata: bool = True) -> str:
    payload = bundle.to_dict()
    if not include_metadata:
        payload.pop("metadata", None)
    return json.dumps(payload, indent=2)


def render_markdown(bundle: ReportBundle, *, include_metadata: bool = True) -> str:
    lines = [
        f"# {bundle.title}",
        "",
        f"**Category:** {bundle.category}  ",
        f"**Period:** {bundle.time_period} ({bundle.period_start} to {bundle.period_end})  ",
        f"**Generated:** {bundle.metadata.generated_at}  ",
    ]
    if bundle.scope.tenant_id:
        lines.append(f"**Tenant:** {bundle.scope.tenant_id}  ")
    if bundle.scope.facility_id:
        lines.append(f"**Facility:** {bundle.scope.facility_id}  ")
    lines += ["", "---", "", "## Executive Summary", "", bundle.executive_summary.overview, ""]
    for heading, items in _summary_lists(bundle):
        if items:
            lines += [f"### {heading}", ""]
            lines += [f"- {item}" for item in items]
            lines.append("")

    for section in bundle.sections:
        lines += [f"## {section.title}", ""]
        if section.summary:
            lines += [section.summary, ""]
        if section.metrics:
            lines += ["### Metrics", ""]
            lines += [f"- **{key}:** {value}" for key, value in section.metrics.items()]
            lines.append("")
        for table in section.tables:
            lines += [f"### {table.title}", ""]
            lines.append(f"| {' | '.join(table.headers)} |")
            lines.append(f"| {' | '.join('---' for _ in table.headers)} |")
            lines += [f"| {' | '.join(str(cell) for cell in row)} |" for row in table.rows]
            if table.footer:
                lines += ["", f"*{table.footer}*"]
            lines.append("")
        if section.text:
            lines += [section.text, ""]
        lines += [f"*Data sources: {', '.join(section.data_sources)}*", ""]

    if include_metadata:
        meta = bundle.metadata
        lines += [
            "---",
            "",
            "## Report Metadata",
            "",
            f"- **Report ID:** {bundle.report_id}",
            f"- **Bundle ID:** {bundle.bundle_id}",
            f"- **Sections:** {len(bundle.sections)}",
            f"- **Word Count:** {meta.word_count}",
            f"- **Data Sources:** {', '.join(meta.data_sources_used)}",
            f"- **Computation Time:** {meta.computation_time_ms}ms",
        ]
    return "\n".join(lines) + "\n"


def render_html(bundle: ReportBundle, *, include_metadata: bool = True) -> str:
    parts = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '  <meta charset="UTF-8">',
        f"  <title>{escape(bundle.title)}</title>",
        f"  <style>{_HTML_STYLE}  </style>",
        "</head>",
        "<body>",
        f"  <h1>{escape(bundle.title)}</h1>",
        '  <div class="meta">',
        f"    <strong>Category:</strong> {escape(bundle.category)}<br>",
        f"    <strong>Period:</strong> {escape(bundle.time_period)} "
        f"({escape(bundle.period_start)} to {escape(bundle.period_end)})<br>",
        f"    <strong>Generated:</strong> {escape(bundle.metadata.generated_at)}<br>",
    ]
    if bundle.scope.tenant_id:
        parts.append(f"    <strong>Tenant:</strong> {escape(bundle.scope.tenant_id)}<br>")
    if bundle.scope.facility_id:
        parts.append(f"    <strong>Facility:</strong> {escape(bundle.scope.facility_id)}<br>")
    parts += [
        "  </div>",
        "  <h2>Executive Summary</h2>",
        f'  <div class="summary-box"><p>{escape(bundle.executive_summary.overview)}</p></div>',
    ]
    for heading, items in _summary_lists(bundle):
        if items:
            entries = "".join(f"<li>{escape(item)}</li>" for item in items)
            parts.append(f"  <h3>{heading}</h3><ul>{entries}</ul>")

    for section in bundle.sections:
        parts.append(f"  <h2>{escape(section.title)}</h2>")
        if section.summary:
            parts.append(f"  <p>{escape(section.summary)}</p>")
        if section.metrics:
            entries = "".join(
                f"<li><strong>{escape(key)}:</strong> {escape(str(value))}</li>"
                for key, value in section.metrics.items()
            )
            parts.append(f"  <h3>Metrics</h3><ul>{entries}</ul>")
        for table in section.tables:
            head = "".join(f"<th>{escape(header)}</th>" for header in table.headers)
            body = "".join(
                "<tr>" + "".join(f"<td>{escape(str(cell))}</td>" for cell in row) + "</tr>"
                for row in table.rows
            )
            parts.append(f"  <h3>{escape(table.title)}</h3>")
            parts.append(f"  <table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>")
            if table.footer:
                parts.append(f'  <p class="meta"><em>{escape(table.footer)}</em></p>')
        if section.text:
            parts.append(f"  <p>{escape(section.text)}</p>")
        parts.append(f'  <p class="meta">Data sources: {escape(", ".join(section.data_sources))}</p>')

    if include_metadata:
        meta = bundle.metadata
        parts += [
            "  <h2>Report Metadata</h2>",
            '  <ul class="meta">',
            f"    <li><strong>Report ID:</strong> {escape(bundle.report_id)}</li>",
            f"    <li><strong>Bundle ID:</strong> {escape(bundle.bundle_id)}</li>",
            f"    <li><strong>Word Count:</strong> {meta.word_count}</li>",
            f"    <li><strong>Data Sources:</strong> {escape(', '.join(meta.data_sources_used))}</li>",
            "  </ul>",
        ]
    parts += ["</body>", "</html>"]
    return "\n".join(parts) + "\n"


def render_csv(bundle: ReportBundle, *, include_metadata: bool = True) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(["Section", "Metric", "Value"])
    for section in bundle.sections:
        for key, value in section.metrics.items():
            writer.writerow([section.title, key, str(value)])
    if include_metadata:
        meta = bundle.metadata
        writer.writerow(["Report Metadata", "Report ID", bundle.report_id])
        writer.writerow(["Report Metadata", "Bundle ID", bundle.bundle_id])
        writer.writerow(["Report Metadata", "Generated At", meta.generated_at])
        writer.writerow(["Report Metadata", "Word Count", str(meta.word_count)])
    return buffer.getvalue()


RENDERERS: dict[str, Callable[..., str]] = {
    "json": render_json,
    "markdown": render_markdown,
    "html": render_html,
    "csv": render_csv,
}


def render_bundle(bundle: ReportBundle, report_format: str, *, include_metadata: bool = True) -> ExportedContent:
    renderer = RENDERERS.get(report_format)
    if renderer is None:
        raise ReportInputError(f"unknown report format '{report_format}'")
    content = renderer(bundle, include_metadata=include_metadata)
    return ExportedContent(
        format=report_format,
        content=content,
        filename=f"{bundle.bundle_id}.{EXTENSIONS[report_format]}",
        size_bytes=len(content.encode("utf-8")),
    )
