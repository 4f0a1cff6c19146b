"""Human-readable fill summary rendering for CLI output."""

from __future__ import annotations

from collections import Counter

from core.render.models import FillReport

_MAX_LISTED = 5


def render_fill_summary(report: FillReport, *, format_id: str, file_name: str) -> str:
    """Render a short one-screen summary of a fill report."""

    summary = report.summary
    lines: list[str] = []
    lines.append("fill_summary:")
    lines.append(f"format={format_id} kind={report.kind} target={report.target or 'active'}")
    lines.append(f"file_name={file_name}")
    lines.append(
        f"rows={summary.total_rows} written={summary.written_count} "
        f"blanked={summary.blanked_count} skipped={summary.skipped_count} "
        f"unmapped={summary.unmapped_count} markers_cleared={summary.markers_cleared}"
    )

    if report.post_rules_applied:
        lines.append(f"post_rules: {', '.join(report.post_rules_applied)}")
    else:
        lines.append("post_rules: none")

    skip_reasons: Counter[str] = Counter(
        entry.reason or "unknown" for entry in report.entries if entry.status == "skipped"
    )
    if skip_reasons:
        top_items = sorted(skip_reasons.items(), key=lambda item: (-item[1], item[0]))[:_MAX_LISTED]
        lines.append("skipped: " + ", ".join(f"{reason}={count}" for reason, count in top_items))

    if not report.warnings:
        lines.append("warnings: none")
    for warning in report.warnings:
        listed = warning.source_paths[:_MAX_LISTED]
        suffix = ""
        if len(warning.source_paths) > len(listed):
            suffix = f" (+{len(warning.source_paths) - len(listed)} more)"
        detail = f": {', '.join(listed)}{suffix}" if listed else ""
        lines.append(f"warning {warning.code}{detail}")
    return "\n".join(lines)
