from __future__ import annotations

from apps.cli.format_human import render_fill_summary
from core.render.models import FillLogEntry, FillReport, PartialMappingWarning


def test_render_fill_summary_clean_report() -> None:
    report = FillReport(kind="docx")
    report.record(FillLogEntry(status="written", target_position="nombre", source_path="nombre", value="Ana"))

    text = render_fill_summary(report, format_id="obligado_solidario", file_name="x.docx")

    assert text.splitlines() == [
        "fill_summary:",
        "format=obligado_solidario kind=docx target=active",
        "file_name=x.docx",
        "rows=0 written=1 blanked=0 skipped=0 unmapped=0 markers_cleared=0",
        "post_rules: none",
        "warnings: none",
    ]


def test_render_fill_summary_lists_skips_post_rules_and_truncated_warnings() -> None:
    report = FillReport(kind="xlsx", target="Scoring del Cliente")
    for target in ("ZZZ", "?", "1"):
        report.record(FillLogEntry(status="skipped", target_position=target, reason="invalid cell address"))
    report.post_rules_applied.append("blank_cells:K7,K8")
    report.warnings.append(
        PartialMappingWarning(
            code="PARTIAL_MAPPING",
            message="7 source path(s) resolved to no value",
            source_paths=[f"campo_{index}" for index in range(7)],
        )
    )

    text = render_fill_summary(report, format_id="sin_HC", file_name="y.xlsx")

    assert "target=Scoring del Cliente" in text
    assert "post_rules: blank_cells:K7,K8" in text
    assert "skipped: invalid cell address=3" in text
    assert "warning PARTIAL_MAPPING: campo_0, campo_1, campo_2, campo_3, campo_4 (+2 more)" in text
    assert "warnings: none" not in text
