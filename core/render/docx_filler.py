"""Word document filling for ``{name}`` placeholders.

Word targets are never merged-redirected: the mapping row's target position is
a token name, and every occurrence of that token is replaced in place.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from docx.document import Document as DocxDocument
from docx.table import Table, _Cell
from docx.text.paragraph import Paragraph

from core.mapping.coerce import value_to_text
from core.mapping.resolver import ResolvedRecord
from core.mapping.table_loader import MappingRow
from core.render.models import FillLogEntry, FillReport, PartialMappingWarning
from core.templates.models import Occurrence
from core.templates.placeholder_parser import iter_target_paragraphs, parse_paragraph
from core.utils.docx_xml import remove_cell_shading, remove_run_marker

logger = logging.getLogger("docbuilder.fill")


def token_key(token: str) -> str:
    """``"{ cliente.nombre }"`` and ``"cliente.nombre"`` share the key ``cliente.nombre``."""

    return token.strip().strip("{}").strip()


def fill_document(
    document: DocxDocument,
    record: ResolvedRecord,
    rows: Iterable[MappingRow],
) -> FillReport:
    """Replace mapped placeholders in body and table paragraphs in place."""

    report = FillReport(kind="docx")
    rows_by_token: dict[str, MappingRow] = {}
    for row in rows:
        report.summary.total_rows += 1
        rows_by_token[token_key(row.target_position)] = row
        rows_by_token.setdefault(token_key(row.placeholder_token), row)

    report.summary.markers_cleared = clear_markers(document)

    resolved: dict[str, str] = {}
    filled_tokens: set[str] = set()
    unsupported_texts: list[str] = []

    for paragraph, paragraph_path in iter_target_paragraphs(document):
        occurrences, unsupported = parse_paragraph(paragraph, paragraph_path)
        unsupported_texts.extend(item.text for item in unsupported)

        # Right-to-left so earlier offsets stay valid after each splice.
        for occurrence in reversed(occurrences):
            row = rows_by_token.get(occurrence.field_name)
            if row is None:
                report.record(
                    FillLogEntry(
                        status="unmapped",
                        target_position=occurrence.field_name,
                        anchor_position=paragraph_path,
                        placeholder_token=occurrence.text,
                        reason="no mapping row for placeholder",
                    )
                )
                continue

            if row.source_path not in resolved:
                text = value_to_text(record.value_for(row.source_path))
                resolved[row.source_path] = text if text.strip() else ""
            text = resolved[row.source_path]
            replace_occurrence(paragraph, occurrence, text)
            filled_tokens.add(occurrence.field_name)
            report.record(
                FillLogEntry(
                    status="written" if text else "blanked",
                    target_position=row.target_position,
                    anchor_position=paragraph_path,
                    source_path=row.source_path,
                    placeholder_token=occurrence.text,
                    value=text or None,
                )
            )

    for key, row in rows_by_token.items():
        if key != token_key(row.target_position) or key in filled_tokens:
            continue
        report.record(
            FillLogEntry(
                status="skipped",
                target_position=row.target_position,
                source_path=row.source_path,
                placeholder_token=row.placeholder_token,
                reason="placeholder not found in template",
            )
        )

    if unsupported_texts:
        report.warnings.append(
            PartialMappingWarning(
                code="UNSUPPORTED_PLACEHOLDER",
                message=f"{len(unsupported_texts)} malformed placeholder(s) left untouched",
                source_paths=sorted(set(unsupported_texts)),
            )
        )
    report.add_partial_mapping_warning()
    return report


def replace_occurrence(paragraph: Paragraph, occurrence: Occurrence, text: str) -> None:
    """Splice ``text`` over the occurrence; the first touched run keeps its formatting."""

    runs = paragraph.runs
    first = runs[occurrence.start_run]
    last = runs[occurrence.end_run]
    first_start = _run_offset(paragraph, occurrence.start_run)
    last_start = _run_offset(paragraph, occurrence.end_run)

    head = first.text[: occurrence.start - first_start]
    tail = last.text[occurrence.end - last_start :]

    if occurrence.start_run == occurrence.end_run:
        first.text = head + text + tail
        return

    first.text = head + text
    for index in range(occurrence.start_run + 1, occurrence.end_run):
        runs[index].text = ""
    last.text = tail


def clear_markers(document: DocxDocument) -> int:
    """Remove red "needs data" highlights and cell shading; return the count."""

    cleared = 0
    for paragraph, _path in iter_target_paragraphs(document):
        for run in paragraph.runs:
            if remove_run_marker(run):
                cleared += 1
    for cell in _iter_cells(document.tables):
        if remove_cell_shading(cell):
            cleared += 1
    return cleared


def _iter_cells(tables: Iterable[Table]) -> Iterator[_Cell]:
    seen: dict[int, object] = {}
    for table in tables:
        for row in table.rows:
            for cell in row.cells:
                if id(cell._tc) in seen:
                    continue
                seen[id(cell._tc)] = cell._tc
                yield cell
                yield from _iter_cells(cell.tables)


def _run_offset(paragraph: Paragraph, run_index: int) -> int:
    return sum(len(run.text or "") for run in paragraph.runs[:run_index])
