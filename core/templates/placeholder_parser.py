"""Placeholder parser for ``{name}`` tokens in body paragraphs and table cells.

Header and footer content is not scanned.
"""

from __future__ import annotations

import re
from collections.abc import Iterator

from docx.document import Document as DocxDocument
from docx.table import Table
from docx.text.paragraph import Paragraph

from core.templates.models import Occurrence, ParseResult, UnsupportedOccurrence

_BRACED_RE = re.compile(r"\{([^{}]*)\}")
_FIELD_NAME_RE = re.compile(r"[\w.\-]+")
_OPEN_BRACE = "{"
_CLOSE_BRACE = "}"


def parse_placeholders(document: DocxDocument) -> ParseResult:
    """Parse placeholders from document body and tables.

    Rules:
    - Supported placeholder format is ``{FIELD}`` where FIELD is made of word
      characters, dots and hyphens (``{cliente.nombre}``, ``{CURP}``).
    - Tokens may be split across runs; the run span is recorded.
    - ``{}`` or names with other characters are reported as invalid_format.
    - Stray ``}`` and unclosed ``{`` are reported as unbalanced.
    """

    result = ParseResult()
    seen_fields: set[str] = set()

    for paragraph, paragraph_path in iter_target_paragraphs(document):
        occurrences, unsupported = parse_paragraph(paragraph, paragraph_path)
        result.occurrences.extend(occurrences)
        result.unsupported.extend(unsupported)
        for occurrence in occurrences:
            if occurrence.field_name not in seen_fields:
                result.fields.append(occurrence.field_name)
                seen_fields.add(occurrence.field_name)

    return result


def parse_paragraph(
    paragraph: Paragraph,
    paragraph_path: str,
) -> tuple[list[Occurrence], list[UnsupportedOccurrence]]:
    full_text, run_spans = build_run_spans(paragraph)
    occurrences: list[Occurrence] = []
    unsupported: list[UnsupportedOccurrence] = []
    if not full_text:
        return occurrences, unsupported

    for match in _BRACED_RE.finditer(full_text):
        inner = match.group(1).strip()
        if not _FIELD_NAME_RE.fullmatch(inner):
            unsupported.append(
                UnsupportedOccurrence(
                    kind="invalid_format",
                    text=match.group(0),
                    paragraph_path=paragraph_path,
                    start=match.start(),
                    end=match.end(),
                )
            )
            continue

        start_run = run_index_for_position(match.start(), run_spans)
        end_run = run_index_for_position(match.end() - 1, run_spans)
        if start_run is None or end_run is None:
            continue
        occurrences.append(
            Occurrence(
                field_name=inner,
                text=match.group(0),
                paragraph_path=paragraph_path,
                start=match.start(),
                end=match.end(),
                start_run=start_run,
                end_run=end_run,
            )
        )

    for kind, start, end, text in _find_unbalanced_braces(full_text):
        unsupported.append(
            UnsupportedOccurrence(
                kind=kind,
                text=text,
                paragraph_path=paragraph_path,
                start=start,
                end=end,
            )
        )

    return occurrences, unsupported


def iter_target_paragraphs(document: DocxDocument) -> Iterator[tuple[Paragraph, str]]:
    """Yield body and table-cell paragraphs once each.

    A merged cell is returned by python-docx for every grid position it
    covers; the underlying paragraph element is yielded only the first time.
    """

    # id -> element; holding the element keeps its lxml proxy (and id) stable.
    seen: dict[int, object] = {}

    for paragraph_index, paragraph in enumerate(document.paragraphs):
        seen[id(paragraph._p)] = paragraph._p
        yield paragraph, f"p{paragraph_index}"

    for table_index, table in enumerate(document.tables):
        yield from _iter_table_paragraphs(table, f"t{table_index}", seen)


def build_run_spans(paragraph: Paragraph) -> tuple[str, list[tuple[int, int, int]]]:
    run_spans: list[tuple[int, int, int]] = []
    chunks: list[str] = []
    cursor = 0

    for run_index, run in enumerate(paragraph.runs):
        text = run.text or ""
        start = cursor
        cursor += len(text)
        run_spans.append((run_index, start, cursor))
        chunks.append(text)

    return "".join(chunks), run_spans


def run_index_for_position(position: int, run_spans: list[tuple[int, int, int]]) -> int | None:
    for run_index, start, end in run_spans:
        if start <= position < end:
            return run_index
    return None


def _iter_table_paragraphs(
    table: Table,
    table_path: str,
    seen: dict[int, object],
) -> Iterator[tuple[Paragraph, str]]:
    for row_index, row in enumerate(table.rows):
        for cell_index, cell in enumerate(row.cells):
            cell_path = f"{table_path}.r{row_index}.c{cell_index}"
            for paragraph_index, paragraph in enumerate(cell.paragraphs):
                key = id(paragraph._p)
                if key in seen:
                    continue
                seen[key] = paragraph._p
                yield paragraph, f"{cell_path}.p{paragraph_index}"
            for nested_index, nested in enumerate(cell.tables):
                yield from _iter_table_paragraphs(nested, f"{cell_path}.t{nested_index}", seen)


def _find_unbalanced_braces(full_text: str) -> list[tuple[str, int, int, str]]:
    issues: list[tuple[str, int, int, str]] = []
    open_positions: list[int] = []

    for index, char in enumerate(full_text):
        if char == _OPEN_BRACE:
            open_positions.append(index)
            continue

        if char == _CLOSE_BRACE:
            if open_positions:
                open_positions.pop()
            else:
                issues.append(("stray_close", index, index + 1, _CLOSE_BRACE))

    for start in open_positions:
        issues.append(("unclosed_brace", start, len(full_text), full_text[start:]))

    return issues
