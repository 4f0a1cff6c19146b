from __future__ import annotations

from docx import Document

from core.templates.placeholder_parser import parse_placeholders


def test_parse_single_placeholder_in_single_run() -> None:
    document = Document()
    paragraph = document.add_paragraph()
    paragraph.add_run("AA{NAME}BB")

    result = parse_placeholders(document)

    assert result.fields == ["NAME"]
    assert len(result.occurrences) == 1
    occurrence = result.occurrences[0]
    assert occurrence.paragraph_path == "p0"
    assert (occurrence.start, occurrence.end) == (2, 8)
    assert not occurrence.cross_run
    assert not result.unsupported


def test_parse_multiple_placeholders_keeps_first_seen_order() -> None:
    document = Document()
    document.add_paragraph("{cliente.nombre} X {B-2} {cliente.nombre}")

    result = parse_placeholders(document)

    assert result.fields == ["cliente.nombre", "B-2"]
    assert len(result.occurrences) == 3


def test_parse_cross_run_placeholder_records_run_span() -> None:
    document = Document()
    paragraph = document.add_paragraph()
    paragraph.add_run("{A")
    paragraph.add_run("BC")
    paragraph.add_run("D} tail")

    result = parse_placeholders(document)

    assert result.fields == ["ABCD"]
    occurrence = result.occurrences[0]
    assert occurrence.cross_run
    assert (occurrence.start_run, occurrence.end_run) == (0, 2)


def test_parse_table_cell_and_nested_table_paths() -> None:
    document = Document()
    table = document.add_table(rows=1, cols=1)
    cell = table.cell(0, 0)
    cell.paragraphs[0].text = "X{CELL}Y"
    nested = cell.add_table(rows=1, cols=1)
    nested.cell(0, 0).paragraphs[0].text = "{INNER}"

    result = parse_placeholders(document)

    assert result.fields == ["CELL", "INNER"]
    assert [item.paragraph_path for item in result.occurrences] == ["t0.r0.c0.p0", "t0.r0.c0.t0.r0.c0.p0"]


def test_merged_cell_paragraph_is_visited_once() -> None:
    document = Document()
    table = document.add_table(rows=1, cols=2)
    merged = table.cell(0, 0).merge(table.cell(0, 1))
    merged.paragraphs[0].text = "{MERGED}"

    result = parse_placeholders(document)

    assert len(result.occurrences) == 1


def test_invalid_and_unbalanced_tokens_are_reported() -> None:
    document = Document()
    document.add_paragraph("{} {con espacio} }")
    document.add_paragraph("abre {sin cerrar")

    result = parse_placeholders(document)

    assert result.fields == []
    kinds = sorted(item.kind for item in result.unsupported)
    assert kinds == ["invalid_format", "invalid_format", "stray_close", "unclosed_brace"]
    unclosed = [item for item in result.unsupported if item.kind == "unclosed_brace"][0]
    assert unclosed.text == "{sin cerrar"
    assert unclosed.paragraph_path == "p1"


def test_empty_document() -> None:
    result = parse_placeholders(Document())

    assert result.fields == []
    assert result.occurrences == []
    assert result.unsupported == []
