"""Spreadsheet filling for mapping-table driven formats.

Writes go through merged-region anchors: a value targeted at any member of a
merged range lands on that range's top-left cell.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from openpyxl.cell.cell import MergedCell
from openpyxl.styles import PatternFill
from openpyxl.utils.cell import column_index_from_string, coordinate_from_string
from openpyxl.utils.exceptions import CellCoordinatesException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from core.mapping.coerce import value_to_text
from core.mapping.resolver import ResolvedRecord
from core.mapping.table_loader import MappingRow
from core.render.models import FillLogEntry, FillReport
from core.utils.errors import ConfigurationError

logger = logging.getLogger("docbuilder.fill")

DEFAULT_MARKER_ARGB = "FFFF0000"


def select_worksheet(
    workbook: Workbook,
    sheet_name: str | None,
    *,
    format_id: str | None = None,
) -> Worksheet:
    if sheet_name is None:
        worksheet = workbook.active
        if worksheet is None:
            raise ConfigurationError(
                "workbook has no active sheet",
                stage="load_template",
                format_id=format_id,
            )
        return worksheet
    if sheet_name not in workbook.sheetnames:
        raise ConfigurationError(
            f"sheet '{sheet_name}' not found in template",
            stage="load_template",
            format_id=format_id,
        )
    return workbook[sheet_name]


def fill_workbook(
    workbook: Workbook,
    record: ResolvedRecord,
    rows: Iterable[MappingRow],
    *,
    sheet_name: str | None = None,
    format_id: str | None = None,
    marker_argb: str = DEFAULT_MARKER_ARGB,
) -> FillReport:
    """Fill one sheet of ``workbook`` in place and return the fill report."""

    worksheet = select_worksheet(workbook, sheet_name, format_id=format_id)
    report = FillReport(kind="xlsx", target=worksheet.title)
    report.summary.markers_cleared = clear_marker_fills(worksheet, marker_argb)

    for row in rows:
        report.summary.total_rows += 1
        anchor = anchor_coordinate(worksheet, row.target_position)
        if anchor is None:
            report.record(
                FillLogEntry(
                    status="skipped",
                    target_position=row.target_position,
                    source_path=row.source_path,
                    placeholder_token=row.placeholder_token,
                    reason="invalid cell address",
                )
            )
            continue

        value = record.value_for(row.source_path)
        text = value_to_text(value)
        cell = worksheet[anchor]
        if text.strip():
            cell.value = value
            _clear_cell_marker(cell, marker_argb)
            status = "written"
        else:
            cell.value = None
            status = "blanked"

        report.record(
            FillLogEntry(
                status=status,
                target_position=row.target_position,
                anchor_position=anchor,
                source_path=row.source_path,
                placeholder_token=row.placeholder_token,
                value=text if text.strip() else None,
            )
        )

    report.add_partial_mapping_warning()
    return report


def anchor_coordinate(worksheet: Worksheet, coordinate: str) -> str | None:
    """Return the merged-range anchor for ``coordinate`` (itself when unmerged).

    Returns None for strings that are not a single cell address.
    """

    normalized = coordinate.strip().replace("$", "").upper()
    try:
        column_letter, _row = coordinate_from_string(normalized)
        column_index_from_string(column_letter)
    except (CellCoordinatesException, ValueError):
        return None

    for merged_range in worksheet.merged_cells.ranges:
        if normalized in merged_range:
            return worksheet.cell(row=merged_range.min_row, column=merged_range.min_col).coordinate
    return normalized


def clear_marker_fills(worksheet: Worksheet, marker_argb: str = DEFAULT_MARKER_ARGB) -> int:
    """Drop solid fills painted with the "needs data" marker colour; return count."""

    cleared = 0
    for row in worksheet.iter_rows():
        for cell in row:
            if _clear_cell_marker(cell, marker_argb):
                cleared += 1
    return cleared


def blank_cells(worksheet: Worksheet, coordinates: Iterable[str]) -> list[str]:
    """Set the anchor of each coordinate to None; return the anchors touched."""

    touched: list[str] = []
    for coordinate in coordinates:
        anchor = anchor_coordinate(worksheet, coordinate)
        if anchor is None:
            logger.warning("blank_cells skipped invalid address %r", coordinate)
            continue
        worksheet[anchor].value = None
        touched.append(anchor)
    return touched


def _clear_cell_marker(cell, marker_argb: str) -> bool:
    if isinstance(cell, MergedCell):
        return False
    fill = cell.fill
    if fill is None or fill.fill_type != "solid":
        return False
    color = fill.fgColor
    if color is None or color.type != "rgb" or str(color.rgb).upper() != marker_argb:
        return False
    cell.fill = PatternFill(fill_type=None)
    return True
