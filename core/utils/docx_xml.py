"""Utilities for docx XML operations.

All XML-level operations on docx content must be implemented here.
Do not spread XML manipulation logic across other modules.
"""

from __future__ import annotations

from docx.enum.text import WD_COLOR_INDEX
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.table import _Cell
from docx.text.run import Run

RED_SHADING_FILLS = frozenset({"FF0000"})


def get_cell_shading_fill(cell: _Cell) -> str | None:
    """Return the direct tcPr/shd fill colour (upper-case hex) or None."""

    tc_pr = cell._tc.tcPr
    if tc_pr is None:
        return None
    shd = tc_pr.find(qn("w:shd"))
    if shd is None:
        return None
    fill = shd.get(qn("w:fill"))
    return fill.upper() if fill else None


def set_cell_shading_fill(cell: _Cell, fill: str) -> None:
    """Set direct cell shading. Used for controlled tests."""

    tc_pr = cell._tc.get_or_add_tcPr()
    shd = tc_pr.find(qn("w:shd"))
    if shd is None:
        shd = OxmlElement("w:shd")
        tc_pr.append(shd)
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill)


def remove_cell_shading(cell: _Cell, fills: frozenset[str] = RED_SHADING_FILLS) -> bool:
    """Remove direct cell shading when its fill is one of ``fills``."""

    fill = get_cell_shading_fill(cell)
    if fill is None or fill not in fills:
        return False
    tc_pr = cell._tc.tcPr
    tc_pr.remove(tc_pr.find(qn("w:shd")))
    return True


def remove_run_marker(run: Run, fills: frozenset[str] = RED_SHADING_FILLS) -> bool:
    """Clear red highlight and red run shading; return whether anything changed."""

    changed = False
    if run.font.highlight_color == WD_COLOR_INDEX.RED:
        run.font.highlight_color = None
        changed = True

    r_pr = run._r.rPr
    if r_pr is not None:
        shd = r_pr.find(qn("w:shd"))
        if shd is not None and (shd.get(qn("w:fill")) or "").upper() in fills:
            r_pr.remove(shd)
            changed = True
    return changed
