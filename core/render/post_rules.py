"""Per-format mutations applied after generic filling."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable

from openpyxl.worksheet.worksheet import Worksheet

from core.formats.models import BlankCellsRule, PostRule, ProtectSheetRule
from core.render.models import FillReport, PartialMappingWarning
from core.render.xlsx_filler import blank_cells
from core.utils.log_events import log_event

logger = logging.getLogger("docbuilder.fill")

PASSWORD_LENGTH = 15


def derive_protection_password(secret: str, timestamp_ms: int) -> str:
    """First 15 hex chars of sha256(secret + str(timestamp_ms))."""

    digest = hashlib.sha256(f"{secret}{timestamp_ms}".encode("utf-8")).hexdigest()
    return digest[:PASSWORD_LENGTH]


def apply_post_rules(
    worksheet: Worksheet,
    rules: Iterable[PostRule],
    report: FillReport,
    *,
    protection_secret: str | None,
    timestamp_ms: int,
    format_id: str | None = None,
) -> None:
    for rule in rules:
        if isinstance(rule, BlankCellsRule):
            touched = blank_cells(worksheet, rule.cells)
            report.post_rules_applied.append(f"blank_cells:{','.join(touched)}")
        elif isinstance(rule, ProtectSheetRule):
            if _protect_sheet(worksheet, protection_secret, timestamp_ms, format_id=format_id):
                report.post_rules_applied.append("protect_sheet")
            else:
                report.warnings.append(
                    PartialMappingWarning(
                        code="PROTECTION_SKIPPED",
                        message="sheet protection secret is not configured; sheet left unprotected",
                    )
                )


def _protect_sheet(
    worksheet: Worksheet,
    secret: str | None,
    timestamp_ms: int,
    *,
    format_id: str | None,
) -> bool:
    if not secret:
        log_event(
            logger,
            logging.ERROR,
            "protection_skipped",
            format_id=format_id,
            sheet=worksheet.title,
            reason="missing secret",
        )
        return False

    worksheet.protection.password = derive_protection_password(secret, timestamp_ms)
    worksheet.protection.enable()
    return True
