"""Fill report models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

FillStatus = Literal["written", "blanked", "skipped", "unmapped"]


class FillLogEntry(BaseModel):
    """Outcome for one mapping row or one unmatched template token."""

    model_config = ConfigDict(extra="forbid")

    status: FillStatus
    target_position: str
    anchor_position: str | None = None
    source_path: str | None = None
    placeholder_token: str | None = None
    value: str | None = None
    reason: str | None = None


class PartialMappingWarning(BaseModel):
    """Observability signal: rows whose source path resolved to nothing."""

    model_config = ConfigDict(extra="forbid")

    code: Literal["PARTIAL_MAPPING", "PROTECTION_SKIPPED", "UNSUPPORTED_PLACEHOLDER"]
    message: str
    source_paths: list[str] = Field(default_factory=list)


class FillSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total_rows: int = 0
    written_count: int = 0
    blanked_count: int = 0
    skipped_count: int = 0
    unmapped_count: int = 0
    markers_cleared: int = 0


class FillReport(BaseModel):
    """Full fill report for one document."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["xlsx", "docx"]
    target: str | None = None
    entries: list[FillLogEntry] = Field(default_factory=list)
    summary: FillSummary = Field(default_factory=FillSummary)
    post_rules_applied: list[str] = Field(default_factory=list)
    warnings: list[PartialMappingWarning] = Field(default_factory=list)

    def record(self, entry: FillLogEntry) -> None:
        self.entries.append(entry)
        if entry.status == "written":
            self.summary.written_count += 1
        elif entry.status == "blanked":
            self.summary.blanked_count += 1
        elif entry.status == "skipped":
            self.summary.skipped_count += 1
        else:
            self.summary.unmapped_count += 1

    def blanked_sources(self) -> list[str]:
        return [
            entry.source_path
            for entry in self.entries
            if entry.status == "blanked" and entry.source_path is not None
        ]

    def add_partial_mapping_warning(self) -> None:
        sources = sorted(set(self.blanked_sources()))
        if not sources:
            return
        self.warnings.append(
            PartialMappingWarning(
                code="PARTIAL_MAPPING",
                message=f"{len(sources)} source path(s) resolved to no value",
                source_paths=sources,
            )
        )
