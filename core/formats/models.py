"""Format table models."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BlankCellsRule(BaseModel):
    """Clear a fixed set of cells after filling."""

    model_config = ConfigDict(extra="forbid")

    rule: Literal["blank_cells"]
    cells: list[str] = Field(min_length=1)


class ProtectSheetRule(BaseModel):
    """Write-protect the filled sheet with a secret-derived password."""

    model_config = ConfigDict(extra="forbid")

    rule: Literal["protect_sheet"]


PostRule = Annotated[BlankCellsRule | ProtectSheetRule, Field(discriminator="rule")]


class FormatConfig(BaseModel):
    """Template, mapping table and post rules bound to one format id."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["xlsx", "docx"]
    template: str
    mapping: str
    file_label: str
    sheet: str | None = None
    naming: Literal["client", "expediente"] = "client"
    aliases: list[str] = Field(default_factory=list)
    post_rules: list[PostRule] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_kind(self) -> FormatConfig:
        if self.kind == "docx" and any(rule.rule == "protect_sheet" for rule in self.post_rules):
            raise ValueError("protect_sheet applies to xlsx formats only")
        if self.kind == "docx" and self.sheet is not None:
            raise ValueError("sheet applies to xlsx formats only")
        return self

    @property
    def extension(self) -> str:
        return self.kind

    @property
    def mime_type(self) -> str:
        if self.kind == "xlsx":
            return "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        return "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class FormatTable(BaseModel):
    """On-disk YAML structure for formats.yaml."""

    model_config = ConfigDict(extra="forbid")

    default_format: str
    formats: dict[str, FormatConfig] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_default(self) -> FormatTable:
        if self.default_format not in self.formats:
            raise ValueError(f"default_format '{self.default_format}' is not a declared format")
        return self
