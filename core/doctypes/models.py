"""Document type (ficha) table models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FieldRule(BaseModel):
    """How one output key is computed from the raw prospect record."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    candidates: list[str] = Field(default_factory=list, alias="from")
    join_any: list[list[str]] = Field(default_factory=list)
    today: bool = False
    default: str | None = None
    flag: str | None = None

    @model_validator(mode="after")
    def _check_sources(self) -> FieldRule:
        has_value_sources = bool(self.candidates or self.join_any or self.today)
        if self.flag is not None and (has_value_sources or self.default is not None):
            raise ValueError("flag cannot be combined with other field sources")
        if self.flag is None and not has_value_sources and self.default is None:
            raise ValueError("field rule needs at least one source")
        return self


class Variant(BaseModel):
    """Route to another document type when any listed key has a value."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    when_any: list[str] = Field(min_length=1)
    use: str


class DocumentTypeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    format: str | None = None
    fields: dict[str, FieldRule] = Field(default_factory=dict)
    variants: list[Variant] = Field(default_factory=list)
    otherwise: str | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> DocumentTypeConfig:
        if self.variants or self.otherwise:
            if self.fields:
                raise ValueError("a variant document type cannot declare fields")
            if not self.otherwise:
                raise ValueError("variant document types require 'otherwise'")
        elif not self.fields:
            raise ValueError("document type needs fields or variants")
        return self


class DocumentTypeTable(BaseModel):
    """On-disk YAML structure for doctypes.yaml."""

    model_config = ConfigDict(extra="forbid")

    types: dict[str, DocumentTypeConfig] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_variant_targets(self) -> DocumentTypeTable:
        for type_id, config in self.types.items():
            targets = [variant.use for variant in config.variants]
            if config.otherwise:
                targets.append(config.otherwise)
            for target in targets:
                target_config = self.types.get(target)
                if target_config is None:
                    raise ValueError(f"{type_id}: unknown variant target '{target}'")
                if target_config.variants or target_config.otherwise:
                    raise ValueError(f"{type_id}: variant target '{target}' must declare fields")
        return self
