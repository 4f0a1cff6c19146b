"""Data models for Word template placeholder parsing."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Occurrence:
    """A ``{name}`` token located in one paragraph, possibly spanning runs."""

    field_name: str
    text: str
    paragraph_path: str
    start: int
    end: int
    start_run: int
    end_run: int

    @property
    def cross_run(self) -> bool:
        return self.start_run != self.end_run


@dataclass(frozen=True)
class UnsupportedOccurrence:
    """A brace token that cannot be safely processed."""

    kind: str
    text: str
    paragraph_path: str | None
    start: int | None
    end: int | None


@dataclass
class ParseResult:
    """Placeholder parsing output."""

    fields: list[str] = field(default_factory=list)
    occurrences: list[Occurrence] = field(default_factory=list)
    unsupported: list[UnsupportedOccurrence] = field(default_factory=list)
