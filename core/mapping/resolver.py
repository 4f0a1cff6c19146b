"""Build the augmented lookup surface for one record and resolve source paths."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from core.mapping.aliases import ALIAS_PAIRS, AliasPair, apply_aliases
from core.mapping.coerce import CellValue, coerce_value
from core.mapping.derived import DERIVED_RULES, DerivationResult, DerivedRule, run_derived_rules
from core.mapping.flatten import FlatIndex, flatten_record

logger = logging.getLogger("docbuilder.mapping")

_MISSING = object()


@dataclass
class ResolvedRecord:
    """A private copy of the input record plus its augmented flat index.

    ``data`` is never the caller's object. ``index`` is the only surface used
    for the first three lookup strategies; ``data`` is walked only as the last
    resort.
    """

    data: dict[str, Any]
    index: FlatIndex
    derivations: dict[str, DerivationResult] = field(default_factory=dict)
    _lower_index: dict[str, str] | None = field(default=None, init=False, repr=False)

    def lookup(self, source_path: str) -> Any:
        """Return the raw value for ``source_path`` or None when absent.

        Order: exact key, dots replaced by underscores, case-insensitive key,
        then nested traversal of the record copy.
        """

        if source_path in self.index:
            return self.index[source_path]

        underscored = source_path.replace(".", "_")
        if underscored in self.index:
            return self.index[underscored]

        lower = self._case_insensitive_keys()
        for candidate in (source_path.lower(), underscored.lower()):
            key = lower.get(candidate)
            if key is not None:
                return self.index[key]

        value = _walk(self.data, source_path)
        if value is _MISSING or isinstance(value, Mapping):
            return None
        if isinstance(value, list):
            if any(isinstance(item, (Mapping, list)) for item in value):
                return None
            return ", ".join("" if item is None else str(item) for item in value)
        return value

    def value_for(self, source_path: str) -> CellValue:
        return coerce_value(self.lookup(source_path))

    def _case_insensitive_keys(self) -> dict[str, str]:
        if self._lower_index is None:
            lowered: dict[str, str] = {}
            for key in self.index:
                lowered.setdefault(key.lower(), key)
            self._lower_index = lowered
        return self._lower_index


def prepare_record(
    record: Mapping[str, Any],
    *,
    alias_pairs: Iterable[AliasPair] = ALIAS_PAIRS,
    derived_rules: Iterable[DerivedRule] = DERIVED_RULES,
    today: date | None = None,
) -> ResolvedRecord:
    """Copy, flatten, alias and derive; the caller's record is left untouched."""

    data = copy.deepcopy(dict(record))
    index = flatten_record(data)
    apply_aliases(index, alias_pairs)
    derivations = run_derived_rules(index, derived_rules, today=today)

    skipped = {
        name: outcome.reason
        for name, outcome in derivations.items()
        if not outcome.ok and outcome.reason != "target already present"
    }
    if skipped:
        logger.debug("derived fields skipped: %s", skipped)

    return ResolvedRecord(data=data, index=index, derivations=derivations)


def _walk(data: Any, source_path: str) -> Any:
    current = data
    for segment in source_path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit():
            position = int(segment)
            if position >= len(current):
                return _MISSING
            current = current[position]
        else:
            return _MISSING
        if current is None:
            return _MISSING
    return current
