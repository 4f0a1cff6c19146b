"""Derived fields computed over the aliased flat index.

Every derivation returns a ``DerivationResult`` instead of raising; a failed
derivation simply leaves its target key unset.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Any

_STRIP_NUMERIC_RE = re.compile(r"[$,\s]")
_SUFFIX_RE = re.compile(r"^(?P<number>[-+]?\d*\.?\d+)(?P<suffix>k|mil)?$", re.IGNORECASE)
_DATE_SEPARATOR_RE = re.compile(r"[./]")

_THOUSAND_SUFFIXES = MappingProxyType({"k": 1000, "mil": 1000})


@dataclass(frozen=True)
class DerivationResult:
    """Outcome of one derivation: a value to store or a reason it was skipped."""

    value: Any = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def skipped(cls, reason: str) -> DerivationResult:
        return cls(value=None, reason=reason)


def parse_smart_number(value: Any) -> float | None:
    """Parse loosely formatted amounts such as ``"$12,500"`` or ``"15k"``.

    Returns None (not a number) instead of raising.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = _STRIP_NUMERIC_RE.sub("", str(value)).lower()
    if not text:
        return None
    match = _SUFFIX_RE.match(text)
    if match is None:
        return None

    number = float(match.group("number"))
    suffix = match.group("suffix")
    if suffix:
        number *= _THOUSAND_SUFFIXES[suffix.lower()]
    return number


def normalize_score(index: Mapping[str, Any], *, sources: tuple[str, ...]) -> DerivationResult:
    """Strip leading zeros from a bureau score; an all-zero score becomes ``"0"``."""

    raw = _first_present(index, sources)
    if raw is None:
        return DerivationResult.skipped("score absent")

    text = str(raw).strip()
    if not text:
        return DerivationResult.skipped("score empty")
    stripped = text.lstrip("0")
    return DerivationResult(value=stripped or "0")


def derive_percentage(
    index: Mapping[str, Any],
    *,
    numerator: str,
    denominator: str,
) -> DerivationResult:
    """Return ``numerator / denominator`` as a percent string.

    Values strictly between 0 and 1 are raised to ``"1%"``.
    """

    denominator_value = parse_smart_number(index.get(denominator))
    numerator_value = parse_smart_number(index.get(numerator))
    if denominator_value is None or numerator_value is None:
        return DerivationResult.skipped("unparseable operand")
    if denominator_value <= 0:
        return DerivationResult.skipped("denominator must be positive")
    if numerator_value < 0:
        return DerivationResult.skipped("numerator must not be negative")

    percent = round(numerator_value / denominator_value * 100, 2)
    if 0 < percent < 1:
        percent = 1.0
    return DerivationResult(value=f"{_format_percent(percent)}%")


def parse_birth_date(raw: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` or ``DD-MM-YYYY`` with ``-``, ``.`` or ``/`` separators."""

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, date):
        return raw

    text = str(raw).strip()
    # Drop a trailing time component ("1990-06-15T00:00:00", "15/06/1990 10:00").
    text = text.split("T", 1)[0].split(" ", 1)[0]
    parts = _DATE_SEPARATOR_RE.sub("-", text).split("-")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return None

    first, second, third = parts
    if len(first) == 4:
        year, month, day = int(first), int(second), int(third)
    else:
        day, month, year = int(first), int(second), int(third)

    try:
        return date(year, month, day)
    except ValueError:
        return None


def age_on(birth: date, today: date) -> int:
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def derive_age(
    index: Mapping[str, Any],
    *,
    sources: tuple[str, ...],
    today: date | None = None,
) -> DerivationResult:
    raw = _first_present(index, sources)
    if raw is None:
        return DerivationResult.skipped("birth date absent")

    birth = parse_birth_date(raw)
    if birth is None:
        return DerivationResult.skipped("birth date malformed")

    age = age_on(birth, today or date.today())
    if age < 0:
        return DerivationResult.skipped("birth date in the future")
    return DerivationResult(value=age)


@dataclass(frozen=True)
class DerivedRule:
    """One named derivation writing at most one target key."""

    name: str
    target: str
    compute: Callable[[Mapping[str, Any], date | None], DerivationResult]


DERIVED_RULES: tuple[DerivedRule, ...] = (
    DerivedRule(
        name="bureau_score",
        target="calc_bcscore",
        compute=lambda index, _today: normalize_score(
            index, sources=("bc_score", "buro.BC_score")
        ),
    ),
    DerivedRule(
        name="debt_ratio",
        target="porcentaje_endeudamiento",
        compute=lambda index, _today: derive_percentage(
            index,
            numerator="pagos_mensuales_creditos",
            denominator="cuanto_ganas",
        ),
    ),
    DerivedRule(
        name="age",
        target="edad",
        compute=lambda index, today: derive_age(
            index,
            sources=("cliente.fecha_de_nacimiento", "fecha_nacimiento", "fecha_de_nacimiento"),
            today=today,
        ),
    ),
)


def run_derived_rules(
    index: MutableMapping[str, Any],
    rules: Iterable[DerivedRule] = DERIVED_RULES,
    today: date | None = None,
) -> dict[str, DerivationResult]:
    """Apply rules in order and return the per-rule outcome keyed by rule name."""

    outcomes: dict[str, DerivationResult] = {}
    for rule in rules:
        if _has_value(index.get(rule.target)):
            outcomes[rule.name] = DerivationResult.skipped("target already present")
            continue
        try:
            outcome = rule.compute(index, today)
        except (ArithmeticError, TypeError, ValueError) as exc:
            outcome = DerivationResult.skipped(f"{type(exc).__name__}: {exc}")
        outcomes[rule.name] = outcome
        if outcome.ok:
            index[rule.target] = outcome.value
    return outcomes


def _first_present(index: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = index.get(key)
        if _has_value(value):
            return value
    return None


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _format_percent(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")
