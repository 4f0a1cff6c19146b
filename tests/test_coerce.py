from __future__ import annotations

import pytest

from core.mapping.coerce import coerce_value, value_to_text


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, ""),
        ("", ""),
        ("$1,234", 1234),
        ("1,234.50", 1234.5),
        ("  42 ", 42),
        ("-7", -7),
        ("1e3", 1000),
        (12, 12),
        (3.5, 3.5),
        (float("nan"), ""),
        (float("inf"), ""),
        (True, "true"),
        (False, "false"),
        ("Calle 5", "Calle 5"),
        ("12-34", "12-34"),
        ("$", "$"),
    ],
)
def test_coerce_value(raw: object, expected: object) -> None:
    result = coerce_value(raw)

    assert result == expected
    assert type(result) is type(expected)


def test_coerce_value_loses_leading_zeros_of_numeric_text() -> None:
    assert coerce_value("00123") == 123


@pytest.mark.parametrize("raw", ["1e1000000", "9e20000000", "1e-400"])
def test_coerce_value_keeps_out_of_range_numbers_as_text(raw: str) -> None:
    assert coerce_value(raw) == raw


def test_coerce_value_accepts_large_in_range_exponent() -> None:
    assert coerce_value("1e308") == 10**308
    assert coerce_value("0e999999999") == 0


def test_coerce_value_stringifies_other_types() -> None:
    assert coerce_value(["a"]) == "['a']"


def test_value_to_text() -> None:
    assert value_to_text(None) == ""
    assert value_to_text(0) == "0"
    assert value_to_text("x") == "x"
