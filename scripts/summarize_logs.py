#!/usr/bin/env python3
"""Summarize docbuilder JSON line logs for ops/CI usage."""

from __future__ import annotations

import argparse
import json
import math
from collections import Counter
from pathlib import Path
from typing import Any

_TEXT_FIELDS = (
    "lines_total",
    "parse_errors",
    "event_counts",
    "error_code_counts",
    "failure_stage_counts",
    "format_counts",
    "http_status_counts",
    "total_ms_p50",
    "total_ms_p95",
    "build_ms_p50",
    "build_ms_p95",
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize docbuilder structured logs.")
    parser.add_argument("files", nargs="+", help="One or more JSONL log files.")
    parser.add_argument("--json", action="store_true", help="Output JSON.")
    return parser.parse_args()


def _percentile(values: list[int], p: float) -> int | None:
    if not values:
        return None
    ordered = sorted(values)
    index = min(len(ordered) - 1, max(0, math.ceil((p / 100) * len(ordered)) - 1))
    return ordered[index]


def _extract_payload(line: str) -> Any:
    """Parse the JSON object of one line; a logging prefix before it is ignored."""

    start = line.find("{")
    if start < 0:
        raise ValueError("no JSON object in line")
    return json.loads(line[start:])


def summarize_log_files(paths: list[Path]) -> dict[str, Any]:
    event_counts: Counter[str] = Counter()
    error_code_counts: Counter[str] = Counter()
    format_counts: Counter[str] = Counter()
    failure_stage_counts: Counter[str] = Counter()
    status_counts: Counter[str] = Counter()
    total_ms_values: list[int] = []
    build_ms_values: list[int] = []
    parse_errors = 0
    lines_total = 0

    for path in paths:
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError:
            parse_errors += 1
            continue

        for line in lines:
            lines_total += 1
            raw = line.strip()
            if not raw:
                continue

            try:
                payload = _extract_payload(raw)
            except ValueError:
                parse_errors += 1
                continue

            if not isinstance(payload, dict):
                parse_errors += 1
                continue

            event = payload.get("event")
            if isinstance(event, str):
                event_counts[event] += 1

            error_code = payload.get("error_code")
            if isinstance(error_code, str):
                error_code_counts[error_code] += 1

            if event == "error" and isinstance(payload.get("failure_stage"), str):
                failure_stage_counts[payload["failure_stage"]] += 1

            if event == "fill_summary" and isinstance(payload.get("format_id"), str):
                format_counts[payload["format_id"]] += 1

            if event == "done" and "status_code" in payload:
                status_counts[str(payload["status_code"])] += 1

            total_ms = payload.get("total_ms")
            if isinstance(total_ms, int | float):
                total_ms_values.append(int(total_ms))

            build_ms = payload.get("build_ms")
            if isinstance(build_ms, int | float):
                build_ms_values.append(int(build_ms))

    return {
        "files": [str(path) for path in paths],
        "lines_total": lines_total,
        "parse_errors": parse_errors,
        "event_counts": dict(sorted(event_counts.items())),
        "error_code_counts": dict(sorted(error_code_counts.items())),
        "format_counts": dict(sorted(format_counts.items())),
        "failure_stage_counts": dict(sorted(failure_stage_counts.items())),
        "http_status_counts": dict(sorted(status_counts.items())),
        "total_ms_p50": _percentile(total_ms_values, 50),
        "total_ms_p95": _percentile(total_ms_values, 95),
        "build_ms_p50": _percentile(build_ms_values, 50),
        "build_ms_p95": _percentile(build_ms_values, 95),
    }


def main() -> None:
    args = _parse_args()
    paths = [Path(item).expanduser() for item in args.files]
    summary = summarize_log_files(paths)

    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2, sort_keys=True))
        return

    print("Docbuilder Log Summary")
    print(f"files={len(summary['files'])}")
    for key in _TEXT_FIELDS:
        print(f"{key}={summary[key]}")


if __name__ == "__main__":
    main()
