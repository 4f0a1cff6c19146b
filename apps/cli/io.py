"""CLI I/O helpers for atomic output writing."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.orchestrator.pipeline import BuildFailure
from core.render.models import FillReport


@dataclass(frozen=True)
class OutputPaths:
    """Fixed output artifact paths for a single build."""

    document: Path
    fill_report: Path
    error: Path


def build_output_paths(out_dir: Path, extension: str) -> OutputPaths:
    """Build fixed output file paths under out_dir."""

    return OutputPaths(
        document=out_dir / f"out.{extension}",
        fill_report=out_dir / "out.fill_report.json",
        error=out_dir / "out.error.json",
    )


def existing_output_files(paths: OutputPaths) -> list[Path]:
    return [path for path in (paths.document, paths.fill_report) if path.exists()]


def write_build_output_atomic(paths: OutputPaths, content: bytes, report: FillReport) -> None:
    """Write the document and its fill report; a stale error file is removed."""

    paths.document.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_bytes(paths.document, content)
    write_json_atomic(paths.fill_report, report.model_dump(mode="json"))
    paths.error.unlink(missing_ok=True)


def write_failure_json_atomic(paths: OutputPaths, failure: BuildFailure) -> None:
    paths.error.parent.mkdir(parents=True, exist_ok=True)
    write_json_atomic(paths.error, failure.to_dict())


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    tmp_path.replace(path)


def _atomic_write_bytes(path: Path, content: bytes) -> None:
    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    tmp_path = Path(raw_tmp_path)

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise
