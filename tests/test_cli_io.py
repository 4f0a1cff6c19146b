from __future__ import annotations

import json
from pathlib import Path

import pytest

from apps.cli.io import (
    build_output_paths,
    existing_output_files,
    write_build_output_atomic,
    write_failure_json_atomic,
)
from core.orchestrator.pipeline import BuildFailure
from core.render.models import FillReport


def test_build_output_paths_follow_extension(tmp_path: Path) -> None:
    paths = build_output_paths(tmp_path, "docx")

    assert paths.document == tmp_path / "out.docx"
    assert paths.fill_report == tmp_path / "out.fill_report.json"
    assert paths.error == tmp_path / "out.error.json"
    assert existing_output_files(paths) == []


def test_write_build_output_atomic_leaves_no_tmp_files(tmp_path: Path) -> None:
    paths = build_output_paths(tmp_path / "nested", "xlsx")
    paths.document.parent.mkdir(parents=True)
    paths.error.write_text("{}", encoding="utf-8")

    write_build_output_atomic(paths, b"content", FillReport(kind="xlsx", target="Hoja1"))

    assert paths.document.read_bytes() == b"content"
    report = json.loads(paths.fill_report.read_text(encoding="utf-8"))
    assert report["target"] == "Hoja1"
    assert not paths.error.exists()
    assert list(paths.document.parent.glob("*.tmp")) == []
    assert existing_output_files(paths) == [paths.document, paths.fill_report]


def test_write_build_output_atomic_cleans_tmp_on_failure(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    paths = build_output_paths(tmp_path, "xlsx")

    def fail_replace(self: Path, target: Path) -> Path:
        raise OSError("disk full")

    monkeypatch.setattr(Path, "replace", fail_replace)

    with pytest.raises(OSError, match="disk full"):
        write_build_output_atomic(paths, b"content", FillReport(kind="xlsx"))

    assert list(tmp_path.glob("out.xlsx.*.tmp")) == []
    assert not paths.document.exists()


def test_write_failure_json_atomic(tmp_path: Path) -> None:
    paths = build_output_paths(tmp_path / "out", "xlsx")
    failure = BuildFailure(
        error_code="CONFIGURATION_ERROR",
        message="template missing",
        stage="load_template",
        format_id="general",
    )

    write_failure_json_atomic(paths, failure)

    assert json.loads(paths.error.read_text(encoding="utf-8")) == {
        "error_code": "CONFIGURATION_ERROR",
        "message": "template missing",
        "stage": "load_template",
        "format_id": "general",
        "document_type": None,
    }
