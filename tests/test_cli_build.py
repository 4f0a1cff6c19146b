from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from docx import Document
from openpyxl import Workbook, load_workbook
from typer.testing import CliRunner

from apps.cli.main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "DOCBUILDER_TEMPLATES_DIR",
        "DOCBUILDER_FORMATS_PATH",
        "DOCBUILDER_DOCTYPES_PATH",
        "DOCBUILDER_FILE_PREFIX",
        "FRASE_SECRETA_EXCEL",
    ):
        monkeypatch.delenv(key, raising=False)


def _write_templates(root: Path) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    workbook = Workbook()
    workbook.active.title = "Ficha de identificación"
    workbook.save(str(root / "Formato_Editable_Listo.xlsx"))
    (root / "Mapfield_general.csv").write_text(
        "cell,raw_text,placeholder\nB2,{nombre},cliente.nombre\nC3,{telefono},telefono\n",
        encoding="utf-8",
    )
    document = Document()
    document.add_paragraph("Obligado: {obligado.primer_nombre}")
    document.save(str(root / "Fichadeidentificaciondelobligadosolidarioconetiquetas.docx"))
    (root / "Mapfield_obligado_solidario.csv").write_text(
        "cell,raw_text,placeholder\nobligado.primer_nombre,{obligado.primer_nombre},obligado.primer_nombre\n",
        encoding="utf-8",
    )
    return root


def _write_record(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _build_args(record: Path, templates: Path, out_dir: Path, *extra: str) -> list[str]:
    return [
        "build",
        "--record",
        str(record),
        "--templates-dir",
        str(templates),
        "--out-dir",
        str(out_dir),
        *extra,
    ]


def test_build_success_writes_document_and_fill_report(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")
    record = _write_record(tmp_path / "record.json", {"nombre": "Ana", "codigo_de_prospecto": "P1"})
    out_dir = tmp_path / "out"

    result = runner.invoke(app, _build_args(record, templates, out_dir, "--format", "general"))

    assert result.exit_code == 0, result.output
    worksheet = load_workbook(out_dir / "out.xlsx").active
    assert worksheet["B2"].value == "Ana"
    report = json.loads((out_dir / "out.fill_report.json").read_text(encoding="utf-8"))
    assert report["kind"] == "xlsx"
    assert report["summary"]["written_count"] == 1
    assert report["summary"]["blanked_count"] == 1
    assert "fill_summary:" in result.output
    assert "format=general kind=xlsx" in result.output
    assert "warning PARTIAL_MAPPING: telefono" in result.output
    assert "INFO: content_hash=" in result.output
    assert not (out_dir / "out.error.json").exists()


def test_build_defaults_to_default_format(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")
    record = _write_record(tmp_path / "record.json", [{"nombre": "Ana"}])

    result = runner.invoke(app, _build_args(record, templates, tmp_path / "out"))

    assert result.exit_code == 0, result.output
    assert (tmp_path / "out" / "out.xlsx").exists()


def test_build_document_type_writes_word_output(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")
    record = _write_record(tmp_path / "record.json", {"obligado_primer_nombre": "Luis"})
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        _build_args(record, templates, out_dir, "--document-type", "obligado_solidario"),
    )

    assert result.exit_code == 0, result.output
    document = Document(io.BytesIO((out_dir / "out.docx").read_bytes()))
    assert document.paragraphs[0].text == "Obligado: Luis"
    assert not (out_dir / "out.xlsx").exists()


def test_build_validation_failure_writes_error_json(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")
    record = _write_record(tmp_path / "record.json", {"nombre": "  "})
    out_dir = tmp_path / "out"

    result = runner.invoke(app, _build_args(record, templates, out_dir))

    assert result.exit_code == 1
    assert "ERROR(validate_input): VALIDATION_ERROR" in result.output
    error = json.loads((out_dir / "out.error.json").read_text(encoding="utf-8"))
    assert error["error_code"] == "VALIDATION_ERROR"
    assert error["stage"] == "validate_input"
    assert not (out_dir / "out.xlsx").exists()


def test_build_missing_template_exits_with_configuration_code(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")
    record = _write_record(tmp_path / "record.json", {"nombre": "Ana"})

    result = runner.invoke(app, _build_args(record, templates, tmp_path / "out", "--format", "seguimiento"))

    assert result.exit_code == 2
    assert "CONFIGURATION_ERROR" in result.output


def test_build_corrupt_template_exits_with_render_code(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")
    (templates / "Formato_Editable_Listo.xlsx").write_bytes(b"garbage")
    record = _write_record(tmp_path / "record.json", {"nombre": "Ana"})

    result = runner.invoke(app, _build_args(record, templates, tmp_path / "out"))

    assert result.exit_code == 3
    assert "ERROR(load_template): RENDER_ERROR" in result.output


def test_build_invalid_json_record(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")
    record = tmp_path / "record.json"
    record.write_text("{nope", encoding="utf-8")

    result = runner.invoke(app, _build_args(record, templates, tmp_path / "out"))

    assert result.exit_code == 1
    assert "record is not valid JSON" in result.output


def test_build_no_overwrite_refuses_existing_outputs(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")
    record = _write_record(tmp_path / "record.json", {"nombre": "Ana"})
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    (out_dir / "out.xlsx").write_bytes(b"previous")

    result = runner.invoke(app, _build_args(record, templates, out_dir, "--no-overwrite"))

    assert result.exit_code == 1
    assert "--no-overwrite" in result.output
    assert (out_dir / "out.xlsx").read_bytes() == b"previous"


def test_build_overwrite_announces_existing_outputs(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")
    record = _write_record(tmp_path / "record.json", {"nombre": "Ana"})
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    (out_dir / "out.xlsx").write_bytes(b"previous")
    (out_dir / "out.error.json").write_text("{}", encoding="utf-8")

    result = runner.invoke(app, _build_args(record, templates, out_dir))

    assert result.exit_code == 0, result.output
    assert "INFO: overwriting existing outputs: out.xlsx" in result.output
    assert not (out_dir / "out.error.json").exists()


def test_flatten_prints_augmented_index(tmp_path: Path) -> None:
    record = _write_record(
        tmp_path / "record.json",
        {"nombre": "Ana", "fecha_nacimiento": "01/01/2000", "cliente": {"rfc": "X"}},
    )

    result = runner.invoke(app, ["flatten", "--record", str(record), "--today", "2024-03-09"])

    assert result.exit_code == 0, result.output
    index = json.loads(result.output)
    assert index["cliente.nombre"] == "Ana"
    assert index["cliente.rfc"] == "X"
    assert index["edad"] == 24


def test_flatten_rejects_bad_date(tmp_path: Path) -> None:
    record = _write_record(tmp_path / "record.json", {"nombre": "Ana"})

    result = runner.invoke(app, ["flatten", "--record", str(record), "--today", "09/03/2024"])

    assert result.exit_code == 1


def test_mapping_command_prints_rows(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")

    result = runner.invoke(app, ["mapping", "--format", "obligado", "--templates-dir", str(templates)])

    assert result.exit_code == 0, result.output
    rows = json.loads(result.output)
    assert rows == [
        {
            "target_position": "obligado.primer_nombre",
            "placeholder_token": "{obligado.primer_nombre}",
            "source_path": "obligado.primer_nombre",
        }
    ]


def test_mapping_command_missing_table(tmp_path: Path) -> None:
    templates = _write_templates(tmp_path / "templates")

    result = runner.invoke(app, ["mapping", "--format", "seguimiento", "--templates-dir", str(templates)])

    assert result.exit_code == 2
    assert "ERROR(load_mapping)" in result.output


def test_formats_command_marks_default() -> None:
    result = runner.invoke(app, ["formats"])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert "* general\txlsx\tFormato_Editable_Listo.xlsx" in lines
    assert any(line.startswith("  obligado_solidario\tdocx\t") for line in lines)
