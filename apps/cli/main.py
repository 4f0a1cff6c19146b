"""Typer CLI entrypoint for docbuilder."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Annotated, Any

import typer

from apps.cli.format_human import render_fill_summary
from apps.cli.io import (
    build_output_paths,
    existing_output_files,
    write_build_output_atomic,
    write_failure_json_atomic,
)
from core.formats.registry import load_format_registry
from core.mapping.resolver import prepare_record
from core.orchestrator.pipeline import BuildContext, BuildFailure, build_document
from core.storage.template_storage import LocalStorage
from core.utils.errors import ConfigurationError

app = typer.Typer(help="Document builder CLI", rich_markup_mode=None)

_EXIT_CODES = {
    "VALIDATION_ERROR": 1,
    "CONFIGURATION_ERROR": 2,
    "RENDER_ERROR": 3,
}


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep `docbuilder build` as explicit command form."""


@app.command("build")
def build_command(
    record: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    format_id: Annotated[str | None, typer.Option("--format")] = None,
    document_type: Annotated[str | None, typer.Option("--document-type")] = None,
    templates_dir: Annotated[
        Path,
        typer.Option(envvar="DOCBUILDER_TEMPLATES_DIR", file_okay=False, dir_okay=True),
    ] = Path("templates"),
    out_dir: Annotated[Path, typer.Option()] = Path("."),
    formats_path: Annotated[Path | None, typer.Option(envvar="DOCBUILDER_FORMATS_PATH")] = None,
    doctypes_path: Annotated[Path | None, typer.Option(envvar="DOCBUILDER_DOCTYPES_PATH")] = None,
    protection_secret: Annotated[
        str | None,
        typer.Option(envvar="FRASE_SECRETA_EXCEL", help="Shared secret for sheet protection."),
    ] = None,
    file_prefix: Annotated[str, typer.Option(envvar="DOCBUILDER_FILE_PREFIX")] = "SUMATE",
    no_overwrite: Annotated[
        bool,
        typer.Option("--no-overwrite", help="Fail when outputs already exist."),
    ] = False,
) -> None:
    """Build one document and write out.<ext> plus out.fill_report.json."""

    try:
        payload = _load_record(record)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    context = BuildContext.create(
        LocalStorage(templates_dir),
        formats_path=formats_path,
        doctypes_path=doctypes_path,
        file_prefix=file_prefix,
        protection_secret=protection_secret,
    )
    if format_id is None and document_type is None:
        format_id = context.formats.default_format

    _, config = context.formats.resolve(format_id or context.formats.default_format)
    paths = build_output_paths(out_dir, config.extension)
    existing = existing_output_files(paths)
    if existing and no_overwrite:
        typer.echo("ERROR: outputs already exist and --no-overwrite is enabled.")
        raise typer.Exit(code=1)
    if existing:
        names = ", ".join(path.name for path in existing)
        typer.echo(f"INFO: overwriting existing outputs: {names}")

    built = build_document(
        payload,
        context=context,
        format_id=format_id,
        document_type=document_type,
    )
    if isinstance(built, BuildFailure):
        out_dir.mkdir(parents=True, exist_ok=True)
        write_failure_json_atomic(paths, built)
        typer.echo(f"ERROR({built.stage}): {built.error_code}: {built.message}")
        raise typer.Exit(code=_EXIT_CODES.get(built.error_code, 1))

    if built.kind != config.extension:
        paths = build_output_paths(out_dir, built.kind)
    write_build_output_atomic(paths, built.content, built.report)
    typer.echo(render_fill_summary(built.report, format_id=built.format_id, file_name=built.file_name))
    typer.echo(f"INFO: content_hash={built.content_hash}")
    typer.echo(f"INFO: wrote {paths.document}")
    raise typer.Exit(code=0)


@app.command("flatten")
def flatten_command(
    record: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    today: Annotated[
        str | None,
        typer.Option(help="Reference date for derived fields (YYYY-MM-DD)."),
    ] = None,
) -> None:
    """Print the augmented flat index (aliases and derived fields applied)."""

    try:
        payload = _load_record(record)
        reference = date.fromisoformat(today) if today else None
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    if not isinstance(payload, dict):
        typer.echo("ERROR: record must be a JSON object")
        raise typer.Exit(code=1)

    resolved = prepare_record(payload, today=reference)
    typer.echo(json.dumps(resolved.index, ensure_ascii=False, sort_keys=True, indent=2, default=str))


@app.command("mapping")
def mapping_command(
    format_id: Annotated[str, typer.Option("--format")],
    templates_dir: Annotated[
        Path,
        typer.Option(envvar="DOCBUILDER_TEMPLATES_DIR", file_okay=False, dir_okay=True),
    ] = Path("templates"),
    formats_path: Annotated[Path | None, typer.Option(envvar="DOCBUILDER_FORMATS_PATH")] = None,
) -> None:
    """Print the parsed mapping rows for one format."""

    context = BuildContext.create(LocalStorage(templates_dir), formats_path=formats_path)
    try:
        rows = context.mapping_cache.get_or_load(format_id)
    except ConfigurationError as exc:
        typer.echo(f"ERROR({exc.stage}): {exc.message}")
        raise typer.Exit(code=2) from exc

    payload = [
        {
            "target_position": row.target_position,
            "placeholder_token": row.placeholder_token,
            "source_path": row.source_path,
        }
        for row in rows
    ]
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@app.command("formats")
def formats_command(
    formats_path: Annotated[Path | None, typer.Option(envvar="DOCBUILDER_FORMATS_PATH")] = None,
) -> None:
    """List known format ids with their kind and template."""

    registry = load_format_registry(formats_path)
    for format_id, config in registry.items():
        marker = "*" if format_id == registry.default_format else " "
        typer.echo(f"{marker} {format_id}\t{config.kind}\t{config.template}")


def _load_record(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"record is not valid JSON: {exc}") from exc


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
