"""Typer CLI entrypoint for scribe."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Literal, cast

import typer

from apps.cli.format_human import render_compile_summary, render_validation_summary
from apps.cli.io import (
    build_compile_paths,
    existing_output_files,
    load_template,
    read_text,
    write_json_atomic,
    write_text_atomic,
    write_yaml_atomic,
)
from scribe.prompt.compiler import PromptCompiler
from scribe.prompt.manifest_loader import load_manifest
from scribe.prompt.models import CompileError, CompileRequest
from scribe.utils.errors import CatalogImportError
from scribe.validate.grammar_loader import load_grammar
from scribe.validate.note_validator import validate_generated_note
from scribe.vocab.catalog import VocabularyCatalog
from scribe.vocab.loader import load_catalog

app = typer.Typer(help="Epic SmartTools scribe CLI", rich_markup_mode=None)
ReportMode = Literal["human", "json", "both"]

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_COMPILE_ERROR = 2
EXIT_VALIDATION_FAILED = 4


@app.callback()
def cli_callback() -> None:
    """Keep every action as an explicit subcommand."""


@app.command("compile")
def compile_command(
    template: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    transcript: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    prior_note: Annotated[Path | None, typer.Option(exists=True, dir_okay=False)] = None,
    patient_context: Annotated[Path | None, typer.Option(exists=True, dir_okay=False)] = None,
    historical_note: Annotated[
        list[Path] | None,
        typer.Option(exists=True, dir_okay=False, help="Repeat for several notes, oldest first."),
    ] = None,
    visit_type: Annotated[str | None, typer.Option()] = None,
    no_prior_facts: Annotated[
        bool,
        typer.Option("--no-prior-facts", help="Pass the prior note through without extraction."),
    ] = False,
    catalog: Annotated[Path | None, typer.Option(exists=True, dir_okay=False)] = None,
    manifest: Annotated[Path | None, typer.Option(exists=True, dir_okay=False)] = None,
    out_dir: Annotated[Path, typer.Option()] = Path("."),
    report: Annotated[str, typer.Option()] = "human",
    no_overwrite: Annotated[
        bool, typer.Option("--no-overwrite", help="Fail when outputs already exist.")
    ] = False,
) -> None:
    """Compile a template and transcript into out.prompt.txt and out.prompt.json."""

    report_mode = _parse_report_mode(report)
    paths = build_compile_paths(out_dir)

    existing = existing_output_files(paths)
    if existing and no_overwrite:
        typer.echo("ERROR: outputs already exist and --no-overwrite is enabled.")
        raise typer.Exit(code=EXIT_ERROR)

    try:
        request = CompileRequest(
            template=load_template(template),
            transcript=read_text(transcript),
            prior_note=read_text(prior_note) if prior_note else None,
            prior_facts_enabled=not no_prior_facts,
            visit_type=visit_type,
            patient_context=read_text(patient_context) if patient_context else None,
            historical_notes=tuple(read_text(path) for path in historical_note or []),
        )
        compiler = PromptCompiler(load_catalog(catalog), load_manifest(manifest))
        result = compiler.compile(request)
    except (OSError, ValueError) as exc:
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    if isinstance(result, CompileError):
        if report_mode in {"json", "both"}:
            typer.echo(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, sort_keys=True))
        typer.echo(f"ERROR(compile): {result.code}: {result.message}")
        raise typer.Exit(code=EXIT_COMPILE_ERROR)

    if existing:
        names = ", ".join(path.name for path in existing)
        typer.echo(f"INFO: overwriting existing outputs: {names}")

    try:
        write_text_atomic(paths.prompt, result.text)
        write_json_atomic(paths.metadata, result.model_dump(mode="json", exclude={"text"}))
    except OSError as exc:
        typer.echo(f"ERROR: write output failed: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    if report_mode in {"human", "both"}:
        typer.echo(render_compile_summary(result))
    if report_mode in {"json", "both"}:
        typer.echo(
            json.dumps(
                result.model_dump(mode="json", exclude={"text", "section_breakdown"}),
                ensure_ascii=False,
                sort_keys=True,
            )
        )
    typer.echo("INFO: success")
    raise typer.Exit(code=EXIT_OK)


@app.command("validate")
def validate_command(
    note: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    signature: Annotated[
        str | None,
        typer.Option(help="Signing-clinician line; defaults to $SCRIBE_SIGNATURE_LINE."),
    ] = None,
    grammar: Annotated[Path | None, typer.Option(exists=True, dir_okay=False)] = None,
    catalog: Annotated[
        Path | None,
        typer.Option(exists=True, dir_okay=False, help="Also check SmartList selections."),
    ] = None,
    with_selections: Annotated[
        bool,
        typer.Option("--with-selections", help="Check selections against the bundled catalog."),
    ] = False,
    report: Annotated[str, typer.Option()] = "human",
    out: Annotated[Path | None, typer.Option(dir_okay=False)] = None,
) -> None:
    """Validate a generated note against the note grammar."""

    report_mode = _parse_report_mode(report)

    try:
        note_grammar = load_grammar(grammar, signature_line=signature)
        vocabulary: VocabularyCatalog | None = None
        if catalog is not None or with_selections:
            vocabulary = load_catalog(catalog)
        result = validate_generated_note(read_text(note), note_grammar, vocabulary)
    except (OSError, ValueError) as exc:
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    if out is not None:
        try:
            write_json_atomic(out, result.model_dump(mode="json"))
        except OSError as exc:
            typer.echo(f"ERROR: write report failed: {exc}")
            raise typer.Exit(code=EXIT_ERROR) from exc

    if report_mode in {"human", "both"}:
        typer.echo(render_validation_summary(result))
    if report_mode in {"json", "both"}:
        typer.echo(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, sort_keys=True))

    if not result.valid:
        typer.echo("ERROR: note validation failed")
        raise typer.Exit(code=EXIT_VALIDATION_FAILED)
    typer.echo("INFO: success")
    raise typer.Exit(code=EXIT_OK)


@app.command("catalog-export")
def catalog_export_command(
    out: Annotated[Path, typer.Option(..., dir_okay=False)],
    catalog: Annotated[Path | None, typer.Option(exists=True, dir_okay=False)] = None,
) -> None:
    """Export a catalog as CSV, one row per option."""

    try:
        vocabulary = load_catalog(catalog)
        write_text_atomic(out, vocabulary.export_tabular())
    except (OSError, ValueError) as exc:
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    typer.echo(f"INFO: exported {len(vocabulary)} SmartLists to {out}")
    raise typer.Exit(code=EXIT_OK)


@app.command("catalog-import")
def catalog_import_command(
    csv_path: Annotated[
        Path, typer.Option("--csv", exists=True, dir_okay=False, file_okay=True)
    ],
    out: Annotated[Path, typer.Option(..., dir_okay=False)],
) -> None:
    """Build a catalog YAML file from curated CSV."""

    vocabulary = VocabularyCatalog()
    try:
        count = vocabulary.import_tabular(read_text(csv_path))
    except CatalogImportError as exc:
        typer.echo(f"ERROR(import): {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc
    except OSError as exc:
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    payload = {
        "version": 1,
        "vocabularies": [
            item.model_dump(mode="json", exclude_none=True) for item in vocabulary.all_lists()
        ],
    }
    try:
        write_yaml_atomic(out, payload)
    except OSError as exc:
        typer.echo(f"ERROR: write catalog failed: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    typer.echo(f"INFO: imported {count} SmartLists into {out}")
    raise typer.Exit(code=EXIT_OK)


@app.command("render-vocab")
def render_vocab_command(
    vocab_ids: Annotated[list[str], typer.Argument(help="SmartList ids or aliases.")],
    catalog: Annotated[Path | None, typer.Option(exists=True, dir_okay=False)] = None,
) -> None:
    """Print the prompt definitions block for the given SmartLists."""

    try:
        vocabulary = load_catalog(catalog)
    except (OSError, ValueError) as exc:
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    block = vocabulary.render_many_for_prompt(vocab_ids)
    if not block:
        typer.echo("ERROR: none of the requested SmartLists exist in the catalog")
        raise typer.Exit(code=EXIT_ERROR)
    typer.echo(block, nl=False)
    raise typer.Exit(code=EXIT_OK)


def _parse_report_mode(report: str) -> ReportMode:
    normalized = report.lower().strip()
    if normalized not in {"human", "json", "both"}:
        typer.echo("ERROR: --report must be one of: human, json, both.")
        raise typer.Exit(code=EXIT_ERROR)
    return cast(ReportMode, normalized)


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
