"""Typer CLI entrypoint for docgen."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from docx import Document

from apps.cli.io import (
    OutputPaths,
    build_output_paths,
    existing_output_files,
    load_payload,
    write_assembly_output_atomic,
    write_error_report_atomic,
)
from core.documents.field_set import field_set_for
from core.documents.registry import DocumentRegistry, load_document_registry
from core.orchestrator.pipeline import assemble_document
from core.render.models import AssemblyOutput
from core.templates.placeholder_parser import lint_template
from core.templates.store import DirectoryTemplateStore
from core.usage.usage_log import JsonlUsageLog, UsageRecorder
from core.utils.errors import AssemblyError, TemplateError, TemplateNotFoundError
from core.utils.number_words import to_words

app = typer.Typer(help="Legal document generation CLI", rich_markup_mode=None)

DocumentTypesOption = Annotated[
    Path | None,
    typer.Option(
        "--document-types",
        exists=True,
        dir_okay=False,
        help="Alternative document type table (YAML).",
    ),
]


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands explicit."""


@app.command("generate")
def generate_command(
    payload: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    templates_dir: Annotated[Path, typer.Option(..., exists=True, file_okay=False)],
    out: Annotated[Path, typer.Option()] = Path("out.docx"),
    user: Annotated[str, typer.Option(help="Acting user recorded in the usage log.")] = "",
    document_types: DocumentTypesOption = None,
    usage_log: Annotated[
        Path | None,
        typer.Option("--usage-log", help="Append a usage event to this JSON-lines file."),
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite outputs when they already exist.")
    ] = False,
    no_overwrite: Annotated[
        bool, typer.Option("--no-overwrite", help="Fail when outputs already exist.")
    ] = False,
) -> None:
    """Generate one document from a payload JSON file."""

    paths = build_output_paths(out)

    if force and no_overwrite:
        typer.echo("ERROR: --force and --no-overwrite cannot be used together.")
        raise typer.Exit(code=1)

    existing = existing_output_files(paths)
    if existing and no_overwrite:
        typer.echo("ERROR: outputs already exist and --no-overwrite is enabled.")
        raise typer.Exit(code=1)
    if existing:
        names = ", ".join(path.name for path in existing)
        typer.echo(f"INFO: overwriting existing outputs: {names}")

    recorder = UsageRecorder(JsonlUsageLog(usage_log)) if usage_log is not None else None
    output: AssemblyOutput | None = None
    failure_stage = "unknown"
    exit_code = 1

    try:
        failure_stage = "load_payload"
        raw_payload = load_payload(payload)
        failure_stage = "load_document_types"
        registry = load_document_registry(document_types)
        failure_stage = "assemble"
        output = assemble_document(
            raw_payload,
            template_store=DirectoryTemplateStore(templates_dir),
            registry=registry,
            usage_recorder=recorder,
            user=user,
        )
        exit_code = 0
    except (TemplateNotFoundError, TemplateError) as exc:
        exit_code = 3
        typer.echo(f"ERROR: {exc.error_code}: {exc.message}")
        _safe_write_error_report(paths, exc.error_code, exc.message, failure_stage, exc.detail)
    except AssemblyError as exc:
        exit_code = 2
        typer.echo(f"ERROR: {exc.error_code}: {exc.message}")
        _safe_write_error_report(paths, exc.error_code, exc.message, failure_stage, exc.detail)
    except Exception as exc:  # noqa: BLE001
        exit_code = 1
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        _safe_write_error_report(paths, "INTERNAL_ERROR", str(exc), failure_stage)
    finally:
        if recorder is not None:
            recorder.shutdown(wait=True)

    if output is not None:
        try:
            write_assembly_output_atomic(paths, output)
        except OSError as exc:
            exit_code = 1
            typer.echo(f"ERROR: write output failed: {exc}")
        else:
            typer.echo(f"INFO: template={output.template_id} entries={output.entry_count}")
            if output.report.unresolved_tokens:
                tokens = ", ".join(output.report.unresolved_tokens)
                typer.echo(f"WARNING: unresolved placeholders left in output: {tokens}")
            typer.echo(f"INFO: wrote {paths.docx}")

    if exit_code == 0:
        typer.echo("INFO: success")
    raise typer.Exit(code=exit_code)


@app.command("lint")
def lint_command(
    template: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    document_type: Annotated[str | None, typer.Option()] = None,
    entries: Annotated[int | None, typer.Option(min=0)] = None,
    document_types: DocumentTypesOption = None,
) -> None:
    """Check a template for unreachable tokens and missing placeholders."""

    required: list[str] = []
    if document_type is not None:
        registry = _load_registry_or_exit(document_types)
        try:
            spec = registry.get(document_type)
            count = entries if entries is not None else spec.min_entries
            required = list(field_set_for(spec, count).required_placeholders)
        except AssemblyError as exc:
            typer.echo(f"ERROR: {exc.error_code}: {exc.message}")
            raise typer.Exit(code=2) from exc

    try:
        document = Document(str(template))
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: template is not a valid .docx: {exc}")
        raise typer.Exit(code=3) from exc

    report = lint_template(document, required)
    result = report.parse_result

    typer.echo(f"placeholders={len(result.fields)}")
    for name in result.fields:
        typer.echo(f"  {name}")
    for item in result.unsupported:
        typer.echo(f"UNSUPPORTED({item.kind}): {item.text!r} at {item.run_id}")
    for name in report.missing_placeholders:
        typer.echo(f"MISSING: {name}")

    if not report.ok:
        raise typer.Exit(code=3)
    typer.echo("INFO: template ok")


@app.command("types")
def types_command(document_types: DocumentTypesOption = None) -> None:
    """List supported document types and their template variants."""

    registry = _load_registry_or_exit(document_types)
    for spec in registry.specs:
        aliases = f" (aliases: {', '.join(spec.aliases)})" if spec.aliases else ""
        typer.echo(f"{spec.name}{aliases}")
        typer.echo(f"  group={spec.group} min_entries={spec.min_entries}")
        top_bucket = max(spec.templates)
        for bucket, template_id in sorted(spec.templates.items()):
            label = f"{bucket}+" if bucket == top_bucket else str(bucket)
            typer.echo(f"  {label} -> {template_id}")


@app.command("words")
def words_command(amount: Annotated[int, typer.Argument()]) -> None:
    """Print an amount in Indian numbering words."""

    typer.echo(to_words(amount))


def _load_registry_or_exit(path: Path | None) -> DocumentRegistry:
    try:
        return load_document_registry(path)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc


def _safe_write_error_report(
    paths: OutputPaths,
    error_code: str,
    error_message: str,
    stage: str,
    detail: dict | None = None,
) -> None:
    try:
        write_error_report_atomic(
            paths,
            error_code=error_code,
            error_message=error_message,
            stage=stage,
            detail=detail,
        )
    except OSError:
        pass


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
