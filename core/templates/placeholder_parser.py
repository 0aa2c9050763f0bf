"""Placeholder parser for template linting.

Word frequently splits typed text across runs (spell check, formatting
changes). A ``{{KEY}}`` split that way is still visible in paragraph text but
never appears verbatim in the part XML, so textual substitution skips it.
This parser walks body paragraphs, table cells, headers and footers and
marks such tokens unsupported.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator

from docx.document import Document as DocxDocument
from docx.table import Table
from docx.text.paragraph import Paragraph

from core.templates.models import LintReport, Occurrence, ParseResult, UnsupportedOccurrence

_VALID_PLACEHOLDER_RE = re.compile(r"\{\{([A-Za-z0-9_%\-]+)\}\}")
_BRACKETED_RE = re.compile(r"\{\{([^{}]*)\}\}")
_FIELD_NAME_RE = re.compile(r"[A-Za-z0-9_%\-]+")
_DELIMITER_RE = re.compile(r"\{\{|\}\}")


def parse_placeholders(document: DocxDocument) -> ParseResult:
    """Parse ``{{KEY}}`` placeholders from a python-docx document.

    Rules:
    - KEY allows ASCII letters, digits, underscore, hyphen and percent.
    - Placeholders crossing runs are marked ``cross_run``.
    - ``{{...}}`` with other characters is marked ``invalid_format``.
    - Unpaired delimiters are marked ``unclosed_token`` / ``stray_close``.
    """

    result = ParseResult()
    seen_fields: set[str] = set()

    for paragraph, run_id_pattern in _iter_target_paragraphs(document):
        full_text, run_spans = _build_run_spans(paragraph)
        if "{{" not in full_text and "}}" not in full_text:
            continue

        for match in _VALID_PLACEHOLDER_RE.finditer(full_text):
            field_name = match.group(1)
            start_run = _run_index_for_position(match.start(), run_spans)
            end_run = _run_index_for_position(match.end() - 1, run_spans)
            if start_run is None or end_run is None or start_run != end_run:
                result.unsupported.append(
                    UnsupportedOccurrence(
                        kind="cross_run",
                        text=match.group(0),
                        run_id=run_id_pattern.format(start_run) if start_run is not None else None,
                        start=match.start(),
                        end=match.end(),
                    )
                )
                continue

            run_start = run_spans[start_run][1]
            result.occurrences.append(
                Occurrence(
                    field_name=field_name,
                    run_id=run_id_pattern.format(start_run),
                    start=match.start() - run_start,
                    end=match.end() - run_start,
                )
            )
            if field_name not in seen_fields:
                result.fields.append(field_name)
                seen_fields.add(field_name)

        for match in _BRACKETED_RE.finditer(full_text):
            if _FIELD_NAME_RE.fullmatch(match.group(1)):
                continue
            start_run = _run_index_for_position(match.start(), run_spans)
            result.unsupported.append(
                UnsupportedOccurrence(
                    kind="invalid_format",
                    text=match.group(0),
                    run_id=run_id_pattern.format(start_run) if start_run is not None else None,
                    start=match.start(),
                    end=match.end(),
                )
            )

        for kind, start, end, text in _find_unbalanced_delimiters(full_text):
            run_index = _run_index_for_position(start, run_spans)
            result.unsupported.append(
                UnsupportedOccurrence(
                    kind=kind,
                    text=text,
                    run_id=run_id_pattern.format(run_index) if run_index is not None else None,
                    start=start,
                    end=end,
                )
            )

    return result


def lint_template(document: DocxDocument, required_placeholders: Iterable[str]) -> LintReport:
    """Report unsupported tokens and required placeholders absent from the template."""

    parse_result = parse_placeholders(document)
    present = set(parse_result.fields)
    missing = [name for name in required_placeholders if name not in present]
    return LintReport(parse_result=parse_result, missing_placeholders=missing)


def _iter_target_paragraphs(document: DocxDocument) -> Iterator[tuple[Paragraph, str]]:
    for paragraph_index, paragraph in enumerate(document.paragraphs):
        yield paragraph, f"p{paragraph_index}:r{{}}"
    yield from _iter_table_paragraphs(document.tables, prefix="")

    for section_index, section in enumerate(document.sections):
        parts = (
            ("header", section.header),
            ("first_header", section.first_page_header),
            ("even_header", section.even_page_header),
            ("footer", section.footer),
            ("first_footer", section.first_page_footer),
            ("even_footer", section.even_page_footer),
        )
        for label, part in parts:
            # Linked parts have no definition of their own; reading them would add one.
            if part.is_linked_to_previous:
                continue
            prefix = f"s{section_index}.{label}."
            for paragraph_index, paragraph in enumerate(part.paragraphs):
                yield paragraph, f"{prefix}p{paragraph_index}:r{{}}"
            yield from _iter_table_paragraphs(part.tables, prefix=prefix)


def _iter_table_paragraphs(
    tables: list[Table], *, prefix: str
) -> Iterator[tuple[Paragraph, str]]:
    for table_index, table in enumerate(tables):
        for row_index, row in enumerate(table.rows):
            for cell_index, cell in enumerate(row.cells):
                for paragraph_index, paragraph in enumerate(cell.paragraphs):
                    run_id_pattern = (
                        f"{prefix}t{table_index}.r{row_index}.c{cell_index}"
                        f".p{paragraph_index}:r{{}}"
                    )
                    yield paragraph, run_id_pattern


def _build_run_spans(paragraph: Paragraph) -> tuple[str, list[tuple[int, int, int]]]:
    run_spans: list[tuple[int, int, int]] = []
    chunks: list[str] = []
    cursor = 0

    for run_index, run in enumerate(paragraph.runs):
        text = run.text or ""
        start = cursor
        cursor += len(text)
        run_spans.append((run_index, start, cursor))
        chunks.append(text)

    return "".join(chunks), run_spans


def _run_index_for_position(position: int, run_spans: list[tuple[int, int, int]]) -> int | None:
    for run_index, start, end in run_spans:
        if start <= position < end:
            return run_index
    return None


def _find_unbalanced_delimiters(full_text: str) -> list[tuple[str, int, int, str]]:
    issues: list[tuple[str, int, int, str]] = []
    open_position: int | None = None

    for match in _DELIMITER_RE.finditer(full_text):
        if match.group(0) == "{{":
            if open_position is not None:
                text = full_text[open_position : match.start()]
                issues.append(("unclosed_token", open_position, match.start(), text))
            open_position = match.start()
            continue

        if open_position is None:
            issues.append(("stray_close", match.start(), match.end(), "}}"))
        else:
            open_position = None

    if open_position is not None:
        issues.append(("unclosed_token", open_position, len(full_text), full_text[open_position:]))

    return issues
