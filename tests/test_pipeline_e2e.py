from __future__ import annotations

import io
import zipfile
from concurrent.futures import Future
from pathlib import Path

import pytest
from docx import Document

from core.documents.models import DocumentRequest
from core.documents.registry import load_document_registry
from core.orchestrator.pipeline import assemble_document
from core.templates.store import DirectoryTemplateStore
from core.usage.usage_log import UsageEvent, UsageRecorder
from core.utils.errors import (
    InsufficientEntriesError,
    MalformedPayloadError,
    MissingDocumentTypeError,
    TemplateError,
    TemplateNotFoundError,
    UnknownDocumentTypeError,
)

REGISTRY = load_document_registry()


class _ListUsageLog:
    def __init__(self) -> None:
        self.events: list[UsageEvent] = []

    def record(self, event: UsageEvent) -> None:
        self.events.append(event)


class _FailingUsageLog:
    def record(self, event: UsageEvent) -> None:
        raise ConnectionError("sheet unavailable")


def _write_resolution_template(path: Path, directors: int) -> None:
    document = Document()
    document.sections[0].header.paragraphs[0].text = "{{COMPANY}}"
    document.add_paragraph("Board resolution of {{COMPANY}}")
    for index in range(1, directors + 1):
        document.add_paragraph(
            f"{{{{PERSON_{index}}}}} ({{{{PERSON_{index}_D}}}}) DIN {{{{PERSON_{index}_DIN}}}}"
        )
    document.save(str(path))


def _write_invoice_template(path: Path) -> None:
    document = Document()
    document.add_paragraph("To: {{TO}}")
    table = document.add_table(rows=25, cols=3)
    for row in range(25):
        index = row + 1
        table.cell(row, 0).paragraphs[0].text = f"{{{{D{index}}}}}"
        table.cell(row, 1).paragraphs[0].text = f"{{{{G{index}}}}}"
        table.cell(row, 2).paragraphs[0].text = f"{{{{P{index}}}}}"
    document.add_paragraph("{{TOTAL_GOVT}} {{TOTAL_PROFESSIONAL}} {{GRAND_TOTAL}}")
    document.add_paragraph("Rupees {{GRAND_TOTAL_WORDS}}")
    document.save(str(path))


def _templates_dir(tmp_path: Path) -> Path:
    root = tmp_path / "templates"
    root.mkdir()
    for count in (2, 3, 4, 5):
        _write_resolution_template(root / f"GST{count}.docx", count)
    _write_invoice_template(root / "CFPL.docx")
    return root


def _document_text(content: bytes) -> str:
    document = Document(io.BytesIO(content))
    lines = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            lines.append("|".join(cell.text for cell in row.cells))
    return "\n".join(lines)


def _header_text(content: bytes) -> str:
    document = Document(io.BytesIO(content))
    return "\n".join(paragraph.text for paragraph in document.sections[0].header.paragraphs)


def _resolution_payload(directors: int) -> dict[str, object]:
    return {
        "page": "GST Resolution",
        "COMPANY": "Acme Pvt Ltd",
        "directors": [
            {"name": f"Person {index}", "designation": "Director", "din": f"000{index}"}
            for index in range(1, directors + 1)
        ],
    }


def test_resolution_with_two_directors(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))

    output = assemble_document(_resolution_payload(2), template_store=store, registry=REGISTRY)

    assert output.template_id == "GST2.docx"
    assert output.entry_count == 2
    text = _document_text(output.content)
    assert "Board resolution of Acme Pvt Ltd" in text
    assert "Person 1 (Director) DIN 0001" in text
    assert "Person 2 (Director) DIN 0002" in text
    assert "{{" not in text
    assert _header_text(output.content) == "Acme Pvt Ltd"
    assert output.report.unresolved_tokens == []


def test_resolution_with_seven_directors_uses_top_variant(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))

    output = assemble_document(_resolution_payload(7), template_store=store, registry=REGISTRY)

    assert output.template_id == "GST5.docx"
    assert "Person 5 (Director) DIN 0005" in _document_text(output.content)
    assert "PERSON_7" in output.report.unused_placeholders


def test_non_content_parts_are_byte_identical(tmp_path: Path) -> None:
    root = _templates_dir(tmp_path)
    store = DirectoryTemplateStore(root)

    output = assemble_document(_resolution_payload(2), template_store=store, registry=REGISTRY)

    with zipfile.ZipFile(root / "GST2.docx") as archive:
        before = {name: archive.read(name) for name in archive.namelist()}
    with zipfile.ZipFile(io.BytesIO(output.content)) as archive:
        after = {name: archive.read(name) for name in archive.namelist()}

    assert list(after) == list(before)
    assert after["word/styles.xml"] == before["word/styles.xml"]
    assert after["[Content_Types].xml"] == before["[Content_Types].xml"]
    assert after["word/document.xml"] != before["word/document.xml"]


def test_values_are_xml_escaped(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))
    payload = _resolution_payload(2)
    payload["COMPANY"] = "Smith & Sons <India>"

    output = assemble_document(payload, template_store=store, registry=REGISTRY)

    assert "Board resolution of Smith & Sons <India>" in _document_text(output.content)


def test_invoice_totals_and_blank_rows(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))
    payload = {
        "page": "CFPL",
        "TO": "Client Co",
        "invoiceItems": [
            {"description": "Filing", "govtFee": 100, "professionalFee": 50},
            {"description": "Stamp", "govtFee": 200, "professionalFee": 0},
        ],
    }

    output = assemble_document(payload, template_store=store, registry=REGISTRY)

    text = _document_text(output.content)
    assert output.template_id == "CFPL.docx"
    assert "To: Client Co" in text
    assert "Filing|100.00|50.00" in text
    assert "Stamp|200.00|0.00" in text
    assert "300.00 50.00 350.00" in text
    assert "Rupees Three Hundred Fifty Only" in text
    assert "{{" not in text
    assert output.report.unresolved_tokens == []


def test_usage_event_recorded_after_success(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))
    usage_log = _ListUsageLog()
    recorder = UsageRecorder(usage_log)

    try:
        output = assemble_document(
            _resolution_payload(2),
            template_store=store,
            registry=REGISTRY,
            usage_recorder=recorder,
            user="ana",
        )
        assert isinstance(output.usage_outcome, Future)
        assert output.usage_outcome.result(timeout=5) is True
    finally:
        recorder.shutdown()

    assert len(usage_log.events) == 1
    event = usage_log.events[0]
    assert event.user == "ana"
    assert event.party == "Acme Pvt Ltd"
    assert event.document_type == "GST Resolution"


def test_usage_failure_does_not_fail_assembly(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))
    recorder = UsageRecorder(_FailingUsageLog())

    try:
        output = assemble_document(
            _resolution_payload(2),
            template_store=store,
            registry=REGISTRY,
            usage_recorder=recorder,
        )
        assert output.usage_outcome is not None
        assert output.usage_outcome.result(timeout=5) is False
    finally:
        recorder.shutdown()

    assert output.content


@pytest.mark.parametrize(
    ("payload", "error_type"),
    [
        ({"COMPANY": "Acme"}, MissingDocumentTypeError),
        ({"page": "Unknown Deed", "directors": []}, UnknownDocumentTypeError),
        ({"page": "GST Resolution", "directors": [{"name": "A"}]}, InsufficientEntriesError),
    ],
)
def test_failures_skip_usage_log(
    tmp_path: Path, payload: dict[str, object], error_type: type[Exception]
) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))
    usage_log = _ListUsageLog()
    recorder = UsageRecorder(usage_log)

    try:
        with pytest.raises(error_type):
            assemble_document(
                payload, template_store=store, registry=REGISTRY, usage_recorder=recorder
            )
    finally:
        recorder.shutdown()

    assert usage_log.events == []


def test_missing_template_raises_not_found(tmp_path: Path) -> None:
    root = tmp_path / "empty"
    root.mkdir()

    with pytest.raises(TemplateNotFoundError) as exc_info:
        assemble_document(
            _resolution_payload(3),
            template_store=DirectoryTemplateStore(root),
            registry=REGISTRY,
        )

    assert exc_info.value.template_id == "GST3.docx"


def test_corrupt_template_raises_template_error(tmp_path: Path) -> None:
    root = tmp_path / "broken"
    root.mkdir()
    (root / "GST2.docx").write_bytes(b"not a zip")

    with pytest.raises(TemplateError):
        assemble_document(
            _resolution_payload(2),
            template_store=DirectoryTemplateStore(root),
            registry=REGISTRY,
        )


def test_unmapped_template_tokens_are_reported(tmp_path: Path) -> None:
    root = tmp_path / "templates"
    root.mkdir()
    document = Document()
    document.add_paragraph("{{PERSON_1}} {{PERSON_2}} {{SEAL}}")
    document.save(str(root / "GST2.docx"))

    output = assemble_document(
        _resolution_payload(2),
        template_store=DirectoryTemplateStore(root),
        registry=REGISTRY,
    )

    assert "Person 1 Person 2 {{SEAL}}" in _document_text(output.content)
    assert output.report.unresolved_tokens == ["SEAL"]


def test_document_request_input_is_accepted(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))
    request = DocumentRequest(
        document_type="GST Resolution",
        fields={"COMPANY": "Acme Pvt Ltd"},
        groups={"directors": [{"name": "A"}, {"name": "B"}]},
    )

    output = assemble_document(request, template_store=store, registry=REGISTRY)

    assert "A () DIN " in _document_text(output.content)


def test_blank_document_request_type_is_missing(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))

    with pytest.raises(MissingDocumentTypeError):
        assemble_document(
            DocumentRequest(document_type=" "), template_store=store, registry=REGISTRY
        )


def test_other_document_types_group_keys_are_ignored(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))
    payload = {**_resolution_payload(2), "invoiceItems": "x", "partners": {"name": "Z"}}

    output = assemble_document(payload, template_store=store, registry=REGISTRY)

    assert output.template_id == "GST2.docx"
    assert "Person 2 (Director) DIN 0002" in _document_text(output.content)


def test_malformed_group_of_requested_type_still_fails(tmp_path: Path) -> None:
    store = DirectoryTemplateStore(_templates_dir(tmp_path))
    payload = {"page": "GST Resolution", "directors": "x"}

    with pytest.raises(MalformedPayloadError):
        assemble_document(payload, template_store=store, registry=REGISTRY)
