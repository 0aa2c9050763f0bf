"""Orchestration pipeline: payload -> field set -> substituted package."""

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Mapping
from typing import Any
from xml.sax.saxutils import escape

from core.documents.field_set import resolve_field_set
from core.documents.models import DocumentRequest, document_type_from_payload
from core.documents.registry import DocumentRegistry, cached_document_registry
from core.render.invoice import InvoiceTotals, compute_invoice_totals
from core.render.models import AssemblyOutput, PartReport, SubstitutionReport
from core.render.placeholder_map import build_placeholder_map
from core.templates.package import TemplatePackage
from core.templates.store import TemplateStore
from core.templates.substitution import RegexSubstituter, Substituter, find_placeholder_tokens
from core.usage.usage_log import UsageEvent, UsageRecorder, party_from_payload
from core.utils.errors import MissingDocumentTypeError

logger = logging.getLogger("docgen.pipeline")


def assemble_document(
    payload: Mapping[str, Any] | DocumentRequest,
    *,
    template_store: TemplateStore,
    registry: DocumentRegistry | None = None,
    usage_recorder: UsageRecorder | None = None,
    user: str | None = None,
    substituter: Substituter | None = None,
) -> AssemblyOutput:
    """Execute resolve -> load -> totals -> substitute -> serialize -> log.

    Every failure before serialization raises an ``AssemblyError`` subclass
    and short-circuits the remaining stages, including the usage log.
    """

    registry = registry or cached_document_registry()
    substituter = substituter or RegexSubstituter()

    if isinstance(payload, DocumentRequest):
        request = payload
        if not request.document_type.strip():
            raise MissingDocumentTypeError("Missing document type.")
    else:
        # Group keys belonging to other document types are dropped unvalidated.
        spec = registry.get(document_type_from_payload(payload))
        request = DocumentRequest.from_payload(
            payload,
            group_keys=(spec.group,),
            ignored_keys=registry.group_keys - {spec.group},
        )

    field_set = resolve_field_set(request, registry)
    spec = registry.get(request.document_type)

    package = TemplatePackage.from_bytes(template_store.load(field_set.template_id))

    totals: InvoiceTotals | None = None
    if spec.totals is not None:
        totals = compute_invoice_totals(
            request.group(spec.group),
            government_fee_key=spec.totals.government_fee,
            professional_fee_key=spec.totals.professional_fee,
        )

    placeholders = build_placeholder_map(request, spec, totals)
    xml_values = {key: escape(value) for key, value in placeholders.items()}

    report = _substitute_package(package, xml_values, substituter)
    content = package.to_bytes()

    _log_event(
        logging.INFO,
        "assembled",
        document_type=field_set.document_type,
        template_id=field_set.template_id,
        entry_count=field_set.entry_count,
        replaced_count=report.replaced_count,
    )
    if report.unresolved_tokens:
        _log_event(
            logging.WARNING,
            "unresolved_tokens",
            template_id=field_set.template_id,
            tokens=report.unresolved_tokens,
        )

    usage_outcome = None
    if usage_recorder is not None:
        event = UsageEvent.now(
            user=user,
            party=party_from_payload(request.fields),
            document_type=request.document_type,
        )
        usage_outcome = usage_recorder.submit(event)

    return AssemblyOutput(
        content=content,
        document_type=field_set.document_type,
        template_id=field_set.template_id,
        entry_count=field_set.entry_count,
        report=report,
        usage_outcome=usage_outcome,
    )


def _substitute_package(
    package: TemplatePackage,
    mapping: Mapping[str, str],
    substituter: Substituter,
) -> SubstitutionReport:
    parts: list[PartReport] = []
    used: Counter[str] = Counter()
    unresolved: dict[str, None] = {}

    for part_name, xml_text in list(package.iter_content_parts()):
        substituted, counts = substituter.substitute_with_report(xml_text, mapping)
        if counts:
            package.replace_part(part_name, substituted)
        used.update(counts)
        remaining = find_placeholder_tokens(substituted)
        for token in remaining:
            unresolved.setdefault(token, None)
        parts.append(
            PartReport(
                part_name=part_name,
                replaced_count=sum(counts.values()),
                replaced=dict(sorted(counts.items())),
                unresolved_tokens=remaining,
            )
        )

    return SubstitutionReport(
        parts=parts,
        placeholder_count=len(mapping),
        replaced_count=sum(used.values()),
        unresolved_tokens=list(unresolved),
        unused_placeholders=sorted(set(mapping) - set(used)),
    )


def _log_event(level: int, event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":")))
