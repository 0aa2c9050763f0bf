"""Build the placeholder map for one resolved request."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from core.documents.models import DocumentRequest, render_scalar
from core.documents.specs import DocumentSpec, MemberField
from core.render.invoice import InvoiceTotals, format_money


def build_placeholder_map(
    request: DocumentRequest,
    spec: DocumentSpec,
    totals: InvoiceTotals | None = None,
) -> dict[str, str]:
    """Merge scalar fields, group expansions and invoice totals.

    Group containers never appear as keys; every placeholder declared for the
    resolved field set is present, with ``""`` for absent values.
    """

    placeholders = {key: render_scalar(value) for key, value in request.fields.items()}
    placeholders.update(expand_group(spec, request.group(spec.group)))
    if totals is not None:
        placeholders.update(totals.as_placeholders())
    return placeholders


def expand_group(spec: DocumentSpec, records: list[dict[str, Any]]) -> dict[str, str]:
    values: dict[str, str] = {}
    for index in spec.expanded_indices(len(records)):
        record = records[index - 1] if index <= len(records) else {}
        gate_open = spec.row_gate is None or render_scalar(record.get(spec.row_gate)) != ""
        for member in spec.member_fields:
            if member.source != spec.row_gate and not gate_open:
                values[member.placeholder_for(index)] = ""
                continue
            values[member.placeholder_for(index)] = _render_member(member, record)
    return values


def _render_member(member: MemberField, record: Mapping[str, Any]) -> str:
    value = record.get(member.source)
    if value is None:
        return ""
    if member.format == "money":
        return format_money(value)
    return render_scalar(value)
