"""Field-set resolution: template variant and required placeholders per request."""

from __future__ import annotations

from dataclasses import dataclass

from core.documents.models import DocumentRequest
from core.documents.registry import DocumentRegistry
from core.documents.specs import DocumentSpec
from core.render.invoice import TOTAL_PLACEHOLDERS


@dataclass(frozen=True)
class FieldSet:
    """Resolved template variant plus the placeholders it requires."""

    document_type: str
    template_id: str
    group: str
    entry_count: int
    required_placeholders: tuple[str, ...]


def resolve_field_set(request: DocumentRequest, registry: DocumentRegistry) -> FieldSet:
    """Resolve ``request`` against the registry.

    Raises ``UnknownDocumentTypeError`` for unregistered tags and
    ``InsufficientEntriesError`` when the group is below its minimum.
    """

    spec = registry.get(request.document_type)
    return field_set_for(spec, len(request.group(spec.group)))


def field_set_for(spec: DocumentSpec, entry_count: int) -> FieldSet:
    template_id = spec.template_for(entry_count)
    required = spec.placeholders_for(entry_count)
    if spec.totals is not None:
        required.extend(TOTAL_PLACEHOLDERS)
    return FieldSet(
        document_type=spec.name,
        template_id=template_id,
        group=spec.group,
        entry_count=entry_count,
        required_placeholders=tuple(required),
    )
