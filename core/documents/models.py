"""Request models for document assembly."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from core.utils.errors import MalformedPayloadError, MissingDocumentTypeError

DOCUMENT_TYPE_KEY = "page"

Scalar = str | int | float | bool | None


class DocumentRequest(BaseModel):
    """One generation request split into scalar fields and repeated groups."""

    model_config = ConfigDict(extra="forbid")

    document_type: str
    fields: dict[str, Scalar] = Field(default_factory=dict)
    groups: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    @classmethod
    def from_payload(
        cls,
        payload: object,
        *,
        group_keys: Iterable[str],
        ignored_keys: Iterable[str] = (),
    ) -> DocumentRequest:
        """Split a flat wire payload into scalars and groups.

        The document type is read from ``page``; every key in ``group_keys``
        must hold a list of objects and keys in ``ignored_keys`` are dropped.
        Remaining keys are scalar fields and keep the document type key, so
        ``{{page}}`` resolves like any other field.
        """

        document_type = document_type_from_payload(payload)
        group_key_set = set(group_keys)
        ignored_key_set = set(ignored_keys) - group_key_set

        fields: dict[str, Scalar] = {}
        groups: dict[str, list[dict[str, Any]]] = {}
        for key, value in payload.items():
            key = str(key)
            if key in ignored_key_set:
                continue
            if key in group_key_set:
                groups[key] = _group_records(key, value)
                continue
            if isinstance(value, Mapping | list | tuple):
                raise MalformedPayloadError(
                    f"Field {key} must be a scalar value",
                    detail={"field": key, "type": type(value).__name__},
                )
            fields[key] = value

        return cls(document_type=document_type, fields=fields, groups=groups)

    def group(self, name: str) -> list[dict[str, Any]]:
        return self.groups.get(name, [])


def render_scalar(value: object) -> str:
    """Render a payload value as placeholder text; ``None``, NaN and infinities become empty."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


def document_type_from_payload(payload: object) -> str:
    """Read the trimmed document type tag from a raw wire payload."""

    if not isinstance(payload, Mapping):
        raise MalformedPayloadError(
            "Request payload must be a JSON object",
            detail={"type": type(payload).__name__},
        )
    raw = payload.get(DOCUMENT_TYPE_KEY)
    document_type = raw.strip() if isinstance(raw, str) else ""
    if not document_type:
        raise MissingDocumentTypeError(
            f"Missing '{DOCUMENT_TYPE_KEY}' in request body.",
            detail={"field": DOCUMENT_TYPE_KEY},
        )
    return document_type


def _group_records(key: str, value: object) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedPayloadError(
            f"Group {key} must be an array",
            detail={"group": key, "type": type(value).__name__},
        )

    records: list[dict[str, Any]] = []
    for position, record in enumerate(value, start=1):
        if not isinstance(record, Mapping):
            raise MalformedPayloadError(
                f"Group {key} entry {position} must be an object",
                detail={"group": key, "position": position},
            )
        records.append({str(name): item for name, item in record.items()})
    return records
