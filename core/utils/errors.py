"""Custom exceptions for core logic."""

from __future__ import annotations

from typing import Any


class AssemblyError(Exception):
    """Base class for request outcomes that terminate document assembly."""

    error_code = "ASSEMBLY_ERROR"

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class MissingDocumentTypeError(AssemblyError):
    """Raised when the payload carries no document type tag."""

    error_code = "MISSING_DOCUMENT_TYPE"


class UnknownDocumentTypeError(AssemblyError):
    """Raised when the document type tag is not in the registry."""

    error_code = "UNKNOWN_DOCUMENT_TYPE"

    def __init__(self, document_type: str, *, supported: list[str]) -> None:
        super().__init__(
            f"No valid document type found: {document_type}",
            detail={"document_type": document_type, "supported": supported},
        )
        self.document_type = document_type


class InsufficientEntriesError(AssemblyError):
    """Raised when a repeated group has fewer records than the type requires."""

    error_code = "INSUFFICIENT_ENTRIES"

    def __init__(self, document_type: str, *, group: str, minimum: int, actual: int) -> None:
        super().__init__(
            f"{document_type} requires at least {minimum} {group}.",
            detail={
                "document_type": document_type,
                "group": group,
                "minimum": minimum,
                "actual": actual,
            },
        )
        self.document_type = document_type
        self.group = group
        self.minimum = minimum
        self.actual = actual


class MalformedPayloadError(AssemblyError):
    """Raised when the payload shape cannot be interpreted."""

    error_code = "MALFORMED_PAYLOAD"


class TemplateNotFoundError(AssemblyError):
    """Raised when the template store has no package for a template id."""

    error_code = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str) -> None:
        super().__init__(
            f"Template file not found: {template_id}",
            detail={"template_id": template_id},
        )
        self.template_id = template_id


class TemplateError(AssemblyError):
    """Raised when a template package cannot be read or rewritten."""

    error_code = "INVALID_TEMPLATE"
