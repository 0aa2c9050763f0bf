"""Document type registry and its YAML loader."""

from __future__ import annotations

from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from core.documents.specs import DocumentSpec
from core.utils.errors import UnknownDocumentTypeError

_DEFAULT_TABLE = Path(__file__).with_name("document_types.yaml")


class DocumentRegistry:
    """Resolve document type tags (names and aliases) to their specs."""

    def __init__(self, specs: list[DocumentSpec]) -> None:
        by_tag: dict[str, DocumentSpec] = {}
        for spec in specs:
            for tag in spec.tags:
                if tag in by_tag:
                    raise ValueError(f"Duplicate document type tag: {tag}")
                by_tag[tag] = spec
        self._specs = tuple(specs)
        self._by_tag: Mapping[str, DocumentSpec] = MappingProxyType(by_tag)

    @property
    def specs(self) -> tuple[DocumentSpec, ...]:
        return self._specs

    @property
    def group_keys(self) -> frozenset[str]:
        """Payload keys that carry repeated groups for any document type."""

        return frozenset(spec.group for spec in self._specs)

    def get(self, document_type: str) -> DocumentSpec:
        try:
            return self._by_tag[document_type]
        except KeyError as exc:
            raise UnknownDocumentTypeError(
                document_type, supported=self.supported_tags()
            ) from exc

    def supported_tags(self) -> list[str]:
        """Return every accepted tag in stable order."""

        return sorted(self._by_tag)

    def supported_document_types(self) -> list[str]:
        return [spec.name for spec in self._specs]


def load_document_registry(path: Path | None = None) -> DocumentRegistry:
    """Load and validate the document type table from YAML."""

    table_path = path or _DEFAULT_TABLE

    try:
        raw = yaml.safe_load(table_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Document type table not found: {table_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in document type table: {table_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Document type table must contain a mapping: {table_path}")

    entries = raw.get("document_types")
    if not isinstance(entries, list) or not entries:
        raise ValueError(f"Document type table has no document_types list: {table_path}")

    try:
        specs = [DocumentSpec.model_validate(entry) for entry in entries]
    except ValidationError as exc:
        raise ValueError(f"Invalid document type schema: {table_path}: {exc}") from exc

    return DocumentRegistry(specs)


@lru_cache(maxsize=8)
def cached_document_registry(path: str | None = None) -> DocumentRegistry:
    """Return a process-wide registry per table path."""

    return load_document_registry(Path(path) if path else None)
