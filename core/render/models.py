"""Assembly pipeline report models."""

from __future__ import annotations

from concurrent.futures import Future

from pydantic import BaseModel, ConfigDict, Field


class PartReport(BaseModel):
    """Replacement counts for one XML part."""

    model_config = ConfigDict(extra="forbid")

    part_name: str
    replaced_count: int
    replaced: dict[str, int] = Field(default_factory=dict)
    unresolved_tokens: list[str] = Field(default_factory=list)


class SubstitutionReport(BaseModel):
    """Aggregate substitution summary for observability."""

    model_config = ConfigDict(extra="forbid")

    parts: list[PartReport] = Field(default_factory=list)
    placeholder_count: int = 0
    replaced_count: int = 0
    unresolved_tokens: list[str] = Field(default_factory=list)
    unused_placeholders: list[str] = Field(default_factory=list)


class AssemblyOutput(BaseModel):
    """In-memory assembly output (no file paths)."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    content: bytes
    document_type: str
    template_id: str
    entry_count: int
    report: SubstitutionReport
    usage_outcome: Future | None = Field(default=None, exclude=True)
