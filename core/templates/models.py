"""Data models for template linting."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Occurrence:
    """A placeholder contained in a single run, substitutable as text."""

    field_name: str
    run_id: str
    start: int
    end: int


@dataclass(frozen=True)
class UnsupportedOccurrence:
    """A placeholder-like token that textual substitution cannot reach."""

    kind: str
    text: str
    run_id: str | None
    start: int | None
    end: int | None


@dataclass
class ParseResult:
    """Placeholder parsing output."""

    fields: list[str] = field(default_factory=list)
    occurrences: list[Occurrence] = field(default_factory=list)
    unsupported: list[UnsupportedOccurrence] = field(default_factory=list)


@dataclass
class LintReport:
    """Template coverage of one resolved field set."""

    parse_result: ParseResult
    missing_placeholders: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.parse_result.unsupported and not self.missing_placeholders
