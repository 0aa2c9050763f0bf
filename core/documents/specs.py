"""Document-type contract specs loaded from the document type table."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.utils.errors import InsufficientEntriesError

INDEX_TOKEN = "{index}"


class MemberField(BaseModel):
    """One index-suffixed placeholder contributed by each group record."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    placeholder: str
    source: str
    format: Literal["text", "money"] = "text"

    @model_validator(mode="after")
    def _check_index_token(self) -> MemberField:
        if INDEX_TOKEN not in self.placeholder:
            raise ValueError(f"placeholder {self.placeholder!r} must contain {INDEX_TOKEN}")
        return self

    def placeholder_for(self, index: int) -> str:
        return self.placeholder.replace(INDEX_TOKEN, str(index))


class TotalsSpec(BaseModel):
    """Record fields summed into invoice totals."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    government_fee: str = "govtFee"
    professional_fee: str = "professionalFee"


class DocumentSpec(BaseModel):
    """Contract for one document type's template variants and field set."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    aliases: tuple[str, ...] = ()
    group: str
    min_entries: int = Field(ge=1)
    templates: dict[int, str]
    member_fields: tuple[MemberField, ...]
    row_capacity: int | None = Field(default=None, ge=1)
    row_gate: str | None = None
    totals: TotalsSpec | None = None

    @model_validator(mode="after")
    def _check_table(self) -> DocumentSpec:
        if not self.templates:
            raise ValueError(f"{self.name}: templates must not be empty")
        if min(self.templates) != self.min_entries:
            raise ValueError(
                f"{self.name}: smallest template bucket must equal min_entries "
                f"({min(self.templates)} != {self.min_entries})"
            )
        if not self.member_fields:
            raise ValueError(f"{self.name}: member_fields must not be empty")
        if self.row_gate is not None:
            sources = {item.source for item in self.member_fields}
            if self.row_gate not in sources:
                raise ValueError(f"{self.name}: row_gate {self.row_gate!r} is not a member source")
        return self

    @property
    def tags(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)

    def template_for(self, count: int) -> str:
        """Pick the template variant for a group cardinality.

        The variant is the largest bucket not above ``count``, so buckets
        ``2, 3, 4, 5`` send every count from five upward to the ``5`` variant.
        """

        if count < self.min_entries:
            raise InsufficientEntriesError(
                self.name, group=self.group, minimum=self.min_entries, actual=count
            )
        bucket = max(key for key in self.templates if key <= count)
        return self.templates[bucket]

    def expanded_indices(self, count: int) -> range:
        """Return 1-based record positions that get placeholders."""

        if self.row_capacity is not None:
            return range(1, self.row_capacity + 1)
        return range(1, count + 1)

    def placeholders_for(self, count: int) -> list[str]:
        return [
            member.placeholder_for(index)
            for index in self.expanded_indices(count)
            for member in self.member_fields
        ]
