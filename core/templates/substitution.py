"""Textual ``{{KEY}}`` placeholder substitution over XML part text.

Substitution works on raw part text, not on a parsed document tree, so a
token Word has split across runs is invisible here; see
``core.templates.placeholder_parser`` for template linting.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Mapping
from typing import Protocol

_TOKEN_RE = re.compile(r"\{\{([^{}]*)\}\}")


class Substituter(Protocol):
    """Protocol for placeholder substitution strategies."""

    def substitute_with_report(
        self, text: str, mapping: Mapping[str, str]
    ) -> tuple[str, Counter[str]]:
        """Return substituted text and per-key replacement counts."""


class RegexSubstituter:
    """Replace every ``{{KEY}}`` whose KEY is mapped, in a single pass.

    Keys are regex-escaped, matched case-sensitively and verbatim. Tokens with
    no mapping are left untouched, and replacement text is never rescanned.
    """

    def substitute_with_report(
        self, text: str, mapping: Mapping[str, str]
    ) -> tuple[str, Counter[str]]:
        counts: Counter[str] = Counter()
        if not mapping or "{{" not in text:
            return text, counts

        pattern = _compile_keys(mapping)

        def _replace(match: re.Match[str]) -> str:
            key = match.group(1)
            counts[key] += 1
            return mapping[key]

        return pattern.sub(_replace, text), counts


def substitute(text: str, mapping: Mapping[str, str]) -> str:
    """Substitute mapped placeholders in ``text``."""

    substituted, _ = RegexSubstituter().substitute_with_report(text, mapping)
    return substituted


def find_placeholder_tokens(text: str) -> list[str]:
    """Return distinct ``{{...}}`` token keys in first-seen order."""

    seen: dict[str, None] = {}
    for match in _TOKEN_RE.finditer(text):
        seen.setdefault(match.group(1), None)
    return list(seen)


def _compile_keys(mapping: Mapping[str, str]) -> re.Pattern[str]:
    alternation = "|".join(re.escape(key) for key in sorted(mapping, key=len, reverse=True))
    return re.compile(r"\{\{(" + alternation + r")\}\}")
