"""Indian numbering system words for whole currency amounts."""

from __future__ import annotations

_ONES = (
    "",
    "One",
    "Two",
    "Three",
    "Four",
    "Five",
    "Six",
    "Seven",
    "Eight",
    "Nine",
    "Ten",
    "Eleven",
    "Twelve",
    "Thirteen",
    "Fourteen",
    "Fifteen",
    "Sixteen",
    "Seventeen",
    "Eighteen",
    "Nineteen",
)
_TENS = ("", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety")

_CRORE = 10_000_000
_LAKH = 100_000
_THOUSAND = 1_000


def to_words(amount: int) -> str:
    """Render an integer amount in Indian numbering words.

    ``125000`` becomes ``"One Lakh Twenty Five Thousand Only"``. Callers round
    fractional amounts before calling; paise are not supported.
    """

    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"to_words expects an int, got {type(amount).__name__}")
    if amount == 0:
        return "Zero Only"
    if amount < 0:
        return "Negative " + to_words(-amount)
    return " ".join(_grouped_words(amount)) + " Only"


def _grouped_words(amount: int) -> list[str]:
    crores, amount = divmod(amount, _CRORE)
    lakhs, amount = divmod(amount, _LAKH)
    thousands, remainder = divmod(amount, _THOUSAND)

    words: list[str] = []
    if crores:
        # Crore counts above 999 keep the lakh/thousand grouping.
        crore_words = _grouped_words(crores) if crores > 999 else _below_thousand(crores)
        words.extend(crore_words)
        words.append("Crore")
    if lakhs:
        words.extend(_below_thousand(lakhs))
        words.append("Lakh")
    if thousands:
        words.extend(_below_thousand(thousands))
        words.append("Thousand")
    if remainder:
        words.extend(_below_thousand(remainder))
    return words


def _below_thousand(value: int) -> list[str]:
    words: list[str] = []
    if value > 99:
        words.extend((_ONES[value // 100], "Hundred"))
        value %= 100
    if value > 19:
        words.append(_TENS[value // 10])
        value %= 10
    if value > 0:
        words.append(_ONES[value])
    return words
