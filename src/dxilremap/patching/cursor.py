"""Cursor helpers over the mutable IR text.

Every edit goes through :class:`IrText`; ``replace`` and ``insert`` return
the position just past the new text so callers continue from a freshly
derived offset instead of one computed before the edit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import format_error, invariant_error
from ..model import as_u32

__all__ = [
    "I32",
    "I8",
    "RECORD_OPEN",
    "NUMBER_CHARS",
    "DIGITS",
    "IrText",
    "IntField",
    "is_word_char",
    "read_int_field",
    "replace_int_field",
]

I32 = "i32 "
I8 = "i8 "
RECORD_OPEN = "= !{"
NUMBER_CHARS = frozenset("+-0123456789")
DIGITS = frozenset("0123456789")


def is_word_char(c: str) -> bool:
    return c.isascii() and (c.isalnum() or c == "_")


class IrText:
    """IR text addressed by character offset."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.edits = 0

    def __len__(self) -> int:
        return len(self.text)

    def __str__(self) -> str:
        return self.text

    def char(self, pos: int) -> str:
        """Character at ``pos`` or an empty string past either end."""
        if 0 <= pos < len(self.text):
            return self.text[pos]
        return ""

    def find(self, token: str, start: int = 0, end: Optional[int] = None) -> int:
        if end is None:
            return self.text.find(token, start)
        return self.text.find(token, start, end)

    def rfind(self, token: str, end: int, start: int = 0) -> int:
        """Last ``token`` starting in ``[start, end)``."""
        return self.text.rfind(token, start, end + len(token) - 1)

    def startswith(self, token: str, pos: int) -> bool:
        return self.text.startswith(token, pos)

    def skip(self, pos: int, chars: frozenset) -> int:
        """First position at or after ``pos`` whose char is not in ``chars``."""
        n = len(self.text)
        while pos < n and self.text[pos] in chars:
            pos += 1
        return pos

    def line_start(self, pos: int) -> int:
        return self.text.rfind("\n", 0, pos) + 1

    def slice(self, start: int, end: int) -> str:
        return self.text[start:end]

    def read_int(self, pos: int) -> Optional[Tuple[int, int]]:
        """Parse the numeric literal at ``pos``; returns (value, end)."""
        end = self.skip(pos, NUMBER_CHARS)
        try:
            return int(self.text[pos:end]), end
        except ValueError:
            return None

    def replace(self, start: int, end: int, new: str) -> int:
        self.text = self.text[:start] + new + self.text[end:]
        self.edits += 1
        return start + len(new)

    def insert(self, pos: int, new: str) -> int:
        return self.replace(pos, pos, new)


@dataclass(slots=True)
class IntField:
    """An ``, i32 N`` metadata field: value plus the span of ``N``."""

    value: int
    start: int
    end: int


def read_int_field(ir: IrText, pos: int) -> Optional[IntField]:
    """Read ``, i32 N`` at ``pos``; None when the shape does not match."""
    if not ir.startswith(", ", pos):
        return None
    pos += 2
    if not ir.startswith(I32, pos):
        return None
    start = pos + len(I32)
    parsed = ir.read_int(start)
    if parsed is None:
        return None
    value, end = parsed
    return IntField(value, start, end)


def replace_int_field(
    ir: IrText,
    pos: int,
    new_value: int,
    *,
    resource: str,
    field: str,
    expected: int,
) -> int:
    """Rewrite the ``, i32 N`` field at ``pos`` to ``new_value``.

    The field must currently hold ``expected`` (compared as u32). Returns
    the position just past the rewritten number.
    """
    if not ir.startswith(", ", pos):
        raise format_error(
            f"{field} record is not found", resource=resource, field=field
        )
    if not ir.startswith(I32, pos + 2):
        raise format_error(
            f"unexpected {field} record type", resource=resource, field=field
        )
    start = pos + 2 + len(I32)
    parsed = ir.read_int(start)
    if parsed is None:
        raise format_error(
            f"unable to parse the {field} record data",
            resource=resource,
            field=field,
        )
    prev, end = parsed
    if as_u32(prev) != as_u32(expected):
        raise invariant_error(
            f"previous {field} value {prev} does not match the expected "
            f"value {expected}",
            resource=resource,
            field=field,
            expected=expected,
            found=prev,
        )
    return ir.replace(start, end, str(new_value))
