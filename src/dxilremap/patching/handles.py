"""createHandle patching.

    %1 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 0, i32 1, i32 5, i1 false)

Operands: opcode, resource class (SRV=0, UAV=1, CBV=2, Sampler=3), range
(record) id, index into the range, non-uniform flag. The index is either a
literal or a value defined by an ``add`` of a dynamic base and a literal;
only the literal is rewritten, to ``new bind point + (index - old bind
point)`` of the range that contains it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..errors import format_error, invariant_error
from ..logging import get_logger
from ..model import BindClass, ExtendedMap
from .cursor import DIGITS, I8, I32, IrText

__all__ = ["HandleStats", "patch_handles", "count_value_uses"]

CALL_HANDLE = " = call %dx.types.Handle @dx.op.createHandle("
_ADD_FLAGS = ("nuw ", "nsw ")
_USE_TERMINATORS = frozenset(" ,)\n")


@dataclass(slots=True)
class HandleStats:
    literal: int = 0
    dynamic: int = 0
    shared: int = 0

    @property
    def total(self) -> int:
        return self.literal + self.dynamic + self.shared


def count_value_uses(ir: IrText, value: str) -> int:
    """Count textual occurrences of an SSA value name, definition included."""
    count = 0
    pos = ir.find(value)
    while pos >= 0:
        end = pos + len(value)
        if ir.char(end) in _USE_TERMINATORS or end == len(ir):
            count += 1
        pos = ir.find(value, end)
    return count


def _arg_end(ir: IrText, pos: int) -> Optional[int]:
    """Position of the ',' ending the operand at ``pos``."""
    n = len(ir)
    text = ir.text
    while pos < n:
        c = text[pos]
        if c == ",":
            return pos
        if c in ")\n":
            return None
        pos += 1
    return None


def _operand(ir: IrText, pos: int, type_token: str, label: str) -> Tuple[int, int]:
    """Locate ``, <type> <value>`` at ``pos``; returns the value span."""
    if not ir.startswith(", ", pos):
        raise format_error(f"{label} record is not found", field=label)
    pos += 2
    if not ir.startswith(type_token, pos):
        raise format_error(f"{label} record data is not found", field=label)
    start = pos + len(type_token)
    end = _arg_end(ir, start)
    if end is None:
        raise format_error(
            f"failed to find the end of the {label} record data", field=label
        )
    return start, end


def _literal_end(ir: IrText, start: int) -> int:
    end = ir.skip(start, DIGITS)
    if end == start:
        raise format_error(
            "dynamic index offset is expected to be an integer constant",
            field="index",
        )
    if end < len(ir) and ir.char(end) not in ",\n\r ":
        raise format_error(
            "failed to parse the dynamic index offset", field="index"
        )
    return end


def _find_add_literal(
    ir: IrText, value: str, before: int
) -> Tuple[int, int, int]:
    """Find the literal operand of ``<value> = add i32 a, b``.

    Returns (definition offset, literal start, literal end).
    """
    decl = f"{value} = add "
    def_pos = ir.rfind(decl, before)
    if def_pos < 0:
        raise format_error(
            f"failed to find the declaration of dynamic index '{value}'",
            field="index",
        )
    pos = def_pos + len(decl)
    for flag in _ADD_FLAGS:
        if ir.startswith(flag, pos):
            pos += len(flag)
    if not ir.startswith(I32, pos):
        raise format_error(
            f"dynamic index '{value}' is not an i32 add", field="index"
        )
    pos += len(I32)

    if ir.char(pos) == "%":
        # %22 = add i32 %17, 7
        comma = _arg_end(ir, pos)
        if comma is None or not ir.startswith(", ", comma):
            raise format_error(
                f"failed to find the second operand of '{value}'",
                field="index",
            )
        start = comma + 2
    else:
        # %22 = add i32 7, %17
        start = pos
    return def_pos, start, _literal_end(ir, start)


def patch_handles(
    ir: IrText, ext: ExtendedMap, *, diagnostics: bool = False
) -> HandleStats:
    logger = get_logger()
    stats = HandleStats()
    # definition offset -> (value name, original literal, rewritten literal)
    patched_defs: Dict[int, Tuple[str, int, int]] = {}

    def resolve(
        src_text: str, bind_class: BindClass, range_id: int
    ) -> Tuple[int, int]:
        if not src_text or not src_text[0].isdigit():
            raise format_error(
                f"bind point index '{src_text}' is not an integer constant",
                field="index",
            )
        src = int(src_text)
        entry = ext.by_handle(range_id, bind_class, src)
        if entry is None:
            raise invariant_error(
                f"failed to find {bind_class.name} range {range_id} "
                f"containing index {src} in the binding map",
                field="index",
                record_id=range_id,
                index=src,
            )
        dst = entry.destination(src)
        logger.debug(
            "%s: createHandle index %d -> %d", entry.name, src, dst
        )
        return src, dst

    pos = 0
    while pos < len(ir):
        call_pos = ir.find(CALL_HANDLE, pos)
        if call_pos < 0:
            break
        pos = call_pos + len(CALL_HANDLE)

        # createHandle(i32 57, i8 0, i32 1, i32 5, i1 false)
        #              ^
        if not ir.startswith(I32, pos):
            raise format_error("Opcode record is not found", field="opcode")
        opcode_end = _arg_end(ir, pos + len(I32))
        if opcode_end is None:
            raise format_error(
                "failed to find end of the Opcode record data", field="opcode"
            )

        cls_start, cls_end = _operand(ir, opcode_end, I8, "Resource Class")
        parsed = ir.read_int(cls_start)
        if parsed is None or parsed[1] != cls_end or not 0 <= parsed[0] <= 3:
            raise format_error(
                f"invalid resource class '{ir.slice(cls_start, cls_end)}'",
                field="Resource Class",
            )
        bind_class = BindClass(parsed[0])

        rid_start, rid_end = _operand(ir, cls_end, I32, "Range ID")
        parsed = ir.read_int(rid_start)
        if parsed is None or parsed[1] != rid_end:
            raise format_error(
                f"invalid range id '{ir.slice(rid_start, rid_end)}'",
                field="Range ID",
            )
        range_id = parsed[0]

        idx_start, idx_end = _operand(ir, rid_end, I32, "Index")
        index_text = ir.slice(idx_start, idx_end)
        if not index_text:
            raise format_error(
                "Bind point index must not be empty", field="index"
            )

        if not index_text.startswith("%"):
            _, dst = resolve(index_text, bind_class, range_id)
            pos = ir.replace(idx_start, idx_end, str(dst))
            stats.literal += 1
            continue

        # dynamic bind point: the add precedes the call, so the call's own
        # offsets move by the length change of the rewritten literal
        def_pos, lit_start, lit_end = _find_add_literal(
            ir, index_text, call_pos
        )
        done = patched_defs.get(def_pos)
        if done is not None and done[0] == index_text:
            # the rewritten literal must also be right for this call's range
            _, dst = resolve(str(done[1]), bind_class, range_id)
            if dst != done[2]:
                raise invariant_error(
                    f"index value '{index_text}' is shared by handles that "
                    f"need different bind points ({done[2]} and {dst})",
                    field="index",
                    value=index_text,
                    record_id=range_id,
                )
            logger.debug(
                "%s: index value already rebound by a previous call",
                index_text,
            )
            stats.shared += 1
            pos = idx_end
            continue

        src, dst = resolve(ir.slice(lit_start, lit_end), bind_class, range_id)
        before = len(ir)
        ir.replace(lit_start, lit_end, str(dst))
        delta = len(ir) - before
        patched_defs = {
            (k + delta if k > lit_start else k): v
            for k, v in patched_defs.items()
        }
        patched_defs[def_pos] = (index_text, src, dst)
        stats.dynamic += 1
        pos = idx_end + delta

        uses = count_value_uses(ir, index_text)
        if uses > 2:
            msg = (
                f"Temp variable '{index_text}' with resource bind point is "
                f"used {uses} times, patching for this variable may change "
                f"unrelated computations"
            )
            if diagnostics:
                raise invariant_error(msg, field="index", value=index_text)
            logger.warning(msg)
    return stats
