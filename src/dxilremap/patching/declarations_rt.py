"""Declaration patching for ray-tracing libraries and unoptimized shaders.

These keep the resource name in the metadata resource record:

    !5 = !{i32 0, %"class.RWTexture2D<...>"* @"\\01?g_Color@@...", !"g_Color", i32 -1, i32 -1, i32 1, i32 2, ...}

Record layout: id, global symbol, name, space, lower bound, range size, ...
The record is located through its name literal; the id is read from the
record head and the space / lower bound fields after the name are rewritten.
"""

from __future__ import annotations

from ..errors import format_error
from ..logging import get_logger
from ..model import ExtendedMap
from .cursor import I32, RECORD_OPEN, IrText, replace_int_field

__all__ = ["patch_declarations_rt"]


def patch_declarations_rt(ir: IrText, ext: ExtendedMap) -> int:
    """Patch every named resource record; returns the number patched."""
    logger = get_logger()
    patched = 0
    for entry in ext:
        name = entry.name
        token = f'!"{name}"'
        name_pos = ir.find(token)
        if name_pos < 0:
            # not every declared resource is referenced by the library
            logger.debug("%s: no metadata record, skipped", name)
            continue

        open_pos = ir.rfind(RECORD_OPEN, name_pos, ir.line_start(name_pos))
        if open_pos < 0:
            raise format_error(
                "resource record start is not found",
                resource=name,
                field="record_id",
            )
        pos = open_pos + len(RECORD_OPEN)
        if not ir.startswith(I32, pos):
            raise format_error(
                "resource record does not start with an i32 id",
                resource=name,
                field="record_id",
            )
        parsed = ir.read_int(pos + len(I32))
        if parsed is None:
            raise format_error(
                "unable to parse the record id",
                resource=name,
                field="record_id",
            )
        record_id, _ = parsed
        entry.assign_record_id(record_id)

        # !"g_Color", i32 -1, i32 -1,
        #           ^
        pos = name_pos + len(token)
        pos = replace_int_field(
            ir,
            pos,
            entry.request.space,
            resource=name,
            field="space",
            expected=entry.space,
        )
        # !"g_Color", i32 0, i32 -1,
        #                  ^
        replace_int_field(
            ir,
            pos,
            entry.request.bind_point,
            resource=name,
            field="binding",
            expected=entry.bind_point,
        )
        patched += 1
        logger.debug(
            "%s: record %d moved to space %d, bind point %d",
            name,
            record_id,
            entry.request.space,
            entry.request.bind_point,
        )
    return patched
