"""Declaration patching for optimized shaders.

Optimized DXIL usually strips resource names from the metadata records, so
the records are found by shape instead of by name:

    !5 = !{i32 0, %"class.Texture2D<vector<float, 4> >"* undef, !"", i32 2, i32 0, i32 1, i32 2, i32 0, !6}
    !7 = !{i32 1, [4 x %"class.Texture2D<vector<float, 4> >"]* undef, !"", i32 0, i32 5, i32 4, ...}
    !9 = !{i32 0, %cbConstants* undef, !"", i32 0, i32 0, i32 1, i32 16, null}

Every ``, !"<name>"`` literal followed by two ``i32`` fields is a candidate.
A candidate whose record head or type does not look like a resource is
skipped. Classified records are matched against the requests by their
original (space, bind point, class) and rewritten; an empty name literal
receives the resource name.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import invariant_error, lookup_error
from ..logging import get_logger
from ..model import BindClass, ExtendedMap
from .cursor import (
    DIGITS,
    I32,
    RECORD_OPEN,
    IrText,
    is_word_char,
    read_int_field,
    replace_int_field,
)

__all__ = [
    "DeclarationStats",
    "patch_declarations",
    "classify_type_name",
]

RES_NAME_DECL = ', !"'
ALIGNMENT_LEGACY_PART = "dx.alignment.legacy."
STRUCT_PART = "struct."
CLASS_PART = "class."

_ARRAY_PREFIX_CHARS = DIGITS | frozenset(" x")

_TEXTURE_SUFFIXES = (
    "1D<",
    "1DArray<",
    "2D<",
    "2DArray<",
    "3D<",
    "2DMS<",
    "2DMSArray<",
    "Cube<",
    "CubeArray<",
)

# (type name prefix, requires a texture dimension suffix, class)
_TYPE_PREFIXES: Tuple[Tuple[str, bool, BindClass], ...] = (
    ("SamplerState", False, BindClass.SAMPLER),
    ("SamplerComparisonState", False, BindClass.SAMPLER),
    ("Texture", True, BindClass.SRV),
    ("StructuredBuffer<", False, BindClass.SRV),
    ("ByteAddressBuffer", False, BindClass.SRV),
    ("Buffer<", False, BindClass.SRV),
    ("RaytracingAccelerationStructure", False, BindClass.SRV),
    ("RWTexture", True, BindClass.UAV),
    ("RWStructuredBuffer<", False, BindClass.UAV),
    ("RWByteAddressBuffer", False, BindClass.UAV),
    ("RWBuffer<", False, BindClass.UAV),
    ("AppendStructuredBuffer<", False, BindClass.UAV),
    ("ConsumeStructuredBuffer<", False, BindClass.UAV),
)


@dataclass(slots=True)
class DeclarationStats:
    candidates: int = 0
    patched: int = 0
    inserted: int = 0


def classify_type_name(text: str, pos: int = 0) -> Optional[BindClass]:
    """Classify the unwrapped HLSL object type name starting at ``pos``."""
    for prefix, needs_suffix, bind_class in _TYPE_PREFIXES:
        if not text.startswith(prefix, pos):
            continue
        if needs_suffix and not any(
            text.startswith(s, pos + len(prefix)) for s in _TEXTURE_SUFFIXES
        ):
            continue
        return bind_class
    return None


def _read_record_head(ir: IrText, decl_pos: int) -> Optional[Tuple[int, int]]:
    """Parse ``= !{i32 <id>, [N x ]%`` before ``decl_pos``.

    Returns (record id, position of the type name after ``%``) or None when
    the enclosing record is not a resource record.
    """
    open_pos = ir.rfind(RECORD_OPEN, decl_pos, ir.line_start(decl_pos))
    if open_pos < 0:
        return None
    pos = open_pos + len(RECORD_OPEN)
    if not ir.startswith(I32, pos):
        return None
    parsed = ir.read_int(pos + len(I32))
    if parsed is None:
        return None
    record_id, pos = parsed
    if not ir.startswith(", ", pos):
        return None
    pos += 2
    # [4 x %"class.Texture2D<...>"]* undef
    if ir.char(pos) == "[":
        pos += 1
        while pos < decl_pos and ir.char(pos) in _ARRAY_PREFIX_CHARS:
            pos += 1
    if ir.char(pos) != "%":
        return None
    return record_id, pos + 1


def _classify_record(
    ir: IrText, pos: int, ext: ExtendedMap, diagnostics: bool
) -> Optional[BindClass]:
    text = ir.text
    wrapped = False
    if text.startswith('"', pos):
        pos += 1
        wrapped = True
    if text.startswith(ALIGNMENT_LEGACY_PART, pos):
        pos += len(ALIGNMENT_LEGACY_PART)
    if text.startswith(STRUCT_PART, pos):
        pos += len(STRUCT_PART)
        wrapped = True
    if text.startswith(CLASS_PART, pos):
        pos += len(CLASS_PART)
        wrapped = True

    bind_class = classify_type_name(text, pos)
    if bind_class is not None or wrapped:
        return bind_class

    # %cbConstants* undef  or  %dx.alignment.legacy.cbConstants* undef
    # Constant buffers are typed by their own name. The first request whose
    # name is followed by a non-identifier char wins, so a buffer named after
    # the prefix of another one can be misclassified.
    for entry in ext.constant_buffers():
        name = entry.name
        if not text.startswith(name, pos):
            continue
        follow = ir.char(pos + len(name))
        if is_word_char(follow):
            continue
        array_size = entry.request.array_size
        if not (
            (follow == "*" and array_size == 1)
            or (follow == "]" and array_size != 1)
        ):
            msg = (
                f"constant buffer '{name}' declaration shape does not match "
                f"its array size {array_size}"
            )
            get_logger().warning(msg)
            if diagnostics:
                raise invariant_error(msg, resource=name, field="array_size")
        return BindClass.CBV
    return None


def patch_declarations(
    ir: IrText, ext: ExtendedMap, *, diagnostics: bool = False
) -> DeclarationStats:
    logger = get_logger()
    stats = DeclarationStats()
    pos = 0
    while pos < len(ir):
        decl_pos = ir.find(RES_NAME_DECL, pos)
        if decl_pos < 0:
            break
        name_start = decl_pos + len(RES_NAME_DECL)
        pos = name_start

        name_end = name_start
        while is_word_char(ir.char(name_end)):
            name_end += 1
        if ir.char(name_end) != '"':
            continue
        res_name = ir.slice(name_start, name_end)

        # !"", i32 2, i32 0,
        #    ^
        fields_pos = name_end + 1
        pos = fields_pos
        space = read_int_field(ir, fields_pos)
        if space is None:
            continue
        bind_point = read_int_field(ir, space.end)
        if bind_point is None:
            continue

        head = _read_record_head(ir, decl_pos)
        if head is None:
            continue
        record_id, type_pos = head

        bind_class = _classify_record(ir, type_pos, ext, diagnostics)
        if bind_class is None:
            continue
        stats.candidates += 1

        entry = ext.by_declaration(space.value, bind_point.value, bind_class)
        if entry is None:
            raise lookup_error(
                f"failed to find resource {bind_class.name} at space "
                f"{space.value}, bind point {bind_point.value} in the "
                f"binding map",
                record_id=record_id,
                space=space.value,
                bind_point=bind_point.value,
            )
        if res_name and res_name != entry.name:
            msg = (
                f"record {record_id} is named '{res_name}' but matches "
                f"resource '{entry.name}'"
            )
            logger.warning(msg)
            if diagnostics:
                raise invariant_error(msg, resource=entry.name, field="name")
        entry.assign_record_id(record_id)

        pos = replace_int_field(
            ir,
            fields_pos,
            entry.request.space,
            resource=entry.name,
            field="space",
            expected=entry.space,
        )
        pos = replace_int_field(
            ir,
            pos,
            entry.request.bind_point,
            resource=entry.name,
            field="register",
            expected=entry.bind_point,
        )
        stats.patched += 1

        if not res_name:
            ir.insert(name_start, entry.name)
            pos += len(entry.name)
            stats.inserted += 1
        logger.debug(
            "%s: record %d (%s) moved to space %d, register %d",
            entry.name,
            record_id,
            bind_class.name,
            entry.request.space,
            entry.request.bind_point,
        )
    return stats
