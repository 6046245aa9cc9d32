import logging

import pytest

from dxilremap.errors import FormatMismatchError, InvariantViolationError
from dxilremap.model import (
    BindClass,
    BindingRequest,
    ExtendedEntry,
    ExtendedMap,
    ResourceKind,
)
from dxilremap.patching import (
    IrText,
    build_extended_map,
    patch_declarations,
    patch_handles,
)
from dxilremap.patching.handles import count_value_uses

from ir_samples import DYNAMIC_IR, PIXEL_IR, pixel_reflection, pixel_requests

CALL = "%{n} = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 {cls}, i32 {rid}, i32 {idx}, i1 false)"


def _entry(name, kind, space, bp, new_space, new_bp, record_id, size=1):
    req = BindingRequest(name, new_space, new_bp, kind, size)
    return ExtendedEntry(
        req,
        space=space,
        bind_point=bp,
        bind_class=kind.bind_class,
        record_id=record_id,
    )


def _arr_map():
    return ExtendedMap(
        [_entry("g_Arr", ResourceKind.TEXTURE_SRV, 0, 5, 1, 10, 1, size=4)]
    )


def test_literal_index_after_declaration_pass():
    ext = build_extended_map(pixel_requests(), pixel_reflection())
    ir = IrText(PIXEL_IR)
    patch_declarations(ir, ext)
    stats = patch_handles(ir, ext)
    assert stats.literal == 4
    assert CALL.format(n=1, cls=0, rid=0, idx=3) in ir.text
    assert CALL.format(n=2, cls=0, rid=1, idx=12) in ir.text
    assert CALL.format(n=3, cls=3, rid=0, idx=1) in ir.text
    assert CALL.format(n=4, cls=2, rid=0, idx=2) in ir.text


def test_single_texture_index_moves_to_new_bind_point():
    ext = ExtendedMap(
        [_entry("g_Tex", ResourceKind.TEXTURE_SRV, 2, 0, 0, 3, 0)]
    )
    ir = IrText(CALL.format(n=1, cls=0, rid=0, idx=0) + "\n")
    patch_handles(ir, ext)
    assert ir.text.strip() == CALL.format(n=1, cls=0, rid=0, idx=3)


def test_dynamic_index_rewrites_add_literal():
    ir = IrText(DYNAMIC_IR)
    stats = patch_handles(ir, _arr_map())
    assert stats.dynamic == 1
    assert "  %22 = add i32 %base, 12\n" in ir.text
    # the call itself keeps the value reference
    assert "i32 1, i32 %22, i1 false)" in ir.text


def test_dynamic_index_with_literal_first_and_flags():
    text = (
        "  %22 = add nuw nsw i32 6, %base\n"
        "  %23 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 0, i32 1, i32 %22, i1 true)\n"
    )
    ir = IrText(text)
    patch_handles(ir, _arr_map())
    assert "  %22 = add nuw nsw i32 11, %base\n" in ir.text


def test_offsets_after_length_change_are_recomputed():
    # 7 -> 12 grows the text before the second call
    text = (
        "  %22 = add i32 %base, 7\n"
        "  %23 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 0, i32 1, i32 %22, i1 false)\n"
        "  %24 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 0, i32 1, i32 5, i1 false)\n"
    )
    ir = IrText(text)
    stats = patch_handles(ir, _arr_map())
    assert (stats.dynamic, stats.literal) == (1, 1)
    assert "%22 = add i32 %base, 12\n" in ir.text
    assert "i32 1, i32 10, i1 false)" in ir.text


def test_index_value_shared_by_two_calls_is_rewritten_once(caplog):
    text = (
        "  %22 = add i32 %base, 7\n"
        "  %23 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 0, i32 1, i32 %22, i1 false)\n"
        "  %24 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 0, i32 1, i32 %22, i1 false)\n"
    )
    ir = IrText(text)
    with caplog.at_level(logging.WARNING, logger="dxilremap"):
        stats = patch_handles(ir, _arr_map())
    assert (stats.dynamic, stats.shared) == (1, 1)
    assert "%22 = add i32 %base, 12\n" in ir.text
    assert "used 3 times" in caplog.text


def test_index_value_shared_by_ranges_with_different_targets():
    ext = ExtendedMap(
        [
            _entry("g_Arr", ResourceKind.TEXTURE_SRV, 0, 5, 1, 10, 1, size=4),
            _entry("g_Out", ResourceKind.TEXTURE_UAV, 0, 5, 1, 20, 0, size=4),
        ]
    )
    text = (
        "  %22 = add i32 %base, 7\n"
        "  %23 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 0, i32 1, i32 %22, i1 false)\n"
        "  %24 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 1, i32 0, i32 %22, i1 false)\n"
    )
    with pytest.raises(InvariantViolationError, match="12 and 22"):
        patch_handles(IrText(text), ext)


def test_multi_use_index_value_raises_in_diagnostics_mode():
    text = (
        "  %22 = add i32 %base, 7\n"
        "  %30 = mul i32 %22, 2\n"
        "  %23 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 0, i32 1, i32 %22, i1 false)\n"
    )
    with pytest.raises(InvariantViolationError):
        patch_handles(IrText(text), _arr_map(), diagnostics=True)


def test_index_outside_every_range_is_invariant_violation():
    ir = IrText(CALL.format(n=1, cls=0, rid=1, idx=9) + "\n")
    with pytest.raises(InvariantViolationError) as ei:
        patch_handles(ir, _arr_map())
    assert ei.value.context["index"] == 9


def test_class_must_match_range():
    ir = IrText(CALL.format(n=1, cls=1, rid=1, idx=5) + "\n")
    with pytest.raises(InvariantViolationError):
        patch_handles(ir, _arr_map())


def test_unbounded_range_accepts_large_index():
    ext = ExtendedMap(
        [_entry("g_All", ResourceKind.TEXTURE_SRV, 3, 0, 0, 100, 2, size=0)]
    )
    ir = IrText(CALL.format(n=1, cls=0, rid=2, idx=4000) + "\n")
    patch_handles(ir, ext)
    assert "i32 2, i32 4100, i1 false)" in ir.text


@pytest.mark.parametrize(
    "line,field",
    [
        (
            "%1 = call %dx.types.Handle @dx.op.createHandle(i8 57, i8 0, i32 1, i32 5, i1 false)",
            "opcode",
        ),
        (
            "%1 = call %dx.types.Handle @dx.op.createHandle(i32 57, i32 0, i32 1, i32 5, i1 false)",
            "Resource Class",
        ),
        (
            "%1 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 0, i32 1, i32 5)",
            "Index",
        ),
        (
            "%1 = call %dx.types.Handle @dx.op.createHandle(i32 57, i8 7, i32 1, i32 5, i1 false)",
            "Resource Class",
        ),
    ],
)
def test_malformed_calls_are_format_mismatch(line, field):
    with pytest.raises(FormatMismatchError) as ei:
        patch_handles(IrText(line + "\n"), _arr_map())
    assert ei.value.context["field"] == field


def test_dynamic_index_without_definition():
    ir = IrText(CALL.format(n=1, cls=0, rid=1, idx="%9") + "\n")
    with pytest.raises(FormatMismatchError):
        patch_handles(ir, _arr_map())


def test_count_value_uses_matches_whole_names():
    ir = IrText("%22 = add i32 %base, 7\n%220 = add i32 %22, 1\nfoo(%22)\n")
    assert count_value_uses(ir, "%22") == 3


def test_entry_class_lookup_uses_bind_class():
    ext = _arr_map()
    assert ext.by_handle(1, BindClass.SRV, 6).name == "g_Arr"
    assert ext.by_handle(1, BindClass.UAV, 6) is None
    assert ext.by_handle(0, BindClass.SRV, 6) is None
