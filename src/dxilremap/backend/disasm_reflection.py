"""Reflection read back from a dxc disassembly listing.

``dxc -dumpbin`` prints a resource table in the comment header:

    ; Resource Bindings:
    ;
    ; Name                                 Type  Format         Dim      ID      HLSL Bind  Count
    ; ------------------------------ ---------- ------- ----------- ------- -------------- ------
    ; cbConstants                       cbuffer      NA          NA     CB0            cb0     1
    ; g_Tex                             texture     f32          2d      T0      t0,space2     1
    ;

and the shader kind lives in the ``!dx.shaderModel`` named metadata.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from ..errors import format_error
from ..model import (
    UNBOUNDED,
    BindClass,
    ReflectionEntry,
    ShaderKind,
    ShaderReflection,
)

__all__ = ["parse_reflection", "parse_resource_table", "parse_shader_model"]

TABLE_HEADER = "; Resource Bindings:"

_TYPE_CLASSES = {
    "cbuffer": BindClass.CBV,
    "sampler": BindClass.SAMPLER,
    "texture": BindClass.SRV,
    "tbuffer": BindClass.SRV,
    "UAV": BindClass.UAV,
}

_BIND_RE = re.compile(r"^(cb|[tsu])(\d+)(?:,space(\d+))?$")
_SM_REF_RE = re.compile(r"^!dx\.shaderModel = !\{!(\d+)\}", re.MULTILINE)
_SM_RE_FMT = r'^!{id} = !\{{!"(\w+)", i32 (\d+), i32 (\d+)\}}'


def _parse_row(line: str) -> ReflectionEntry:
    tokens = line.lstrip(";").split()
    # wide binds run into the count column: "t0,space3unbounded"
    if tokens and tokens[-1] != "unbounded" and tokens[-1].endswith("unbounded"):
        tokens[-1:] = [tokens[-1][: -len("unbounded")], "unbounded"]
    if len(tokens) < 4:
        raise format_error(f"malformed resource binding row: {line.strip()}")
    name, res_type, bind, count = tokens[0], tokens[1], tokens[-2], tokens[-1]
    bind_class = _TYPE_CLASSES.get(res_type)
    if bind_class is None:
        raise format_error(
            f"unknown resource type '{res_type}' for '{name}'", field="type"
        )
    m = _BIND_RE.match(bind)
    if m is None:
        raise format_error(
            f"malformed HLSL bind '{bind}' for '{name}'", field="bind"
        )
    bind_point = int(m.group(2))
    space = int(m.group(3)) if m.group(3) else 0
    if count == "unbounded":
        bind_count = UNBOUNDED if bind_class == BindClass.CBV else 0
    else:
        try:
            bind_count = int(count)
        except ValueError:
            raise format_error(
                f"malformed bind count '{count}' for '{name}'", field="count"
            ) from None
    return ReflectionEntry(name, space, bind_point, bind_class, bind_count)


def parse_resource_table(ir_text: str) -> List[ReflectionEntry]:
    lines = ir_text.splitlines()
    try:
        start = next(
            i for i, ln in enumerate(lines) if ln.strip() == TABLE_HEADER
        )
    except StopIteration:
        return []

    entries: List[ReflectionEntry] = []
    in_rows = False
    for line in lines[start + 1 :]:
        body = line.strip()
        if not body.startswith(";"):
            break
        content = body[1:].strip()
        if not in_rows:
            if content.startswith("---"):
                in_rows = True
            continue
        if not content:
            break
        entries.append(_parse_row(body))
    return entries


def parse_shader_model(ir_text: str) -> Optional[Tuple[str, int, int]]:
    """Return (profile prefix, major, minor) or None."""
    ref = _SM_REF_RE.search(ir_text)
    if ref is None:
        return None
    m = re.search(_SM_RE_FMT.format(id=ref.group(1)), ir_text, re.MULTILINE)
    if m is None:
        return None
    return m.group(1), int(m.group(2)), int(m.group(3))


def parse_reflection(ir_text: str) -> ShaderReflection:
    sm = parse_shader_model(ir_text)
    if sm is None:
        raise format_error("shader model metadata is not found")
    prefix, major, minor = sm
    try:
        kind = ShaderKind.from_profile(prefix)
    except ValueError as e:
        raise format_error(str(e), field="shader_model") from None
    return ShaderReflection(
        shader_kind=kind,
        resources=parse_resource_table(ir_text),
        shader_model=(major, minor),
    )
