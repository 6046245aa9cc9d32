"""Remap pipeline.

``patch_ir`` runs the text passes over a disassembly; ``remap_bindings``
wraps them with the compiler backend: probe, reflect, disassemble, patch,
assemble, then validate and sign. A failure anywhere yields a result that
holds the original bytecode and the diagnostic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar, Union

from .backend.base import CompilerBackend
from .container import probe_container
from .errors import RemapError, format_error
from .logging import get_logger
from .model import BindingRequest, ExtendedMap, ShaderKind, ShaderReflection
from .patching import (
    IrText,
    build_extended_map,
    patch_declarations,
    patch_declarations_rt,
    patch_handles,
)
from .reporting import get_reporter, task

__all__ = [
    "PassResult",
    "PatchResult",
    "RemapOptions",
    "RemapResult",
    "patch_ir",
    "remap_bindings",
    "uses_ray_tracing_pass",
]

T = TypeVar("T")

# "auto" / "ray_tracing" / "general", or an explicit shader kind
ShaderKindOverride = Union[ShaderKind, str, None]


@dataclass(slots=True)
class PassResult:
    name: str
    ok: bool = True
    error: Optional[RemapError] = None
    stats: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PatchResult:
    ir_text: str
    passes: List[PassResult] = field(default_factory=list)
    changed: bool = False

    @property
    def ok(self) -> bool:
        return all(p.ok for p in self.passes)

    @property
    def error(self) -> Optional[RemapError]:
        for p in self.passes:
            if not p.ok:
                return p.error
        return None

    def stats(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for p in self.passes:
            merged.update(p.stats)
        return merged


@dataclass(slots=True)
class RemapOptions:
    shader_kind: ShaderKindOverride = None
    # turn consistency warnings into errors
    diagnostics: bool = False


@dataclass(slots=True)
class RemapResult:
    bytecode: bytes
    ok: bool = True
    changed: bool = False
    signed: bool = False
    error: Optional[RemapError] = None
    ir_text: Optional[str] = None
    passes: List[PassResult] = field(default_factory=list)

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def diagnostic(self) -> Optional[str]:
        return self.error.diagnostic if self.error else None


def uses_ray_tracing_pass(
    reflection: ShaderReflection, shader_kind: ShaderKindOverride = None
) -> bool:
    if isinstance(shader_kind, ShaderKind):
        return shader_kind.is_ray_tracing
    if shader_kind in (None, "auto"):
        return reflection.shader_kind.is_ray_tracing
    if shader_kind == "ray_tracing":
        return True
    if shader_kind == "general":
        return False
    raise ValueError(f"Unknown shader kind override '{shader_kind}'")


def _run_pass(
    passes: List[PassResult],
    name: str,
    label: str,
    fn: Callable[[], T],
    stats_of: Callable[[T], Dict[str, Any]] = lambda _: {},
) -> Optional[T]:
    rec = PassResult(name)
    passes.append(rec)
    try:
        with task(name, label) as final:
            value = fn()
            rec.stats = stats_of(value)
            final.update(rec.stats)
    except RemapError as e:
        rec.ok = False
        rec.error = e
        get_logger().debug("%s failed: %s", label, e)
        return None
    return value


def _build_map(
    passes: List[PassResult],
    requests: Sequence[BindingRequest],
    reflection: ShaderReflection,
    diagnostics: bool,
) -> Optional[ExtendedMap]:
    return _run_pass(
        passes,
        "binding_map",
        "Build binding map",
        lambda: build_extended_map(requests, reflection, diagnostics=diagnostics),
    )


def _patch_text(
    passes: List[PassResult],
    ir_text: str,
    ext: ExtendedMap,
    ray_tracing: bool,
    diagnostics: bool,
) -> Optional[str]:
    ir = IrText(ir_text)
    if ray_tracing:
        done = _run_pass(
            passes,
            "declarations_rt",
            "Patch resource declarations (ray tracing)",
            lambda: patch_declarations_rt(ir, ext),
            lambda n: {"declarations": n},
        )
    else:
        done = _run_pass(
            passes,
            "declarations",
            "Patch resource declarations",
            lambda: patch_declarations(ir, ext, diagnostics=diagnostics),
            lambda s: {"declarations": s.patched, "inserted": s.inserted},
        )
    if done is None:
        return None
    done = _run_pass(
        passes,
        "handles",
        "Patch createHandle calls",
        lambda: patch_handles(ir, ext, diagnostics=diagnostics),
        lambda s: {"handles": s.total},
    )
    if done is None:
        return None
    return ir.text


def patch_ir(
    ir_text: str,
    requests: Sequence[BindingRequest],
    reflection: ShaderReflection,
    *,
    shader_kind: ShaderKindOverride = None,
    diagnostics: bool = False,
) -> PatchResult:
    """Rebind ``requests`` in the disassembly text.

    Stops at the first failing pass; ``ir_text`` of a failed result is the
    unmodified input.
    """
    ray_tracing = uses_ray_tracing_pass(reflection, shader_kind)
    result = PatchResult(ir_text)
    ext = _build_map(result.passes, requests, reflection, diagnostics)
    if ext is None:
        return result
    if not ext.needs_remap:
        get_logger().debug("Bindings already match the requested layout")
        return result

    patched = _patch_text(result.passes, ir_text, ext, ray_tracing, diagnostics)
    if patched is not None:
        result.ir_text = patched
        result.changed = patched != ir_text
    stats = result.stats()
    get_reporter().status(
        "patch summary: ok={} declarations={} handles={} inserted={}".format(
            result.ok,
            stats.get("declarations", 0),
            stats.get("handles", 0),
            stats.get("inserted", 0),
        )
    )
    return result


def remap_bindings(
    bytecode: bytes,
    requests: Sequence[BindingRequest],
    backend: CompilerBackend,
    options: Optional[RemapOptions] = None,
) -> RemapResult:
    options = options or RemapOptions()
    logger = get_logger()
    result = RemapResult(bytecode)

    def fail(error: RemapError) -> RemapResult:
        result.bytecode = bytecode
        result.ok = False
        result.changed = False
        result.signed = False
        result.error = error
        return result

    def step(name: str, label: str, fn: Callable[[], T]) -> Optional[T]:
        value = _run_pass(result.passes, name, label, fn)
        if value is None:
            fail(result.passes[-1].error)  # type: ignore[arg-type]
        return value

    def probe() -> bool:
        if not probe_container(bytecode):
            raise format_error("input is not a DXIL container")
        return True

    if step("probe", "Probe container", probe) is None:
        return result
    reflection = step("reflect", "Reflect resources", lambda: backend.reflect(bytecode))
    if reflection is None:
        return result

    ext = _build_map(result.passes, requests, reflection, options.diagnostics)
    if ext is None:
        return fail(result.passes[-1].error)  # type: ignore[arg-type]
    if not ext.needs_remap:
        logger.info("Bindings already match the requested layout")
        return result

    ir_text = step("disassemble", "Disassemble", lambda: backend.disassemble(bytecode))
    if ir_text is None:
        return result
    ray_tracing = uses_ray_tracing_pass(reflection, options.shader_kind)
    patched = _patch_text(
        result.passes, ir_text, ext, ray_tracing, options.diagnostics
    )
    if patched is None:
        return fail(result.passes[-1].error)  # type: ignore[arg-type]

    out = step("assemble", "Assemble", lambda: backend.assemble(patched))
    if out is None:
        return result
    if backend.requires_signing:
        out = step("validate", "Validate and sign", lambda: backend.validate(out))
        if out is None:
            return result
        result.signed = True

    result.bytecode = out
    result.changed = True
    result.ir_text = patched
    stats: Dict[str, Any] = {}
    for p in result.passes:
        stats.update(p.stats)
    get_reporter().status(
        "remap summary: signed={} declarations={} handles={} bytes={}".format(
            result.signed,
            stats.get("declarations", 0),
            stats.get("handles", 0),
            len(out),
        )
    )
    return result
