"""Typed data model for resource binding remapping.

Requests describe where the caller wants each resource bound, reflection
entries describe where the compiler put it, and extended entries join both
with the record id discovered while patching the IR.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .errors import invariant_error

U32_MASK = 0xFFFFFFFF
# Bind count sentinel: "unbounded array".
UNBOUNDED = 0xFFFFFFFF

__all__ = [
    "U32_MASK",
    "UNBOUNDED",
    "BindClass",
    "ResourceKind",
    "ShaderKind",
    "BindingRequest",
    "ReflectionEntry",
    "ShaderReflection",
    "ExtendedEntry",
    "ExtendedMap",
    "as_u32",
]


def as_u32(value: int) -> int:
    return value & U32_MASK


class BindClass(IntEnum):
    """Coarse resource class, numbered like the createHandle operand."""

    SRV = 0
    UAV = 1
    CBV = 2
    SAMPLER = 3


class ResourceKind(Enum):
    CONSTANT_BUFFER = "constant_buffer"
    TEXTURE_SRV = "texture_srv"
    BUFFER_SRV = "buffer_srv"
    TEXTURE_UAV = "texture_uav"
    BUFFER_UAV = "buffer_uav"
    SAMPLER = "sampler"
    INPUT_ATTACHMENT = "input_attachment"
    ACCEL_STRUCT = "accel_struct"

    @property
    def bind_class(self) -> BindClass:
        return _KIND_TO_CLASS[self]

    @classmethod
    def parse(cls, token: str) -> "ResourceKind":
        key = token.strip().lower().replace("-", "_")
        key = _KIND_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown resource kind '{token}'") from None


_KIND_TO_CLASS: Dict[ResourceKind, BindClass] = {
    ResourceKind.CONSTANT_BUFFER: BindClass.CBV,
    ResourceKind.TEXTURE_SRV: BindClass.SRV,
    ResourceKind.BUFFER_SRV: BindClass.SRV,
    ResourceKind.TEXTURE_UAV: BindClass.UAV,
    ResourceKind.BUFFER_UAV: BindClass.UAV,
    ResourceKind.SAMPLER: BindClass.SAMPLER,
    ResourceKind.INPUT_ATTACHMENT: BindClass.SRV,
    ResourceKind.ACCEL_STRUCT: BindClass.SRV,
}

_KIND_ALIASES = {
    "cbv": "constant_buffer",
    "cbuffer": "constant_buffer",
    "texture": "texture_srv",
    "buffer": "buffer_srv",
    "rwtexture": "texture_uav",
    "rwbuffer": "buffer_uav",
    "accel": "accel_struct",
    "acceleration_structure": "accel_struct",
}


class ShaderKind(Enum):
    PIXEL = "pixel"
    VERTEX = "vertex"
    GEOMETRY = "geometry"
    HULL = "hull"
    DOMAIN = "domain"
    COMPUTE = "compute"
    RAY_GEN = "ray_gen"
    RAY_INTERSECTION = "ray_intersection"
    RAY_ANY_HIT = "ray_any_hit"
    RAY_CLOSEST_HIT = "ray_closest_hit"
    RAY_MISS = "ray_miss"
    CALLABLE = "callable"
    MESH = "mesh"
    AMPLIFICATION = "amplification"
    LIBRARY = "library"

    @property
    def is_ray_tracing(self) -> bool:
        return self in _RAY_TRACING_KINDS

    @classmethod
    def from_profile(cls, prefix: str) -> "ShaderKind":
        """Decode a profile prefix such as ``ps`` or ``lib``."""
        try:
            return _PROFILE_PREFIXES[prefix.lower()]
        except KeyError:
            raise ValueError(f"Unknown shader profile '{prefix}'") from None


_RAY_TRACING_KINDS = frozenset(
    {
        ShaderKind.RAY_GEN,
        ShaderKind.RAY_INTERSECTION,
        ShaderKind.RAY_ANY_HIT,
        ShaderKind.RAY_CLOSEST_HIT,
        ShaderKind.RAY_MISS,
        ShaderKind.CALLABLE,
        ShaderKind.LIBRARY,
    }
)

_PROFILE_PREFIXES = {
    "ps": ShaderKind.PIXEL,
    "vs": ShaderKind.VERTEX,
    "gs": ShaderKind.GEOMETRY,
    "hs": ShaderKind.HULL,
    "ds": ShaderKind.DOMAIN,
    "cs": ShaderKind.COMPUTE,
    "ms": ShaderKind.MESH,
    "as": ShaderKind.AMPLIFICATION,
    "lib": ShaderKind.LIBRARY,
}


@dataclass(frozen=True, slots=True)
class BindingRequest:
    name: str
    space: int
    bind_point: int
    kind: ResourceKind
    # 0 or UNBOUNDED: unbounded array
    array_size: int = 1

    @property
    def is_unbounded(self) -> bool:
        return self.array_size in (0, UNBOUNDED)


@dataclass(frozen=True, slots=True)
class ReflectionEntry:
    name: str
    space: int
    bind_point: int
    bind_class: BindClass
    bind_count: int = 1


@dataclass(slots=True)
class ShaderReflection:
    shader_kind: ShaderKind
    resources: List[ReflectionEntry] = field(default_factory=list)
    shader_model: Optional[Tuple[int, int]] = None

    def find(self, name: str) -> Optional[ReflectionEntry]:
        for res in self.resources:
            if res.name == name:
                return res
        return None


@dataclass(eq=False, slots=True)
class ExtendedEntry:
    """A request joined with its reflected (original) binding."""

    request: BindingRequest
    space: int
    bind_point: int
    bind_class: BindClass
    record_id: Optional[int] = None

    @property
    def name(self) -> str:
        return self.request.name

    def assign_record_id(self, record_id: int) -> None:
        if self.record_id is not None and self.record_id != record_id:
            raise invariant_error(
                f"record id {record_id} conflicts with previously "
                f"discovered id {self.record_id}",
                resource=self.name,
                field="record_id",
            )
        self.record_id = record_id

    def contains(self, index: int) -> bool:
        if index < self.bind_point:
            return False
        if self.request.is_unbounded:
            return True
        return index < self.bind_point + self.request.array_size

    def destination(self, index: int) -> int:
        return self.request.bind_point + (index - self.bind_point)

    @property
    def needs_remap(self) -> bool:
        return (
            as_u32(self.request.space) != as_u32(self.space)
            or as_u32(self.request.bind_point) != as_u32(self.bind_point)
        )


class ExtendedMap:
    """Per-call list of extended entries, keyed by request identity."""

    def __init__(self, entries: Sequence[ExtendedEntry] = ()) -> None:
        self._entries: List[ExtendedEntry] = list(entries)

    def add(self, entry: ExtendedEntry) -> None:
        self._entries.append(entry)

    def __iter__(self) -> Iterator[ExtendedEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def entry_for(self, request: BindingRequest) -> Optional[ExtendedEntry]:
        for e in self._entries:
            if e.request is request:
                return e
        return None

    def by_declaration(
        self, space: int, bind_point: int, bind_class: BindClass
    ) -> Optional[ExtendedEntry]:
        for e in self._entries:
            if (
                as_u32(e.space) == as_u32(space)
                and as_u32(e.bind_point) == as_u32(bind_point)
                and e.bind_class == bind_class
            ):
                return e
        return None

    def by_handle(
        self, record_id: int, bind_class: BindClass, index: int
    ) -> Optional[ExtendedEntry]:
        for e in self._entries:
            if (
                e.record_id == record_id
                and e.bind_class == bind_class
                and e.contains(index)
            ):
                return e
        return None

    def constant_buffers(self) -> List[ExtendedEntry]:
        return [e for e in self._entries if e.bind_class == BindClass.CBV]

    @property
    def needs_remap(self) -> bool:
        return any(e.needs_remap for e in self._entries)
