"""Join binding requests with compiler reflection.

Each request must name a resource reflection knows about. The resulting
:class:`ExtendedMap` carries the original space/bind point/class of every
requested resource, plus a record id slot filled by the declaration passes.
"""

from __future__ import annotations

from typing import Sequence

from ..errors import invariant_error, lookup_error
from ..logging import get_logger
from ..model import (
    UNBOUNDED,
    BindClass,
    BindingRequest,
    ExtendedEntry,
    ExtendedMap,
    ReflectionEntry,
    ShaderReflection,
)

__all__ = ["build_extended_map", "check_array_size"]


def check_array_size(request: BindingRequest, res: ReflectionEntry) -> bool:
    """Check the requested array size against the reflected bind count.

    Unbounded arrays are reported asymmetrically by the compiler: texture
    like resources report a count of 0, constant buffer arrays report
    UNBOUNDED. Both spellings are accepted only for their own class.
    """
    if res.bind_class != BindClass.CBV and res.bind_count == 0:
        return True
    if res.bind_class == BindClass.CBV and res.bind_count == UNBOUNDED:
        return True
    if request.is_unbounded:
        return True
    return request.array_size >= res.bind_count


def build_extended_map(
    requests: Sequence[BindingRequest],
    reflection: ShaderReflection,
    *,
    diagnostics: bool = False,
) -> ExtendedMap:
    logger = get_logger()
    ext = ExtendedMap()
    for req in requests:
        res = reflection.find(req.name)
        if res is None:
            raise lookup_error(
                f"resource '{req.name}' is not declared by the shader",
                resource=req.name,
            )

        expected = req.kind.bind_class
        if expected != res.bind_class:
            msg = (
                f"There is a mismatch between the type of resource "
                f"'{req.name}' expected by the client ({req.kind.value}, "
                f"{expected.name}) and the actual resource type "
                f"({res.bind_class.name})"
            )
            logger.error(msg)
            if diagnostics:
                raise invariant_error(msg, field="kind")

        if not check_array_size(req, res):
            msg = (
                f"Array size {req.array_size} of resource '{req.name}' is "
                f"smaller than the declared bind count {res.bind_count}"
            )
            logger.error(msg)
            if diagnostics:
                raise invariant_error(msg, field="array_size")

        ext.add(
            ExtendedEntry(
                request=req,
                space=res.space,
                bind_point=res.bind_point,
                bind_class=res.bind_class,
            )
        )
        logger.debug(
            "%s: space %d -> %d, bind point %d -> %d (%s)",
            req.name,
            res.space,
            req.space,
            res.bind_point,
            req.bind_point,
            res.bind_class.name,
        )
    return ext
