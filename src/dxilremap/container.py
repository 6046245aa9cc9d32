"""DXIL container probing.

A container is a fixed header, a table of ``part_count`` u32 offsets and the
parts themselves, each starting with a (fourcc, size) part header:

    header  <4s16sHHII  fourcc 'DXBC', digest, major, minor, size, part_count
    offsets <I * part_count
    part    <4sI        fourcc, size, followed by ``size`` payload bytes

Public functions:
- probe_container(data) -> bool   (never raises)
- inspect_container(data) -> dict (raises FormatMismatchError)
"""

from __future__ import annotations

import struct
from typing import Any, Dict, List

from .errors import format_error
from .logging import get_logger

__all__ = [
    "DFCC_CONTAINER",
    "DFCC_DXIL",
    "CONTAINER_VERSION_MAJOR",
    "HEADER_SIZE",
    "PART_HEADER_SIZE",
    "probe_container",
    "inspect_container",
]

DFCC_CONTAINER = b"DXBC"
DFCC_DXIL = b"DXIL"
CONTAINER_VERSION_MAJOR = 1

_HEADER = struct.Struct("<4s16sHHII")
_PART_HEADER = struct.Struct("<4sI")
HEADER_SIZE = _HEADER.size
PART_HEADER_SIZE = _PART_HEADER.size


def probe_container(data: bytes, part_kind: bytes = DFCC_DXIL) -> bool:
    """Return True when ``data`` is a container holding a ``part_kind`` part.

    Truncated or corrupt input is a plain False; a major version mismatch
    additionally logs one warning.
    """
    if len(data) < HEADER_SIZE:
        return False
    fourcc, _digest, major, _minor, _size, part_count = _HEADER.unpack_from(
        data, 0
    )
    if fourcc != DFCC_CONTAINER:
        return False
    if major != CONTAINER_VERSION_MAJOR:
        get_logger().warning(
            "Unable to parse DXIL container: the container major version is "
            "%d while %d is expected",
            major,
            CONTAINER_VERSION_MAJOR,
        )
        return False
    table_end = HEADER_SIZE + 4 * part_count
    if table_end > len(data):
        return False
    offsets = struct.unpack_from(f"<{part_count}I", data, HEADER_SIZE)
    for offset in offsets:
        if offset + PART_HEADER_SIZE > len(data):
            return False
        part_fourcc, _part_size = _PART_HEADER.unpack_from(data, offset)
        if part_fourcc == part_kind:
            return True
    return False


def inspect_container(data: bytes) -> Dict[str, Any]:
    if len(data) < HEADER_SIZE:
        raise format_error(
            f"container header truncated: {len(data)}<{HEADER_SIZE}"
        )
    fourcc, digest, major, minor, size, part_count = _HEADER.unpack_from(
        data, 0
    )
    table_end = HEADER_SIZE + 4 * part_count
    if table_end > len(data):
        raise format_error(
            f"part offset table truncated: {table_end}>{len(data)}"
        )
    parts: List[Dict[str, Any]] = []
    for i, offset in enumerate(
        struct.unpack_from(f"<{part_count}I", data, HEADER_SIZE)
    ):
        if offset + PART_HEADER_SIZE > len(data):
            raise format_error(f"part[{i}] header out of range: {offset}")
        part_fourcc, part_size = _PART_HEADER.unpack_from(data, offset)
        parts.append(
            {
                "index": i,
                "fourcc": part_fourcc.decode("latin-1"),
                "offset": offset,
                "size": part_size,
                "in_bounds": offset + PART_HEADER_SIZE + part_size
                <= len(data),
            }
        )
    return {
        "file_size": len(data),
        "magic_ok": fourcc == DFCC_CONTAINER,
        "digest": digest.hex(),
        "version": {"major": major, "minor": minor},
        "container_size": size,
        "size_match": size == len(data),
        "part_count": part_count,
        "parts": parts,
        "has_dxil": any(p["fourcc"] == DFCC_DXIL.decode() for p in parts),
    }
