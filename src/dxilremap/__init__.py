"""dxilremap package

Relocates resource bindings of an already compiled DXIL shader to a new
register space / bind point layout by patching the disassembled IR text and
reassembling it, without running the HLSL compiler again.

Prefer the programmatic entry points in :mod:`dxilremap.pipeline`
(``patch_ir`` and ``remap_bindings``) or the CLI in :mod:`dxilremap.cli`.
"""

from ._version import __version__  # noqa: F401

__all__ = ["__version__"]
