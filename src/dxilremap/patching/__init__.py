"""IR text patch passes."""

from .binding_map import build_extended_map, check_array_size
from .cursor import IrText
from .declarations import DeclarationStats, patch_declarations
from .declarations_rt import patch_declarations_rt
from .handles import HandleStats, patch_handles

__all__ = [
    "build_extended_map",
    "check_array_size",
    "IrText",
    "DeclarationStats",
    "patch_declarations",
    "patch_declarations_rt",
    "HandleStats",
    "patch_handles",
]
