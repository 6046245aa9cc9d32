"""Compiler backends used by the remap pipeline."""

from .base import (
    Assembler,
    CompilerBackend,
    Disassembler,
    OnceCell,
    Reflector,
    Validator,
)
from .disasm_reflection import parse_reflection
from .dxc import DxcSession, DxcToolchain, ToolchainConfig

__all__ = [
    "Assembler",
    "CompilerBackend",
    "Disassembler",
    "OnceCell",
    "Reflector",
    "Validator",
    "parse_reflection",
    "DxcSession",
    "DxcToolchain",
    "ToolchainConfig",
]
