"""Compiler backend capabilities.

The remap pipeline only needs four operations from a compiler: bytecode to
IR text, IR text back to bytecode, validation with signing, and resource
reflection. Each is a small ABC so tests and alternative toolchains can
provide just what they support.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Generic, Optional, TypeVar

from ..model import ShaderReflection

__all__ = [
    "Disassembler",
    "Assembler",
    "Validator",
    "Reflector",
    "CompilerBackend",
    "OnceCell",
]

T = TypeVar("T")


class Disassembler(ABC):
    @abstractmethod
    def disassemble(self, bytecode: bytes) -> str:  # pragma: no cover
        ...


class Assembler(ABC):
    @abstractmethod
    def assemble(self, ir_text: str) -> bytes:  # pragma: no cover
        ...


class Validator(ABC):
    @abstractmethod
    def validate(self, bytecode: bytes) -> bytes:  # pragma: no cover
        """Validate ``bytecode`` and return the signed container."""


class Reflector(ABC):
    @abstractmethod
    def reflect(self, bytecode: bytes) -> ShaderReflection:  # pragma: no cover
        ...


class CompilerBackend(Disassembler, Assembler, Validator, Reflector):
    """A session able to run every remap step.

    Sessions are confined to one thread at a time.
    """

    @property
    def requires_signing(self) -> bool:
        return True


class OnceCell(Generic[T]):
    """Value computed once under a lock, then read without locking."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ready = False
        self._value: Optional[T] = None

    @property
    def is_set(self) -> bool:
        return self._ready

    def get_or_init(self, factory: Callable[[], T]) -> T:
        if self._ready:
            return self._value  # type: ignore[return-value]
        with self._lock:
            if not self._ready:
                self._value = factory()
                self._ready = True
        return self._value  # type: ignore[return-value]
