"""DirectX Shader Compiler toolchain backend.

Drives the command line tools through temporary files:

    dxc -dumpbin in.dxil          bytecode -> IR text (with resource table)
    dxa in.ll -o out.dxil         IR text -> bytecode
    dxv in.dxil -o out.dxil       validate and sign

A :class:`DxcToolchain` may be shared between threads; each thread opens its
own :class:`DxcSession`.
"""

from __future__ import annotations

import os
import re
import subprocess
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional, Tuple

from ..errors import backend_error
from ..logging import get_logger
from ..model import ShaderReflection
from .base import CompilerBackend, OnceCell
from .disasm_reflection import parse_reflection

__all__ = [
    "ToolchainConfig",
    "DxcToolchain",
    "DxcSession",
    "shader_model_for_validator",
    "parse_tool_version",
]

ENV_PREFIX = "DXILREMAP_"
_FALSY = {"0", "false", "no", "off"}

_VALIDATOR_RE = re.compile(r"dxil\S*:\s*(\d+)\.(\d+)")
_COMPILER_RE = re.compile(r"dxcompiler\S*:\s*(\d+)\.(\d+)")


@dataclass(frozen=True, slots=True)
class ToolchainConfig:
    dxc: str = "dxc"
    dxa: str = "dxa"
    dxv: str = "dxv"
    # False for targets that accept unsigned containers
    sign: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ToolchainConfig":
        env = os.environ if environ is None else environ
        cfg = cls()
        values: dict[str, Any] = {}
        for key in ("dxc", "dxa", "dxv"):
            val = env.get(ENV_PREFIX + key.upper())
            if val:
                values[key] = val
        sign = env.get(ENV_PREFIX + "SIGN")
        if sign is not None and sign.strip():
            values["sign"] = sign.strip().lower() not in _FALSY
        return replace(cfg, **values)

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> "ToolchainConfig":
        if not overrides:
            return self
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)


def parse_tool_version(output: str) -> Optional[Tuple[int, int]]:
    """Validator version from ``dxc --version``, else the compiler version."""
    for regex in (_VALIDATOR_RE, _COMPILER_RE):
        m = regex.search(output)
        if m:
            return int(m.group(1)), int(m.group(2))
    return None


def shader_model_for_validator(major: int, minor: int) -> Tuple[int, int]:
    version = (major, minor)
    if version > (1, 5):
        return (6, 6)
    if version == (1, 5):
        return (6, 5)
    if version == (1, 4):
        return (6, 4)
    if version in ((1, 2), (1, 3)):
        return (6, 1)
    return (6, 0)


def _run(args: List[str], what: str) -> subprocess.CompletedProcess:
    logger = get_logger()
    logger.debug("run: %s", " ".join(args))
    try:
        proc = subprocess.run(args, capture_output=True, text=True, check=False)
    except OSError as e:
        raise backend_error(
            f"{what} failed: unable to run '{args[0]}'", str(e), tool=args[0]
        ) from e
    if proc.returncode != 0:
        diag = (proc.stderr or proc.stdout or "").strip()
        raise backend_error(
            f"{what} failed (exit code {proc.returncode})",
            diag,
            tool=args[0],
            returncode=proc.returncode,
        )
    return proc


def _read_output(
    out: Path, args: List[str], proc: subprocess.CompletedProcess, what: str
) -> bytes:
    try:
        return out.read_bytes()
    except OSError as e:
        diag = (proc.stderr or proc.stdout or "").strip() or str(e)
        raise backend_error(
            f"{what} failed: '{args[0]}' produced no output",
            diag,
            tool=args[0],
        ) from e


class DxcToolchain:
    def __init__(self, config: Optional[ToolchainConfig] = None) -> None:
        self.config = config or ToolchainConfig.from_env()
        self._max_shader_model: OnceCell[Tuple[int, int]] = OnceCell()

    def _query_max_shader_model(self) -> Tuple[int, int]:
        proc = _run([self.config.dxc, "--version"], "Version query")
        version = parse_tool_version(proc.stdout + proc.stderr)
        if version is None:
            get_logger().warning(
                "Unable to determine the validator version, assuming 6.0"
            )
            return (6, 0)
        return shader_model_for_validator(*version)

    @property
    def max_shader_model(self) -> Tuple[int, int]:
        return self._max_shader_model.get_or_init(self._query_max_shader_model)

    def open_session(self) -> "DxcSession":
        return DxcSession(self)


class DxcSession(CompilerBackend):
    def __init__(self, toolchain: DxcToolchain) -> None:
        self.toolchain = toolchain
        self._guard = threading.Lock()

    @property
    def config(self) -> ToolchainConfig:
        return self.toolchain.config

    @property
    def requires_signing(self) -> bool:
        return self.config.sign

    @contextmanager
    def _exclusive(self) -> Iterator[Path]:
        if not self._guard.acquire(blocking=False):
            raise backend_error(
                "compiler session is already in use by another thread"
            )
        try:
            with tempfile.TemporaryDirectory(prefix="dxilremap-") as tmp:
                yield Path(tmp)
        finally:
            self._guard.release()

    def _dumpbin(self, tmp: Path, bytecode: bytes) -> str:
        src = tmp / "in.dxil"
        src.write_bytes(bytecode)
        return _run([self.config.dxc, "-dumpbin", str(src)], "Disassembly").stdout

    def disassemble(self, bytecode: bytes) -> str:
        with self._exclusive() as tmp:
            return self._dumpbin(tmp, bytecode)

    def reflect(self, bytecode: bytes) -> ShaderReflection:
        with self._exclusive() as tmp:
            return parse_reflection(self._dumpbin(tmp, bytecode))

    def assemble(self, ir_text: str) -> bytes:
        with self._exclusive() as tmp:
            src = tmp / "in.ll"
            out = tmp / "out.dxil"
            src.write_text(ir_text, encoding="utf-8")
            args = [self.config.dxa, str(src), "-o", str(out)]
            proc = _run(args, "Assembly")
            return _read_output(out, args, proc, "Assembly")

    def validate(self, bytecode: bytes) -> bytes:
        with self._exclusive() as tmp:
            src = tmp / "in.dxil"
            out = tmp / "out.dxil"
            src.write_bytes(bytecode)
            args = [self.config.dxv, str(src), "-o", str(out)]
            proc = _run(args, "Validation")
            return _read_output(out, args, proc, "Validation")
