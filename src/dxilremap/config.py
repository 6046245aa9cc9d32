"""Binding file loading & validation.

Phases:
 1. schema: structure and types, checked with the bundled JSON Schema
 2. semantic: resource kinds and u32 range limits

Both phases return lists of ValidationErrorRecord; an empty list means the
document is usable.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from .errors import RemapError
from .model import U32_MASK, BindingRequest, ResourceKind

__all__ = [
    "BindingFile",
    "ConfigError",
    "ValidationErrorRecord",
    "load_binding_file",
    "load_schema",
    "parse_binding_document",
    "validate_document",
]

E_SCHEMA = "E_SCHEMA"
E_RANGE = "E_RANGE"
E_KIND = "E_KIND"
E_CONFIG = "E_CONFIG"

SCHEMA_FILE = "bindings.schema.json"


class ValidationErrorRecord:
    def __init__(self, code: str, message: str, path: str = "") -> None:
        self.code = code
        self.message = message
        self.path = path

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "path": self.path}

    def __repr__(self) -> str:  # convenience for tests
        return f"ValidationErrorRecord(code={self.code}, path={self.path}, message={self.message})"


class ConfigError(RemapError):
    """Binding file could not be loaded; ``errors`` lists every problem."""

    @property
    def errors(self) -> List[ValidationErrorRecord]:
        return list((self.context or {}).get("errors", []))


@dataclass(slots=True)
class BindingFile:
    requests: List[BindingRequest] = field(default_factory=list)
    shader_kind: str = "auto"
    diagnostics: bool = False
    toolchain: Dict[str, Any] = field(default_factory=dict)
    source: Optional[Path] = None


_SCHEMA: Optional[Dict[str, Any]] = None


def load_schema() -> Dict[str, Any]:
    global _SCHEMA
    if _SCHEMA is None:
        text = (
            resources.files(__package__)
            .joinpath(SCHEMA_FILE)
            .read_text(encoding="utf-8")
        )
        _SCHEMA = json.loads(text)
    return _SCHEMA


def _format_path(parts) -> str:
    out = ""
    for p in parts:
        if isinstance(p, int):
            out += f"[{p}]"
        else:
            out += f".{p}" if out else str(p)
    return out


def _schema_phase(doc: Any) -> List[ValidationErrorRecord]:
    validator = jsonschema.Draft202012Validator(load_schema())
    errors = [
        ValidationErrorRecord(E_SCHEMA, e.message, _format_path(e.absolute_path))
        for e in validator.iter_errors(doc)
    ]
    errors.sort(key=lambda r: r.path)
    return errors


def _semantic_phase(doc: Dict[str, Any]) -> List[ValidationErrorRecord]:
    errors: List[ValidationErrorRecord] = []
    for i, b in enumerate(doc.get("bindings", []) or []):
        path = f"bindings[{i}]"
        try:
            ResourceKind.parse(b["kind"])
        except ValueError as e:
            errors.append(ValidationErrorRecord(E_KIND, str(e), path + ".kind"))
        size = b.get("array_size", 1)
        # 0 and 0xFFFFFFFF are unbounded
        if size not in (0, U32_MASK) and b["bind_point"] + size - 1 > U32_MASK:
            errors.append(
                ValidationErrorRecord(
                    E_RANGE,
                    f"Range {b['bind_point']}+{size} of '{b['name']}' "
                    f"overflows 32 bits",
                    path + ".array_size",
                )
            )
    return errors


def validate_document(doc: Any) -> List[ValidationErrorRecord]:
    errors = _schema_phase(doc)
    if errors:
        return errors
    return _semantic_phase(doc)


def parse_binding_document(doc: Dict[str, Any]) -> BindingFile:
    """Build a BindingFile from a document that passed validation."""
    requests = [
        BindingRequest(
            name=b["name"],
            space=b["space"],
            bind_point=b["bind_point"],
            kind=ResourceKind.parse(b["kind"]),
            array_size=b.get("array_size", 1),
        )
        for b in doc.get("bindings", [])
    ]
    return BindingFile(
        requests=requests,
        shader_kind=doc.get("shader_kind", "auto"),
        diagnostics=bool(doc.get("diagnostics", False)),
        toolchain=dict(doc.get("toolchain", {}) or {}),
    )


def load_binding_file(path: str | Path) -> BindingFile:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    text = p.read_text(encoding="utf-8")
    try:
        if p.suffix.lower() in {".yaml", ".yml"}:
            doc: Any = yaml.safe_load(text)
        else:
            doc = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(
            code=E_CONFIG,
            message=f"Unable to parse binding file {p}: {e}",
            context={"path": str(p)},
        ) from e

    errors = validate_document(doc)
    if errors:
        details = "; ".join(f"{r.path or '(root)'}: {r.message}" for r in errors)
        raise ConfigError(
            code=E_CONFIG,
            message=f"Invalid binding file {p}: {details}",
            context={"path": str(p), "errors": errors},
        )
    result = parse_binding_document(doc)
    result.source = p
    return result
