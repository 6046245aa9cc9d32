"""Error definitions for dxilremap."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

E_FORMAT = "E_FORMAT"
E_INVARIANT = "E_INVARIANT"
E_LOOKUP = "E_LOOKUP"
E_BACKEND = "E_BACKEND"


@dataclass
class RemapError(Exception):
    code: str
    message: str
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}" + (
            f" | ctx={self.context}" if self.context else ""
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context or {},
        }

    @property
    def diagnostic(self) -> str:
        """Tool output attached to the error, or the message itself."""
        ctx = self.context or {}
        return str(ctx.get("diagnostic") or self.message)


class FormatMismatchError(RemapError):
    pass


class InvariantViolationError(RemapError):
    pass


class LookupFailureError(RemapError):
    pass


class BackendFailureError(RemapError):
    pass


def _ctx(resource: str | None, field: str | None, extra: Dict[str, Any]):
    ctx: Dict[str, Any] = dict(extra)
    if resource is not None:
        ctx["resource"] = resource
    if field is not None:
        ctx["field"] = field
    return ctx or None


def format_error(
    message: str,
    *,
    resource: str | None = None,
    field: str | None = None,
    **extra: Any,
) -> FormatMismatchError:
    if resource is not None:
        message = f"Unable to patch DXIL for resource '{resource}': {message}"
    return FormatMismatchError(
        code=E_FORMAT, message=message, context=_ctx(resource, field, extra)
    )


def invariant_error(
    message: str,
    *,
    resource: str | None = None,
    field: str | None = None,
    **extra: Any,
) -> InvariantViolationError:
    if resource is not None:
        message = f"Unable to patch DXIL for resource '{resource}': {message}"
    return InvariantViolationError(
        code=E_INVARIANT,
        message=message,
        context=_ctx(resource, field, extra),
    )


def lookup_error(
    message: str, *, resource: str | None = None, **extra: Any
) -> LookupFailureError:
    return LookupFailureError(
        code=E_LOOKUP, message=message, context=_ctx(resource, None, extra)
    )


def backend_error(
    message: str, diagnostic: str | None = None, **extra: Any
) -> BackendFailureError:
    ctx: Dict[str, Any] = dict(extra)
    if diagnostic:
        ctx["diagnostic"] = diagnostic
    return BackendFailureError(
        code=E_BACKEND, message=message, context=ctx or None
    )


__all__ = [
    "RemapError",
    "FormatMismatchError",
    "InvariantViolationError",
    "LookupFailureError",
    "BackendFailureError",
    "format_error",
    "invariant_error",
    "lookup_error",
    "backend_error",
    "E_FORMAT",
    "E_INVARIANT",
    "E_LOOKUP",
    "E_BACKEND",
]
