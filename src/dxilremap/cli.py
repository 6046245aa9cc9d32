"""Command line interface for dxilremap."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .backend import DxcToolchain, ToolchainConfig, parse_reflection
from .config import load_binding_file
from .container import inspect_container, probe_container
from .errors import RemapError
from .logging import configure_logging, step
from .pipeline import RemapOptions, patch_ir, remap_bindings
from .reporting import (
    JsonLinesReporter,
    PlainReporter,
    RichReporter,
    SilentReporter,
    get_reporter,
    set_reporter,
    set_verbosity,
)


def _report_failure(error: RemapError) -> int:
    rep = get_reporter()
    rep.error(f"{error.code}: {error.message}")
    if error.diagnostic != error.message:
        rep.error(error.diagnostic)
    return 1


def _remap_cmd(args: argparse.Namespace) -> int:
    bindings = load_binding_file(args.bindings)
    config = ToolchainConfig.from_env().merged(bindings.toolchain)
    session = DxcToolchain(config).open_session()
    options = RemapOptions(
        shader_kind=bindings.shader_kind,
        diagnostics=args.diagnostics or bindings.diagnostics,
    )
    step(f"remapping {len(bindings.requests)} binding(s) of {args.bytecode.name}")
    result = remap_bindings(
        args.bytecode.read_bytes(), bindings.requests, session, options
    )
    if not result.ok:
        return _report_failure(result.error)  # type: ignore[arg-type]
    if args.emit_ir and result.ir_text is not None:
        args.emit_ir.write_text(result.ir_text, encoding="utf-8")
    args.output.write_bytes(result.bytecode)
    if not result.changed:
        get_reporter().status("bindings unchanged, copied input bytecode")
    return 0


def _patch_ir_cmd(args: argparse.Namespace) -> int:
    text = args.ir.read_text(encoding="utf-8")
    bindings = load_binding_file(args.bindings)
    reflection = parse_reflection(text)
    result = patch_ir(
        text,
        bindings.requests,
        reflection,
        shader_kind=bindings.shader_kind,
        diagnostics=args.diagnostics or bindings.diagnostics,
    )
    if not result.ok:
        return _report_failure(result.error)  # type: ignore[arg-type]
    args.output.write_text(result.ir_text, encoding="utf-8")
    return 0


def _probe_cmd(args: argparse.Namespace) -> int:
    data = args.bytecode.read_bytes()
    is_dxil = probe_container(data)
    if args.json:
        try:
            info = inspect_container(data)
        except RemapError as e:
            info = {"error": e.to_dict()}
        print(json.dumps({"is_dxil": is_dxil, **info}, indent=2, sort_keys=True))
    else:
        get_reporter().status(
            f"probe summary: dxil={is_dxil} size={len(data)} "
            f"file={args.bytecode.name}"
        )
    return 0 if is_dxil else 1


def _reflect_cmd(args: argparse.Namespace) -> int:
    reflection = parse_reflection(args.ir.read_text(encoding="utf-8"))
    rep = get_reporter()
    if args.json:
        doc = {
            "shader_kind": reflection.shader_kind.value,
            "shader_model": list(reflection.shader_model or ()),
            "resources": [
                {
                    "name": r.name,
                    "class": r.bind_class.name,
                    "space": r.space,
                    "bind_point": r.bind_point,
                    "bind_count": r.bind_count,
                }
                for r in reflection.resources
            ],
        }
        print(json.dumps(doc, indent=2, sort_keys=True))
        return 0
    rep.section("Resources")
    for r in reflection.resources:
        rep.status(
            f"{r.name}: {r.bind_class.name} space={r.space} "
            f"bind_point={r.bind_point} count={r.bind_count}"
        )
    rep.status(
        f"reflection summary: kind={reflection.shader_kind.value} "
        f"resources={len(reflection.resources)}"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dxil-remap",
        description="Remap resource bindings of compiled DXIL shaders",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (repeatable)",
    )
    p.add_argument(
        "-r",
        "--reporter",
        choices=["plain", "rich", "json", "silent"],
        default="plain",
        help="Select reporter backend: plain (default), rich, json (JSONL events), silent",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    r = sub.add_parser("remap", help="Remap a DXIL container")
    r.add_argument("bytecode", type=Path)
    r.add_argument("bindings", type=Path, help="Binding layout (YAML or JSON)")
    r.add_argument("output", type=Path)
    r.add_argument(
        "--emit-ir",
        dest="emit_ir",
        type=Path,
        help="Optional path to write the patched IR text",
    )
    r.add_argument(
        "--diagnostics",
        action="store_true",
        help="Treat binding consistency warnings as errors",
    )
    r.set_defaults(func=_remap_cmd)

    pi = sub.add_parser(
        "patch-ir", help="Patch a disassembly text file (no toolchain)"
    )
    pi.add_argument("ir", type=Path)
    pi.add_argument("bindings", type=Path)
    pi.add_argument("output", type=Path)
    pi.add_argument("--diagnostics", action="store_true")
    pi.set_defaults(func=_patch_ir_cmd)

    pr = sub.add_parser("probe", help="Check whether a file is a DXIL container")
    pr.add_argument("bytecode", type=Path)
    pr.add_argument("--json", action="store_true", help="Emit the part table")
    pr.set_defaults(func=_probe_cmd)

    rf = sub.add_parser("reflect", help="Print the resources of a disassembly")
    rf.add_argument("ir", type=Path)
    rf.add_argument("--json", action="store_true", help="Emit JSON")
    rf.set_defaults(func=_reflect_cmd)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    requested = args.reporter
    if requested == "json":
        set_reporter(JsonLinesReporter())
    elif requested == "silent":
        set_reporter(SilentReporter())
    elif requested == "rich" and sys.stderr.isatty():
        set_reporter(RichReporter())
    else:
        # plain, or rich without a TTY
        set_reporter(PlainReporter())
    set_verbosity(args.verbose)
    configure_logging(args.verbose)
    try:
        return args.func(args)
    except RemapError as e:
        return _report_failure(e)
    except OSError as e:
        get_reporter().error(str(e))
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
