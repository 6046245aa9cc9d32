import json
from pathlib import Path

import yaml

from dxilremap import cli
from dxilremap.errors import backend_error

from ir_samples import (
    FakeBackend,
    PIXEL_IR,
    make_container,
    pixel_reflection,
)

BINDINGS = {
    "version": 1,
    "bindings": [
        {"name": "cbConstants", "space": 4, "bind_point": 2, "kind": "cbv"},
        {"name": "g_Sampler", "space": 0, "bind_point": 1, "kind": "sampler"},
        {"name": "g_Tex", "space": 0, "bind_point": 3, "kind": "texture_srv"},
        {
            "name": "g_Arr",
            "space": 1,
            "bind_point": 10,
            "kind": "texture_srv",
            "array_size": 4,
        },
    ],
}


def _write_inputs(tmp_path: Path, bindings=BINDINGS):
    ir = tmp_path / "shader.ll"
    ir.write_text(PIXEL_IR, encoding="utf-8")
    layout = tmp_path / "layout.yaml"
    layout.write_text(yaml.safe_dump(bindings))
    return ir, layout


def test_patch_ir_command(tmp_path: Path):
    ir, layout = _write_inputs(tmp_path)
    out = tmp_path / "patched.ll"
    rc = cli.main(["-r", "silent", "patch-ir", str(ir), str(layout), str(out)])
    assert rc == 0
    text = out.read_text(encoding="utf-8")
    assert '!"g_Tex", i32 0, i32 3,' in text
    assert "i32 57, i8 0, i32 1, i32 12, i1 false)" in text


def test_patch_ir_command_failure_exit_code(tmp_path: Path, capsys):
    bindings = {
        "bindings": [
            {"name": "g_Nope", "space": 0, "bind_point": 0, "kind": "texture"}
        ]
    }
    ir, layout = _write_inputs(tmp_path, bindings)
    out = tmp_path / "patched.ll"
    rc = cli.main(["patch-ir", str(ir), str(layout), str(out)])
    assert rc == 1
    assert not out.exists()
    assert "E_LOOKUP" in capsys.readouterr().err


def test_invalid_binding_file_exit_code(tmp_path: Path, capsys):
    bindings = {"bindings": [{"name": "g_Tex", "kind": "texture"}]}
    ir, layout = _write_inputs(tmp_path, bindings)
    rc = cli.main(["patch-ir", str(ir), str(layout), str(tmp_path / "o.ll")])
    assert rc == 1
    assert "E_CONFIG" in capsys.readouterr().err


def test_probe_command_json(tmp_path: Path, capsys):
    path = tmp_path / "shader.dxil"
    path.write_bytes(make_container([(b"DXIL", b"\x00" * 8)]))
    rc = cli.main(["-r", "silent", "probe", str(path), "--json"])
    assert rc == 0
    doc = json.loads(capsys.readouterr().out)
    assert doc["is_dxil"] is True
    assert doc["parts"][0]["fourcc"] == "DXIL"


def test_probe_command_rejects_other_files(tmp_path: Path, capsys):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"hello")
    rc = cli.main(["-r", "silent", "probe", str(path), "--json"])
    assert rc == 1
    doc = json.loads(capsys.readouterr().out)
    assert doc["is_dxil"] is False
    assert doc["error"]["code"] == "E_FORMAT"


def test_reflect_command_json(tmp_path: Path, capsys):
    ir, _ = _write_inputs(tmp_path)
    rc = cli.main(["-r", "silent", "reflect", str(ir), "--json"])
    assert rc == 0
    doc = json.loads(capsys.readouterr().out)
    assert doc["shader_kind"] == "pixel"
    assert doc["shader_model"] == [6, 0]
    names = [r["name"] for r in doc["resources"]]
    assert names == ["cbConstants", "g_Sampler", "g_Tex", "g_Arr"]


class _FakeToolchain:
    backend = None

    def __init__(self, config):
        self.config = config

    def open_session(self):
        return self.backend


def test_remap_command_writes_output_and_ir(tmp_path: Path, monkeypatch):
    _, layout = _write_inputs(tmp_path)
    src = tmp_path / "in.dxil"
    src.write_bytes(make_container([(b"DXIL", b"\x00" * 8)]))
    out = tmp_path / "out.dxil"
    emitted = tmp_path / "out.ll"
    _FakeToolchain.backend = FakeBackend(PIXEL_IR, pixel_reflection())
    monkeypatch.setattr(cli, "DxcToolchain", _FakeToolchain)
    rc = cli.main(
        [
            "-r",
            "silent",
            "remap",
            str(src),
            str(layout),
            str(out),
            "--emit-ir",
            str(emitted),
        ]
    )
    assert rc == 0
    assert out.read_bytes().startswith(b"SIGNED:ASM:")
    assert "i32 1, i32 12, i1 false)" in emitted.read_text(encoding="utf-8")


def test_remap_command_reports_backend_diagnostic(tmp_path: Path, monkeypatch, capsys):
    _, layout = _write_inputs(tmp_path)
    src = tmp_path / "in.dxil"
    src.write_bytes(make_container([(b"DXIL", b"\x00" * 8)]))
    out = tmp_path / "out.dxil"
    err = backend_error("Assembly failed (exit code 1)", "error: bad record")
    _FakeToolchain.backend = FakeBackend(
        PIXEL_IR, pixel_reflection(), fail={"assemble": err}
    )
    monkeypatch.setattr(cli, "DxcToolchain", _FakeToolchain)
    rc = cli.main(["remap", str(src), str(layout), str(out)])
    assert rc == 1
    assert not out.exists()
    stderr = capsys.readouterr().err
    assert "E_BACKEND" in stderr
    assert "error: bad record" in stderr


def test_json_reporter_emits_summary(tmp_path: Path, capsys):
    ir, layout = _write_inputs(tmp_path)
    out = tmp_path / "patched.ll"
    rc = cli.main(["-r", "json", "patch-ir", str(ir), str(layout), str(out)])
    assert rc == 0
    events = [json.loads(ln) for ln in capsys.readouterr().out.splitlines()]
    ends = [e for e in events if e["event"] == "task_end"]
    assert {e["id"] for e in ends} >= {"binding_map", "declarations", "handles"}
    summaries = [e for e in events if e["event"] == "summary"]
    assert summaries and summaries[0]["summary_type"] == "patch"
    assert summaries[0]["declarations"] == "4"
