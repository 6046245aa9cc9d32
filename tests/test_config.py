import json
from pathlib import Path

import pytest
import yaml

from dxilremap.config import (
    ConfigError,
    load_binding_file,
    validate_document,
)
from dxilremap.model import ResourceKind


def _codes(errors):
    return {e.code for e in errors}


def _doc(**binding):
    entry = {"name": "g_Tex", "space": 0, "bind_point": 3, "kind": "texture_srv"}
    entry.update(binding)
    return {"version": 1, "bindings": [entry]}


def test_valid_document_has_no_errors():
    assert validate_document(_doc()) == []


def test_schema_errors_are_collected():
    doc = {"bindings": [{"name": "", "space": -1, "kind": "cbv"}], "extra": 1}
    errs = validate_document(doc)
    assert _codes(errs) == {"E_SCHEMA"}
    paths = {e.path for e in errs}
    assert "bindings[0].space" in paths
    assert "bindings[0].name" in paths
    # missing bind_point and the unknown top-level key are reported at their parent
    assert "bindings[0]" in paths
    assert "" in paths


def test_unknown_kind():
    errs = validate_document(_doc(kind="texture_3d_thing"))
    assert _codes(errs) == {"E_KIND"}
    assert errs[0].path == "bindings[0].kind"


def test_range_overflow():
    errs = validate_document(_doc(bind_point=4294967290, array_size=10))
    assert _codes(errs) == {"E_RANGE"}


def test_unbounded_array_does_not_overflow():
    assert validate_document(_doc(bind_point=4294967290, array_size=0)) == []
    assert (
        validate_document(_doc(bind_point=4294967290, array_size=4294967295))
        == []
    )


def test_load_yaml_binding_file(tmp_path: Path):
    doc = {
        "version": 1,
        "shader_kind": "general",
        "diagnostics": True,
        "toolchain": {"dxc": "/opt/dxc", "sign": False},
        "bindings": [
            {"name": "cbFrame", "space": 1, "bind_point": 0, "kind": "cbv"},
            {
                "name": "g_Textures",
                "space": 2,
                "bind_point": 0,
                "kind": "texture",
                "array_size": 0,
            },
        ],
    }
    path = tmp_path / "bindings.yaml"
    path.write_text(yaml.safe_dump(doc))
    bf = load_binding_file(path)
    assert bf.shader_kind == "general"
    assert bf.diagnostics is True
    assert bf.toolchain == {"dxc": "/opt/dxc", "sign": False}
    assert [r.kind for r in bf.requests] == [
        ResourceKind.CONSTANT_BUFFER,
        ResourceKind.TEXTURE_SRV,
    ]
    assert bf.requests[0].array_size == 1
    assert bf.requests[1].is_unbounded
    assert bf.source == path


def test_load_json_binding_file(tmp_path: Path):
    path = tmp_path / "bindings.json"
    path.write_text(json.dumps(_doc()))
    bf = load_binding_file(path)
    assert bf.shader_kind == "auto"
    assert bf.requests[0].name == "g_Tex"


def test_invalid_file_raises_config_error(tmp_path: Path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(_doc(kind="nope")))
    with pytest.raises(ConfigError) as ei:
        load_binding_file(path)
    assert [e.code for e in ei.value.errors] == ["E_KIND"]
    assert ei.value.code == "E_CONFIG"


def test_unparsable_yaml(tmp_path: Path):
    path = tmp_path / "bad.yaml"
    path.write_text("bindings: [\n")
    with pytest.raises(ConfigError):
        load_binding_file(path)


def test_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_binding_file(tmp_path / "absent.yaml")
