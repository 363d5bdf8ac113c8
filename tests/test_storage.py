import json

import pytest

from medattest.models import AttestationId, Field
from medattest.storage import DEFAULT_POLICY, SerializationPolicy, output_path, read_json, write_json

MAX_UINT256 = 2**256 - 1


def test_large_identifier_round_trip(tmp_path):
    path = str(tmp_path / "attestation.json")
    write_json(path, {"attestationId": AttestationId(MAX_UINT256)})

    loaded = read_json(path)
    assert loaded == {"attestationId": str(MAX_UINT256)}
    assert AttestationId(loaded["attestationId"]) == MAX_UINT256


def test_small_identifier_is_still_a_string():
    assert json.loads(DEFAULT_POLICY.dumps({"attestationId": AttestationId(7)})) == {"attestationId": "7"}


def test_unsafe_integers_become_strings():
    data = json.loads(DEFAULT_POLICY.dumps({"small": 28, "big": 2**53, "negative": -(2**60), "flag": True}))
    assert data == {"small": 28, "big": str(2**53), "negative": str(-(2**60)), "flag": True}


def test_policy_can_keep_numbers():
    policy = SerializationPolicy(max_exact_int=None, stringify_identifiers=False)
    assert json.loads(policy.dumps({"id": AttestationId(2**70)})) == {"id": 2**70}


def test_models_and_bytes():
    field = Field(type="uint256", name="age", value=2**64, salt="0x" + "00" * 32)
    data = json.loads(DEFAULT_POLICY.dumps({"field": field, "raw": b"\xde\xad"}))
    assert data["field"]["value"] == str(2**64)
    assert data["raw"] == "0xdead"


def test_unserializable():
    with pytest.raises(TypeError):
        DEFAULT_POLICY.dumps({"x": object()})


def test_two_space_indent_and_overwrite(tmp_path):
    path = str(tmp_path / "out.json")
    write_json(path, {"a": 1})
    write_json(path, {"b": 2})
    with open(path, encoding="utf-8") as f:
        assert f.read() == '{\n  "b": 2\n}'


def test_write_failure_propagates(tmp_path):
    with pytest.raises(OSError):
        write_json(str(tmp_path / "missing" / "out.json"), {"a": 1})


def test_output_path_creates_directory(tmp_path):
    path = output_path(str(tmp_path / "results"), "x.json")
    assert (tmp_path / "results").is_dir()
    assert path.endswith("x.json")
