import json

import pytest

from strategy_lab.backend.core.errors import AccessError, CorruptionError
from strategy_lab.backend.core.persistence import codec

PAYLOAD = {"id": "s1", "name": "Strategy Ünïcode", "nodes": [], "edges": []}


def test_static_format_round_trip() -> None:
    text = codec.obfuscate(PAYLOAD)
    assert codec.is_obfuscated(text)
    assert not codec.is_user_bound(text)
    assert codec.deobfuscate(text) == PAYLOAD
    assert codec.decode_text(text) == PAYLOAD


def test_per_user_format_is_bound_to_its_owner() -> None:
    text = codec.obfuscate_for_user(PAYLOAD, "user-12345678-abc")
    assert codec.is_user_bound(text)
    assert codec.owner_prefix(text) == "user-123"
    assert codec.can_user_decode(text, "user-12345678-abc")
    assert not codec.can_user_decode(text, "someone-else")

    assert codec.deobfuscate_for_user(text, "user-12345678-abc") == PAYLOAD
    assert codec.decode_text(text, "user-12345678-abc") == PAYLOAD
    with pytest.raises(AccessError):
        codec.deobfuscate_for_user(text, "someone-else")


def test_same_prefix_with_different_key_is_corruption() -> None:
    text = codec.obfuscate_for_user(PAYLOAD, "user-12345678-abc")
    with pytest.raises(CorruptionError):
        codec.deobfuscate_for_user(text, "user-12345678-xyz")


def test_per_user_export_requires_user_id() -> None:
    with pytest.raises(AccessError):
        codec.obfuscate_for_user(PAYLOAD, "")


def test_plain_json_and_garbage_detection() -> None:
    plain = json.dumps(PAYLOAD)
    assert not codec.is_obfuscated(plain)
    assert codec.decode_text(plain) == PAYLOAD

    with pytest.raises(CorruptionError):
        codec.decode_text("hello")
    with pytest.raises(CorruptionError):
        codec.decode_text("{not json at all")
    with pytest.raises(CorruptionError):
        codec.deobfuscate("QUJD")


def test_user_key_is_deterministic() -> None:
    assert codec.user_key("u1") == codec.user_key("u1")
    assert codec.user_key("u1") != codec.user_key("u2")
    assert len(codec.user_key("u1")) == 32
