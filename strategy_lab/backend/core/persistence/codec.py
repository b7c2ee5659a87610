"""
Reversible obfuscation of exported strategy files.

Two wire formats are supported:

* static key: ``b64(xor(b64(json), STATIC_KEY))``;
* per user: ``<b64(userId[:8])>.<b64(xor(b64(json), user_key(userId)))>``.

Neither is a security boundary; they only keep exported files from being read
or edited casually.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import re
from typing import Any

from strategy_lab.backend.core.errors import AccessError, CorruptionError

logger = logging.getLogger(__name__)

STATIC_KEY = "TradeLoyout2024Strategy"
USER_PREFIX_LENGTH = 8

_BASE64 = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


def _xor(data: bytes, key: str) -> bytes:
    key_bytes = key.encode("utf-8")
    return bytes(byte ^ key_bytes[index % len(key_bytes)] for index, byte in enumerate(data))


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(text: str, stage: str) -> bytes:
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
        raise CorruptionError(f"The strategy file is corrupted ({stage}).") from exc


def _dumps(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _loads(raw: bytes) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CorruptionError("The strategy file is corrupted (payload is not JSON).") from exc


def user_key(user_id: str) -> str:
    """Per-user XOR key derived from the user id and the static key."""

    return hashlib.sha256(f"{user_id}:{STATIC_KEY}".encode("utf-8")).hexdigest()[:32]


def obfuscate(payload: Any) -> str:
    inner = _b64encode(_dumps(payload)).encode("ascii")
    return _b64encode(_xor(inner, STATIC_KEY))


def deobfuscate(text: str) -> Any:
    cleaned = re.sub(r"\s", "", text)
    inner = _xor(_b64decode(cleaned, "outer encoding"), STATIC_KEY)
    try:
        inner_text = inner.decode("ascii")
    except UnicodeDecodeError as exc:
        raise CorruptionError("The strategy file is corrupted (wrong key).") from exc
    return _loads(_b64decode(inner_text, "inner encoding"))


def obfuscate_for_user(payload: Any, user_id: str) -> str:
    if not user_id:
        raise AccessError("A user id is required to export a secure strategy file.")
    inner = _b64encode(_dumps(payload)).encode("ascii")
    owner = _b64encode(user_id[:USER_PREFIX_LENGTH].encode("utf-8"))
    return f"{owner}.{_b64encode(_xor(inner, user_key(user_id)))}"


def owner_prefix(text: str) -> str:
    """Decoded user-id prefix of a per-user file."""

    cleaned = re.sub(r"\s", "", text)
    if "." not in cleaned:
        raise CorruptionError("The strategy file is not a per-user secure file.")
    encoded_owner = cleaned.split(".", 1)[0]
    try:
        return _b64decode(encoded_owner, "owner").decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptionError("The strategy file is corrupted (owner).") from exc


def can_user_decode(text: str, user_id: str) -> bool:
    try:
        return bool(user_id) and user_id.startswith(owner_prefix(text))
    except CorruptionError:
        return False


def deobfuscate_for_user(text: str, user_id: str) -> Any:
    cleaned = re.sub(r"\s", "", text)
    owner = owner_prefix(cleaned)
    if not user_id or not user_id.startswith(owner):
        logger.warning("Secure file owner mismatch | owner_prefix=%s", owner)
        raise AccessError()
    body = cleaned.split(".", 1)[1]
    if not _BASE64.match(body):
        raise CorruptionError("The strategy file is corrupted (invalid encoding).")
    inner = _xor(_b64decode(body, "body"), user_key(user_id))
    try:
        inner_text = inner.decode("ascii")
    except UnicodeDecodeError as exc:
        raise CorruptionError("The strategy file could not be decoded with this user's key.") from exc
    return _loads(_b64decode(inner_text, "inner encoding"))


def is_obfuscated(text: str) -> bool:
    """True when the text is not JSON but looks like one of the obfuscated formats."""

    try:
        json.loads(text)
        return False
    except json.JSONDecodeError:
        pass
    cleaned = re.sub(r"\s", "", text)
    if not cleaned:
        return False
    return all(_BASE64.match(part) for part in cleaned.split(".", 1))


def is_user_bound(text: str) -> bool:
    return "." in text.strip() and is_obfuscated(text)


def decode_text(text: str, user_id: str | None = None) -> Any:
    """Decode plain JSON or either obfuscated format."""

    if not is_obfuscated(text):
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise CorruptionError("The strategy file is neither JSON nor a secure strategy file.") from exc
    if is_user_bound(text):
        return deobfuscate_for_user(text, user_id or "")
    return deobfuscate(text)


__all__ = [
    "STATIC_KEY",
    "user_key",
    "obfuscate",
    "deobfuscate",
    "obfuscate_for_user",
    "deobfuscate_for_user",
    "owner_prefix",
    "can_user_decode",
    "is_obfuscated",
    "is_user_bound",
    "decode_text",
]
