"""Signed-token helpers shared by the test suites."""

from __future__ import annotations

import base64
import json
from typing import Any

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from joserfc import jws
from joserfc.jwk import OKPKey

_KEYS: dict[str, Ed25519PrivateKey] = {}


def b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _unb64url(part: str) -> bytes:
    return base64.urlsafe_b64decode(part + "=" * (-len(part) % 4))


def _okp_key(private_key: Ed25519PrivateKey) -> OKPKey:
    return OKPKey.import_key(
        {
            "kty": "OKP",
            "crv": "Ed25519",
            "d": b64url(private_key.private_bytes_raw()),
            "x": b64url(private_key.public_key().public_bytes_raw()),
        }
    )


def key_for(user_id: str) -> Ed25519PrivateKey:
    """Return the Ed25519 key for ``user_id``, creating it on first use."""
    if user_id not in _KEYS:
        _KEYS[user_id] = Ed25519PrivateKey.generate()
    return _KEYS[user_id]


def sign_as(user_id: str, payload: dict[str, Any]) -> str:
    """Sign ``payload`` as ``user_id``; the user id travels as the header ``kid``."""
    body = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    protected = {"alg": "EdDSA", "kid": user_id}
    return jws.serialize_compact(protected, body, _okp_key(key_for(user_id)), algorithms=["EdDSA"])


def make_fake_jws(payload: dict[str, Any], kid: str = "u-test-user") -> str:
    """Three well-formed segments with a junk signature."""
    header = b64url(json.dumps({"alg": "EdDSA", "kid": kid}).encode())
    return f"{header}.{b64url(json.dumps(payload).encode())}.{b64url(b'not-a-signature')}"


def identity_answer(token: str) -> dict[str, Any]:
    """What the Identity service returns for a token it accepts."""
    header_part, payload_part, _signature = token.split(".")
    return {
        "valid": True,
        "agent_id": json.loads(_unb64url(header_part))["kid"],
        "payload": json.loads(_unb64url(payload_part)),
    }
