"""Caller authentication for marketplace requests.

Every mutating request carries a compact JWS signed by the caller. The
signature is checked by the Identity service; this module only checks the
token's shape, unpacks the Identity answer and matches the declared action.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from credo_service.core.exceptions import ServiceError

if TYPE_CHECKING:
    from credo_service.clients.identity_client import IdentityClient

SIGNER_KEY = "_signer_id"


def _invalid_jws(message: str) -> ServiceError:
    return ServiceError("INVALID_JWS", message, 400, {})


def _identity_unavailable(message: str) -> ServiceError:
    return ServiceError("IDENTITY_SERVICE_UNAVAILABLE", message, 502, {})


def check_compact_shape(token: str) -> None:
    """Reject tokens that are not three dot-separated segments."""
    if not token:
        raise _invalid_jws("Token must be a non-empty string")
    if token.count(".") != 2:
        raise _invalid_jws("Token must be a compact JWS: header.payload.signature")


class TokenValidator:
    """Resolves a caller token to its verified claims."""

    def __init__(self, identity_client: IdentityClient) -> None:
        self._identity_client = identity_client

    async def _verified_claims(self, token: str) -> tuple[str, dict[str, Any]]:
        try:
            answer = await self._identity_client.verify_jws(token)
        except ServiceError:
            raise
        except Exception as exc:
            raise _identity_unavailable("Cannot connect to Identity service") from exc

        if not isinstance(answer, dict):
            raise _identity_unavailable("Identity service returned an unexpected response")
        claims = answer.get("payload")
        if not isinstance(claims, dict):
            raise _identity_unavailable("Identity service returned an unexpected response")

        signer = answer.get("agent_id")
        if not isinstance(signer, str) or not signer:
            raise _invalid_jws("Token signer is missing")
        return signer, dict(claims)

    async def validate_jws_token(
        self,
        token: str,
        expected_action: str | tuple[str, ...],
    ) -> dict[str, Any]:
        """
        Verify ``token`` and require its ``action`` to be one of ``expected_action``.

        The returned claims are a copy of the signed payload with the
        verified signer stored under ``_signer_id``.

        Raises:
            ServiceError: INVALID_JWS, IDENTITY_SERVICE_UNAVAILABLE,
                          FORBIDDEN, or INVALID_PAYLOAD
        """
        check_compact_shape(token)
        signer, claims = await self._verified_claims(token)

        if "action" not in claims:
            raise ServiceError(
                "INVALID_PAYLOAD", "Signed payload has no 'action' field", 400, {}
            )
        accepted = (expected_action,) if isinstance(expected_action, str) else expected_action
        if claims["action"] not in accepted:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Action '{claims['action']}' is not one of: {', '.join(sorted(accepted))}",
                400,
                {},
            )

        claims[SIGNER_KEY] = signer
        return claims
