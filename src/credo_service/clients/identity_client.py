"""Async HTTP client for the Identity service."""

from __future__ import annotations

from typing import Any

import httpx

from credo_service.core.exceptions import ServiceError
from credo_service.logging import get_logger

logger = get_logger(__name__)


class IdentityUnavailableError(ServiceError):
    """The Identity service could not give a usable verdict."""

    def __init__(self, message: str) -> None:
        super().__init__("IDENTITY_SERVICE_UNAVAILABLE", message, 502, {})


class IdentityClient:
    """
    Asks the Identity service who signed a caller token.

    The marketplace holds no keys. Identity checks the signature and
    answers with the signer's user id, which becomes the caller.
    """

    def __init__(
        self,
        base_url: str,
        verify_jws_path: str,
        timeout_seconds: int,
    ) -> None:
        self._base_url = base_url
        self._verify_jws_path = verify_jws_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def _post_token(self, token: str) -> httpx.Response:
        try:
            return await self._client.post(self._verify_jws_path, json={"token": token})
        except httpx.HTTPError as exc:
            unreachable = isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))
            logger.warning(
                "Identity service unreachable" if unreachable else "Identity service HTTP error",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            message = (
                "Cannot connect to Identity service"
                if unreachable
                else "Identity service request failed"
            )
            raise IdentityUnavailableError(message) from exc

    def _decode(self, response: httpx.Response) -> dict[str, Any]:
        if response.status_code != 200:
            logger.warning(
                "Identity service unexpected status",
                extra={"status_code": response.status_code, "base_url": self._base_url},
            )
            raise IdentityUnavailableError("Identity service returned unexpected status")
        try:
            verdict = response.json()
        except ValueError as exc:
            raise IdentityUnavailableError("Identity service returned invalid JSON") from exc
        if not isinstance(verdict, dict):
            raise IdentityUnavailableError("Identity service returned invalid JSON")
        return verdict

    async def verify_jws(self, token: str) -> dict[str, Any]:
        """
        Verify a compact JWS token.

        Returns:
            dict with keys: valid (bool), agent_id (signer user id), payload (dict)

        Raises:
            ServiceError: FORBIDDEN (403) when the signature is rejected
            ServiceError: IDENTITY_SERVICE_UNAVAILABLE (502) on transport failure
                or a malformed answer
        """
        verdict = self._decode(await self._post_token(token))
        if not verdict.get("valid", False):
            raise ServiceError("FORBIDDEN", "JWS signature verification failed", 403, {})
        return verdict

    async def close(self) -> None:
        await self._client.aclose()
