"""Client for this project's POST /api/live/token endpoint."""

from __future__ import annotations

import httpx

from constants import CREDENTIAL_HTTP_TIMEOUT_S
from credentials.base import Credential, CredentialSource
from errors import AuthError
from observability.logger import log_event
from observability.metrics import timed


class TokenEndpointClient(CredentialSource):
    """Fetch a connection credential from the token service."""

    def __init__(
        self,
        *,
        url: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._http_client = http_client

    async def fetch(self) -> Credential:
        with timed("token_endpoint_fetch") as extra:
            try:
                if self._http_client is not None:
                    response = await self._http_client.post(self._url)
                else:
                    async with httpx.AsyncClient(timeout=CREDENTIAL_HTTP_TIMEOUT_S) as client:
                        response = await client.post(self._url)
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                extra["outcome"] = "failed"
                raise AuthError(f"Token endpoint unavailable: {e}") from e

            if not isinstance(data, dict) or not data.get("token"):
                extra["outcome"] = "no_token"
                raise AuthError("Failed to get authentication token")

            degraded = bool(data.get("fallback", False))
            extra["outcome"] = "degraded" if degraded else "issued"

        if degraded:
            log_event({
                "event_type": "CREDENTIAL_FALLBACK_INSECURE",
                "reason": "token service returned the long-lived key",
                "model": data.get("model"),
            })

        return Credential(
            token=str(data["token"]),
            model_id=str(data.get("model") or ""),
            expires_at=data.get("expiresAt"),
            degraded=degraded,
        )
