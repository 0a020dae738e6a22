"""
Ephemeral token issuer (server side).

Exchanges the long-lived provider API key for a short-lived token scoped to
the live model, voice and system prompt. Runs wherever the API key may live:
the token HTTP service, or a trusted local client.
"""

from __future__ import annotations

from typing import Any

import httpx

from constants import (
    CREDENTIAL_HTTP_TIMEOUT_S,
    EPHEMERAL_TOKEN_URL_TEMPLATE,
    LOG_PREVIEW_CHARS,
    RESPONSE_MODALITY_AUDIO,
)
from credentials.base import Credential, CredentialSource
from errors import AuthError
from observability.logger import log_event
from observability.metrics import timed


class EphemeralTokenIssuer(CredentialSource):
    """Mint single-connection tokens from the provider's token endpoint."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model_id: str,
        voice_name: str,
        system_prompt: str,
        allow_key_fallback: bool = False,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model_id = model_id
        self._voice_name = voice_name
        self._system_prompt = system_prompt
        self._allow_key_fallback = allow_key_fallback
        self._http_client = http_client

    def _request_body(self) -> dict[str, Any]:
        return {
            "config": {
                "voiceConfig": {
                    "prebuiltVoiceConfig": {
                        "voiceName": self._voice_name,
                    },
                },
                "responseModalities": [RESPONSE_MODALITY_AUDIO],
                "systemInstruction": {
                    "parts": [{"text": self._system_prompt}],
                },
            },
        }

    async def fetch(self) -> Credential:
        """
        Issue an ephemeral credential.

        Raises:
            AuthError if the key is missing, or issuance fails and the
            long-lived key fallback is not enabled.
        """
        if not self._api_key:
            raise AuthError("GEMINI_API_KEY is not configured")

        with timed("ephemeral_token_issue", details={"model": self._model_id}) as extra:
            try:
                data = await self._post()
            except (httpx.HTTPError, ValueError) as e:
                extra["outcome"] = "failed"
                return self._fallback_or_raise(f"{type(e).__name__}: {e}")

            token = data.get("token") or data.get("ephemeralToken")
            if not token:
                extra["outcome"] = "no_token"
                return self._fallback_or_raise("token missing from issuer response")

            extra["outcome"] = "issued"

        return Credential(
            token=str(token),
            model_id=self._model_id,
            expires_at=data.get("expiresAt"),
            degraded=False,
        )

    async def _post(self) -> dict[str, Any]:
        url = EPHEMERAL_TOKEN_URL_TEMPLATE.format(model=self._model_id)
        params = {"key": self._api_key}

        if self._http_client is not None:
            response = await self._http_client.post(url, params=params, json=self._request_body())
        else:
            async with httpx.AsyncClient(timeout=CREDENTIAL_HTTP_TIMEOUT_S) as client:
                response = await client.post(url, params=params, json=self._request_body())

        if response.status_code != 200:
            log_event({
                "event_type": "EPHEMERAL_TOKEN_REJECTED",
                "status_code": response.status_code,
                "response_preview": response.text[:LOG_PREVIEW_CHARS],
            })
            raise ValueError(f"token endpoint returned {response.status_code}")

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("token endpoint returned a non-object body")
        return data

    def _fallback_or_raise(self, reason: str) -> Credential:
        if not self._allow_key_fallback:
            log_event({
                "event_type": "EPHEMERAL_TOKEN_FAILED",
                "reason": reason,
                "fallback_enabled": False,
            })
            raise AuthError(f"Ephemeral token unavailable: {reason}")

        assert self._api_key is not None
        log_event({
            "event_type": "CREDENTIAL_FALLBACK_INSECURE",
            "reason": reason,
            "model": self._model_id,
        })
        return Credential(token=self._api_key, model_id=self._model_id, degraded=True)
