"""
Route registration for the live token service.

Responsibilities:
- Define HTTP endpoints
- Pull dependencies from app.state
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from credentials.base import CredentialSource
from errors import AuthError
from observability.logger import log_event


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.post("/api/live/token")
    async def live_token() -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        issuer: CredentialSource = app.state.token_issuer

        try:
            credential = await issuer.fetch()
        except AuthError as exc:
            log_event({
                "event_type": "TOKEN_REQUEST_FAILED",
                "error": str(exc),
            })
            return JSONResponse(status_code=502, content={"error": str(exc)})

        body: dict[str, Any] = {
            "token": credential.token,
            "model": credential.model_id,
        }
        if credential.expires_at is not None:
            body["expiresAt"] = credential.expires_at
        if credential.degraded:
            body["fallback"] = True

        log_event({
            "event_type": "TOKEN_ISSUED",
            "model": credential.model_id,
            "degraded": credential.degraded,
        })
        return JSONResponse(content=body)
