"""
FastAPI app factory for the live token service.

Responsibilities:
- Create and configure the FastAPI app
- Set up middleware
- Build the ephemeral token issuer once per process
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from credentials.issuer import EphemeralTokenIssuer
from observability.logger import log_event

from server.routes import register_routes


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    config defaults to AppConfig.load_from_env(); tests pass their own.
    """
    config = config or AppConfig.load_from_env()

    app = FastAPI(title="Live Consultant Token Service")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.token_issuer = build_token_issuer(config)

    if config.allow_key_fallback:
        log_event({
            "event_type": "CREDENTIAL_FALLBACK_ENABLED",
            "env": config.env,
        })

    # Routes
    register_routes(app)

    return app


def build_token_issuer(config: AppConfig) -> EphemeralTokenIssuer:
    """Build the issuer from configuration. The API key is checked per request."""
    return EphemeralTokenIssuer(
        api_key=config.gemini_api_key,
        model_id=config.live_model,
        voice_name=config.live_voice,
        system_prompt=config.system_prompt,
        allow_key_fallback=config.allow_key_fallback,
    )
