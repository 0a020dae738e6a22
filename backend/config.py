"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No connection logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import DEFAULT_MODEL_ID, DEFAULT_VOICE_NAME
from prompts import LIVE_CONSULTANT_PROMPT


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default) == "1"


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the token service and the live session controller.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # Long-lived provider key. Server side only.
    gemini_api_key: str | None

    # Token endpoint used by clients (POST /api/live/token).
    # When unset the client issues tokens itself with gemini_api_key.
    live_token_url: str | None

    # Opt-in: hand out the long-lived key when ephemeral issuance fails.
    allow_key_fallback: bool

    # ------------------------------------------------------------------
    # Live model
    # ------------------------------------------------------------------

    live_model: str
    live_voice: str
    system_prompt: str

    # ------------------------------------------------------------------
    # Audio devices
    # ------------------------------------------------------------------

    input_device: str | None
    output_device: str | None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Missing optional values fall back to defaults; credential
        presence is validated where the credential is used.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            gemini_api_key=os.environ.get("GEMINI_API_KEY"),
            live_token_url=os.environ.get("LIVE_TOKEN_URL"),
            allow_key_fallback=_env_flag("LIVE_ALLOW_KEY_FALLBACK"),

            live_model=os.environ.get("LIVE_MODEL", DEFAULT_MODEL_ID),
            live_voice=os.environ.get("LIVE_VOICE", DEFAULT_VOICE_NAME),
            system_prompt=os.environ.get("LIVE_SYSTEM_PROMPT", LIVE_CONSULTANT_PROMPT),

            input_device=os.environ.get("AUDIO_INPUT_DEVICE"),
            output_device=os.environ.get("AUDIO_OUTPUT_DEVICE"),

            enable_json_logs=_env_flag("ENABLE_JSON_LOGS", "1"),
        )
