"""
Console live consultant.

Runs one live voice session against the configured model:
- speaks through the default microphone and speakers
- prints transcript lines as they arrive
- every line typed on stdin is sent as a text turn
- an empty line, EOF or Ctrl-C ends the session

Credentials come from LIVE_TOKEN_URL (the token service) when set,
otherwise an ephemeral token is issued locally with GEMINI_API_KEY.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from config import AppConfig
from credentials.base import CredentialSource
from credentials.client import TokenEndpointClient
from credentials.issuer import EphemeralTokenIssuer
from errors import RealtimeError
from protocol.events import (
    ServerEvent,
    SessionClosed,
    SessionError,
    TextChunk,
    TranscriptSource,
    TranscriptUpdate,
)
from session.controller import SessionController


def build_credential_source(config: AppConfig) -> CredentialSource:
    """Prefer the token service; issue locally only when it is not configured."""
    if config.live_token_url:
        return TokenEndpointClient(url=config.live_token_url)
    return EphemeralTokenIssuer(
        api_key=config.gemini_api_key,
        model_id=config.live_model,
        voice_name=config.live_voice,
        system_prompt=config.system_prompt,
        allow_key_fallback=config.allow_key_fallback,
    )


def format_event(event: ServerEvent) -> str | None:
    """Render an event as a console line, or None to skip it."""
    if isinstance(event, TextChunk):
        return f"model: {event.text}"
    if isinstance(event, TranscriptUpdate):
        if not event.is_final:
            return None
        who = "you" if event.source is TranscriptSource.USER else "model"
        return f"{who}: {event.text}"
    if isinstance(event, SessionClosed):
        return f"disconnected: {event.reason}"
    if isinstance(event, SessionError):
        return f"error: {event.message}"
    return None


async def run(config: AppConfig, model_hint: str | None) -> int:
    ended = asyncio.Event()

    def on_event(event: ServerEvent) -> None:
        line = format_event(event)
        if line is not None:
            print(line, file=sys.stderr, flush=True)
        if isinstance(event, (SessionClosed, SessionError)):
            ended.set()

    controller = SessionController(
        config=config,
        credentials=build_credential_source(config),
        on_event=on_event,
    )

    try:
        session = await controller.start(model_hint)
    except RealtimeError as e:
        print(f"could not start: {e}", file=sys.stderr)
        return 1

    print(f"connected ({session.model_id}), start speaking", file=sys.stderr, flush=True)

    loop = asyncio.get_running_loop()
    try:
        while not ended.is_set():
            read = loop.run_in_executor(None, sys.stdin.readline)
            wait_end = asyncio.ensure_future(ended.wait())
            done, _ = await asyncio.wait({read, wait_end}, return_when=asyncio.FIRST_COMPLETED)
            wait_end.cancel()
            if read not in done:
                # stdin reader thread stays blocked until the next line
                print("session ended, press Enter to exit", file=sys.stderr, flush=True)
                break
            text = read.result().strip()
            if not text:
                break
            controller.send_text(text)
    finally:
        await controller.aclose()

    return 1 if controller.last_error else 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Talk to the live real-estate consultant.")
    parser.add_argument("--model", default=None, help="model id hint (overrides LIVE_MODEL)")
    args = parser.parse_args(argv)

    load_dotenv()
    config = AppConfig.load_from_env()

    try:
        return asyncio.run(run(config, args.model))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
