# backend/protocol/live.py
"""
Wire codec for the live duplex connection.

Client -> Server (JSON text frames):

    setup (first frame after open):
        {"setup": {"model": "models/<id>",
                   "generationConfig": {"responseModalities": ["AUDIO"],
                                        "speechConfig": {"voiceConfig": {
                                            "prebuiltVoiceConfig": {"voiceName": <voice>}}}},
                   "systemInstruction": {"parts": [{"text": <prompt>}]}}}

    audio:
        {"realtimeInput": {"mediaChunks": [{"mimeType": "audio/pcm;rate=16000",
                                            "data": <base64 PCM16>}]}}

    text turn:
        {"clientContent": {"turns": [{"role": "user", "parts": [{"text": <text>}]}],
                           "turnComplete": true}}

Server -> Client:
    - binary frames: audio
    - JSON objects: {"serverContent": {"modelTurn": {"parts": [...]},
                                       "inputTranscript": {...},
                                       "outputTranscript": {...}}}

Usage example:

    try:
        events = decode_server_message(raw, ts_ms=now_ms())
    except MessageParseError as e:
        log_event({"event_type": "MESSAGE_PARSE_ERROR", "error": str(e)})
        events = []
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from audio.frames import AudioFrame
from constants import (
    INPUT_AUDIO_MIME_TYPE,
    MODEL_RESOURCE_PREFIX,
    RESPONSE_MODALITY_AUDIO,
)
from protocol.events import (
    ServerEvent,
    TranscriptSource,
    audio_chunk,
    text_chunk,
    transcript_update,
)


# -------------------------
# Exceptions
# -------------------------

class ProtocolError(Exception):
    """Base class for live wire protocol errors."""


class MessageParseError(ProtocolError):
    """
    Raised when a single inbound message cannot be interpreted.

    Message-local: the caller logs and discards the message, and the
    session continues.
    """


# -------------------------
# Low-level helpers
# -------------------------

def _dumps(message: dict[str, Any]) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"))


def model_resource_name(model_id: str) -> str:
    """Return the "models/<id>" resource name, accepting either form."""
    if model_id.startswith(MODEL_RESOURCE_PREFIX):
        return model_id
    return f"{MODEL_RESOURCE_PREFIX}{model_id}"


# -------------------------
# Client -> Server
# -------------------------

def encode_setup(*, model_id: str, voice_name: str, system_prompt: str) -> str:
    """Encode the setup frame. Must be the first frame on a connection."""
    if not model_id:
        raise ValueError("model_id must be non-empty")

    return _dumps({
        "setup": {
            "model": model_resource_name(model_id),
            "generationConfig": {
                "responseModalities": [RESPONSE_MODALITY_AUDIO],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {
                            "voiceName": voice_name,
                        },
                    },
                },
            },
            "systemInstruction": {
                "parts": [{"text": system_prompt}],
            },
        },
    })


def encode_audio_frame(frame: AudioFrame) -> str:
    """Encode one microphone frame as a realtime input envelope."""
    return _dumps({
        "realtimeInput": {
            "mediaChunks": [
                {
                    "mimeType": INPUT_AUDIO_MIME_TYPE,
                    "data": base64.b64encode(frame.pcm_bytes).decode("ascii"),
                },
            ],
        },
    })


def encode_text_turn(text: str) -> str:
    """Encode a complete user text turn."""
    return _dumps({
        "clientContent": {
            "turns": [
                {
                    "role": "user",
                    "parts": [{"text": text}],
                },
            ],
            "turnComplete": True,
        },
    })


# -------------------------
# Server -> Client
# -------------------------

def _binary_json_object(raw: bytes) -> dict[str, Any] | None:
    """Return the JSON object a binary frame holds, or None if it is audio."""
    if raw.lstrip()[:1] != b"{":
        return None
    try:
        message = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    return message if isinstance(message, dict) else None


def decode_server_message(payload: str | bytes, *, ts_ms: int) -> list[ServerEvent]:
    """
    Demultiplex one inbound message into ServerEvents, in payload order:
    modelTurn parts first, then the input transcript, then the output
    transcript.

    Binary payloads are audio. The one exception is a binary frame that
    parses completely as a UTF-8 JSON object, which the endpoint uses for
    JSON messages on some deployments. PCM that merely starts with "{"
    stays audio.

    Returns an empty list for messages that carry no client-visible
    content (e.g. setupComplete).

    Raises:
        MessageParseError if the message is not interpretable.
    """
    if isinstance(payload, (bytes, bytearray, memoryview)):
        raw = bytes(payload)
        if not raw:
            raise MessageParseError("empty binary message")
        binary_message = _binary_json_object(raw)
        if binary_message is None:
            return [audio_chunk(raw, ts_ms=ts_ms)]
        message: Any = binary_message
    else:
        try:
            message = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MessageParseError(f"invalid JSON: {e}") from e

    if not isinstance(message, dict):
        raise MessageParseError(f"expected JSON object, got {type(message).__name__}")

    server_content = message.get("serverContent")
    if server_content is None:
        return []
    if not isinstance(server_content, dict):
        raise MessageParseError("serverContent is not an object")

    events: list[ServerEvent] = []

    model_turn = server_content.get("modelTurn")
    parts: Any = []
    if isinstance(model_turn, dict):
        parts = model_turn.get("parts") or []
    if not isinstance(parts, list):
        raise MessageParseError("modelTurn.parts is not a list")

    for part in parts:
        if not isinstance(part, dict):
            continue

        inline = part.get("inlineData")
        if isinstance(inline, dict) and str(inline.get("mimeType", "")).startswith("audio/"):
            try:
                audio = base64.b64decode(inline.get("data") or "", validate=True)
            except (binascii.Error, ValueError) as e:
                raise MessageParseError(f"invalid base64 audio: {e}") from e
            events.append(audio_chunk(audio, ts_ms=ts_ms))

        text = part.get("text")
        if text:
            events.append(text_chunk(str(text), ts_ms=ts_ms))

    input_transcript = server_content.get("inputTranscript")
    if isinstance(input_transcript, dict):
        events.append(
            transcript_update(
                str(input_transcript.get("text") or ""),
                is_final=bool(input_transcript.get("isFinal", False)),
                source=TranscriptSource.USER,
                ts_ms=ts_ms,
            )
        )

    output_transcript = server_content.get("outputTranscript")
    if isinstance(output_transcript, dict):
        events.append(
            transcript_update(
                str(output_transcript.get("text") or ""),
                is_final=True,
                source=TranscriptSource.MODEL,
                ts_ms=ts_ms,
            )
        )

    return events
