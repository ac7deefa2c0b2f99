"""JSON messages exchanged with the browser client.

Field names follow the client (`sessionId`, `inputEvents`, ...). Unknown
fields are rejected so typos surface instead of being silently ignored.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

import msgspec


class ProtocolError(ValueError):
    pass


class SessionResponse(msgspec.Struct, rename="camel", forbid_unknown_fields=True):
    session_id: str
    seed: int


class SubmitScoreRequest(msgspec.Struct, rename="camel", forbid_unknown_fields=True):
    session_id: Any
    player_name: Any
    # Shape is checked by the verifier so it can answer "Invalid replay data"
    # after the name check instead of failing the whole envelope.
    input_events: Any
    score: Any = None


class ActionResult(msgspec.Struct, omit_defaults=True, forbid_unknown_fields=True):
    success: bool
    error: str | None = None


class ScoreEntry(msgspec.Struct, forbid_unknown_fields=True):
    id: int
    player_name: str
    score: int
    created_at: str


def format_created_at(created_at_ms: int) -> str:
    moment = dt.datetime.fromtimestamp(int(created_at_ms) / 1000.0, tz=dt.timezone.utc)
    return moment.isoformat(timespec="milliseconds")


_JSON_ENCODER = msgspec.json.Encoder()
_SUBMIT_DECODER = msgspec.json.Decoder(SubmitScoreRequest)


def encode_message(message: object) -> bytes:
    return _JSON_ENCODER.encode(message)


def decode_submit_request(data: bytes | str | dict[str, Any]) -> SubmitScoreRequest:
    try:
        if isinstance(data, dict):
            return msgspec.convert(data, type=SubmitScoreRequest)
        return _SUBMIT_DECODER.decode(data)
    except msgspec.DecodeError as exc:
        raise ProtocolError(f"malformed submit request: {exc}") from exc
