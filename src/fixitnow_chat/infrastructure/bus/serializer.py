"""JSON envelope for chat frames carried over Redis channels.

Wire shape: ``{"event": <destination>, "data": {...}}``.
"""
from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class _FrameEncoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, (UUID, Enum)):
            return str(o)
        return super().default(o)


def encode_frame(destination: str, payload: dict[str, Any]) -> str:
    return json.dumps({"event": destination, "data": payload}, cls=_FrameEncoder)


def decode_frame(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    """Split an envelope into (destination, payload).

    Raises ValueError (json.JSONDecodeError included) for anything that
    is not an object with an object ``data`` member.
    """
    envelope = json.loads(raw)
    if not isinstance(envelope, dict) or not isinstance(envelope.get("data"), dict):
        raise ValueError("frame envelope must be an object with an object 'data'")
    return str(envelope.get("event") or ""), envelope["data"]
