"""Envelopes for the UI-facing event stream."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class UiCommand(BaseModel):
    """UI → facade."""

    type: str  # ping | conversation.open | conversation.close | message.send | chat.toggle | chat.close
    data: dict[str, Any] = {}


class UiEvent(BaseModel):
    """Facade → UI."""

    type: str  # state.updated | notification | message.sent | error | pong
    data: dict[str, Any] = {}
