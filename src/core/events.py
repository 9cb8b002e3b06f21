"""Inbound chat events, independent of the messaging platform."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EventKind(str, Enum):
    NEW_MESSAGE = "newMessage"
    EDITED_MESSAGE = "editedMessage"
    OTHER = "other"


DISPATCHABLE_KINDS = frozenset({EventKind.NEW_MESSAGE, EventKind.EDITED_MESSAGE})


@dataclass(frozen=True)
class Event:
    """One message as seen by the dispatcher.

    `is_private` is True when the chat is a 1:1 conversation with the sender
    (the platform chat id equals the sender id).
    """

    kind: EventKind
    msg_id: str
    chat_id: str
    sender_id: str
    text: str
    is_private: bool = False
