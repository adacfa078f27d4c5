"""Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import ClassVar

from .enums import MessageType, PersonaState
from .types.id import ID64, QueueID

__all__ = (
    "Session",
    "Message",
    "SayText",
    "Emote",
    "LeftConversation",
    "RelationshipUpdate",
    "StateUpdate",
    "Typing",
    "Summary",
)


def _random_queue_id() -> QueueID:
    return QueueID(str(random.getrandbits(32)))


@dataclass(slots=True)
class Session:
    """The mutable credential/identity state of one logged-in account.

    Only the response parsers of :class:`~steamchat.state.APIState` write to this.
    """

    token: str | None = field(default=None, repr=False)
    """The OAuth access token, set by authentication."""
    queue_id: QueueID = field(default_factory=_random_queue_id)
    """The unique message queue id (umqid) grouping this logon's messages, the server may replace it on logon."""
    steam_id: ID64 | None = None
    """The account's 64 bit id, set by logon."""
    last_message_id: int = 0
    """The id of the last message seen, polling resumes from here."""

    def update_last_message_id(self, message_id: int) -> None:
        if message_id > self.last_message_id:
            self.last_message_id = message_id

    @property
    def logged_in(self) -> bool:
        return self.token is not None and self.steam_id is not None


@dataclass(frozen=True, slots=True)
class Message:
    """The base for everything sent to or received from the message endpoints.

    For received messages :attr:`steam_id` is the author, for sent messages it's the destination.
    """

    type: ClassVar[MessageType] = MessageType.Unknown
    steam_id: ID64


@dataclass(frozen=True, slots=True)
class SayText(Message):
    """A regular chat message."""

    type: ClassVar = MessageType.SayText
    text: str


@dataclass(frozen=True, slots=True)
class Emote(Message):
    """A ``/me`` style chat message."""

    type: ClassVar = MessageType.Emote
    text: str


@dataclass(frozen=True, slots=True)
class LeftConversation(Message):
    type: ClassVar = MessageType.LeftConversation


@dataclass(frozen=True, slots=True)
class RelationshipUpdate(Message):
    """The relationship with :attr:`steam_id` changed."""

    type: ClassVar = MessageType.Relationship
    state: PersonaState


@dataclass(frozen=True, slots=True)
class StateUpdate(Message):
    """The persona of :attr:`steam_id` changed."""

    type: ClassVar = MessageType.State
    state: PersonaState
    name: str


@dataclass(frozen=True, slots=True)
class Typing(Message):
    type: ClassVar = MessageType.Typing


@dataclass(frozen=True, slots=True)
class Summary:
    """Represents the profile summary of a user."""

    steam_id: ID64
    name: str | None = None
    """The user's persona name."""
    profile_url: str | None = None
    real_name: str | None = None
    game: str | None = None
    """The name of the game the user is playing."""
    game_server: str | None = None
    """The address of the game server the user is on."""
    state: PersonaState = PersonaState.Offline
