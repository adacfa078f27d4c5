"""Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE"""

from __future__ import annotations

from typing import Any, Literal, TypeAlias, TypedDict

from typing_extensions import NotRequired

from .id import ID64

Params: TypeAlias = dict[str, str]


class AuthResponse(TypedDict, total=False):
    access_token: str
    x_steamid: str
    x_errorcode: str
    error: str
    error_description: str


class FriendEntry(TypedDict, total=False):
    steamid: ID64
    relationship: Literal["friend", "requestrecipient", "requestinitiator"] | str
    friend_since: int


class FriendsResponse(TypedDict, total=False):
    friends: list[FriendEntry]


class StatusResponse(TypedDict):
    error: str


class LogonResponse(StatusResponse, total=False):
    steamid: ID64
    umqid: str
    message: int
    timestamp: int
    utc_timestamp: int
    push: int


class PollMessage(TypedDict):
    steamid_from: ID64
    type: str
    timestamp: NotRequired[int]
    utc_timestamp: NotRequired[int]
    text: NotRequired[str]
    persona_name: NotRequired[str]
    persona_state: NotRequired[int]


class PollResponse(TypedDict, total=False):
    pollid: int
    messages: list[PollMessage]
    messagelast: int
    timestamp: int
    utc_timestamp: int
    messagebase: int
    sectimeout: int
    error: str


class Player(TypedDict, total=False):
    steamid: ID64
    personaname: str
    profileurl: str
    realname: str
    personastate: int
    gameextrainfo: str
    gameserverip: str
    gameid: str


class SummariesResponse(TypedDict, total=False):
    players: list[Player]


JSONObject: TypeAlias = dict[str, Any]
