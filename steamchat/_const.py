"""
Various constants/types for use around the library.

Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE
"""

from __future__ import annotations

from collections.abc import Callable
from functools import partial
from typing import Any, Final, cast, final

from yarl import URL as _URL

HAS_ORJSON = False
try:
    import orjson  # type: ignore
except ModuleNotFoundError:
    import json

    json_loads = json.loads

    @partial(cast, Callable[[Any], str])
    def json_dumps(
        obj: Any,
        __func: Callable[..., str] = json.dumps,
        /,
    ) -> str:
        return __func(obj, separators=(",", ":"), ensure_ascii=True)

else:
    HAS_ORJSON = True
    json_loads = orjson.loads

    @partial(cast, Callable[[Any], str])
    def json_dumps(
        obj: Any,
        __func: Callable[[Any], bytes] = orjson.dumps,  # type: ignore
        __decoder: Callable[[bytes], str] = bytes.decode,
        /,
    ) -> str:
        return __decoder(__func(obj))


JSON_LOADS: Final = cast(Callable[[str | bytes], Any], json_loads)
JSON_DUMPS: Final = json_dumps


@final
class URL:
    API: Final = _URL("https://api.steampowered.com")


@final
class Path:
    AUTH: Final = "ISteamOAuth2/GetTokenWithCredentials/v0001"
    FRIENDS: Final = "ISteamUserOAuth/GetFriendList/v0001"
    LOGON: Final = "ISteamWebUserPresenceOAuth/Logon/v0001"
    LOGOFF: Final = "ISteamWebUserPresenceOAuth/Logoff/v0001"
    MESSAGE: Final = "ISteamWebUserPresenceOAuth/Message/v0001"
    POLL: Final = "ISteamWebUserPresenceOAuth/Poll/v0001"
    SUMMARIES: Final = "ISteamUserOAuth/GetUserSummaries/v0001"


USER_AGENT: Final = "Steam App / Android / 1.0 / 1297579"
AUTH_USER_AGENT: Final = "Steam 1291812 / iPhone"
CLIENT_ID: Final = "DE45CD61"
FORMAT: Final = "json"
SCOPE: Final = "read_profile write_profile read_client write_client"
KEEP_ALIVE: Final = 30  # seconds the server holds a poll open
MAX_SUMMARIES_PER_REQUEST: Final = 100
DEFAULT_TIMEOUT: Final = 60.0
DEFAULT_MAX_RELOGON_ATTEMPTS: Final = 3
DEFAULT_POLL_BACKOFF: Final = 5.0

REDACTED_PARAMS: Final = frozenset({"access_token", "password"})
