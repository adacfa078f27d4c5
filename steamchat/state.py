"""Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from inspect import isawaitable
from typing import TYPE_CHECKING, Any, Generic, Literal, TypeAlias, TypeVar, cast

from . import utils
from ._const import (
    AUTH_USER_AGENT,
    CLIENT_ID,
    DEFAULT_MAX_RELOGON_ATTEMPTS,
    FORMAT,
    JSON_LOADS,
    KEEP_ALIVE,
    MAX_SUMMARIES_PER_REQUEST,
    SCOPE,
    Path,
)
from .enums import Enum, ErrorKind, MessageType, PersonaState, RequestKind
from .errors import APIError, SteamException
from .http import Request
from .models import (
    Emote,
    LeftConversation,
    Message,
    RelationshipUpdate,
    SayText,
    Session,
    StateUpdate,
    Summary,
    Typing,
)
from .types.id import ID64, QueueID

if TYPE_CHECKING:
    from .http import HTTPClient
    from .types.api import (
        AuthResponse,
        FriendsResponse,
        JSONObject,
        LogonResponse,
        Params,
        PollMessage,
        PollResponse,
        StatusResponse,
        SummariesResponse,
    )

__all__ = (
    "Decision",
    "RequestContext",
    "APIState",
)

log = logging.getLogger(__name__)

T = TypeVar("T")

StatusCallback: TypeAlias = "Callable[[Session, SteamException | None], Awaitable[Any] | Any]"
ListCallback: TypeAlias = "Callable[[Session, list[T], SteamException | None], Awaitable[Any] | Any]"

NOT_LOGGED_ON = "not logged on"


class Decision(Enum):
    """What the dispatcher does with a request after its response has been parsed."""

    Deliver = 0
    """Call the callback and release the request."""
    Resubmit = 1
    """The request has been resubmitted, this attempt is discarded without calling anything."""


@dataclass(slots=True, eq=False)
class RequestContext(Generic[T]):
    """The state of one request from being built until its callback has been called."""

    kind: RequestKind
    callback: StatusCallback | ListCallback[T] | None = None
    error: SteamException | None = None
    """The first error that occurred, later ones are ignored."""
    result: list[T] | None = None
    attempts: int = 0
    """The number of times this request has been silently resubmitted."""
    request: Request = field(default=None, repr=False)  # type: ignore  # set right after creation
    released: bool = False

    def set_error(self, error: SteamException) -> None:
        if self.error is None:
            self.error = error

    def release(self) -> None:
        self.result = None
        self.released = True


def _str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _int(data: Mapping[str, Any], key: str) -> int | None:
    try:
        return int(data[key])
    except (KeyError, TypeError, ValueError):
        return None


def _status(data: Mapping[str, Any]) -> str:
    return _str(data, "error") or ""


async def _wait(awaitable: Awaitable[Any], kind: RequestKind) -> None:
    try:
        await awaitable
    except Exception:
        log.exception("Ignoring exception in %s callback", kind.display_name)


class APIState:
    """Builds requests from the :class:`~steamchat.Session`, parses their responses and reports them to callbacks.

    Every operation returns immediately, completion is always reported to the callback passed to it. Status
    operations call ``callback(session, error)`` and list operations call ``callback(session, results, error)``,
    ``error`` being ``None`` on success. Callbacks can be normal functions or coroutine functions.
    """

    def __init__(
        self,
        http: HTTPClient,
        session: Session | None = None,
        *,
        max_relogon_attempts: int = DEFAULT_MAX_RELOGON_ATTEMPTS,
    ):
        self.http = http
        self.session = session if session is not None else Session()
        self.max_relogon_attempts = max_relogon_attempts
        self.relogging = False

    # request building

    def _params(self, **params: Any) -> Params:
        return {"format": FORMAT} | {key: "" if value is None else str(value) for key, value in params.items()}

    def _send(
        self,
        kind: RequestKind,
        path: str,
        params: Callable[[], Params],
        callback: Any,
        *,
        method: Literal["GET", "POST"] = "POST",
        headers: dict[str, str] | None = None,
        queued: bool = False,
    ) -> RequestContext[Any]:
        context = RequestContext[Any](kind, callback)
        context.request = Request(
            method, path, params, self.handle_response, context, headers=headers or {}, queued=queued
        )
        log.debug("Sending %s request", kind.display_name)
        self.http.send(context.request)
        return context

    def authenticate(
        self, username: str, password: str, auth_code: str | None = None, callback: StatusCallback | None = None
    ) -> None:
        """Fetch an access token for the account.

        Parameters
        ----------
        username
            The account's username.
        password
            The account's password.
        auth_code
            The Steam Guard code that was emailed to the account, if Steam asked for one.
        """
        params = self._params(
            client_id=CLIENT_ID,
            grant_type="password",
            username=username,
            password=password,
            x_emailauthcode=auth_code,
            x_webcookie=None,
            scope=SCOPE,
        )
        self._send(
            RequestKind.Auth, Path.AUTH, lambda: params, callback, headers={"User-Agent": AUTH_USER_AGENT}
        )

    def fetch_friends(self, callback: ListCallback[ID64] | None = None) -> None:
        self._send(
            RequestKind.Friends,
            Path.FRIENDS,
            lambda: self._params(
                access_token=self.session.token, steamid=self.session.steam_id, relationship="friend"
            ),
            callback,
            method="GET",
        )

    def _logon_params(self) -> Params:
        return self._params(access_token=self.session.token, umqid=self.session.queue_id)

    def logon(self, callback: StatusCallback | None = None) -> None:
        self._send(RequestKind.Logon, Path.LOGON, self._logon_params, callback)

    def relogon(self) -> None:
        """Log on again with the current session and hold back queued requests until the server answers."""
        log.info("Session expired, logging on again")
        self.relogging = True
        self.http.pause_queue(True)
        self._send(RequestKind.Relogon, Path.LOGON, self._logon_params, None)

    def logoff(self, callback: StatusCallback | None = None) -> None:
        self._send(RequestKind.Logoff, Path.LOGOFF, self._logon_params, callback)

    def send_message(self, message: Message, callback: StatusCallback | None = None) -> None:
        """Send a message, messages are sent one at a time in the order this is called.

        Raises
        ------
        :exc:`TypeError`
            ``message`` isn't a :class:`~steamchat.Message`.
        :exc:`ValueError`
            Only :class:`~steamchat.SayText`, :class:`~steamchat.Emote` and :class:`~steamchat.Typing` can be sent.
        """
        if not isinstance(message, Message):
            raise TypeError(f"message must be a Message, not {message.__class__.__name__}")

        extra: dict[str, str] = {}
        match message:
            case SayText(text=text) | Emote(text=text):
                extra["text"] = text
            case Typing():
                pass
            case _:
                raise ValueError(f"{message.type!r} messages cannot be sent")

        self._send(
            RequestKind.Message,
            Path.MESSAGE,
            lambda: self._params(
                access_token=self.session.token,
                umqid=self.session.queue_id,
                steamid_dst=message.steam_id,
                type=message.type.value,
                **extra,
            ),
            callback,
            queued=True,
        )

    def poll(self, callback: ListCallback[Message] | None = None) -> None:
        """Wait for new messages, the server holds the request open for up to 30 seconds when there are none."""
        self._send(
            RequestKind.Poll,
            Path.POLL,
            lambda: self._params(
                access_token=self.session.token,
                umqid=self.session.queue_id,
                message=self.session.last_message_id,
                sectimeout=KEEP_ALIVE,
            ),
            callback,
            headers={"Connection": "Keep-Alive"},
        )

    def fetch_summaries(self, steam_ids: Iterable[ID64], callback: ListCallback[Summary] | None = None) -> None:
        """Fetch the summaries of users.

        The ids are requested in batches of 100, ``callback`` is called once for each batch as its response arrives.
        If there are no ids it's called straight away with no results.
        """
        steam_ids = list(steam_ids)
        if not steam_ids:
            if callback is None:
                return
            try:
                result = callback(self.session, [], None)
            except Exception:
                log.exception("Ignoring exception in %s callback", RequestKind.Summaries.display_name)
            else:
                if isawaitable(result):
                    self.http.spawn(_wait(result, RequestKind.Summaries), name="steamchat summaries callback")
            return

        for chunk in utils.as_chunks(steam_ids, MAX_SUMMARIES_PER_REQUEST):
            self._fetch_summaries(",".join(chunk), callback)

    def fetch_summary(self, steam_id: ID64, callback: ListCallback[Summary] | None = None) -> None:
        if not steam_id:
            raise ValueError("steam_id must not be empty")
        self._fetch_summaries(steam_id, callback)

    def _fetch_summaries(self, steam_ids: str, callback: ListCallback[Summary] | None) -> None:
        self._send(
            RequestKind.Summaries,
            Path.SUMMARIES,
            lambda: self._params(access_token=self.session.token, steamids=steam_ids),
            callback,
            method="GET",
        )

    # response handling

    async def handle_response(self, request: Request, body: bytes | None, error: SteamException | None) -> None:
        context: RequestContext[Any] = request.context  # type: ignore
        if context.released:
            return

        decision = Decision.Deliver
        if error is not None:
            context.set_error(error)
        else:
            try:
                data = JSON_LOADS((body or b"").decode())
            except ValueError as exc:  # includes UnicodeDecodeError
                context.set_error(APIError(ErrorKind.Parser, f"Parser: {exc}"))
            else:
                if isinstance(data, dict):
                    decision = self.parse(context, data)
                else:
                    context.set_error(
                        APIError(ErrorKind.Parser, f"Parser: expected a JSON object not {data.__class__.__name__}")
                    )

        if context.kind is RequestKind.Relogon and self.relogging:  # the response never reached the parser
            self._finish_relogon()

        if decision is Decision.Resubmit:
            log.debug("%s request resubmitted (attempt %d)", context.kind.display_name, context.attempts)
            return

        try:
            await self._deliver(context)
        finally:
            context.release()

    async def _deliver(self, context: RequestContext[Any]) -> None:
        kind = context.kind
        if context.error is not None:
            context.error.add_prefix(kind.display_name)
            log.debug("%s request failed: %s", kind.display_name, context.error)

        if context.callback is None:
            if context.error is not None:
                log.warning("%s", context.error)
            return

        try:
            if kind.returns_list:
                await utils.maybe_coroutine(context.callback, self.session, context.result or [], context.error)
            else:
                await utils.maybe_coroutine(context.callback, self.session, context.error)
        except Exception:
            log.exception("Ignoring exception in %s callback", kind.display_name)

    def parse(self, context: RequestContext[Any], data: JSONObject) -> Decision:
        match context.kind:
            case RequestKind.Auth:
                return self.parse_auth(context, cast("AuthResponse", data))
            case RequestKind.Friends:
                return self.parse_friends(context, cast("FriendsResponse", data))
            case RequestKind.Logon:
                return self.parse_logon(context, cast("LogonResponse", data))
            case RequestKind.Relogon:
                return self.parse_relogon(context, cast("StatusResponse", data))
            case RequestKind.Logoff:
                return self.parse_logoff(context, cast("StatusResponse", data))
            case RequestKind.Message:
                return self.parse_message(context, cast("StatusResponse", data))
            case RequestKind.Poll:
                return self.parse_poll(context, cast("PollResponse", data))
            case RequestKind.Summaries:
                return self.parse_summaries(context, cast("SummariesResponse", data))
            case _:
                raise ValueError(f"No parser for {context.kind!r}")

    def parse_auth(self, context: RequestContext[Any], data: AuthResponse) -> Decision:
        if token := _str(data, "access_token"):
            self.session.token = token
            return Decision.Deliver

        kind = (
            ErrorKind.AuthRequiresGuardCode
            if _str(data, "x_errorcode") == "steamguard_code_required"
            else ErrorKind.AuthFailed
        )
        context.set_error(APIError(kind, _str(data, "error_description")))
        return Decision.Deliver

    def parse_friends(self, context: RequestContext[ID64], data: FriendsResponse) -> Decision:
        friends = data.get("friends")
        context.result = []
        if isinstance(friends, list):
            context.result = [
                ID64(steam_id)
                for friend in friends
                if isinstance(friend, dict)
                and friend.get("relationship") == "friend"
                and (steam_id := _str(friend, "steamid"))
            ]

        if not context.result:
            context.set_error(APIError(ErrorKind.FriendsEmpty, "Empty friends list"))
        return Decision.Deliver

    def parse_logon(self, context: RequestContext[Any], data: LogonResponse) -> Decision:
        if (status := _status(data)) != "OK":
            context.set_error(APIError(ErrorKind.LogonFailed, status))
            return Decision.Deliver

        if (message_id := _int(data, "message")) is not None:
            self.session.update_last_message_id(message_id)

        if (steam_id := _str(data, "steamid")) and steam_id != self.session.steam_id:
            self.session.steam_id = ID64(steam_id)

        if (queue_id := _str(data, "umqid")) and queue_id != self.session.queue_id:
            self.session.queue_id = QueueID(queue_id)

        return Decision.Deliver

    def parse_relogon(self, context: RequestContext[Any], data: StatusResponse) -> Decision:
        self._finish_relogon()

        if (status := _status(data)) != "OK":
            context.set_error(APIError(ErrorKind.RelogonFailed, status))
        return Decision.Deliver

    def parse_logoff(self, context: RequestContext[Any], data: StatusResponse) -> Decision:
        if (status := _status(data)) != "OK":
            context.set_error(APIError(ErrorKind.LogoffFailed, status))
        return Decision.Deliver

    def parse_message(self, context: RequestContext[Any], data: StatusResponse) -> Decision:
        if (status := _status(data)) == "OK":
            return Decision.Deliver

        if status.lower() == NOT_LOGGED_ON and self._relogon_and_resubmit(context):
            return Decision.Resubmit

        context.set_error(APIError(ErrorKind.MessageFailed, status))
        return Decision.Deliver

    def parse_poll(self, context: RequestContext[Message], data: PollResponse) -> Decision:
        if (message_id := _int(data, "messagelast")) is not None:
            self.session.update_last_message_id(message_id)

        status = _str(data, "error")
        if status is not None and status.lower() not in ("timeout", "ok"):
            if status.lower() == NOT_LOGGED_ON and self._relogon_and_resubmit(context):
                return Decision.Resubmit

            context.set_error(APIError(ErrorKind.PollFailed, status))
            return Decision.Deliver

        context.result = []
        entries = data.get("messages")
        if not isinstance(entries, list):
            return Decision.Deliver

        for entry in entries:
            if isinstance(entry, dict) and (message := self._parse_poll_message(entry)) is not None:
                context.result.append(message)
        return Decision.Deliver

    def _parse_poll_message(self, entry: PollMessage) -> Message | None:
        author = _str(entry, "steamid_from")
        if author is None or author == self.session.steam_id:
            return None

        steam_id = ID64(author)
        text = _str(entry, "text")
        name = _str(entry, "persona_name")
        state = _int(entry, "persona_state")

        match MessageType.from_str(_str(entry, "type")):
            case MessageType.SayText if text is not None:
                return SayText(steam_id, text)
            case MessageType.Emote if text is not None:
                return Emote(steam_id, text)
            case MessageType.State if name is not None and state is not None:
                return StateUpdate(steam_id, PersonaState.try_value(state), name)
            case MessageType.Relationship if state is not None:
                return RelationshipUpdate(steam_id, PersonaState.try_value(state))
            case MessageType.Typing:
                return Typing(steam_id)
            case MessageType.LeftConversation:
                return LeftConversation(steam_id)
            case _:  # unknown types and entries missing required fields
                return None

    def parse_summaries(self, context: RequestContext[Summary], data: SummariesResponse) -> Decision:
        players = data.get("players")
        context.result = []
        if isinstance(players, list):
            for player in players:
                if not isinstance(player, dict) or (steam_id := _str(player, "steamid")) is None:
                    continue
                state = _int(player, "personastate")
                context.result.append(
                    Summary(
                        steam_id=ID64(steam_id),
                        name=_str(player, "personaname"),
                        profile_url=_str(player, "profileurl"),
                        real_name=_str(player, "realname"),
                        game=_str(player, "gameextrainfo"),
                        game_server=_str(player, "gameserverip"),
                        state=PersonaState.try_value(state) if state is not None else PersonaState.Offline,
                    )
                )

        if not context.result:
            context.set_error(APIError(ErrorKind.SummariesEmpty, "No friends returned"))
        return Decision.Deliver

    # session recovery

    def _relogon_and_resubmit(self, context: RequestContext[Any]) -> bool:
        if context.attempts >= self.max_relogon_attempts:
            log.warning(
                "%s request still not logged on after %d relogons, giving up",
                context.kind.display_name,
                context.attempts,
            )
            return False

        context.attempts += 1
        if not self.relogging:
            self.relogon()
        self.http.resend(context.request)
        return True

    def _finish_relogon(self) -> None:
        self.relogging = False
        self.http.pause_queue(False)
        log.info("Finished logging on again")
