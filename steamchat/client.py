"""
Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE

Contains large portions of:
https://github.com/Rapptz/discord.py/blob/master/discord/client.py
The appropriate license is in LICENSE
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import sys
import traceback
from collections.abc import Callable, Coroutine, Iterable
from ssl import SSLContext
from typing import TYPE_CHECKING, Any, Literal, TypeAlias, TypedDict, TypeVar, final

import aiohttp

from ._const import DEFAULT_MAX_RELOGON_ATTEMPTS, DEFAULT_POLL_BACKOFF, MAX_SUMMARIES_PER_REQUEST
from .enums import ErrorKind
from .errors import APIError, SteamException
from .http import HTTPClient
from .models import Emote, LeftConversation, Message, RelationshipUpdate, SayText, Session, StateUpdate, Summary, Typing
from .state import APIState
from .types.id import ID64, QueueID

if TYPE_CHECKING:
    from typing_extensions import Self, Unpack


__all__ = ("Client",)

log = logging.getLogger(__name__)

CoroFunc: TypeAlias = Callable[..., Coroutine[Any, Any, Any]]
F = TypeVar("F", bound=CoroFunc)


class ClientKwargs(TypedDict, total=False):
    proxy: str | None
    proxy_auth: aiohttp.BasicAuth | None
    connector: aiohttp.BaseConnector | None
    ssl: SSLContext | Literal[False] | aiohttp.Fingerprint
    timeout: float
    queue_id: str
    max_relogon_attempts: int
    poll_backoff: float


def _return_true(*_: Any) -> Literal[True]:
    return True


class Client:
    """Represents a client connection to the Steam web chat API.

    .. container:: operations

        .. describe:: async with x

            Initialises the client and closes it when the context is exited.

    Parameters
    ----------
    proxy
        A proxy URL to use for requests.
    proxy_auth
        The proxy authentication to use with requests.
    connector
        The connector to use with the :class:`aiohttp.ClientSession`.
    ssl
        Any ``ssl`` parameters to pass to the underlying :class:`~aiohttp.ClientSession`.
    timeout
        The total number of seconds a request may take, this must be longer than the 30 seconds polls are held open
        for. Defaults to 60.
    queue_id
        The message queue id to log on with, a random one is generated if this isn't passed.
    max_relogon_attempts
        How many times a request is resubmitted after the session expires before the failure is reported.
        Defaults to 3.
    poll_backoff
        How many seconds to wait before polling again after a poll fails. Defaults to 5.
    """

    def __init__(self, **options: Unpack[ClientKwargs]):
        self.http = HTTPClient(**options)
        queue_id = options.get("queue_id")
        session = Session(queue_id=QueueID(queue_id)) if queue_id else Session()
        self._state = APIState(
            self.http, session, max_relogon_attempts=options.get("max_relogon_attempts", DEFAULT_MAX_RELOGON_ATTEMPTS)
        )
        self.poll_backoff: float = options.get("poll_backoff", DEFAULT_POLL_BACKOFF)

        self._closed = True
        self._listeners: dict[str, list[tuple[asyncio.Future[Any], Callable[..., bool]]]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._waiters: set[asyncio.Future[Any]] = set()
        self._poll_future: asyncio.Future[list[Message]] | None = None
        self._logged_on = False

    @property
    def session(self) -> Session:
        """The session of the logged in account."""
        return self._state.session

    @property
    def steam_id(self) -> ID64 | None:
        """The id of the logged in account, ``None`` if not logged on."""
        return self._state.session.steam_id

    def is_closed(self) -> bool:
        """Indicates if the client is closed."""
        return self._closed

    def clear(self) -> None:
        """Opens the underlying HTTP session, after this the client can be used again."""
        self.http.clear()
        self._state.relogging = False
        self._closed = False

    async def __aenter__(self) -> Self:
        self.clear()
        return self

    async def __aexit__(self, *args: Any) -> None:
        if not self.is_closed():
            await self.close()

    async def close(self) -> None:
        """Stop polling and release everything that hasn't been answered yet, their callbacks won't be called."""
        if self.is_closed():
            return

        self._closed = True
        self._logged_on = False
        for future in list(self._waiters):
            future.cancel()
        await self.http.close()
        self.dispatch("disconnect")

    def event(self, coro: F) -> F:
        """A decorator that registers an event to listen to.

        The events must be a :ref:`coroutine <coroutine>`, if not, :exc:`TypeError` is raised.

        Usage:

        .. code:: python

            @client.event
            async def on_message(message):
                print(message.text)

        Raises
        ------
        :exc:`TypeError`
            The function passed is not a coroutine.
        """

        if not inspect.iscoroutinefunction(coro):
            raise TypeError(f"Registered events must be coroutine functions, {coro.__name__} is {type(coro).__name__}")

        setattr(self, coro.__name__, coro)
        log.debug("%s has been registered as an event", coro.__name__)
        return coro

    async def _run_event(self, coro: CoroFunc, event_name: str, *args: Any, **kwargs: Any) -> None:
        try:
            await coro(*args, **kwargs)
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            try:
                await self.on_error(event_name, exc, *args, **kwargs)
            except asyncio.CancelledError:
                pass

    def _schedule_event(self, coro: CoroFunc, event_name: str, *args: Any, **kwargs: Any) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(
            self._run_event(coro, event_name, *args, **kwargs), name=f"steamchat task: {event_name}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def dispatch(self, event: str, /, *args: Any, **kwargs: Any) -> None:
        log.debug("Dispatching event %s", event)
        method = f"on_{event}"

        # remove the dispatched listener
        if listeners := self._listeners.get(event):
            removed: list[int] = []
            for idx, (future, condition) in enumerate(listeners):
                if future.cancelled():
                    removed.append(idx)
                    continue

                try:
                    result = condition(*args)
                except Exception as exc:
                    future.set_exception(exc)
                    removed.append(idx)
                else:
                    if result:
                        if not args:
                            future.set_result(None)
                        elif len(args) == 1:
                            future.set_result(args[0])
                        else:
                            future.set_result(args)
                        removed.append(idx)

            if len(removed) == len(listeners):
                del self._listeners[event]
            else:
                for idx in reversed(removed):
                    del listeners[idx]

        # schedule the event (if possible)
        try:
            coro = getattr(self, method)
        except AttributeError:
            pass
        else:
            self._schedule_event(coro, method, *args, **kwargs)

    async def wait_for(
        self,
        event: str,
        *,
        check: Callable[..., bool] = _return_true,
        timeout: float | None = None,
    ) -> Any:
        """Wait for the first event to be dispatched that meets the requirements, this by default is the first event
        with a matching event name.

        Parameters
        ----------
        event
            The event name, without the ``on_`` prefix, to wait for.
        check
            A callable predicate that checks the received event. The arguments must match the parameters of the
            ``event`` being waited for and must return a :class:`bool`.
        timeout
            By default, :meth:`wait_for` function does not timeout, however, in the case a ``timeout`` parameter is
            passed after the amount of seconds passes :exc:`asyncio.TimeoutError` is raised.

        Returns
        -------
        Returns ``None``, a single argument or a :class:`tuple` of multiple arguments that mirrors the parameters for
        the ``event``.
        """
        future = asyncio.get_running_loop().create_future()

        event_lower = event.lower()
        try:
            listeners = self._listeners[event_lower]
        except KeyError:
            listeners = []
            self._listeners[event_lower] = listeners

        listeners.append((future, check))
        return await asyncio.wait_for(future, timeout)

    async def on_error(self, event: str, error: Exception, *args: object, **kwargs: object):
        """The default error handler provided by the client.

        Usually when an event raises an uncaught exception, a traceback is printed to :attr:`sys.stderr` and the
        exception is ignored. If you want to change this behaviour and handle the exception yourself, this event can
        be overridden. Which, when done, will suppress the default action of printing the traceback.

        Parameters
        ----------
        event
            The name of the event that errored.
        error
            The error that was raised.
        args
            The positional arguments associated with the event.
        kwargs
            The key-word arguments associated with the event.
        """
        print(f"Ignoring exception in {event}", file=sys.stderr)
        traceback.print_exception(error, file=sys.stderr)

    # awaitable wrappers around the callback based API

    def _create_future(self) -> asyncio.Future[Any]:
        future = asyncio.get_running_loop().create_future()
        self._waiters.add(future)
        future.add_done_callback(self._waiters.discard)
        return future

    async def _wait_status(self, func: Callable[..., None], /, *args: Any) -> None:
        future: asyncio.Future[None] = self._create_future()

        def callback(session: Session, error: SteamException | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(None)

        func(*args, callback=callback)
        await future

    def _start_list(self, func: Callable[..., None], /, *args: Any) -> asyncio.Future[list[Any]]:
        future: asyncio.Future[list[Any]] = self._create_future()

        def callback(session: Session, results: list[Any], error: SteamException | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(results)

        func(*args, callback=callback)
        return future

    async def _wait_list(self, func: Callable[..., None], /, *args: Any) -> list[Any]:
        return await self._start_list(func, *args)

    async def login(self, username: str, password: str, *, code: str | None = None) -> None:
        """Authenticate with Steam and log on to the web chat.

        Parameters
        ----------
        username
            The account's username.
        password
            The account's password.
        code
            The Steam Guard code emailed to the account.

        Raises
        ------
        :exc:`~steamchat.APIError`
            Authentication or logging on failed, if the account needs a Steam Guard code :attr:`~steamchat.APIError.kind`
            is :attr:`~steamchat.ErrorKind.AuthRequiresGuardCode`.
        """
        if self.is_closed():
            self.clear()
        await self._wait_status(self._state.authenticate, username, password, code)
        await self._wait_status(self._state.logon)
        self._logged_on = True
        log.info("Logged on as %s", self.steam_id)
        self.dispatch("login")

    async def logout(self) -> None:
        """Log off the web chat, this stops :meth:`start` and the client can still be closed afterwards."""
        self._logged_on = False
        if self._poll_future is not None:
            self._poll_future.cancel()
        await self._wait_status(self._state.logoff)
        self.dispatch("logout")

    async def send(self, steam_id: ID64, text: str) -> None:
        """Send a chat message to a user."""
        await self._wait_status(self._state.send_message, SayText(steam_id, text))

    async def send_emote(self, steam_id: ID64, text: str) -> None:
        await self._wait_status(self._state.send_message, Emote(steam_id, text))

    async def send_typing(self, steam_id: ID64) -> None:
        """Tell a user the client is typing."""
        await self._wait_status(self._state.send_message, Typing(steam_id))

    async def fetch_friends(self) -> list[ID64]:
        """Fetch the ids of the account's friends."""
        return await self._wait_list(self._state.fetch_friends)

    async def fetch_summary(self, steam_id: ID64) -> Summary | None:
        """Fetch the summary of a user, ``None`` if Steam doesn't know them."""
        summaries = await self._wait_list(self._state.fetch_summary, steam_id)
        return summaries[0] if summaries else None

    async def fetch_summaries(self, steam_ids: Iterable[ID64]) -> list[Summary]:
        """Fetch the summaries of many users, they're requested 100 at a time.

        Users Steam doesn't know are left out of the result.

        Raises
        ------
        :exc:`~steamchat.SteamException`
            The first error any of the requests failed with, an empty batch only counts as a failure if every batch
            was empty.
        """
        steam_ids = list(steam_ids)
        if not steam_ids:
            return []

        future: asyncio.Future[list[Summary]] = self._create_future()
        remaining = math.ceil(len(steam_ids) / MAX_SUMMARIES_PER_REQUEST)
        summaries: list[Summary] = []
        empty: APIError | None = None

        def callback(session: Session, results: list[Summary], error: SteamException | None) -> None:
            nonlocal remaining, empty
            remaining -= 1
            if future.done():
                return
            if isinstance(error, APIError) and error.kind is ErrorKind.SummariesEmpty:
                empty = error
            elif error is not None:
                future.set_exception(error)
                return
            summaries.extend(results)
            if remaining:
                return
            if not summaries and empty is not None:
                future.set_exception(empty)
            else:
                future.set_result(summaries)

        self._state.fetch_summaries(steam_ids, callback=callback)
        return await future

    async def poll(self) -> list[Message]:
        """Wait up to 30 seconds for new messages."""
        self._poll_future = future = self._start_list(self._state.poll)
        try:
            return await future
        finally:
            if self._poll_future is future:
                self._poll_future = None

    async def start(self) -> None:
        """Poll for messages until the client is closed or logged off, dispatching an event for each one.

        Failed polls dispatch ``poll_error`` and are retried after :attr:`poll_backoff` seconds.
        """
        while not self.is_closed() and self._logged_on:
            try:
                messages = await self.poll()
            except asyncio.CancelledError:
                if self.is_closed() or not self._logged_on:
                    return
                raise
            except SteamException as exc:
                log.warning("Polling failed, retrying in %s seconds: %s", self.poll_backoff, exc)
                self.dispatch("poll_error", exc)
                await asyncio.sleep(self.poll_backoff)
                continue

            for message in messages:
                self._dispatch_message(message)

    def _dispatch_message(self, message: Message) -> None:
        match message:
            case SayText():
                self.dispatch("message", message)
            case Emote():
                self.dispatch("emote", message)
            case Typing():
                self.dispatch("typing", message)
            case LeftConversation():
                self.dispatch("leave", message)
            case RelationshipUpdate():
                self.dispatch("relationship_update", message)
            case StateUpdate():
                self.dispatch("user_update", message)

    @final
    def run(self, username: str, password: str, *, code: str | None = None, debug: bool = False) -> object:
        """A blocking method to log on and poll for messages until the client is closed.

        Shorthand for:

        .. code:: python

            async def main():
                async with client:
                    await client.login(...)
                    await client.start()


            asyncio.run(main())
        """

        async def runner() -> None:
            async with self:
                await self.login(username, password, code=code)
                await self.start()

        try:
            asyncio.run(runner(), debug=debug)
        except KeyboardInterrupt:
            log.info("Closing the event loop")

    if TYPE_CHECKING:
        # these methods shouldn't exist at runtime unless subclassed to prevent pollution of logs

        async def on_login(self) -> None:
            """Called when the client has logged on."""

        async def on_logout(self) -> None:
            """Called when the client has logged off."""

        async def on_disconnect(self) -> None:
            """Called when the client is closed."""

        async def on_message(self, message: SayText) -> None:
            """Called when a chat message is received."""

        async def on_emote(self, message: Emote) -> None:
            """Called when an emote is received."""

        async def on_typing(self, message: Typing) -> None:
            """Called when a user starts typing."""

        async def on_leave(self, message: LeftConversation) -> None:
            """Called when a user closes the conversation."""

        async def on_relationship_update(self, message: RelationshipUpdate) -> None:
            """Called when the relationship with a user changes."""

        async def on_user_update(self, message: StateUpdate) -> None:
            """Called when a user's persona changes."""

        async def on_poll_error(self, error: SteamException) -> None:
            """Called when polling for messages fails."""
