"""Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypeAlias

import aiohttp

from . import errors, utils
from ._const import DEFAULT_TIMEOUT, JSON_DUMPS, JSON_LOADS, URL, USER_AGENT

if TYPE_CHECKING:
    from typing_extensions import Unpack

    from .client import ClientKwargs
    from .types.api import Params

__all__ = (
    "Request",
    "HTTPClient",
)

log = logging.getLogger(__name__)


class Releasable(Protocol):
    def release(self) -> None: ...


ResponseCallback: TypeAlias = "Callable[[Request, bytes | None, errors.SteamException | None], Awaitable[None]]"


@dataclass(slots=True, eq=False)
class Request:
    """A request waiting to be sent by the :class:`HTTPClient`.

    The parameters are built every time the request is sent, so a request that is resent picks up any changes made to
    the state it is built from in the meantime.
    """

    method: Literal["GET", "POST"]
    path: str
    params: Callable[[], Params]
    callback: ResponseCallback
    context: Releasable
    headers: dict[str, str] = field(default_factory=dict)
    queued: bool = False
    """Whether the request goes through the ordered queue, queued requests are sent one at a time."""


class HTTPClient:
    """The HTTP Client that sends requests to the Steam web API.

    Queued requests are sent strictly in the order they were submitted with at most one in flight at a time, the
    queue can be paused which holds them back without affecting any other requests.
    """

    def __init__(self, **options: Unpack[ClientKwargs]):
        self._session: aiohttp.ClientSession = None  # type: ignore  # filled in clear
        self.user_agent = USER_AGENT

        self.proxy: str | None = options.get("proxy")
        self.proxy_auth: aiohttp.BasicAuth | None = options.get("proxy_auth")
        self.connector: aiohttp.BaseConnector | None = options.get("connector")
        self.ssl = options.get("ssl")
        self.timeout = aiohttp.ClientTimeout(total=options.get("timeout", DEFAULT_TIMEOUT))

        self._queue: deque[Request] = deque()
        self._queue_busy = False
        self._unpaused = asyncio.Event()
        self._unpaused.set()
        self._pending: set[Request] = set()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = True

    def clear(self) -> None:
        self._session = aiohttp.ClientSession(
            connector=self.connector,
            json_serialize=JSON_DUMPS,
            timeout=self.timeout,
        )
        self._queue.clear()
        self._queue_busy = False
        self._unpaused.set()
        self._closed = False

    def is_closed(self) -> bool:
        return self._closed

    @property
    def queue_paused(self) -> bool:
        return not self._unpaused.is_set()

    @property
    def queued(self) -> int:
        """The number of requests waiting in the queue."""
        return len(self._queue)

    def spawn(self, coro: Coroutine[Any, Any, Any], /, *, name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def send(self, request: Request) -> None:
        if self._closed:
            raise RuntimeError("Cannot send requests with a closed HTTPClient")

        self._pending.add(request)
        if request.queued:
            self._queue.append(request)
            self._process_queue()
        else:
            self.spawn(self._perform(request), name=f"steamchat request: {request.path}")

    def resend(self, request: Request) -> None:
        """Send a request again once the queue is unpaused.

        A queued request is put back at the front of the queue so it stays ahead of anything submitted after it.
        """
        if self._closed:
            request.context.release()
            return

        self._pending.add(request)
        if request.queued:
            self._queue.appendleft(request)
            self._process_queue()
        else:
            self.spawn(self._perform(request, wait=True), name=f"steamchat request: {request.path}")

    def pause_queue(self, paused: bool) -> None:
        if paused:
            log.debug("Pausing the request queue with %d requests waiting", len(self._queue))
            self._unpaused.clear()
        else:
            log.debug("Resuming the request queue with %d requests waiting", len(self._queue))
            self._unpaused.set()
            self._process_queue()

    def _process_queue(self) -> None:
        if self._queue_busy or not self._unpaused.is_set() or not self._queue or self._closed:
            return

        request = self._queue.popleft()
        self._queue_busy = True
        self.spawn(self._perform_queued(request), name=f"steamchat queued request: {request.path}")

    async def _perform_queued(self, request: Request) -> None:
        try:
            await self._perform(request)
        finally:
            self._queue_busy = False
            self._process_queue()

    async def _perform(self, request: Request, *, wait: bool = False) -> None:
        if wait:
            await self._unpaused.wait()

        body: bytes | None = None
        error: errors.SteamException | None = None
        try:
            body = await self.request(request.method, request.path, params=request.params(), headers=request.headers)
        except errors.SteamException as exc:
            error = exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            error = errors.TransportError(str(exc) or exc.__class__.__name__)
            error.__cause__ = exc
        except Exception as exc:
            log.exception("Unexpected error sending %s %s", request.method, request.path)
            error = errors.TransportError(f"{exc.__class__.__name__}: {exc}")
            error.__cause__ = exc

        self._pending.discard(request)
        await request.callback(request, body, error)

    async def request(
        self,
        method: Literal["GET", "POST"],
        path: str,
        /,
        *,
        params: Params,
        headers: dict[str, str] | None = None,
    ) -> bytes:  # adapted from d.py
        url = URL.API / path
        headers = {"User-Agent": self.user_agent, **(headers or {})}
        payload: dict[str, Any] = {"params": params} if method == "GET" else {"data": params}

        r = body = None
        for tries in range(5):
            async with self._session.request(
                method, url, headers=headers, **payload, proxy=self.proxy, proxy_auth=self.proxy_auth, ssl=self.ssl
            ) as r:
                log.debug("%s %s with PAYLOAD: %s has returned %d", method, url, utils.redact(params), r.status)

                # decoding is left to the caller, the body isn't guaranteed to be valid UTF-8
                body = await r.read()

                # the request was successful so just return the body
                if 200 <= r.status < 300:
                    return body

                # we are being rate limited
                elif r.status == 429:
                    try:
                        delay = float(r.headers["X-Retry-After"])
                    except (KeyError, ValueError):  # steam being un-helpful as usual
                        delay = 2**tries
                    log.warning("We are being rate limited sleeping for %s seconds", delay)
                    await asyncio.sleep(delay)
                    continue

                # we've received a 500 or 502, an unconditional retry
                elif r.status in {500, 502}:
                    await asyncio.sleep(1 + tries * 3)
                    continue

                data = _json_or_text(r, body)
                if r.status == 403:
                    raise errors.Forbidden(r, data)
                elif r.status == 404:
                    raise errors.NotFound(r, data)
                else:
                    raise errors.HTTPException(r, data)

        assert r is not None
        # we've run out of retries, raise
        log.warning("%s %s failed after 5 attempts", method, url)
        raise errors.HTTPException(r, _json_or_text(r, body))

    async def close(self) -> None:
        """Stop sending requests, everything still waiting for a response is released without being answered."""
        self._closed = True
        self._queue.clear()

        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        pending = list(self._pending)
        self._pending.clear()
        for request in pending:
            request.context.release()
        if pending:
            log.debug("Released %d pending requests", len(pending))

        if self._session is not None:
            await self._session.close()


def _json_or_text(r: aiohttp.ClientResponse, body: bytes | None) -> Any:
    text = body.decode("utf-8", errors="replace") if body else None
    try:
        if text and "application/json" in r.headers["Content-Type"]:
            return JSON_LOADS(text)
    except (KeyError, ValueError):
        pass
    return text
