"""
Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE

Contains large portions of:
https://github.com/Rapptz/discord.py/blob/master/discord/utils.py
The appropriate license is in LICENSE
"""

from __future__ import annotations

import itertools
import sys
from collections.abc import AsyncGenerator, AsyncIterable, Awaitable, Callable, Generator, Iterable, Iterator, Mapping, Sized
from inspect import isawaitable
from typing import Any, ParamSpec, TypeAlias, TypeVar, overload

from ._const import REDACTED_PARAMS

__all__ = (
    "as_chunks",
    "maybe_coroutine",
)

_T = TypeVar("_T")
_P = ParamSpec("_P")


def redact(params: Mapping[str, Any], /) -> dict[str, Any]:
    """Returns a copy of ``params`` that is safe to log."""
    return {key: "<redacted>" if key in REDACTED_PARAMS and value else value for key, value in params.items()}


# everything below here is directly from discord.py's utils
# https://github.com/Rapptz/discord.py/blob/master/discord/utils.py
_Iter: TypeAlias = Iterable[_T] | AsyncIterable[_T]


if sys.version_info >= (3, 12):
    _chunk = itertools.batched
else:

    def _chunk(
        iterable: Iterable[_T],
        max_size: int,
        iter: Callable[[Iterable[_T]], Iterator[_T]] = iter,
        tuple: type[tuple[_T, ...]] = tuple,
        islice: type[itertools.islice[_T]] = itertools.islice,
        /,
    ) -> Generator[tuple[_T, ...], None, None]:
        it = iter(iterable)
        while batch := tuple(islice(it, max_size)):
            yield batch


async def _achunk(
    iterable: AsyncIterable[_T], max_size: int, len: Callable[[Sized], int] = len, /
) -> AsyncGenerator[tuple[_T, ...], None]:
    ret: list[_T] = []
    async for item in iterable:
        ret.append(item)
        if len(ret) == max_size:
            yield tuple(ret)
            ret = []
    if ret:
        yield tuple(ret)


@overload
def as_chunks(iterable: AsyncIterable[_T], /, max_size: int) -> AsyncGenerator[tuple[_T, ...], None]: ...


@overload
def as_chunks(iterable: Iterable[_T], /, max_size: int) -> Generator[tuple[_T, ...], None, None]: ...


def as_chunks(iterable: _Iter[_T], /, max_size: int) -> _Iter[tuple[_T, ...]]:
    """A helper function that collects an iterable into chunks of a given size.

    Parameters
    ----------
    iterable
        The iterable to chunk, can be sync or async.
    max_size
        The maximum chunk size.

    Warning
    -------
    The last chunk collected may not be as large as ``max_size``.

    Returns
    --------
    A new iterator which yields chunks of a given size.
    """
    if max_size <= 0:
        raise ValueError("max_size must be greater than 0")

    return _achunk(iterable, max_size) if hasattr(iterable, "__aiter__") else _chunk(iterable, max_size)  # type: ignore


async def maybe_coroutine(
    func: Callable[_P, _T | Awaitable[_T]],
    /,
    *args: _P.args,
    **kwargs: _P.kwargs,
) -> _T:
    value = func(*args, **kwargs)
    return await value if isawaitable(value) else value
