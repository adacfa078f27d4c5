"""Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE"""

from __future__ import annotations

from collections.abc import Generator, Mapping
from enum import Enum as _Enum, EnumMeta as _EnumMeta
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final, Literal, cast

if TYPE_CHECKING:
    from typing_extensions import Never, Self

__all__ = (
    "Enum",
    "IntEnum",
    "PersonaState",
    "MessageType",
    "RequestKind",
    "ErrorKind",
)


def _is_descriptor(obj: object, /) -> bool:
    """Returns True if obj is a descriptor, False otherwise."""
    return hasattr(obj, "__get__") or hasattr(obj, "__set__") or hasattr(obj, "__delete__")


class EnumDict(dict[str, Any]):
    """Required to detect the difference between:

    class MyEnum(steamchat.Enum):
        A = 1
        B = 2
        C = A  # this is an alias for A and not a new member
        D = 2  # this is a distinct member
    """

    def __init__(self):
        self.aliases: set[str] = set()

    def __getitem__(self, key: str) -> Any:
        self.aliases.add(key)
        return super().__getitem__(key)


class EnumType(_EnumMeta if TYPE_CHECKING else type):
    _value_map_: Mapping[Any, Enum]
    _member_map_: Mapping[str, Enum]  # type: ignore

    @classmethod
    def __prepare__(mcs, name: str, bases: tuple[type, ...]) -> EnumDict:  # type: ignore
        return EnumDict()

    def __new__(mcs, name: str, bases: tuple[type, ...], namespace: EnumDict) -> type[Enum]:
        value_map: dict[Any, Enum] = {}
        member_map: dict[str, Enum] = {}

        new_mcs: type[Self] = type(
            f"{name}Type",
            tuple(
                dict.fromkeys([base.__class__ for base in bases if base.__class__ is not type] + [EnumType, type])
            ),  # reorder the bases so EnumType and type are last to avoid conflicts
            {"_value_map_": value_map, "_member_map_": member_map},
        )  # type: ignore

        members = {name: value for name, value in namespace.items() if not _is_descriptor(value) and name[0] != "_"}

        cls = cast(
            "type[Enum]",
            type.__new__(new_mcs, name, bases, {key: value for key, value in namespace.items() if key not in members}),
        )  # this allows us to disallow member access from other members as members become proper class variables

        for name, value in members.items():
            if (member := value_map.get(value)) is None or member.name not in namespace.aliases:
                member = cls._new_member(name=name, value=value)
                value_map[value] = member

            member_map[name] = member
            type.__setattr__(new_mcs, name, member)

        return cls

    if not TYPE_CHECKING:

        def __iter__(cls) -> Generator[Enum, None, None]:
            yield from cls._member_map_.values()

        def __reversed__(cls) -> Generator[Enum, None, None]:
            yield from reversed(cls._member_map_.values())

        def __getitem__(cls, key: str) -> Enum:
            return cls._member_map_[key]

        @property
        def __members__(cls) -> MappingProxyType[str, Enum]:
            return MappingProxyType(cls._member_map_)

    def __repr__(cls) -> str:
        return f"<enum {cls.__name__!r}>"

    def __len__(cls) -> int:
        return len(cls._member_map_)

    def __setattr__(cls, name: str, value: Any) -> Never:
        if name.startswith("__") and name.endswith("__"):
            return super().__setattr__(name, value)  # type: ignore
        raise AttributeError(f"{cls.__name__}: cannot reassign Enum members.")

    def __delattr__(cls, name: str) -> Never:
        raise AttributeError(f"{cls.__name__}: cannot delete Enum members.")

    def __contains__(cls, member: object) -> bool:
        return isinstance(member, Enum) and isinstance(member, cls) and member.name in cls._member_map_

    def __dir__(self) -> list[str]:
        return super().__dir__() + list(self._member_map_)


# pretending these are enum subclasses makes things much nicer for linters as enums have custom behaviour you can't
# replicate in the current type system
class Enum(_Enum if TYPE_CHECKING else object, metaclass=EnumType):
    """A general enumeration, emulates `enum.Enum`."""

    _member_map_: Mapping[str, Self]
    _value_map_: Mapping[Any, Self]

    def __new__(cls, value: Any) -> Self:
        try:
            return cls._value_map_[value]
        except (KeyError, TypeError):
            raise ValueError(f"{value!r} is not a valid {cls.__name__}") from None

    @classmethod
    def _new_member(cls, *, name: str, value: Any) -> Self:
        self = (
            super().__new__(cls, value)
            if any(not issubclass(base, Enum) for base in cls.__mro__[:-1])  # is it is a mixin enum
            else super().__new__(cls)  # type: ignore
        )
        super().__setattr__(self, "name", name)
        super().__setattr__(self, "value", value)

        return self

    def __setattr__(self, key: str, value: Any) -> Never:
        raise AttributeError(f"Cannot reassign {self.__class__.__name__} members attribute's.")

    def __delattr__(self, item: Any) -> Never:
        raise AttributeError(f"Cannot delete {self.__class__.__name__} attribute's.")

    def __bool__(self) -> Literal[True]:
        return True  # an enum member with a zero value would return False otherwise

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}.{self.name}"

    @classmethod
    def try_value(cls, value: Any, /) -> Self:
        try:
            return cls._value_map_[value]
        except (KeyError, TypeError):
            return cls._new_member(name=f"{cls.__name__}UnknownValue", value=value)


class IntEnum(Enum, int):
    """An enumeration where all the values are integers, emulates `enum.IntEnum`."""

    if TYPE_CHECKING:

        def __new__(cls, value: int) -> Self: ...

        @classmethod
        def try_value(cls, value: int) -> Self: ...


# fmt: off
class PersonaState(IntEnum):
    """The status of a user."""
    Offline = 0
    """The user is not currently logged on."""
    Online  = 1
    """The user is logged on."""
    Busy    = 2
    """The user is on, but busy."""
    Away    = 3
    """The user has been marked as AFK for a short period of time."""
    Snooze  = 4
    """The user has been marked as AFK for a long period of time."""

    @classmethod
    def try_value(cls, value: int) -> PersonaState:
        """Unlike other enums, unknown values are treated as :attr:`Offline`."""
        try:
            return cls._value_map_[value]
        except (KeyError, TypeError):
            return cls.Offline

    @classmethod
    def from_str(cls, string: str | None, /) -> PersonaState:
        """Case-insensitively look up a state by its name, falling back to :attr:`Offline`."""
        if string is None:
            return cls.Offline
        return _REVERSE_PERSONA_STATE_MAP.get(string.lower(), cls.Offline)


class MessageType(Enum):
    """The type of an entry sent to or received from the message endpoints."""
    SayText          = "saytext"
    """A regular chat message."""
    Emote            = "emote"
    """A ``/me`` style emote."""
    LeftConversation = "leftconversation"
    """The other user closed the conversation."""
    Relationship     = "personarelationship"
    """The relationship with a user changed."""
    State            = "personastate"
    """A user's persona state changed."""
    Typing           = "typing"
    """A user is typing."""
    Unknown          = ""
    """The type could not be matched."""

    @classmethod
    def from_str(cls, string: str | None, /) -> MessageType:
        """Case-insensitively look up a message type by its API name, falling back to :attr:`Unknown`."""
        if not string:
            return cls.Unknown
        return _REVERSE_MESSAGE_TYPE_MAP.get(string.lower(), cls.Unknown)


class RequestKind(IntEnum):
    """The kind of request a :class:`~steamchat.state.RequestContext` belongs to."""
    Auth      = 0
    Friends   = 1
    Logon     = 2
    Relogon   = 3
    Logoff    = 4
    Message   = 5
    Poll      = 6
    Summaries = 7

    @property
    def display_name(self) -> str:
        """The human readable name used to prefix error messages."""
        return _DISPLAY_NAMES[self]

    @property
    def returns_list(self) -> bool:
        """Whether callbacks for this kind receive a list of results as well as an error."""
        return self in (RequestKind.Friends, RequestKind.Poll, RequestKind.Summaries)


class ErrorKind(IntEnum):
    """The kind of an :class:`~steamchat.APIError`."""
    AuthFailed            = 0
    AuthRequiresGuardCode = 1
    FriendsEmpty          = 2
    LogonFailed           = 3
    RelogonFailed         = 4
    LogoffFailed          = 5
    MessageFailed         = 6
    PollFailed            = 7
    SummariesEmpty        = 8
    Parser                = 9
# fmt: on


_REVERSE_PERSONA_STATE_MAP: Final = cast(
    Mapping[str, PersonaState], {state.name.lower(): state for state in PersonaState}
)
_REVERSE_MESSAGE_TYPE_MAP: Final = cast(
    Mapping[str, MessageType], {type.value: type for type in MessageType if type is not MessageType.Unknown}
)
_DISPLAY_NAMES: Final = cast(
    Mapping[RequestKind, str],
    {
        RequestKind.Auth: "Authentication",
        RequestKind.Friends: "Friends",
        RequestKind.Logon: "Logon",
        RequestKind.Relogon: "Relogon",
        RequestKind.Logoff: "Logoff",
        RequestKind.Message: "Message",
        RequestKind.Poll: "Polling",
        RequestKind.Summaries: "Summaries",
    },
)
