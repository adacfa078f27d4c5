"""Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE"""

from typing import Final, Literal, NamedTuple

__all__ = (
    "__title__",
    "__author__",
    "__license__",
    "__version__",
    "version_info",
)


class VersionInfo(NamedTuple):
    major: int
    minor: int
    micro: int
    releaselevel: Literal["alpha", "beta", "candidate", "final"]


__title__: Final = "steamchat"
__author__: Final = "Gobot1234"
__license__: Final = "MIT"
__version__: Final = "0.1.0"
version_info: Final = VersionInfo(major=0, minor=1, micro=0, releaselevel="final")
