"""Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE"""
# NB: this is the only types file that is expected to importable at runtime
#     these are internal types and user's shouldn't ever have to use them for the public API

from typing import NewType as _NewType

# the web presence API sends and expects 64 bit ids as decimal strings
ID64 = _NewType("ID64", str)
QueueID = _NewType("QueueID", str)  # umqid
