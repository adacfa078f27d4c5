"""
steamchat
~~~~~~~~~

An asynchronous client for the Steam web chat API.

Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE
"""

from . import utils as utils
from .__metadata__ import *
from .client import *
from .enums import *
from .errors import *
from .http import *
from .models import *
from .state import *

__import__("logging").getLogger(__name__).addHandler(__import__("logging").NullHandler())  # don't leak scope
