# skillhub/api/__init__.py
# This file makes the api directory a Python package.

from . import auth
from . import cancellation
from . import completion
from . import notification
from . import progress
from . import session
from . import skill

__all__ = [
    "auth",
    "skill",
    "session",
    "completion",
    "cancellation",
    "progress",
    "notification",
]
