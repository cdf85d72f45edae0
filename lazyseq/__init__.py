"""
lazyseq - lazily evaluated, chainable sequences.

Sequence composes deferred operations over a synchronous source;
AsyncSequence does the same over values that must be awaited.
"""

from .async_lazy import AsyncSequence
from .guard import AsyncConstrainedCursor, ConstrainedCursor
from .lazy import Sequence
from .models import JoinOptions, LoggingSettings, OpKind
from .utils import IllegalStateError, setup_logging

__all__ = [
    "AsyncConstrainedCursor",
    "AsyncSequence",
    "ConstrainedCursor",
    "IllegalStateError",
    "JoinOptions",
    "LoggingSettings",
    "OpKind",
    "Sequence",
    "setup_logging",
]

__version__ = "1.0.0"
