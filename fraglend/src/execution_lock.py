"""Process-wide serialization point.

Every public state-touching operation of the pricing engine and the
collateral ledger runs under one lock, so no two operations
interleave. The lock is reentrant so a serialized operation may call another
serialized operation on the same thread. Read-only valuation paths are not
serialized; state they read as a unit is replaced in a single assignment.
"""

from __future__ import annotations

import functools
import threading
from typing import Callable, TypeVar

F = TypeVar("F", bound=Callable)

GLOBAL_EXECUTION_LOCK = threading.RLock()


def serialized(func: F) -> F:
    """Run ``func`` while holding :data:`GLOBAL_EXECUTION_LOCK`.

    .. code-block:: python

        class Ledger:
            @serialized
            def deposit(self, caller, collateral_type, item_ids):
                ...
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with GLOBAL_EXECUTION_LOCK:
            return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]
