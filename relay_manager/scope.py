"""Hierarchical cancellation scopes.

A scope is cancelled explicitly or when its parent is. Scopes are
passed down the ownership tree (manager -> relay -> cycle) instead of
being shared as global state.

Scopes may be created outside a running event loop; the underlying
``asyncio.Event`` is only created the first time a coroutine waits on it.
"""

import asyncio
from typing import List, Optional, Tuple


class CancelScope:
    """Cancellation signal propagating from a parent scope to its children."""

    def __init__(self, parent: Optional["CancelScope"] = None):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None
        self._children: List["CancelScope"] = []
        self.parent = parent

        if parent is not None:
            if parent.cancelled:
                self._cancelled = True
            else:
                parent._children.append(self)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def children(self) -> Tuple["CancelScope", ...]:
        """Live (not yet cancelled) child scopes."""
        return tuple(self._children)

    def child(self) -> "CancelScope":
        """Create a scope cancelled together with this one."""
        return CancelScope(parent=self)

    def cancel(self) -> None:
        """Cancel this scope and every descendant. Idempotent.

        A cancelled scope is detached from its parent.
        """
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()

        children, self._children = self._children, []
        for child in children:
            child.cancel()

        if self.parent is not None and self in self.parent._children:
            self.parent._children.remove(self)

    def _waiter(self) -> asyncio.Event:
        # Created inside the running loop so it binds to that loop
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    async def wait(self) -> None:
        """Block until the scope is cancelled."""
        await self._waiter().wait()

    async def sleep(self, delay: float) -> bool:
        """
        Sleep for ``delay`` seconds unless cancelled first.

        Returns:
            True if the scope was cancelled before or during the sleep
        """
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._waiter().wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
