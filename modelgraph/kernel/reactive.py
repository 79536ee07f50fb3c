"""
ModelGraph Kernel: Reactive Cells

A tiny observer layer the store is built on.

  Cell:        a mutable value; get() registers the read, set() notifies
  Derived:     a lazily recomputed value over cells and other derived values
  transaction: batch boundary; subscribers run once, after the outermost batch

Derived values are pull-based: a change only marks them stale, and the next
get() recomputes. Subscribers are push-based and are the only thing deferred
by a transaction, so engine code reading mid-batch always sees current stores
while outside observers never see a half-applied batch.
"""

from __future__ import annotations

import weakref
from contextlib import contextmanager
from typing import Any, Callable, Iterator

Subscriber = Callable[[Any], None]

# Derived values currently being evaluated (innermost last)
_tracking: list[Derived] = []

# Open transaction depth and nodes whose subscribers wait for the flush
_batch_depth = 0
_pending: dict[int, Observable] = {}


class Observable:
    """Base for anything that can be read inside a Derived and subscribed to."""

    def __init__(self) -> None:
        self._observers: weakref.WeakSet[Derived] = weakref.WeakSet()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        """
        Call fn(value) after every change. Returns a function that unsubscribes.
        Inside a transaction the call is deferred until the batch completes.
        The returned function keeps this node alive; sources only hold weak
        references to the Derived values reading them.
        """
        self._subscribers.append(fn)

        def unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return unsubscribe

    def get(self) -> Any:
        raise NotImplementedError

    def _report_read(self) -> None:
        if _tracking:
            derived = _tracking[-1]
            self._observers.add(derived)
            derived._sources.add(self)

    def _report_changed(self) -> None:
        for observer in list(self._observers):
            observer._invalidate()
        _schedule(self)

    def _notify(self) -> None:
        if not self._subscribers:
            return
        value = self.get()
        for fn in list(self._subscribers):
            fn(value)


class Cell(Observable):
    """A single mutable value."""

    def __init__(self, value: Any = None) -> None:
        super().__init__()
        self._value = value

    def get(self) -> Any:
        self._report_read()
        return self._value

    def peek(self) -> Any:
        """Read without registering a dependency."""
        return self._value

    def set(self, value: Any) -> None:
        if value is self._value:
            return
        self._value = value
        self._report_changed()

    def touch(self) -> None:
        """Signal an in-place mutation of the held value."""
        self._report_changed()

    def __repr__(self) -> str:  # pragma: no cover
        return f"Cell({self._value!r})"


class Derived(Observable):
    """A cached value computed from other observables."""

    def __init__(self, fn: Callable[[], Any]) -> None:
        super().__init__()
        self._fn = fn
        self._value: Any = None
        self._stale = True
        self._sources: set[Observable] = set()

    def get(self) -> Any:
        self._report_read()
        if self._stale:
            self._recompute()
        return self._value

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        # Prime the value so the first change has a dependency set to invalidate
        if self._stale:
            self._recompute()
        return super().subscribe(fn)

    @property
    def stale(self) -> bool:
        return self._stale

    def _recompute(self) -> None:
        for source in self._sources:
            source._observers.discard(self)
        self._sources = set()

        _tracking.append(self)
        try:
            self._value = self._fn()
        finally:
            _tracking.pop()
        self._stale = False

    def _invalidate(self) -> None:
        # Already stale: downstream was told and nobody has read since
        if self._stale:
            return
        self._stale = True
        for observer in list(self._observers):
            observer._invalidate()
        _schedule(self)

    def __repr__(self) -> str:  # pragma: no cover
        state = "stale" if self._stale else repr(self._value)
        return f"Derived({state})"


# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------


def _schedule(node: Observable) -> None:
    if not node._subscribers:
        return
    if _batch_depth:
        _pending[id(node)] = node
    else:
        node._notify()


def _flush() -> None:
    while _pending:
        key = next(iter(_pending))
        node = _pending.pop(key)
        node._notify()


@contextmanager
def transaction() -> Iterator[None]:
    """
    Group several store writes into one batch.

    Re-entrant: nested transactions join the outer one. Subscribers run once
    the outermost block exits, including when it exits with an exception.
    """
    global _batch_depth
    _batch_depth += 1
    try:
        yield
    finally:
        _batch_depth -= 1
        if _batch_depth == 0:
            _flush()


def in_transaction() -> bool:
    return _batch_depth > 0


def autorun(fn: Callable[[], Any]) -> Callable[[], None]:
    """
    Run fn now and again after every change to anything it read.
    Returns a function that stops the reaction; the reaction lives as long as
    that function is referenced.
    """
    derived = Derived(fn)
    derived.get()
    return derived.subscribe(lambda _value: None)
