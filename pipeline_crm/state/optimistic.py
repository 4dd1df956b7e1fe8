"""Committed/pending values for optimistic updates."""

import itertools
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_UNSET: Any = object()


class OptimisticValue(Generic[T]):
    """A value shown before the backend confirms it.

    ``value`` is the pending value while a request is outstanding, and the
    last committed value otherwise. A failed request rolls back to the
    committed value.
    """

    def __init__(self, committed: T) -> None:
        self.committed = committed
        self._pending: T = _UNSET

    @property
    def value(self) -> T:
        return self.committed if self._pending is _UNSET else self._pending

    @property
    def is_pending(self) -> bool:
        return self._pending is not _UNSET

    def set_pending(self, value: T) -> None:
        self._pending = value

    def commit(self) -> None:
        if self._pending is not _UNSET:
            self.committed = self._pending
            self._pending = _UNSET

    def rollback(self) -> None:
        self._pending = _UNSET

    def reset(self, committed: T) -> None:
        """Replace the committed value with fresh server state."""
        self.committed = committed
        self._pending = _UNSET

    def __repr__(self) -> str:
        pending = "" if self._pending is _UNSET else f", pending={self._pending!r}"
        return f"OptimisticValue({self.committed!r}{pending})"


class OptimisticCounter:
    """A count shown net of the adjustments still awaiting the backend.

    Each request holds its own delta under a token, so requests settle
    independently: a commit folds only that request's delta into the
    committed count, and a rollback drops only that delta.
    """

    def __init__(self, committed: int = 0) -> None:
        self.committed = committed
        self._pending: dict[int, int] = {}
        self._tokens = itertools.count()

    @property
    def value(self) -> int:
        return max(0, self.committed + sum(self._pending.values()))

    @property
    def is_pending(self) -> bool:
        return bool(self._pending)

    def adjust(self, delta: int) -> int:
        """Hold ``delta`` until the matching commit or rollback; returns its token."""
        token = next(self._tokens)
        self._pending[token] = delta
        return token

    def commit(self, token: int) -> None:
        delta = self._pending.pop(token, None)
        if delta is not None:
            self.committed = max(0, self.committed + delta)

    def rollback(self, token: int) -> None:
        self._pending.pop(token, None)

    def reset(self, committed: int) -> None:
        """Replace the committed count with fresh server state."""
        self.committed = committed
        self._pending.clear()

    def __repr__(self) -> str:
        return f"OptimisticCounter({self.committed!r}, pending={sorted(self._pending.values())!r})"
