"""Versioned in-memory snapshot shared by the catalog and the ledger."""

from typing import Generic, Iterable, TypeVar

T = TypeVar("T")


class VersionedSnapshot(Generic[T]):
    """
    Last fully fetched collection, with last-refresh-wins ordering.

    Every refresh takes a ticket from ``issue()`` before it starts. Its
    result is only applied if no later-issued refresh has been applied
    already, so a slow early response can never overwrite a newer one.
    """

    def __init__(self):
        self._items: tuple[T, ...] = ()
        self._issued = 0
        self._applied = 0
        self.loaded = False

    @property
    def items(self) -> tuple[T, ...]:
        return self._items

    @property
    def issued(self) -> int:
        return self._issued

    @property
    def applied(self) -> int:
        return self._applied

    def issue(self) -> int:
        self._issued += 1
        return self._issued

    def is_stale(self, ticket: int) -> bool:
        return ticket <= self._applied

    def apply(self, ticket: int, items: Iterable[T]) -> bool:
        """Replace the snapshot with ``items`` unless ``ticket`` is stale."""
        if self.is_stale(ticket):
            return False
        self._items = tuple(items)
        self._applied = ticket
        self.loaded = True
        return True

    def replace_items(self, items: Iterable[T]) -> None:
        """Local edit of the current snapshot; ticket bookkeeping is unchanged."""
        self._items = tuple(items)

    def reset(self) -> None:
        """Drop the data and invalidate every refresh issued so far."""
        self._items = ()
        self._applied = self._issued
        self.loaded = False
