"""The authoritative in-memory item collection for one board session.

Only the optimistic mutator and the reconciler write to it. Every write ends
with a dedupe pass and a re-run of the display predicate, then listeners are
told synchronously.
"""

from collections.abc import Callable, Iterable, Mapping

from boardsync.assignee import preserve_assignee
from boardsync.filters import ItemPredicate
from boardsync.models import ItemStatus, Profile, WorkItem

StoreListener = Callable[["MergeStore"], None]


def dedupe(items: Iterable[WorkItem]) -> list[WorkItem]:
    """Collapse repeated ids: first position wins, last value wins."""
    order: list[str] = []
    latest: dict[str, WorkItem] = {}
    for item in items:
        if item.id not in latest:
            order.append(item.id)
        latest[item.id] = item
    return [latest[item_id] for item_id in order]


def fill_omitted(incoming: WorkItem, previous: WorkItem | None) -> WorkItem:
    """Carry over cached values for fields a partial record did not send.

    The assignee is left alone here; preserve_assignee owns that field.
    """
    if previous is None:
        return incoming
    missing = {
        name: getattr(previous, name)
        for name in WorkItem.model_fields
        if name != "assignee" and name not in incoming.model_fields_set
    }
    return incoming.model_copy(update=missing) if missing else incoming


def _show_all(item: WorkItem) -> bool:
    return True


class MergeStore:
    def __init__(self, predicate: ItemPredicate | None = None) -> None:
        self._items: list[WorkItem] = []
        self._visible: list[WorkItem] = []
        self._predicate: ItemPredicate = predicate or _show_all
        self._listeners: list[StoreListener] = []

    # -- reads --------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return any(item.id == item_id for item in self._items)

    @property
    def items(self) -> list[WorkItem]:
        return list(self._items)

    @property
    def visible(self) -> list[WorkItem]:
        return list(self._visible)

    def get(self, item_id: str) -> WorkItem | None:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def column(self, status: ItemStatus, *, visible_only: bool = False) -> list[WorkItem]:
        source = self._visible if visible_only else self._items
        return sorted((item for item in source if item.status is status), key=lambda item: item.rank)

    def columns(self, *, visible_only: bool = True) -> dict[ItemStatus, list[WorkItem]]:
        return {status: self.column(status, visible_only=visible_only) for status in ItemStatus}

    def count_in(self, status: ItemStatus, *, excluding: str | None = None) -> int:
        return sum(1 for item in self._items if item.status is status and item.id != excluding)

    # -- writes -------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_predicate(self, predicate: ItemPredicate | None) -> None:
        self._predicate = predicate or _show_all
        self._commit()

    def replace_all(self, items: Iterable[WorkItem], profiles: Mapping[str, Profile]) -> None:
        self._items = [preserve_assignee(item, None, profiles) for item in items]
        self._commit()

    def put(self, item: WorkItem) -> None:
        """Write item verbatim (optimistic apply and rollback)."""
        self._upsert(item)
        self._commit()

    def merge(self, item: WorkItem, profiles: Mapping[str, Profile]) -> WorkItem:
        """Upsert a possibly partial record; omitted fields keep their cached values."""
        previous = self.get(item.id)
        merged = preserve_assignee(fill_omitted(item, previous), previous, profiles)
        self._upsert(merged)
        self._commit()
        return merged

    def remove(self, item_id: str) -> bool:
        before = len(self._items)
        self._items = [item for item in self._items if item.id != item_id]
        self._commit()
        return len(self._items) != before

    def refresh(self, transform: Callable[[WorkItem], WorkItem]) -> None:
        self._items = [transform(item) for item in self._items]
        self._commit()

    def _upsert(self, item: WorkItem) -> None:
        for index, existing in enumerate(self._items):
            if existing.id == item.id:
                self._items[index] = item
                return
        self._items.append(item)

    def _commit(self) -> None:
        self._items = dedupe(self._items)
        self._visible = [item for item in self._items if self._predicate(item)]
        for listener in list(self._listeners):
            listener(self)
