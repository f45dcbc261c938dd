"""In-process task store and change feed.

Behaves like a collection-wide realtime channel: every write is pushed to every
subscriber, including the session that made it, and subscribers filter by
project themselves. Used for tests, the CLI demo board and multi-client
simulations.
"""

import asyncio
from collections.abc import Iterable

from boardsync.errors import FetchCancelled, StoreError
from boardsync.filters import TaskFilters
from boardsync.models import EventKind, FeedEvent, ItemStatus, Profile, WorkItem
from boardsync.providers.base import ChangeFeed, EventHandler, Subscription, TaskStore


class InMemoryBoard(TaskStore, ChangeFeed):
    def __init__(
        self,
        items: Iterable[WorkItem] = (),
        members: Iterable[Profile] = (),
        *,
        deliver_immediately: bool = True,
    ) -> None:
        self._items: dict[str, WorkItem] = {item.id: item for item in items}
        self._members = list(members)
        self._handlers: list[EventHandler] = []
        self._failures: list[Exception] = []
        self.deliver_immediately = deliver_immediately
        self.outbox: list[FeedEvent] = []
        self.writes: list[dict] = []
        self.subscriptions_opened = 0
        self.subscriptions_closed = 0

    # -- test controls ------------------------------------------------------

    def fail_next_move(self, error: Exception | None = None) -> None:
        self._failures.append(error or StoreError("simulated write failure"))

    def record(self, item_id: str) -> WorkItem | None:
        return self._items.get(item_id)

    def flush(self) -> int:
        """Deliver queued events in arrival order. Returns how many were sent."""
        pending, self.outbox = self.outbox, []
        for event in pending:
            self._dispatch(event)
        return len(pending)

    # -- external CRUD (outside the sync core) ------------------------------

    def create_item(self, item: WorkItem) -> WorkItem:
        self._items[item.id] = item
        self.publish(FeedEvent(kind=EventKind.CREATE, project_id=item.project_id, record=item))
        return item

    def delete_item(self, item_id: str) -> None:
        item = self._items.pop(item_id, None)
        if item is None:
            raise StoreError(f"Item '{item_id}' not found")
        self.publish(FeedEvent(kind=EventKind.DELETE, project_id=item.project_id, item_id=item_id))

    # -- TaskStore ----------------------------------------------------------

    async def move_item(
        self,
        item_id: str,
        status: ItemStatus,
        rank: int,
        completed_by: str | None = None,
        clear_completed_by: bool = False,
    ) -> WorkItem:
        self.writes.append(
            {
                "item_id": item_id,
                "status": status,
                "rank": rank,
                "completed_by": completed_by,
                "clear_completed_by": clear_completed_by,
            }
        )
        await asyncio.sleep(0)  # suspend like a network round-trip
        if self._failures:
            raise self._failures.pop(0)

        current = self._items.get(item_id)
        if current is None:
            raise StoreError(f"Item '{item_id}' not found")

        update: dict = {"status": status, "rank": rank}
        if completed_by is not None:
            update["completed_by"] = completed_by
        elif clear_completed_by:
            update["completed_by"] = None
        stored = current.model_copy(update=update)
        self._items[item_id] = stored
        self.publish(FeedEvent(kind=EventKind.UPDATE, project_id=stored.project_id, record=stored))
        return stored

    async def list_items(
        self,
        project_id: str,
        filters: TaskFilters | None = None,
        cancelled: asyncio.Event | None = None,
    ) -> list[WorkItem]:
        await asyncio.sleep(0)
        if cancelled is not None and cancelled.is_set():
            raise FetchCancelled(f"Listing items for '{project_id}' was cancelled")
        items = [item for item in self._items.values() if item.project_id == project_id]
        if filters is not None:
            items = [item for item in items if filters.matches(item)]
        return items

    async def list_members(self, project_id: str) -> list[Profile]:
        return list(self._members)

    # -- ChangeFeed ---------------------------------------------------------

    def subscribe(self, project_id: str, handler: EventHandler) -> Subscription:
        self._handlers.append(handler)
        self.subscriptions_opened += 1

        def teardown() -> None:
            self._handlers.remove(handler)
            self.subscriptions_closed += 1

        return Subscription(project_id, teardown)

    def publish(self, event: FeedEvent) -> None:
        if self.deliver_immediately:
            self._dispatch(event)
        else:
            self.outbox.append(event)

    def _dispatch(self, event: FeedEvent) -> None:
        for handler in list(self._handlers):
            handler(event)
