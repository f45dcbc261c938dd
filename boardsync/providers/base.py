"""Abstract collaborator contracts the sync core is written against."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable

from boardsync.filters import TaskFilters
from boardsync.models import FeedEvent, ItemStatus, Profile, WorkItem

EventHandler = Callable[[FeedEvent], None]


class TaskStore(ABC):
    @abstractmethod
    async def move_item(
        self,
        item_id: str,
        status: ItemStatus,
        rank: int,
        completed_by: str | None = None,
        clear_completed_by: bool = False,
    ) -> WorkItem: ...

    @abstractmethod
    async def list_items(
        self,
        project_id: str,
        filters: TaskFilters | None = None,
        cancelled: asyncio.Event | None = None,
    ) -> list[WorkItem]: ...

    @abstractmethod
    async def list_members(self, project_id: str) -> list[Profile]: ...

    async def aclose(self) -> None:
        """Release transport resources. No-op unless the store holds any."""


class Subscription:
    """Handle for a live feed subscription. cancel() runs teardown at most once."""

    def __init__(self, project_id: str, teardown: Callable[[], None]) -> None:
        self.project_id = project_id
        self._teardown: Callable[[], None] | None = teardown

    @property
    def active(self) -> bool:
        return self._teardown is not None

    def cancel(self) -> None:
        teardown, self._teardown = self._teardown, None
        if teardown is not None:
            teardown()


class ChangeFeed(ABC):
    @abstractmethod
    def subscribe(self, project_id: str, handler: EventHandler) -> Subscription: ...
