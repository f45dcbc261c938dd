"""BoardSession: everything one open board needs, with an explicit lifecycle.

A session is created when a board is opened and closed when it is left or the
project changes. It owns the echo registry, the merge store and the feed
subscription, so none of them outlive the view that uses them.

Usage:
    async with BoardSession(project_id, context, store, feed) as session:
        result = await session.move("item-1", ItemStatus.IN_PROGRESS)
"""

import asyncio
import logging
from collections.abc import Iterable

from boardsync.echo import EchoSuppressor
from boardsync.errors import FetchCancelled, SessionClosed
from boardsync.feed import ChangeFeedListener
from boardsync.filters import TaskFilters
from boardsync.models import ItemStatus, MembershipContext, Profile, WorkItem
from boardsync.mutator import MoveOutcome, Notice, OptimisticMutator
from boardsync.notifications import NotificationSink
from boardsync.providers.base import ChangeFeed, TaskStore
from boardsync.reconciler import Reconciler
from boardsync.state_machine import MoveDecision, Rejected, evaluate_move
from boardsync.store import MergeStore

logger = logging.getLogger(__name__)


class BoardSession:
    def __init__(
        self,
        project_id: str,
        context: MembershipContext,
        store: TaskStore,
        feed: ChangeFeed,
        *,
        filters: TaskFilters | None = None,
        notice: Notice | None = None,
        notifications: NotificationSink | None = None,
    ) -> None:
        self.project_id = project_id
        self.context = context
        self._remote = store
        self._cancelled = asyncio.Event()
        self._load_task: asyncio.Task | None = None
        self._closed = False

        self.suppressor = EchoSuppressor()
        self.items = MergeStore()
        self.reconciler = Reconciler(self.items, context)
        self.mutator = OptimisticMutator(
            self.items,
            store,
            self.suppressor,
            context,
            notice=notice,
            notifications=notifications,
        )
        self.listener = ChangeFeedListener(project_id, feed, self.suppressor, self.reconciler)
        self.filters = TaskFilters()
        if filters is not None:
            self.set_filters(filters)

    async def __aenter__(self) -> "BoardSession":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def aborted(self) -> bool:
        return self._cancelled.is_set()

    # -- lifecycle ----------------------------------------------------------

    async def open(self) -> None:
        """Subscribe, load the board, then apply whatever arrived during the load."""
        self._ensure_open()
        # events published while the snapshot is in flight are held, then replayed
        self.listener.start(hold=True)
        try:
            await self.load()
        except BaseException:
            self.listener.stop()
            raise
        replayed = self.listener.release()
        logger.info(
            "Opened board for project %s with %d item(s), %d change(s) replayed",
            self.project_id,
            len(self.items),
            replayed,
        )

    async def load(self) -> None:
        """Fetch members and the full item collection.

        Filters are applied locally so column sizes (and therefore ranks) are
        always computed over the whole board.
        """
        self._ensure_open()
        self._load_task = asyncio.ensure_future(self._fetch())
        try:
            members, items = await self._load_task
        except asyncio.CancelledError:
            if self.aborted:
                raise FetchCancelled(f"Loading project '{self.project_id}' was cancelled") from None
            raise
        finally:
            self._load_task = None

        if self.aborted:
            raise FetchCancelled(f"Loading project '{self.project_id}' was cancelled")

        if members:
            self.context.profiles = {**self.context.profiles, **{p.id: p for p in members}}
        self.items.replace_all(items, self.context.profiles)

    async def _fetch(self) -> tuple[list[Profile], list[WorkItem]]:
        members = await self._remote.list_members(self.project_id)
        items = await self._remote.list_items(self.project_id, None, self._cancelled)
        return members, items

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cancelled.set()
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self.listener.stop()
        self.suppressor.close()
        logger.info("Closed board for project %s", self.project_id)

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosed(self.project_id)

    # -- operations ---------------------------------------------------------

    def evaluate(self, item_id: str, destination: ItemStatus) -> MoveDecision:
        return evaluate_move(self.items.get(item_id), destination, self.context)

    async def move(self, item_id: str, destination: ItemStatus) -> Rejected | MoveOutcome:
        """Move an item between columns. Illegal moves come back as Rejected, with no side effects."""
        self._ensure_open()
        decision = self.evaluate(item_id, destination)
        if isinstance(decision, Rejected):
            return decision
        return await self.mutator.move(decision)

    def set_filters(self, filters: TaskFilters | None) -> None:
        self.filters = filters or TaskFilters()
        predicate = None if self.filters.is_empty() else self.filters.predicate(self.context.actor.id)
        self.items.set_predicate(predicate)

    def update_profiles(self, profiles: Iterable[Profile]) -> None:
        """Swap in a refreshed profile map and re-resolve stored assignees."""
        self.context.profiles = {profile.id: profile for profile in profiles}
        self.reconciler.reresolve()
