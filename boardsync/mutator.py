"""Optimistic column moves with a rollback path.

A move is captured as a MoveCommand holding the pre-move snapshot and the
tentative result, so apply() and rollback() can be driven and tested without a
real network failure.
"""

import asyncio
import logging
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict

from boardsync.assignee import preserve_assignee
from boardsync.echo import EchoSuppressor
from boardsync.errors import StoreError
from boardsync.models import MembershipContext, WorkItem
from boardsync.notifications import NotificationSink, deliver, plan_move_notifications
from boardsync.providers.base import TaskStore
from boardsync.state_machine import Approved
from boardsync.store import MergeStore

logger = logging.getLogger(__name__)

Notice = Callable[[str], None]


def _log_notice(message: str) -> None:
    logger.warning(message)


class MoveCommand:
    def __init__(self, approved: Approved, previous: WorkItem, updated: WorkItem) -> None:
        self.approved = approved
        self.previous = previous
        self.updated = updated

    @classmethod
    def build(cls, approved: Approved, store: MergeStore, context: MembershipContext) -> "MoveCommand | None":
        previous = store.get(approved.item_id)
        if previous is None:
            return None

        # appended to the end of the destination column
        rank = store.count_in(approved.destination, excluding=previous.id)

        if approved.completed_by is not None:
            completed_by = approved.completed_by
        elif approved.clear_completed_by:
            completed_by = None
        else:
            completed_by = previous.completed_by

        updated = previous.model_copy(
            update={"status": approved.destination, "rank": rank, "completed_by": completed_by}
        )
        updated = preserve_assignee(updated, previous, context.profiles)
        return cls(approved, previous, updated)

    @property
    def item_id(self) -> str:
        return self.previous.id

    def apply(self, store: MergeStore) -> None:
        store.put(self.updated)

    def rollback(self, store: MergeStore) -> None:
        store.put(self.previous)


class MoveOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    item: WorkItem | None = None
    message: str | None = None


class OptimisticMutator:
    def __init__(
        self,
        store: MergeStore,
        remote: TaskStore,
        suppressor: EchoSuppressor,
        context: MembershipContext,
        notice: Notice | None = None,
        notifications: NotificationSink | None = None,
    ) -> None:
        self._store = store
        self._remote = remote
        self._suppressor = suppressor
        self._context = context
        self._notice = notice or _log_notice
        self._notifications = notifications

    async def move(self, approved: Approved) -> MoveOutcome:
        command = MoveCommand.build(approved, self._store, self._context)
        if command is None:
            return MoveOutcome(ok=False, message=f"Item '{approved.item_id}' is not on the board")

        # Local state changes before the write suspends.
        command.apply(self._store)
        self._suppressor.register(command.item_id)

        updated = command.updated
        try:
            record = await self._remote.move_item(
                updated.id,
                updated.status,
                updated.rank,
                completed_by=approved.completed_by,
                clear_completed_by=approved.clear_completed_by,
            )
        except asyncio.CancelledError:
            self._revert(command)
            raise
        except StoreError as exc:
            return self._fail(command, exc)
        except Exception as exc:
            logger.exception("Task store raised an unexpected error moving item %s", command.item_id)
            return self._fail(command, exc)

        if command.item_id in self._store:
            merged = self._store.merge(record, self._context.profiles)
        else:
            # deleted remotely while the write was in flight
            merged = record
        logger.info("Moved item %s to %s (rank %d)", merged.id, merged.status.value, merged.rank)

        deliver(plan_move_notifications(command.previous, approved.destination, self._context), self._notifications)
        return MoveOutcome(ok=True, item=merged)

    def _revert(self, command: MoveCommand) -> None:
        command.rollback(self._store)
        self._suppressor.discard(command.item_id)

    def _fail(self, command: MoveCommand, exc: Exception) -> MoveOutcome:
        self._revert(command)
        updated = command.updated
        message = f"Could not move '{updated.title or updated.id}' to {updated.status.value}: {exc}"
        self._notice(message)
        return MoveOutcome(ok=False, item=command.previous, message=message)
