"""Applies change-feed events that did not originate from this session."""

import logging

from boardsync.assignee import resolve_assignee
from boardsync.models import EventKind, FeedEvent, MembershipContext
from boardsync.store import MergeStore

logger = logging.getLogger(__name__)


class Reconciler:
    def __init__(self, store: MergeStore, context: MembershipContext) -> None:
        self._store = store
        self._context = context

    def apply(self, event: FeedEvent) -> None:
        match event.kind:
            case EventKind.CREATE | EventKind.UPDATE:
                if event.record is None:
                    logger.debug("Dropping %s event without a record", event.kind.value)
                    return
                self._store.merge(event.record, self._context.profiles)
                logger.debug("Reconciled %s for item %s", event.kind.value, event.record.id)
            case EventKind.DELETE:
                target = event.target_id
                if target is None:
                    logger.debug("Dropping delete event without an item id")
                    return
                self._store.remove(target)
                logger.debug("Removed item %s", target)

    def reresolve(self) -> None:
        """Re-run assignee resolution after the profile map was refreshed."""
        profiles = self._context.profiles
        self._store.refresh(lambda item: resolve_assignee(item, profiles))
