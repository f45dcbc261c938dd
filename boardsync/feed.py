"""Remote change feed listener.

Push events arrive in the order the transport delivers them and are handled
one at a time: foreign projects and malformed events are dropped, echoes of
this session's own writes are consumed, everything else is reconciled.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from boardsync.echo import EchoSuppressor
from boardsync.models import EventKind, FeedEvent, WorkItem
from boardsync.providers.base import ChangeFeed, Subscription
from boardsync.reconciler import Reconciler

logger = logging.getLogger(__name__)

_KINDS = {kind.value for kind in EventKind}


def parse_push_payload(raw: Mapping[str, Any]) -> FeedEvent | None:
    """Parse a realtime message of the form {"events": [...], "payload": {...}}.

    The event kind comes from the suffix of the first recognised event name
    (e.g. "databases.db.collections.tasks.documents.abc.update"). Returns None
    when the message cannot be understood.
    """
    names = raw.get("events") or []
    kind = None
    for name in names:
        suffix = str(name).rsplit(".", 1)[-1]
        if suffix in _KINDS:
            kind = EventKind(suffix)
            break
    if kind is None:
        return None

    payload = raw.get("payload")
    if not isinstance(payload, Mapping):
        return None
    body = payload.get("data", payload)
    if not isinstance(body, Mapping):
        return None

    item_id = body.get("$id") or body.get("id") or payload.get("$id")
    project_id = body.get("projectId") or body.get("project_id")

    record = None
    if kind is not EventKind.DELETE:
        try:
            record = WorkItem.model_validate(body)
        except ValidationError as exc:
            logger.debug("Unparseable %s payload for %s: %s", kind.value, item_id, exc.error_count())
            return None

    return FeedEvent(kind=kind, project_id=project_id, item_id=item_id, record=record)


class ChangeFeedListener:
    def __init__(
        self,
        project_id: str,
        feed: ChangeFeed,
        suppressor: EchoSuppressor,
        reconciler: Reconciler,
    ) -> None:
        self.project_id = project_id
        self._feed = feed
        self._suppressor = suppressor
        self._reconciler = reconciler
        self._subscription: Subscription | None = None
        self._held: list[FeedEvent] | None = None

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def holding(self) -> bool:
        return self._held is not None

    def start(self, *, hold: bool = False) -> None:
        """Subscribe to the feed. With hold=True events queue up until release()."""
        if self._subscription is not None:
            return
        if hold:
            self._held = []
        self._subscription = self._feed.subscribe(self.project_id, self.handle)
        logger.info("Listening for changes on project %s", self.project_id)

    def release(self) -> int:
        """Replay held events in arrival order. Returns how many reached the reconciler."""
        held, self._held = self._held or [], None
        return sum(1 for event in held if self.handle(event))

    def stop(self) -> None:
        self._held = None
        if self._subscription is None:
            return
        self._subscription.cancel()
        self._subscription = None
        logger.info("Stopped listening on project %s", self.project_id)

    def handle(self, event: FeedEvent) -> bool:
        """Process one event. Returns True when it reached the reconciler."""
        if not self.running:
            return False
        if self._held is not None:
            self._held.append(event)
            return False
        if not event.is_well_formed:
            logger.debug("Dropping malformed %s event", event.kind.value)
            return False
        if event.project_id != self.project_id:
            return False
        if self._suppressor.consume(event.target_id):
            return False
        self._reconciler.apply(event)
        return True
