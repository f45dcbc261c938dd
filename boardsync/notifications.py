"""Who gets told about a successful move.

Only the intents are produced here; rendering and delivery belong to the host
application's notification sink.
"""

import logging
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict

from boardsync.assignee import assignee_id, assignee_name
from boardsync.models import ItemStatus, MembershipContext, WorkItem

logger = logging.getLogger(__name__)


class NotificationIntent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str  # task.completed | task.movedToBlocked | task.movedToCompleted
    recipient_id: str
    actor_id: str
    item_id: str
    project_id: str | None = None
    audience: str  # "leader" | "assignee"
    metadata: dict[str, str] = {}


NotificationSink = Callable[[NotificationIntent], None]


def plan_move_notifications(
    item: WorkItem,
    destination: ItemStatus,
    context: MembershipContext,
) -> list[NotificationIntent]:
    """Return the notifications a move of item into destination should raise."""
    actor = context.actor
    owner = assignee_id(item.assignee)
    metadata = {"taskTitle": item.title, "actorName": actor.name}
    intents: list[NotificationIntent] = []

    # a member handing their own work over for review counts as finishing it
    if not actor.is_leader and owner == actor.id and destination in (ItemStatus.REVIEW, ItemStatus.COMPLETED):
        if context.leader_id and context.leader_id != actor.id:
            intents.append(
                NotificationIntent(
                    type="task.completed",
                    recipient_id=context.leader_id,
                    actor_id=actor.id,
                    item_id=item.id,
                    project_id=item.project_id,
                    audience="leader",
                    metadata={**metadata, "memberName": actor.name},
                )
            )

    if actor.is_leader and owner and owner != actor.id:
        kind = {
            ItemStatus.BLOCKED: "task.movedToBlocked",
            ItemStatus.COMPLETED: "task.movedToCompleted",
        }.get(destination)
        if kind:
            intents.append(
                NotificationIntent(
                    type=kind,
                    recipient_id=owner,
                    actor_id=actor.id,
                    item_id=item.id,
                    project_id=item.project_id,
                    audience="assignee",
                    metadata={**metadata, "memberName": assignee_name(item.assignee) or ""},
                )
            )

    return intents


def deliver(intents: list[NotificationIntent], sink: NotificationSink | None) -> None:
    if sink is None:
        return
    for intent in intents:
        try:
            sink(intent)
        except Exception as exc:
            logger.warning("Notification %s for %s failed: %s", intent.type, intent.recipient_id, exc)
