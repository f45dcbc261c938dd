"""Column state machine: decides whether a proposed move is legal.

Rejections are values, not exceptions. A rejected move has no side effects and
never reaches the remote store, the same way a card that cannot be dropped
simply snaps back to its column.
"""

import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict

from boardsync.assignee import assignee_id
from boardsync.models import ItemStatus, MembershipContext, WorkItem

logger = logging.getLogger(__name__)


class Gate(str, Enum):
    OWNER = "owner"  # leader: any item; member: only items assigned to self
    LEADER = "leader"


# (source, dest, gate). Anything not listed is illegal; nothing ever enters backlog.
TRANSITIONS: list[tuple[ItemStatus, ItemStatus, Gate]] = [
    (ItemStatus.BACKLOG, ItemStatus.IN_PROGRESS, Gate.OWNER),
    (ItemStatus.IN_PROGRESS, ItemStatus.REVIEW, Gate.OWNER),
    (ItemStatus.REVIEW, ItemStatus.COMPLETED, Gate.LEADER),
    (ItemStatus.REVIEW, ItemStatus.BLOCKED, Gate.LEADER),
    (ItemStatus.BLOCKED, ItemStatus.IN_PROGRESS, Gate.OWNER),
    (ItemStatus.BLOCKED, ItemStatus.REVIEW, Gate.OWNER),
]

ALLOWED: dict[ItemStatus, dict[ItemStatus, Gate]] = {status: {} for status in ItemStatus}
for _source, _dest, _gate in TRANSITIONS:
    ALLOWED[_source][_dest] = _gate

TERMINAL = frozenset(status for status, dests in ALLOWED.items() if not dests)


class Approved(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    source: ItemStatus
    destination: ItemStatus
    actor_id: str
    completed_by: str | None = None
    clear_completed_by: bool = False


class Rejected(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str


MoveDecision = Approved | Rejected


def destinations(source: ItemStatus) -> list[ItemStatus]:
    return list(ALLOWED[source])


def is_owner(item: WorkItem, context: MembershipContext) -> bool:
    if context.actor.is_leader:
        return True
    owner = assignee_id(item.assignee)
    return owner is not None and owner == context.actor.id


def evaluate_move(item: WorkItem | None, destination: ItemStatus, context: MembershipContext) -> MoveDecision:
    """Approve or reject moving item into destination on behalf of context.actor."""
    decision = _evaluate(item, destination, context)
    if isinstance(decision, Rejected):
        logger.debug(
            "Move of %s to %s rejected: %s",
            item.id if item else "<missing>",
            destination.value,
            decision.reason,
        )
    return decision


def _evaluate(item: WorkItem | None, destination: ItemStatus, context: MembershipContext) -> MoveDecision:
    if item is None:
        return Rejected(reason="item not on board")
    if context.project_closed:
        return Rejected(reason="project is closed")

    source = item.status
    if source == destination:
        return Rejected(reason="item is already in that column")
    if destination is ItemStatus.BACKLOG:
        return Rejected(reason="items never return to backlog")
    if source in TERMINAL:
        return Rejected(reason=f"{source.value} is terminal")

    gate = ALLOWED[source].get(destination)
    if gate is None:
        return Rejected(reason=f"{source.value} -> {destination.value} is not a legal transition")

    actor = context.actor
    match gate:
        case Gate.LEADER:
            if not actor.is_leader:
                return Rejected(reason="only the project leader may perform this move")
        case Gate.OWNER:
            if not is_owner(item, context):
                return Rejected(reason="members may only move items assigned to them")

    leader_completion = destination is ItemStatus.COMPLETED and actor.is_leader
    return Approved(
        item_id=item.id,
        source=source,
        destination=destination,
        actor_id=actor.id,
        completed_by=actor.id if leader_completion else None,
        clear_completed_by=not leader_completion and item.completed_by is not None,
    )
