"""Assignee reference resolution and the assignee-preserving merge policy.

Resolution only ever enriches: an identifier that cannot be found in the
profile map is kept as-is, and nothing is fabricated.
"""

from collections.abc import Mapping

from boardsync.models import (
    Assignee,
    AssigneeRef,
    Profile,
    ResolvedAssignee,
    Unassigned,
    WorkItem,
)


def assignee_id(assignee: Assignee) -> str | None:
    match assignee:
        case Unassigned():
            return None
        case AssigneeRef(id=ref):
            return ref or None
        case ResolvedAssignee(profile=profile):
            return profile.id or None
    raise TypeError(f"Unknown assignee shape: {assignee!r}")


def assignee_name(assignee: Assignee) -> str | None:
    match assignee:
        case Unassigned() | AssigneeRef():
            return None
        case ResolvedAssignee(profile=profile):
            return profile.name if profile.has_display_name else None
    raise TypeError(f"Unknown assignee shape: {assignee!r}")


def resolve(assignee: Assignee, profiles: Mapping[str, Profile]) -> Assignee:
    match assignee:
        case Unassigned():
            return assignee
        case AssigneeRef(id=ref):
            found = profiles.get(ref)
            return ResolvedAssignee(profile=found) if found else assignee
        case ResolvedAssignee(profile=profile):
            if profile.has_display_name:
                return assignee
            found = profiles.get(profile.id)
            return ResolvedAssignee(profile=found) if found else assignee
    raise TypeError(f"Unknown assignee shape: {assignee!r}")


def resolve_assignee(item: WorkItem, profiles: Mapping[str, Profile]) -> WorkItem:
    """Return item with its assignee enriched from profiles, when possible."""
    resolved = resolve(item.assignee, profiles)
    if resolved is item.assignee:
        return item
    return item.model_copy(update={"assignee": resolved})


def preserve_assignee(incoming: WorkItem, previous: WorkItem | None, profiles: Mapping[str, Profile]) -> WorkItem:
    """Merge policy applied on every cache write.

    A record that carries no assignee data must not wipe an assignee the cache
    already knows about. Records that do carry one are resolved normally.
    """
    if previous is not None and incoming.assignee_omitted:
        kept = resolve(previous.assignee, profiles)
        return incoming.model_copy(update={"assignee": kept})
    return resolve_assignee(incoming, profiles)
