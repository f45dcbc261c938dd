"""Display filter criteria for a board view.

Within the assignment group and within the due-date group the active options
are OR-ed; groups (and the priority and issue-type sets) are AND-ed together.
"""

from collections.abc import Callable
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from boardsync.assignee import assignee_id
from boardsync.models import WorkItem

ItemPredicate = Callable[[WorkItem], bool]

PRIORITIES = ("low", "medium", "high")
ISSUE_TYPES = ("feature", "bug", "improvement")


class TaskFilters(BaseModel):
    model_config = ConfigDict(frozen=True)

    no_assignee: bool = False
    my_tasks: bool = False
    selected_members: list[str] = []
    no_due_date: bool = False
    overdue: bool = False
    priorities: frozenset[str] = frozenset()
    issue_types: frozenset[str] = frozenset()

    def active_count(self) -> int:
        count = sum([self.no_assignee, self.my_tasks, self.no_due_date, self.overdue])
        return count + len(self.selected_members) + len(self.priorities) + len(self.issue_types)

    def is_empty(self) -> bool:
        return self.active_count() == 0

    def matches(self, item: WorkItem, current_user_id: str | None = None, now: datetime | None = None) -> bool:
        owner = assignee_id(item.assignee)

        if self.no_assignee or self.my_tasks or self.selected_members:
            hits = []
            if self.no_assignee:
                hits.append(owner is None)
            if self.my_tasks and current_user_id:
                hits.append(owner == current_user_id)
            if self.selected_members:
                hits.append(owner is not None and owner in self.selected_members)
            if not any(hits):
                return False

        if self.no_due_date or self.overdue:
            hits = []
            if self.no_due_date:
                hits.append(not item.end_date)
            if self.overdue:
                end = _parse_date(item.end_date)
                today = (now or datetime.now()).date()
                hits.append(end is not None and end < today)
            if not any(hits):
                return False

        if self.priorities and (item.priority or "").lower() not in self.priorities:
            return False

        if self.issue_types and (item.issue_type or "").lower() not in self.issue_types:
            return False

        return True

    def predicate(self, current_user_id: str | None = None) -> ItemPredicate:
        return lambda item: self.matches(item, current_user_id=current_user_id)


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None
