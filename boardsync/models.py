"""Shared pydantic models: the contract between the sync core and providers."""

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ItemStatus(str, Enum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"
    BLOCKED = "blocked"

    @classmethod
    def _missing_(cls, value: object) -> "ItemStatus | None":
        # Column names used by older board documents
        if isinstance(value, str):
            return _LEGACY_STATUS.get(value.strip().lower())
        return None


_LEGACY_STATUS = {
    "list": ItemStatus.BACKLOG,
    "doing": ItemStatus.IN_PROGRESS,
    "done": ItemStatus.REVIEW,
    "bug": ItemStatus.BLOCKED,
    "inprogress": ItemStatus.IN_PROGRESS,
}


class Role(str, Enum):
    LEADER = "leader"
    MEMBER = "member"


class Profile(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "$id", "user_id"))
    name: str = ""  # may be blank on partially populated documents
    email: str | None = None
    avatar_url: str | None = Field(default=None, validation_alias=AliasChoices("avatar_url", "avatarUrl"))

    @property
    def has_display_name(self) -> bool:
        return bool(self.name.strip())


# ---------------------------------------------------------------------------
# Assignee: Unassigned | AssigneeRef | ResolvedAssignee
# ---------------------------------------------------------------------------


class Unassigned(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["unassigned"] = "unassigned"


class AssigneeRef(BaseModel):
    """A bare profile identifier that has not been resolved yet."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["reference"] = "reference"
    id: str


class ResolvedAssignee(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["resolved"] = "resolved"
    profile: Profile


Assignee = Annotated[Unassigned | AssigneeRef | ResolvedAssignee, Field(discriminator="kind")]

UNASSIGNED = Unassigned()


def coerce_assignee(value: Any) -> Any:
    """Turn a raw wire value (None, id string, profile mapping) into the tagged shape."""
    if isinstance(value, Unassigned):
        return {"kind": "unassigned"}
    if isinstance(value, AssigneeRef):
        return {"kind": "reference", "id": value.id}
    if isinstance(value, ResolvedAssignee):
        return {"kind": "resolved", "profile": value.profile}
    if value is None:
        return {"kind": "unassigned"}
    if isinstance(value, str):
        value = value.strip()
        return {"kind": "reference", "id": value} if value else {"kind": "unassigned"}
    if isinstance(value, Profile):
        return {"kind": "resolved", "profile": value}
    if isinstance(value, Mapping):
        if "kind" in value:
            return value
        return {"kind": "resolved", "profile": value}
    return value


def profile_id(value: Any) -> str | None:
    """Extract an identifier from a raw id string or profile mapping."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, Profile):
        return value.id
    if isinstance(value, Mapping):
        for key in ("$id", "id", "user_id"):
            if isinstance(value.get(key), str):
                return value[key]
    return None


# ---------------------------------------------------------------------------
# Work item
# ---------------------------------------------------------------------------


class WorkItem(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "$id"))
    sequence_number: int = Field(default=0, validation_alias=AliasChoices("sequence_number", "sequenceNumber", "seq"))
    project_id: str | None = Field(default=None, validation_alias=AliasChoices("project_id", "projectId"))
    status: ItemStatus = ItemStatus.BACKLOG
    rank: int = Field(default=0, validation_alias=AliasChoices("rank", "order"))
    assignee: Assignee = UNASSIGNED
    completed_by: str | None = Field(default=None, validation_alias=AliasChoices("completed_by", "completedBy"))

    # Opaque payload, never touched by the sync core
    title: str = ""
    description: str | None = None
    issue_type: str | None = Field(default=None, validation_alias=AliasChoices("issue_type", "issueType"))
    priority: str | None = None
    start_date: str | None = Field(default=None, validation_alias=AliasChoices("start_date", "startDate"))
    end_date: str | None = Field(default=None, validation_alias=AliasChoices("end_date", "endDate"))
    attachments: list[str] = Field(default=[], validation_alias=AliasChoices("attachments", "attachedFile"))

    @field_validator("assignee", mode="before")
    @classmethod
    def _coerce_assignee(cls, value: Any) -> Any:
        return coerce_assignee(value)

    @field_validator("completed_by", mode="before")
    @classmethod
    def _coerce_completed_by(cls, value: Any) -> str | None:
        return profile_id(value)

    @field_validator("attachments", mode="before")
    @classmethod
    def _coerce_attachments(cls, value: Any) -> Any:
        if value is None:
            return []
        # attachment documents carry {url, name, type}; keep the url only
        return [a.get("url", "") if isinstance(a, Mapping) else a for a in value]

    @property
    def assignee_omitted(self) -> bool:
        """True when the source record carried no assignee data at all."""
        return "assignee" not in self.model_fields_set


# ---------------------------------------------------------------------------
# Membership context
# ---------------------------------------------------------------------------


class Actor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: Role = Role.MEMBER
    name: str = ""

    @property
    def is_leader(self) -> bool:
        return self.role is Role.LEADER


class MembershipContext(BaseModel):
    """Supplied by the host application; the core never persists it."""

    actor: Actor
    leader_id: str | None = None
    project_closed: bool = False
    profiles: dict[str, Profile] = {}


# ---------------------------------------------------------------------------
# Change feed
# ---------------------------------------------------------------------------


class EventKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class FeedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    project_id: str | None = None
    item_id: str | None = None
    record: WorkItem | None = None

    @property
    def target_id(self) -> str | None:
        if self.record is not None:
            return self.record.id
        return self.item_id

    @property
    def is_well_formed(self) -> bool:
        if not self.project_id:
            return False
        if self.kind is EventKind.DELETE:
            return self.target_id is not None
        return self.record is not None
