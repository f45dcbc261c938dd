"""Shared test fixtures."""

import pytest

from boardsync.models import Actor, ItemStatus, MembershipContext, Profile, Role, WorkItem

PROJECT = "proj_1"


def _make_item(item_id: str, status: ItemStatus = ItemStatus.BACKLOG, rank: int = 0, **fields) -> WorkItem:
    return WorkItem(id=item_id, project_id=fields.pop("project_id", PROJECT), status=status, rank=rank, **fields)


@pytest.fixture
def make_item():
    """Build a WorkItem in PROJECT; extra keyword fields pass straight through."""
    return _make_item


@pytest.fixture
def alice() -> Profile:
    return Profile(id="u1", name="Alice", email="alice@example.com")


@pytest.fixture
def bob() -> Profile:
    return Profile(id="u2", name="Bob")


@pytest.fixture
def lead() -> Profile:
    return Profile(id="lead", name="Lena Lead")


@pytest.fixture
def profiles(alice: Profile, bob: Profile, lead: Profile) -> dict[str, Profile]:
    return {p.id: p for p in (alice, bob, lead)}


@pytest.fixture
def leader_ctx(profiles: dict[str, Profile]) -> MembershipContext:
    return MembershipContext(
        actor=Actor(id="lead", role=Role.LEADER, name="Lena Lead"),
        leader_id="lead",
        profiles=dict(profiles),
    )


@pytest.fixture
def member_ctx(profiles: dict[str, Profile]) -> MembershipContext:
    return MembershipContext(
        actor=Actor(id="u1", role=Role.MEMBER, name="Alice"),
        leader_id="lead",
        profiles=dict(profiles),
    )
