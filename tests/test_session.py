"""End-to-end tests for BoardSession against the in-memory board."""

import asyncio

import pytest

from boardsync.errors import FetchCancelled, SessionClosed, StoreError
from boardsync.filters import TaskFilters
from boardsync.models import (
    AssigneeRef,
    ItemStatus,
    MembershipContext,
    Profile,
    ResolvedAssignee,
)
from boardsync.mutator import MoveOutcome
from boardsync.providers.memory import InMemoryBoard
from boardsync.session import BoardSession
from boardsync.state_machine import Rejected

PROJECT = "proj_1"


@pytest.fixture
def board(make_item, alice: Profile, bob: Profile, lead: Profile) -> InMemoryBoard:
    return InMemoryBoard(
        [
            make_item("t1", ItemStatus.BACKLOG, assignee="u1", title="Login page"),
            make_item("t2", ItemStatus.IN_PROGRESS, assignee="u2"),
            make_item("t3", ItemStatus.REVIEW, rank=0, assignee="u1"),
            make_item("f1", project_id="other"),
        ],
        members=[alice, bob, lead],
    )


class SnapshotRaceBoard(InMemoryBoard):
    """Publishes changes after the item snapshot is taken but before it is returned."""

    def __init__(self, *args, during_fetch=None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.during_fetch = during_fetch

    async def list_items(self, project_id, filters=None, cancelled=None):
        items = await super().list_items(project_id, filters, cancelled)
        if self.during_fetch is not None:
            self.during_fetch(self)
        return items


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_open_loads_project_items_only(self, board: InMemoryBoard, member_ctx: MembershipContext) -> None:
        async with BoardSession(PROJECT, member_ctx, board, board) as session:
            assert sorted(i.id for i in session.items.items) == ["t1", "t2", "t3"]
            assert session.listener.running
        assert board.subscriptions_opened == 1

    @pytest.mark.asyncio
    async def test_members_enrich_profiles(self, make_item, member_ctx: MembershipContext) -> None:
        cara = Profile(id="u3", name="Cara")
        board = InMemoryBoard([make_item("t1", assignee="u3")], members=[cara])
        async with BoardSession(PROJECT, member_ctx, board, board) as session:
            assert session.items.get("t1").assignee == ResolvedAssignee(profile=cara)
            assert "u1" in session.context.profiles

    @pytest.mark.asyncio
    async def test_changes_during_load_are_replayed(
        self, make_item, alice: Profile, member_ctx: MembershipContext
    ) -> None:
        def change_board(board: InMemoryBoard) -> None:
            board.create_item(make_item("late", title="Created mid-load"))
            board.delete_item("t2")

        board = SnapshotRaceBoard(
            [make_item("t1", assignee="u1"), make_item("t2")],
            members=[alice],
            during_fetch=change_board,
        )
        async with BoardSession(PROJECT, member_ctx, board, board) as session:
            assert [i.id for i in session.items.items] == ["t1", "late"]
            assert session.items.get("late").title == "Created mid-load"
            assert not session.listener.holding

            board.create_item(make_item("after"))
            assert "after" in session.items

    @pytest.mark.asyncio
    async def test_failed_load_unsubscribes(self, make_item, member_ctx: MembershipContext) -> None:
        def fail(board: InMemoryBoard) -> None:
            raise StoreError("snapshot failed")

        board = SnapshotRaceBoard([make_item("t1")], during_fetch=fail)
        session = BoardSession(PROJECT, member_ctx, board, board)
        with pytest.raises(StoreError):
            await session.open()
        assert board.subscriptions_opened == board.subscriptions_closed == 1
        assert not session.listener.running

    @pytest.mark.asyncio
    async def test_close_tears_down_subscription_once(
        self, board: InMemoryBoard, member_ctx: MembershipContext
    ) -> None:
        session = BoardSession(PROJECT, member_ctx, board, board)
        await session.open()
        session.close()
        session.close()
        assert session.closed
        assert board.subscriptions_closed == 1
        assert session.suppressor.closed

    @pytest.mark.asyncio
    async def test_closed_session_refuses_work(self, board: InMemoryBoard, member_ctx: MembershipContext) -> None:
        session = BoardSession(PROJECT, member_ctx, board, board)
        session.close()
        with pytest.raises(SessionClosed):
            await session.open()
        with pytest.raises(SessionClosed):
            await session.move("t1", ItemStatus.IN_PROGRESS)
        assert board.writes == []

    @pytest.mark.asyncio
    async def test_close_during_load_abandons_fetch(
        self, board: InMemoryBoard, member_ctx: MembershipContext
    ) -> None:
        session = BoardSession(PROJECT, member_ctx, board, board)
        opening = asyncio.ensure_future(session.open())
        await asyncio.sleep(0)
        session.close()
        with pytest.raises(FetchCancelled):
            await opening
        assert len(session.items) == 0
        assert board.subscriptions_opened == board.subscriptions_closed == 1
        assert not session.listener.running


class TestMove:
    @pytest.mark.asyncio
    async def test_rejected_move_has_no_side_effects(
        self, board: InMemoryBoard, member_ctx: MembershipContext
    ) -> None:
        async with BoardSession(PROJECT, member_ctx, board, board) as session:
            before = session.items.items
            result = await session.move("t2", ItemStatus.REVIEW)
            assert isinstance(result, Rejected)
            assert session.items.items == before
            assert board.writes == []
            assert len(session.suppressor) == 0

    @pytest.mark.asyncio
    async def test_own_echo_is_not_reapplied(self, board: InMemoryBoard, member_ctx: MembershipContext) -> None:
        async with BoardSession(PROJECT, member_ctx, board, board) as session:
            result = await session.move("t1", ItemStatus.IN_PROGRESS)
            assert isinstance(result, MoveOutcome)
            assert result.ok
            assert result.item.rank == 1
            assert len(session.suppressor) == 0
            assert [i.id for i in session.items.column(ItemStatus.IN_PROGRESS)] == ["t2", "t1"]

    @pytest.mark.asyncio
    async def test_unknown_item(self, board: InMemoryBoard, leader_ctx: MembershipContext) -> None:
        async with BoardSession(PROJECT, leader_ctx, board, board) as session:
            assert isinstance(await session.move("nope", ItemStatus.IN_PROGRESS), Rejected)

    @pytest.mark.asyncio
    async def test_closed_project(self, board: InMemoryBoard, leader_ctx: MembershipContext) -> None:
        leader_ctx.project_closed = True
        async with BoardSession(PROJECT, leader_ctx, board, board) as session:
            assert isinstance(await session.move("t3", ItemStatus.COMPLETED), Rejected)
        assert board.writes == []


class TestTwoClients:
    @pytest.mark.asyncio
    async def test_echo_dropped_locally_and_merged_remotely(
        self,
        board: InMemoryBoard,
        member_ctx: MembershipContext,
        leader_ctx: MembershipContext,
    ) -> None:
        board.deliver_immediately = False
        async with (
            BoardSession(PROJECT, member_ctx, board, board) as client_a,
            BoardSession(PROJECT, leader_ctx, board, board) as client_b,
        ):
            await client_a.move("t1", ItemStatus.IN_PROGRESS)
            assert "t1" in client_a.suppressor
            assert client_b.items.get("t1").status is ItemStatus.BACKLOG
            a_before = client_a.items.items

            board.flush()

            assert "t1" not in client_a.suppressor
            assert client_a.items.items == a_before
            assert client_b.items.get("t1").status is ItemStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_moves_propagate_between_sessions(
        self,
        board: InMemoryBoard,
        member_ctx: MembershipContext,
        leader_ctx: MembershipContext,
    ) -> None:
        async with (
            BoardSession(PROJECT, member_ctx, board, board) as member,
            BoardSession(PROJECT, leader_ctx, board, board) as leader,
        ):
            await member.move("t1", ItemStatus.IN_PROGRESS)
            assert leader.items.get("t1").status is ItemStatus.IN_PROGRESS

            await member.move("t1", ItemStatus.REVIEW)
            outcome = await leader.move("t1", ItemStatus.COMPLETED)
            assert outcome.ok

            seen = member.items.get("t1")
            assert seen.status is ItemStatus.COMPLETED
            assert seen.completed_by == "lead"
            assert seen.assignee == leader.items.get("t1").assignee
            assert isinstance(seen.assignee, ResolvedAssignee)

            # completed is terminal for everyone
            assert isinstance(await leader.move("t1", ItemStatus.BLOCKED), Rejected)
            assert len(member.suppressor) == 0
            assert len(leader.suppressor) == 0

    @pytest.mark.asyncio
    async def test_concurrent_moves_converge(
        self,
        board: InMemoryBoard,
        member_ctx: MembershipContext,
        leader_ctx: MembershipContext,
    ) -> None:
        board.deliver_immediately = False
        async with (
            BoardSession(PROJECT, member_ctx, board, board) as member,
            BoardSession(PROJECT, leader_ctx, board, board) as leader,
        ):
            await asyncio.gather(
                member.move("t1", ItemStatus.IN_PROGRESS),
                leader.move("t2", ItemStatus.REVIEW),
            )
            assert board.flush() == 2

            # each side computed its rank from its own view
            assert member.items.get("t2").rank == leader.items.get("t2").rank == 1
            assert [i.rank for i in member.items.column(ItemStatus.REVIEW)] == [0, 1]
            assert member.items.items == leader.items.items

    @pytest.mark.asyncio
    async def test_same_column_collision(
        self,
        make_item,
        member_ctx: MembershipContext,
        leader_ctx: MembershipContext,
        profiles: dict[str, Profile],
    ) -> None:
        board = InMemoryBoard(
            [
                make_item("x", ItemStatus.IN_PROGRESS, assignee="u1"),
                make_item("y", ItemStatus.IN_PROGRESS, assignee="u2"),
            ],
            members=profiles.values(),
            deliver_immediately=False,
        )
        async with (
            BoardSession(PROJECT, member_ctx, board, board) as member,
            BoardSession(PROJECT, leader_ctx, board, board) as leader,
        ):
            await member.move("x", ItemStatus.REVIEW)
            await leader.move("y", ItemStatus.REVIEW)
            board.flush()
            for session in (member, leader):
                assert [i.rank for i in session.items.column(ItemStatus.REVIEW)] == [0, 0]


class TestViewState:
    @pytest.mark.asyncio
    async def test_filters_hide_without_changing_ranks(
        self, board: InMemoryBoard, member_ctx: MembershipContext
    ) -> None:
        async with BoardSession(
            PROJECT, member_ctx, board, board, filters=TaskFilters(my_tasks=True)
        ) as session:
            assert sorted(i.id for i in session.items.visible) == ["t1", "t3"]
            result = await session.move("t1", ItemStatus.IN_PROGRESS)
            # t2 is hidden but still counted
            assert result.item.rank == 1

            session.set_filters(None)
            assert len(session.items.visible) == 3

    @pytest.mark.asyncio
    async def test_update_profiles_re_resolves(self, make_item, member_ctx: MembershipContext) -> None:
        board = InMemoryBoard([make_item("t1", assignee="u9")])
        async with BoardSession(PROJECT, member_ctx, board, board) as session:
            assert session.items.get("t1").assignee == AssigneeRef(id="u9")
            nina = Profile(id="u9", name="Nina")
            session.update_profiles([nina])
            assert session.items.get("t1").assignee == ResolvedAssignee(profile=nina)
