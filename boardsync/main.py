"""boardsync CLI: all commands."""

import asyncio
import logging
from typing import Annotated

import tomlkit
import typer
from rich import print as rprint
from rich.logging import RichHandler
from rich.table import Table

from boardsync.assignee import assignee_id, assignee_name
from boardsync.echo import EchoSuppressor
from boardsync.filters import ISSUE_TYPES, PRIORITIES, TaskFilters
from boardsync.models import ItemStatus, MembershipContext, WorkItem
from boardsync.mutator import MoveOutcome, OptimisticMutator
from boardsync.providers.base import TaskStore
from boardsync.providers.http import HttpTaskStore
from boardsync.settings import CONFIG_PATH, BoardSyncSettings, _list_profiles, get_settings
from boardsync.state_machine import MoveDecision, Rejected, destinations, evaluate_move
from boardsync.store import MergeStore

app = typer.Typer(help="boardsync: move work items across a shared task board", no_args_is_help=True)

BoardOpt = Annotated[
    str | None,
    typer.Option("--board", "-b", help="Profile name from ~/.config/boardsync/config.toml"),
]

_COLUMN_LABEL = {
    ItemStatus.BACKLOG: "Backlog",
    ItemStatus.IN_PROGRESS: "In progress",
    ItemStatus.REVIEW: "Review",
    ItemStatus.COMPLETED: "Completed",
    ItemStatus.BLOCKED: "Blocked",
}


# ---------------------------------------------------------------------------
# Store factory and setup
# ---------------------------------------------------------------------------


def get_store(settings: BoardSyncSettings) -> TaskStore:
    return HttpTaskStore(settings)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(show_path=False, rich_tracebacks=False)],
        force=True,
    )


def _load(board: str | None) -> BoardSyncSettings:
    settings = get_settings(board=board)
    _configure_logging(settings.log_level)
    return settings


async def _load_board(remote: TaskStore, settings: BoardSyncSettings) -> tuple[MergeStore, MembershipContext]:
    context = settings.membership()
    project_id = settings.project_id or ""
    members = await remote.list_members(project_id)
    context.profiles = {member.id: member for member in members}
    store = MergeStore()
    store.replace_all(await remote.list_items(project_id), context.profiles)
    return store, context


def _assignee_label(item: WorkItem) -> str:
    return assignee_name(item.assignee) or assignee_id(item.assignee) or "Unassigned"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("board")
def board_cmd(
    board: BoardOpt = None,
    mine: Annotated[bool, typer.Option("--mine", help="Only items assigned to me")] = False,
    unassigned: Annotated[bool, typer.Option("--unassigned", help="Only items without an assignee")] = False,
    overdue: Annotated[bool, typer.Option("--overdue", help="Only items past their end date")] = False,
    priority: Annotated[
        list[str] | None,
        typer.Option("--priority", "-p", help=f"One of {', '.join(PRIORITIES)} (repeatable)"),
    ] = None,
    issue_type: Annotated[
        list[str] | None,
        typer.Option("--type", "-t", help=f"One of {', '.join(ISSUE_TYPES)} (repeatable)"),
    ] = None,
) -> None:
    """Show the board, one section per column ordered by rank."""
    settings = _load(board)
    filters = TaskFilters(
        my_tasks=mine,
        no_assignee=unassigned,
        overdue=overdue,
        priorities=frozenset(p.lower() for p in priority or []),
        issue_types=frozenset(t.lower() for t in issue_type or []),
    )

    async def run() -> tuple[MergeStore, MembershipContext]:
        remote = get_store(settings)
        try:
            return await _load_board(remote, settings)
        finally:
            await remote.aclose()

    store, context = asyncio.run(run())
    if not filters.is_empty():
        store.set_predicate(filters.predicate(context.actor.id))

    table = Table(title=f"Project {settings.project_id}")
    table.add_column("Column", style="bold")
    table.add_column("Rank", justify="right")
    table.add_column("#", style="dim")
    table.add_column("Title")
    table.add_column("Assignee")
    table.add_column("ID", style="dim")

    for status, items in store.columns(visible_only=True).items():
        for item in items:
            table.add_row(
                _COLUMN_LABEL[status],
                str(item.rank),
                str(item.sequence_number),
                item.title,
                _assignee_label(item),
                item.id,
            )

    rprint(table)


@app.command("check-move")
def check_move(
    item_id: Annotated[str, typer.Argument(help="Work item ID")],
    status: Annotated[ItemStatus, typer.Argument(help="Destination column")],
    board: BoardOpt = None,
) -> None:
    """Check whether I may move an item into a column, without moving it."""
    settings = _load(board)

    async def run() -> tuple[WorkItem | None, MoveDecision]:
        remote = get_store(settings)
        try:
            store, context = await _load_board(remote, settings)
        finally:
            await remote.aclose()
        item = store.get(item_id)
        return item, evaluate_move(item, status, context)

    item, decision = asyncio.run(run())
    if isinstance(decision, Rejected):
        rprint(f"[red]✗[/red] {item_id} → {status.value}: {decision.reason}")
        if item is not None:
            options = ", ".join(d.value for d in destinations(item.status)) or "none"
            rprint(f"  [dim]From {item.status.value} the board allows: {options}[/dim]")
        raise typer.Exit(1)

    rprint(f"[green]✓[/green] {item_id} may move {decision.source.value} → {decision.destination.value}")
    if decision.completed_by:
        rprint(f"  completedBy will be set to {decision.completed_by}")


@app.command("move")
def move_cmd(
    item_id: Annotated[str, typer.Argument(help="Work item ID")],
    status: Annotated[ItemStatus, typer.Argument(help="Destination column")],
    board: BoardOpt = None,
) -> None:
    """Move an item into another column."""
    settings = _load(board)
    notices: list[str] = []

    async def run() -> Rejected | MoveOutcome:
        remote = get_store(settings)
        try:
            store, context = await _load_board(remote, settings)
            decision = evaluate_move(store.get(item_id), status, context)
            if isinstance(decision, Rejected):
                return decision
            mutator = OptimisticMutator(store, remote, EchoSuppressor(), context, notice=notices.append)
            return await mutator.move(decision)
        finally:
            await remote.aclose()

    result = asyncio.run(run())
    if isinstance(result, Rejected):
        rprint(f"[yellow]Not moved:[/yellow] {result.reason}")
        raise typer.Exit(1)
    if not result.ok:
        for notice in notices or [result.message or "Move failed"]:
            rprint(f"[red]{notice}[/red]")
        raise typer.Exit(1)

    item = result.item
    if item is None:
        rprint(f"[red]{item_id}: the board accepted the move but returned no record[/red]")
        raise typer.Exit(1)
    rprint(f"[green]✓[/green] [bold]{item.id}[/bold] {item.title} → {item.status.value} (rank {item.rank})")


def _write_default_board(doc: tomlkit.TOMLDocument, board: str) -> None:
    doc["default_board"] = board
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(tomlkit.dumps(doc))
    rprint(f'[green]✓[/green] Default board set to "{board}" in {CONFIG_PATH}')


@app.command("set-default")
def set_default(
    board: Annotated[str, typer.Argument(help="Profile name to set as default")],
) -> None:
    """Set the default board profile in ~/.config/boardsync/config.toml."""
    if not CONFIG_PATH.exists():
        _write_default_board(tomlkit.document(), board)
        return

    doc = tomlkit.loads(CONFIG_PATH.read_text())
    profiles = _list_profiles(doc)
    if board not in profiles:
        rprint(f"[red]Profile '{board}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}[/red]")
        raise typer.Exit(1)
    _write_default_board(doc, board)


@app.command("config-show")
def config_show(board: BoardOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    settings = get_settings(board=board)

    def mask(val: str | None) -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"...{val[-5:]}"

    def show(val: str | None) -> str:
        return val or "[dim](not set)[/dim]"

    table = Table(title="boardsync configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("default_board", show(settings.default_board))
    table.add_row("api_url", show(settings.api_url))
    table.add_row("api_token", mask(settings.api_token.get_secret_value() if settings.api_token else None))
    table.add_row("project_id", show(settings.project_id))
    table.add_row("actor_id", show(settings.actor_id))
    table.add_row("actor_role", settings.actor_role.value)
    table.add_row("leader_id", show(settings.leader_id))
    table.add_row("request_timeout", f"{settings.request_timeout:g}s")
    table.add_row("log_level", settings.log_level)

    rprint(table)
