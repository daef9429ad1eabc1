"""List and task commands."""

from typing import List, Optional, Sequence

import click

from ..domain import TaskDraft, TaskList
from ..errors import NotFoundError
from .common import get_console, run_session
from .render import format_task_list


def parse_edit_tasks(values: Sequence[str], current: TaskList) -> List[TaskDraft]:
    """Turn ``--task`` values into drafts for an edit.

    ``ID=TITLE`` keeps (and possibly renames) an existing task, a bare
    ``TITLE`` adds a new one. Existing tasks keep their completion.

    Raises:
        NotFoundError: If an id is not part of the list
    """
    drafts = []
    for value in values:
        task_id, sep, title = value.partition("=")
        if not sep:
            drafts.append(TaskDraft(title=value))
            continue
        task_id = task_id.strip()
        existing = current.get_task(task_id)
        if existing is None:
            raise NotFoundError(f"Task {task_id} is not part of list {current.id}")
        drafts.append(TaskDraft(title=title, completed=existing.completed, id=task_id))
    return drafts


@click.group(name="list")
def list_group():
    """Create and change dated lists."""
    pass


@list_group.command("create")
@click.argument("title")
@click.option("--date", "-d", "day", required=True, help="Day of the list (YYYY-MM-DD)")
@click.option("--task", "-t", "tasks", multiple=True, help="Initial task (repeatable)")
@click.pass_context
def create_list(ctx, title, day, tasks):
    """Create a list with optional initial tasks.

    Examples:
      todo-calendar list create Groceries -d 2024-06-01 -t Milk -t Eggs
    """
    async def command(session):
        return await session.coordinator.create_list(title, day, list(tasks))

    created = run_session(ctx, command, load=False)
    console = get_console()
    console.print(f"[green]Created list {created.id}[/green] on {created.date}")
    console.print(format_task_list(created))


@list_group.command("update")
@click.argument("list_id")
@click.option("--title", help="New title")
@click.option("--date", "-d", "day", help="New day (YYYY-MM-DD)")
@click.pass_context
def update_list(ctx, list_id, title, day):
    """Rename a list or move it to another day."""
    if title is None and day is None:
        raise click.UsageError("Give --title and/or --date")

    async def command(session):
        return await session.coordinator.update_list(list_id, title=title, date=day)

    updated = run_session(ctx, command)
    get_console().print(f"[green]Updated list {updated.id}[/green]: {updated.title} on {updated.date}")


@list_group.command("edit")
@click.argument("list_id")
@click.option("--title", help="New title")
@click.option("--date", "-d", "day", help="New day (YYYY-MM-DD)")
@click.option("--task", "-t", "tasks", multiple=True,
              help="Resulting task set: ID=TITLE keeps a task, TITLE adds one (repeatable)")
@click.option("--clear-tasks", is_flag=True, help="Remove every task")
@click.pass_context
def edit_list(ctx, list_id, title, day, tasks, clear_tasks):
    """Edit a list together with its tasks.

    Tasks not named with --task are deleted when any --task is given.
    """
    if tasks and clear_tasks:
        raise click.UsageError("--task and --clear-tasks are mutually exclusive")

    async def command(session):
        drafts: Optional[List[TaskDraft]] = None
        if clear_tasks:
            drafts = []
        elif tasks:
            current = await session.coordinator.ensure_list(list_id)
            drafts = parse_edit_tasks(tasks, current)
        return await session.coordinator.edit_list(list_id, title=title, date=day, tasks=drafts)

    edited = run_session(ctx, command)
    console = get_console()
    console.print(f"[green]Saved list {list_id}[/green]")
    if edited is not None:
        console.print(format_task_list(edited))


@list_group.command("delete")
@click.argument("list_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_list(ctx, list_id, yes):
    """Delete a list and all of its tasks."""
    if not yes:
        click.confirm(f"Delete list {list_id} and its tasks?", abort=True)

    async def command(session):
        await session.coordinator.delete_list(list_id)

    run_session(ctx, command)
    get_console().print(f"[yellow]Deleted list {list_id}[/yellow]")


@list_group.command("duplicate")
@click.argument("list_id")
@click.argument("day")
@click.pass_context
def duplicate_list(ctx, list_id, day):
    """Copy a list with its tasks to DAY; copied tasks start open."""
    async def command(session):
        return await session.coordinator.duplicate_list(list_id, day)

    duplicate = run_session(ctx, command)
    console = get_console()
    console.print(f"[green]Duplicated to {duplicate.id}[/green] on {duplicate.date}")
    console.print(format_task_list(duplicate))


@click.group(name="task")
def task_group():
    """Add, change and remove tasks."""
    pass


@task_group.command("add")
@click.argument("list_id")
@click.argument("title")
@click.option("--done", is_flag=True, help="Create the task already completed")
@click.pass_context
def add_task(ctx, list_id, title, done):
    """Add a task to a list."""
    async def command(session):
        await session.coordinator.ensure_list(list_id)
        return await session.coordinator.create_task(list_id, title, completed=done)

    task = run_session(ctx, command)
    get_console().print(f"[green]Added task {task.id}[/green]: {task.title}")


@task_group.command("edit")
@click.argument("list_id")
@click.argument("task_id")
@click.option("--title", help="New title")
@click.option("--done/--not-done", default=None, help="Set completion")
@click.pass_context
def edit_task(ctx, list_id, task_id, title, done):
    """Rename a task and/or set its completion."""
    if title is None and done is None:
        raise click.UsageError("Give --title and/or --done/--not-done")

    async def command(session):
        await session.coordinator.ensure_list(list_id)
        return await session.coordinator.update_task(list_id, task_id, title=title, completed=done)

    task = run_session(ctx, command)
    get_console().print(f"[green]Updated task {task.id}[/green]: {task.title}")


@task_group.command("toggle")
@click.argument("list_id")
@click.argument("task_id")
@click.pass_context
def toggle_task(ctx, list_id, task_id):
    """Flip a task between open and completed."""
    async def command(session):
        await session.coordinator.ensure_list(list_id)
        return await session.coordinator.toggle_task(list_id, task_id)

    task = run_session(ctx, command)
    state = "[green]completed[/green]" if task.completed else "[yellow]open[/yellow]"
    get_console().print(f"Task {task.id} is now {state}")


@task_group.command("delete")
@click.argument("list_id")
@click.argument("task_id")
@click.pass_context
def delete_task(ctx, list_id, task_id):
    """Remove a task from a list."""
    async def command(session):
        await session.coordinator.delete_task(list_id, task_id)

    run_session(ctx, command)
    get_console().print(f"[yellow]Deleted task {task_id}[/yellow]")
