"""Rich renderables for the calendar."""

from typing import List, Optional

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..domain import TaskList, is_placeholder
from ..session import CalendarSession
from ..utils.dates import today, weekday_names


def format_task_list(task_list: TaskList, show_ids: bool = True) -> Panel:
    """Panel with a list's tasks, one per line."""
    body = Text()
    for index, task in enumerate(task_list.tasks):
        if index:
            body.append("\n")
        if task.completed:
            body.append("[x] ", style="green")
            body.append(task.title, style="dim strike")
        else:
            body.append("[ ] ", style="yellow")
            body.append(task.title)
        if show_ids:
            body.append(f"  {task.id}", style="dim")
    if not task_list.tasks:
        body.append("No tasks", style="dim italic")

    title = f"[bold]{task_list.title}[/bold] ({task_list.completed_count}/{len(task_list.tasks)})"
    subtitle = task_list.id if show_ids else None
    if is_placeholder(task_list.id):
        subtitle = "saving..."
    return Panel(body, title=title, subtitle=subtitle, title_align="left", expand=False)


def format_day(day: str, lists: List[TaskList], show_ids: bool = True):
    if not lists:
        return Text(f"No lists on {day}", style="dim")
    return Group(*[format_task_list(task_list, show_ids) for task_list in lists])


def _cell(session: CalendarSession, day: Optional[str]) -> Text:
    if day is None:
        return Text("")
    style = "bold reverse" if day == today() else "bold"
    cell = Text(day[-2:].lstrip("0"), style=style)
    for task_list in session.lists_for_day(day):
        done = task_list.completed_count == len(task_list.tasks) and task_list.tasks
        cell.append("\n")
        cell.append(f"{task_list.title} {task_list.completed_count}/{len(task_list.tasks)}",
                    style="green" if done else "cyan")
    return cell


def format_month(session: CalendarSession) -> Table:
    """Month grid with every list's title and progress in its day cell."""
    table = Table(title=session.visible_month, show_lines=True, expand=True)
    for name in weekday_names(session.first_day_of_week):
        table.add_column(name, ratio=1, vertical="top")
    for week in session.month_grid():
        table.add_row(*[_cell(session, day) for day in week])
    return table
