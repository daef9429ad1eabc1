"""Command-line interface for the todo calendar."""

import asyncio
import sys
from pathlib import Path

import click
from rich.console import Group
from rich.live import Live
from rich.text import Text

from .. import __version__
from ..config import Config
from ..errors import CalendarError, ConfigError
from ..session import build_session
from ..utils.dates import parse_month
from ..web.server import start_server
from .auth import auth
from .common import configure_logging, fail, get_config_from, get_console, run_session
from .lists import list_group, task_group
from .render import format_day, format_month


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(__version__, prog_name="todo-calendar")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Todo Calendar - dated to-do lists, synced live across devices."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    try:
        Config._instance = None
        config = Config.load(Path(config_path) if config_path else None)
    except ConfigError as e:
        get_console().print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    ctx.obj["config"] = config
    configure_logging("DEBUG" if verbose else config.log_level)


@cli.command()
@click.argument("month", required=False)
@click.pass_context
def month(ctx, month):
    """Show a month (YYYY-MM, default: current month)."""
    async def command(session):
        if month:
            await session.show_month(month)
        return format_month(session)

    get_console().print(run_session(ctx, command))


@cli.command()
@click.argument("day")
@click.option("--no-ids", is_flag=True, help="Hide list and task ids")
@click.pass_context
def day(ctx, day, no_ids):
    """Show the lists of one day (YYYY-MM-DD)."""
    async def command(session):
        selected = session.select_date(day)
        await session.show_month(selected[:7])
        return selected, session.lists_for_day(selected)

    selected, lists = run_session(ctx, command, load=False)
    console = get_console()
    console.print(f"[bold]{selected}[/bold]")
    console.print(format_day(selected, lists, show_ids=not no_ids))


@cli.command()
@click.argument("month", required=False)
@click.pass_context
def watch(ctx, month):
    """Show a month and keep it current as changes arrive."""
    config = get_config_from(ctx)
    obj = ctx.find_root().obj
    console = get_console()

    async def watch_month():
        session = build_session(config, backend=obj.get("backend"))
        if month:
            session.year, session.month = parse_month(month)
        try:
            await session.start()
            session.identity.require_user()

            def render():
                status = "live" if session.listener and session.listener.running else "not live"
                return Group(format_month(session), Text(f"{status} - Ctrl+C to stop", style="dim"))

            with Live(render(), console=console, auto_refresh=False) as live:
                session.add_observer(lambda store: live.update(render(), refresh=True))
                await asyncio.Event().wait()
        finally:
            await session.close()

    try:
        asyncio.run(watch_month())
    except KeyboardInterrupt:
        console.print("Stopped watching", style="yellow")
    except CalendarError as e:
        fail(str(e), console)


@cli.command()
@click.option("--host", help="Host to bind the server to (default: web_host)")
@click.option("--port", type=int, help="Port to bind the server to (default: web_port)")
@click.pass_context
def serve(ctx, host, port):
    """Serve the calendar API over HTTP."""
    config = get_config_from(ctx)
    console = get_console()
    console.print(f"Serving on [bold green]http://{host or config.web_host}:{port or config.web_port}[/bold green]")
    console.print("Press Ctrl+C to stop the server", style="dim")
    try:
        start_server(config, host=host, port=port)
    except CalendarError as e:
        fail(str(e), console)


cli.add_command(auth)
cli.add_command(list_group)
cli.add_command(task_group)


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
