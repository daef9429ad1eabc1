"""Helpers shared by the CLI command modules."""

import asyncio
import logging
import sys
from typing import Awaitable, Callable, Optional, TypeVar

import click
from rich.console import Console

from ..config import ConfigModel
from ..errors import CalendarError, NotSignedInError
from ..session import CalendarSession, build_session


logger = logging.getLogger(__name__)

T = TypeVar("T")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_console() -> Console:
    """Get a console for command output."""
    return Console()


def configure_logging(level: str):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING), format=LOG_FORMAT)


def get_config_from(ctx: click.Context) -> ConfigModel:
    return ctx.find_root().obj["config"]


def run_session(ctx: click.Context,
                command: Callable[[CalendarSession], Awaitable[T]],
                load: bool = True) -> T:
    """Build a session, run one command against it and close it again.

    Calendar errors are printed and turn into exit status 1.

    Args:
        ctx: Click context carrying the loaded configuration
        command: Coroutine function receiving the session
        load: Whether to load the visible month before running the command
    """
    obj = ctx.find_root().obj

    async def runner():
        session = build_session(obj["config"], backend=obj.get("backend"))
        try:
            if load:
                await session.identity.ensure_fresh()
                if session.user is not None:
                    await session.reload()
            return await command(session)
        finally:
            await session.close()

    try:
        return asyncio.run(runner())
    except NotSignedInError:
        get_console().print("[red]Not signed in.[/red] Run [bold]todo-calendar auth login[/bold] first.")
        sys.exit(1)
    except CalendarError as e:
        logger.debug("Command failed", exc_info=True)
        get_console().print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def fail(message: str, console: Optional[Console] = None):
    (console or get_console()).print(f"[red]Error:[/red] {message}")
    sys.exit(1)
