"""Sign-in commands."""

import click

from .common import get_console, run_session


@click.group()
def auth():
    """Sign in to the hosted backend."""
    pass


@auth.command()
@click.option("--email", prompt=True, help="Account email address")
@click.password_option(help="Account password")
@click.pass_context
def signup(ctx, email, password):
    """Create an account."""
    async def command(session):
        user = await session.identity.sign_up(email, password)
        return user, session.user is not None

    user, signed_in = run_session(ctx, command, load=False)
    console = get_console()
    if signed_in:
        console.print(f"[green]Signed up and signed in as {user.email}[/green]")
    else:
        console.print(f"[green]Signed up {user.email}.[/green] Confirm the email address, then sign in.")


@auth.command()
@click.option("--email", prompt=True, help="Account email address")
@click.option("--password", prompt=True, hide_input=True, help="Account password")
@click.pass_context
def login(ctx, email, password):
    """Sign in with email and password."""
    async def command(session):
        return await session.identity.sign_in(email, password)

    user = run_session(ctx, command, load=False)
    get_console().print(f"[green]Signed in as {user.email}[/green]")


@auth.command()
@click.pass_context
def logout(ctx):
    """Sign out and forget the stored session."""
    async def command(session):
        await session.identity.sign_out()

    run_session(ctx, command, load=False)
    get_console().print("Signed out")


@auth.command()
@click.pass_context
def whoami(ctx):
    """Show the signed-in user."""
    async def command(session):
        return session.identity.require_user()

    user = run_session(ctx, command, load=False)
    get_console().print(f"{user.email or '(no email)'} [dim]{user.id}[/dim]")

