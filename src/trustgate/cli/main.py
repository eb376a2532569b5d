"""trustgate CLI - Main entry point."""

from __future__ import annotations

from typing import Annotated

import typer

from trustgate import __version__

from .helpers import console

app = typer.Typer(
    name="trustgate",
    help="Permission gate between a coding agent and your workspace.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]trustgate[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
):
    """trustgate - decide which agent tool calls may run.

    [bold]Quick Start:[/bold]

        trustgate mode show              Show the persisted mode
        trustgate policies               List tool policies
        trustgate check bash -p command=ls   Check a tool invocation
    """
    pass


# =============================================================================
# Register commands
# =============================================================================

from .commands.approvals import approvals_app  # noqa: E402
from .commands.inspect import check, policies, risk  # noqa: E402
from .commands.mode import mode_app  # noqa: E402

app.add_typer(mode_app, name="mode")
app.add_typer(approvals_app, name="approvals")
app.command("policies")(policies)
app.command("risk")(risk)
app.command("check")(check)


if __name__ == "__main__":
    app()
