import click
from rich.console import Console
from rich.table import Table
from regen_shared.output.output import user_output

from regen.cli.ensure import exit_with_error
from regen.core.context import RegenContext


@click.command("history")
@click.option("--limit", default=10, show_default=True, type=click.IntRange(min=1))
@click.pass_obj
def history_cmd(ctx: RegenContext, limit: int) -> None:
    """Show the most recent transformation history entries."""
    try:
        entries = ctx.history.entries()
    except (OSError, ValueError) as e:
        exit_with_error(f"Cannot read transformation history: {e}")

    if not entries:
        user_output("No transformations recorded.")
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("when", no_wrap=True)
    table.add_column("version", style="cyan", no_wrap=True)
    table.add_column("previous", no_wrap=True)
    table.add_column("outcome", no_wrap=True)
    table.add_column("files", justify="right", no_wrap=True)
    table.add_column("error")

    styles = {"committed": "green", "rolled-back": "yellow", "partial-commit": "red"}
    for entry in entries[:limit]:
        style = styles.get(entry.outcome, "white")
        files = entry.files_discarded if entry.outcome == "rolled-back" else entry.files_committed
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            entry.target_version,
            entry.previous_version or "-",
            f"[{style}]{entry.outcome}[/{style}]",
            str(len(files)),
            entry.error or "",
        )

    console = Console(stderr=True, force_terminal=True, width=200)
    console.print(table)
