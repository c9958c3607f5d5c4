import click
from regen_shared.output.output import user_output

from regen.cli.commands.transform.render import render_orphans
from regen.core.context import RegenContext


@click.command("orphans")
@click.pass_obj
def orphans_cmd(ctx: RegenContext) -> None:
    """List staging directories left behind by interrupted operations.

    Leftovers of operations that already finished are cleaned up as a
    side effect.
    """
    orphans = ctx.engine().list_orphans()
    if not orphans:
        user_output("No orphaned staging directories.")
        return
    render_orphans(orphans)
    user_output("\nRecover with: regen transform recover VERSION {inspect|commit|rollback}")
