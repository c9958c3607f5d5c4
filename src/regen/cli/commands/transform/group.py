import click

from regen.cli.commands.transform.history_cmd import history_cmd
from regen.cli.commands.transform.orphans_cmd import orphans_cmd
from regen.cli.commands.transform.recover_cmd import recover_cmd
from regen.cli.commands.transform.run_cmd import run_cmd
from regen.cli.commands.transform.start_cmd import start_cmd


@click.group("transform")
def transform_group() -> None:
    """Stage, validate, commit and recover artifact transformations."""


transform_group.add_command(start_cmd)
transform_group.add_command(run_cmd)
transform_group.add_command(orphans_cmd)
transform_group.add_command(recover_cmd)
transform_group.add_command(history_cmd)
