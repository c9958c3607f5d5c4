import logging
from pathlib import Path

import click

from regen.cli.commands.init import init_cmd
from regen.cli.commands.transform.group import transform_group
from regen.cli.ensure import exit_with_error
from regen.core.config import ConfigError, default_config
from regen.core.context import create_context

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])  # terse help flags


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="regen")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """Regenerate automation artifacts through a staged, recoverable pipeline."""
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s - %(levelname)s - %(message)s")

    # Only create context if not already provided (e.g., by tests)
    if ctx.obj is not None:
        return
    project_root = Path.cwd()
    try:
        ctx.obj = create_context(project_root=project_root)
    except ConfigError as e:
        # init must be able to rewrite a broken config
        if ctx.invoked_subcommand != "init":
            exit_with_error(f"Invalid configuration: {e}")
        ctx.obj = create_context(project_root=project_root, config=default_config(project_root))


cli.add_command(init_cmd)
cli.add_command(transform_group)


def main() -> None:
    """CLI entry point used by the `regen` console script."""
    cli()
