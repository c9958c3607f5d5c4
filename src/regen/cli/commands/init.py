"""Write a starter .regen/config.toml."""

import click
from regen_shared.output.output import user_output

from regen.cli.ensure import exit_with_error
from regen.core.config import (
    CONFIG_PATH,
    DEFAULT_STAGING_ROOT,
    default_config_document,
    write_config,
)
from regen.core.context import RegenContext


def add_gitignore_entry(content: str, entry: str) -> str:
    """Return content with entry appended on its own line unless already present."""
    if entry in content.splitlines():
        return content
    if content and not content.endswith("\n"):
        content += "\n"
    return content + entry + "\n"


@click.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config.toml")
@click.pass_obj
def init_cmd(ctx: RegenContext, force: bool) -> None:
    """Create .regen/config.toml with default paths and settings.

    Stages are left unconfigured; add two [[stages]] tables before
    running `regen transform run`.
    """
    cfg_path = ctx.project_root / CONFIG_PATH
    if cfg_path.exists() and not force:
        exit_with_error(f"{cfg_path} already exists (use --force to overwrite)")

    written = write_config(ctx.project_root, default_config_document())
    user_output(click.style("✓", fg="green") + f" Wrote {written}")

    gitignore = ctx.project_root / ".gitignore"
    if gitignore.exists():
        staging_entry = DEFAULT_STAGING_ROOT + "/"
        content = gitignore.read_text(encoding="utf-8")
        updated = add_gitignore_entry(content, staging_entry)
        if updated != content:
            gitignore.write_text(updated, encoding="utf-8")
            user_output(click.style("✓", fg="green") + f" Added {staging_entry} to .gitignore")
