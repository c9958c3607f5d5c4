"""Exit helpers for CLI commands."""

from typing import NoReturn

import click
from regen_shared.output.output import user_output


def exit_with_error(message: str, *, code: int = 1) -> NoReturn:
    """Print a red Error: line to stderr and exit."""
    user_output(click.style("Error: ", fg="red") + message)
    raise SystemExit(code)
