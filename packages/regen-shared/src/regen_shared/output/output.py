"""User-facing output helpers.

Human-readable messages go to stderr so that stdout stays free for
machine-readable output (JSON) that callers may parse.
"""

from typing import Any

import click


def user_output(message: Any = "", *, nl: bool = True) -> None:
    """Print a human-readable message to stderr."""
    click.echo(message, err=True, nl=nl)


def machine_output(message: Any = "", *, nl: bool = True) -> None:
    """Print machine-readable output (usually JSON) to stdout."""
    click.echo(message, nl=nl)
