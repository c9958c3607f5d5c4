import json

import click
from regen_shared.output.output import machine_output, user_output

from regen.cli.ensure import exit_with_error
from regen.core.context import RegenContext
from regen.staging.descriptor import descriptor_to_dict
from regen.staging.errors import (
    BaselineCaptureError,
    DescriptorError,
    OperationInProgressError,
    OrphanedStagingError,
)


@click.command("start")
@click.argument("version")
@click.option("--previous", "previous_version", default=None, help="Version being replaced")
@click.option("--force", is_flag=True, help="Override the in-progress and orphan checks")
@click.option("--json", "as_json", is_flag=True, help="Print the descriptor as JSON on stdout")
@click.pass_obj
def start_cmd(
    ctx: RegenContext, version: str, previous_version: str | None, force: bool, as_json: bool
) -> None:
    """Open (or resume) the staging directory for VERSION.

    Prints where each artifact category must be staged, for drivers that
    run the generation stages themselves.
    """
    engine = ctx.engine()
    try:
        descriptor = engine.start_operation(
            target_version=version, previous_version=previous_version, force=force
        )
    except (
        OperationInProgressError,
        OrphanedStagingError,
        BaselineCaptureError,
        DescriptorError,
        ValueError,
    ) as e:
        exit_with_error(str(e))

    if as_json:
        machine_output(json.dumps(descriptor_to_dict(descriptor), indent=2))
        return

    user_output(
        f"Staging {click.style(version, bold=True)} "
        f"(status: {descriptor.status.value}, previous: {descriptor.previous_version or '-'})"
    )
    for category, path in engine.store.layout.staging_category_dirs(version).items():
        user_output(f"  {category.value}: {path}")
