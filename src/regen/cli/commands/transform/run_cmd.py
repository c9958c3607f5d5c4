import click

from regen.cli.commands.transform.render import (
    EXIT_PARTIAL_COMMIT,
    outcome_exit_code,
    render_outcome,
)
from regen.cli.ensure import exit_with_error
from regen.core.context import RegenContext
from regen.staging.errors import (
    BaselineCaptureError,
    DescriptorError,
    OperationInProgressError,
    OrphanedStagingError,
    PartialCommitError,
)
from regen.staging.models import STAGE_COUNT


@click.command("run")
@click.argument("version")
@click.option("--previous", "previous_version", default=None, help="Version being replaced")
@click.option("--force", is_flag=True, help="Override the in-progress and orphan checks")
@click.pass_obj
def run_cmd(ctx: RegenContext, version: str, previous_version: str | None, force: bool) -> None:
    """Generate, validate and commit VERSION with the configured stages.

    Exits 0 when committed, 1 when rolled back and 2 on a partial commit.
    """
    if len(ctx.stages) != STAGE_COUNT:
        exit_with_error(
            f"Exactly {STAGE_COUNT} [[stages]] must be configured in .regen/config.toml "
            f"(found {len(ctx.stages)})"
        )

    engine = ctx.engine()
    try:
        descriptor = engine.start_operation(
            target_version=version, previous_version=previous_version, force=force
        )
        outcome = engine.run_pipeline(descriptor)
    except PartialCommitError as e:
        render_outcome(e.outcome)
        raise SystemExit(EXIT_PARTIAL_COMMIT) from e
    except (
        OperationInProgressError,
        OrphanedStagingError,
        BaselineCaptureError,
        DescriptorError,
        ValueError,
    ) as e:
        exit_with_error(str(e))

    render_outcome(outcome)
    code = outcome_exit_code(outcome)
    if code != 0:
        raise SystemExit(code)
