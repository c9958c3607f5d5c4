import json

import click
from regen_shared.output.output import machine_output

from regen.cli.commands.transform.render import (
    EXIT_PARTIAL_COMMIT,
    inspection_to_dict,
    outcome_exit_code,
    render_inspection,
    render_outcome,
)
from regen.cli.ensure import exit_with_error
from regen.core.context import RegenContext
from regen.staging.errors import (
    InvalidVersionError,
    PartialCommitError,
    RecoveryActionUnavailableError,
)
from regen.staging.models import RecoveryAction


@click.command("recover")
@click.argument("version")
@click.argument("action", type=click.Choice([a.value for a in RecoveryAction]))
@click.option("--force", is_flag=True, help="Act on an operation that may still be running")
@click.option("--json", "as_json", is_flag=True, help="Print inspection as JSON on stdout")
@click.pass_obj
def recover_cmd(ctx: RegenContext, version: str, action: str, force: bool, as_json: bool) -> None:
    """Inspect, commit or roll back the orphaned operation for VERSION."""
    try:
        result = ctx.engine().recover_orphan(
            target_version=version, action=RecoveryAction(action), force=force
        )
    except PartialCommitError as e:
        render_outcome(e.outcome)
        raise SystemExit(EXIT_PARTIAL_COMMIT) from e
    except (RecoveryActionUnavailableError, InvalidVersionError) as e:
        exit_with_error(str(e))

    if result.inspection is not None:
        if as_json:
            machine_output(json.dumps(inspection_to_dict(result.inspection), indent=2))
        else:
            render_inspection(result.inspection)
        return

    assert result.outcome is not None
    render_outcome(result.outcome)
    code = outcome_exit_code(result.outcome)
    if code != 0:
        raise SystemExit(code)
