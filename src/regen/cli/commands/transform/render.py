"""Shared rendering for transform commands."""

from typing import Any

import click
from rich.console import Console
from rich.table import Table
from regen_shared.output.output import user_output

from regen.staging.descriptor import descriptor_to_dict
from regen.staging.models import (
    Orphan,
    PipelineOutcome,
    StagingInspection,
    StagingStatus,
)

EXIT_COMMITTED = 0
EXIT_ROLLED_BACK = 1
EXIT_PARTIAL_COMMIT = 2

_MAX_LISTED_FILES = 20


def outcome_exit_code(outcome: PipelineOutcome) -> int:
    if outcome.status == StagingStatus.COMMITTED:
        return EXIT_COMMITTED
    if outcome.status == StagingStatus.FAILED:
        return EXIT_PARTIAL_COMMIT
    return EXIT_ROLLED_BACK


def _file_list(files: tuple[str, ...]) -> None:
    for key in files[:_MAX_LISTED_FILES]:
        user_output(f"    {key}")
    hidden = len(files) - _MAX_LISTED_FILES
    if hidden > 0:
        user_output(click.style(f"    ... and {hidden} more", dim=True))


def render_outcome(outcome: PipelineOutcome) -> None:
    version = outcome.target_version
    if outcome.status == StagingStatus.COMMITTED:
        user_output(
            click.style("✓", fg="green")
            + f" Committed {version} ({len(outcome.files_committed)} files)"
        )
        _file_list(outcome.files_committed)
    elif outcome.status == StagingStatus.FAILED:
        user_output(click.style("Partial commit: ", fg="red", bold=True) + f"{version}")
        user_output(f"  Reason: {outcome.reason}")
        for category, category_outcome in outcome.category_outcomes.items():
            user_output(f"  {category.value}: {category_outcome}")
        user_output("  Production mixes old and new artifacts. Inspect with:")
        user_output(f"    regen transform recover {version} inspect")
    else:
        user_output(click.style("✗", fg="yellow") + f" Rolled back {version}")
        if outcome.reason is not None:
            user_output(f"  Reason: {outcome.reason}")
        for conflict in outcome.conflicts:
            user_output(f"    {conflict.describe()}")
        if outcome.files_discarded:
            user_output(f"  Discarded {len(outcome.files_discarded)} staged files:")
            _file_list(outcome.files_discarded)

    for diagnostic in outcome.diagnostics:
        user_output(click.style(f"  {diagnostic}", dim=True))


def _format_age(age_ms: int | None) -> str:
    if age_ms is None:
        return "-"
    seconds = age_ms // 1000
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h {seconds % 3600 // 60}m"


def render_orphans(orphans: list[Orphan]) -> None:
    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("version", style="cyan", no_wrap=True)
    table.add_column("kind", no_wrap=True)
    table.add_column("status", no_wrap=True)
    table.add_column("age", no_wrap=True)
    table.add_column("actions", no_wrap=True)
    table.add_column("error")

    for orphan in orphans:
        table.add_row(
            orphan.target_version,
            orphan.kind,
            orphan.status.value if orphan.status is not None else "-",
            _format_age(orphan.age_ms),
            ", ".join(a.value for a in orphan.available_actions) or "-",
            orphan.error or "",
        )

    # Output table to stderr (consistent with user_output convention)
    console = Console(stderr=True, force_terminal=True, width=200)
    console.print(table)


def inspection_to_dict(inspection: StagingInspection) -> dict[str, Any]:
    return {
        "targetVersion": inspection.target_version,
        "descriptor": (
            descriptor_to_dict(inspection.descriptor)
            if inspection.descriptor is not None
            else None
        ),
        "descriptorError": inspection.descriptor_error,
        "fileCounts": {c.value: n for c, n in inspection.file_counts.items()},
        "stagedFiles": [f.key for f in inspection.staged_files],
    }


def render_inspection(inspection: StagingInspection) -> None:
    user_output(click.style(inspection.target_version, bold=True))
    descriptor = inspection.descriptor
    if descriptor is None:
        user_output(
            click.style("  Descriptor unreadable: ", fg="red") + f"{inspection.descriptor_error}"
        )
    else:
        user_output(f"  status:    {descriptor.status.value}")
        user_output(f"  previous:  {descriptor.previous_version or '-'}")
        user_output(f"  started:   {descriptor.start_time.isoformat()}")
        user_output(f"  updated:   {descriptor.updated_at.isoformat()}")
        for index, result in enumerate(descriptor.stage_results, start=1):
            if result is None:
                user_output(f"  stage {index}:   not run")
                continue
            state = "ok" if result.success else f"failed: {result.error}"
            user_output(
                f"  stage {index}:   {result.name} {state} "
                f"({len(result.files_written)} files, {result.duration_ms}ms)"
            )
        if descriptor.validation is not None:
            verdict = "accepted" if descriptor.validation.accepted else "rejected"
            user_output(f"  validation: {verdict}")
            for diagnostic in descriptor.validation.diagnostics:
                user_output(f"    {diagnostic}")
        if descriptor.commit_progress.production_touched:
            completed = ", ".join(c.value for c in descriptor.commit_progress.completed)
            user_output(f"  committed categories: {completed or '-'}")
            if descriptor.commit_progress.in_flight is not None:
                user_output(f"  in flight: {descriptor.commit_progress.in_flight.value}")
        if descriptor.error is not None:
            user_output(f"  error:     {descriptor.error}")

    counts = ", ".join(f"{c.value}={n}" for c, n in inspection.file_counts.items())
    user_output(f"  staged files: {inspection.total_files} ({counts})")
