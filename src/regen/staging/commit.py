"""Moves validated staged artifacts into production, one category at a time.

Each category is swapped with two renames inside the same filesystem:

    production/<cat>        -> staging/<v>/.commit/<cat>.old
    staging/<v>/.commit/<cat>.new -> production/<cat>

so a category is never observable half-replaced. Every .new tree is
assembled before the first production rename; a failure while assembling
rolls back, so only the renames can leave a partial commit.

Atomicity does not extend across categories: if a later category fails
after an earlier one was swapped, the operation ends in FAILED (a partial
commit) and is left for manual inspection.
"""

import dataclasses
import errno
import logging
import os
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import NoReturn

from regen_shared.artifacts import ArtifactCategory, StagedFile
from regen_shared.gateway.history.abc import CategoryOutcome

from regen.staging.baseline import detect_drift
from regen.staging.errors import (
    CommitPreconditionError,
    DriftConflictError,
    PartialCommitError,
)
from regen.staging.journal import HistoryJournal
from regen.staging.layout import split_key
from regen.staging.models import (
    CommitProgress,
    PipelineOutcome,
    StagingDescriptor,
    StagingStatus,
)
from regen.staging.store import StagingStore

logger = logging.getLogger(__name__)


class _SwapError(Exception):
    """A category swap failed. production_intact says whether the old tree is still in place."""

    def __init__(self, category: ArtifactCategory, cause: OSError, *, production_intact: bool):
        self.category = category
        self.cause = cause
        self.production_intact = production_intact
        super().__init__(f"{category.value}: {cause}")


def _nearest_existing(path: Path) -> Path:
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


def _group_by_category(
    staged: Sequence[StagedFile],
) -> dict[ArtifactCategory, list[StagedFile]]:
    grouped: dict[ArtifactCategory, list[StagedFile]] = {c: [] for c in ArtifactCategory}
    for f in staged:
        grouped[f.category].append(f)
    return grouped


class CommitCoordinator:
    def __init__(self, *, store: StagingStore, journal: HistoryJournal) -> None:
        self._store = store
        self._journal = journal

    def commit(self, descriptor: StagingDescriptor) -> PipelineOutcome:
        """Commit an accepted (validating) or interrupted (committing) operation.

        Raises DriftConflictError or CommitPreconditionError before production
        is touched; the caller rolls back. Raises PartialCommitError after
        persisting FAILED when some categories were already swapped.
        """
        layout = self._store.layout
        version = descriptor.target_version
        staged = self._store.staged_files(version)
        grouped = _group_by_category(staged)
        full_replacement = descriptor.full_replacement_categories()

        if descriptor.status == StagingStatus.VALIDATING:
            if descriptor.validation is None or not descriptor.validation.accepted:
                raise CommitPreconditionError(
                    f"{version} has not been accepted by validation"
                )
            to_swap = [
                c for c in ArtifactCategory if grouped[c] or c in full_replacement
            ]
            self._check_same_filesystem(version, to_swap)
            conflicts = detect_drift(
                layout,
                baseline=descriptor.production_baseline,
                staged_keys=[f.key for f in staged],
            )
            if conflicts:
                raise DriftConflictError(conflicts)
            descriptor = self._store.transition(descriptor, StagingStatus.COMMITTING)
        elif descriptor.status == StagingStatus.COMMITTING:
            logger.info(
                "Resuming commit of %s after %s",
                version,
                ", ".join(c.value for c in descriptor.commit_progress.completed) or "no categories",
            )
        else:
            raise CommitPreconditionError(
                f"Cannot commit {version} from status {descriptor.status.value}"
            )

        try:
            self._prepare_new_trees(descriptor, grouped, full_replacement)
        except _SwapError as e:
            self._fail(descriptor, e, grouped=grouped, full_replacement=full_replacement)

        outcomes: dict[ArtifactCategory, CategoryOutcome] = {}
        for category in ArtifactCategory:
            progress = descriptor.commit_progress
            if category in progress.completed:
                outcomes[category] = "committed"
                continue
            if (
                not grouped[category]
                and category not in full_replacement
                and progress.in_flight != category
            ):
                outcomes[category] = "unchanged"
                continue
            try:
                descriptor = self._swap_category(descriptor, category)
            except _SwapError as e:
                self._fail(descriptor, e, grouped=grouped, full_replacement=full_replacement)
            outcomes[category] = "committed"

        files_committed = tuple(f.key for f in staged)
        descriptor = self._store.transition(descriptor, StagingStatus.COMMITTED, error=None)
        descriptor = self._journal.record(
            descriptor,
            outcome="committed",
            files_committed=files_committed,
            files_discarded=(),
            category_outcomes=outcomes,
        )
        try:
            self._store.remove(descriptor)
        except OSError as e:
            logger.warning(
                "Committed %s but could not remove its staging directory: %s", version, e
            )

        logger.info("Committed %s (%d files)", version, len(files_committed))
        return PipelineOutcome(
            target_version=version,
            status=StagingStatus.COMMITTED,
            files_committed=files_committed,
            files_discarded=(),
            category_outcomes=outcomes,
            conflicts=(),
            diagnostics=descriptor.validation.diagnostics if descriptor.validation else (),
            reason=None,
        )

    def _check_same_filesystem(
        self, version: str, categories: Sequence[ArtifactCategory]
    ) -> None:
        staging_dev = os.stat(self._store.layout.version_dir(version)).st_dev
        for category in categories:
            production_dir = self._store.layout.production_dirs[category]
            anchor = _nearest_existing(production_dir)
            if os.stat(anchor).st_dev != staging_dev:
                raise CommitPreconditionError(
                    f"Production directory {production_dir} is on a different filesystem "
                    "than the staging root; categories cannot be swapped atomically"
                )

    def _prepare_new_trees(
        self,
        descriptor: StagingDescriptor,
        grouped: dict[ArtifactCategory, list[StagedFile]],
        full_replacement: frozenset[ArtifactCategory],
    ) -> None:
        """Build .new for every category still to swap, before any production rename.

        The in-flight category keeps the tree it was persisted with.
        """
        layout = self._store.layout
        workdir = layout.commit_workdir(descriptor.target_version)
        progress = descriptor.commit_progress
        for category in ArtifactCategory:
            if category in progress.completed or category == progress.in_flight:
                continue
            if not grouped[category] and category not in full_replacement:
                continue
            try:
                self._build_new_tree(
                    layout.production_dirs[category],
                    workdir / f"{category.value}.new",
                    grouped[category],
                    full_replacement=category in full_replacement,
                )
            except OSError as e:
                raise _SwapError(category, e, production_intact=True) from e

    def _swap_category(
        self, descriptor: StagingDescriptor, category: ArtifactCategory
    ) -> StagingDescriptor:
        layout = self._store.layout
        production_dir = layout.production_dirs[category]
        workdir = layout.commit_workdir(descriptor.target_version)
        new_dir = workdir / f"{category.value}.new"
        old_dir = workdir / f"{category.value}.old"

        if descriptor.commit_progress.in_flight == category:
            # .new is complete before in_flight is persisted; its absence means it was renamed in
            if not new_dir.exists():
                return self._finish_swap(descriptor, category, old_dir)
            if old_dir.exists() and not production_dir.exists():
                try:
                    os.rename(old_dir, production_dir)
                except OSError as e:
                    raise _SwapError(category, e, production_intact=False) from e
        else:
            try:
                descriptor = self._store.update(
                    dataclasses.replace(
                        descriptor,
                        commit_progress=CommitProgress(
                            completed=descriptor.commit_progress.completed,
                            in_flight=category,
                        ),
                    )
                )
            except OSError as e:
                raise _SwapError(category, e, production_intact=True) from e

        try:
            if production_dir.exists():
                os.rename(production_dir, old_dir)
        except OSError as e:
            raise _SwapError(category, e, production_intact=True) from e
        try:
            production_dir.parent.mkdir(parents=True, exist_ok=True)
            os.rename(new_dir, production_dir)
        except OSError as e:
            raise _SwapError(
                category, e, production_intact=self._restore(production_dir, old_dir)
            ) from e

        logger.debug("Swapped %s into %s", category.value, production_dir)
        return self._finish_swap(descriptor, category, old_dir)

    def _build_new_tree(
        self,
        production_dir: Path,
        new_dir: Path,
        files: Sequence[StagedFile],
        *,
        full_replacement: bool,
    ) -> None:
        if new_dir.exists():
            shutil.rmtree(new_dir)
        new_dir.parent.mkdir(parents=True, exist_ok=True)
        if full_replacement or not production_dir.exists():
            new_dir.mkdir()
        else:
            shutil.copytree(production_dir, new_dir, symlinks=True)
        for staged in files:
            _category, relative = split_key(staged.key)
            target = new_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.is_dir():
                raise IsADirectoryError(
                    errno.EISDIR, "staged file would replace a directory", str(target)
                )
            shutil.copy2(staged.staging_path, target)

    def _restore(self, production_dir: Path, old_dir: Path) -> bool:
        """Put the previous production tree back; returns True if production is intact."""
        if production_dir.exists():
            return not old_dir.exists()
        if not old_dir.exists():
            # production did not exist before the swap either
            return True
        try:
            os.rename(old_dir, production_dir)
        except OSError:
            logger.error("Could not restore %s from %s", production_dir, old_dir, exc_info=True)
            return False
        return True

    def _finish_swap(
        self, descriptor: StagingDescriptor, category: ArtifactCategory, old_dir: Path
    ) -> StagingDescriptor:
        descriptor = self._store.update(
            dataclasses.replace(
                descriptor,
                commit_progress=CommitProgress(
                    completed=(*descriptor.commit_progress.completed, category),
                    in_flight=None,
                ),
            )
        )
        if old_dir.exists():
            try:
                shutil.rmtree(old_dir)
            except OSError as e:
                logger.warning("Could not remove replaced tree %s: %s", old_dir, e)
        return descriptor

    def _fail(
        self,
        descriptor: StagingDescriptor,
        error: _SwapError,
        *,
        grouped: dict[ArtifactCategory, list[StagedFile]],
        full_replacement: frozenset[ArtifactCategory],
    ) -> NoReturn:
        version = descriptor.target_version
        progress = descriptor.commit_progress
        reason = f"commit of category {error.category.value} failed: {error.cause}"

        if error.production_intact:
            descriptor = self._store.update(
                dataclasses.replace(
                    descriptor,
                    commit_progress=CommitProgress(completed=progress.completed, in_flight=None),
                    error=reason,
                )
            )
            if not descriptor.commit_progress.production_touched:
                raise CommitPreconditionError(reason) from error

        outcomes: dict[ArtifactCategory, CategoryOutcome] = {}
        for category in ArtifactCategory:
            if category in progress.completed:
                outcomes[category] = "committed"
            elif category == error.category:
                outcomes[category] = "failed"
            elif grouped[category] or category in full_replacement:
                outcomes[category] = "pending"
            else:
                outcomes[category] = "unchanged"

        files_committed = tuple(
            f.key for c in progress.completed for f in grouped[c]
        )
        descriptor = self._store.transition(descriptor, StagingStatus.FAILED, error=reason)
        descriptor = self._journal.record(
            descriptor,
            outcome="partial-commit",
            files_committed=files_committed,
            files_discarded=(),
            category_outcomes=outcomes,
        )
        logger.error(
            "Partial commit of %s: %s. Staging directory kept at %s for manual inspection",
            version,
            reason,
            self._store.layout.version_dir(version),
        )
        raise PartialCommitError(
            PipelineOutcome(
                target_version=version,
                status=StagingStatus.FAILED,
                files_committed=files_committed,
                files_discarded=(),
                category_outcomes=outcomes,
                conflicts=(),
                diagnostics=descriptor.validation.diagnostics if descriptor.validation else (),
                reason=reason,
            )
        ) from error
