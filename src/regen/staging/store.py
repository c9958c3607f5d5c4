"""On-disk staging directories and their descriptors.

Each attempted version owns <staging_root>/<version>/ containing one
subdirectory per artifact category plus staging.json. Directories whose
names start with "." are scratch space for creation and removal and are
never reported as versions.
"""

import dataclasses
import hashlib
import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from regen_shared.artifacts import ArtifactCategory, StagedFile
from regen_shared.atomic_write import atomic_write_json
from regen_shared.gateway.time.abc import Time

from regen.staging.baseline import capture_baseline
from regen.staging.descriptor import descriptor_to_dict, read_descriptor
from regen.staging.errors import DescriptorError, InvalidTransitionError
from regen.staging.layout import DESCRIPTOR_FILENAME, StagingLayout, make_key
from regen.staging.models import (
    ALLOWED_TRANSITIONS,
    STAGE_COUNT,
    CommitProgress,
    StagingDescriptor,
    StagingInspection,
    StagingStatus,
)

logger = logging.getLogger(__name__)


def _content_hash(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


class StagingStore:
    """Create, read, update and delete staging directories.

    Never touches production paths.
    """

    def __init__(self, *, layout: StagingLayout, time: Time) -> None:
        self._layout = layout
        self._time = time

    @property
    def layout(self) -> StagingLayout:
        return self._layout

    def exists(self, version: str) -> bool:
        return self._layout.version_dir(version).is_dir()

    def list_versions(self) -> list[str]:
        root = self._layout.staging_root
        if not root.is_dir():
            return []
        return sorted(p.name for p in root.iterdir() if p.is_dir() and not p.name.startswith("."))

    def load(self, version: str) -> StagingDescriptor:
        """Read the descriptor for version. Raises DescriptorError if unreadable."""
        path = self._layout.descriptor_path(version)
        descriptor = read_descriptor(path)
        if descriptor.target_version != version:
            raise DescriptorError(
                path,
                f"descriptor targets '{descriptor.target_version}' but lives in '{version}'",
            )
        return descriptor

    def open(
        self,
        *,
        target_version: str,
        previous_version: str | None,
        extra_baseline_keys: Iterable[str],
    ) -> tuple[StagingDescriptor, bool]:
        """Return (descriptor, created).

        An existing staging directory is returned as-is for resumption. A
        new one is assembled under a scratch name with the baseline already
        captured, then renamed into place, so a version directory never
        exists without a readable descriptor.
        """
        if self.exists(target_version):
            return self.load(target_version), False

        baseline = capture_baseline(self._layout, extra_keys=extra_baseline_keys)

        now = self._time.now()
        descriptor = StagingDescriptor(
            target_version=target_version,
            previous_version=previous_version,
            status=StagingStatus.STAGING,
            start_time=now,
            updated_at=now,
            stage_results=(None,) * STAGE_COUNT,
            production_baseline=baseline,
            validation=None,
            commit_progress=CommitProgress.empty(),
            error=None,
            history_recorded=False,
        )

        final_dir = self._layout.version_dir(target_version)
        scratch_dir = self._layout.staging_root / f".{target_version}.creating"
        if scratch_dir.exists():
            shutil.rmtree(scratch_dir)
        for category in ArtifactCategory:
            (scratch_dir / category.value).mkdir(parents=True)
        atomic_write_json(scratch_dir / DESCRIPTOR_FILENAME, descriptor_to_dict(descriptor))
        os.rename(scratch_dir, final_dir)
        logger.debug("Created staging directory %s", final_dir)
        return descriptor, True

    def update(self, descriptor: StagingDescriptor) -> StagingDescriptor:
        """Persist descriptor atomically and return it with a fresh updated_at."""
        stamped = dataclasses.replace(descriptor, updated_at=self._time.now())
        atomic_write_json(
            self._layout.descriptor_path(stamped.target_version), descriptor_to_dict(stamped)
        )
        return stamped

    def transition(
        self, descriptor: StagingDescriptor, status: StagingStatus, **changes: Any
    ) -> StagingDescriptor:
        """Move to status (with optional field changes) and persist."""
        if status not in ALLOWED_TRANSITIONS[descriptor.status]:
            raise InvalidTransitionError(descriptor.status, status)
        updated = self.update(dataclasses.replace(descriptor, status=status, **changes))
        logger.debug(
            "%s: %s -> %s", descriptor.target_version, descriptor.status.value, status.value
        )
        return updated

    def remove(self, descriptor: StagingDescriptor) -> None:
        """Delete the staging directory of a terminal operation.

        The directory is first renamed to a scratch name so that an
        interrupted delete never leaves a version directory without its
        descriptor. Removing an already-removed directory is a no-op.
        """
        if not descriptor.status.is_terminal:
            raise ValueError(
                f"Refusing to remove staging for {descriptor.target_version}: "
                f"status {descriptor.status.value} is not terminal"
            )
        self._remove_dir(descriptor.target_version)

    def remove_unreadable(self, version: str) -> None:
        """Delete a staging directory whose descriptor cannot be trusted."""
        self._remove_dir(version)

    def _remove_dir(self, version: str) -> None:
        version_dir = self._layout.version_dir(version)
        if not version_dir.exists():
            return
        doomed = self._layout.staging_root / f".{version}.removing"
        if doomed.exists():
            shutil.rmtree(doomed)
        os.rename(version_dir, doomed)
        shutil.rmtree(doomed)
        logger.debug("Removed staging directory %s", version_dir)

    def purge_scratch(self) -> list[str]:
        """Delete leftovers of interrupted creations and removals."""
        root = self._layout.staging_root
        if not root.is_dir():
            return []
        purged: list[str] = []
        for path in root.iterdir():
            if path.is_dir() and path.name.startswith("."):
                shutil.rmtree(path)
                purged.append(path.name)
        return purged

    def staged_files(self, version: str) -> tuple[StagedFile, ...]:
        """Every file currently in the version's category directories."""
        files: list[StagedFile] = []
        for category, category_dir in self._layout.staging_category_dirs(version).items():
            if not category_dir.is_dir():
                continue
            for path in sorted(category_dir.rglob("*")):
                if not path.is_file():
                    continue
                key = make_key(category, path.relative_to(category_dir))
                files.append(
                    StagedFile(
                        category=category,
                        key=key,
                        staging_path=path,
                        production_path=self._layout.production_path(key),
                    )
                )
        return tuple(files)

    def fingerprint(self, version: str) -> dict[str, str]:
        """Content hash of every staged file, keyed by staging-relative path."""
        return {f.key: _content_hash(f.staging_path) for f in self.staged_files(version)}

    def discard_files_except(self, version: str, keep: Iterable[str]) -> list[str]:
        """Delete staged files not listed in keep; returns the deleted keys."""
        kept = set(keep)
        discarded: list[str] = []
        for staged in self.staged_files(version):
            if staged.key not in kept:
                staged.staging_path.unlink()
                discarded.append(staged.key)
        return discarded

    def discard_category_contents(self, version: str) -> list[str]:
        """Empty every category directory and the commit scratch area."""
        discarded = [f.key for f in self.staged_files(version)]
        for category_dir in self._layout.staging_category_dirs(version).values():
            if category_dir.exists():
                shutil.rmtree(category_dir)
            category_dir.mkdir(parents=True)
        workdir = self._layout.commit_workdir(version)
        if workdir.exists():
            shutil.rmtree(workdir)
        return discarded

    def inspect(self, version: str) -> StagingInspection:
        """Describe a staging directory without mutating it."""
        descriptor: StagingDescriptor | None = None
        descriptor_error: str | None = None
        try:
            descriptor = self.load(version)
        except DescriptorError as e:
            descriptor_error = str(e)

        staged = self.staged_files(version)
        counts = {category: 0 for category in ArtifactCategory}
        for f in staged:
            counts[f.category] += 1
        return StagingInspection(
            target_version=version,
            descriptor=descriptor,
            descriptor_error=descriptor_error,
            file_counts=counts,
            staged_files=staged,
        )
