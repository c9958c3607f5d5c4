"""Production baseline capture and drift detection.

The baseline records {exists, modTime, size} for every production file an
operation may touch, before anything is staged. At commit time the same
paths are stat'ed again; any difference is a drift conflict.
"""

import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path

from regen_shared.artifacts import ArtifactCategory

from regen.staging.errors import BaselineCaptureError
from regen.staging.layout import StagingLayout, make_key
from regen.staging.models import DriftConflict, FileBaseline

logger = logging.getLogger(__name__)


def stat_production_file(path: Path) -> FileBaseline:
    """Return metadata for path; a missing file is data, not an error."""
    try:
        st = path.stat()
    except FileNotFoundError:
        return FileBaseline.missing()
    except NotADirectoryError:
        return FileBaseline.missing()
    except OSError as e:
        raise BaselineCaptureError(path, e) from e
    return FileBaseline(exists=True, mod_time_ns=st.st_mtime_ns, size=st.st_size)


def _raise_walk_error(error: OSError) -> None:
    path = Path(error.filename) if error.filename else Path(".")
    raise BaselineCaptureError(path, error) from error


def _walk_category(category: ArtifactCategory, production_dir: Path) -> Iterable[str]:
    if not production_dir.exists():
        return
    if not production_dir.is_dir():
        raise BaselineCaptureError(production_dir, NotADirectoryError(str(production_dir)))
    for dirpath, _dirnames, filenames in os.walk(production_dir, onerror=_raise_walk_error):
        for filename in filenames:
            relative = (Path(dirpath) / filename).relative_to(production_dir)
            yield make_key(category, relative)


def capture_baseline(
    layout: StagingLayout, *, extra_keys: Iterable[str]
) -> dict[str, FileBaseline]:
    """Snapshot every existing file in each production category plus extra_keys.

    extra_keys names production paths the stages may create; they are
    recorded as exists=false when absent so their later appearance counts
    as drift. Raises BaselineCaptureError if a production directory cannot
    be read.
    """
    keys: set[str] = set(extra_keys)
    for category, production_dir in layout.production_dirs.items():
        keys.update(_walk_category(category, production_dir))

    baseline = {key: stat_production_file(layout.production_path(key)) for key in sorted(keys)}
    logger.debug("Captured production baseline of %d paths", len(baseline))
    return baseline


def detect_drift(
    layout: StagingLayout,
    *,
    baseline: Mapping[str, FileBaseline],
    staged_keys: Iterable[str],
) -> tuple[DriftConflict, ...]:
    """Compare production against the baseline.

    Staged keys missing from the baseline are checked as if recorded with
    exists=false: a file created there since the baseline would otherwise
    be overwritten silently.
    """
    expected = dict(baseline)
    for key in staged_keys:
        expected.setdefault(key, FileBaseline.missing())

    conflicts: list[DriftConflict] = []
    for key in sorted(expected):
        recorded = expected[key]
        current = stat_production_file(layout.production_path(key))
        if current != recorded:
            conflicts.append(DriftConflict(key=key, baseline=recorded, current=current))
    return tuple(conflicts)
