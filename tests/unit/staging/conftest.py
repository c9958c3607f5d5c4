"""Fixtures for staging engine tests."""

from pathlib import Path

import pytest
from regen_shared.gateway.time.fake import FakeTime

from regen.core.config import default_config
from regen.staging.layout import StagingLayout
from regen.staging.store import StagingStore


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Alias for tmp_path with semantic meaning as a project directory."""
    return tmp_path


@pytest.fixture
def layout(tmp_project: Path) -> StagingLayout:
    return default_config(tmp_project).layout


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def store(layout: StagingLayout, fake_time: FakeTime) -> StagingStore:
    return StagingStore(layout=layout, time=fake_time)
