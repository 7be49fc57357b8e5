"""Shared test fixtures."""

from pathlib import Path

import pytest

from clipstudio.config import Config

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_config_path() -> Path:
    return FIXTURES_DIR / "sample_config.json"


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(work_dir=tmp_path / "work")
