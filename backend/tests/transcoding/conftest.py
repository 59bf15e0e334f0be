from pathlib import Path

import pytest

from fakes import FakeEncoder, MemorySink, write_source
from app.modules.transcoding.progress import ProgressTable


@pytest.fixture
def encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def progress_table() -> ProgressTable:
    return ProgressTable()


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    return write_source(tmp_path / "uploads")


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    return tmp_path / "work"
