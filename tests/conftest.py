from __future__ import annotations

import os
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
TESTS = ROOT / "tests"

for path in (SRC, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from fake_service import FakeService  # noqa: E402

SAMPLE_SOURCE = textwrap.dedent(
    """
    let x = 1
    print(x + foo(2))
    """
).lstrip()


@dataclass(slots=True)
class SampleProject:
    """Fixture payload: a source file plus a fake service command line."""

    root: Path
    source: Path

    @property
    def service_command(self) -> list[str]:
        return [sys.executable, str(TESTS / "fake_service.py")]

    def write_config(self, body: str) -> Path:
        config_path = self.root / "stress-tester.yaml"
        config_path.write_text(textwrap.dedent(body).lstrip(), encoding="utf-8")
        return config_path


@pytest.fixture()
def fake_service() -> FakeService:
    return FakeService()


@pytest.fixture()
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "sample.src"
    path.write_text(SAMPLE_SOURCE, encoding="utf-8")
    return path


@pytest.fixture()
def sample_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> SampleProject:
    """Source file in a scratch directory that is also the working directory."""
    root = tmp_path / "project"
    root.mkdir()
    source = root / "sample.src"
    source.write_text(SAMPLE_SOURCE, encoding="utf-8")
    monkeypatch.chdir(root)
    pythonpath = str(SRC)
    if os.environ.get("PYTHONPATH"):
        pythonpath = os.pathsep.join([pythonpath, os.environ["PYTHONPATH"]])
    monkeypatch.setenv("PYTHONPATH", pythonpath)
    return SampleProject(root=root, source=source)
