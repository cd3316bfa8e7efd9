"""Shared test fixtures for both command-line tools."""

import json
import time
from pathlib import Path

import pytest


@pytest.fixture
def write_json(tmp_path: Path):
    """Factory fixture that writes a document to a temporary JSON file.

    Returns the file path as a string, the way argv would carry it.
    """

    def _write(document, name: str = "input.json") -> str:
        path = tmp_path / name
        path.write_text(json.dumps(document), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def local_tz(monkeypatch: pytest.MonkeyPatch):
    """Factory fixture that switches the process's local time zone."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")

    def _set(tz: str) -> None:
        monkeypatch.setenv("TZ", tz)
        time.tzset()

    yield _set

    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def utc(local_tz) -> None:
    """Run the test with UTC as the local time zone."""
    local_tz("UTC0")
