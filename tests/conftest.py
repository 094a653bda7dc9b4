"""Pytest configuration shared by the suite.

- Puts ``packages/`` and ``libs/db/src`` on ``sys.path`` so the suite runs
  from a plain checkout as well as from an editable install.
- Gives every test its own file-backed SQLite database with the schema and a
  small default category tree, and disposes cached engines afterwards so no
  connection leaks into the next test.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in (str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT))
    if p not in sys.path
]

from budget_db.client import dispose_engines  # noqa: E402
from budget_import.config import Settings  # noqa: E402

from tests.helpers.db import bootstrap_sqlite_db, seed_default_categories  # noqa: E402


@pytest.fixture(autouse=True)
def _no_ambient_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests opt into a model client explicitly; never pick one up from the env."""

    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)


@pytest.fixture
def db_url(tmp_path: Path) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "budget.sqlite3")
    seed_default_categories(database_url=url)
    yield url
    dispose_engines()


@pytest.fixture
def settings(db_url: str) -> Settings:
    return Settings(database_url=db_url)
