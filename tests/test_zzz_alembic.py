"""Alembic migration tests.

File named test_zzz_alembic.py to sort LAST in pytest collection order.
"""

import os
import sqlite3
import subprocess
import sys
from pathlib import Path

from campus.db.base import Base

REPO_ROOT = Path(__file__).resolve().parent.parent


def _alembic(*args: str, db_path: Path) -> subprocess.CompletedProcess[str]:
    env = {**os.environ, "CAMPUS_DATABASE_URL": f"sqlite+aiosqlite:///{db_path}"}
    return subprocess.run(
        [sys.executable, "-m", "alembic", *args],
        capture_output=True,
        text=True,
        cwd=REPO_ROOT,
        env=env,
    )


def test_upgrade_head_creates_every_table(tmp_path: Path) -> None:
    db_path = tmp_path / "migrated.db"
    result = _alembic("upgrade", "head", db_path=db_path)
    assert result.returncode == 0, f"alembic upgrade failed: {result.stderr}"

    with sqlite3.connect(db_path) as conn:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert set(Base.metadata.tables) <= tables


def test_current_shows_head(tmp_path: Path) -> None:
    db_path = tmp_path / "migrated.db"
    assert _alembic("upgrade", "head", db_path=db_path).returncode == 0
    result = _alembic("current", db_path=db_path)
    assert result.returncode == 0
    assert "001_initial_schema" in result.stdout


def test_downgrade_to_base(tmp_path: Path) -> None:
    db_path = tmp_path / "migrated.db"
    assert _alembic("upgrade", "head", db_path=db_path).returncode == 0
    result = _alembic("downgrade", "base", db_path=db_path)
    assert result.returncode == 0, result.stderr
