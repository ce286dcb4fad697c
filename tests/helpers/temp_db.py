from __future__ import annotations

import shutil
import tempfile
import time
from pathlib import Path

from inventaris.db import Database, connect, init_db


_REPO_ROOT = Path(__file__).resolve().parents[2]
_TEMP_ROOT = Path(tempfile.gettempdir()).resolve()


def assert_safe_temp_db_path(db_path: str) -> None:
    """Test databases live under the system temp dir, outside the checkout, as *.db files."""
    resolved = Path(db_path).resolve()
    if not resolved.is_relative_to(_TEMP_ROOT):
        raise ValueError(f"Temporary DB must live under TEMP: {resolved}")
    if resolved.is_relative_to(_REPO_ROOT):
        raise ValueError(f"Temporary DB cannot live inside repository: {resolved}")
    if resolved.suffix != ".db":
        raise ValueError(f"Temporary DB must use the .db suffix: {resolved}")


class TempDbSandbox:
    """A throwaway SQLite file per test case, plus Config subclasses pointing at it."""

    def __init__(self, prefix: str = "inventaris_tests", db_name: str = "inventaris_test.db") -> None:
        self.temp_dir = tempfile.mkdtemp(prefix=f"{prefix}_", dir=str(_TEMP_ROOT))
        self.db_path = str(Path(self.temp_dir) / db_name)
        assert_safe_temp_db_path(self.db_path)
        # Touch the file so app startup sees an existing, empty database.
        self.connect().close()

    def make_config(self, base_config, **overrides):
        attrs = {
            "DATABASE_DIR": self.temp_dir,
            "DB_PATH": self.db_path,
            "TESTING": True,
            "LOG_JSON": False,
            "RATE_LIMIT_ENABLED": False,
        }
        attrs.update(overrides)
        return type("TempConfig", (base_config,), attrs)

    def connect(self) -> Database:
        """Fresh Database handle on the sandbox file, like one web worker would hold."""
        return connect(self.db_path, timeout=30.0)

    def init_schema(self) -> None:
        db = self.connect()
        try:
            init_db(db)
        finally:
            db.close()

    def cleanup(self, attempts: int = 5) -> None:
        # A connection still closing in another thread can briefly hold the file.
        for attempt in range(attempts):
            try:
                shutil.rmtree(self.temp_dir)
                return
            except FileNotFoundError:
                return
            except OSError:
                if attempt == attempts - 1:
                    raise
                time.sleep(0.05 * (2**attempt))
