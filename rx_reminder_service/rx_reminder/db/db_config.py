# rx_reminder/db/db_config.py

import os
import sqlite3
from pathlib import Path
from typing import Optional

from rx_reminder.core.config import DATA_DIR


# Database file path (reminders + scan checkpoints)
DB_PATH = Path(os.getenv("RX_DB_PATH", str(DATA_DIR / "rx_reminder.db")))


def get_sqlite_connection(path: Optional[Path] = None) -> sqlite3.Connection:
    """
    Create and configure SQLite connection with recommended PRAGMA settings.
    """
    db_path = Path(path or DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), check_same_thread=False)

    # Performance & concurrency settings
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")

    return conn
