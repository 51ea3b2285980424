"""Database engine and repository for Power Scheduler."""

from power_scheduler.db.engine import close_db, get_db, init_db
from power_scheduler.db.repository import Repository

__all__ = ["close_db", "get_db", "init_db", "Repository"]
