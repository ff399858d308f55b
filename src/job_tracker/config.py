import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; JobTrackerBot/1.0)"


def get_config() -> dict[str, str]:
    """
    Load and validate configuration from environment variables.
    Called lazily to avoid crashing on import.
    """
    db_path = os.getenv("JOB_TRACKER_DB_PATH", "jobs.db").strip()
    user_id = os.getenv("JOB_TRACKER_USER_ID", "local").strip()

    if not db_path:
        raise ValueError("JOB_TRACKER_DB_PATH must not be empty.")
    if not user_id:
        raise ValueError("JOB_TRACKER_USER_ID must not be empty.")

    return {
        "DB_PATH": db_path,
        "USER_ID": user_id,
        "USER_AGENT": os.getenv("JOB_TRACKER_USER_AGENT", "").strip() or DEFAULT_USER_AGENT,
    }


class _Config:
    """Lazy configuration that only validates when values are actually accessed."""

    def __init__(self) -> None:
        self._config: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._config is None:
            self._config = get_config()
        return self._config

    @property
    def DB_PATH(self) -> str:
        """Path of the SQLite database file (":memory:" is accepted)."""
        return self._load()["DB_PATH"]

    @property
    def USER_ID(self) -> str:
        """Default user the CLI acts on behalf of."""
        return self._load()["USER_ID"]

    @property
    def USER_AGENT(self) -> str:
        return self._load()["USER_AGENT"]


_cfg = _Config()

# Module-level type declarations for mypy; values are resolved by __getattr__ below.
DB_PATH: str
USER_ID: str
USER_AGENT: str


# Module-level lazy access using __getattr__ (PEP 562).
# `from job_tracker.config import DB_PATH` still works, but the value is only
# resolved when first accessed, not at import time.
def __getattr__(name: str) -> str:
    if name == "DB_PATH":
        return _cfg.DB_PATH
    if name == "USER_ID":
        return _cfg.USER_ID
    if name == "USER_AGENT":
        return _cfg.USER_AGENT
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
