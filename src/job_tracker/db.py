import logging
import sqlite3
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

from job_tracker.exceptions import BlockedUrlError
from job_tracker.models import Job, JobCreate, JobStatus, JobUpdate, StatusChange
from job_tracker.validation import extract_domain, is_valid_url

logger = logging.getLogger(__name__)

# Columns that may not be cleared through an update
NON_NULLABLE_FIELDS = {"job_title", "company", "status"}


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


def _to_db(value: Any) -> Any:
    if isinstance(value, JobStatus):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class Database:
    """
    SQLite storage for a user's job applications and their status history.
    Uses a single persistent connection for both file-based and in-memory databases.
    Every query is scoped by user_id; another user's job behaves as if it doesn't exist.
    Supports context manager protocol for proper resource cleanup.
    """

    def __init__(self, db_path: str = "jobs.db") -> None:
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self.init_db()

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the persistent database connection."""
        if self._conn is None:
            raise RuntimeError("Database connection is closed")
        return self._conn

    def init_db(self) -> None:
        """Create the jobs and status_history tables if they don't exist."""
        cursor = self.connection.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                url TEXT NOT NULL,
                job_title TEXT NOT NULL,
                company TEXT NOT NULL,
                location TEXT,
                description TEXT,
                status TEXT NOT NULL DEFAULT 'SAVED',
                applied_date TEXT,
                notes TEXT,
                source_domain TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS status_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job_id INTEGER NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
                from_status TEXT,
                to_status TEXT NOT NULL,
                changed_at TEXT NOT NULL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_jobs_user ON jobs (user_id, status)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_history_job ON status_history (job_id, changed_at)"
        )
        self.connection.commit()

        logger.info(f"Database initialized at {self.db_path}")

    def _append_history(
        self, job_id: int, from_status: JobStatus | None, to_status: JobStatus, changed_at: str
    ) -> None:
        self.connection.execute(
            """
            INSERT INTO status_history (job_id, from_status, to_status, changed_at)
            VALUES (?, ?, ?, ?)
            """,
            (job_id, _to_db(from_status), _to_db(to_status), changed_at),
        )

    def create_job(self, user_id: str, data: JobCreate) -> Job:
        """
        Store a new job for a user and record its initial status.
        Raises BlockedUrlError if the URL fails the safety guard.
        """
        url = str(data.url)
        if not is_valid_url(url):
            raise BlockedUrlError(url)

        now = _now()
        cursor = self.connection.cursor()
        cursor.execute(
            """
            INSERT INTO jobs (
                user_id, url, job_title, company, location, description,
                status, applied_date, notes, source_domain, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                url,
                data.job_title,
                data.company,
                data.location or None,
                data.description or None,
                _to_db(data.status),
                _to_db(data.applied_date),
                data.notes or None,
                extract_domain(url),
                now,
                now,
            ),
        )
        job_id = cursor.lastrowid
        if job_id is None:
            raise RuntimeError("Failed to insert job")
        self._append_history(job_id, None, data.status, now)
        self.connection.commit()

        logger.info(f"Saved job {job_id} for user {user_id}: {data.job_title}")
        job = self.get_job(user_id, job_id)
        if job is None:
            raise RuntimeError(f"Job {job_id} vanished after insert")
        return job

    def get_job(self, user_id: str, job_id: int) -> Job | None:
        row = self.connection.execute(
            "SELECT * FROM jobs WHERE id = ? AND user_id = ?", (job_id, user_id)
        ).fetchone()
        return Job(**dict(row)) if row else None

    def list_jobs(
        self,
        user_id: str,
        status: JobStatus | None = None,
        search: str | None = None,
    ) -> list[Job]:
        """
        List a user's jobs, most recently updated first.
        `search` matches title, company or location case-insensitively.
        """
        query = "SELECT * FROM jobs WHERE user_id = ?"
        params: list[Any] = [user_id]

        if status is not None:
            query += " AND status = ?"
            params.append(_to_db(status))

        if search:
            pattern = f"%{search.lower()}%"
            query += (
                " AND (LOWER(job_title) LIKE ? OR LOWER(company) LIKE ?"
                " OR LOWER(COALESCE(location, '')) LIKE ?)"
            )
            params.extend([pattern, pattern, pattern])

        query += " ORDER BY updated_at DESC, id DESC"
        rows = self.connection.execute(query, params).fetchall()
        return [Job(**dict(row)) for row in rows]

    def update_job(self, user_id: str, job_id: int, data: JobUpdate) -> Job | None:
        """
        Apply the fields set on `data` to a job.
        A status history entry is appended only when the status value actually changes.
        Returns None if the job doesn't exist for this user.
        """
        existing = self.get_job(user_id, job_id)
        if existing is None:
            return None

        changes = {
            name: value
            for name, value in data.model_dump(exclude_unset=True).items()
            if value is not None or name not in NON_NULLABLE_FIELDS
        }

        now = _now()
        new_status = changes.get("status")
        if new_status is not None and new_status != existing.status:
            self._append_history(job_id, existing.status, new_status, now)
            logger.info(f"Job {job_id} status changed: {existing.status} -> {new_status}")

        if changes:
            assignments = ", ".join(f"{name} = ?" for name in changes)
            self.connection.execute(
                f"UPDATE jobs SET {assignments}, updated_at = ? WHERE id = ? AND user_id = ?",
                [*(_to_db(value) for value in changes.values()), now, job_id, user_id],
            )
        self.connection.commit()

        return self.get_job(user_id, job_id)

    def delete_job(self, user_id: str, job_id: int) -> bool:
        """Delete a job and its history. Returns False if it doesn't exist for this user."""
        cursor = self.connection.execute(
            "DELETE FROM jobs WHERE id = ? AND user_id = ?", (job_id, user_id)
        )
        self.connection.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted job {job_id} for user {user_id}")
        return deleted

    def get_status_history(self, user_id: str, job_id: int) -> list[StatusChange]:
        """Return a job's status changes, newest first."""
        rows = self.connection.execute(
            """
            SELECT h.* FROM status_history h
            JOIN jobs j ON j.id = h.job_id
            WHERE h.job_id = ? AND j.user_id = ?
            ORDER BY h.changed_at DESC, h.id DESC
            """,
            (job_id, user_id),
        ).fetchall()
        return [StatusChange(**dict(row)) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "Database":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
