import os

import pytest

# Set environment variables for tests before any imports happen
os.environ["JOB_TRACKER_DB_PATH"] = ":memory:"
os.environ["JOB_TRACKER_USER_ID"] = "test_user"
os.environ.pop("JOB_TRACKER_USER_AGENT", None)

from job_tracker.db import Database  # noqa: E402
from job_tracker.models import JobCreate  # noqa: E402


@pytest.fixture
def db():
    """Fixture to provide an in-memory database for testing."""
    with Database(db_path=":memory:") as test_db:
        yield test_db


@pytest.fixture
def sample_job_create():
    """A reusable job payload for tests."""
    return JobCreate(
        url="https://boards.example.com/acme/jobs/123",
        job_title="Senior Software Engineer",
        company="Acme Corp",
        location="Berlin",
        description="We are looking for a senior software engineer with 5+ years experience.",
    )
