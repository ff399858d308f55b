from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class JobStatus(StrEnum):
    SAVED = "SAVED"
    APPLIED = "APPLIED"
    INTERVIEWING = "INTERVIEWING"
    OFFER = "OFFER"
    REJECTED = "REJECTED"
    GHOSTED = "GHOSTED"


class ParsedJobData(BaseModel):
    """
    Fields extracted from a job posting page.
    Every field is always populated; missing sources degrade to fallback values.
    """

    model_config = ConfigDict(frozen=True)

    job_title: str
    company: str
    location: str
    description: str = Field(max_length=500)
    source_domain: str


class ImportRequest(BaseModel):
    """Input accepted by the import handler."""

    url: HttpUrl


class JobCreate(BaseModel):
    url: HttpUrl
    job_title: str = Field(min_length=1)
    company: str = Field(min_length=1)
    location: str | None = None
    description: str | None = None
    status: JobStatus = JobStatus.SAVED
    applied_date: datetime | None = None
    notes: str | None = None


class JobUpdate(BaseModel):
    """
    Partial update of a stored job.
    Only fields explicitly set by the caller are applied (see model_fields_set).
    """

    job_title: str | None = Field(default=None, min_length=1)
    company: str | None = Field(default=None, min_length=1)
    location: str | None = None
    description: str | None = None
    status: JobStatus | None = None
    applied_date: datetime | None = None
    notes: str | None = None


class Job(BaseModel):
    """A job application record as stored for a user."""

    id: int
    user_id: str
    url: str
    job_title: str
    company: str
    location: str | None = None
    description: str | None = None
    status: JobStatus = JobStatus.SAVED
    applied_date: datetime | None = None
    notes: str | None = None
    source_domain: str
    created_at: datetime
    updated_at: datetime


class StatusChange(BaseModel):
    """One entry of a job's append-only status history."""

    id: int
    job_id: int
    from_status: JobStatus | None = None
    to_status: JobStatus
    changed_at: datetime
