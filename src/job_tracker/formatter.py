from job_tracker.models import Job, ParsedJobData, StatusChange

SNIPPET_LENGTH = 200


class JobFormatter:
    """
    Formats extracted job data, stored jobs and status history as plain text
    for the command line.
    """

    @staticmethod
    def snippet(text: str | None, length: int = SNIPPET_LENGTH) -> str:
        """Truncate text at the last word boundary before `length`."""
        if not text:
            return ""
        text = " ".join(text.split())
        if len(text) > length:
            text = text[:length].rsplit(" ", 1)[0] + "..."
        return text

    @classmethod
    def format_parsed(cls, data: ParsedJobData) -> str:
        message = f"Title:    {data.job_title}\n"
        message += f"Company:  {data.company}\n"
        message += f"Location: {data.location}\n"
        message += f"Source:   {data.source_domain}\n"
        if data.description:
            message += f"\n{cls.snippet(data.description)}\n"
        return message

    @staticmethod
    def format_job_row(job: Job) -> str:
        """One-line summary used by `list`."""
        location = f" ({job.location})" if job.location else ""
        return f"[{job.id}] {job.status.value:<12} {job.job_title} @ {job.company}{location}"

    @classmethod
    def format_job(cls, job: Job, history: list[StatusChange] | None = None) -> str:
        message = f"[{job.id}] {job.job_title}\n"
        message += f"Company:  {job.company}\n"
        message += f"Location: {job.location or 'Not specified'}\n"
        message += f"Status:   {job.status.value}\n"
        if job.applied_date:
            message += f"Applied:  {job.applied_date.date().isoformat()}\n"
        message += f"URL:      {job.url}\n"

        if job.description:
            message += f"\n{cls.snippet(job.description)}\n"
        if job.notes:
            message += f"\nNotes:\n{job.notes}\n"

        if history:
            message += "\nHistory:\n"
            for change in history:
                message += f"  {cls.format_change(change)}\n"

        return message

    @staticmethod
    def format_change(change: StatusChange) -> str:
        when = change.changed_at.strftime("%Y-%m-%d %H:%M")
        if change.from_status is None:
            return f"{when}  created as {change.to_status.value}"
        return f"{when}  {change.from_status.value} -> {change.to_status.value}"
