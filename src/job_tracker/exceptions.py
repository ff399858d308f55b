class JobTrackerError(Exception):
    """Base exception for job tracker errors."""


class BlockedUrlError(JobTrackerError):
    """
    The URL failed the safety guard (bad scheme, blocked or private host,
    or not an absolute URL). No network access is attempted.
    """

    def __init__(self, url: str, message: str | None = None) -> None:
        self.url = url
        super().__init__(message or f"Invalid URL or blocked for security reasons: {url}")


class FetchError(JobTrackerError):
    """Network failure, timeout, or non-success HTTP status while fetching a URL."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message)
