import argparse
import asyncio
import logging
import sys
from datetime import UTC, datetime

from pydantic import ValidationError

from job_tracker import config
from job_tracker.db import Database
from job_tracker.exceptions import BlockedUrlError, FetchError
from job_tracker.formatter import JobFormatter
from job_tracker.models import ImportRequest, Job, JobCreate, JobStatus, JobUpdate, ParsedJobData
from job_tracker.parser import parse_job_url
from job_tracker.validation import is_valid_url

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID = 2


async def import_job(url: str) -> ParsedJobData:
    """
    Validate an import request and extract the posting's fields.

    Raises pydantic ValidationError for malformed input, BlockedUrlError when the
    URL fails the safety guard (before any network access), and FetchError when
    the page can't be retrieved.
    """
    url = url.strip()
    request = ImportRequest(url=url)
    if not is_valid_url(url):
        raise BlockedUrlError(url)
    logger.debug(f"Import request accepted for {request.url}")
    return await parse_job_url(url)


def save_imported_job(db: Database, user_id: str, url: str, data: ParsedJobData) -> Job:
    """Store extracted fields as a new SAVED job."""
    return db.create_job(
        user_id,
        JobCreate(
            url=url,
            job_title=data.job_title,
            company=data.company,
            location=data.location,
            description=data.description or None,
        ),
    )


def _status(value: str) -> JobStatus:
    try:
        return JobStatus(value.upper())
    except ValueError:
        choices = ", ".join(s.value for s in JobStatus)
        raise argparse.ArgumentTypeError(f"invalid status '{value}' (choose from {choices})") from None


def _applied_date(value: str) -> datetime:
    """Parse an ISO date or datetime; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid date '{value}' (use ISO format, e.g. 2026-03-01)"
        ) from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="job-tracker",
        description="Track job applications and import postings by URL.",
    )
    parser.add_argument(
        "--user",
        default=None,
        help="User id to act as (overrides JOB_TRACKER_USER_ID env var).",
    )
    parser.add_argument(
        "--db",
        default=None,
        metavar="PATH",
        help="SQLite database path (overrides JOB_TRACKER_DB_PATH env var).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    commands = parser.add_subparsers(dest="command", required=True)

    import_cmd = commands.add_parser("import", help="Extract job details from a posting URL.")
    import_cmd.add_argument("url")
    import_cmd.add_argument("--save", action="store_true", help="Store the result as a job.")
    import_cmd.add_argument("--json", action="store_true", help="Print the result as JSON.")

    add_cmd = commands.add_parser("add", help="Add a job manually.")
    add_cmd.add_argument("--url", required=True)
    add_cmd.add_argument("--title", required=True)
    add_cmd.add_argument("--company", required=True)
    add_cmd.add_argument("--location")
    add_cmd.add_argument("--description")
    add_cmd.add_argument("--status", type=_status, default=JobStatus.SAVED)
    add_cmd.add_argument("--notes")
    add_cmd.add_argument("--applied-date", type=_applied_date, metavar="DATE")

    list_cmd = commands.add_parser("list", help="List jobs.")
    list_cmd.add_argument("--status", type=_status)
    list_cmd.add_argument("--search")

    show_cmd = commands.add_parser("show", help="Show a job and its status history.")
    show_cmd.add_argument("id", type=int)

    update_cmd = commands.add_parser("update", help="Update a job.")
    update_cmd.add_argument("id", type=int)
    update_cmd.add_argument("--status", type=_status)
    update_cmd.add_argument("--title")
    update_cmd.add_argument("--company")
    update_cmd.add_argument("--location")
    update_cmd.add_argument("--description")
    notes = update_cmd.add_mutually_exclusive_group()
    notes.add_argument("--notes")
    notes.add_argument("--clear-notes", action="store_true", help="Remove the job's notes.")
    applied = update_cmd.add_mutually_exclusive_group()
    applied.add_argument("--applied-date", type=_applied_date, metavar="DATE")
    applied.add_argument(
        "--clear-applied-date", action="store_true", help="Remove the job's applied date."
    )

    delete_cmd = commands.add_parser("delete", help="Delete a job.")
    delete_cmd.add_argument("id", type=int)

    return parser.parse_args(argv)


def _run_import(args: argparse.Namespace, user_id: str, db_path: str) -> int:
    data = asyncio.run(import_job(args.url))

    if args.json:
        print(data.model_dump_json(indent=2))
    else:
        print(JobFormatter.format_parsed(data))

    if args.save:
        with Database(db_path=db_path) as db:
            job = save_imported_job(db, user_id, args.url, data)
        print(f"Saved as job {job.id}.")
    return EXIT_OK


def _run_command(args: argparse.Namespace, user_id: str, db_path: str) -> int:
    if args.command == "import":
        return _run_import(args, user_id, db_path)

    with Database(db_path=db_path) as db:
        if args.command == "add":
            job = db.create_job(
                user_id,
                JobCreate(
                    url=args.url,
                    job_title=args.title,
                    company=args.company,
                    location=args.location,
                    description=args.description,
                    status=args.status,
                    notes=args.notes,
                    applied_date=args.applied_date,
                ),
            )
            print(f"Added job {job.id}.")
            return EXIT_OK

        if args.command == "list":
            jobs = db.list_jobs(user_id, status=args.status, search=args.search)
            for job in jobs:
                print(JobFormatter.format_job_row(job))
            if not jobs:
                print("No jobs found.")
            return EXIT_OK

        if args.command == "show":
            job = db.get_job(user_id, args.id)
            if job is None:
                print(f"Job {args.id} not found.", file=sys.stderr)
                return EXIT_FAILURE
            print(JobFormatter.format_job(job, db.get_status_history(user_id, args.id)))
            return EXIT_OK

        if args.command == "update":
            fields = {
                "status": args.status,
                "job_title": args.title,
                "company": args.company,
                "location": args.location,
                "description": args.description,
                "notes": args.notes,
                "applied_date": args.applied_date,
            }
            changes = {k: v for k, v in fields.items() if v is not None}
            # Explicit None clears the stored value
            if args.clear_notes:
                changes["notes"] = None
            if args.clear_applied_date:
                changes["applied_date"] = None
            update = JobUpdate(**changes)
            job = db.update_job(user_id, args.id, update)
            if job is None:
                print(f"Job {args.id} not found.", file=sys.stderr)
                return EXIT_FAILURE
            print(f"Updated job {job.id} ({job.status.value}).")
            return EXIT_OK

        if args.command == "delete":
            if not db.delete_job(user_id, args.id):
                print(f"Job {args.id} not found.", file=sys.stderr)
                return EXIT_FAILURE
            print(f"Deleted job {args.id}.")
            return EXIT_OK

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Set up logging once, in the application entry point only
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    # Priority: CLI flag > env var > default
    user_id = args.user or config.USER_ID
    db_path = args.db or config.DB_PATH

    try:
        return _run_command(args, user_id, db_path)
    except ValidationError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return EXIT_INVALID
    except BlockedUrlError as e:
        print(f"Rejected: {e}", file=sys.stderr)
        return EXIT_INVALID
    except FetchError as e:
        print(f"Could not fetch the job posting (try again later): {e}", file=sys.stderr)
        return EXIT_FAILURE


def cli(argv: list[str] | None = None) -> None:
    """CLI entry point for the package."""
    sys.exit(main(argv))


if __name__ == "__main__":
    cli()
