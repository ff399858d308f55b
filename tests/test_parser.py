import asyncio
import json
from unittest.mock import patch

import httpx
import pytest
from bs4 import BeautifulSoup

from job_tracker.exceptions import BlockedUrlError, FetchError
from job_tracker.parser import (
    DESCRIPTION_MAX_LENGTH,
    UNKNOWN_LOCATION,
    UNKNOWN_TITLE,
    company_from_path,
    extract_job_data,
    extract_structured_data,
    parse_job_url,
)

BOT_USER_AGENT = "Mozilla/5.0 (compatible; JobTrackerBot/1.0)"

META_ONLY_HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>Widget Engineer</title>
    <meta name="description" content="Build widgets all day.">
</head>
<body><h1>Widget Engineer</h1></body>
</html>
"""

OPEN_GRAPH_HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>Page Title | Careers</title>
    <meta property="og:title" content="Backend Developer">
    <meta property="og:site_name" content="Acme Careers">
    <meta property="og:description" content="Join the Acme platform team.">
    <meta name="description" content="Generic description.">
</head>
<body></body>
</html>
"""


def _with_json_ld(data: object, head: str = "") -> str:
    # "<\/" keeps embedded closing tags from ending the script element early
    payload = json.dumps(data).replace("</", "<\\/")
    return f"""
<html>
<head>
    {head}
    <script type="application/ld+json">{payload}</script>
</head>
<body></body>
</html>
"""


OG_HEAD = """
<meta property="og:title" content="OG Title">
<meta property="og:site_name" content="OG Company">
<meta property="og:description" content="OG description">
"""

JOB_POSTING = {
    "@context": "https://schema.org",
    "@type": "JobPosting",
    "title": "Staff Platform Engineer",
    "hiringOrganization": {"@type": "Organization", "name": "Initech"},
    "jobLocation": {
        "@type": "Place",
        "address": {"@type": "PostalAddress", "addressLocality": "Austin", "addressRegion": "TX"},
    },
}


# --- Field resolution ---


def test_meta_description_and_title_only():
    """Title and generic meta description are used; company falls back to the domain."""
    data = extract_job_data(META_ONLY_HTML, "https://widgets.example.com/")

    assert data.job_title == "Widget Engineer"
    assert data.company == "widgets.example.com"
    assert data.company == data.source_domain
    assert data.description == "Build widgets all day."
    assert data.location == UNKNOWN_LOCATION


def test_open_graph_tags_take_priority_over_generic_meta():
    data = extract_job_data(OPEN_GRAPH_HTML, "https://careers.acme.com/")

    assert data.job_title == "Backend Developer"
    assert data.company == "Acme Careers"
    assert data.description == "Join the Acme platform team."
    assert data.location == UNKNOWN_LOCATION
    assert data.source_domain == "careers.acme.com"


def test_structured_data_overrides_open_graph():
    """JSON-LD wins for every field it supplies; others keep Open Graph values."""
    html = _with_json_ld(JOB_POSTING, head=OG_HEAD)

    data = extract_job_data(html, "https://jobs.example.com/")

    assert data.job_title == "Staff Platform Engineer"
    assert data.company == "Initech"
    assert data.location == "Austin"
    # No description in the JobPosting, so Open Graph is kept
    assert data.description == "OG description"


def test_structured_data_location_falls_back_to_region():
    posting = {
        "@type": "JobPosting",
        "jobLocation": {"address": {"addressRegion": "Bavaria"}},
    }

    data = extract_job_data(_with_json_ld(posting, head=OG_HEAD), "https://jobs.example.com/")

    assert data.location == "Bavaria"
    assert data.job_title == "OG Title"
    assert data.company == "OG Company"


def test_structured_data_location_list_uses_first_entry():
    posting = {
        "@type": "JobPosting",
        "jobLocation": [
            {"address": {"addressLocality": "Ramallah"}},
            {"address": {"addressLocality": "Nablus"}},
        ],
    }

    data = extract_job_data(_with_json_ld(posting), "https://jobs.example.com/")

    assert data.location == "Ramallah"


def test_structured_data_description_overrides():
    posting = {**JOB_POSTING, "description": "Structured description."}

    data = extract_job_data(_with_json_ld(posting, head=OG_HEAD), "https://jobs.example.com/")

    assert data.description == "Structured description."


def test_non_job_posting_structured_data_is_ignored():
    organization = {"@type": "Organization", "name": "Not A Job", "title": "Nope"}

    data = extract_job_data(_with_json_ld(organization, head=OG_HEAD), "https://jobs.example.com/")

    assert data.job_title == "OG Title"
    assert data.company == "OG Company"


def test_malformed_structured_data_is_ignored():
    html = f"""
    <html><head>{OG_HEAD}
    <script type="application/ld+json">{{"@type": "JobPosting", "title": </script>
    </head></html>
    """

    data = extract_job_data(html, "https://jobs.example.com/")

    assert data.job_title == "OG Title"
    assert data.company == "OG Company"
    assert data.description == "OG description"
    assert extract_structured_data(BeautifulSoup(html, "html.parser")) == {}


def test_structured_data_with_unexpected_shapes_does_not_raise():
    posting = {
        "@type": "JobPosting",
        "title": 42,
        "hiringOrganization": "Just A String",
        "jobLocation": [],
    }

    data = extract_job_data(_with_json_ld(posting, head=OG_HEAD), "https://jobs.example.com/")

    assert data.job_title == "OG Title"
    assert data.company == "OG Company"
    assert data.location == UNKNOWN_LOCATION


def test_company_falls_back_to_first_path_segment():
    data = extract_job_data(META_ONLY_HTML, "https://boards.example.com/acme/jobs/123")

    assert data.company == "acme"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://boards.example.com/acme/jobs/1", "acme"),
        ("https://boards.example.com//acme/", "acme"),
        ("https://boards.example.com/", None),
        ("https://boards.example.com", None),
    ],
)
def test_company_from_path(url, expected):
    assert company_from_path(url) == expected


def test_empty_document_uses_placeholders():
    data = extract_job_data("", "https://empty.example.com/")

    assert data.job_title == UNKNOWN_TITLE
    assert data.company == "empty.example.com"
    assert data.location == UNKNOWN_LOCATION
    assert data.description == ""
    assert data.source_domain == "empty.example.com"


def test_malformed_html_does_not_raise():
    html = "<html><head><title>Broken <b>Engineer</title><meta property='og:site_name' content='Co'"

    data = extract_job_data(html, "https://broken.example.com/")

    assert data.job_title
    assert data.source_domain == "broken.example.com"


def test_description_is_truncated_to_500_characters():
    long_description = "x" * 600
    html = f'<html><head><meta property="og:description" content="{long_description}"></head></html>'

    data = extract_job_data(html, "https://jobs.example.com/")

    assert len(data.description) == DESCRIPTION_MAX_LENGTH == 500


def test_script_tags_are_removed_from_all_fields():
    posting = {
        "@type": "JobPosting",
        "title": "<script>steal()</script>Data Engineer",
        "hiringOrganization": {"name": "Globex<script>x()</script>"},
        "jobLocation": {"address": {"addressLocality": "<script>1</script>Oslo"}},
        "description": "<SCRIPT>evil()</SCRIPT>Pipelines and more.",
    }

    data = extract_job_data(_with_json_ld(posting), "https://jobs.example.com/")

    assert data.job_title == "Data Engineer"
    assert data.company == "Globex"
    assert data.location == "Oslo"
    assert data.description == "Pipelines and more."
    for value in data.model_dump().values():
        assert "<script" not in value.lower()


def test_value_that_sanitizes_to_empty_falls_through_to_next_source():
    html = """
    <html><head>
        <meta property="og:title" content="<script>x()</script>">
        <title>Real Title</title>
    </head></html>
    """

    data = extract_job_data(html, "https://jobs.example.com/")

    assert data.job_title == "Real Title"


def test_whitespace_only_title_falls_back_to_placeholder():
    data = extract_job_data("<html><head><title>   </title></head></html>", "https://x.example.com/")

    assert data.job_title == UNKNOWN_TITLE


# --- Fetching ---


@pytest.mark.asyncio
async def test_parse_job_url_fetches_and_extracts(httpx_mock):
    url = "https://jobs.example.com/"
    httpx_mock.add_response(
        url=url,
        text=_with_json_ld(JOB_POSTING, head=OG_HEAD),
        match_headers={"User-Agent": BOT_USER_AGENT},
    )

    data = await parse_job_url(url)

    assert data.job_title == "Staff Platform Engineer"
    assert data.company == "Initech"
    assert data.location == "Austin"
    assert data.source_domain == "jobs.example.com"


@pytest.mark.asyncio
async def test_parse_job_url_uses_supplied_client(httpx_mock):
    url = "https://widgets.example.com/"
    httpx_mock.add_response(url=url, text=META_ONLY_HTML)

    async with httpx.AsyncClient() as client:
        data = await parse_job_url(url, client=client)
        assert not client.is_closed

    assert data.job_title == "Widget Engineer"


@pytest.mark.asyncio
async def test_http_404_raises_fetch_error(httpx_mock):
    httpx_mock.add_response(status_code=404)

    with pytest.raises(FetchError) as exc_info:
        await parse_job_url("https://jobs.example.com/missing")

    assert exc_info.value.status_code == 404
    assert "404" in str(exc_info.value)


@pytest.mark.asyncio
async def test_server_error_raises_fetch_error_without_retry(httpx_mock):
    httpx_mock.add_response(status_code=503)

    with pytest.raises(FetchError) as exc_info:
        await parse_job_url("https://jobs.example.com/")

    assert exc_info.value.status_code == 503
    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_transport_timeout_raises_fetch_error(httpx_mock):
    httpx_mock.add_exception(httpx.ConnectTimeout("Connection timed out"))

    with pytest.raises(FetchError) as exc_info:
        await parse_job_url("https://unroutable.example.com/")

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, httpx.TimeoutException)


@pytest.mark.asyncio
async def test_connection_error_raises_fetch_error(httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("Name or service not known"))

    with pytest.raises(FetchError):
        await parse_job_url("https://does-not-exist.example.com/")


@pytest.mark.asyncio
async def test_overall_timeout_ceiling_raises_fetch_error():
    """A fetch that outlives the ceiling is cancelled and reported as FetchError."""

    async def _hang(client, url):
        await asyncio.sleep(5)

    with (
        patch("job_tracker.parser.FETCH_TIMEOUT", 0.05),
        patch("job_tracker.parser._get_following_redirects", new=_hang),
    ):
        with pytest.raises(FetchError, match="Timed out"):
            await parse_job_url("https://slow.example.com/")


@pytest.mark.asyncio
async def test_blocked_url_is_never_fetched(httpx_mock):
    with pytest.raises(BlockedUrlError):
        await parse_job_url("http://169.254.169.254/latest/meta-data/")

    assert httpx_mock.get_requests() == []


@pytest.mark.parametrize(
    "url",
    [
        "http://127.1/",
        "http://2130706433/admin",
        "http://0x7f000001:8080/",
        "http://[::ffff:127.0.0.1]/",
    ],
)
@pytest.mark.asyncio
async def test_numeric_loopback_forms_are_never_fetched(httpx_mock, url):
    with pytest.raises(BlockedUrlError):
        await parse_job_url(url)

    assert httpx_mock.get_requests() == []


@pytest.mark.asyncio
async def test_redirect_to_numeric_loopback_is_blocked(httpx_mock):
    httpx_mock.add_response(
        url="https://jobs.example.com/go",
        status_code=307,
        headers={"Location": "http://2130706433/admin"},
    )

    with pytest.raises(BlockedUrlError):
        await parse_job_url("https://jobs.example.com/go")

    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_surrounding_whitespace_is_stripped_before_fetch(httpx_mock):
    httpx_mock.add_response(url="https://widgets.example.com/", text=META_ONLY_HTML)

    data = await parse_job_url("  https://widgets.example.com/\n")

    assert data.job_title == "Widget Engineer"
    assert data.source_domain == "widgets.example.com"
    assert str(httpx_mock.get_requests()[0].url) == "https://widgets.example.com/"


@pytest.mark.asyncio
async def test_redirect_to_private_address_is_blocked(httpx_mock):
    httpx_mock.add_response(
        url="https://jobs.example.com/apply",
        status_code=302,
        headers={"Location": "http://127.0.0.1/admin"},
    )

    with pytest.raises(BlockedUrlError) as exc_info:
        await parse_job_url("https://jobs.example.com/apply")

    assert exc_info.value.url == "http://127.0.0.1/admin"
    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_redirect_to_public_url_is_followed(httpx_mock):
    httpx_mock.add_response(
        url="https://jobs.example.com/short",
        status_code=301,
        headers={"Location": "/acme/widget-engineer"},
    )
    httpx_mock.add_response(url="https://jobs.example.com/acme/widget-engineer", text=META_ONLY_HTML)

    data = await parse_job_url("https://jobs.example.com/short")

    assert data.job_title == "Widget Engineer"
    # Heuristics run against the URL the caller supplied
    assert data.company == "short"
