import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Tag

from job_tracker import config
from job_tracker.exceptions import BlockedUrlError, FetchError
from job_tracker.models import ParsedJobData
from job_tracker.validation import extract_domain, is_valid_url, sanitize_text

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10.0  # seconds, covers the whole request including redirects
MAX_REDIRECTS = 5
DESCRIPTION_MAX_LENGTH = 500
UNKNOWN_TITLE = "Unknown Position"
UNKNOWN_LOCATION = "Not specified"

Strategy = Callable[[BeautifulSoup], str | None]


def _meta_content(soup: BeautifulSoup, attrs: dict[str, str]) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if isinstance(tag, Tag):
        content = tag.get("content")
        if isinstance(content, str):
            return content
    return None


def og_title(soup: BeautifulSoup) -> str | None:
    return _meta_content(soup, {"property": "og:title"})


def og_site_name(soup: BeautifulSoup) -> str | None:
    return _meta_content(soup, {"property": "og:site_name"})


def og_description(soup: BeautifulSoup) -> str | None:
    return _meta_content(soup, {"property": "og:description"})


def meta_description(soup: BeautifulSoup) -> str | None:
    return _meta_content(soup, {"name": "description"})


def page_title(soup: BeautifulSoup) -> str | None:
    title = soup.find("title")
    if isinstance(title, Tag):
        return title.get_text()
    return None


# Sources tried in order for each field; the first non-empty value wins.
# Structured data is applied afterwards as an override pass.
FIELD_STRATEGIES: dict[str, tuple[Strategy, ...]] = {
    "job_title": (og_title, page_title),
    "company": (og_site_name,),
    "description": (og_description, meta_description),
    "location": (),
}


def first_value(candidates: Iterable[Any]) -> str:
    """Return the first candidate that is a non-empty string after sanitizing, else ""."""
    for candidate in candidates:
        if isinstance(candidate, str):
            value = sanitize_text(candidate)
            if value:
                return value
    return ""


def resolve_field(soup: BeautifulSoup, strategies: Iterable[Strategy]) -> str:
    return first_value(strategy(soup) for strategy in strategies)


def _get(obj: Any, key: str) -> Any:
    return obj.get(key) if isinstance(obj, dict) else None


def extract_structured_data(soup: BeautifulSoup) -> dict[str, tuple[Any, ...]]:
    """
    Read the first JSON-LD block and, if it is a schema.org JobPosting,
    return candidate values per field.

    Malformed JSON or any other @type yields an empty dict so that extraction
    continues with the meta tag values.
    """
    script = soup.find("script", attrs={"type": "application/ld+json"})
    if not isinstance(script, Tag) or not script.string:
        return {}

    try:
        data = json.loads(script.string)
    except (ValueError, RecursionError) as e:
        logger.debug(f"Ignoring malformed JSON-LD: {e}")
        return {}

    if not isinstance(data, dict) or data.get("@type") != "JobPosting":
        return {}

    job_location = data.get("jobLocation")
    if isinstance(job_location, list):
        job_location = job_location[0] if job_location else None
    address = _get(job_location, "address")

    return {
        "job_title": (data.get("title"),),
        "company": (_get(data.get("hiringOrganization"), "name"),),
        "location": (_get(address, "addressLocality"), _get(address, "addressRegion")),
        "description": (data.get("description"),),
    }


def company_from_path(url: str) -> str | None:
    """Use the first path segment as a company guess (e.g. boards.example.com/acme/123)."""
    try:
        segments = [part for part in urlparse(url).path.split("/") if part]
    except ValueError:
        return None
    return segments[0] if segments else None


def extract_job_data(html: str, url: str) -> ParsedJobData:
    """
    Build ParsedJobData from an HTML document fetched from `url`.

    Priority per field: JSON-LD JobPosting > Open Graph/meta tags >
    URL heuristic (company only) > placeholder.
    """
    soup = BeautifulSoup(html, "html.parser")

    fields = {name: resolve_field(soup, strategies) for name, strategies in FIELD_STRATEGIES.items()}

    for name, candidates in extract_structured_data(soup).items():
        value = first_value(candidates)
        if value:
            fields[name] = value

    if not fields["company"]:
        fields["company"] = first_value([company_from_path(url)])

    source_domain = extract_domain(url)

    return ParsedJobData(
        job_title=fields["job_title"] or UNKNOWN_TITLE,
        company=fields["company"] or source_domain,
        location=fields["location"] or UNKNOWN_LOCATION,
        description=fields["description"][:DESCRIPTION_MAX_LENGTH],
        source_domain=source_domain,
    )


async def _get_following_redirects(client: httpx.AsyncClient, url: str) -> httpx.Response:
    """GET a URL, re-checking every redirect target against the URL guard."""
    headers = {"User-Agent": config.USER_AGENT}
    request_url = url

    for _ in range(MAX_REDIRECTS + 1):
        response = await client.get(request_url, headers=headers, follow_redirects=False)
        location = response.headers.get("location")
        if not response.is_redirect or not location:
            return response

        request_url = str(response.url.join(location))
        if not is_valid_url(request_url):
            logger.warning(f"Blocked redirect from {response.url} to {request_url}")
            raise BlockedUrlError(request_url, f"Redirect to a blocked URL: {request_url}")
        logger.debug(f"Following redirect to {request_url}")

    raise FetchError(url, f"Failed to fetch {url}: too many redirects")


async def fetch_html(url: str, client: httpx.AsyncClient | None = None) -> str:
    """
    Fetch a page's HTML with a single GET bounded by FETCH_TIMEOUT.

    Raises BlockedUrlError before any network access if the URL fails the guard,
    and FetchError on network errors, timeouts, or non-2xx responses. No retries.
    """
    url = url.strip()
    if not is_valid_url(url):
        raise BlockedUrlError(url)

    owns_client = client is None
    http_client = client or httpx.AsyncClient(timeout=FETCH_TIMEOUT)

    try:
        response = await asyncio.wait_for(
            _get_following_redirects(http_client, url), timeout=FETCH_TIMEOUT
        )
    except TimeoutError as e:
        logger.warning(f"Timed out after {FETCH_TIMEOUT:g}s fetching {url}")
        raise FetchError(url, f"Timed out after {FETCH_TIMEOUT:g}s fetching {url}") from e
    except httpx.TimeoutException as e:
        logger.warning(f"Timed out fetching {url}: {e}")
        raise FetchError(url, f"Timed out fetching {url}") from e
    except httpx.HTTPError as e:
        logger.warning(f"HTTP error fetching {url}: {e}")
        raise FetchError(url, f"Failed to fetch {url}: {e}") from e
    finally:
        if owns_client:
            await http_client.aclose()

    if not response.is_success:
        logger.warning(f"Fetching {url} returned HTTP {response.status_code}")
        raise FetchError(
            url,
            f"Failed to fetch: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
        )

    return response.text


async def parse_job_url(url: str, client: httpx.AsyncClient | None = None) -> ParsedJobData:
    """Fetch a job posting URL and extract its title, company, location and description."""
    url = url.strip()
    logger.info(f"Importing job posting from {url}")
    html = await fetch_html(url, client)
    job_data = extract_job_data(html, url)
    logger.info(f"Extracted '{job_data.job_title}' at {job_data.company} from {job_data.source_domain}")
    return job_data
