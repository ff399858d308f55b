import ipaddress
import re
import socket
from dataclasses import dataclass, field
from urllib.parse import urlparse

SCRIPT_TAG_RE = re.compile(
    r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>",
    re.IGNORECASE,
)


def canonical_host(hostname: str) -> str:
    """
    Normalize a hostname the way the resolver will read it.

    Numeric IPv4 shorthands accepted by getaddrinfo ("127.1", "2130706433",
    "0x7f000001", "0177.0.0.1") become dotted quads, IPv6 literals are
    compressed, and IPv4-mapped IPv6 addresses become their IPv4 form.
    Anything else is returned lowercased without a trailing dot.
    """
    host = hostname.lower().rstrip(".")
    try:
        address: ipaddress.IPv4Address | ipaddress.IPv6Address = ipaddress.ip_address(host)
    except ValueError:
        try:
            address = ipaddress.IPv4Address(socket.inet_aton(host))
        except (OSError, ValueError):
            return host

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return str(address)


@dataclass(frozen=True)
class UrlPolicy:
    """
    Allow/deny rules applied to a URL before it is fetched.
    Hosts are matched textually; no DNS resolution happens here.
    """

    allowed_schemes: frozenset[str] = frozenset({"http", "https"})
    blocked_hosts: frozenset[str] = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1", "::"})
    private_patterns: tuple[re.Pattern[str], ...] = field(
        default_factory=lambda: (
            re.compile(r"^10\."),
            re.compile(r"^172\.(1[6-9]|2[0-9]|3[0-1])\."),
            re.compile(r"^192\.168\."),
            re.compile(r"^169\.254\."),
            # fc00::/7 (unique local) and fe80::/10 (link local)
            re.compile(r"^f[cd][0-9a-f]{2}:"),
            re.compile(r"^fe[89ab][0-9a-f]:"),
        )
    )

    def is_blocked_host(self, hostname: str) -> bool:
        hostname = canonical_host(hostname)
        if hostname in self.blocked_hosts:
            return True
        return any(pattern.match(hostname) for pattern in self.private_patterns)


DEFAULT_POLICY = UrlPolicy()


def is_valid_url(url: str, policy: UrlPolicy = DEFAULT_POLICY) -> bool:
    """
    Check that a URL is safe to fetch: absolute http(s) URL whose host is
    neither a loopback name nor inside a private/link-local address range.
    """
    try:
        parsed = urlparse(url.strip())
        hostname = parsed.hostname
        # Accessing .port validates it (e.g. rejects "http://host:99999/")
        _ = parsed.port
    except (ValueError, AttributeError):
        return False

    if parsed.scheme.lower() not in policy.allowed_schemes:
        return False
    if not hostname:
        return False

    return not policy.is_blocked_host(hostname)


def sanitize_text(text: str) -> str:
    """
    Remove <script> elements and trim whitespace.
    Only guards plain-text fields against script injection; the result is not
    safe to render as unescaped markup.
    """
    return SCRIPT_TAG_RE.sub("", text).strip()


def extract_domain(url: str) -> str:
    """Return the lowercase hostname of a URL, or an empty string if it doesn't parse."""
    try:
        return urlparse(url.strip()).hostname or ""
    except (ValueError, AttributeError):
        return ""
