"""
URL helpers shared by the crawler, extractors and downloader.

The canonical form is what every dedup set in the package keys on:
scheme and host lowercased, default ports stripped, fragment dropped.
"""

from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

DEFAULT_PORTS = {"http": "80", "https": "443"}

TRACKING_PARAMS = frozenset({"ref", "fbclid", "gclid"})


def canonicalize_url(url: str, base: str | None = None) -> str:
    """
    Canonicalize a URL for deduplication.

    - Resolves relative references against base (if given)
    - Lowercases scheme and host
    - Removes default ports
    - Drops the fragment
    - Uses "/" for an empty http(s) path

    Path and query are kept verbatim. The function is idempotent.
    Strings urlsplit rejects (e.g. an unclosed IPv6 bracket) come back
    stripped but otherwise unchanged.

    Args:
        url: URL to canonicalize
        base: Optional base URL for relative references

    Returns:
        Canonical URL string
    """
    url = url.strip()
    try:
        if base:
            url = urljoin(base, url)
        parts = urlsplit(url)
    except ValueError:
        return url
    scheme = parts.scheme.lower()

    if scheme not in DEFAULT_PORTS:
        # data:, blob:, mailto: ... only the fragment is meaningful to drop
        return urlunsplit((scheme, parts.netloc, parts.path, parts.query, ""))

    userinfo, _, hostport = parts.netloc.rpartition("@")

    if hostport.startswith("["):
        # IPv6 literal
        close = hostport.find("]")
        host = hostport[: close + 1]
        rest = hostport[close + 1:]
        port = rest[1:] if rest.startswith(":") else ""
    else:
        host, _, port = hostport.partition(":")

    host = host.lower()
    if port == DEFAULT_PORTS[scheme]:
        port = ""

    netloc = host + (f":{port}" if port else "")
    if userinfo:
        netloc = f"{userinfo}@{netloc}"

    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))


def is_http_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host. Unparsable URLs are not."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in DEFAULT_PORTS and bool(parts.netloc)


def origin_of(url: str) -> str:
    """Return "scheme://host[:port]" of a URL in canonical form."""
    parts = urlsplit(canonicalize_url(url))
    return f"{parts.scheme}://{parts.netloc}"


def host_of(url: str) -> str:
    """Lowercased hostname of a URL, or "" when there is none."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def path_extension(url: str) -> str:
    """Lowercased extension of the last path segment, without the dot."""
    path = urlsplit(url).path
    segment = path.rsplit("/", 1)[-1]
    if "." not in segment:
        return ""
    return segment.rsplit(".", 1)[-1].lower()


def strip_tracking_params(url: str) -> str:
    """
    Remove analytics parameters (utm_*, ref, fbclid, gclid) from a URL.

    Args:
        url: URL to clean

    Returns:
        URL without tracking parameters; other parameters keep their order
    """
    parts = urlsplit(url)
    if not parts.query:
        return url

    kept = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith("utm_") and key.lower() not in TRACKING_PARAMS
    ]

    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment)
    )
