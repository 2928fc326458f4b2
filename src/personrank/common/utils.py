"""
Utility functions for the person rank crawler.
"""
from urllib.parse import urlparse, urlunparse

from personrank.common.errors import MalformedUrlError


def normalize_url(url):
    """Normalize a URL by removing fragments and trailing slashes."""
    if not url:
        return None

    # Add scheme if missing
    if not url.startswith(('http://', 'https://')):
        url = f"https://{url}"

    parsed = urlparse(url)

    # Remove fragment
    parsed = parsed._replace(fragment='')

    # Normalize path (remove trailing slash)
    path = parsed.path
    if path.endswith('/') and len(path) > 1:
        path = path[:-1]
    parsed = parsed._replace(path=path)

    return urlunparse(parsed)

def get_site_address(url):
    """Return `scheme://host[:port]` of a page URL."""
    if not url:
        raise MalformedUrlError("Empty URL")
    try:
        parsed = urlparse(url.strip())
    except ValueError as e:
        raise MalformedUrlError(f"Malformed URL {url!r}: {e}")
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise MalformedUrlError(f"Malformed URL {url!r}")
    return f"{parsed.scheme}://{parsed.netloc}"

def merge_counts(source, target):
    """Add every value of `source` into `target`, summing on shared keys."""
    for key, value in source.items():
        target[key] = target.get(key, 0) + value
    return target
