"""Share-URL canonicalization."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

CANONICAL_SHARE_BASE = "https://www.terabox.com/s/"

_SHARE_PATH_RE = re.compile(r"/s/([A-Za-z0-9_-]+)")


def normalize_url(url: str) -> str:
    """Rewrite a share link to ``https://www.terabox.com/s/<id>``.

    Domain variants, extra path segments, query strings and fragments are
    dropped. Input that is not an absolute URL (no scheme or host), does not
    parse, or has no ``/s/<id>`` path is returned untouched.
    """
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        logger.debug("unparseable url, leaving as-is", extra={"url": url})
        return url
    if not (parsed.scheme and parsed.netloc):
        logger.debug("not an absolute url, leaving as-is", extra={"url": url})
        return url

    match = _SHARE_PATH_RE.search(parsed.path)
    if match is None:
        return url
    return f"{CANONICAL_SHARE_BASE}{match.group(1)}"
