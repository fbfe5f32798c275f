"""
Conditional request negotiation (RFC 7232).

Decides whether a GET/HEAD can be answered with 304 Not Modified from the
request's validators and the ETag / Last-Modified of the cached entry.

    If-None-Match present  → it alone decides; If-Modified-Since is ignored
    else If-Modified-Since → 304 if the file is not newer than the date
    neither                → full response
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


@dataclass(frozen=True)
class Validators:
    """What the server knows about the current representation."""

    etag: str
    last_modified: str
    mtime: float


def parse_http_date(value: str) -> Optional[datetime]:
    """Parse an HTTP-date into an aware UTC datetime, or None if invalid."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _opaque_tag(tag: str) -> str:
    # Weak comparison: W/"x" and "x" name the same representation
    tag = tag.strip()
    return tag[2:] if tag.startswith("W/") else tag


def etag_matches(if_none_match: str, etag: str) -> bool:
    """True if any tag in an If-None-Match list matches `etag` (or it is *)."""
    if if_none_match.strip() == "*":
        return True
    current = _opaque_tag(etag)
    return any(
        _opaque_tag(candidate) == current
        for candidate in if_none_match.split(",")
        if candidate.strip()
    )


def not_modified_since(if_modified_since: str, mtime: float) -> bool:
    """
    True if the file has not changed since the client's date.

    HTTP dates have one-second resolution, so mtime is truncated before
    comparing. Unparseable dates never match.
    """
    since = parse_http_date(if_modified_since)
    if since is None:
        return False
    return int(mtime) <= int(since.timestamp())


def is_not_modified(
    validators: Validators,
    if_none_match: Optional[str] = None,
    if_modified_since: Optional[str] = None,
) -> bool:
    """Return True when the response should be 304 Not Modified."""
    if if_none_match:
        return etag_matches(if_none_match, validators.etag)
    if if_modified_since:
        return not_modified_since(if_modified_since, validators.mtime)
    return False
