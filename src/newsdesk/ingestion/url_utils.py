"""URL canonicalization helpers for ingestion/dedup."""

from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


DEFAULT_STRIP_QUERY_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    "gclid",
    "fbclid",
    "mc_cid",
    "mc_eid",
    "ref_src",
}


def canonicalize_url(url: str, *, strip_params: Optional[Iterable[str]] = None) -> str:
    """Canonicalize an article URL so trivially different links dedup together.

    - Lowercase scheme + hostname, drop default ports
    - Remove fragments and trailing slashes on non-root paths
    - Strip tracking query parameters, sort the rest
    """
    if not url:
        return ""
    strip = set(strip_params) if strip_params is not None else DEFAULT_STRIP_QUERY_PARAMS
    p = urlparse(url.strip())
    scheme = (p.scheme or "https").lower()
    netloc = (p.netloc or "").lower()
    if (scheme == "http" and netloc.endswith(":80")) or (scheme == "https" and netloc.endswith(":443")):
        netloc = netloc.rsplit(":", 1)[0]

    path = p.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"

    kept = [(k, v) for k, v in parse_qsl(p.query, keep_blank_values=True) if k.lower() not in strip]
    kept.sort(key=lambda kv: (kv[0].lower(), kv[1]))
    query = urlencode(kept, doseq=True)

    return urlunparse((scheme, netloc, path, "", query, ""))


def is_well_formed(url: str) -> bool:
    """http(s) URL with a host."""
    p = urlparse((url or "").strip())
    return p.scheme in ("http", "https") and bool(p.hostname)
