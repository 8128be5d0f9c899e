"""Resolve and fetch the booth sheet from Google Sheets.

Two kinds of endpoint can serve the sheet as CSV:

* the ``gviz/tq`` live query endpoint derived from the spreadsheet's edit
  URL, which reflects unpublished edits and is tried first;
* the publish-to-web ``/pub?output=csv`` endpoint, which lags behind by a
  few minutes but works without sharing the spreadsheet itself.

Google answers a private or mistyped sheet with a 200 login page, so a
candidate is only accepted when its body does not look like HTML.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

log = logging.getLogger(__name__)

LIVE_QUERY_TEMPLATE = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq"
SHEET_ID_PATTERN = re.compile(r"/spreadsheets/d/([^/]+)")

REQUEST_HEADERS = {
    "Accept": "text/csv, text/plain;q=0.9, */*;q=0.1",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

HttpGet = Callable[..., requests.Response]


class UpstreamUnavailable(RuntimeError):
    """Every candidate URL failed or returned HTML."""


class SourceNotConfigured(RuntimeError):
    """The publish-to-web URL is missing from the configuration."""


@dataclass
class FetchedSource:
    url: str
    text: str
    status: int
    content_type: str


# ---------------------------------------------------------------------------
# Candidate resolution
# ---------------------------------------------------------------------------


def build_live_query_url(edit_url: str, gid: str = "0") -> Optional[str]:
    try:
        path = urlsplit(edit_url).path
    except ValueError:
        return None
    m = SHEET_ID_PATTERN.search(path)
    if not m:
        return None
    query = urlencode({"tqx": "out:csv", "gid": gid or "0"})
    return f"{LIVE_QUERY_TEMPLATE.format(sheet_id=m.group(1))}?{query}"


def normalize_publish_url(raw: str) -> str:
    """Rewrite a ``/pubhtml`` or bare ``/pub`` link into its CSV form."""

    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw
    if not parts.scheme or not parts.netloc:
        return raw

    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    path = parts.path

    if path.endswith("/pubhtml"):
        path = path[: -len("/pubhtml")] + "/pub"
        params["output"] = "csv"
    elif path.endswith("/pub") and "output" not in params:
        params["output"] = "csv"
    else:
        return raw

    params.setdefault("single", "true")
    params.setdefault("gid", "0")
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(params), parts.fragment))


def resolve_candidates(
    publish_url: Optional[str],
    edit_url: Optional[str] = None,
    gid: str = "0",
    override: Optional[str] = None,
    publish_only: bool = False,
) -> List[str]:
    """Return fetchable CSV URLs, most preferred first."""

    if override:
        return [override]
    if not publish_url:
        raise SourceNotConfigured("PUBLIC_CSV_URL missing")

    normalized = normalize_publish_url(publish_url)
    if publish_only:
        return [normalized]

    candidates: List[str] = []
    live = build_live_query_url(edit_url, gid) if edit_url else None
    if live:
        candidates.append(live)
    candidates.append(normalized)
    if publish_url != normalized:
        candidates.append(publish_url)
    return candidates


# ---------------------------------------------------------------------------
# Fetch + validate
# ---------------------------------------------------------------------------


def looks_like_html(text: str) -> bool:
    if not (text or "").strip():
        return True
    head = text[:200].lower().strip()
    return head.startswith("<!doctype") or head.startswith("<html")


def _decode_body(response: requests.Response) -> str:
    content_type = response.headers.get("content-type", "").lower()
    encoding = response.encoding if "charset" in content_type else None
    try:
        return response.content.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return response.content.decode("utf-8", errors="replace")


def fetch_text(url: str, *, timeout: float, http_get: Optional[HttpGet] = None) -> FetchedSource:
    getter = http_get or requests.get
    response = getter(url, headers=REQUEST_HEADERS, timeout=timeout, allow_redirects=True)
    text = _decode_body(response)
    log.debug(
        "Upstream response: status=%s bytes=%d url=%s",
        response.status_code,
        len(response.content or b""),
        url,
    )
    return FetchedSource(
        url=url,
        text=text,
        status=response.status_code,
        content_type=response.headers.get("content-type", ""),
    )


def is_acceptable(fetched: FetchedSource) -> bool:
    if not 200 <= fetched.status < 300:
        return False
    if "html" in fetched.content_type.lower():
        return False
    return not looks_like_html(fetched.text)


def fetch_first_valid(
    candidates: List[str], *, timeout: float, http_get: Optional[HttpGet] = None
) -> FetchedSource:
    for url in candidates:
        try:
            fetched = fetch_text(url, timeout=timeout, http_get=http_get)
        except (requests.RequestException, ValueError) as exc:
            log.warning("Candidate fetch failed: %s (%s)", url, exc)
            continue

        if is_acceptable(fetched):
            log.info("Using upstream candidate %s", url)
            return fetched

        log.warning(
            "Rejected candidate %s: status=%s content-type=%r",
            url,
            fetched.status,
            fetched.content_type,
        )

    raise UpstreamUnavailable("upstream not available")


def diagnose_candidates(
    candidates: List[str],
    *,
    timeout: float,
    preview_chars: int = 200,
    http_get: Optional[HttpGet] = None,
) -> List[Dict[str, Any]]:
    report: List[Dict[str, Any]] = []
    for url in candidates:
        try:
            fetched = fetch_text(url, timeout=timeout, http_get=http_get)
        except (requests.RequestException, ValueError) as exc:
            report.append({"url": url, "error": str(exc)})
            continue
        report.append(
            {
                "url": url,
                "status": fetched.status,
                "contentType": fetched.content_type,
                "isHtml": looks_like_html(fetched.text),
                "bodyPreview": fetched.text[:preview_chars],
            }
        )
    return report
