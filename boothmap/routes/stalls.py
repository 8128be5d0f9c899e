import json

from flask import Blueprint, Response, current_app, request

from ..integrations.booths import normalize_booth_id
from ..integrations.google_sheets_source import (
    UpstreamUnavailable,
    diagnose_candidates,
    fetch_first_valid,
    resolve_candidates,
)
from ..utils.sheet_cache import get_cached_payload, load_booth_payload

URL_PREFIX = "/api"
bp = Blueprint("stalls", __name__)

NO_STORE = "no-store, no-cache, must-revalidate, proxy-revalidate"


def _response(body, status=200, content_type="application/json; charset=utf-8", **headers):
    resp = Response(body, status=status, content_type=content_type)
    resp.headers["Cache-Control"] = NO_STORE
    resp.headers["Access-Control-Allow-Origin"] = "*"
    for name, value in headers.items():
        if value is not None:
            resp.headers[name.replace("_", "-")] = value
    return resp


def _json(data, status=200, **headers):
    return _response(json.dumps(data, ensure_ascii=False), status=status, **headers)


def _error(message, status):
    return _json({"error": message}, status=status)


def _candidates(app, allow_override=True):
    gid = request.args.get("gid") or app.config.get("DEFAULT_GID", "0")
    return resolve_candidates(
        app.config.get("PUBLIC_CSV_URL"),
        edit_url=app.config.get("PUBLIC_SHEET_EDIT_URL") or None,
        gid=gid,
        override=(request.args.get("src") or None) if allow_override else None,
        publish_only=request.args.get("force") == "pub",
    )


def _timeout(app) -> float:
    return float(app.config.get("UPSTREAM_TIMEOUT_SECONDS", 8))


@bp.get("/stalls")
def stalls():
    app = current_app
    if not app.config.get("PUBLIC_CSV_URL"):
        app.logger.error("PUBLIC_CSV_URL missing; cannot serve /api/stalls")
        return _error("PUBLIC_CSV_URL missing", 500)

    mode = request.args.get("mode", "")
    candidates = _candidates(app)
    app.logger.debug(
        "Stalls requested",
        extra={"mode": mode, "candidates": candidates, "remote_addr": request.remote_addr},
    )

    if mode == "diag":
        report = diagnose_candidates(
            candidates,
            timeout=_timeout(app),
            preview_chars=int(app.config.get("DIAG_PREVIEW_CHARS", 200)),
        )
        return _json(report)

    if mode == "raw":
        return _raw_csv(app, candidates)

    try:
        if request.args.get("src"):
            body = load_booth_payload(candidates, timeout=_timeout(app))
            return _response(body, x_debug_from="fetch")
        result = get_cached_payload(app, candidates)
    except UpstreamUnavailable as exc:
        app.logger.error("All upstream candidates failed: %s", exc, extra={"candidates": candidates})
        return _error(str(exc) or "upstream failed", 502)

    generated_at = result.generated_at.isoformat() if result.generated_at else None
    return _response(result.body, x_debug_from=result.source, x_generated_at=generated_at)


def _raw_csv(app, candidates):
    try:
        fetched = fetch_first_valid(candidates, timeout=_timeout(app))
    except UpstreamUnavailable:
        hint = "\n".join(
            [
                "CSV fetch failed: every candidate returned HTML, an empty body or an error.",
                "Check that:",
                "1) the spreadsheet is published to the web",
                "2) PUBLIC_CSV_URL is a /pub?...&output=csv link (not pubhtml)",
                "3) PUBLIC_SHEET_EDIT_URL is set so the live query endpoint can be used",
            ]
        )
        return _response(
            hint,
            status=502,
            content_type="text/plain; charset=utf-8",
            x_candidates=" | ".join(candidates),
        )
    return _response(
        fetched.text,
        content_type="text/plain; charset=utf-8",
        x_source_url=fetched.url,
        x_upstream_type=fetched.content_type,
    )


@bp.get("/stalls/<booth_id>")
def stall_detail(booth_id):
    app = current_app
    if not app.config.get("PUBLIC_CSV_URL"):
        return _error("PUBLIC_CSV_URL missing", 500)

    try:
        result = get_cached_payload(app, _candidates(app, allow_override=False))
    except UpstreamUnavailable as exc:
        app.logger.error("Booth lookup failed upstream: %s", exc, extra={"booth_id": booth_id})
        return _error(str(exc) or "upstream failed", 502)

    wanted = normalize_booth_id(booth_id)
    for key, entry in json.loads(result.body).get("byId", []):
        if key == wanted:
            return _json(entry, x_debug_from=result.source)
    return _error(f"booth {wanted} not found", 404)
