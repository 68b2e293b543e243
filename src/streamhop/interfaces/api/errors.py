"""JSON error bodies shared by all routers."""

from __future__ import annotations

from typing import Any

import httpx
from fastapi.responses import JSONResponse

from streamhop.domain.entities.resolution import FailureClass, FailureReport
from streamhop.domain.exceptions import ChainError, UpstreamRejectedError

DEBUG_DETAIL_LIMIT = 500


def truncate(text: str, limit: int = DEBUG_DETAIL_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def status_for(failure_class: FailureClass) -> int:
    """504 for timeouts, 502 for every other upstream failure."""
    return 504 if failure_class is FailureClass.TIMEOUT else 502


def error_body(
    message: str,
    *,
    failure_class: FailureClass | None = None,
    debug: str | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": message}
    if failure_class is not None:
        body["class"] = failure_class.value
    if debug:
        body["debug"] = truncate(debug)
    return body


def error_response(
    status_code: int,
    message: str,
    *,
    failure_class: FailureClass | None = None,
    debug: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        error_body(message, failure_class=failure_class, debug=debug),
        status_code=status_code,
        headers=headers,
    )


def failure_response(report: FailureReport, *, include_debug: bool) -> JSONResponse:
    """Map a terminal ``FailureReport`` to its HTTP response."""
    debug = None
    if include_debug:
        hop = report.hop.name if report.hop is not None else "-"
        debug = f"hop={hop} {report.detail}".strip()
    return error_response(
        status_for(report.failure_class),
        report.message,
        failure_class=report.failure_class,
        debug=debug,
    )


def upstream_error_response(
    exc: Exception, *, headers: dict[str, str] | None = None
) -> JSONResponse:
    """Map an upstream fetch exception to a JSON error.

    Upstream 4xx/5xx statuses are passed through; timeouts become 504 and
    everything else 502.
    """
    if isinstance(exc, httpx.TimeoutException):
        return error_response(
            504,
            "upstream timed out",
            failure_class=FailureClass.TIMEOUT,
            headers=headers,
        )
    if isinstance(exc, UpstreamRejectedError):
        status = exc.status_code if 400 <= exc.status_code < 600 else 502
        return error_response(
            status,
            str(exc),
            failure_class=FailureClass.UPSTREAM_REJECTED,
            headers=headers,
        )
    if isinstance(exc, ChainError):
        return error_response(
            502, str(exc), failure_class=exc.failure_class, headers=headers
        )
    return error_response(
        502,
        "upstream unreachable",
        failure_class=FailureClass.NETWORK_ERROR,
        headers=headers,
    )
