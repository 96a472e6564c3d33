import logging
from collections.abc import Callable
from functools import partial
from typing import Any

from requests import Response

from contract_verifier.libraries.common.logging import get_logger

from .ext import PreparedRequestExt
from .utils import get_response_reason, loggable_headers, loggable_request_body, loggable_response_body

logger = get_logger(__name__)


def get_hooks(quiet: bool) -> dict[str, list[Callable[..., Any]]]:
    """Return request/response hooks that log each exchange

    When quiet, only error responses are logged (at DEBUG level)
    """
    return {
        "request": [partial(_log_request, quiet=quiet)],
        "response": [partial(_log_response, quiet=quiet)],
    }


def _log_request(request: PreparedRequestExt, *args: Any, quiet: bool, **kwargs: Any) -> None:
    if quiet:
        return
    logger.info(
        f"request: {request.method} {request.url}",
        extra={
            "request_id": request.request_id,
            "request_headers": loggable_headers(request.headers),
            "payload": loggable_request_body(request),
        },
    )


def _log_response(response: Response, *args: Any, quiet: bool, **kwargs: Any) -> Response:
    if quiet and response.ok:
        return response
    msg = f"response: {response.status_code}"
    if reason := get_response_reason(response):
        msg += f" ({reason})"
    msg += f" [{response.elapsed.total_seconds():.3f}s]"
    extra = {
        "request_id": getattr(response.request, "request_id", None),
        "response_headers": loggable_headers(response.headers),
        "response": loggable_response_body(response),
    }
    logger.log(logging.DEBUG if quiet else logging.INFO, msg, extra=extra)
    return response
