import json
import urllib.parse
from collections.abc import Mapping
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from requests import PreparedRequest, Response


MAX_LOGGED_BODY_LEN = 1024
MASKED_HEADERS = ("authorization", "proxy-authorization", "cookie")
MASKED_FIELD_NAME_PARTS = ("password", "token", "secret")


def generate_query_string(query_params: Mapping[str, Any]) -> str:
    """Encode query parameters. A list value is encoded as a repeated parameter (eg. {"a": [1, 2]} -> "a=1&a=2")

    :param query_params: Query parameters. Parameters with a None value are dropped
    """
    pairs = []
    for name, value in query_params.items():
        if value is None:
            continue
        for v in value if isinstance(value, (list, tuple)) else [value]:
            pairs.append((name, str(v).lower() if isinstance(v, bool) else v))
    return urllib.parse.urlencode(pairs)


def loggable_request_body(request: "PreparedRequest") -> Any:
    """Return the request body in a form suitable for logs. Credentials in a JSON body are masked"""
    body = request.body
    if not body:
        return None
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return f"<{len(body)} bytes of binary data>"
    try:
        return mask_credentials(json.loads(body))
    except ValueError:
        return _shorten(body)


def loggable_response_body(response: "Response") -> Any:
    """Return the response body in a form suitable for logs"""
    try:
        return response.json()
    except ValueError:
        return _shorten(response.text)


def loggable_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {k: "***" if k.lower() in MASKED_HEADERS else v for k, v in headers.items()}


def mask_credentials(obj: Any) -> Any:
    """Mask string values of fields whose name looks like a credential"""
    if isinstance(obj, dict):
        return {k: "***" if _is_credential(k, v) else mask_credentials(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [mask_credentials(x) for x in obj]
    return obj


def get_response_reason(response: "Response") -> str:
    """Return the reason phrase of the response. Falls back to the standard phrase of the status code"""
    if response.reason:
        return response.reason
    try:
        return HTTPStatus(response.status_code).phrase
    except ValueError:
        return ""


def _is_credential(name: str, value: Any) -> bool:
    return isinstance(value, str) and any(p in name.lower() for p in MASKED_FIELD_NAME_PARTS)


def _shorten(text: str) -> str:
    if len(text) <= MAX_LOGGED_BODY_LEN:
        return text
    half = MAX_LOGGED_BODY_LEN // 2
    return f"{text[:half]} ...({len(text) - MAX_LOGGED_BODY_LEN} chars truncated)... {text[-half:]}"
