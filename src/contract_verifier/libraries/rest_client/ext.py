import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from requests import ConnectionError, PreparedRequest, Response, Session, Timeout
from requests.auth import AuthBase
from requests.hooks import dispatch_hook
from requests.structures import CaseInsensitiveDict

from contract_verifier.libraries.common.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class BearerAuth(AuthBase):
    def __init__(self, token: str):
        self.token = token

    def __call__(self, r: PreparedRequest) -> PreparedRequest:
        r.headers["Authorization"] = f"Bearer {self.token}"
        return r


class PreparedRequestExt(PreparedRequest):
    """PreparedRequest with a request ID and send/receive timestamps"""

    def __init__(self) -> None:
        super().__init__()
        self.request_id = str(uuid.uuid4())
        self.start_time: datetime | None = None
        self.end_time: datetime | None = None


@dataclass(frozen=True)
class RestResponse:
    """A received response

    `response` holds the decoded JSON body when the body is JSON, otherwise the body text
    """

    _response: Response = field(repr=False)
    request_id: str = field(init=False)
    status_code: int = field(init=False)
    headers: CaseInsensitiveDict = field(init=False, repr=False)
    response: Any = field(init=False)
    response_time: float = field(init=False)
    ok: bool = field(init=False)

    def __post_init__(self) -> None:
        r = self._response
        try:
            body = r.json()
        except ValueError:
            body = r.text
        for name, value in (
            ("request_id", getattr(r.request, "request_id", "")),
            ("status_code", r.status_code),
            ("headers", r.headers),
            ("response", body),
            ("response_time", r.elapsed.total_seconds()),
            ("ok", r.ok),
        ):
            object.__setattr__(self, name, value)

    @property
    def content(self) -> bytes:
        return self._response.content

    @property
    def text(self) -> str:
        return self._response.text


class SessionExt(Session):
    """Session that tags every request with X-Request-ID and dispatches the custom "request" hook before sending"""

    def send(self, request: PreparedRequestExt, **kwargs: Any) -> Response:
        request.headers.setdefault(REQUEST_ID_HEADER, request.request_id)
        try:
            return self._send(request, **kwargs)
        except ConnectionError as e:
            if "Connection reset by peer" not in str(e):
                self._log_error(request, e)
                raise
            logger.warning(f"Connection was reset by peer. Retrying {request.method} {request.url}")
            return self._send(request, **kwargs)
        except Timeout as e:
            self._log_error(request, e)
            raise

    def _send(self, request: PreparedRequestExt, **kwargs: Any) -> Response:
        request.start_time = datetime.now(tz=timezone.utc)
        dispatch_hook("request", request.hooks, request, **kwargs)
        try:
            return super().send(request, **kwargs)
        finally:
            request.end_time = datetime.now(tz=timezone.utc)

    @staticmethod
    def _log_error(request: PreparedRequestExt, e: Exception) -> None:
        logger.error(
            f"{request.method} {request.url} failed: {type(e).__name__}: {e}",
            extra={"request_id": request.request_id},
        )
