from collections.abc import Mapping
from typing import Any

import requests.models
import requests.sessions
from requests.hooks import HOOKS

from .ext import BearerAuth, PreparedRequestExt, RestResponse, SessionExt
from .hooks import get_hooks
from .utils import generate_query_string

# Every request prepared by requests gets a request ID
requests.models.PreparedRequest = PreparedRequestExt
requests.sessions.PreparedRequest = PreparedRequestExt

# Custom hook event dispatched right before a request is sent
if "request" not in HOOKS:
    HOOKS.append("request")


class RestClient:
    """HTTP client used to talk to the provider, the provider-states service and the pact broker"""

    def __init__(self, base_url: str, timeout: float = 30, verify_ssl_certificates: bool = True, quiet: bool = False):
        """
        :param base_url: Base URL. A relative path given to request() is appended to it
        :param timeout: Default request timeout in seconds
        :param verify_ssl_certificates: Verify SSL certificates
        :param quiet: Log only error responses (at DEBUG level) by default
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify_ssl_certificates = verify_ssl_certificates
        self.quiet = quiet
        self.session = SessionExt()

    def get(self, path: str, quiet: bool | None = None, **query: Any) -> RestResponse:
        return self.request("GET", path, query=query, quiet=quiet)

    def post(self, path: str, quiet: bool | None = None, **payload: Any) -> RestResponse:
        return self.request("POST", path, json=payload, quiet=quiet)

    def request(
        self,
        method: str,
        path: str,
        query: Mapping[str, Any] | None = None,
        quiet: bool | None = None,
        **requests_lib_options: Any,
    ) -> RestResponse:
        """Send a request

        :param method: HTTP method
        :param path: A path relative to the base URL, or an absolute URL
        :param query: Query parameters. A list value is sent as a repeated parameter
        :param quiet: Overrides the client's quiet flag for this request
        :param requests_lib_options: Passed to requests as is (headers, data, json, timeout, etc.)
        """
        requests_lib_options.setdefault("timeout", self.timeout)
        requests_lib_options.setdefault("verify", self.verify_ssl_certificates)
        r = self.session.request(
            method.upper(),
            self.url_for(path, query=query),
            hooks=get_hooks(self.quiet if quiet is None else quiet),
            **requests_lib_options,
        )
        return RestResponse(r)

    def url_for(self, path: str, query: Mapping[str, Any] | None = None) -> str:
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = f"{self.base_url}/{path.lstrip('/')}"
        if query and (query_string := generate_query_string(query)):
            url += f"?{query_string}"
        return url

    def set_bearer_token(self, token: str) -> None:
        self.session.auth = BearerAuth(token)

    def set_basic_auth(self, username: str, password: str) -> None:
        self.session.auth = (username, password)

    def close(self) -> None:
        self.session.close()
