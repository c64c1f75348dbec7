"""promptqa API Runner -- HTTP client for API steps.

Wraps a ``requests.Session``: joins relative endpoints onto the configured
API base URL, sends an Accept header that lets the server choose JSON or XML,
decodes JSON bodies and leaves every other body (including XML) as text.
XML values are pulled out with a tag regex rather than a full parser.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import time
from typing import Any

import requests

from promptqa.engine.context import VariableStore
from promptqa.engine.errors import MissingEndpointError
from promptqa.models import API_ACCEPT_HEADER, DEFAULT_API_TIMEOUT

logger = logging.getLogger("promptqa.engine.api_runner")


@dataclasses.dataclass
class APIResponse:
    """Decoded response of a single API call."""

    status: int
    body: Any
    headers: dict[str, str]
    raw: requests.Response
    duration_ms: float

    @property
    def ok(self) -> bool:
        return self.status < 400


class APIClient:
    """Issues API requests on behalf of prompt steps.

    The variable store is shared with the rest of the run so endpoints can
    reference values captured by earlier steps.
    """

    def __init__(
        self,
        base_url: str,
        store: VariableStore,
        timeout: float = DEFAULT_API_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        """
        Args:
            base_url: Base URL relative endpoints are joined onto.
            store: Shared variable store (used for placeholder substitution).
            timeout: Per-request timeout in seconds.
            session: Pre-built session (tests inject a mock here).
        """
        self._base_url = base_url.rstrip("/")
        self._store = store
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()
        self._session.headers.update({"Accept": API_ACCEPT_HEADER})
        logger.info("API client initialized with base URL: %s", self._base_url or "<none>")

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def store(self) -> VariableStore:
        return self._store

    # -- Requests --------------------------------------------------------

    def get(self, endpoint: str, **kwargs: Any) -> APIResponse:
        return self._request("GET", endpoint, **kwargs)

    def post(self, endpoint: str, data: Any = None, **kwargs: Any) -> APIResponse:
        if data is not None:
            kwargs["json"] = data
            logger.info("API POST body: %s", data)
        return self._request("POST", endpoint, **kwargs)

    def put(self, endpoint: str, data: Any = None, **kwargs: Any) -> APIResponse:
        if data is not None:
            kwargs["json"] = data
        return self._request("PUT", endpoint, **kwargs)

    def delete(self, endpoint: str, **kwargs: Any) -> APIResponse:
        return self._request("DELETE", endpoint, **kwargs)

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> APIResponse:
        url = self.build_url(endpoint)
        kwargs.setdefault("timeout", self._timeout)
        logger.info("API %s %s", method, url)

        start = time.monotonic()
        response = self._session.request(method, url, **kwargs)
        duration_ms = (time.monotonic() - start) * 1000

        body = self._decode_body(response)
        logger.info("API response: status=%s duration=%.0fms", response.status_code, duration_ms)
        return APIResponse(
            status=response.status_code,
            body=body,
            headers=dict(response.headers),
            raw=response,
            duration_ms=round(duration_ms, 1),
        )

    def build_url(self, endpoint: str) -> str:
        """Absolute URLs pass through; relative ones are joined onto base_url."""
        if re.match(r"^https?://", endpoint, re.IGNORECASE):
            return endpoint
        if not self._base_url:
            raise MissingEndpointError(
                f"Endpoint {endpoint!r} is relative and no API base URL is configured"
            )
        return f"{self._base_url}/{endpoint.lstrip('/')}"

    @staticmethod
    def _decode_body(response: requests.Response) -> Any:
        content_type = response.headers.get("Content-Type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                logger.warning("Response declared JSON but could not be decoded")
        return response.text

    # -- Helpers ---------------------------------------------------------

    def replace_placeholders(self, endpoint: str) -> str:
        """Substitute ``{{name}}`` tokens from the shared store."""
        return self._store.resolve_placeholders(endpoint)

    @staticmethod
    def extract_from_xml(xml_string: str, tag_name: str) -> str | None:
        """Return the trimmed text of the first ``<tag_name>`` element, if any."""
        pattern = re.compile(
            rf"<{re.escape(tag_name)}>\s*([^<]+?)\s*</{re.escape(tag_name)}>",
            re.IGNORECASE,
        )
        match = pattern.search(xml_string)
        return match.group(1).strip() if match else None

    def close(self) -> None:
        self._session.close()
        logger.info("API client closed")
