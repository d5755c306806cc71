"""
app/connectors/base.py

Base connector abstraction and shared HTTP mechanics.

Connectors perform exactly one HTTP request per call and translate
transport or status failures into typed ``GatewayError`` subclasses.
Retry and backoff policy belongs to the caller.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import requests

from app.config import ExternalHTTPSettings

logger = logging.getLogger(__name__)

_ERROR_BODY_PREVIEW_CHARS = 500


class GatewayError(RuntimeError):
    """
    Base class for failures talking to an external data source.
    """

    retryable: bool = False

    def __init__(self, message: str, *, source: str, url: str | None = None) -> None:
        super().__init__(message)
        self.source = source
        self.url = url


class GatewayTransportError(GatewayError):
    """
    Network failure or timeout. Retryable.
    """

    retryable = True


class GatewayClientError(GatewayError):
    """
    Upstream answered with a 4xx status, usually a bad filter. Not retryable.
    """

    retryable = False

    def __init__(self, message: str, *, source: str, url: str | None = None, status_code: int) -> None:
        super().__init__(message, source=source, url=url)
        self.status_code = status_code


class GatewayServerError(GatewayError):
    """
    Upstream answered with a 5xx status. Retryable.
    """

    retryable = True

    def __init__(self, message: str, *, source: str, url: str | None = None, status_code: int) -> None:
        super().__init__(message, source=source, url=url)
        self.status_code = status_code


class InvalidJSONBody(ValueError):
    """
    Raised by ``_request_json`` when a 2xx body is not JSON.
    """

    def __init__(self, raw_body: str) -> None:
        super().__init__("response body was not valid JSON")
        self.raw_body = raw_body


class BaseConnector:
    """
    Shared HTTP plumbing for external data connectors.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.source = source
        self._session = session or requests.Session()
        self._timeout_seconds = http_settings.timeout_seconds

    def _request_json(
        self,
        *,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Execute a GET request and return the JSON body.

        JSON numbers with a fractional part are decoded as ``Decimal``.

        Raises ``InvalidJSONBody`` for a non-JSON 2xx body, and a
        ``GatewayError`` subclass for transport or status failures.
        """

        response = self._request(url=url, params=params, headers=headers)
        try:
            return response.json(parse_float=Decimal)
        except ValueError as exc:
            raise InvalidJSONBody(response.text) from exc

    def _request(
        self,
        *,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """
        Execute a single GET request with a bounded timeout.
        """

        try:
            response = self._session.request(
                method="GET",
                url=url,
                params=params,
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.warning(
                "Connector transport failure source=%s url=%s error=%s",
                self.source,
                url,
                exc,
            )
            raise GatewayTransportError(
                f"{self.source}: transport failure: {exc}",
                source=self.source,
                url=url,
            ) from exc
        except requests.RequestException as exc:
            logger.error(
                "Connector request could not be sent source=%s url=%s error=%s",
                self.source,
                url,
                exc,
            )
            raise GatewayTransportError(
                f"{self.source}: request failed: {exc}",
                source=self.source,
                url=url,
            ) from exc

        status_code = response.status_code
        if 400 <= status_code < 500:
            logger.error(
                "Connector client error source=%s status=%s url=%s body=%s",
                self.source,
                status_code,
                response.url,
                response.text[:_ERROR_BODY_PREVIEW_CHARS],
            )
            raise GatewayClientError(
                f"{self.source}: upstream rejected request with status {status_code}.",
                source=self.source,
                url=response.url,
                status_code=status_code,
            )
        if status_code >= 500:
            logger.warning(
                "Connector server error source=%s status=%s url=%s body=%s",
                self.source,
                status_code,
                response.url,
                response.text[:_ERROR_BODY_PREVIEW_CHARS],
            )
            raise GatewayServerError(
                f"{self.source}: upstream failed with status {status_code}.",
                source=self.source,
                url=response.url,
                status_code=status_code,
            )
        return response
