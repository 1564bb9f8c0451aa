from __future__ import annotations

import json
import logging
from typing import Optional, Protocol

import httpx

from alertsource.datasource.request import SQLRequestBuilder, redacted
from alertsource.errors import RemoteValidationError

logger = logging.getLogger(__name__)


class RemoteValidator(Protocol):
    """Validation that needs a network round-trip; may fail for transport reasons."""

    def validate(self, expr: str) -> None:
        ...


class SQLRemoteValidator:
    """
    Validates sql expressions against the backend's validate endpoint.

    Blocking: meant for rule load time only, never for evaluation ticks. A single
    failure fails the validation; there is no retry.
    """

    def __init__(self, builder: SQLRequestBuilder, http: httpx.Client):
        self._builder = builder
        self._http = http

    # PUBLIC_INTERFACE
    def validate(self, expr: str, timeout: Optional[float] = None) -> None:
        """POST expr to the validate endpoint; raises RemoteValidationError on any failure."""
        request = self._builder.build_validate(expr, timeout=timeout)
        try:
            response = self._http.send(request)
        except httpx.HTTPError as err:
            logger.warning("sql validate request failed for %s: %s", redacted(request), err)
            raise RemoteValidationError(expr, f"bad sql http client: {err}") from err

        try:
            if response.status_code == httpx.codes.OK:
                return
            try:
                message = response.json().get("message")
            except (json.JSONDecodeError, UnicodeDecodeError, AttributeError) as err:
                raise RemoteValidationError(expr, f"error parsing sql validate response: {err}") from err
            if not message:
                message = f"unexpected response code {response.status_code}"
            raise RemoteValidationError(expr, str(message))
        finally:
            response.close()
