# Copyright DataStax, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from docapi.exceptions.error_descriptors import (
    DataAPIErrorDescriptor,
    DataAPIWarningDescriptor,
)


class DataAPIException(Exception):
    """
    Any exception specific to working with the Data API, such as:
      - the API returned a response reporting an error,
      - a request (or a multi-request method) timed out,
      - a cursor was used in a way its state does not allow,
    but not, for instance, a generic network error while sending a request.
    """

    pass


@dataclass
class DataAPIResponseException(DataAPIException):
    """
    The Data API returned a well-formed response that reports error(s),
    possibly alongside partial successes (e.g. some documents inserted).

    Since the response is well-formed, the `raw_response` can be inspected for
    partial effects: see `partial_status`.

    Attributes:
        text: a text message about the exception.
        command: the payload sent to the API that led to the response.
        raw_response: the full response from the API.
        error_descriptors: one DataAPIErrorDescriptor for each item in
            the response's "errors" field.
        warning_descriptors: one DataAPIWarningDescriptor for each item in
            the response's "warnings" field (if any).
    """

    text: str | None
    command: dict[str, Any] | None
    raw_response: dict[str, Any]
    error_descriptors: list[DataAPIErrorDescriptor]
    warning_descriptors: list[DataAPIWarningDescriptor]

    def __init__(
        self,
        text: str | None,
        *,
        command: dict[str, Any] | None,
        raw_response: dict[str, Any],
        error_descriptors: list[DataAPIErrorDescriptor],
        warning_descriptors: list[DataAPIWarningDescriptor],
    ) -> None:
        super().__init__(text)
        self.text = text
        self.command = command
        self.raw_response = raw_response
        self.error_descriptors = error_descriptors
        self.warning_descriptors = warning_descriptors

    def __str__(self) -> str:
        return self.text or ""

    @property
    def partial_status(self) -> dict[str, Any]:
        """
        The "status" part of the failed response, i.e. whatever the API
        reports as done before hitting the error(s). Empty if absent.
        """

        return (self.raw_response or {}).get("status") or {}

    @staticmethod
    def from_response(
        *,
        command: dict[str, Any] | None,
        raw_response: dict[str, Any],
    ) -> DataAPIResponseException:
        """Parse a raw response from the API into this exception."""

        error_descriptors = [
            DataAPIErrorDescriptor.from_dict(error_dict)
            for error_dict in (raw_response or {}).get("errors") or []
        ]
        warning_descriptors = [
            DataAPIWarningDescriptor.from_dict(warning_dict)
            for warning_dict in (raw_response or {}).get("warnings") or []
        ]

        summaries = [e_d.summary() for e_d in error_descriptors]
        if len(summaries) > 1:
            _j_summaries = "; ".join(
                f"[{summ_i + 1}] {summ_s}" for summ_i, summ_s in enumerate(summaries)
            )
            text = f"[{len(summaries)} errors collected] {_j_summaries}"
        elif summaries:
            text = summaries[0]
        else:
            text = ""

        return DataAPIResponseException(
            text,
            command=command,
            raw_response=raw_response,
            error_descriptors=error_descriptors,
            warning_descriptors=warning_descriptors,
        )


@dataclass
class DataAPIHttpException(DataAPIException, httpx.HTTPStatusError):
    """
    A request to the Data API resulted in an HTTP 4xx or 5xx response.

    This is a subclass of `httpx.HTTPStatusError`, so existing `except` clauses
    for httpx errors keep working, but any error information found in the body
    is also exposed in a structured way.

    Attributes:
        text: a text message about the exception.
        error_descriptors: the DataAPIErrorDescriptor objects parsed
            from the response body, if any.
    """

    text: str | None
    error_descriptors: list[DataAPIErrorDescriptor]

    def __init__(
        self,
        text: str | None,
        *,
        httpx_error: httpx.HTTPStatusError,
        error_descriptors: list[DataAPIErrorDescriptor],
    ) -> None:
        DataAPIException.__init__(self, text)
        httpx.HTTPStatusError.__init__(
            self,
            message=str(httpx_error),
            request=httpx_error.request,
            response=httpx_error.response,
        )
        self.text = text
        self.httpx_error = httpx_error
        self.error_descriptors = error_descriptors

    def __str__(self) -> str:
        return self.text or str(self.httpx_error)

    @classmethod
    def from_httpx_error(
        cls,
        httpx_error: httpx.HTTPStatusError,
    ) -> DataAPIHttpException:
        """Parse a httpx status error into this exception."""

        raw_response: dict[str, Any]
        # the body may be anything at all (or missing): parsing must not fail here
        try:
            raw_response = httpx_error.response.json() or {}
        except Exception:
            raw_response = {}
        if not isinstance(raw_response, dict):
            raw_response = {}
        error_descriptors = [
            DataAPIErrorDescriptor.from_dict(error_dict)
            for error_dict in raw_response.get("errors") or []
        ]
        if error_descriptors:
            text = f"{error_descriptors[0].summary()}. {str(httpx_error)}"
        else:
            text = str(httpx_error)

        return cls(
            text=text,
            httpx_error=httpx_error,
            error_descriptors=error_descriptors,
        )


@dataclass
class DataAPITimeoutException(DataAPIException):
    """
    A Data API operation timed out. This can be a timeout on a single HTTP
    request, or the expiry of the overall deadline of a method spanning
    several requests (such as a paginated traversal or a chunked insertion).

    Attributes:
        text: a textual description of the error.
        timeout_type: the phase of the HTTP request when the timeout occurred
            ("connect", "read", "write", "pool") or "generic" when not tied
            to a specific request.
        endpoint: the URL targeted by the request, if applicable.
        raw_payload: the request payload as a string, if applicable.
    """

    text: str
    timeout_type: str
    endpoint: str | None
    raw_payload: str | None

    def __init__(
        self,
        text: str,
        *,
        timeout_type: str,
        endpoint: str | None,
        raw_payload: str | None,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.timeout_type = timeout_type
        self.endpoint = endpoint
        self.raw_payload = raw_payload


@dataclass
class CursorException(DataAPIException):
    """
    A cursor operation was attempted that the current cursor state does
    not allow, such as changing the filter of a cursor already fetching results.

    Attributes:
        text: a text message about the exception.
        cursor_state: the name of the cursor state when this was raised.
    """

    text: str
    cursor_state: str

    def __init__(
        self,
        text: str,
        *,
        cursor_state: str,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.cursor_state = cursor_state


@dataclass
class UnexpectedDataAPIResponseException(DataAPIException):
    """
    The Data API response is malformed: it lacks expected field(s),
    they have the wrong type, or the body is not JSON at all.

    Attributes:
        text: a text message about the exception.
        raw_response: the response returned by the API, as far as it could be read.
    """

    text: str
    raw_response: dict[str, Any] | None

    def __init__(
        self,
        text: str,
        raw_response: dict[str, Any] | None,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.raw_response = raw_response
