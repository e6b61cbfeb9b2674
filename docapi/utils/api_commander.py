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

import json
import logging
from types import TracebackType
from typing import Any, Dict, Iterable, Sequence, cast

import httpx

from docapi.constants import CallerType
from docapi.exceptions import (
    DataAPIHttpException,
    DataAPIResponseException,
    UnexpectedDataAPIResponseException,
    _TimeoutContext,
    to_dataapi_timeout_exception,
)
from docapi.settings.defaults import (
    DEFAULT_REDACTED_HEADER_NAMES,
    FIXED_SECRET_PLACEHOLDER,
)
from docapi.utils.request_tools import (
    HttpMethod,
    compose_full_user_agent,
    detect_docapi_user_agent,
    log_httpx_request,
    log_httpx_response,
    to_httpx_timeout,
)

user_agent_docapi = detect_docapi_user_agent()

logger = logging.getLogger(__name__)


class APICommander:
    """
    The executor of commands against one Data API resource (e.g. a collection).

    Each `request` sends exactly one command and returns the parsed response,
    or raises a classified exception:
        - DataAPIResponseException: the API reported errors in a well-formed
            response (only if `raise_api_errors`; otherwise the response,
            errors included, is returned for the caller to inspect).
        - DataAPITimeoutException: the request timed out.
        - DataAPIHttpException: the API returned a 4xx/5xx status.
        - UnexpectedDataAPIResponseException: the response is not valid JSON.
    No retries are attempted at this level.
    """

    client = httpx.Client()

    def __init__(
        self,
        *,
        api_endpoint: str,
        path: str,
        headers: dict[str, str | None] = {},
        callers: Sequence[CallerType] = [],
        redacted_header_names: Iterable[str] | None = None,
    ) -> None:
        self.async_client = httpx.AsyncClient()
        self.api_endpoint = api_endpoint.rstrip("/")
        self.path = path.lstrip("/")
        self.headers = headers
        self.callers = callers
        self.redacted_header_names = set(redacted_header_names or [])
        self.upper_full_redacted_header_names = {
            header_name.upper()
            for header_name in (
                self.redacted_header_names | DEFAULT_REDACTED_HEADER_NAMES
            )
        }

        full_user_agent_string = compose_full_user_agent(
            list(self.callers) + [user_agent_docapi]
        )
        self.caller_header: dict[str, str] = (
            {"User-Agent": full_user_agent_string} if full_user_agent_string else {}
        )
        self.full_headers: dict[str, str] = {
            k: v
            for k, v in {
                **{
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                **self.caller_header,
                **self.headers,
            }.items()
            if v is not None
        }
        self._loggable_headers = {
            k: v
            if k.upper() not in self.upper_full_redacted_header_names
            else FIXED_SECRET_PLACEHOLDER
            for k, v in self.full_headers.items()
        }
        self.full_path = ("/".join([self.api_endpoint, self.path])).rstrip("/")

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(api_endpoint={self.api_endpoint}, "
            f"path={self.path}, callers={self.callers})"
        )

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, APICommander):
            return all(
                [
                    self.api_endpoint == other.api_endpoint,
                    self.path == other.path,
                    self.headers == other.headers,
                    self.callers == other.callers,
                    self.redacted_header_names == other.redacted_header_names,
                ]
            )
        else:
            return False

    async def __aenter__(self) -> APICommander:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        await self.async_client.aclose()

    @staticmethod
    def _encode_payload(payload: dict[str, Any] | None) -> str | None:
        if payload is not None:
            return json.dumps(
                payload,
                allow_nan=False,
                separators=(",", ":"),
                ensure_ascii=False,
            )
        else:
            return None

    def _raw_response_to_json(
        self,
        raw_response: httpx.Response,
        raise_api_errors: bool,
        payload: dict[str, Any] | None,
    ) -> dict[str, Any]:
        raw_response_json: dict[str, Any]
        try:
            raw_response_json = cast(
                Dict[str, Any],
                json.loads(raw_response.text),
            )
        except ValueError:
            # json parsing has failed (e.g., empty body)
            if payload is not None:
                command_desc = "/".join(sorted(payload.keys()))
            else:
                command_desc = "(none)"
            raise UnexpectedDataAPIResponseException(
                text=f"Unparseable response from API '{command_desc}' command.",
                raw_response={
                    "raw_response": raw_response.text,
                },
            )
        if not isinstance(raw_response_json, dict):
            raise UnexpectedDataAPIResponseException(
                text="Response from API is not a JSON object.",
                raw_response={
                    "raw_response": raw_response.text,
                },
            )

        if raise_api_errors and raw_response_json.get("errors"):
            logger.warning(
                f"APICommander about to raise from: {raw_response_json['errors']}"
            )
            raise DataAPIResponseException.from_response(
                command=payload,
                raw_response=raw_response_json,
            )

        warning_messages: list[Any] = (raw_response_json.get("status") or {}).get(
            "warnings"
        ) or []
        for warning_message in warning_messages:
            logger.warning(f"The Data API returned a warning: {warning_message}")

        return raw_response_json

    def _prepare_request(
        self,
        payload: dict[str, Any] | None,
        timeout_context: _TimeoutContext | None,
    ) -> tuple[str | None, _TimeoutContext]:
        _timeout_context = timeout_context or _TimeoutContext(request_ms=None)
        encoded_payload = self._encode_payload(payload)
        log_httpx_request(
            http_method=HttpMethod.POST,
            full_url=self.full_path,
            request_params=None,
            redacted_request_headers=self._loggable_headers,
            encoded_payload=encoded_payload,
            timeout_context=_timeout_context,
        )
        return encoded_payload, _timeout_context

    def _check_http_status(self, raw_response: httpx.Response) -> None:
        try:
            raw_response.raise_for_status()
        except httpx.HTTPStatusError as http_exc:
            raise DataAPIHttpException.from_httpx_error(http_exc)
        log_httpx_response(response=raw_response)

    def raw_request(
        self,
        *,
        payload: dict[str, Any] | None = None,
        timeout_context: _TimeoutContext | None = None,
    ) -> httpx.Response:
        encoded_payload, _timeout_context = self._prepare_request(
            payload, timeout_context
        )
        try:
            raw_response = self.client.request(
                method=HttpMethod.POST,
                url=self.full_path,
                content=encoded_payload.encode()
                if encoded_payload is not None
                else None,
                timeout=to_httpx_timeout(_timeout_context),
                headers=self.full_headers,
            )
        except httpx.TimeoutException as timeout_exc:
            raise to_dataapi_timeout_exception(
                timeout_exc, timeout_context=_timeout_context
            )
        self._check_http_status(raw_response)
        return raw_response

    async def async_raw_request(
        self,
        *,
        payload: dict[str, Any] | None = None,
        timeout_context: _TimeoutContext | None = None,
    ) -> httpx.Response:
        encoded_payload, _timeout_context = self._prepare_request(
            payload, timeout_context
        )
        try:
            raw_response = await self.async_client.request(
                method=HttpMethod.POST,
                url=self.full_path,
                content=encoded_payload.encode()
                if encoded_payload is not None
                else None,
                timeout=to_httpx_timeout(_timeout_context),
                headers=self.full_headers,
            )
        except httpx.TimeoutException as timeout_exc:
            raise to_dataapi_timeout_exception(
                timeout_exc, timeout_context=_timeout_context
            )
        self._check_http_status(raw_response)
        return raw_response

    def request(
        self,
        *,
        payload: dict[str, Any] | None = None,
        raise_api_errors: bool = True,
        timeout_context: _TimeoutContext | None = None,
    ) -> dict[str, Any]:
        raw_response = self.raw_request(
            payload=payload,
            timeout_context=timeout_context,
        )
        return self._raw_response_to_json(
            raw_response, raise_api_errors=raise_api_errors, payload=payload
        )

    async def async_request(
        self,
        *,
        payload: dict[str, Any] | None = None,
        raise_api_errors: bool = True,
        timeout_context: _TimeoutContext | None = None,
    ) -> dict[str, Any]:
        raw_response = await self.async_raw_request(
            payload=payload,
            timeout_context=timeout_context,
        )
        return self._raw_response_to_json(
            raw_response, raise_api_errors=raise_api_errors, payload=payload
        )
