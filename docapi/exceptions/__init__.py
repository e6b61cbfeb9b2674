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

import time
from dataclasses import dataclass

import httpx

from docapi.exceptions.collection_exceptions import (
    BulkWriteException,
    BulkWriteFailure,
    CollectionDeleteManyException,
    CollectionInsertManyException,
    CollectionUpdateManyException,
    TooManyDocumentsToCountException,
)
from docapi.exceptions.data_api_exceptions import (
    CursorException,
    DataAPIException,
    DataAPIHttpException,
    DataAPIResponseException,
    DataAPITimeoutException,
    UnexpectedDataAPIResponseException,
)
from docapi.exceptions.error_descriptors import (
    DataAPIErrorDescriptor,
    DataAPIWarningDescriptor,
)
from docapi.utils.api_options import FullTimeoutOptions


def _min_labeled_timeout(
    *timeouts: tuple[int | None, str | None],
) -> tuple[int, str | None]:
    _non_null: list[tuple[int, str | None]] = [
        to  # type: ignore[misc]
        for to in timeouts
        if to[0] is not None
    ]
    if _non_null:
        min_to, min_lb = min(_non_null, key=lambda p: p[0])
        return (min_to or 0, min_lb)
    else:
        return (0, None)


def _select_singlereq_timeout_gm(
    *,
    timeout_options: FullTimeoutOptions,
    general_method_timeout_ms: int | None,
    request_timeout_ms: int | None = None,
    timeout_ms: int | None = None,
) -> tuple[int, str | None]:
    """
    Determine (and label) the timeout for a method issuing a single request.

    If none of the int args are passed, the least of the two configured
    timeouts applies. Otherwise, the least of the passed ones applies and
    the configured options are disregarded.
    """
    if all(
        iarg is None
        for iarg in (general_method_timeout_ms, request_timeout_ms, timeout_ms)
    ):
        ao_r = timeout_options.request_timeout_ms
        ao_gm = timeout_options.general_method_timeout_ms
        if ao_r < ao_gm:
            return (ao_r, "request_timeout_ms")
        else:
            return (ao_gm, "general_method_timeout_ms")
    else:
        return _min_labeled_timeout(
            (general_method_timeout_ms, "general_method_timeout_ms"),
            (request_timeout_ms, "request_timeout_ms"),
            (timeout_ms, "timeout_ms"),
        )


def _first_valid_timeout(
    *items: tuple[int | None, str | None],
) -> tuple[int, str | None]:
    # items are: (timeout ms, label)
    not_nulls = [itm for itm in items if itm[0] is not None]
    if not_nulls:
        return not_nulls[0]  # type: ignore[return-value]
    else:
        # zero stands for 'no timeout' later on, in the request
        return 0, None


@dataclass
class _TimeoutContext:
    """
    A timeout value to obey, along with the information needed to make a
    meaningful error message should it expire: the name of the setting
    responsible for it and its "nominal" value (which can differ from the
    actual per-request milliseconds when a deadline spans several requests).

    Args:
        request_ms: how many milliseconds the HTTP request is allowed to last.
        nominal_ms: the timeout, in milliseconds, as set by the user.
        label: the name of the timeout setting as known to the user.
    """

    nominal_ms: int | None
    request_ms: int | None
    label: str | None

    def __init__(
        self,
        *,
        request_ms: int | None,
        nominal_ms: int | None = None,
        label: str | None = None,
    ) -> None:
        self.nominal_ms = nominal_ms
        self.request_ms = request_ms
        self.label = label

    def __bool__(self) -> bool:
        return self.nominal_ms is not None or self.request_ms is not None


def to_dataapi_timeout_exception(
    httpx_timeout: httpx.TimeoutException,
    timeout_context: _TimeoutContext,
) -> DataAPITimeoutException:
    text_0 = str(httpx_timeout) or "timed out"
    timeout_ms = timeout_context.nominal_ms or timeout_context.request_ms
    timeout_label = timeout_context.label
    text: str
    if timeout_ms and timeout_label:
        text = f"{text_0} (timeout honoured: {timeout_label} = {timeout_ms} ms)"
    elif timeout_ms:
        text = f"{text_0} (timeout honoured: {timeout_ms} ms)"
    else:
        text = text_0
    if isinstance(httpx_timeout, httpx.ConnectTimeout):
        timeout_type = "connect"
    elif isinstance(httpx_timeout, httpx.ReadTimeout):
        timeout_type = "read"
    elif isinstance(httpx_timeout, httpx.WriteTimeout):
        timeout_type = "write"
    elif isinstance(httpx_timeout, httpx.PoolTimeout):
        timeout_type = "pool"
    else:
        timeout_type = "generic"
    endpoint: str | None = None
    raw_payload: str | None = None
    try:
        request = httpx_timeout.request
    except RuntimeError:
        # httpx raises if the exception was built without a request
        request = None
    if request is not None:
        endpoint = str(request.url)
        if isinstance(request.content, bytes):
            raw_payload = request.content.decode()
    return DataAPITimeoutException(
        text=text,
        timeout_type=timeout_type,
        endpoint=endpoint,
        raw_payload=raw_payload,
    )


class MultiCallTimeoutManager:
    """
    A helper class to keep track of the overall deadline of a method
    spanning several requests (paginated reads, chunked writes, bulk writes).

    Thread-safe for reading: workers of a concurrent method can share one.

    Args:
        overall_timeout_ms: an optional max duration to track (milliseconds).
            Zero or None means no deadline.
        timeout_label: the name of the `overall_timeout_ms` setting,
            for use in error messages.

    Attributes:
        overall_timeout_ms: the max duration to track, if any.
        started_ms: timestamp of the instance construction (milliseconds).
        deadline_ms: the resulting deadline in milliseconds, if any.
        timeout_label: the label of the overall timeout setting.
    """

    overall_timeout_ms: int | None
    started_ms: int = -1
    deadline_ms: int | None
    timeout_label: str | None

    def __init__(
        self,
        overall_timeout_ms: int | None,
        timeout_label: str | None = None,
    ) -> None:
        self.started_ms = int(time.time() * 1000)
        self.timeout_label = timeout_label
        # zero timeouts provided internally are mapped to None for deadline mgmt:
        self.overall_timeout_ms = overall_timeout_ms or None
        if self.overall_timeout_ms is not None:
            self.deadline_ms = self.started_ms + self.overall_timeout_ms
        else:
            self.deadline_ms = None

    def remaining_timeout(
        self, cap_time_ms: int | None = None, cap_timeout_label: str | None = None
    ) -> _TimeoutContext:
        """
        Ensure the deadline, if any, is not yet in the past and return
        the time left for the next request.

        Args:
            cap_time_ms: an additional (per-request) constraint. If the remaining
                time exceeds it, the cap is returned instead.
            cap_timeout_label: the name of the setting behind `cap_time_ms`.

        Returns:
            A _TimeoutContext detailing the time the next request can last.

        Raises:
            DataAPITimeoutException: if the deadline has already passed.
        """

        # a zero 'cap' must be treated as None:
        _cap_time_ms = cap_time_ms or None
        if self.deadline_ms is None:
            if _cap_time_ms is None:
                return _TimeoutContext(
                    nominal_ms=self.overall_timeout_ms,
                    request_ms=None,
                    label=self.timeout_label,
                )
            return _TimeoutContext(
                nominal_ms=_cap_time_ms,
                request_ms=_cap_time_ms,
                label=cap_timeout_label,
            )

        now_ms = int(time.time() * 1000)
        if now_ms >= self.deadline_ms:
            if self.timeout_label:
                err_msg = (
                    f"Operation timed out (timeout honoured: {self.timeout_label} "
                    f"= {self.overall_timeout_ms} ms)."
                )
            else:
                err_msg = (
                    "Operation timed out (timeout honoured: "
                    f"{self.overall_timeout_ms} ms)."
                )
            raise DataAPITimeoutException(
                text=err_msg,
                timeout_type="generic",
                endpoint=None,
                raw_payload=None,
            )

        remaining = self.deadline_ms - now_ms
        if _cap_time_ms is not None and remaining > _cap_time_ms:
            return _TimeoutContext(
                nominal_ms=_cap_time_ms,
                request_ms=_cap_time_ms,
                label=cap_timeout_label,
            )
        return _TimeoutContext(
            nominal_ms=self.overall_timeout_ms,
            request_ms=remaining,
            label=self.timeout_label,
        )


__all__ = [
    "BulkWriteException",
    "BulkWriteFailure",
    "CollectionDeleteManyException",
    "CollectionInsertManyException",
    "CollectionUpdateManyException",
    "CursorException",
    "DataAPIErrorDescriptor",
    "DataAPIException",
    "DataAPIHttpException",
    "DataAPIResponseException",
    "DataAPITimeoutException",
    "DataAPIWarningDescriptor",
    "MultiCallTimeoutManager",
    "TooManyDocumentsToCountException",
    "UnexpectedDataAPIResponseException",
]
