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
from typing import Iterable, Sequence

from docapi.constants import CallerType
from docapi.settings.defaults import (
    DEFAULT_API_PATH,
    DEFAULT_API_VERSION,
    DEFAULT_GENERAL_METHOD_TIMEOUT_MS,
    DEFAULT_REQUEST_TIMEOUT_MS,
    FIXED_SECRET_PLACEHOLDER,
)
from docapi.utils.unset import _UNSET, UnsetType


def _override(this: object, other: object) -> object:
    return this if isinstance(other, UnsetType) else other


@dataclass
class TimeoutOptions:
    """
    The timeout settings to use when issuing requests to the Data API.

    All timeout values are integers expressed in milliseconds. A timeout of
    zero signifies that no timeout is imposed at all.

    All methods that issue requests also accept per-invocation timeout
    parameters, which take precedence over these settings.

    Values left unspecified keep whatever is inherited from the "spawner"
    object (client, database, collection).

    Attributes:
        request_timeout_ms: the timeout imposed on each single HTTP request.
            Defaults to 10 s.
        general_method_timeout_ms: the timeout for the overall duration of a
            method invocation. For methods issuing a single request, the least
            of this and `request_timeout_ms` applies. For methods issuing
            several requests (such as `insert_many` or `bulk_write`) this is
            the deadline for all of them, while each request still obeys
            `request_timeout_ms`. Defaults to 30 s.
    """

    request_timeout_ms: int | UnsetType = _UNSET
    general_method_timeout_ms: int | UnsetType = _UNSET


@dataclass
class FullTimeoutOptions(TimeoutOptions):
    """
    The "full" version of TimeoutOptions, with all attributes defined.
    This is what the `api_options` of clients, databases and collections hold.

    Attributes:
        request_timeout_ms: the timeout imposed on each single HTTP request.
        general_method_timeout_ms: the timeout for the overall duration
            of a method invocation.
    """

    request_timeout_ms: int
    general_method_timeout_ms: int

    def __init__(
        self,
        *,
        request_timeout_ms: int,
        general_method_timeout_ms: int,
    ) -> None:
        TimeoutOptions.__init__(
            self,
            request_timeout_ms=request_timeout_ms,
            general_method_timeout_ms=general_method_timeout_ms,
        )

    def with_override(self, other: TimeoutOptions) -> FullTimeoutOptions:
        """
        Apply an "overriding" set of options, possibly not defined in all its
        attributes, and return a new full options object.

        Args:
            other: a not-necessarily-fully-specified options object. All its
                defined settings take precedence.
        """

        return FullTimeoutOptions(
            request_timeout_ms=_override(  # type: ignore[arg-type]
                self.request_timeout_ms, other.request_timeout_ms
            ),
            general_method_timeout_ms=_override(  # type: ignore[arg-type]
                self.general_method_timeout_ms, other.general_method_timeout_ms
            ),
        )


@dataclass
class APIOptions:
    """
    All settings about how docapi interacts with the Data API.

    Each object in the hierarchy (DataAPIClient, Database, Collection) has a
    full set of these options. To customize them, create an `APIOptions` with
    just the settings to change and pass it as the `api_options` argument to
    the client constructor, to `get_database`, `get_collection` or to a
    `with_options` method: all other settings are inherited.

    The override logic is: a provided setting (even if None) replaces the
    inherited one, except for `additional_headers` and `redacted_header_names`,
    which are merged with the inherited ones.

    Attributes:
        callers: an iterable of "caller identities" for the User-Agent header.
            Each is a `(name, version)` pair whose elements can be None.
        additional_headers: free-form headers to add to each request. A header
            set to None is suppressed from the requests.
        redacted_header_names: (case-insensitive) names of headers carrying
            secrets, to be masked when logging requests. The token header is
            always masked.
        token: the static token to authenticate requests with, or None.
        timeout_options: a `TimeoutOptions` object.
        api_path: the path segment of the Data API URL after the endpoint.
        api_version: the version segment of the Data API URL.
    """

    callers: Sequence[CallerType] | UnsetType = _UNSET
    additional_headers: dict[str, str | None] | UnsetType = _UNSET
    redacted_header_names: Iterable[str] | UnsetType = _UNSET
    token: str | None | UnsetType = _UNSET
    timeout_options: TimeoutOptions | UnsetType = _UNSET
    api_path: str | None | UnsetType = _UNSET
    api_version: str | None | UnsetType = _UNSET

    def __repr__(self) -> str:
        pieces = [
            f"{k}={FIXED_SECRET_PLACEHOLDER if k == 'token' else v!r}"
            for k, v in self.__dict__.items()
            if not isinstance(v, UnsetType)
        ]
        return f"{self.__class__.__name__}({', '.join(pieces)})"


@dataclass
class FullAPIOptions(APIOptions):
    """
    The "full" version of APIOptions, with all attributes defined.
    This is what clients, databases and collections hold as `api_options`.
    See `APIOptions` for the meaning of each attribute.
    """

    callers: Sequence[CallerType]
    additional_headers: dict[str, str | None]
    redacted_header_names: set[str]
    token: str | None
    timeout_options: FullTimeoutOptions
    api_path: str | None
    api_version: str | None

    def __init__(
        self,
        *,
        callers: Sequence[CallerType],
        additional_headers: dict[str, str | None],
        redacted_header_names: Iterable[str],
        token: str | None,
        timeout_options: FullTimeoutOptions,
        api_path: str | None,
        api_version: str | None,
    ) -> None:
        APIOptions.__init__(
            self,
            callers=callers,
            additional_headers=additional_headers,
            redacted_header_names=set(redacted_header_names),
            token=token,
            timeout_options=timeout_options,
            api_path=api_path,
            api_version=api_version,
        )

    def __repr__(self) -> str:
        return APIOptions.__repr__(self)

    def with_override(self, other: APIOptions | None | UnsetType) -> FullAPIOptions:
        """
        Apply an "overriding" set of options, possibly not defined in all its
        attributes, and return a new full options object.

        Args:
            other: a not-necessarily-fully-specified options object. All its
                defined settings take precedence (headers and redacted header
                names are merged instead).
        """

        if isinstance(other, UnsetType) or other is None:
            return self

        additional_headers: dict[str, str | None]
        if isinstance(other.additional_headers, UnsetType):
            additional_headers = self.additional_headers
        else:
            additional_headers = {
                **self.additional_headers,
                **other.additional_headers,
            }
        redacted_header_names: set[str]
        if isinstance(other.redacted_header_names, UnsetType):
            redacted_header_names = self.redacted_header_names
        else:
            redacted_header_names = self.redacted_header_names | set(
                other.redacted_header_names
            )
        timeout_options: FullTimeoutOptions
        if isinstance(other.timeout_options, TimeoutOptions):
            timeout_options = self.timeout_options.with_override(other.timeout_options)
        else:
            timeout_options = self.timeout_options

        return FullAPIOptions(
            callers=_override(self.callers, other.callers),  # type: ignore[arg-type]
            additional_headers=additional_headers,
            redacted_header_names=redacted_header_names,
            token=_override(self.token, other.token),  # type: ignore[arg-type]
            timeout_options=timeout_options,
            api_path=_override(self.api_path, other.api_path),  # type: ignore[arg-type]
            api_version=_override(  # type: ignore[arg-type]
                self.api_version, other.api_version
            ),
        )


defaultTimeoutOptions = FullTimeoutOptions(
    request_timeout_ms=DEFAULT_REQUEST_TIMEOUT_MS,
    general_method_timeout_ms=DEFAULT_GENERAL_METHOD_TIMEOUT_MS,
)


def defaultAPIOptions() -> FullAPIOptions:
    """Return the default FullAPIOptions, based on the hardcoded defaults."""

    return FullAPIOptions(
        callers=[],
        additional_headers={},
        redacted_header_names=set(),
        token=None,
        timeout_options=defaultTimeoutOptions,
        api_path=DEFAULT_API_PATH,
        api_version=DEFAULT_API_VERSION,
    )
