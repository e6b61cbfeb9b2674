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

from dataclasses import dataclass, field
from typing import Any

_KNOWN_ERROR_FIELDS = {"title", "errorCode", "message", "family", "scope", "id"}


@dataclass
class DataAPIErrorDescriptor:
    """
    A single error item, as found in the "errors" list of a Data API response.

    A response can carry errors alongside partial successes (for instance an
    insertMany where a few documents clash with existing IDs): each item in the
    "errors" list becomes one of these descriptors.

    Attributes:
        error_code: the "errorCode" of the error, if any.
        message: the "message" of the error, if any.
        title: the "title" of the error, if any.
        family: the "family" of the error, if any.
        scope: the "scope" of the error, if any.
        id: the "id" of the error, if any.
        attributes: all other key-value pairs found in the error item.
    """

    error_code: str | None = None
    message: str | None = None
    title: str | None = None
    family: str | None = None
    scope: str | None = None
    id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, error_dict: dict[str, Any] | str) -> DataAPIErrorDescriptor:
        """Parse one item of an "errors" (or "warnings") list."""

        if isinstance(error_dict, str):
            return cls(message=error_dict)
        return cls(
            error_code=error_dict.get("errorCode"),
            message=error_dict.get("message"),
            title=error_dict.get("title"),
            family=error_dict.get("family"),
            scope=error_dict.get("scope"),
            id=error_dict.get("id"),
            attributes={
                k: v for k, v in error_dict.items() if k not in _KNOWN_ERROR_FIELDS
            },
        )

    def __str__(self) -> str:
        return self.summary()

    def summary(self) -> str:
        """
        A short human-readable description, such as
        "Title: message (ERROR_CODE)", with missing parts left out.
        """

        text_parts = [pc for pc in (self.title, self.message) if pc]
        text = ": ".join(text_parts)
        if self.error_code:
            return f"{text} ({self.error_code})" if text else self.error_code
        return text


@dataclass
class DataAPIWarningDescriptor(DataAPIErrorDescriptor):
    """
    A single warning item, as found in the "warnings" list of a Data API response.
    Same structure as DataAPIErrorDescriptor.
    """

    pass
