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
from typing import TYPE_CHECKING, Any, Sequence

from docapi.exceptions.data_api_exceptions import DataAPIException

if TYPE_CHECKING:
    from docapi.results import (
        BulkWriteResult,
        CollectionDeleteResult,
        CollectionUpdateResult,
    )


def _describe_exceptions(exceptions: Sequence[Exception], max_shown: int = 8) -> str:
    excs_strs = [str(exc) for exc in exceptions[:max_shown]]
    if len(exceptions) > max_shown:
        return ", ".join(excs_strs) + " ... (more exceptions)"
    return ", ".join(excs_strs)


@dataclass
class TooManyDocumentsToCountException(DataAPIException):
    """
    A `count_documents()` operation failed because the resulting number of
    documents exceeded either the upper bound set by the caller or the hard
    limit imposed by the Data API.

    Attributes:
        text: a text message about the exception.
        server_max_count_exceeded: True if the count limit imposed by the API
            is reached. In that case, increasing the upper bound in the method
            invocation is of no help.
    """

    text: str
    server_max_count_exceeded: bool

    def __init__(
        self,
        text: str,
        *,
        server_max_count_exceeded: bool,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.server_max_count_exceeded = server_max_count_exceeded


@dataclass
class CollectionInsertManyException(DataAPIException):
    """
    An exception occurring within an insert_many, an operation spanning one
    request per chunk of documents. It carries both the root error(s) and
    the IDs of the documents that were successfully inserted nonetheless.

    In unordered mode all chunks are attempted, hence more than one root
    error may be collected. In ordered mode the first error stops the insertion.

    Attributes:
        inserted_ids: the IDs of the documents that have been inserted.
        exceptions: the root exceptions leading to this error.
    """

    inserted_ids: list[Any]
    exceptions: Sequence[Exception]

    def __str__(self) -> str:
        num_ids = len(self.inserted_ids)
        if self.exceptions:
            return (
                f"{self.__class__.__name__}({_describe_exceptions(self.exceptions)} "
                f"[with {num_ids} inserted ids])"
            )
        else:
            return f"{self.__class__.__name__}()"


@dataclass
class CollectionDeleteManyException(DataAPIException):
    """
    An exception occurring during a delete_many, an operation that can span
    several requests. Besides the root-cause error, the part that succeeded
    before it is reported as a partial result.

    Attributes:
        partial_result: a CollectionDeleteResult with what was deleted
            before the failure.
        cause: the exception that stopped the delete_many.
    """

    partial_result: CollectionDeleteResult
    cause: Exception

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.cause})"


@dataclass
class CollectionUpdateManyException(DataAPIException):
    """
    An exception occurring during an update_many, an operation that can span
    several requests. Besides the root-cause error, the part that succeeded
    before it is reported as a partial result.

    Attributes:
        partial_result: a CollectionUpdateResult with what was updated
            before the failure.
        cause: the exception that stopped the update_many.
    """

    partial_result: CollectionUpdateResult
    cause: Exception

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.cause})"


@dataclass
class BulkWriteFailure:
    """
    One failed operation within a bulk write.

    Attributes:
        index: the position of the operation in the list passed to `bulk_write`.
        command: the command that was sent for it.
        exception: the exception it failed with. Its `raw_response` (when it is
            a DataAPIResponseException) is the raw failure response.
    """

    index: int
    command: dict[str, Any]
    exception: Exception


@dataclass
class BulkWriteException(DataAPIException):
    """
    One or more operations in a bulk write failed.

    In ordered mode this happens at the first failure, and the operations
    after it are never attempted. In unordered mode all operations are attempted
    and the failures are collected.

    Either way, `partial_result` has everything that succeeded already merged
    in (including any partial effect reported in a failed response), so that
    callers can retry just the failed subset.

    Attributes:
        partial_result: a BulkWriteResult with the merged successful effects.
        failures: one BulkWriteFailure per failed operation.
    """

    partial_result: BulkWriteResult
    failures: list[BulkWriteFailure]

    @property
    def exceptions(self) -> list[Exception]:
        """The root exceptions, one per failed operation."""

        return [failure.exception for failure in self.failures]

    @property
    def failed_indices(self) -> list[int]:
        """The (sorted) indices of the operations that failed."""

        return sorted(failure.index for failure in self.failures)

    def __str__(self) -> str:
        return (
            f"{self.__class__.__name__}({_describe_exceptions(self.exceptions)} "
            f"[{len(self.failures)} failed operation(s)])"
        )
