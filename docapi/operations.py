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

from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, Union

from docapi.constants import DefaultDocumentType, FilterType, SortType


def _check_mapping(value: Any, field_name: str, op_name: str) -> None:
    if not isinstance(value, dict):
        raise ValueError(
            f"The '{field_name}' of {op_name} must be a dictionary "
            f"(got {type(value).__name__})."
        )


def _check_filter(filter: Any, op_name: str) -> None:
    _check_mapping(filter, "filter", op_name)


def _check_sort(sort: Any, op_name: str) -> None:
    if sort is not None:
        _check_mapping(sort, "sort", op_name)


def _check_upsert(upsert: Any, op_name: str) -> None:
    if not isinstance(upsert, bool):
        raise ValueError(f"The 'upsert' flag of {op_name} must be a boolean.")


class BaseOperation(ABC):
    """
    Base class for all operations amenable to be used in bulk writes
    on collections (sync and async alike).

    Operations are immutable: each validates its fields when created, keeps
    its own copy of them and knows how to render itself as the single
    Data API command it stands for.
    """

    @abstractmethod
    def _command(self) -> dict[str, Any]: ...

    def to_command(self) -> dict[str, Any]:
        """
        The Data API command (a JSON-ready dictionary) for this operation.
        Each call returns a new dictionary, free to be modified by the caller.
        """

        return deepcopy(self._command())


@dataclass(frozen=True)
class InsertOne(BaseOperation):
    """
    Represents an `insert_one` operation on a collection.
    See the documentation on the collection method for more information.

    Attributes:
        document: the document to insert.
    """

    document: DefaultDocumentType

    def __init__(self, document: DefaultDocumentType) -> None:
        _check_mapping(document, "document", "InsertOne")
        object.__setattr__(self, "document", deepcopy(document))

    def _command(self) -> dict[str, Any]:
        return {"insertOne": {"document": self.document}}


@dataclass(frozen=True)
class UpdateOne(BaseOperation):
    """
    Represents an `update_one` operation on a collection.
    See the documentation on the collection method for more information.

    Attributes:
        filter: a filter condition to select a target document.
        update: an update prescription to apply to the document.
        sort: controls ordering of results, hence which document is affected.
        upsert: controls what to do when no documents are found.
    """

    filter: FilterType
    update: Dict[str, Any]
    sort: Union[SortType, None]
    upsert: bool

    def __init__(
        self,
        filter: FilterType,
        update: dict[str, Any],
        *,
        sort: SortType | None = None,
        upsert: bool = False,
    ) -> None:
        _check_filter(filter, "UpdateOne")
        _check_mapping(update, "update", "UpdateOne")
        _check_sort(sort, "UpdateOne")
        _check_upsert(upsert, "UpdateOne")
        object.__setattr__(self, "filter", deepcopy(filter))
        object.__setattr__(self, "update", deepcopy(update))
        object.__setattr__(self, "sort", deepcopy(sort))
        object.__setattr__(self, "upsert", upsert)

    def _command(self) -> dict[str, Any]:
        return {
            "updateOne": {
                k: v
                for k, v in {
                    "filter": self.filter,
                    "update": self.update,
                    "sort": self.sort,
                    "options": {"upsert": self.upsert},
                }.items()
                if v is not None
            }
        }


@dataclass(frozen=True)
class UpdateMany(BaseOperation):
    """
    Represents an `update_many` operation on a collection.

    Within a bulk write this is sent as a single `updateMany` command: should
    the API report more documents to update (a `nextPageState`), only the first
    batch is affected. For unbounded updates, use the collection method instead.

    Attributes:
        filter: a filter condition to select target documents.
        update: an update prescription to apply to the documents.
        upsert: controls what to do when no documents are found.
    """

    filter: FilterType
    update: Dict[str, Any]
    upsert: bool

    def __init__(
        self,
        filter: FilterType,
        update: dict[str, Any],
        *,
        upsert: bool = False,
    ) -> None:
        _check_filter(filter, "UpdateMany")
        _check_mapping(update, "update", "UpdateMany")
        _check_upsert(upsert, "UpdateMany")
        object.__setattr__(self, "filter", deepcopy(filter))
        object.__setattr__(self, "update", deepcopy(update))
        object.__setattr__(self, "upsert", upsert)

    def _command(self) -> dict[str, Any]:
        return {
            "updateMany": {
                "filter": self.filter,
                "update": self.update,
                "options": {"upsert": self.upsert},
            }
        }


@dataclass(frozen=True)
class ReplaceOne(BaseOperation):
    """
    Represents a `replace_one` operation on a collection.
    See the documentation on the collection method for more information.

    Attributes:
        filter: a filter condition to select a target document.
        replacement: the replacement document.
        sort: controls ordering of results, hence which document is affected.
        upsert: controls what to do when no documents are found.
    """

    filter: FilterType
    replacement: DefaultDocumentType
    sort: Union[SortType, None]
    upsert: bool

    def __init__(
        self,
        filter: FilterType,
        replacement: DefaultDocumentType,
        *,
        sort: SortType | None = None,
        upsert: bool = False,
    ) -> None:
        _check_filter(filter, "ReplaceOne")
        _check_mapping(replacement, "replacement", "ReplaceOne")
        _check_sort(sort, "ReplaceOne")
        _check_upsert(upsert, "ReplaceOne")
        object.__setattr__(self, "filter", deepcopy(filter))
        object.__setattr__(self, "replacement", deepcopy(replacement))
        object.__setattr__(self, "sort", deepcopy(sort))
        object.__setattr__(self, "upsert", upsert)

    def _command(self) -> dict[str, Any]:
        return {
            "findOneAndReplace": {
                k: v
                for k, v in {
                    "filter": self.filter,
                    "replacement": self.replacement,
                    "sort": self.sort,
                    "options": {"upsert": self.upsert},
                }.items()
                if v is not None
            }
        }


@dataclass(frozen=True)
class DeleteOne(BaseOperation):
    """
    Represents a `delete_one` operation on a collection.
    See the documentation on the collection method for more information.

    Attributes:
        filter: a filter condition to select a target document.
        sort: controls ordering of results, hence which document is affected.
    """

    filter: FilterType
    sort: Union[SortType, None]

    def __init__(
        self,
        filter: FilterType,
        *,
        sort: SortType | None = None,
    ) -> None:
        _check_filter(filter, "DeleteOne")
        _check_sort(sort, "DeleteOne")
        object.__setattr__(self, "filter", deepcopy(filter))
        object.__setattr__(self, "sort", deepcopy(sort))

    def _command(self) -> dict[str, Any]:
        return {
            "deleteOne": {
                k: v
                for k, v in {
                    "filter": self.filter,
                    "sort": self.sort,
                }.items()
                if v is not None
            }
        }


@dataclass(frozen=True)
class DeleteMany(BaseOperation):
    """
    Represents a `delete_many` operation on a collection.

    Within a bulk write this is sent as a single `deleteMany` command: should
    the API report more documents to delete (`moreData`), only the first
    batch is affected. For unbounded deletions, use the collection method instead.

    Attributes:
        filter: a filter condition to select target documents.
    """

    filter: FilterType

    def __init__(self, filter: FilterType) -> None:
        _check_filter(filter, "DeleteMany")
        object.__setattr__(self, "filter", deepcopy(filter))

    def _command(self) -> dict[str, Any]:
        return {"deleteMany": {"filter": self.filter}}
