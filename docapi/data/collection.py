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

import logging
from types import TracebackType
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterable

from docapi.constants import (
    DOC,
    FilterType,
    ProjectionType,
    SortType,
    normalize_optional_projection,
)
from docapi.data.bulk_write import (
    _BulkWriteAccumulator,
    async_run_ordered,
    async_run_unordered,
    run_ordered,
    run_unordered,
)
from docapi.data.cursors.find_cursor import AsyncFindCursor, FindCursor
from docapi.data.utils.collection_converters import (
    postprocess_collection_response,
    preprocess_collection_payload,
)
from docapi.data.utils.distinct_extractors import (
    _create_document_key_extractor,
    _distinct_value_key,
    _reduce_distinct_key_to_safe,
)
from docapi.exceptions import (
    BulkWriteException,
    CollectionDeleteManyException,
    CollectionInsertManyException,
    CollectionUpdateManyException,
    DataAPIResponseException,
    MultiCallTimeoutManager,
    TooManyDocumentsToCountException,
    UnexpectedDataAPIResponseException,
    _first_valid_timeout,
    _select_singlereq_timeout_gm,
    _TimeoutContext,
)
from docapi.operations import (
    BaseOperation,
    DeleteMany,
    DeleteOne,
    InsertOne,
    ReplaceOne,
    UpdateMany,
    UpdateOne,
)
from docapi.results import (
    BulkWriteResult,
    CollectionDeleteResult,
    CollectionInsertManyResult,
    CollectionInsertOneResult,
    CollectionUpdateResult,
)
from docapi.settings.defaults import (
    DATA_API_MAX_COUNT_DOCUMENTS,
    DEFAULT_BULK_WRITE_CONCURRENCY,
    DEFAULT_DATA_API_AUTH_HEADER,
    DEFAULT_INSERT_MANY_CHUNK_SIZE,
    DEFAULT_INSERT_MANY_CONCURRENCY,
)
from docapi.utils.api_commander import APICommander
from docapi.utils.api_options import APIOptions, FullAPIOptions
from docapi.utils.unset import _UNSET, UnsetType

if TYPE_CHECKING:
    from docapi.database import AsyncDatabase, Database


logger = logging.getLogger(__name__)


def _prepare_update_info(statuses: list[dict[str, Any]]) -> dict[str, Any]:
    matched = sum(status.get("matchedCount") or 0 for status in statuses)
    modified = sum(status.get("modifiedCount") or 0 for status in statuses)
    upserted_ids = [
        status["upsertedId"] for status in statuses if "upsertedId" in status
    ]
    update_info: dict[str, Any] = {
        "n": matched + len(upserted_ids),
        "updatedExisting": modified > 0,
        "ok": 1.0,
        "nModified": modified,
    }
    if len(upserted_ids) == 1:
        update_info["upserted"] = upserted_ids[0]
    elif upserted_ids:
        update_info["upserteds"] = upserted_ids
    return update_info


def _update_many_command(
    operation: UpdateMany, page_state: str | None
) -> dict[str, Any]:
    command = operation.to_command()
    if page_state is not None:
        command["updateMany"]["options"]["pageState"] = page_state
    return command


def _distinct_projection(safe_key: str) -> dict[str, bool]:
    # the document _id is excluded unless it is what distinct looks into
    if safe_key.split(".")[0] == "_id":
        return {safe_key: True}
    return {safe_key: True, "_id": False}


def _check_delete_many_filter(filter: FilterType) -> None:
    if not filter:
        raise ValueError(
            "delete_many requires a non-empty filter. To erase all documents "
            "in the collection, use delete_all."
        )


def _insert_many_settings(
    ordered: bool,
    chunk_size: int | None,
    concurrency: int | None,
) -> tuple[int, int]:
    _concurrency: int
    if concurrency is None:
        _concurrency = 1 if ordered else DEFAULT_INSERT_MANY_CONCURRENCY
    else:
        _concurrency = concurrency
    if _concurrency < 1:
        raise ValueError("The concurrency must be a positive integer.")
    if _concurrency > 1 and ordered:
        raise ValueError("Cannot run ordered insert_many concurrently.")
    _chunk_size = DEFAULT_INSERT_MANY_CHUNK_SIZE if chunk_size is None else chunk_size
    if _chunk_size < 1:
        raise ValueError("The chunk_size must be a positive integer.")
    return _chunk_size, _concurrency


def _insert_many_commands(
    documents: list[Any], chunk_size: int, ordered: bool
) -> list[dict[str, Any]]:
    return [
        {
            "insertMany": {
                "documents": documents[i : i + chunk_size],
                "options": {"ordered": ordered},
            },
        }
        for i in range(0, len(documents), chunk_size)
    ]


def _bulk_write_concurrency(concurrency: int | None) -> int:
    _concurrency = (
        DEFAULT_BULK_WRITE_CONCURRENCY if concurrency is None else concurrency
    )
    if _concurrency < 1:
        raise ValueError("The concurrency must be a positive integer.")
    return _concurrency


def _count_from_response(cd_response: dict[str, Any], upper_bound: int) -> int:
    if "count" in (cd_response.get("status") or {}):
        count: int = cd_response["status"]["count"]
        if cd_response["status"].get("moreData", False):
            raise TooManyDocumentsToCountException(
                text=f"Document count exceeds {count}, the maximum allowed by the server",
                server_max_count_exceeded=True,
            )
        else:
            if count > upper_bound:
                raise TooManyDocumentsToCountException(
                    text="Document count exceeds required upper bound",
                    server_max_count_exceeded=False,
                )
            else:
                return count
    else:
        raise UnexpectedDataAPIResponseException(
            text="Faulty response from countDocuments API command.",
            raw_response=cd_response,
        )


def _check_upper_bound(upper_bound: int) -> None:
    if upper_bound > DATA_API_MAX_COUNT_DOCUMENTS:
        raise ValueError(
            f"The upper_bound cannot exceed {DATA_API_MAX_COUNT_DOCUMENTS}, "
            "the maximum count the Data API can reach."
        )


def _single_request_timeout(
    api_options: FullAPIOptions,
    general_method_timeout_ms: int | None,
    request_timeout_ms: int | None,
    timeout_ms: int | None,
) -> _TimeoutContext:
    # one request only: all three parameters compete as equals
    request_ms, label = _select_singlereq_timeout_gm(
        timeout_options=api_options.timeout_options,
        general_method_timeout_ms=general_method_timeout_ms,
        request_timeout_ms=request_timeout_ms,
        timeout_ms=timeout_ms,
    )
    return _TimeoutContext(request_ms=request_ms, label=label)


def _multicall_timeouts(
    api_options: FullAPIOptions,
    general_method_timeout_ms: int | None,
    request_timeout_ms: int | None,
    timeout_ms: int | None,
) -> Callable[[], _TimeoutContext]:
    """
    Start the clock for a method spanning several requests. The returned
    function gives the timeout for the next request: the time left before the
    overall deadline, capped by the per-request timeout.
    """
    overall_ms, overall_label = _first_valid_timeout(
        (general_method_timeout_ms, "general_method_timeout_ms"),
        (timeout_ms, "timeout_ms"),
        (
            api_options.timeout_options.general_method_timeout_ms,
            "general_method_timeout_ms",
        ),
    )
    per_request_ms, per_request_label = _first_valid_timeout(
        (request_timeout_ms, "request_timeout_ms"),
        (api_options.timeout_options.request_timeout_ms, "request_timeout_ms"),
    )
    timeout_manager = MultiCallTimeoutManager(
        overall_timeout_ms=overall_ms,
        timeout_label=overall_label,
    )

    def _next_timeout_context() -> _TimeoutContext:
        return timeout_manager.remaining_timeout(
            cap_time_ms=per_request_ms,
            cap_timeout_label=per_request_label,
        )

    return _next_timeout_context


def _find_one_command(
    filter: FilterType | None,
    projection: ProjectionType | None,
    sort: SortType | None,
    include_similarity: bool | None,
) -> dict[str, Any]:
    fo_options = (
        None
        if include_similarity is None
        else {"includeSimilarity": include_similarity}
    )
    return {
        "findOne": {
            k: v
            for k, v in {
                "filter": filter,
                "projection": normalize_optional_projection(projection),
                "options": fo_options,
                "sort": sort,
            }.items()
            if v is not None
        }
    }


class Collection(Generic[DOC]):
    """
    A Data API collection, the object to interact with the Data API for
    schemaless documents. This class has a synchronous interface.

    This class is not meant for direct instantiation by the user, rather
    it is obtained by invoking methods such as `get_collection` of Database,
    wherefrom the Collection inherits its API options such as authentication
    token and API endpoint.

    Args:
        database: a Database object, instantiated earlier. This represents
            the database the collection belongs to.
        name: the collection name. This parameter should match an existing
            collection on the database.
        keyspace: this is the keyspace to which the collection belongs.
            If nothing is specified, the database's working keyspace is used.
        api_options: a complete specification of the API Options for this instance.

    Example:
        >>> from docapi import DataAPIClient
        >>> client = DataAPIClient()
        >>> database = client.get_database(
        ...     "https://my-data-api.example.com",
        ...     token="my-token",
        ... )
        >>> my_collection = database.get_collection("my_events")

    Note:
        creating an instance of Collection does not trigger actual creation
        of the collection on the database. The latter should exist beforehand.
    """

    def __init__(
        self,
        *,
        database: Database,
        name: str,
        keyspace: str | None,
        api_options: FullAPIOptions,
    ) -> None:
        self.api_options = api_options
        self._name = name
        _keyspace = keyspace if keyspace is not None else database.keyspace
        self._database = database._copy(
            keyspace=_keyspace, api_options=self.api_options
        )
        self._commander_headers = {
            **{DEFAULT_DATA_API_AUTH_HEADER: self.api_options.token},
            **self.api_options.additional_headers,
        }
        self._api_commander = self._get_api_commander()

    def __repr__(self) -> str:
        _db_desc = f'database.api_endpoint="{self.database.api_endpoint}"'
        return (
            f'{self.__class__.__name__}(name="{self.name}", '
            f'keyspace="{self.keyspace}", {_db_desc}, '
            f"api_options={self.api_options})"
        )

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Collection):
            return all(
                [
                    self._name == other._name,
                    self._database == other._database,
                    self.api_options == other.api_options,
                ]
            )
        else:
            return False

    def _get_api_commander(self) -> APICommander:
        """Instantiate a new APICommander based on the properties of this class."""

        base_path_components = [
            comp
            for comp in (
                ncomp.strip("/")
                for ncomp in (
                    self.api_options.api_path,
                    self.api_options.api_version,
                    self.keyspace,
                    self._name,
                )
                if ncomp is not None
            )
            if comp != ""
        ]
        base_path = f"/{'/'.join(base_path_components)}"
        api_commander = APICommander(
            api_endpoint=self._database.api_endpoint,
            path=base_path,
            headers=self._commander_headers,
            callers=self.api_options.callers,
            redacted_header_names=self.api_options.redacted_header_names,
        )
        return api_commander

    def _converted_request(
        self,
        *,
        payload: dict[str, Any] | None = None,
        raise_api_errors: bool = True,
        timeout_context: _TimeoutContext,
    ) -> dict[str, Any]:
        converted_payload = preprocess_collection_payload(payload)
        raw_response_json = self._api_commander.request(
            payload=converted_payload,
            raise_api_errors=raise_api_errors,
            timeout_context=timeout_context,
        )
        return postprocess_collection_response(raw_response_json)

    def _copy(
        self: Collection[DOC],
        *,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> Collection[DOC]:
        return Collection(
            database=self.database,
            name=self.name,
            keyspace=self.keyspace,
            api_options=self.api_options.with_override(api_options),
        )

    def with_options(
        self: Collection[DOC],
        *,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> Collection[DOC]:
        """
        Create a clone of this collection with some changed attributes.

        Args:
            api_options: any additional options to set for the clone, in the form of
                an APIOptions instance (where one can set just the needed attributes).

        Returns:
            a new Collection instance.

        Example:
            >>> impatient_collection = my_coll.with_options(
            ...     api_options=APIOptions(
            ...         timeout_options=TimeoutOptions(request_timeout_ms=1500),
            ...     ),
            ... )
        """

        return self._copy(api_options=api_options)

    def to_async(
        self: Collection[DOC],
        *,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> AsyncCollection[DOC]:
        """
        Create an AsyncCollection from this one. Save for the arguments
        explicitly provided as overrides, everything else is kept identical
        to this collection in the copy (the database is converted into
        an async object).

        Args:
            api_options: any additional options to set for the result, in the form of
                an APIOptions instance (where one can set just the needed attributes).

        Returns:
            the new copy, an AsyncCollection instance.

        Example:
            >>> asyncio.run(my_coll.to_async().count_documents({}, upper_bound=100))
            77
        """

        return AsyncCollection(
            database=self.database.to_async(),
            name=self.name,
            keyspace=self.keyspace,
            api_options=self.api_options.with_override(api_options),
        )

    @property
    def database(self) -> Database:
        """
        a Database object, the database this collection belongs to.

        Example:
            >>> my_coll.database.api_endpoint
            'https://my-data-api.example.com'
        """

        return self._database

    @property
    def keyspace(self) -> str:
        """
        The keyspace this collection is in.

        Example:
            >>> my_coll.keyspace
            'default_keyspace'
        """

        return self.database.keyspace

    @property
    def name(self) -> str:
        """
        The name of this collection.

        Example:
            >>> my_coll.name
            'my_collection'
        """

        return self._name

    @property
    def full_name(self) -> str:
        """
        The fully-qualified collection name within the database,
        in the form "keyspace.collection_name".

        Example:
            >>> my_coll.full_name
            'default_keyspace.my_collection'
        """

        return f"{self.keyspace}.{self.name}"

    @property
    def namespace(self) -> str:
        """An alias for `full_name`."""

        return self.full_name

    def insert_one(
        self,
        document: DOC,
        *,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionInsertOneResult:
        """
        Insert a single document in the collection in an atomic operation.

        Args:
            document: the dictionary expressing the document to insert.
                The `_id` field of the document can be left out, in which
                case it will be created automatically.
            general_method_timeout_ms: a timeout, in milliseconds, for the single
                API request this method issues. Unless passed, the collection
                defaults are used.
            request_timeout_ms: equivalent to `general_method_timeout_ms` here.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a CollectionInsertOneResult object.

        Example:
            >>> my_coll.insert_one({"_id": "user-123", "age": 50, "name": "Maccio"})
            CollectionInsertOneResult(inserted_id='user-123', raw_results=...)

        Note:
            If an `_id` is explicitly provided, which corresponds to a document
            that exists already in the collection, an error is raised and
            the insertion fails.
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        io_payload = InsertOne(document).to_command()
        logger.info(f"insertOne on '{self.name}'")
        io_response = self._converted_request(
            payload=io_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished insertOne on '{self.name}'")
        if (io_response.get("status") or {}).get("insertedIds"):
            inserted_id = io_response["status"]["insertedIds"][0]
            return CollectionInsertOneResult(
                raw_results=[io_response],
                inserted_id=inserted_id,
            )
        else:
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from insert_one API command.",
                raw_response=io_response,
            )

    def insert_many(
        self,
        documents: Iterable[DOC],
        *,
        ordered: bool = False,
        chunk_size: int | None = None,
        concurrency: int | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionInsertManyResult:
        """
        Insert a list of documents into the collection.
        This is not an atomic operation.

        Args:
            documents: the documents to insert. Those without an `_id` get one
                assigned by the Data API.
            ordered: if True, the chunks are sent one after the other and the first
                failure stops the insertion. If False (default), they can be sent
                concurrently, in no particular order, and all are attempted.
            chunk_size: the number of documents per API request. Unless there are
                reasons to change it, leave it to the default.
            concurrency: the number of requests that can be in flight at once.
                Only 1 is accepted for ordered insertions.
            general_method_timeout_ms: a timeout, in milliseconds, for the overall
                method call, spanning all the API requests it makes.
                Defaults to the collection setting.
            request_timeout_ms: a timeout, in milliseconds, for each API request.
                Defaults to the collection setting.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a CollectionInsertManyResult object.

        Raises:
            CollectionInsertManyException: if some chunks failed. In ordered mode,
                the chunks after the failing one are not attempted. In either case
                the exception carries the IDs of all documents that were inserted.

        Example:
            >>> my_coll.insert_many([{"a": 10}, {"a": 5}, {"b": [True, False, False]}])
            CollectionInsertManyResult(inserted_ids=['184bb06f-...', '...', '...'], raw_results=...)
            >>> my_coll.insert_many(
            ...     [{"seq": i} for i in range(50)],
            ...     concurrency=5,
            ... )
            CollectionInsertManyResult(inserted_ids=[... ... ...], raw_results=...)

        Note:
            Unordered insertions are executed with some degree of concurrency,
            so it is usually better to prefer this mode unless the order in the
            document sequence is important.
        """

        _chunk_size, _concurrency = _insert_many_settings(
            ordered, chunk_size, concurrency
        )
        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        _documents = list(documents)
        im_commands = _insert_many_commands(_documents, _chunk_size, ordered)

        def _chunk_insertor(im_payload: dict[str, Any]) -> dict[str, Any]:
            logger.info(f"insertMany(chunk) on '{self.name}'")
            im_response = self._converted_request(
                payload=im_payload,
                timeout_context=next_timeout_context(),
            )
            logger.info(f"finished insertMany(chunk) on '{self.name}'")
            return im_response

        logger.info(f"inserting {len(_documents)} documents in '{self.name}'")
        accumulator = _BulkWriteAccumulator(len(im_commands))
        try:
            if ordered:
                run_ordered(im_commands, _chunk_insertor, accumulator)
            else:
                run_unordered(im_commands, _chunk_insertor, _concurrency, accumulator)
        except BulkWriteException as bulk_exc:
            raise CollectionInsertManyException(
                inserted_ids=accumulator.inserted_ids(),
                exceptions=bulk_exc.exceptions,
            )
        logger.info(f"finished inserting {len(_documents)} documents in '{self.name}'")
        return CollectionInsertManyResult(
            raw_results=accumulator.result.raw_results,
            inserted_ids=accumulator.inserted_ids(),
        )

    def find(
        self,
        filter: FilterType | None = None,
        *,
        projection: ProjectionType | None = None,
        sort: SortType | None = None,
        skip: int | None = None,
        limit: int | None = None,
        include_similarity: bool | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> FindCursor[DOC, DOC]:
        """
        Find the documents matching a filter, returning a lazy cursor over them.

        No request is made until the cursor is consumed: the first page is
        fetched then, and the following ones as the buffer runs out. Documents
        written or deleted while a cursor is being consumed may or may not be
        seen by it, and with an unsorted query a scan of this kind can
        occasionally skip or repeat a document.

        Args:
            filter: a predicate expressed as a dictionary in the Data API
                filter syntax, e.g. `{}`, `{"name": "John"}`,
                `{"price": {"$lt": 100}}` or
                `{"$and": [{"name": "John"}, {"price": {"$lt": 100}}]}`.
            projection: which fields to return, either as an inclusion map
                (`{"f1": True, "f2": True}`) or an exclusion map
                (`{"fx": False}`). The two kinds cannot be mixed, except for
                `_id` and the other special fields.
            sort: the ordering of the results, such as
                `{"field": SortMode.ASCENDING}`. A sort on `$vector` runs
                a similarity search instead.
            skip: how many of the matching documents to pass over before
                returning any. It requires an explicit ascending/descending `sort`.
            limit: the maximum number of documents the cursor will yield.
                Zero or None mean no limit.
            include_similarity: whether each document should carry its
                similarity score, under "$similarity". Only meaningful for
                vector searches.
            request_timeout_ms: a timeout, in milliseconds, for each page
                request the cursor makes. Defaults to the collection setting.
            timeout_ms: an alias for `request_timeout_ms`.

        Returns:
            a FindCursor, not yet initialized, to iterate over or further
            configure (with its `filter`, `limit`, `map` methods and so on).

        Examples:
            >>> for doc in my_coll.find({"seq": {"$exists": True}}, limit=3):
            ...     print(doc["seq"])
            ...
            37
            35
            10
            >>> cursor = my_coll.find({}, sort={"seq": SortMode.DESCENDING})
            >>> cursor.limit(4).map(lambda doc: doc["seq"]).to_list()
            [69, 68, 67, 66]
        """

        _request_timeout_ms, _rt_label = _first_valid_timeout(
            (request_timeout_ms, "request_timeout_ms"),
            (timeout_ms, "timeout_ms"),
            (self.api_options.timeout_options.request_timeout_ms, "request_timeout_ms"),
        )
        return (
            FindCursor(
                collection=self,
                request_timeout_ms=_request_timeout_ms,
                request_timeout_label=_rt_label,
            )
            .filter(filter)
            .project(projection)
            .skip(skip)
            .limit(limit)
            .sort(sort)
            .include_similarity(include_similarity)
        )

    def find_one(
        self,
        filter: FilterType | None = None,
        *,
        projection: ProjectionType | None = None,
        sort: SortType | None = None,
        include_similarity: bool | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> DOC | None:
        """
        Run a search, returning the first document in the collection that matches
        provided filters, if any is found.

        Args:
            filter: the condition selecting the target documents, in the
                Data API filter syntax (see `find`).
            projection: it controls which parts of the document are returned
                (see `find`).
            sort: with this dictionary parameter one can control the order
                the documents are returned (see `find`).
            include_similarity: a boolean to request the numeric value of the
                similarity to be returned as an added "$similarity" key in the
                returned document. It can be used meaningfully only in a vector search.
            general_method_timeout_ms: a timeout, in milliseconds, for the single
                API request this method issues. Unless passed, the collection
                defaults are used.
            request_timeout_ms: equivalent to `general_method_timeout_ms` here.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a dictionary expressing the required document, otherwise None.

        Examples:
            >>> my_coll.find_one({"seq": 10})
            {'_id': 'd560e217-...', 'seq': 10}
            >>> my_coll.find_one({"seq": 1011})
            >>> # (returns None for no matches)
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        fo_payload = _find_one_command(filter, projection, sort, include_similarity)
        fo_response = self._converted_request(
            payload=fo_payload,
            timeout_context=timeout_context,
        )
        if "document" not in (fo_response.get("data") or {}):
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from findOne API command.",
                raw_response=fo_response,
            )
        return fo_response["data"]["document"]  # type: ignore[no-any-return]

    def distinct(
        self,
        key: str,
        *,
        filter: FilterType | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> list[Any]:
        """
        Return a list of the unique values of `key` across the documents
        in the collection that match the provided filter.

        Args:
            key: the name of the field whose value is inspected across documents.
                Keys can be just field names (as is often the case), but
                the dot-notation is also accepted to mean subkeys or indices
                within lists (for example, "map_field.subkey" or "list_field.2").
                If lists are encountered and no numeric index is specified,
                all items in the list are visited.
            filter: the condition selecting the target documents, in the
                Data API filter syntax (see `find`).
            general_method_timeout_ms: a timeout, in milliseconds, for the overall
                method call, spanning all the API requests it makes.
                This method, being based on `find` (see) may entail successive HTTP API
                requests, depending on the amount of involved documents.
            request_timeout_ms: a timeout, in milliseconds, for each API request.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a list of all different values for `key` found across the documents
            that match the filter. The result list has no repeated items,
            and null values are never part of it.

        Example:
            >>> my_coll.insert_many(
            ...     [
            ...         {"name": "Marco", "food": ["apple", "orange"], "city": "Helsinki"},
            ...         {"name": "Emma", "food": {"likes_fruit": True, "allergies": []}},
            ...     ]
            ... )
            CollectionInsertManyResult(inserted_ids=['c5b99f37-...', 'd6416321-...'], raw_results=...)
            >>> my_coll.distinct("name")
            ['Marco', 'Emma']
            >>> my_coll.distinct("food")
            ['apple', 'orange', {'likes_fruit': True, 'allergies': []}]
            >>> my_coll.distinct("food.1")
            ['orange']
            >>> my_coll.distinct("food.allergies")
            []

        Note:
            The deduplication happens client-side: `distinct` pages through
            every matching document with a find cursor, fetching only the
            needed field. A large number of matches means as many documents
            read, with the corresponding latency and cost.
        """

        _request_timeout_ms, _rt_label = _first_valid_timeout(
            (request_timeout_ms, "request_timeout_ms"),
            (self.api_options.timeout_options.request_timeout_ms, "request_timeout_ms"),
        )
        _general_method_timeout_ms, _ = _first_valid_timeout(
            (general_method_timeout_ms, "general_method_timeout_ms"),
            (timeout_ms, "timeout_ms"),
            (
                self.api_options.timeout_options.general_method_timeout_ms,
                "general_method_timeout_ms",
            ),
        )
        # preparing cursor:
        _extractor = _create_document_key_extractor(key)
        _key = _reduce_distinct_key_to_safe(key)
        f_cursor: FindCursor[dict[str, Any], dict[str, Any]] = FindCursor(
            collection=self,  # type: ignore[arg-type]
            request_timeout_ms=_request_timeout_ms,
            request_timeout_label=_rt_label,
            filter=filter,
            projection=_distinct_projection(_key),
        )
        # consuming it:
        _item_keys: set[tuple[str, Any]] = set()
        distinct_items: list[Any] = []

        def _collect(document: dict[str, Any]) -> None:
            for item in _extractor(document):
                _item_key = _distinct_value_key(item)
                if _item_key not in _item_keys:
                    _item_keys.add(_item_key)
                    distinct_items.append(item)

        logger.info(f"running distinct() on '{self.name}'")
        f_cursor.for_each(
            _collect, general_method_timeout_ms=_general_method_timeout_ms or None
        )
        logger.info(f"finished running distinct() on '{self.name}'")
        return distinct_items

    def count_documents(
        self,
        filter: FilterType,
        *,
        upper_bound: int,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> int:
        """
        Count the documents in the collection matching the specified filter.

        Args:
            filter: the condition selecting the target documents, in the
                Data API filter syntax (see `find`).
            upper_bound: a required ceiling on the result of the count operation.
                If the actual number of documents exceeds this value,
                an exception will be raised. This cannot be more than the
                maximum count the Data API can reach (1000).
                Furthermore, if the actual number of documents exceeds the maximum
                count that the Data API can reach (regardless of upper_bound),
                an exception will be raised.
            general_method_timeout_ms: a timeout, in milliseconds, for the single
                API request this method issues. Unless passed, the collection
                defaults are used.
            request_timeout_ms: equivalent to `general_method_timeout_ms` here.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            the exact count of matching documents.

        Example:
            >>> my_coll.insert_many([{"seq": i} for i in range(20)])
            CollectionInsertManyResult(...)
            >>> my_coll.count_documents({}, upper_bound=100)
            20
            >>> my_coll.count_documents({"seq":{"$gt": 15}}, upper_bound=100)
            4
            >>> my_coll.count_documents({}, upper_bound=10)
            Traceback (most recent call last):
                ... ...
            docapi.exceptions.TooManyDocumentsToCountException
        """

        _check_upper_bound(upper_bound)
        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        cd_payload = {"countDocuments": {"filter": filter}}
        logger.info(f"countDocuments on '{self.name}'")
        cd_response = self._converted_request(
            payload=cd_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished countDocuments on '{self.name}'")
        return _count_from_response(cd_response, upper_bound)

    def replace_one(
        self,
        filter: FilterType,
        replacement: DOC,
        *,
        sort: SortType | None = None,
        upsert: bool = False,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionUpdateResult:
        """
        Replace a single document on the collection with a new one,
        optionally inserting a new one if no match is found.

        Args:
            filter: the condition selecting the target documents, in the
                Data API filter syntax (see `find`).
            replacement: the new document to write into the collection.
            sort: when several documents match, this ordering decides which
                one comes first, hence is the one replaced.
            upsert: if True, a missing match leads to inserting `replacement` as
                a new document. If False (default), a missing match makes the call
                a no-op.
            general_method_timeout_ms: a timeout, in milliseconds, for the single
                API request this method issues. Unless passed, the collection
                defaults are used.
            request_timeout_ms: equivalent to `general_method_timeout_ms` here.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a CollectionUpdateResult object summarizing the outcome of
            the replace operation.

        Example:
            >>> my_coll.insert_one({"Marco": "Polo"})
            CollectionInsertOneResult(...)
            >>> my_coll.replace_one({"Marco": {"$exists": True}}, {"Buda": "Pest"})
            CollectionUpdateResult(update_info={'n': 1, 'updatedExisting': True, 'ok': 1.0, 'nModified': 1}, raw_results=...)
            >>> my_coll.replace_one({"Mirco": {"$exists": True}}, {"Oh": "yeah?"}, upsert=True)
            CollectionUpdateResult(update_info={'n': 1, 'updatedExisting': False, 'ok': 1.0, 'nModified': 0, 'upserted': '931b47d6-...'}, raw_results=...)
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        fo_payload = ReplaceOne(
            filter, replacement, sort=sort, upsert=upsert
        ).to_command()
        logger.info(f"findOneAndReplace on '{self.name}'")
        fo_response = self._converted_request(
            payload=fo_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished findOneAndReplace on '{self.name}'")
        if "document" in (fo_response.get("data") or {}):
            fo_status = fo_response.get("status") or {}
            _update_info = _prepare_update_info([fo_status])
            return CollectionUpdateResult(
                raw_results=[fo_response],
                update_info=_update_info,
            )
        else:
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from find_one_and_replace API command.",
                raw_response=fo_response,
            )

    def update_one(
        self,
        filter: FilterType,
        update: dict[str, Any],
        *,
        sort: SortType | None = None,
        upsert: bool = False,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionUpdateResult:
        """
        Update a single document on the collection as requested,
        optionally inserting a new one if no match is found.

        Args:
            filter: the condition selecting the target documents, in the
                Data API filter syntax (see `find`).
            update: the Data API update operators to apply, for instance
                `{"$set": {"field": "value"}}`, `{"$inc": {"counter": 10}}` or
                `{"$unset": {"field": ""}}`.
            sort: when several documents match, this ordering decides which
                one comes first, hence is the one updated.
            upsert: if True, a missing match leads to inserting a new document,
                obtained by applying `update` to an empty one. If False (default),
                a missing match makes the call a no-op.
            general_method_timeout_ms: a timeout, in milliseconds, for the single
                API request this method issues. Unless passed, the collection
                defaults are used.
            request_timeout_ms: equivalent to `general_method_timeout_ms` here.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a CollectionUpdateResult object summarizing the outcome of
            the update operation.

        Example:
            >>> my_coll.update_one({"Marco": {"$exists": True}}, {"$inc": {"rank": 3}})
            CollectionUpdateResult(update_info={'n': 1, 'updatedExisting': True, 'ok': 1.0, 'nModified': 1}, raw_results=...)
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        uo_payload = UpdateOne(filter, update, sort=sort, upsert=upsert).to_command()
        logger.info(f"updateOne on '{self.name}'")
        uo_response = self._converted_request(
            payload=uo_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished updateOne on '{self.name}'")
        if "status" in uo_response:
            uo_status = uo_response["status"]
            _update_info = _prepare_update_info([uo_status])
            return CollectionUpdateResult(
                raw_results=[uo_response],
                update_info=_update_info,
            )
        else:
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from updateOne API command.",
                raw_response=uo_response,
            )

    def update_many(
        self,
        filter: FilterType,
        update: dict[str, Any],
        *,
        upsert: bool = False,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionUpdateResult:
        """
        Apply an update operation to all documents matching a condition,
        optionally inserting one document in absence of matches.

        Args:
            filter: the condition selecting the target documents, in the
                Data API filter syntax (see `find`).
            update: the update prescription to apply to the documents, expressed
                as a dictionary as per Data API syntax (see `update_one`).
            upsert: if True and nothing matches, one new document is inserted,
                obtained by applying `update` to an empty one. If False (default),
                a missing match makes the call a no-op.
            general_method_timeout_ms: a timeout, in milliseconds, for the overall
                method call, spanning all the API requests it makes.
                Defaults to the collection setting.
            request_timeout_ms: a timeout, in milliseconds, for each API request.
                Defaults to the collection setting.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a CollectionUpdateResult object summarizing the outcome of
            the update operation.

        Raises:
            CollectionUpdateManyException: if one of the requests fails. The
                exception carries the part of the update done up to then.

        Example:
            >>> my_coll.insert_many([{"c": "red"}, {"c": "green"}, {"c": "blue"}])
            CollectionInsertManyResult(...)
            >>> my_coll.update_many({"c": {"$ne": "green"}}, {"$set": {"nongreen": True}})
            CollectionUpdateResult(update_info={'n': 2, 'updatedExisting': True, 'ok': 1.0, 'nModified': 2}, raw_results=...)

        Note:
            Similarly to the case of `find` (see its docstring for more details),
            running this command while, at the same time, another process is
            inserting new documents which match the filter of the `update_many`
            can result in an unpredictable fraction of these documents being updated.
        """

        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        um_operation = UpdateMany(filter, update, upsert=upsert)
        next_page_state: str | None = None
        um_responses: list[dict[str, Any]] = []
        um_statuses: list[dict[str, Any]] = []
        must_proceed = True
        logger.info(f"starting update_many on '{self.name}'")
        while must_proceed:
            this_um_payload = _update_many_command(um_operation, next_page_state)
            logger.info(f"updateMany on '{self.name}'")
            this_um_response = self._converted_request(
                payload=this_um_payload,
                raise_api_errors=False,
                timeout_context=next_timeout_context(),
            )
            logger.info(f"finished updateMany on '{self.name}'")
            this_um_status = this_um_response.get("status") or {}
            # if errors, quit early
            if this_um_response.get("errors", []):
                partial_result = CollectionUpdateResult(
                    raw_results=um_responses,
                    update_info=_prepare_update_info(um_statuses + [this_um_status]),
                )
                cause_exception = DataAPIResponseException.from_response(
                    command=this_um_payload,
                    raw_response=this_um_response,
                )
                raise CollectionUpdateManyException(
                    partial_result=partial_result,
                    cause=cause_exception,
                )
            else:
                if "status" not in this_um_response:
                    raise UnexpectedDataAPIResponseException(
                        text="Faulty response from update_many API command.",
                        raw_response=this_um_response,
                    )
                um_responses.append(this_um_response)
                um_statuses.append(this_um_status)
                next_page_state = this_um_status.get("nextPageState")
                must_proceed = next_page_state is not None

        update_info = _prepare_update_info(um_statuses)
        logger.info(f"finished update_many on '{self.name}'")
        return CollectionUpdateResult(
            raw_results=um_responses,
            update_info=update_info,
        )

    def delete_one(
        self,
        filter: FilterType,
        *,
        sort: SortType | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionDeleteResult:
        """
        Delete one document matching a provided filter.
        This method never deletes more than a single document, regardless
        of the number of matches to the provided filters.

        Args:
            filter: the condition selecting the target documents, in the
                Data API filter syntax (see `find`).
            sort: when several documents match, this ordering decides which
                one comes first, hence is the one deleted.
            general_method_timeout_ms: a timeout, in milliseconds, for the single
                API request this method issues. Unless passed, the collection
                defaults are used.
            request_timeout_ms: equivalent to `general_method_timeout_ms` here.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a CollectionDeleteResult object summarizing the outcome of the
            delete operation.

        Example:
            >>> my_coll.insert_many([{"seq": 1}, {"seq": 0}, {"seq": 2}])
            CollectionInsertManyResult(...)
            >>> my_coll.delete_one({"seq": 1})
            CollectionDeleteResult(deleted_count=1, raw_results=...)
            >>> my_coll.delete_one({"seq": 1})
            CollectionDeleteResult(deleted_count=0, raw_results=...)
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        do_payload = DeleteOne(filter, sort=sort).to_command()
        logger.info(f"deleteOne on '{self.name}'")
        do_response = self._converted_request(
            payload=do_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished deleteOne on '{self.name}'")
        if "deletedCount" in (do_response.get("status") or {}):
            deleted_count = do_response["status"]["deletedCount"]
            return CollectionDeleteResult(
                deleted_count=deleted_count,
                raw_results=[do_response],
            )
        else:
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from delete_one API command.",
                raw_response=do_response,
            )

    def delete_many(
        self,
        filter: FilterType,
        *,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionDeleteResult:
        """
        Delete all documents matching a provided filter.

        Args:
            filter: the condition selecting the target documents, in the
                Data API filter syntax (see `find`). This cannot be empty:
                to erase all contents of the collection, use `delete_all`.
            general_method_timeout_ms: a timeout, in milliseconds, for the overall
                method call, spanning all the API requests it makes.
                Defaults to the collection setting.
            request_timeout_ms: a timeout, in milliseconds, for each API request.
                Defaults to the collection setting.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a CollectionDeleteResult object summarizing the outcome of the
            delete operation.

        Raises:
            CollectionDeleteManyException: if one of the requests fails. The
                exception carries the part of the deletion done up to then.

        Example:
            >>> my_coll.insert_many([{"seq": 1}, {"seq": 0}, {"seq": 2}])
            CollectionInsertManyResult(...)
            >>> my_coll.delete_many({"seq": {"$lte": 1}})
            CollectionDeleteResult(deleted_count=2, raw_results=...)
            >>> my_coll.distinct("seq")
            [2]
            >>> my_coll.delete_many({"seq": {"$lte": 1}})
            CollectionDeleteResult(deleted_count=0, raw_results=...)

        Note:
            This operation is in general not atomic. Depending on the amount
            of matching documents, it can keep running (in a blocking way)
            for a macroscopic time. In that case, new documents that are
            meanwhile inserted (e.g. from another process/application) will be
            deleted during the execution of this method call until the
            collection is devoid of matches.
        """

        _check_delete_many_filter(filter)
        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        dm_responses: list[dict[str, Any]] = []
        deleted_count = 0
        must_proceed = True
        this_dm_payload = DeleteMany(filter).to_command()
        logger.info(f"starting delete_many on '{self.name}'")
        while must_proceed:
            logger.info(f"deleteMany on '{self.name}'")
            this_dm_response = self._converted_request(
                payload=this_dm_payload,
                raise_api_errors=False,
                timeout_context=next_timeout_context(),
            )
            logger.info(f"finished deleteMany on '{self.name}'")
            # if errors, quit early
            if this_dm_response.get("errors", []):
                partial_dc = (this_dm_response.get("status") or {}).get(
                    "deletedCount"
                ) or 0
                partial_result = CollectionDeleteResult(
                    deleted_count=deleted_count + partial_dc,
                    raw_results=dm_responses,
                )
                cause_exception = DataAPIResponseException.from_response(
                    command=this_dm_payload,
                    raw_response=this_dm_response,
                )
                raise CollectionDeleteManyException(
                    partial_result=partial_result,
                    cause=cause_exception,
                )
            else:
                this_dc = (this_dm_response.get("status") or {}).get("deletedCount")
                if this_dc is None:
                    raise UnexpectedDataAPIResponseException(
                        text="Faulty response from delete_many API command.",
                        raw_response=this_dm_response,
                    )
                dm_responses.append(this_dm_response)
                deleted_count += this_dc
                must_proceed = this_dm_response["status"].get("moreData", False)

        logger.info(f"finished delete_many on '{self.name}'")
        return CollectionDeleteResult(
            deleted_count=deleted_count,
            raw_results=dm_responses,
        )

    def delete_all(
        self,
        *,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionDeleteResult:
        """
        Delete all documents in the collection.

        Args:
            general_method_timeout_ms: a timeout, in milliseconds, for the overall
                method call, spanning all the API requests it makes.
                Defaults to the collection setting.
            request_timeout_ms: a timeout, in milliseconds, for each API request.
                Defaults to the collection setting.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a CollectionDeleteResult object. Its `deleted_count` is -1
            if the Data API does not report how many documents were deleted
            (as is the case when erasing a whole collection at once).

        Example:
            >>> my_coll.delete_all()
            CollectionDeleteResult(deleted_count=-1, raw_results=...)
            >>> my_coll.count_documents({}, upper_bound=100)
            0

        Note:
            Use with caution.
        """

        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        da_responses: list[dict[str, Any]] = []
        deleted_count = 0
        must_proceed = True
        da_payload = DeleteMany({}).to_command()
        logger.info(f"starting delete_all on '{self.name}'")
        while must_proceed:
            da_response = self._converted_request(
                payload=da_payload,
                timeout_context=next_timeout_context(),
            )
            da_responses.append(da_response)
            da_status = da_response.get("status") or {}
            this_dc = da_status.get("deletedCount")
            if this_dc is None or this_dc < 0 or deleted_count < 0:
                deleted_count = -1
            else:
                deleted_count += this_dc
            must_proceed = da_status.get("moreData", False)
        logger.info(f"finished delete_all on '{self.name}'")
        return CollectionDeleteResult(
            deleted_count=deleted_count,
            raw_results=da_responses,
        )

    def bulk_write(
        self,
        operations: Iterable[BaseOperation],
        *,
        ordered: bool = False,
        concurrency: int | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> BulkWriteResult:
        """
        Execute an arbitrary amount of operations such as inserts, updates, deletes
        either sequentially or concurrently.

        This method does not execute atomically, i.e. individual operations are
        each performed in the same way as the corresponding collection method,
        and each one is a different and unrelated database mutation.

        Args:
            operations: a list of write operations to perform. Each operation
                is an instance of one of the classes found in `docapi.operations`,
                such as InsertOne, UpdateMany or DeleteOne.
            ordered: if False (default), the `operations` run in arbitrary order,
                possibly concurrently, and all of them are attempted regardless
                of failures. If True, they run one after the other and the bulk
                write stops at the first failure.
            concurrency: maximum number of concurrent operations executing at
                a given time (unordered mode only). Defaults to 8.
            general_method_timeout_ms: a timeout, in milliseconds, for the whole
                bulk write. If not passed, the collection-level setting is used.
            request_timeout_ms: a timeout, in milliseconds, for each API request.
                Defaults to the collection setting.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            A single BulkWriteResult summarizing the whole list of requested
            operations. The keys in the map attributes of the result (when present)
            are the integer indices of the corresponding operation in the
            `operations` iterable.

        Raises:
            BulkWriteException: if any operation failed. In ordered mode this
                happens at the first failure (the remaining operations are not
                attempted); in unordered mode all operations are attempted first.
                The exception carries the merged partial result and the list
                of failures. Other errors (e.g. HTTP errors) propagate unwrapped.

        Example:
            >>> from docapi.operations import InsertOne, ReplaceOne, DeleteMany
            >>> op1 = InsertOne({"a": 1})
            >>> op2 = ReplaceOne({"z": 9}, replacement={"z": 9, "replaced": True}, upsert=True)
            >>> op3 = DeleteMany({"a": 1})
            >>> my_coll.bulk_write([op1, op2, op3], ordered=True)
            BulkWriteResult(inserted_count=1, matched_count=0, modified_count=0, deleted_count=1, upserted_count=1, upserted_ids={1: '2addd676-...'}, raw_results=...)
        """

        _concurrency = _bulk_write_concurrency(concurrency)
        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        bw_commands = [operation.to_command() for operation in operations]
        if not bw_commands:
            return BulkWriteResult.zero()

        def _executor(bw_payload: dict[str, Any]) -> dict[str, Any]:
            return self._converted_request(
                payload=bw_payload,
                timeout_context=next_timeout_context(),
            )

        logger.info(f"starting a bulk write on '{self.name}'")
        if ordered:
            bulk_write_result = run_ordered(bw_commands, _executor)
        else:
            bulk_write_result = run_unordered(bw_commands, _executor, _concurrency)
        logger.info(f"finished a bulk write on '{self.name}'")
        return bulk_write_result

    def command(
        self,
        body: dict[str, Any] | None,
        *,
        raise_api_errors: bool = True,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        """
        Send a POST request to the Data API for this collection with
        an arbitrary, caller-provided payload.
        No transformations or type conversions are made on the provided payload.

        Args:
            body: a JSON-serializable dictionary, the payload of the request.
            raise_api_errors: if True, responses with a nonempty 'errors' field
                result in a docapi exception being raised.
            general_method_timeout_ms: a timeout, in milliseconds, for the single
                API request this method issues. Unless passed, the collection
                defaults are used.
            request_timeout_ms: equivalent to `general_method_timeout_ms` here.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a dictionary with the response of the HTTP request.

        Example:
            >>> my_coll.command({"countDocuments": {}})
            {'status': {'count': 123}}
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        _cmd_desc: str
        if body:
            _cmd_desc = ",".join(sorted(body.keys()))
        else:
            _cmd_desc = "(none)"
        logger.info(f"command={_cmd_desc} on '{self.name}'")
        command_result = self._api_commander.request(
            payload=body,
            raise_api_errors=raise_api_errors,
            timeout_context=timeout_context,
        )
        logger.info(f"finished command={_cmd_desc} on '{self.name}'")
        return command_result


class AsyncCollection(Generic[DOC]):
    """
    A Data API collection, the object to interact with the Data API for
    schemaless documents. This class has an asynchronous interface for use
    with asyncio.

    This class is not meant for direct instantiation by the user, rather
    it is obtained by invoking methods such as `get_collection` of AsyncDatabase,
    wherefrom the AsyncCollection inherits its API options such as authentication
    token and API endpoint.

    Args:
        database: an AsyncDatabase object, instantiated earlier. This represents
            the database the collection belongs to.
        name: the collection name. This parameter should match an existing
            collection on the database.
        keyspace: this is the keyspace to which the collection belongs.
            If nothing is specified, the database's working keyspace is used.
        api_options: a complete specification of the API Options for this instance.

    Example:
        >>> from docapi import DataAPIClient
        >>> client = DataAPIClient()
        >>> async_database = client.get_async_database(
        ...     "https://my-data-api.example.com",
        ...     token="my-token",
        ... )
        >>> my_async_collection = async_database.get_collection("my_events")

    Note:
        creating an instance of AsyncCollection does not trigger actual creation
        of the collection on the database. The latter should exist beforehand.
    """

    def __init__(
        self,
        *,
        database: AsyncDatabase,
        name: str,
        keyspace: str | None,
        api_options: FullAPIOptions,
    ) -> None:
        self.api_options = api_options
        self._name = name
        _keyspace = keyspace if keyspace is not None else database.keyspace
        self._database = database._copy(
            keyspace=_keyspace, api_options=self.api_options
        )
        self._commander_headers = {
            **{DEFAULT_DATA_API_AUTH_HEADER: self.api_options.token},
            **self.api_options.additional_headers,
        }
        self._api_commander = self._get_api_commander()

    def __repr__(self) -> str:
        _db_desc = f'database.api_endpoint="{self.database.api_endpoint}"'
        return (
            f'{self.__class__.__name__}(name="{self.name}", '
            f'keyspace="{self.keyspace}", {_db_desc}, '
            f"api_options={self.api_options})"
        )

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, AsyncCollection):
            return all(
                [
                    self._name == other._name,
                    self._database == other._database,
                    self.api_options == other.api_options,
                ]
            )
        else:
            return False

    def _get_api_commander(self) -> APICommander:
        """Instantiate a new APICommander based on the properties of this class."""

        base_path_components = [
            comp
            for comp in (
                ncomp.strip("/")
                for ncomp in (
                    self.api_options.api_path,
                    self.api_options.api_version,
                    self.keyspace,
                    self._name,
                )
                if ncomp is not None
            )
            if comp != ""
        ]
        base_path = f"/{'/'.join(base_path_components)}"
        api_commander = APICommander(
            api_endpoint=self._database.api_endpoint,
            path=base_path,
            headers=self._commander_headers,
            callers=self.api_options.callers,
            redacted_header_names=self.api_options.redacted_header_names,
        )
        return api_commander

    async def __aenter__(self: AsyncCollection[DOC]) -> AsyncCollection[DOC]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        if self._api_commander is not None:
            await self._api_commander.__aexit__(
                exc_type=exc_type,
                exc_value=exc_value,
                traceback=traceback,
            )

    async def _converted_request(
        self,
        *,
        payload: dict[str, Any] | None = None,
        raise_api_errors: bool = True,
        timeout_context: _TimeoutContext,
    ) -> dict[str, Any]:
        converted_payload = preprocess_collection_payload(payload)
        raw_response_json = await self._api_commander.async_request(
            payload=converted_payload,
            raise_api_errors=raise_api_errors,
            timeout_context=timeout_context,
        )
        return postprocess_collection_response(raw_response_json)

    def _copy(
        self: AsyncCollection[DOC],
        *,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> AsyncCollection[DOC]:
        return AsyncCollection(
            database=self.database,
            name=self.name,
            keyspace=self.keyspace,
            api_options=self.api_options.with_override(api_options),
        )

    def with_options(
        self: AsyncCollection[DOC],
        *,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> AsyncCollection[DOC]:
        """
        Create a clone of this collection with some changed attributes.

        Args:
            api_options: any additional options to set for the clone, in the form of
                an APIOptions instance (where one can set just the needed attributes).

        Returns:
            a new AsyncCollection instance.
        """

        return self._copy(api_options=api_options)

    def to_sync(
        self: AsyncCollection[DOC],
        *,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> Collection[DOC]:
        """
        Create a Collection from this one. Save for the arguments
        explicitly provided as overrides, everything else is kept identical
        to this collection in the copy (the database is converted into
        a sync object).

        Args:
            api_options: any additional options to set for the result, in the form of
                an APIOptions instance (where one can set just the needed attributes).

        Returns:
            the new copy, a Collection instance.

        Example:
            >>> my_async_coll.to_sync().count_documents({}, upper_bound=100)
            77
        """

        return Collection(
            database=self.database.to_sync(),
            name=self.name,
            keyspace=self.keyspace,
            api_options=self.api_options.with_override(api_options),
        )

    @property
    def database(self) -> AsyncDatabase:
        """An AsyncDatabase object, the database this collection belongs to."""

        return self._database

    @property
    def keyspace(self) -> str:
        """The keyspace this collection is in."""

        return self.database.keyspace

    @property
    def name(self) -> str:
        """The name of this collection."""

        return self._name

    @property
    def full_name(self) -> str:
        """
        The fully-qualified collection name within the database,
        in the form "keyspace.collection_name".
        """

        return f"{self.keyspace}.{self.name}"

    @property
    def namespace(self) -> str:
        """An alias for `full_name`."""

        return self.full_name

    async def insert_one(
        self,
        document: DOC,
        *,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionInsertOneResult:
        """
        Insert a single document in the collection in an atomic operation.
        See `Collection.insert_one` for a description of the parameters.

        Example:
            >>> asyncio.run(my_async_coll.insert_one({"_id": "u1", "age": 50}))
            CollectionInsertOneResult(inserted_id='u1', raw_results=...)
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        io_payload = InsertOne(document).to_command()
        logger.info(f"insertOne on '{self.name}'")
        io_response = await self._converted_request(
            payload=io_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished insertOne on '{self.name}'")
        if (io_response.get("status") or {}).get("insertedIds"):
            inserted_id = io_response["status"]["insertedIds"][0]
            return CollectionInsertOneResult(
                raw_results=[io_response],
                inserted_id=inserted_id,
            )
        else:
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from insert_one API command.",
                raw_response=io_response,
            )

    async def insert_many(
        self,
        documents: Iterable[DOC],
        *,
        ordered: bool = False,
        chunk_size: int | None = None,
        concurrency: int | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionInsertManyResult:
        """
        Insert a list of documents into the collection.
        This is not an atomic operation.

        Unordered insertions run as concurrent asyncio tasks, at most
        `concurrency` of them being in flight at any given time.
        See `Collection.insert_many` for a description of the parameters,
        the returned value and the exceptions raised.

        Example:
            >>> asyncio.run(my_async_coll.insert_many(
            ...     [{"seq": i} for i in range(50)],
            ...     concurrency=5,
            ... ))
            CollectionInsertManyResult(inserted_ids=[... ... ...], raw_results=...)
        """

        _chunk_size, _concurrency = _insert_many_settings(
            ordered, chunk_size, concurrency
        )
        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        _documents = list(documents)
        im_commands = _insert_many_commands(_documents, _chunk_size, ordered)

        async def _chunk_insertor(im_payload: dict[str, Any]) -> dict[str, Any]:
            logger.info(f"insertMany(chunk) on '{self.name}'")
            im_response = await self._converted_request(
                payload=im_payload,
                timeout_context=next_timeout_context(),
            )
            logger.info(f"finished insertMany(chunk) on '{self.name}'")
            return im_response

        logger.info(f"inserting {len(_documents)} documents in '{self.name}'")
        accumulator = _BulkWriteAccumulator(len(im_commands))
        try:
            if ordered:
                await async_run_ordered(im_commands, _chunk_insertor, accumulator)
            else:
                await async_run_unordered(
                    im_commands, _chunk_insertor, _concurrency, accumulator
                )
        except BulkWriteException as bulk_exc:
            raise CollectionInsertManyException(
                inserted_ids=accumulator.inserted_ids(),
                exceptions=bulk_exc.exceptions,
            )
        logger.info(f"finished inserting {len(_documents)} documents in '{self.name}'")
        return CollectionInsertManyResult(
            raw_results=accumulator.result.raw_results,
            inserted_ids=accumulator.inserted_ids(),
        )

    def find(
        self,
        filter: FilterType | None = None,
        *,
        projection: ProjectionType | None = None,
        sort: SortType | None = None,
        skip: int | None = None,
        limit: int | None = None,
        include_similarity: bool | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> AsyncFindCursor[DOC, DOC]:
        """
        Find documents on the collection, matching a certain provided filter.

        This method does not issue any request: it returns an AsyncFindCursor,
        to be consumed with `async for` (or its `to_list`, `for_each` methods),
        which fetches the pages of results as they are needed.
        See `Collection.find` for a description of the parameters.

        Example:
            >>> async def first_seqs(acol):
            ...     cursor = acol.find({}, sort={"seq": SortMode.ASCENDING}, limit=3)
            ...     return [doc["seq"] async for doc in cursor]
            ...
            >>> asyncio.run(first_seqs(my_async_coll))
            [0, 1, 2]
        """

        _request_timeout_ms, _rt_label = _first_valid_timeout(
            (request_timeout_ms, "request_timeout_ms"),
            (timeout_ms, "timeout_ms"),
            (self.api_options.timeout_options.request_timeout_ms, "request_timeout_ms"),
        )
        return (
            AsyncFindCursor(
                collection=self,
                request_timeout_ms=_request_timeout_ms,
                request_timeout_label=_rt_label,
            )
            .filter(filter)
            .project(projection)
            .skip(skip)
            .limit(limit)
            .sort(sort)
            .include_similarity(include_similarity)
        )

    async def find_one(
        self,
        filter: FilterType | None = None,
        *,
        projection: ProjectionType | None = None,
        sort: SortType | None = None,
        include_similarity: bool | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> DOC | None:
        """
        Run a search, returning the first document in the collection that matches
        provided filters, if any is found (otherwise None is returned).
        See `Collection.find_one` for a description of the parameters.
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        fo_payload = _find_one_command(filter, projection, sort, include_similarity)
        fo_response = await self._converted_request(
            payload=fo_payload,
            timeout_context=timeout_context,
        )
        if "document" not in (fo_response.get("data") or {}):
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from findOne API command.",
                raw_response=fo_response,
            )
        return fo_response["data"]["document"]  # type: ignore[no-any-return]

    async def distinct(
        self,
        key: str,
        *,
        filter: FilterType | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> list[Any]:
        """
        Return a list of the unique values of `key` across the documents
        in the collection that match the provided filter.
        See `Collection.distinct` for a description of the parameters
        and of the way `key` is interpreted.

        Example:
            >>> asyncio.run(my_async_coll.distinct("food.1"))
            ['orange']

        Note:
            This is a client-side operation, which browses all matching
            documents through a `find` cursor.
        """

        _request_timeout_ms, _rt_label = _first_valid_timeout(
            (request_timeout_ms, "request_timeout_ms"),
            (self.api_options.timeout_options.request_timeout_ms, "request_timeout_ms"),
        )
        _general_method_timeout_ms, _ = _first_valid_timeout(
            (general_method_timeout_ms, "general_method_timeout_ms"),
            (timeout_ms, "timeout_ms"),
            (
                self.api_options.timeout_options.general_method_timeout_ms,
                "general_method_timeout_ms",
            ),
        )
        # preparing cursor:
        _extractor = _create_document_key_extractor(key)
        _key = _reduce_distinct_key_to_safe(key)
        f_cursor: AsyncFindCursor[dict[str, Any], dict[str, Any]] = AsyncFindCursor(
            collection=self,  # type: ignore[arg-type]
            request_timeout_ms=_request_timeout_ms,
            request_timeout_label=_rt_label,
            filter=filter,
            projection=_distinct_projection(_key),
        )
        # consuming it:
        _item_keys: set[tuple[str, Any]] = set()
        distinct_items: list[Any] = []

        def _collect(document: dict[str, Any]) -> None:
            for item in _extractor(document):
                _item_key = _distinct_value_key(item)
                if _item_key not in _item_keys:
                    _item_keys.add(_item_key)
                    distinct_items.append(item)

        logger.info(f"running distinct() on '{self.name}'")
        await f_cursor.for_each(
            _collect, general_method_timeout_ms=_general_method_timeout_ms or None
        )
        logger.info(f"finished running distinct() on '{self.name}'")
        return distinct_items

    async def count_documents(
        self,
        filter: FilterType,
        *,
        upper_bound: int,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> int:
        """
        Count the documents in the collection matching the specified filter.
        See `Collection.count_documents` for a description of the parameters.

        Example:
            >>> asyncio.run(my_async_coll.count_documents({}, upper_bound=100))
            20
        """

        _check_upper_bound(upper_bound)
        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        cd_payload = {"countDocuments": {"filter": filter}}
        logger.info(f"countDocuments on '{self.name}'")
        cd_response = await self._converted_request(
            payload=cd_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished countDocuments on '{self.name}'")
        return _count_from_response(cd_response, upper_bound)

    async def replace_one(
        self,
        filter: FilterType,
        replacement: DOC,
        *,
        sort: SortType | None = None,
        upsert: bool = False,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionUpdateResult:
        """
        Replace a single document on the collection with a new one,
        optionally inserting a new one if no match is found.
        See `Collection.replace_one` for a description of the parameters.
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        fo_payload = ReplaceOne(
            filter, replacement, sort=sort, upsert=upsert
        ).to_command()
        logger.info(f"findOneAndReplace on '{self.name}'")
        fo_response = await self._converted_request(
            payload=fo_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished findOneAndReplace on '{self.name}'")
        if "document" in (fo_response.get("data") or {}):
            fo_status = fo_response.get("status") or {}
            _update_info = _prepare_update_info([fo_status])
            return CollectionUpdateResult(
                raw_results=[fo_response],
                update_info=_update_info,
            )
        else:
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from find_one_and_replace API command.",
                raw_response=fo_response,
            )

    async def update_one(
        self,
        filter: FilterType,
        update: dict[str, Any],
        *,
        sort: SortType | None = None,
        upsert: bool = False,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionUpdateResult:
        """
        Update a single document on the collection as requested,
        optionally inserting a new one if no match is found.
        See `Collection.update_one` for a description of the parameters.
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        uo_payload = UpdateOne(filter, update, sort=sort, upsert=upsert).to_command()
        logger.info(f"updateOne on '{self.name}'")
        uo_response = await self._converted_request(
            payload=uo_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished updateOne on '{self.name}'")
        if "status" in uo_response:
            uo_status = uo_response["status"]
            _update_info = _prepare_update_info([uo_status])
            return CollectionUpdateResult(
                raw_results=[uo_response],
                update_info=_update_info,
            )
        else:
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from updateOne API command.",
                raw_response=uo_response,
            )

    async def update_many(
        self,
        filter: FilterType,
        update: dict[str, Any],
        *,
        upsert: bool = False,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionUpdateResult:
        """
        Apply an update operation to all documents matching a condition,
        optionally inserting one document in absence of matches.
        See `Collection.update_many` for a description of the parameters
        and of the exceptions raised.
        """

        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        um_operation = UpdateMany(filter, update, upsert=upsert)
        next_page_state: str | None = None
        um_responses: list[dict[str, Any]] = []
        um_statuses: list[dict[str, Any]] = []
        must_proceed = True
        logger.info(f"starting update_many on '{self.name}'")
        while must_proceed:
            this_um_payload = _update_many_command(um_operation, next_page_state)
            logger.info(f"updateMany on '{self.name}'")
            this_um_response = await self._converted_request(
                payload=this_um_payload,
                raise_api_errors=False,
                timeout_context=next_timeout_context(),
            )
            logger.info(f"finished updateMany on '{self.name}'")
            this_um_status = this_um_response.get("status") or {}
            # if errors, quit early
            if this_um_response.get("errors", []):
                partial_result = CollectionUpdateResult(
                    raw_results=um_responses,
                    update_info=_prepare_update_info(um_statuses + [this_um_status]),
                )
                cause_exception = DataAPIResponseException.from_response(
                    command=this_um_payload,
                    raw_response=this_um_response,
                )
                raise CollectionUpdateManyException(
                    partial_result=partial_result,
                    cause=cause_exception,
                )
            else:
                if "status" not in this_um_response:
                    raise UnexpectedDataAPIResponseException(
                        text="Faulty response from update_many API command.",
                        raw_response=this_um_response,
                    )
                um_responses.append(this_um_response)
                um_statuses.append(this_um_status)
                next_page_state = this_um_status.get("nextPageState")
                must_proceed = next_page_state is not None

        update_info = _prepare_update_info(um_statuses)
        logger.info(f"finished update_many on '{self.name}'")
        return CollectionUpdateResult(
            raw_results=um_responses,
            update_info=update_info,
        )

    async def delete_one(
        self,
        filter: FilterType,
        *,
        sort: SortType | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionDeleteResult:
        """
        Delete one document matching a provided filter.
        See `Collection.delete_one` for a description of the parameters.
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        do_payload = DeleteOne(filter, sort=sort).to_command()
        logger.info(f"deleteOne on '{self.name}'")
        do_response = await self._converted_request(
            payload=do_payload,
            timeout_context=timeout_context,
        )
        logger.info(f"finished deleteOne on '{self.name}'")
        if "deletedCount" in (do_response.get("status") or {}):
            deleted_count = do_response["status"]["deletedCount"]
            return CollectionDeleteResult(
                deleted_count=deleted_count,
                raw_results=[do_response],
            )
        else:
            raise UnexpectedDataAPIResponseException(
                text="Faulty response from delete_one API command.",
                raw_response=do_response,
            )

    async def delete_many(
        self,
        filter: FilterType,
        *,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionDeleteResult:
        """
        Delete all documents matching a provided (non-empty) filter.
        See `Collection.delete_many` for a description of the parameters
        and of the exceptions raised.
        """

        _check_delete_many_filter(filter)
        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        dm_responses: list[dict[str, Any]] = []
        deleted_count = 0
        must_proceed = True
        this_dm_payload = DeleteMany(filter).to_command()
        logger.info(f"starting delete_many on '{self.name}'")
        while must_proceed:
            logger.info(f"deleteMany on '{self.name}'")
            this_dm_response = await self._converted_request(
                payload=this_dm_payload,
                raise_api_errors=False,
                timeout_context=next_timeout_context(),
            )
            logger.info(f"finished deleteMany on '{self.name}'")
            # if errors, quit early
            if this_dm_response.get("errors", []):
                partial_dc = (this_dm_response.get("status") or {}).get(
                    "deletedCount"
                ) or 0
                partial_result = CollectionDeleteResult(
                    deleted_count=deleted_count + partial_dc,
                    raw_results=dm_responses,
                )
                cause_exception = DataAPIResponseException.from_response(
                    command=this_dm_payload,
                    raw_response=this_dm_response,
                )
                raise CollectionDeleteManyException(
                    partial_result=partial_result,
                    cause=cause_exception,
                )
            else:
                this_dc = (this_dm_response.get("status") or {}).get("deletedCount")
                if this_dc is None:
                    raise UnexpectedDataAPIResponseException(
                        text="Faulty response from delete_many API command.",
                        raw_response=this_dm_response,
                    )
                dm_responses.append(this_dm_response)
                deleted_count += this_dc
                must_proceed = this_dm_response["status"].get("moreData", False)

        logger.info(f"finished delete_many on '{self.name}'")
        return CollectionDeleteResult(
            deleted_count=deleted_count,
            raw_results=dm_responses,
        )

    async def delete_all(
        self,
        *,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> CollectionDeleteResult:
        """
        Delete all documents in the collection. The resulting `deleted_count`
        is -1 if the Data API does not report how many documents were deleted.
        See `Collection.delete_all` for a description of the parameters.

        Note:
            Use with caution.
        """

        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        da_responses: list[dict[str, Any]] = []
        deleted_count = 0
        must_proceed = True
        da_payload = DeleteMany({}).to_command()
        logger.info(f"starting delete_all on '{self.name}'")
        while must_proceed:
            da_response = await self._converted_request(
                payload=da_payload,
                timeout_context=next_timeout_context(),
            )
            da_responses.append(da_response)
            da_status = da_response.get("status") or {}
            this_dc = da_status.get("deletedCount")
            if this_dc is None or this_dc < 0 or deleted_count < 0:
                deleted_count = -1
            else:
                deleted_count += this_dc
            must_proceed = da_status.get("moreData", False)
        logger.info(f"finished delete_all on '{self.name}'")
        return CollectionDeleteResult(
            deleted_count=deleted_count,
            raw_results=da_responses,
        )

    async def bulk_write(
        self,
        operations: Iterable[BaseOperation],
        *,
        ordered: bool = False,
        concurrency: int | None = None,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> BulkWriteResult:
        """
        Execute an arbitrary amount of operations such as inserts, updates, deletes
        either sequentially or concurrently (as asyncio tasks).
        See `Collection.bulk_write` for a description of the parameters,
        the returned value and the exceptions raised.

        Example:
            >>> from docapi.operations import InsertOne, DeleteMany
            >>> asyncio.run(my_async_coll.bulk_write(
            ...     [InsertOne({"a": 1}), DeleteMany({"a": 1})],
            ...     ordered=True,
            ... ))
            BulkWriteResult(inserted_count=1, ..., deleted_count=1, ...)
        """

        _concurrency = _bulk_write_concurrency(concurrency)
        next_timeout_context = _multicall_timeouts(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        bw_commands = [operation.to_command() for operation in operations]
        if not bw_commands:
            return BulkWriteResult.zero()

        async def _executor(bw_payload: dict[str, Any]) -> dict[str, Any]:
            return await self._converted_request(
                payload=bw_payload,
                timeout_context=next_timeout_context(),
            )

        logger.info(f"starting a bulk write on '{self.name}'")
        if ordered:
            bulk_write_result = await async_run_ordered(bw_commands, _executor)
        else:
            bulk_write_result = await async_run_unordered(
                bw_commands, _executor, _concurrency
            )
        logger.info(f"finished a bulk write on '{self.name}'")
        return bulk_write_result

    async def command(
        self,
        body: dict[str, Any] | None,
        *,
        raise_api_errors: bool = True,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        """
        Send a POST request to the Data API for this collection with
        an arbitrary, caller-provided payload.
        See `Collection.command` for a description of the parameters.
        """

        timeout_context = _single_request_timeout(
            self.api_options, general_method_timeout_ms, request_timeout_ms, timeout_ms
        )
        _cmd_desc: str
        if body:
            _cmd_desc = ",".join(sorted(body.keys()))
        else:
            _cmd_desc = "(none)"
        logger.info(f"command={_cmd_desc} on '{self.name}'")
        command_result = await self._api_commander.async_request(
            payload=body,
            raise_api_errors=raise_api_errors,
            timeout_context=timeout_context,
        )
        logger.info(f"finished command={_cmd_desc} on '{self.name}'")
        return command_result
