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

from inspect import iscoroutinefunction
from types import TracebackType
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Generic,
    Iterator,
    cast,
)

from docapi.constants import FilterType, ProjectionType, SortType
from docapi.data.cursors.cursor import (
    TNEW,
    TRAW,
    AbstractCursor,
    CursorState,
    T,
)
from docapi.data.cursors.query_engine import _CollectionFindQueryEngine
from docapi.utils.unset import UnsetType

if TYPE_CHECKING:
    from docapi.data.collection import AsyncCollection, Collection


class FindCursor(Generic[TRAW, T], AbstractCursor[TRAW, T]):
    """
    A synchronous cursor over documents, as returned by a `find` invocation on
    a Collection. A cursor can be iterated over, materialized into a list,
    and queried/manipulated in various ways.

    Pages of results are fetched lazily from the Data API, only when the local
    buffer runs empty and more documents are needed.

    A cursor has two type parameters: TRAW and T. The first is the type of the "raw"
    documents as they are obtained from the Data API, the second is the type of the
    items after the optional mapping function (see the `.map()` method). If there is
    no mapping, TRAW = T. In general, consuming a cursor returns items of type T,
    except for `read_buffered_documents`, which draws directly from the buffer
    and always returns items of type TRAW.

    Example:
        >>> cursor = collection.find({}, projection={"seq": True, "_id": False})
        >>> for document in cursor.limit(3):
        ...     print(document)
        ...
        {'seq': 1}
        {'seq': 4}
        {'seq': 15}
    """

    _collection: Collection[TRAW]
    _query_engine: _CollectionFindQueryEngine[TRAW] | None

    def __init__(
        self,
        *,
        collection: Collection[TRAW],
        request_timeout_ms: int | None,
        request_timeout_label: str | None = None,
        filter: FilterType | None = None,
        projection: ProjectionType | None = None,
        sort: SortType | None = None,
        limit: int | None = None,
        skip: int | None = None,
        include_similarity: bool | None = None,
        mapper: Callable[[TRAW], T] | None = None,
    ) -> None:
        self._collection = collection
        self._query_engine = None
        AbstractCursor.__init__(
            self,
            request_timeout_ms=request_timeout_ms,
            request_timeout_label=request_timeout_label,
            filter=filter,
            projection=projection,
            sort=sort,
            limit=limit,
            skip=skip,
            include_similarity=include_similarity,
            mapper=mapper,
        )

    def _try_ensure_fill_buffer(self) -> None:
        """
        If the buffer is empty, fetch pages until there is something in it
        or there are no more pages. Any error while fetching closes the cursor.
        """

        while self._needs_fetch():
            if self._state == CursorState.UNINITIALIZED:
                self._query_engine = _CollectionFindQueryEngine(
                    collection=self._collection,
                    async_collection=None,
                    filter=self._filter,
                    projection=self._projection,
                    sort=self._sort,
                    limit=self._limit,
                    skip=self._skip,
                    include_similarity=self._include_similarity,
                )
            query_engine = cast(_CollectionFindQueryEngine[TRAW], self._query_engine)
            try:
                new_buffer, next_page_state, resp_status = query_engine._fetch_page(
                    page_state=self._next_page_state,
                    timeout_context=self._remaining_timeout(),
                )
            except Exception:
                self.close()
                raise
            self._ingest_page(new_buffer, next_page_state, resp_status)

    def _next_item(self) -> T | UnsetType:
        self._try_ensure_fill_buffer()
        return self._pop_mapped()

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}("{self.namespace}", '
            f"{self._state.value}, "
            f"consumed so far: {self.consumed})"
        )

    def __iter__(self) -> Iterator[T]:
        """
        Iterate over the documents of the cursor. Iteration is single-pass:
        exhausting the cursor, or leaving the loop early, closes it.
        """
        try:
            while self._state != CursorState.CLOSED:
                item = self._next_item()
                if isinstance(item, UnsetType):
                    return
                yield item
        finally:
            self.close()

    def __enter__(self) -> FindCursor[TRAW, T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        self.close()

    @property
    def data_source(self) -> Collection[TRAW]:
        """
        The Collection object that originated this cursor through a `find` operation.

        Returns:
            a Collection instance.
        """

        return self._collection

    @property
    def namespace(self) -> str:
        """The "keyspace.collection" this cursor reads from."""

        return f"{self._collection.keyspace}.{self._collection.name}"

    def clone(self) -> FindCursor[TRAW, T]:
        """
        Create a copy of this cursor with the same settings (timeouts,
        filter, projection, mapping, etc), in the pristine UNINITIALIZED state.
        The copy has its own copies of the filter and the other settings,
        and never shares buffer or state with this cursor.

        Returns:
            a new FindCursor, similar to this one but rewound to its initial state.

        Example:
            >>> cursor = collection.find(
            ...     {},
            ...     projection={"seq": True, "_id": False},
            ...     limit=2,
            ... ).map(lambda doc: doc["seq"])
            >>> cursor.to_list()
            [1, 4]
            >>> cursor.clone().to_list()
            [1, 4]
        """

        return FindCursor(
            collection=self._collection,
            request_timeout_ms=self._request_timeout_ms,
            request_timeout_label=self._request_timeout_label,
            filter=self._filter,
            projection=self._projection,
            sort=self._sort,
            limit=self._limit,
            skip=self._skip,
            include_similarity=self._include_similarity,
            mapper=self._mapper,
        )

    def map(self, mapper: Callable[[T], TNEW]) -> FindCursor[TRAW, TNEW]:
        """
        Set a mapping function to transform the documents returned by the cursor.
        Calling this method on a cursor with a mapping already set results in
        the mapping functions being composed.

        Allowed only while the cursor is UNINITIALIZED.

        Args:
            mapper: a function transforming the objects returned by the cursor
                into something else (i.e. a function T => TNEW).

        Returns:
            this same cursor, modified in place.

        Example:
            >>> collection.find(
            ...     {}, projection={"seq": True, "_id": False}, limit=2
            ... ).map(lambda doc: doc["seq"]).map(lambda num: "x" * num).to_list()
            ['x', 'xxxx']
        """

        return cast(FindCursor[TRAW, TNEW], AbstractCursor.map(self, mapper))

    def next(self) -> T | None:
        """
        Consume and return the next document, fetching a new page if necessary.

        Returns:
            the next document (after the mapping, if any) or None if the
                cursor is exhausted, in which case it gets closed.
        """

        if self._state == CursorState.CLOSED:
            return None
        item = self._next_item()
        if isinstance(item, UnsetType):
            return None
        return item

    def has_next(self) -> bool:
        """
        Whether the cursor actually has more documents to return.

        `has_next` can be called on any cursor, but on a CLOSED cursor
        will always return False.

        This method fetches a new page only if the buffer is empty (and there
        are more pages), and never more than is needed to answer the question.

        Returns:
            a boolean value of True if there is at least one further item
                available to consume; False otherwise.
        """

        if self._state == CursorState.CLOSED:
            return False
        self._try_ensure_fill_buffer()
        return len(self._buffer) > 0

    def for_each(
        self,
        function: Callable[[T], bool | None],
        *,
        general_method_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        """
        Consume the remaining documents in the cursor, invoking a provided callback
        function on each of them.

        The callback function can return any value. The return value is generally
        discarded, with the following exception: if the function returns the boolean
        `False`, it is taken to signify that the method should quit early. In that
        case the cursor is closed, keeping whatever is left in its buffer.
        Otherwise the cursor is closed once exhausted.

        Args:
            function: a callback function whose only parameter is of the type returned
                by the cursor. If the callback returns `False`, the `for_each`
                invocation stops early.
            general_method_timeout_ms: a timeout, in milliseconds, for the whole
                duration of this method. If not provided, there is no such timeout.
                Note that the per-request timeout set on the cursor still applies.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Example:
            >>> cursor = collection.find({}, projection={"seq": True, "_id": False})
            >>> def checker(doc):
            ...     print(f"-> {doc['seq']}")
            ...     return doc["seq"] != 4
            ...
            >>> cursor.for_each(checker)
            -> 1
            -> 4
            >>> cursor.state
            <CursorState.CLOSED: 'closed'>
        """

        saved_timeouts = self._enter_call_timeouts(
            general_method_timeout_ms, timeout_ms
        )
        try:
            while self._state != CursorState.CLOSED:
                item = self._next_item()
                if isinstance(item, UnsetType):
                    break
                if function(item) is False:
                    self.close()
                    break
        finally:
            self._exit_call_timeouts(saved_timeouts)

    def to_list(
        self,
        *,
        general_method_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> list[T]:
        """
        Materialize all documents that remain to be consumed from a cursor into
        a list, then close the cursor.

        If the cursor is UNINITIALIZED, the result will be the whole set of documents
        returned by the `find` operation; otherwise, the documents already consumed
        by the cursor will not be in the resulting list. A CLOSED cursor
        returns an empty list: in particular, calling `to_list` twice returns an
        empty list the second time, unless the cursor is rewound in between.

        Args:
            general_method_timeout_ms: a timeout, in milliseconds, for the whole
                duration of this method. If not provided, there is no such timeout.
                Note that the per-request timeout set on the cursor still applies.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a list of documents (or other values depending on the mapping
                function, if one is set).

        Example:
            >>> cursor = collection.find(
            ...     {}, projection={"seq": True, "_id": False}, limit=3
            ... )
            >>> cursor.to_list()
            [{'seq': 1}, {'seq': 4}, {'seq': 15}]
            >>> cursor.to_list()
            []
        """

        documents: list[T] = []
        saved_timeouts = self._enter_call_timeouts(
            general_method_timeout_ms, timeout_ms
        )
        try:
            while self._state != CursorState.CLOSED:
                item = self._next_item()
                if isinstance(item, UnsetType):
                    break
                documents.append(item)
        finally:
            self._exit_call_timeouts(saved_timeouts)
        return documents


class AsyncFindCursor(Generic[TRAW, T], AbstractCursor[TRAW, T]):
    """
    An asynchronous cursor over documents, as returned by a `find` invocation on
    an AsyncCollection. A cursor can be iterated over (with `async for`),
    materialized into a list, and queried/manipulated in various ways.

    Pages of results are fetched lazily from the Data API, only when the local
    buffer runs empty and more documents are needed.

    A cursor has two type parameters: TRAW and T. The first is the type of the "raw"
    documents as they are obtained from the Data API, the second is the type of the
    items after the optional mapping function (see the `.map()` method). If there is
    no mapping, TRAW = T.

    Example:
        >>> cursor = async_collection.find({}, projection={"seq": True, "_id": False})
        >>> async for document in cursor.limit(3):
        ...     print(document)
        ...
        {'seq': 1}
        {'seq': 4}
        {'seq': 15}
    """

    _collection: AsyncCollection[TRAW]
    _query_engine: _CollectionFindQueryEngine[TRAW] | None

    def __init__(
        self,
        *,
        collection: AsyncCollection[TRAW],
        request_timeout_ms: int | None,
        request_timeout_label: str | None = None,
        filter: FilterType | None = None,
        projection: ProjectionType | None = None,
        sort: SortType | None = None,
        limit: int | None = None,
        skip: int | None = None,
        include_similarity: bool | None = None,
        mapper: Callable[[TRAW], T] | None = None,
    ) -> None:
        self._collection = collection
        self._query_engine = None
        AbstractCursor.__init__(
            self,
            request_timeout_ms=request_timeout_ms,
            request_timeout_label=request_timeout_label,
            filter=filter,
            projection=projection,
            sort=sort,
            limit=limit,
            skip=skip,
            include_similarity=include_similarity,
            mapper=mapper,
        )

    async def _try_ensure_fill_buffer(self) -> None:
        """
        If the buffer is empty, fetch pages until there is something in it
        or there are no more pages. Any error while fetching closes the cursor.
        """

        while self._needs_fetch():
            if self._state == CursorState.UNINITIALIZED:
                self._query_engine = _CollectionFindQueryEngine(
                    collection=None,
                    async_collection=self._collection,
                    filter=self._filter,
                    projection=self._projection,
                    sort=self._sort,
                    limit=self._limit,
                    skip=self._skip,
                    include_similarity=self._include_similarity,
                )
            query_engine = cast(_CollectionFindQueryEngine[TRAW], self._query_engine)
            try:
                (
                    new_buffer,
                    next_page_state,
                    resp_status,
                ) = await query_engine._async_fetch_page(
                    page_state=self._next_page_state,
                    timeout_context=self._remaining_timeout(),
                )
            except Exception:
                self.close()
                raise
            self._ingest_page(new_buffer, next_page_state, resp_status)

    async def _next_item(self) -> T | UnsetType:
        await self._try_ensure_fill_buffer()
        return self._pop_mapped()

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}("{self.namespace}", '
            f"{self._state.value}, "
            f"consumed so far: {self.consumed})"
        )

    def __aiter__(self) -> _AsyncFindCursorIterator[T]:
        """
        Iterate over the documents of the cursor. Iteration is single-pass:
        exhausting the cursor, or leaving the `async for` loop early, closes it.

        To have the cursor closed however the consuming code exits, including
        on errors, use the cursor as an async context manager:

            >>> async with async_collection.find({}) as cursor:
            ...     async for document in cursor:
            ...         if document["seq"] > 10:
            ...             break
        """

        return _AsyncFindCursorIterator(self)

    async def __aenter__(self) -> AsyncFindCursor[TRAW, T]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the cursor. The coroutine counterpart of `close`."""

        self.close()

    @property
    def data_source(self) -> AsyncCollection[TRAW]:
        """
        The AsyncCollection object that originated this cursor through
        a `find` operation.

        Returns:
            an AsyncCollection instance.
        """

        return self._collection

    @property
    def namespace(self) -> str:
        """The "keyspace.collection" this cursor reads from."""

        return f"{self._collection.keyspace}.{self._collection.name}"

    def clone(self) -> AsyncFindCursor[TRAW, T]:
        """
        Create a copy of this cursor with the same settings (timeouts,
        filter, projection, mapping, etc), in the pristine UNINITIALIZED state.
        The copy has its own copies of the filter and the other settings,
        and never shares buffer or state with this cursor.

        Returns:
            a new AsyncFindCursor, similar to this one but rewound to
                its initial state.
        """

        return AsyncFindCursor(
            collection=self._collection,
            request_timeout_ms=self._request_timeout_ms,
            request_timeout_label=self._request_timeout_label,
            filter=self._filter,
            projection=self._projection,
            sort=self._sort,
            limit=self._limit,
            skip=self._skip,
            include_similarity=self._include_similarity,
            mapper=self._mapper,
        )

    def map(self, mapper: Callable[[T], TNEW]) -> AsyncFindCursor[TRAW, TNEW]:
        """
        Set a mapping function to transform the documents returned by the cursor.
        Calling this method on a cursor with a mapping already set results in
        the mapping functions being composed.

        Allowed only while the cursor is UNINITIALIZED.

        Args:
            mapper: a (synchronous) function transforming the objects returned
                by the cursor into something else (i.e. a function T => TNEW).

        Returns:
            this same cursor, modified in place.
        """

        return cast(AsyncFindCursor[TRAW, TNEW], AbstractCursor.map(self, mapper))

    async def next(self) -> T | None:
        """
        Consume and return the next document, fetching a new page if necessary.

        Returns:
            the next document (after the mapping, if any) or None if the
                cursor is exhausted, in which case it gets closed.
        """

        if self._state == CursorState.CLOSED:
            return None
        item = await self._next_item()
        if isinstance(item, UnsetType):
            return None
        return item

    async def has_next(self) -> bool:
        """
        Whether the cursor actually has more documents to return.

        `has_next` can be called on any cursor, but on a CLOSED cursor
        will always return False.

        This method fetches a new page only if the buffer is empty (and there
        are more pages), and never more than is needed to answer the question.

        Returns:
            a boolean value of True if there is at least one further item
                available to consume; False otherwise.
        """

        if self._state == CursorState.CLOSED:
            return False
        await self._try_ensure_fill_buffer()
        return len(self._buffer) > 0

    async def for_each(
        self,
        function: Callable[[T], Any] | Callable[[T], Awaitable[Any]],
        *,
        general_method_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        """
        Consume the remaining documents in the cursor, invoking a provided callback
        function -- or coroutine -- on each of them.

        The callback function can return any value. The return value is generally
        discarded, with the following exception: if the function returns the boolean
        `False`, it is taken to signify that the method should quit early. In that
        case the cursor is closed, keeping whatever is left in its buffer.
        Otherwise the cursor is closed once exhausted.

        Args:
            function: a callback function, or a coroutine, whose only parameter is
                of the type returned by the cursor. If the callback returns (or the
                coroutine evaluates to) `False`, the `for_each` invocation
                stops early.
            general_method_timeout_ms: a timeout, in milliseconds, for the whole
                duration of this method. If not provided, there is no such timeout.
                Note that the per-request timeout set on the cursor still applies.
            timeout_ms: an alias for `general_method_timeout_ms`.
        """

        is_coro = iscoroutinefunction(function)
        saved_timeouts = self._enter_call_timeouts(
            general_method_timeout_ms, timeout_ms
        )
        try:
            while self._state != CursorState.CLOSED:
                item = await self._next_item()
                if isinstance(item, UnsetType):
                    break
                if is_coro:
                    res = await cast(Callable[[T], Awaitable[Any]], function)(item)
                else:
                    res = function(item)
                if res is False:
                    self.close()
                    break
        finally:
            self._exit_call_timeouts(saved_timeouts)

    async def to_list(
        self,
        *,
        general_method_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> list[T]:
        """
        Materialize all documents that remain to be consumed from a cursor into
        a list, then close the cursor.

        If the cursor is UNINITIALIZED, the result will be the whole set of documents
        returned by the `find` operation; otherwise, the documents already consumed
        by the cursor will not be in the resulting list. A CLOSED cursor
        returns an empty list: in particular, calling `to_list` twice returns an
        empty list the second time, unless the cursor is rewound in between.

        Args:
            general_method_timeout_ms: a timeout, in milliseconds, for the whole
                duration of this method. If not provided, there is no such timeout.
                Note that the per-request timeout set on the cursor still applies.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a list of documents (or other values depending on the mapping
                function, if one is set).
        """

        documents: list[T] = []
        saved_timeouts = self._enter_call_timeouts(
            general_method_timeout_ms, timeout_ms
        )
        try:
            while self._state != CursorState.CLOSED:
                item = await self._next_item()
                if isinstance(item, UnsetType):
                    break
                documents.append(item)
        finally:
            self._exit_call_timeouts(saved_timeouts)
        return documents


class _AsyncFindCursorIterator(Generic[T]):
    """
    The iterator driving `async for` over an AsyncFindCursor.

    Once it has started, letting go of the iterator closes the cursor: this is
    what happens right away when the loop is left with `break`, mirroring what
    the generator-based sync iteration does.
    """

    def __init__(self, cursor: AsyncFindCursor[Any, T]) -> None:
        self._cursor = cursor
        self._started = False

    def __aiter__(self) -> _AsyncFindCursorIterator[T]:
        return self

    async def __anext__(self) -> T:
        self._started = True
        if self._cursor.closed:
            raise StopAsyncIteration
        item = await self._cursor._next_item()
        if isinstance(item, UnsetType):
            self._cursor.close()
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        self._cursor.close()

    def __del__(self) -> None:
        if self._started:
            self._cursor.close()
