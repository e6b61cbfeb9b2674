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
from abc import ABC
from copy import deepcopy
from enum import Enum
from typing import Any, Callable, Generic, TypeVar, cast

from docapi.constants import FilterType, ProjectionType, SortType
from docapi.exceptions import (
    CursorException,
    MultiCallTimeoutManager,
    _TimeoutContext,
)
from docapi.utils.unset import _UNSET, UnsetType

# A cursor reads TRAW from DB and maps them to T if any mapping.
# A cursor on which .map is called maps to TNEW from then on.
TRAW = TypeVar("TRAW")
T = TypeVar("T")
TNEW = TypeVar("TNEW")
CURSOR = TypeVar("CURSOR", bound="AbstractCursor[Any, Any]")


logger = logging.getLogger(__name__)


def _revise_timeouts_for_cursor_call(
    *,
    new_general_method_timeout_ms: int | None,
    new_timeout_ms: int | None,
    old_request_timeout_ms: int | None,
) -> tuple[int | None, int | None]:
    """
    Work out the timeouts a cursor must obey for the duration of a
    to_list/for_each call.

    The cursor itself only has a per-request timeout, while the method call may
    specify an overall timeout (and/or its alias, timeout_ms). The result is the
        (request_timeout_ms, overall_timeout_ms)
    pair, where the per-request part is capped by the overall one, if any.
    """
    _general_method_timeout_ms = (
        new_timeout_ms if new_timeout_ms is not None else new_general_method_timeout_ms
    )
    _new_request_timeout_ms: int | None
    if _general_method_timeout_ms is not None:
        if old_request_timeout_ms is not None:
            _new_request_timeout_ms = min(
                _general_method_timeout_ms,
                old_request_timeout_ms,
            )
        else:
            _new_request_timeout_ms = _general_method_timeout_ms
    else:
        _new_request_timeout_ms = old_request_timeout_ms
    return (_new_request_timeout_ms, _general_method_timeout_ms)


class CursorState(Enum):
    """
    This enum expresses the possible states for a cursor.

    Values:
        UNINITIALIZED: no request issued yet. Settings can still be changed.
        INITIALIZED: at least one page was fetched. Settings are frozen.
        CLOSED: exhausted or stopped. Won't return more documents.
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CLOSED = "closed"


class AbstractCursor(ABC, Generic[TRAW, T]):
    """
    A cursor obtained from the invocation of a find-type method over a collection.
    This is the main interface to scroll through the resulting documents.

    This class is not meant to be directly instantiated by the user, rather it
    is a superclass capturing the mechanisms shared by the sync and async cursors:
    the query settings, the state machine and the local buffer.

    Cursors provide a seamless interface to the caller code, allowing iteration
    over results while chunks of new data (pages) are exchanged with the API
    as needed. For this reason, cursors internally manage a local buffer that is
    progressively emptied and re-filled with a new page in a manner hidden from the
    user -- except, some cursor methods allow to peek into this buffer should it
    be necessary.

    The query settings (filter, sort, projection, limit, skip, include_similarity)
    and the mapping can be changed, in place, only as long as the cursor is
    UNINITIALIZED. Each setter returns the cursor itself so that calls can be
    chained.

    Cursors are not safe for concurrent consumption: to traverse the same query
    from several threads or tasks, use `clone()`.
    """

    _state: CursorState
    _buffer: list[TRAW]
    _pages_retrieved: int
    _consumed: int
    _next_page_state: str | None
    _last_response_status: dict[str, Any] | None
    _filter: FilterType | None
    _projection: ProjectionType | None
    _sort: SortType | None
    _limit: int | None
    _skip: int | None
    _include_similarity: bool | None
    _mapper: Callable[[TRAW], T] | None
    _request_timeout_ms: int | None
    _request_timeout_label: str | None
    _timeout_manager: MultiCallTimeoutManager

    def __init__(
        self,
        *,
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
        self._filter = deepcopy(filter)
        self._projection = deepcopy(projection)
        self._sort = deepcopy(sort)
        self._limit = limit
        self._skip = skip
        self._include_similarity = include_similarity
        self._mapper = mapper
        self._request_timeout_ms = request_timeout_ms
        self._request_timeout_label = request_timeout_label
        self._timeout_manager = MultiCallTimeoutManager(overall_timeout_ms=None)
        self.rewind()

    def _ensure_uninitialized(self, setting_name: str) -> None:
        if self._state != CursorState.UNINITIALIZED:
            raise CursorException(
                text=f"Cannot set {setting_name}: cursor is already initialized.",
                cursor_state=self._state.value,
            )

    def _remaining_timeout(self) -> _TimeoutContext:
        return self._timeout_manager.remaining_timeout(
            cap_time_ms=self._request_timeout_ms,
            cap_timeout_label=self._request_timeout_label,
        )

    def _ingest_page(
        self,
        new_buffer: list[TRAW],
        next_page_state: str | None,
        resp_status: dict[str, Any] | None,
    ) -> None:
        self._state = CursorState.INITIALIZED
        self._pages_retrieved += 1
        self._last_response_status = resp_status
        self._next_page_state = next_page_state
        if self._limit:
            allowance = max(self._limit - self._consumed, 0)
            if len(new_buffer) >= allowance:
                # reaching the limit is terminal: no further pages requested
                new_buffer = new_buffer[:allowance]
                self._next_page_state = None
        self._buffer = new_buffer

    def _needs_fetch(self) -> bool:
        if self._state == CursorState.CLOSED or self._buffer:
            return False
        return (
            self._state == CursorState.UNINITIALIZED
            or self._next_page_state is not None
        )

    def _pop_mapped(self) -> T | UnsetType:
        """
        Consume one document from the buffer, if any, applying the mapping.
        An empty buffer at this point means exhaustion: the cursor is closed.
        """
        if not self._buffer:
            self.close()
            return _UNSET
        traw0 = self._buffer.pop(0)
        self._consumed += 1
        if self._mapper is None:
            return cast(T, traw0)
        try:
            return self._mapper(traw0)
        except Exception:
            logger.debug("cursor mapping function raised an exception, closing")
            self.close()
            raise

    @property
    def state(self) -> CursorState:
        """
        The current state of this cursor.

        Returns:
            a value in `docapi.cursors.CursorState`.
        """

        return self._state

    @property
    def closed(self) -> bool:
        """Whether the cursor is CLOSED."""

        return self._state == CursorState.CLOSED

    @property
    def consumed(self) -> int:
        """
        The number of items the cursors has yielded, i.e. how many items
        have been already read by the code consuming the cursor.

        Returns:
            consumed: a non-negative integer, the count of items yielded so far.
        """

        return self._consumed

    @property
    def buffered_count(self) -> int:
        """
        The number of documents currently stored in the client-side buffer
        of this cursor. Reading this property never triggers new API calls
        to re-fill the buffer.

        Returns:
            buffered_count: a non-negative integer, the amount of documents
                currently stored in the local buffer.
        """

        return len(self._buffer)

    @property
    def pages_retrieved(self) -> int:
        """The number of pages fetched from the Data API since the last rewind."""

        return self._pages_retrieved

    @property
    def last_response_status(self) -> dict[str, Any] | None:
        """
        The `status` part of the most recent page response, if the API returned
        one (e.g. carrying a `sortVector`). None before the first page is fetched.
        """

        return self._last_response_status

    def close(self) -> None:
        """
        Close the cursor, regardless of its state. A closed cursor yields no more
        documents and issues no further requests, but whatever is left in the buffer
        can still be drained with `read_buffered_documents`.

        This is an in-place modification of the cursor.
        """

        self._state = CursorState.CLOSED

    def rewind(self) -> None:
        """
        Rewind the cursor, bringing it back to its pristine state of no documents
        retrieved/consumed yet, regardless of its current state.
        All cursor settings (filter, mapping, projection, etc) are retained.

        A cursor can be rewound at any time. Keep in mind that, subject to changes
        occurred on the collection, the results may be different if a cursor
        is browsed a second time after rewinding it.

        This is an in-place modification of the cursor.
        """
        self._state = CursorState.UNINITIALIZED
        self._buffer = []
        self._pages_retrieved = 0
        self._consumed = 0
        self._next_page_state = None
        self._last_response_status = None

    def read_buffered_documents(self, max: int | None = None) -> list[TRAW]:
        """
        Consume (return) up to the requested number of buffered documents.
        The documents are returned as they came from the API, i.e. the mapping
        function, if any, is not applied. They are marked as consumed, meaning
        that subsequently consuming the cursor will start after them.

        This method only concerns the local buffer: it never triggers fetching
        of new pages from the Data API. It can be called regardless of the cursor
        state, including CLOSED, without exceptions being raised.

        Args:
            max: amount of documents to return. If omitted, the whole buffer
                is returned.

        Returns:
            list: a list of raw documents. If there are fewer documents than
                requested, the whole buffer is returned without errors (in
                particular, an empty list if the buffer is empty).
        """
        _n = max if max is not None else len(self._buffer)
        if _n < 0:
            raise ValueError("A negative amount of documents was requested.")
        returned, remaining = self._buffer[:_n], self._buffer[_n:]
        self._buffer = remaining
        self._consumed += len(returned)
        return returned

    def consume_buffer(self, n: int | None = None) -> list[TRAW]:
        """An alias for `read_buffered_documents`."""

        return self.read_buffered_documents(max=n)

    def filter(self: CURSOR, filter: FilterType | None) -> CURSOR:
        """
        Set a new filter on the cursor, replacing the previous one.
        Allowed only while the cursor is UNINITIALIZED.

        Args:
            filter: a new filter setting for the query.

        Returns:
            this same cursor, modified in place.
        """

        self._ensure_uninitialized("filter")
        self._filter = deepcopy(filter)
        return self

    def project(self: CURSOR, projection: ProjectionType | None) -> CURSOR:
        """
        Set a new projection on the cursor, replacing the previous one.
        Allowed only while the cursor is UNINITIALIZED.

        Args:
            projection: a new projection setting for the query.

        Returns:
            this same cursor, modified in place.
        """

        self._ensure_uninitialized("projection")
        self._projection = deepcopy(projection)
        return self

    def sort(self: CURSOR, sort: SortType | None) -> CURSOR:
        """
        Set a new sort on the cursor, replacing the previous one.
        Allowed only while the cursor is UNINITIALIZED.

        Args:
            sort: a new sort setting for the query.

        Returns:
            this same cursor, modified in place.
        """

        self._ensure_uninitialized("sort")
        self._sort = deepcopy(sort)
        return self

    def limit(self: CURSOR, limit: int | None) -> CURSOR:
        """
        Set a new limit on the cursor. Zero or None mean no limit.
        Allowed only while the cursor is UNINITIALIZED.

        Args:
            limit: the maximum number of documents the cursor will yield.

        Returns:
            this same cursor, modified in place.
        """

        self._ensure_uninitialized("limit")
        if limit is not None and limit < 0:
            raise ValueError("The limit cannot be negative.")
        self._limit = limit
        return self

    def skip(self: CURSOR, skip: int | None) -> CURSOR:
        """
        Set a new skip on the cursor.
        Allowed only while the cursor is UNINITIALIZED.

        Args:
            skip: the number of matching documents to skip before the
                first one being returned.

        Returns:
            this same cursor, modified in place.
        """

        self._ensure_uninitialized("skip")
        if skip is not None and skip < 0:
            raise ValueError("The skip cannot be negative.")
        self._skip = skip
        return self

    def include_similarity(self: CURSOR, include_similarity: bool | None) -> CURSOR:
        """
        Set whether the similarity score (for vector searches) is requested.
        Allowed only while the cursor is UNINITIALIZED.

        Returns:
            this same cursor, modified in place.
        """

        self._ensure_uninitialized("include_similarity")
        self._include_similarity = include_similarity
        return self

    def map(self, mapper: Callable[[T], TNEW]) -> AbstractCursor[TRAW, TNEW]:
        """
        Set a mapping function to transform the documents returned by the cursor.
        Calling this method on a cursor with a mapping already set results in
        the mapping functions being composed.

        The mapping is applied lazily, as each document is consumed.
        Allowed only while the cursor is UNINITIALIZED.

        Args:
            mapper: a function transforming the objects returned by the cursor
                into something else (i.e. a function T => TNEW).

        Returns:
            this same cursor, modified in place (and now yielding TNEW items).
        """

        self._ensure_uninitialized("mapping")
        composite_mapper: Callable[[TRAW], TNEW]
        if self._mapper is not None:
            previous_mapper = self._mapper

            def _composite(document: TRAW) -> TNEW:
                return mapper(previous_mapper(document))

            composite_mapper = _composite
        else:
            composite_mapper = cast(Callable[[TRAW], TNEW], mapper)
        new_self = cast(AbstractCursor[TRAW, TNEW], self)
        new_self._mapper = composite_mapper
        return new_self

    def _enter_call_timeouts(
        self,
        general_method_timeout_ms: int | None,
        timeout_ms: int | None,
    ) -> tuple[int | None, MultiCallTimeoutManager]:
        """
        Install the timeouts of a to_list/for_each call, returning what is
        needed to restore the previous ones afterwards.
        """
        saved = (self._request_timeout_ms, self._timeout_manager)
        new_req_ms, new_ovr_ms = _revise_timeouts_for_cursor_call(
            new_general_method_timeout_ms=general_method_timeout_ms,
            new_timeout_ms=timeout_ms,
            old_request_timeout_ms=self._request_timeout_ms,
        )
        self._request_timeout_ms = new_req_ms
        self._timeout_manager = MultiCallTimeoutManager(
            overall_timeout_ms=new_ovr_ms,
            timeout_label="timeout_ms"
            if timeout_ms is not None
            else "general_method_timeout_ms",
        )
        return saved

    def _exit_call_timeouts(
        self,
        saved: tuple[int | None, MultiCallTimeoutManager],
    ) -> None:
        self._request_timeout_ms, self._timeout_manager = saved
