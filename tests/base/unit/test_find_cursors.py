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
from typing import Any

import pytest

from docapi import Collection
from docapi.cursors import CursorState, FindCursor
from docapi.exceptions import CursorException, DataAPITimeoutException

from ..fake_api import FakeDataAPI, docs_with_seq

NUM_DOCS = 45


@pytest.fixture
def seeded_collection(
    collection: Collection[Any], fake_api: FakeDataAPI
) -> Collection[Any]:
    fake_api.seed(collection.name, docs_with_seq(NUM_DOCS))
    return collection


def _page_states(fake_api: FakeDataAPI) -> list[str | None]:
    return [
        (body.get("options") or {}).get("pageState") for body in fake_api.bodies("find")
    ]


class TestFindCursors:
    @pytest.mark.describe("test of cursor laziness")
    def test_cursor_laziness(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        cursor = seeded_collection.find({})
        assert isinstance(cursor, FindCursor)
        assert cursor.state == CursorState.UNINITIALIZED
        assert fake_api.count_commands("find") == 0

        document = cursor.next()
        assert document is not None
        assert cursor.state == CursorState.INITIALIZED
        assert fake_api.count_commands("find") == 1
        assert cursor.consumed == 1
        assert cursor.buffered_count == 19

    @pytest.mark.describe("test of cursor pagination")
    def test_cursor_pagination(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        cursor = seeded_collection.find({}, sort={"seq": 1})
        documents = cursor.to_list()
        assert [doc["seq"] for doc in documents] == list(range(NUM_DOCS))
        assert fake_api.count_commands("find") == 3
        assert _page_states(fake_api) == [None, "20", "40"]
        assert cursor.closed
        assert cursor.consumed == NUM_DOCS

    @pytest.mark.describe("test of cursor query settings sent to the API")
    def test_cursor_payload(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        seeded_collection.find(
            {"parity": 1},
            projection={"seq": True},
            sort={"seq": -1},
            skip=2,
            limit=3,
            include_similarity=False,
        ).to_list()
        assert fake_api.bodies("find") == [
            {
                "filter": {"parity": 1},
                "projection": {"seq": True},
                "sort": {"seq": -1},
                "options": {"limit": 3, "skip": 2, "includeSimilarity": False},
            }
        ]

    @pytest.mark.describe("test of cursor limit truncating pages")
    def test_cursor_limit(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        docs25 = seeded_collection.find({}, sort={"seq": 1}, limit=25).to_list()
        assert [doc["seq"] for doc in docs25] == list(range(25))
        assert fake_api.count_commands("find") == 2

        docs5 = seeded_collection.find({}, limit=5).to_list()
        assert len(docs5) == 5
        assert fake_api.count_commands("find") == 3

        # a limit of exactly one page is terminal: no second request
        docs20 = seeded_collection.find({}, limit=20).to_list()
        assert len(docs20) == 20
        assert fake_api.count_commands("find") == 4

    @pytest.mark.describe("test of cursor limit enforced client-side")
    def test_cursor_limit_client_side(
        self, collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        # a server ignoring the limit would return a full page and a page state
        fake_api.queue_responses(
            "find",
            [
                {
                    "data": {
                        "documents": docs_with_seq(20),
                        "nextPageState": "more",
                    }
                }
            ],
        )
        cursor = collection.find({}, limit=7)
        assert len(cursor.to_list()) == 7
        assert fake_api.count_commands("find") == 1
        assert cursor.buffered_count == 0

    @pytest.mark.describe("test of cursor limit spanning several pages")
    def test_cursor_limit_across_pages(
        self, collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        fake_api.seed(collection.name, docs_with_seq(100))
        cursor = collection.find({}).limit(50)
        assert len(cursor.to_list()) == 50
        assert cursor.state == CursorState.CLOSED
        assert cursor.buffered_count == 0
        assert fake_api.count_commands("find") == 3

    @pytest.mark.describe("test of cursor sort and skip")
    def test_cursor_sort_skip(self, seeded_collection: Collection[Any]) -> None:
        cursor = seeded_collection.find({}, sort={"seq": -1}, skip=3, limit=4)
        assert [doc["seq"] for doc in cursor] == [41, 40, 39, 38]

    @pytest.mark.describe("test of cursor filter and projection")
    def test_cursor_filter_projection(self, seeded_collection: Collection[Any]) -> None:
        documents = seeded_collection.find(
            {"seq": {"$lt": 6}, "parity": 0},
            projection={"seq": True, "_id": False},
            sort={"seq": 1},
        ).to_list()
        assert documents == [{"seq": 0}, {"seq": 2}, {"seq": 4}]

    @pytest.mark.describe("test of skipping empty pages having a page state")
    def test_cursor_empty_pages(
        self, collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        fake_api.queue_responses(
            "find",
            [
                {"data": {"documents": [], "nextPageState": "p1"}},
                {"data": {"documents": [], "nextPageState": "p2"}},
                {"data": {"documents": [{"_id": "a"}], "nextPageState": None}},
            ],
        )
        cursor = collection.find({})
        assert cursor.has_next()
        assert cursor.to_list() == [{"_id": "a"}]
        assert _page_states(fake_api) == [None, "p1", "p2"]

    @pytest.mark.describe("test of cursor page count and response status")
    def test_cursor_page_stats(
        self, collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        fake_api.queue_responses(
            "find",
            [
                {
                    "data": {"documents": [{"_id": "a"}], "nextPageState": "p1"},
                    "status": {"sortVector": [0.1, 0.2]},
                },
                {"data": {"documents": [{"_id": "b"}], "nextPageState": None}},
            ],
        )
        cursor = collection.find({})
        assert cursor.pages_retrieved == 0
        assert cursor.last_response_status is None
        cursor.next()
        assert cursor.pages_retrieved == 1
        assert cursor.last_response_status == {"sortVector": [0.1, 0.2]}
        cursor.next()
        assert cursor.pages_retrieved == 2
        assert cursor.last_response_status is None
        cursor.rewind()
        assert cursor.pages_retrieved == 0
        assert cursor.last_response_status is None

    @pytest.mark.describe("test of settings frozen after initialization")
    def test_cursor_frozen_settings(self, seeded_collection: Collection[Any]) -> None:
        cursor = seeded_collection.find({})
        assert cursor.filter({"parity": 0}).sort({"seq": 1}).limit(3) is cursor
        cursor.next()
        with pytest.raises(CursorException):
            cursor.filter({})
        with pytest.raises(CursorException):
            cursor.project({"seq": True})
        with pytest.raises(CursorException):
            cursor.sort({"seq": -1})
        with pytest.raises(CursorException):
            cursor.limit(1)
        with pytest.raises(CursorException):
            cursor.skip(1)
        with pytest.raises(CursorException):
            cursor.include_similarity(True)
        with pytest.raises(CursorException):
            cursor.map(lambda doc: doc)
        cursor.close()
        with pytest.raises(CursorException) as exc_info:
            cursor.limit(1)
        assert exc_info.value.cursor_state == CursorState.CLOSED.value

    @pytest.mark.describe("test of cursor rejecting negative limit and skip")
    def test_cursor_negative_settings(self, collection: Collection[Any]) -> None:
        with pytest.raises(ValueError):
            collection.find({}).limit(-1)
        with pytest.raises(ValueError):
            collection.find({}).skip(-3)
        with pytest.raises(ValueError):
            collection.find({}).read_buffered_documents(-1)

    @pytest.mark.describe("test of cursor isolation from the caller's filter")
    def test_cursor_filter_isolation(self, seeded_collection: Collection[Any]) -> None:
        the_filter: dict[str, Any] = {"parity": 0}
        cursor = seeded_collection.find(the_filter)
        the_filter["parity"] = 1
        assert all(doc["parity"] == 0 for doc in cursor)

    @pytest.mark.describe("test of cursor rewind")
    def test_cursor_rewind(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        cursor = seeded_collection.find({}, sort={"seq": 1})
        for _ in range(3):
            cursor.next()
        cursor.rewind()
        assert cursor.state == CursorState.UNINITIALIZED
        assert cursor.consumed == 0
        assert cursor.buffered_count == 0
        # settings can be changed again after a rewind
        cursor.limit(4)
        assert [doc["seq"] for doc in cursor.to_list()] == [0, 1, 2, 3]
        cursor.rewind()
        assert len(cursor.to_list()) == 4
        assert fake_api.count_commands("find") == 3

    @pytest.mark.describe("test of cursor clone")
    def test_cursor_clone(self, seeded_collection: Collection[Any]) -> None:
        cursor = seeded_collection.find({"parity": 1}, sort={"seq": 1}).map(
            lambda doc: doc["seq"]
        )
        assert cursor.next() == 1
        assert cursor.next() == 3
        clone = cursor.clone()
        assert clone is not cursor
        assert clone.state == CursorState.UNINITIALIZED
        assert clone.consumed == 0
        assert clone.to_list()[:3] == [1, 3, 5]
        # the original cursor is untouched by the clone being consumed
        assert cursor.next() == 5
        assert cursor.consumed == 3

    @pytest.mark.describe("test of cursor map composition")
    def test_cursor_map(self, seeded_collection: Collection[Any]) -> None:
        cursor = (
            seeded_collection.find({}, sort={"seq": 1}, limit=3)
            .map(lambda doc: doc["seq"])
            .map(lambda seq: seq * 10)
        )
        assert cursor.to_list() == [0, 10, 20]

    @pytest.mark.describe("test of cursor closing on mapping errors")
    def test_cursor_map_error(self, seeded_collection: Collection[Any]) -> None:
        def _mapper(doc: dict[str, Any]) -> int:
            if doc["seq"] == 2:
                raise ZeroDivisionError("oops")
            return doc["seq"]  # type: ignore[no-any-return]

        cursor = seeded_collection.find({}, sort={"seq": 1}).map(_mapper)
        assert cursor.next() == 0
        assert cursor.next() == 1
        with pytest.raises(ZeroDivisionError):
            cursor.next()
        assert cursor.closed
        assert cursor.next() is None

    @pytest.mark.describe("test of cursor closing on fetch errors")
    def test_cursor_fetch_error(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        fake_api.inject_failure(
            lambda name, body: name == "find"
            and "pageState" in (body.get("options") or {}),
            kind="timeout",
        )
        cursor = seeded_collection.find({})
        consumed: list[Any] = []
        with pytest.raises(DataAPITimeoutException) as exc_info:
            for document in cursor:
                consumed.append(document)
        assert exc_info.value.timeout_type == "read"
        assert len(consumed) == 20
        assert cursor.closed
        assert cursor.consumed == 20

    @pytest.mark.describe("test of cursor next and has_next")
    def test_cursor_has_next(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        cursor = seeded_collection.find({}, limit=2)
        assert cursor.has_next()
        assert cursor.consumed == 0
        assert cursor.buffered_count == 2
        assert cursor.next() is not None
        assert cursor.has_next()
        assert cursor.next() is not None
        assert not cursor.has_next()
        assert cursor.next() is None
        assert cursor.closed
        assert not cursor.has_next()
        assert fake_api.count_commands("find") == 1

    @pytest.mark.describe("test of cursor over no documents")
    def test_cursor_empty(self, collection: Collection[Any]) -> None:
        cursor = collection.find({})
        assert not cursor.has_next()
        assert cursor.to_list() == []
        assert cursor.closed

    @pytest.mark.describe("test of reading the cursor buffer directly")
    def test_cursor_read_buffered_documents(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        cursor = seeded_collection.find({}, sort={"seq": 1}).map(lambda doc: doc["seq"])
        assert cursor.read_buffered_documents() == []
        assert fake_api.count_commands("find") == 0

        assert cursor.next() == 0
        raw_docs = cursor.read_buffered_documents(5)
        assert [doc["seq"] for doc in raw_docs] == [1, 2, 3, 4, 5]
        assert cursor.consumed == 6
        assert cursor.buffered_count == 14
        assert cursor.next() == 6
        assert len(cursor.consume_buffer(100)) == 13
        assert cursor.buffered_count == 0
        assert cursor.next() == 20
        assert fake_api.count_commands("find") == 2

    @pytest.mark.describe("test of cursor close keeping the buffer")
    def test_cursor_close(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        cursor = seeded_collection.find({})
        cursor.next()
        cursor.close()
        assert cursor.state == CursorState.CLOSED
        assert cursor.next() is None
        assert cursor.to_list() == []
        assert len(cursor.read_buffered_documents()) == 19
        assert fake_api.count_commands("find") == 1
        # closing is idempotent
        cursor.close()
        assert cursor.closed

    @pytest.mark.describe("test of cursor closing when a loop is left early")
    def test_cursor_break(self, seeded_collection: Collection[Any]) -> None:
        cursor = seeded_collection.find({})
        for document in cursor:
            if document["seq"] >= 0:
                break
        assert cursor.closed
        assert cursor.consumed == 1
        assert cursor.buffered_count == 19

    @pytest.mark.describe("test of cursor as context manager")
    def test_cursor_context_manager(self, seeded_collection: Collection[Any]) -> None:
        with seeded_collection.find({}, sort={"seq": 1}) as cursor:
            assert cursor.next() is not None
            assert cursor.state == CursorState.INITIALIZED
        assert cursor.closed
        assert cursor.to_list() == []

    @pytest.mark.describe("test of cursor for_each")
    def test_cursor_for_each(self, seeded_collection: Collection[Any]) -> None:
        seen: list[int] = []

        def _visit(doc: dict[str, Any]) -> bool:
            seen.append(doc["seq"])
            return doc["seq"] < 4

        cursor = seeded_collection.find({}, sort={"seq": 1})
        cursor.for_each(_visit)
        assert seen == [0, 1, 2, 3, 4]
        assert cursor.closed
        assert cursor.consumed == 5

        # any other return value goes on
        counted: list[Any] = []
        seeded_collection.find({}).for_each(lambda doc: counted.append(doc))
        assert len(counted) == NUM_DOCS

    @pytest.mark.describe("test of cursor to_list semantics")
    def test_cursor_to_list(self, seeded_collection: Collection[Any]) -> None:
        cursor = seeded_collection.find({}, sort={"seq": 1})
        cursor.next()
        remaining = cursor.to_list()
        assert [doc["seq"] for doc in remaining] == list(range(1, NUM_DOCS))
        assert cursor.to_list() == []

    @pytest.mark.describe("test of cursor overall timeout in to_list")
    def test_cursor_to_list_timeout(
        self, seeded_collection: Collection[Any], fake_api: FakeDataAPI
    ) -> None:
        fake_api.latency_s = 0.2
        cursor = seeded_collection.find({})
        with pytest.raises(DataAPITimeoutException) as exc_info:
            cursor.to_list(timeout_ms=300)
        assert "timeout_ms" in str(exc_info.value)
        assert cursor.closed
        assert fake_api.count_commands("find") == 2

        # the call-scoped timeout does not outlive the call
        fake_api.latency_s = 0.0
        cursor.rewind()
        time.sleep(0.3)
        assert len(cursor.to_list()) == NUM_DOCS

    @pytest.mark.describe("test of cursor introspection")
    def test_cursor_introspection(self, seeded_collection: Collection[Any]) -> None:
        cursor = seeded_collection.find({})
        assert cursor.data_source is seeded_collection
        assert cursor.namespace == "default_keyspace.test_coll"
        assert "default_keyspace.test_coll" in repr(cursor)
        assert "uninitialized" in repr(cursor)
