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
# ruff: noqa: F401

from __future__ import annotations

import pytest


@pytest.mark.describe("test namespace")
def test_namespace() -> None:
    import docapi

    assert str(docapi.client) != ""
    assert str(docapi.collection) != ""
    assert str(docapi.constants) != ""
    assert str(docapi.cursors) != ""
    assert str(docapi.data) != ""
    assert str(docapi.database) != ""
    assert str(docapi.exceptions) != ""
    assert str(docapi.ids) != ""
    assert str(docapi.operations) != ""
    assert str(docapi.results) != ""
    assert str(docapi.settings) != ""
    assert str(docapi.utils) != ""

    assert str(docapi.client.DataAPIClient) != ""
    assert str(docapi.collection.Collection) != ""
    assert str(docapi.constants.SortMode.ASCENDING) != ""
    assert str(docapi.data.bulk_write) != ""
    assert str(docapi.database.Database) != ""
    assert str(docapi.exceptions.BulkWriteException) != ""
    assert str(docapi.ids.uuid6) != ""
    assert str(docapi.results.BulkWriteResult) != ""
    assert str(docapi.settings.defaults) != ""
    assert str(docapi.utils.request_tools) != ""


@pytest.mark.describe("test imports")
def test_imports() -> None:
    from docapi import (
        AsyncCollection,
        AsyncDatabase,
        Collection,
        DataAPIClient,
        Database,
    )
    from docapi.constants import (
        CallerType,
        DefaultDocumentType,
        FilterType,
        ProjectionType,
        SortMode,
        SortType,
    )
    from docapi.cursors import (
        AbstractCursor,
        AsyncFindCursor,
        CursorState,
        FindCursor,
    )
    from docapi.exceptions import (
        BulkWriteException,
        BulkWriteFailure,
        CollectionDeleteManyException,
        CollectionInsertManyException,
        CollectionUpdateManyException,
        CursorException,
        DataAPIErrorDescriptor,
        DataAPIException,
        DataAPIHttpException,
        DataAPIResponseException,
        DataAPITimeoutException,
        DataAPIWarningDescriptor,
        MultiCallTimeoutManager,
        TooManyDocumentsToCountException,
        UnexpectedDataAPIResponseException,
    )
    from docapi.ids import (
        UUID,
        ObjectId,
        uuid1,
        uuid3,
        uuid4,
        uuid5,
        uuid6,
        uuid7,
        uuid8,
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
    from docapi.utils.api_options import (
        APIOptions,
        TimeoutOptions,
    )
