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

"""
Main conftest for shared fixtures.

All collections handed out by these fixtures talk to an in-memory FakeDataAPI,
mounted on their HTTP clients through a mock transport.
"""

from __future__ import annotations

from typing import Any, Union

import httpx
import pytest

from docapi import AsyncCollection, AsyncDatabase, Collection, DataAPIClient, Database

from .base.fake_api import FakeDataAPI

API_ENDPOINT = "http://data-api.fake:8181"
TOKEN = "test-token-secret"
COLLECTION_NAME = "test_coll"
CALLER_NAME = "docapi_tests"
CALLER_VERSION = "0.0.1"


def plug_fake_api(
    target: Union[Collection[Any], AsyncCollection[Any]], fake_api: FakeDataAPI
) -> None:
    """
    Route all requests of a (sync or async) collection to the fake.
    Objects spawned from `target` later (e.g. with `with_options`) must be
    plugged again.
    """
    commander = target._api_commander
    commander.client = httpx.Client(transport=fake_api.transport())
    commander.async_client = httpx.AsyncClient(transport=fake_api.async_transport())


@pytest.fixture
def fake_api() -> FakeDataAPI:
    return FakeDataAPI()


@pytest.fixture
def client() -> DataAPIClient:
    return DataAPIClient(callers=[(CALLER_NAME, CALLER_VERSION)])


@pytest.fixture
def database(client: DataAPIClient) -> Database:
    return client.get_database(API_ENDPOINT, token=TOKEN)


@pytest.fixture
def async_database(client: DataAPIClient) -> AsyncDatabase:
    return client.get_async_database(API_ENDPOINT, token=TOKEN)


@pytest.fixture
def collection(database: Database, fake_api: FakeDataAPI) -> Collection[Any]:
    _collection = database.get_collection(COLLECTION_NAME)
    plug_fake_api(_collection, fake_api)
    return _collection


@pytest.fixture
def async_collection(
    async_database: AsyncDatabase, fake_api: FakeDataAPI
) -> AsyncCollection[Any]:
    _collection = async_database.get_collection(COLLECTION_NAME)
    plug_fake_api(_collection, fake_api)
    return _collection


__all__ = [
    "API_ENDPOINT",
    "CALLER_NAME",
    "CALLER_VERSION",
    "COLLECTION_NAME",
    "TOKEN",
    "plug_fake_api",
]
