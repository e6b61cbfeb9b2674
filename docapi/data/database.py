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
from typing import TYPE_CHECKING, Any

from docapi.constants import DOC, DefaultDocumentType
from docapi.exceptions import _select_singlereq_timeout_gm, _TimeoutContext
from docapi.settings.defaults import DEFAULT_DATA_API_AUTH_HEADER, DEFAULT_KEYSPACE
from docapi.utils.api_commander import APICommander
from docapi.utils.api_options import APIOptions, FullAPIOptions
from docapi.utils.unset import _UNSET, UnsetType

if TYPE_CHECKING:
    from docapi.collection import AsyncCollection, Collection


logger = logging.getLogger(__name__)


def _base_path(api_options: FullAPIOptions, *components: str | None) -> str:
    base_path_components = [
        comp
        for comp in (
            ncomp.strip("/")
            for ncomp in (
                api_options.api_path,
                api_options.api_version,
                *components,
            )
            if ncomp is not None
        )
        if comp != ""
    ]
    return f"/{'/'.join(base_path_components)}"


def _command_keyspace(
    keyspace: str | None | UnsetType,
    collection_name: str | None,
    working_keyspace: str,
) -> str | None:
    # None addresses the database as a whole, where there are no collections
    if keyspace is None:
        if collection_name is not None:
            raise ValueError(
                "A collection_name cannot be given to a command with keyspace=None."
            )
        return None
    if isinstance(keyspace, UnsetType):
        return working_keyspace
    return keyspace


class Database:
    """
    A Data API database. This is the object for obtaining Collection
    objects and for issuing raw database-level commands.
    This class has a synchronous interface.

    This class is not meant for direct instantiation by the user, rather
    it is obtained by invoking methods such as `get_database`
    of DataAPIClient.

    Args:
        api_endpoint: the full "API Endpoint" string used to reach the Data API.
            Example: "https://my-data-api.example.com".
        keyspace: this is the keyspace all method calls will target, unless
            one is explicitly specified in the call. If no keyspace is supplied
            when creating a Database, the name "default_keyspace" is set.
        api_options: a complete specification of the API Options for this instance.

    Example:
        >>> from docapi import DataAPIClient
        >>> my_client = DataAPIClient()
        >>> my_db = my_client.get_database(
        ...     "https://my-data-api.example.com",
        ...     token="my-token",
        ... )

    Note:
        creating an instance of Database does not trigger actual creation
        of the database itself, which should exist beforehand.
    """

    def __init__(
        self,
        *,
        api_endpoint: str,
        keyspace: str | None,
        api_options: FullAPIOptions,
    ) -> None:
        self.api_options = api_options
        self.api_endpoint = api_endpoint.strip("/")
        self._using_keyspace: str = keyspace or DEFAULT_KEYSPACE
        self._commander_headers = {
            DEFAULT_DATA_API_AUTH_HEADER: self.api_options.token,
            **self.api_options.additional_headers,
        }
        self._api_commander = self._get_api_commander(keyspace=self.keyspace)

    def __getattr__(self, collection_name: str) -> Collection[DefaultDocumentType]:
        if collection_name.startswith("__"):
            raise AttributeError(collection_name)
        return self.get_collection(name=collection_name)

    def __getitem__(self, collection_name: str) -> Collection[DefaultDocumentType]:
        return self.get_collection(name=collection_name)

    def __repr__(self) -> str:
        ep_desc = f'api_endpoint="{self.api_endpoint}"'
        keyspace_desc = f'keyspace="{self._using_keyspace}"'
        api_options_desc = f"api_options={self.api_options}"
        parts = [ep_desc, keyspace_desc, api_options_desc]
        return f"{self.__class__.__name__}({', '.join(parts)})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Database):
            return all(
                [
                    self.api_endpoint == other.api_endpoint,
                    self.keyspace == other.keyspace,
                    self.api_options == other.api_options,
                ]
            )
        else:
            return False

    def _get_api_commander(
        self, keyspace: str | None, collection_name: str | None = None
    ) -> APICommander:
        """
        Instantiate a new APICommander based on the properties of this class
        and a provided keyspace (and possibly collection name).

        If keyspace is None, the commander targets the database as a whole.
        """

        return APICommander(
            api_endpoint=self.api_endpoint,
            path=_base_path(self.api_options, keyspace, collection_name),
            headers=self._commander_headers,
            callers=self.api_options.callers,
            redacted_header_names=self.api_options.redacted_header_names,
        )

    def _copy(
        self,
        *,
        keyspace: str | None = None,
        token: str | None | UnsetType = _UNSET,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> Database:
        arg_api_options = APIOptions(
            token=token,
        )
        final_api_options = self.api_options.with_override(api_options).with_override(
            arg_api_options
        )
        return Database(
            api_endpoint=self.api_endpoint,
            keyspace=keyspace or self.keyspace,
            api_options=final_api_options,
        )

    def with_options(
        self,
        *,
        keyspace: str | None = None,
        token: str | None | UnsetType = _UNSET,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> Database:
        """
        Create a clone of this database with some changed attributes.

        Args:
            keyspace: this is the keyspace all method calls will target, unless
                one is explicitly specified in the call.
            token: an access token to the database.
            api_options: any additional options to set for the clone, in the form of
                an APIOptions instance (where one can set just the needed attributes).
                In case the same setting is also provided as named parameter,
                the latter takes precedence.

        Returns:
            a new `Database` instance.

        Example:
            >>> my_db_2 = my_db.with_options(
            ...     keyspace="the_other_keyspace",
            ...     token="another-token",
            ... )
        """

        return self._copy(
            keyspace=keyspace,
            token=token,
            api_options=api_options,
        )

    def to_async(
        self,
        *,
        keyspace: str | None = None,
        token: str | None | UnsetType = _UNSET,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> AsyncDatabase:
        """
        Create an AsyncDatabase from this one. Save for the arguments
        explicitly provided as overrides, everything else is kept identical
        to this database in the copy.

        Args:
            keyspace: this is the keyspace all method calls will target, unless
                one is explicitly specified in the call.
            token: an access token to the database.
            api_options: any additional options to set for the result, in the form of
                an APIOptions instance (where one can set just the needed attributes).
                In case the same setting is also provided as named parameter,
                the latter takes precedence.

        Returns:
            the new copy, an `AsyncDatabase` instance.
        """

        arg_api_options = APIOptions(
            token=token,
        )
        final_api_options = self.api_options.with_override(api_options).with_override(
            arg_api_options
        )
        return AsyncDatabase(
            api_endpoint=self.api_endpoint,
            keyspace=keyspace or self.keyspace,
            api_options=final_api_options,
        )

    def use_keyspace(self, keyspace: str) -> None:
        """
        Switch to a new working keyspace for this database.
        This method changes (mutates) the Database instance.

        Args:
            keyspace: the new keyspace to use as the database working keyspace.
        """

        logger.info(f"switching to keyspace '{keyspace}'")
        self._using_keyspace = keyspace
        self._api_commander = self._get_api_commander(keyspace=self.keyspace)

    @property
    def keyspace(self) -> str:
        """
        The keyspace this database uses as target for all commands when
        no method-call-specific keyspace is specified.

        Example:
            >>> my_db.keyspace
            'default_keyspace'
        """

        return self._using_keyspace

    def get_collection(
        self,
        name: str,
        *,
        keyspace: str | None = None,
        spawn_api_options: APIOptions | UnsetType = _UNSET,
    ) -> Collection[DOC]:
        """
        Spawn a `Collection` object instance representing a collection
        on this database.

        Creating a `Collection` instance does not have any effect on the
        actual state of the database: in other words, for the created
        `Collection` instance to be used meaningfully, the collection
        must exist already.

        Args:
            name: the name of the collection.
            keyspace: the keyspace containing the collection. If no keyspace
                is specified, the general setting for this database is used.
            spawn_api_options: a specification - complete or partial - of the
                API Options to override the defaults inherited from the Database.
                This allows for a deeper configuration of the collection, e.g.
                concerning timeouts.

        Returns:
            a `Collection` instance, representing the desired collection
                (but without any form of validation).

        Example:
            >>> my_col = my_db.get_collection("my_collection")
            >>> my_col.count_documents({}, upper_bound=100)
            41

        Note:
            The attribute and indexing syntax forms achieve the same effect
            as this method. In other words, the following are equivalent:
                my_db.get_collection("coll_name")
                my_db.coll_name
                my_db["coll_name"]
        """

        # lazy importing here against circular-import error
        from docapi.collection import Collection

        resulting_api_options = self.api_options.with_override(spawn_api_options)
        return Collection(
            database=self,
            name=name,
            keyspace=keyspace or self.keyspace,
            api_options=resulting_api_options,
        )

    def command(
        self,
        body: dict[str, Any],
        *,
        keyspace: str | None | UnsetType = _UNSET,
        collection_name: str | None = None,
        raise_api_errors: bool = True,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        """
        Send a POST request to the Data API for this database with
        an arbitrary, caller-provided payload.

        Args:
            body: a JSON-serializable dictionary, the payload of the request.
            keyspace: the keyspace whose URL the request is sent to. Left unset,
                the working keyspace of the database is used. An explicit `None`
                targets the database itself (the URL then ends at the API version).
            collection_name: a collection to address the request to. The
                collection name becomes the last URL segment. It requires
                a keyspace, so it cannot be combined with `keyspace=None`.
            raise_api_errors: if True, responses with a nonempty 'errors' field
                result in a docapi exception being raised.
            general_method_timeout_ms: a timeout, in milliseconds, for the single
                API request this method issues. Unless passed, the database
                defaults are used.
            request_timeout_ms: equivalent to `general_method_timeout_ms` here.
            timeout_ms: an alias for `general_method_timeout_ms`.

        Returns:
            a dictionary with the response of the HTTP request.

        Example:
            >>> my_db.command({"countDocuments": {}}, collection_name="my_coll")
            {'status': {'count': 123}}
        """

        request_ms, timeout_label = _select_singlereq_timeout_gm(
            timeout_options=self.api_options.timeout_options,
            general_method_timeout_ms=general_method_timeout_ms,
            request_timeout_ms=request_timeout_ms,
            timeout_ms=timeout_ms,
        )
        command_commander = self._get_api_commander(
            keyspace=_command_keyspace(keyspace, collection_name, self.keyspace),
            collection_name=collection_name,
        )

        _cmd_desc = ",".join(sorted(body.keys()))
        logger.info(f"command={_cmd_desc} on {self.__class__.__name__}")
        req_response = command_commander.request(
            payload=body,
            raise_api_errors=raise_api_errors,
            timeout_context=_TimeoutContext(
                request_ms=request_ms, label=timeout_label
            ),
        )
        logger.info(f"finished command={_cmd_desc} on {self.__class__.__name__}")
        return req_response


class AsyncDatabase:
    """
    A Data API database. This is the object for obtaining AsyncCollection
    objects and for issuing raw database-level commands.
    This class has an asynchronous interface for use with asyncio.

    This class is not meant for direct instantiation by the user, rather
    it is obtained by invoking methods such as `get_async_database`
    of DataAPIClient.

    Args:
        api_endpoint: the full "API Endpoint" string used to reach the Data API.
        keyspace: this is the keyspace all method calls will target, unless
            one is explicitly specified in the call. If no keyspace is supplied
            when creating a Database, the name "default_keyspace" is set.
        api_options: a complete specification of the API Options for this instance.
    """

    def __init__(
        self,
        *,
        api_endpoint: str,
        keyspace: str | None,
        api_options: FullAPIOptions,
    ) -> None:
        self.api_options = api_options
        self.api_endpoint = api_endpoint.strip("/")
        self._using_keyspace: str = keyspace or DEFAULT_KEYSPACE
        self._commander_headers = {
            DEFAULT_DATA_API_AUTH_HEADER: self.api_options.token,
            **self.api_options.additional_headers,
        }
        self._api_commander = self._get_api_commander(keyspace=self.keyspace)

    def __getattr__(self, collection_name: str) -> AsyncCollection[DefaultDocumentType]:
        if collection_name.startswith("__"):
            raise AttributeError(collection_name)
        return self.get_collection(name=collection_name)

    def __getitem__(self, collection_name: str) -> AsyncCollection[DefaultDocumentType]:
        return self.get_collection(name=collection_name)

    def __repr__(self) -> str:
        ep_desc = f'api_endpoint="{self.api_endpoint}"'
        keyspace_desc = f'keyspace="{self._using_keyspace}"'
        api_options_desc = f"api_options={self.api_options}"
        parts = [ep_desc, keyspace_desc, api_options_desc]
        return f"{self.__class__.__name__}({', '.join(parts)})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, AsyncDatabase):
            return all(
                [
                    self.api_endpoint == other.api_endpoint,
                    self.keyspace == other.keyspace,
                    self.api_options == other.api_options,
                ]
            )
        else:
            return False

    def _get_api_commander(
        self, keyspace: str | None, collection_name: str | None = None
    ) -> APICommander:
        """
        Instantiate a new APICommander based on the properties of this class
        and a provided keyspace (and possibly collection name).
        """

        return APICommander(
            api_endpoint=self.api_endpoint,
            path=_base_path(self.api_options, keyspace, collection_name),
            headers=self._commander_headers,
            callers=self.api_options.callers,
            redacted_header_names=self.api_options.redacted_header_names,
        )

    async def __aenter__(self) -> AsyncDatabase:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        await self._api_commander.__aexit__(
            exc_type=exc_type,
            exc_value=exc_value,
            traceback=traceback,
        )

    def _copy(
        self,
        *,
        keyspace: str | None = None,
        token: str | None | UnsetType = _UNSET,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> AsyncDatabase:
        arg_api_options = APIOptions(
            token=token,
        )
        final_api_options = self.api_options.with_override(api_options).with_override(
            arg_api_options
        )
        return AsyncDatabase(
            api_endpoint=self.api_endpoint,
            keyspace=keyspace or self.keyspace,
            api_options=final_api_options,
        )

    def with_options(
        self,
        *,
        keyspace: str | None = None,
        token: str | None | UnsetType = _UNSET,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> AsyncDatabase:
        """
        Create a clone of this database with some changed attributes.
        See `Database.with_options` for a description of the parameters.
        """

        return self._copy(
            keyspace=keyspace,
            token=token,
            api_options=api_options,
        )

    def to_sync(
        self,
        *,
        keyspace: str | None = None,
        token: str | None | UnsetType = _UNSET,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> Database:
        """
        Create a (synchronous) Database from this one. Save for the arguments
        explicitly provided as overrides, everything else is kept identical
        to this database in the copy.
        See `Database.to_async` for a description of the parameters.
        """

        arg_api_options = APIOptions(
            token=token,
        )
        final_api_options = self.api_options.with_override(api_options).with_override(
            arg_api_options
        )
        return Database(
            api_endpoint=self.api_endpoint,
            keyspace=keyspace or self.keyspace,
            api_options=final_api_options,
        )

    def use_keyspace(self, keyspace: str) -> None:
        """
        Switch to a new working keyspace for this database.
        This method changes (mutates) the AsyncDatabase instance.
        """

        logger.info(f"switching to keyspace '{keyspace}'")
        self._using_keyspace = keyspace
        self._api_commander = self._get_api_commander(keyspace=self.keyspace)

    @property
    def keyspace(self) -> str:
        """
        The keyspace this database uses as target for all commands when
        no method-call-specific keyspace is specified.
        """

        return self._using_keyspace

    def get_collection(
        self,
        name: str,
        *,
        keyspace: str | None = None,
        spawn_api_options: APIOptions | UnsetType = _UNSET,
    ) -> AsyncCollection[DOC]:
        """
        Spawn an `AsyncCollection` object instance representing a collection
        on this database. No request is issued, and the collection
        must exist already for the object to be used meaningfully.
        See `Database.get_collection` for a description of the parameters.

        Example:
            >>> my_async_col = my_async_db.get_collection("my_collection")
            >>> asyncio.run(my_async_col.count_documents({}, upper_bound=100))
            41
        """

        # lazy importing here against circular-import error
        from docapi.collection import AsyncCollection

        resulting_api_options = self.api_options.with_override(spawn_api_options)
        return AsyncCollection(
            database=self,
            name=name,
            keyspace=keyspace or self.keyspace,
            api_options=resulting_api_options,
        )

    async def command(
        self,
        body: dict[str, Any],
        *,
        keyspace: str | None | UnsetType = _UNSET,
        collection_name: str | None = None,
        raise_api_errors: bool = True,
        general_method_timeout_ms: int | None = None,
        request_timeout_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        """
        Send a POST request to the Data API for this database with
        an arbitrary, caller-provided payload.
        See `Database.command` for a description of the parameters.
        """

        request_ms, timeout_label = _select_singlereq_timeout_gm(
            timeout_options=self.api_options.timeout_options,
            general_method_timeout_ms=general_method_timeout_ms,
            request_timeout_ms=request_timeout_ms,
            timeout_ms=timeout_ms,
        )
        command_commander = self._get_api_commander(
            keyspace=_command_keyspace(keyspace, collection_name, self.keyspace),
            collection_name=collection_name,
        )

        _cmd_desc = ",".join(sorted(body.keys()))
        logger.info(f"command={_cmd_desc} on {self.__class__.__name__}")
        req_response = await command_commander.async_request(
            payload=body,
            raise_api_errors=raise_api_errors,
            timeout_context=_TimeoutContext(
                request_ms=request_ms, label=timeout_label
            ),
        )
        logger.info(f"finished command={_cmd_desc} on {self.__class__.__name__}")
        return req_response
