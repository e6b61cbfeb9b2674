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
import re
from typing import TYPE_CHECKING, Any, Sequence

from docapi.constants import CallerType
from docapi.utils.api_options import (
    APIOptions,
    defaultAPIOptions,
)
from docapi.utils.unset import _UNSET, UnsetType

if TYPE_CHECKING:
    from docapi import AsyncDatabase, Database


logger = logging.getLogger(__name__)


api_url_matcher = re.compile(r"^https?:\/\/[a-zA-Z0-9\-.]+(\:[0-9]{1,6}){0,1}$")
api_url_descriptor = "http[s]://<domain name or IP>[:port]"


def parse_api_url(api_endpoint: str) -> str | None:
    """
    Validate an API Endpoint string, such as `http://10.1.1.1:123`
    or `https://my.domain`.

    Returns:
        a normalized (stripped) version of the endpoint if valid. If invalid,
        return None.
    """
    _api_endpoint = api_endpoint.rstrip("/")
    match = api_url_matcher.match(_api_endpoint)
    if match:
        return match[0]
    else:
        return None


def api_url_parsing_error_message(failing_url: str) -> str:
    return (
        f"Cannot parse the supplied API endpoint ({failing_url}). The endpoint "
        f'must be in the following form: "{api_url_descriptor}".'
    )


class DataAPIClient:
    """
    A client for using the Data API. This is the entry point, sitting
    at the top of the conceptual "client -> database -> collection" hierarchy.

    A client is created first, optionally passing it an access token.
    Starting from the client, databases (Database and AsyncDatabase) are
    obtained for working with data.

    Args:
        token: an access token to the Data API. It can also be passed later,
            when spawning Database instances from the client.
        callers: a list of caller identities, i.e. applications, or frameworks,
            on behalf of which Data API calls are performed.
            These end up in the request user-agent.
            Each caller identity is a ("caller_name", "caller_version") pair.
        api_options: a specification - complete or partial - of the API Options
            to override the system defaults. This allows for a deeper configuration
            than what the named parameters (token, callers) offer.
            If this is passed alongside these named parameters, those will take
            precedence.

    Example:
        >>> from docapi import DataAPIClient
        >>> my_client = DataAPIClient(callers=[("my_app", "1.0")])
        >>> my_db = my_client.get_database(
        ...     "https://my-data-api.example.com",
        ...     token="my-token",
        ... )
        >>> my_coll = my_db.get_collection("movies")
        >>> my_coll.insert_one({"title": "The Title"})
        CollectionInsertOneResult(inserted_id='...', raw_results=...)
    """

    def __init__(
        self,
        token: str | None | UnsetType = _UNSET,
        *,
        callers: Sequence[CallerType] | UnsetType = _UNSET,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> None:
        arg_api_options = APIOptions(
            callers=callers,
            token=token,
        )
        self.api_options = (
            defaultAPIOptions()
            .with_override(api_options)
            .with_override(arg_api_options)
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.api_options})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, DataAPIClient):
            return all(
                [
                    self.api_options.token == other.api_options.token,
                    self.api_options.callers == other.api_options.callers,
                ]
            )
        else:
            return False

    def __getitem__(self, api_endpoint: str) -> Database:
        return self.get_database(api_endpoint=api_endpoint)

    def _copy(
        self,
        *,
        token: str | None | UnsetType = _UNSET,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> DataAPIClient:
        arg_api_options = APIOptions(token=token)
        final_api_options = self.api_options.with_override(api_options).with_override(
            arg_api_options
        )
        return DataAPIClient(api_options=final_api_options)

    def with_options(
        self,
        *,
        token: str | None | UnsetType = _UNSET,
        api_options: APIOptions | UnsetType = _UNSET,
    ) -> DataAPIClient:
        """
        Create a clone of this DataAPIClient with some changed attributes.

        Args:
            token: an access token to the Data API.
            api_options: any additional options to set for the clone, in the form of
                an APIOptions instance (where one can set just the needed attributes).
                In case the same setting is also provided as named parameter,
                the latter takes precedence.

        Returns:
            a new DataAPIClient instance.

        Example:
            >>> other_auth_client = my_client.with_options(token="another-token")
        """

        return self._copy(
            token=token,
            api_options=api_options,
        )

    def get_database(
        self,
        api_endpoint: str,
        *,
        token: str | None | UnsetType = _UNSET,
        keyspace: str | None = None,
        spawn_api_options: APIOptions | UnsetType = _UNSET,
    ) -> Database:
        """
        Get a Database object from this client, for doing data-related work.

        Args:
            api_endpoint: the API Endpoint for the target database,
                in the form "http[s]://<domain name or IP>[:port]".
                This invocation does not create the database, just the object
                instance.
            token: if supplied, is passed to the Database instead of the client token.
            keyspace: if provided, it is passed to the Database; otherwise
                "default_keyspace" is used.
            spawn_api_options: a specification - complete or partial - of the
                API Options to override the defaults.
                This allows for a deeper configuration of the database, e.g.
                concerning timeouts; if this is passed together with
                the equivalent named parameters, the latter will take precedence
                in their respective settings.

        Returns:
            a Database object with which to work on Data API collections.

        Example:
            >>> my_db = my_client.get_database(
            ...     "https://my-data-api.example.com",
            ...     token="my-token",
            ...     keyspace="prod_keyspace",
            ... )
        """

        # lazy importing here to avoid circular dependency
        from docapi import Database

        arg_api_options = APIOptions(token=token)
        resulting_api_options = self.api_options.with_override(
            spawn_api_options
        ).with_override(arg_api_options)

        parsed_api_endpoint = parse_api_url(api_endpoint)
        if parsed_api_endpoint:
            return Database(
                api_endpoint=parsed_api_endpoint,
                keyspace=keyspace,
                api_options=resulting_api_options,
            )
        else:
            msg = api_url_parsing_error_message(api_endpoint)
            raise ValueError(msg)

    def get_async_database(
        self,
        api_endpoint: str,
        *,
        token: str | None | UnsetType = _UNSET,
        keyspace: str | None = None,
        spawn_api_options: APIOptions | UnsetType = _UNSET,
    ) -> AsyncDatabase:
        """
        Get an AsyncDatabase object from this client, for doing data-related work.
        See `get_database` for a description of the parameters.

        Example:
            >>> async_db = my_client.get_async_database(
            ...     "https://my-data-api.example.com",
            ...     token="my-token",
            ... )
        """

        return self.get_database(
            api_endpoint=api_endpoint,
            token=token,
            keyspace=keyspace,
            spawn_api_options=spawn_api_options,
        ).to_async()
