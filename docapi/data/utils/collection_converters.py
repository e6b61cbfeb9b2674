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

import base64
import datetime
import time
from typing import Any, Dict, cast

from docapi.constants import DefaultDocumentType
from docapi.ids import UUID, ObjectId


def convert_to_ejson_date_object(
    date_value: datetime.date | datetime.datetime,
) -> dict[str, int]:
    if isinstance(date_value, datetime.datetime):
        return {"$date": int(date_value.timestamp() * 1000)}
    return {"$date": int(time.mktime(date_value.timetuple()) * 1000)}


def convert_to_ejson_bytes(bytes_value: bytes) -> dict[str, str]:
    return {"$binary": base64.b64encode(bytes_value).decode()}


def convert_to_ejson_uuid_object(uuid_value: UUID) -> dict[str, str]:
    return {"$uuid": str(uuid_value)}


def convert_to_ejson_objectid_object(objectid_value: ObjectId) -> dict[str, str]:
    return {"$objectId": str(objectid_value)}


def convert_ejson_date_object_to_datetime(
    date_object: dict[str, int],
) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(
        date_object["$date"] / 1000.0, tz=datetime.timezone.utc
    )


def convert_ejson_binary_object_to_bytes(binary_object: dict[str, str]) -> bytes:
    return base64.b64decode(binary_object["$binary"])


def convert_ejson_uuid_object_to_uuid(uuid_object: dict[str, str]) -> UUID:
    return UUID(uuid_object["$uuid"])


def convert_ejson_objectid_object_to_objectid(
    objectid_object: dict[str, str],
) -> ObjectId:
    return ObjectId(objectid_object["$objectId"])


def preprocess_collection_payload_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: preprocess_collection_payload_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [preprocess_collection_payload_value(list_item) for list_item in value]
    elif isinstance(value, datetime.datetime):
        return convert_to_ejson_date_object(value)
    elif isinstance(value, datetime.date):
        # 'datetime' subclasses 'date', so this must come after the previous.
        return convert_to_ejson_date_object(value)
    elif isinstance(value, bytes):
        return convert_to_ejson_bytes(value)
    elif isinstance(value, UUID):
        return convert_to_ejson_uuid_object(value)
    elif isinstance(value, ObjectId):
        return convert_to_ejson_objectid_object(value)
    else:
        return value


def preprocess_collection_payload(
    payload: dict[str, Any] | None,
) -> dict[str, Any] | None:
    """
    Normalize a payload for API calls.
    This is where e.g. datetimes become `{"$date": 123}` objects.

    Args:
        payload (dict[str, Any]): A dict expressing a payload for an API call

    Returns:
        dict[str, Any]: a payload dict, pre-processed, ready for HTTP requests.
    """

    if payload:
        return cast(Dict[str, Any], preprocess_collection_payload_value(payload))
    else:
        return payload


def postprocess_collection_response_value(value: Any) -> Any:
    if isinstance(value, dict):
        value_keys = set(value.keys())
        if value_keys == {"$date"}:
            return convert_ejson_date_object_to_datetime(value)
        elif value_keys == {"$uuid"}:
            return convert_ejson_uuid_object_to_uuid(value)
        elif value_keys == {"$objectId"}:
            return convert_ejson_objectid_object_to_objectid(value)
        elif value_keys == {"$binary"}:
            return convert_ejson_binary_object_to_bytes(value)
        else:
            return {
                k: postprocess_collection_response_value(v) for k, v in value.items()
            }
    elif isinstance(value, list):
        return [postprocess_collection_response_value(list_item) for list_item in value]
    else:
        return value


def postprocess_collection_response(
    response: DefaultDocumentType,
) -> DefaultDocumentType:
    """
    Process a dictionary just returned from the API.
    This is the place where e.g. `{"$date": 123}` is
    converted back into a (timezone-aware, UTC) datetime object.
    """
    return cast(DefaultDocumentType, postprocess_collection_response_value(response))
