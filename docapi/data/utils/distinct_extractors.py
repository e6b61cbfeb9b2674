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

import hashlib
import json
from typing import Any, Callable, Iterable, Optional, Tuple

from docapi.data.utils.collection_converters import preprocess_collection_payload_value

IndexPairType = Tuple[str, Optional[int]]

ERROR_NO_EMPTY_SAFE_KEYSTART = (
    "The 'key' parameter for distinct cannot be empty or start with a list index."
)
ERROR_NO_EMPTY_KEYPATH = (
    "Field path specification cannot be empty or have empty segments"
)


def _maybe_valid_list_index(key_block: str) -> int | None:
    # '0', '1' is good. '00', '01', '-30' are not.
    try:
        kb_index = int(key_block)
        if kb_index >= 0 and key_block == str(kb_index):
            return kb_index
        else:
            return None
    except ValueError:
        return None


def _assert_path_safe(key: str) -> list[str]:
    if not isinstance(key, str) or key == "":
        raise ValueError(ERROR_NO_EMPTY_KEYPATH)
    key_blocks = key.split(".")
    if any(kb == "" for kb in key_blocks):
        raise ValueError(ERROR_NO_EMPTY_KEYPATH)
    return key_blocks


def _create_document_key_extractor(
    key: str,
) -> Callable[[dict[str, Any]], Iterable[Any]]:
    """
    Build a function that, given a document, yields all values found at the
    provided dotted path.

    Lists met along the way are handled as follows: a segment that is a valid
    list index (as in "items.0.tag") picks that element, when present, while
    any other segment is applied to every element of the list in turn.
    Lists found at the end of the path are unrolled one level.
    Null values and missing fields contribute nothing, at any depth.
    """
    key_blocks0: list[IndexPairType] = [
        (kb_str, _maybe_valid_list_index(kb_str)) for kb_str in _assert_path_safe(key)
    ]

    def _extract_with_key_blocks(
        key_blocks: list[IndexPairType], value: Any
    ) -> Iterable[Any]:
        if value is None:
            return
        if key_blocks == []:
            if isinstance(value, list):
                for item in value:
                    if item is not None:
                        yield item
            else:
                yield value
            return
        # go deeper as requested
        rest_key_blocks = key_blocks[1:]
        k_str, k_int = key_blocks[0]
        if isinstance(value, dict):
            if k_str in value:
                yield from _extract_with_key_blocks(rest_key_blocks, value[k_str])
        elif isinstance(value, list):
            if k_int is not None:
                if len(value) > k_int:
                    yield from _extract_with_key_blocks(rest_key_blocks, value[k_int])
            else:
                # auto-unroll of lists
                for list_item in value:
                    yield from _extract_with_key_blocks(key_blocks, list_item)
        # otherwise keyblocks are deeper than the document: nothing to extract.

    def _item_extractor(document: dict[str, Any]) -> Iterable[Any]:
        return _extract_with_key_blocks(key_blocks=key_blocks0, value=document)

    return _item_extractor


def _reduce_distinct_key_to_safe(distinct_key: str) -> str:
    """
    In light of the twofold interpretation of "0" as index and dict key
    in selection (for distinct), and the auto-unroll of lists, it is not
    safe to project beyond the first numeric segment. See this example:
        document = {'x': [{'y': 'Y', '0': 'ZERO'}]}
        key = "x.0"
    With full key as projection, we would lose the `"y": "Y"` part (mistakenly).
    """
    valid_portion: list[str] = []
    for block in _assert_path_safe(distinct_key):
        if _maybe_valid_list_index(block) is None:
            valid_portion.append(block)
        else:
            break
    if valid_portion == []:
        raise ValueError(ERROR_NO_EMPTY_SAFE_KEYSTART)
    return ".".join(valid_portion)


def _hash_document(document: Any) -> str:
    _normalized_item = preprocess_collection_payload_value(document)
    _normalized_json = json.dumps(
        _normalized_item, sort_keys=True, separators=(",", ":")
    )
    _item_hash = hashlib.md5(_normalized_json.encode()).hexdigest()
    return _item_hash


def _distinct_value_key(value: Any) -> tuple[str, Any]:
    """
    A hashable identity for a value found by distinct. Dicts and lists are
    keyed by a structural hash, scalars by their type and value (so that
    e.g. `1` and `True` are kept apart).
    """
    if isinstance(value, (dict, list)):
        return ("hash", _hash_document(value))
    return (type(value).__name__, value)
