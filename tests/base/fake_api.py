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
An in-memory stand-in for the Data API, to be mounted on the clients of the
collections under test through `httpx.MockTransport`.

It speaks the subset of the collection commands used by the library (with
a simplified filter language) and lets tests inject failures, latency and
canned responses, as well as inspect the commands it received.
"""

from __future__ import annotations

import asyncio
import copy
import json
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

import httpx

FIND_PAGE_SIZE = 20
MANY_BATCH_SIZE = 20
MAX_COUNT = 1000

_MISSING = object()

FailureMatcher = Callable[[str, Dict[str, Any]], bool]


@dataclass
class ReceivedCommand:
    keyspace: str | None
    collection: str | None
    name: str
    body: dict[str, Any]
    headers: dict[str, str]


@dataclass
class _FailureRule:
    matcher: FailureMatcher
    kind: str
    times: int | None


def _get_path(document: Any, path: str) -> Any:
    value = document
    for segment in path.split("."):
        if isinstance(value, dict):
            if segment not in value:
                return _MISSING
            value = value[segment]
        elif isinstance(value, list) and segment.isdigit():
            index = int(segment)
            if index >= len(value):
                return _MISSING
            value = value[index]
        else:
            return _MISSING
    return value


def _set_path(document: dict[str, Any], path: str, value: Any) -> None:
    segments = path.split(".")
    target = document
    for segment in segments[:-1]:
        target = target.setdefault(segment, {})
    target[segments[-1]] = value


def _unset_path(document: dict[str, Any], path: str) -> None:
    segments = path.split(".")
    target: Any = document
    for segment in segments[:-1]:
        if not isinstance(target, dict) or segment not in target:
            return
        target = target[segment]
    if isinstance(target, dict):
        target.pop(segments[-1], None)


def _compare(value: Any, operator: str, argument: Any) -> bool:
    if value is _MISSING or value is None:
        return False
    try:
        if operator == "$gt":
            return bool(value > argument)
        if operator == "$gte":
            return bool(value >= argument)
        if operator == "$lt":
            return bool(value < argument)
        return bool(value <= argument)
    except TypeError:
        return False


def _equals(value: Any, argument: Any) -> bool:
    if value is _MISSING:
        return False
    if isinstance(value, list) and not isinstance(argument, list):
        return argument in value
    return bool(value == argument)


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(
        key.startswith("$") for key in condition
    ):
        for operator, argument in condition.items():
            if operator == "$eq":
                outcome = _equals(value, argument)
            elif operator == "$ne":
                outcome = not _equals(value, argument)
            elif operator == "$in":
                outcome = any(_equals(value, item) for item in argument)
            elif operator == "$nin":
                outcome = not any(_equals(value, item) for item in argument)
            elif operator == "$exists":
                outcome = (value is not _MISSING) == bool(argument)
            elif operator in {"$gt", "$gte", "$lt", "$lte"}:
                outcome = _compare(value, operator, argument)
            else:
                raise ValueError(f"Unsupported filter operator: {operator}")
            if not outcome:
                return False
        return True
    return _equals(value, condition)


def matches_filter(document: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    for key, condition in (filter or {}).items():
        if key == "$and":
            if not all(matches_filter(document, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches_filter(document, sub) for sub in condition):
                return False
        elif not _matches_condition(_get_path(document, key), condition):
            return False
    return True


def _sorted_documents(
    documents: list[dict[str, Any]], sort: dict[str, Any] | None
) -> list[dict[str, Any]]:
    result = list(documents)
    # applying the sort keys from the least significant one, relying on stability
    for path, direction in reversed(list((sort or {}).items())):

        def _sort_key(document: dict[str, Any], _path: str = path) -> Tuple[int, Any]:
            value = _get_path(document, _path)
            if value is _MISSING or value is None:
                return (0, 0)
            return (1, value)

        result.sort(key=_sort_key, reverse=direction == -1)
    return result


def _project(
    document: dict[str, Any], projection: dict[str, Any] | None
) -> dict[str, Any]:
    if not projection:
        return copy.deepcopy(document)
    non_id_flags = {k: bool(v) for k, v in projection.items() if k != "_id"}
    include_id = bool(projection.get("_id", True))
    if any(non_id_flags.values()):
        projected: dict[str, Any] = {}
        if include_id and "_id" in document:
            projected["_id"] = document["_id"]
        for path in non_id_flags:
            value = _get_path(document, path)
            if value is not _MISSING:
                _set_path(projected, path, copy.deepcopy(value))
        return projected
    projected = copy.deepcopy(document)
    for path in non_id_flags:
        _unset_path(projected, path)
    if not include_id:
        projected.pop("_id", None)
    return projected


def _apply_update(document: dict[str, Any], update: dict[str, Any]) -> None:
    for operator, fields in update.items():
        for path, argument in fields.items():
            if operator == "$set":
                _set_path(document, path, copy.deepcopy(argument))
            elif operator == "$unset":
                _unset_path(document, path)
            elif operator == "$inc":
                current = _get_path(document, path)
                base = 0 if current is _MISSING else current
                _set_path(document, path, base + argument)
            elif operator == "$push":
                current = _get_path(document, path)
                base = [] if current is _MISSING else list(current)
                _set_path(document, path, base + [copy.deepcopy(argument)])
            else:
                raise ValueError(f"Unsupported update operator: {operator}")


def _seed_from_filter(filter: dict[str, Any] | None) -> dict[str, Any]:
    return {
        key: copy.deepcopy(value)
        for key, value in (filter or {}).items()
        if not key.startswith("$")
        and "." not in key
        and not (isinstance(value, dict) and any(k.startswith("$") for k in value))
    }


def _error(code: str, message: str) -> dict[str, Any]:
    return {"errorCode": code, "message": message}


class FakeDataAPI:
    """
    A thread-safe, in-memory Data API. Collections spring into existence
    when first written to (or seeded).

    Failure injection: `inject_failure(matcher, kind=..., times=...)`, where
    the matcher receives the command name and body and `kind` is one of
        "api_error": a 200 response with an "errors" list, nothing executed;
        "http_error": a 500 response;
        "timeout": an `httpx.ReadTimeout` raised from the transport.

    Attributes:
        commands: a log of all commands received, in arrival order.
        latency_s: an artificial delay added to each request.
        max_in_flight: the highest number of requests seen being served at once.
    """

    def __init__(self, latency_s: float = 0.0) -> None:
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._collections: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self._failure_rules: list[_FailureRule] = []
        self._queued_responses: dict[str, list[dict[str, Any]]] = {}
        self._in_flight = 0
        self.latency_s = latency_s
        self.max_in_flight = 0
        self.commands: list[ReceivedCommand] = []

    # test-facing utilities

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def async_transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.async_handle)

    def seed(
        self,
        collection: str,
        documents: list[dict[str, Any]],
        keyspace: str = "default_keyspace",
    ) -> None:
        with self._lock:
            self._collections.setdefault((keyspace, collection), []).extend(
                copy.deepcopy(documents)
            )

    def documents(
        self, collection: str, keyspace: str = "default_keyspace"
    ) -> list[dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._collections.get((keyspace, collection), []))

    def inject_failure(
        self,
        matcher: FailureMatcher,
        *,
        kind: str = "api_error",
        times: int | None = None,
    ) -> None:
        if kind not in {"api_error", "http_error", "timeout"}:
            raise ValueError(f"Unknown failure kind: {kind}")
        with self._lock:
            self._failure_rules.append(
                _FailureRule(matcher=matcher, kind=kind, times=times)
            )

    def queue_responses(self, command_name: str, responses: list[dict[str, Any]]) -> None:
        """The next commands with this name will get these responses verbatim."""
        with self._lock:
            self._queued_responses.setdefault(command_name, []).extend(responses)

    def command_names(self) -> list[str]:
        return [command.name for command in self.commands]

    def count_commands(self, name: str) -> int:
        return sum(1 for command in self.commands if command.name == name)

    def bodies(self, name: str) -> list[dict[str, Any]]:
        return [command.body for command in self.commands if command.name == name]

    # transport handlers

    def _enter(self) -> None:
        with self._stats_lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)

    def _exit(self) -> None:
        with self._stats_lock:
            self._in_flight -= 1

    def handle(self, request: httpx.Request) -> httpx.Response:
        self._enter()
        try:
            if self.latency_s:
                time.sleep(self.latency_s)
            return self._respond(request)
        finally:
            self._exit()

    async def async_handle(self, request: httpx.Request) -> httpx.Response:
        self._enter()
        try:
            if self.latency_s:
                await asyncio.sleep(self.latency_s)
            return self._respond(request)
        finally:
            self._exit()

    def _respond(self, request: httpx.Request) -> httpx.Response:
        segments = [seg for seg in request.url.path.split("/") if seg]
        keyspace = segments[1] if len(segments) > 1 else None
        collection = segments[2] if len(segments) > 2 else None
        payload = json.loads(request.content or b"{}")
        name, body = next(iter(payload.items())) if payload else ("", {})
        body = body or {}
        with self._lock:
            self.commands.append(
                ReceivedCommand(
                    keyspace=keyspace,
                    collection=collection,
                    name=name,
                    body=copy.deepcopy(body),
                    headers=dict(request.headers),
                )
            )
            failure_kind = self._pop_failure(name, body)
            if failure_kind == "timeout":
                raise httpx.ReadTimeout("Injected read timeout.", request=request)
            if failure_kind == "http_error":
                return httpx.Response(
                    500,
                    json={"errors": [_error("SERVER_FAILURE", "Injected server failure.")]},
                )
            if failure_kind == "api_error":
                return httpx.Response(
                    200,
                    json={"errors": [_error("INJECTED_FAILURE", "Injected failure.")]},
                )
            queued = self._queued_responses.get(name)
            if queued:
                return httpx.Response(200, json=queued.pop(0))
            if keyspace is None or collection is None:
                response = self._run_database_command(name, body)
            else:
                documents = self._collections.setdefault((keyspace, collection), [])
                response = self._run_collection_command(documents, name, body)
        return httpx.Response(200, json=response)

    def _pop_failure(self, name: str, body: dict[str, Any]) -> str | None:
        for rule in self._failure_rules:
            if rule.times == 0:
                continue
            if rule.matcher(name, body):
                if rule.times is not None:
                    rule.times -= 1
                return rule.kind
        return None

    # command implementations

    def _run_database_command(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        if name == "findCollections":
            names = sorted({coll for (_, coll) in self._collections})
            return {"status": {"collections": names}}
        return {"errors": [_error("COMMAND_UNKNOWN", f"No such command: {name}")]}

    def _run_collection_command(
        self,
        documents: list[dict[str, Any]],
        name: str,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        options = body.get("options") or {}
        if name == "find":
            return self._find(documents, body, options)
        if name == "findOne":
            matching = self._matching(documents, body.get("filter"), body.get("sort"))
            found = _project(matching[0], body.get("projection")) if matching else None
            return {"data": {"document": found}}
        if name == "insertOne":
            inserted_ids, errors = self._insert(documents, [body["document"]], True)
            return self._with_errors({"status": {"insertedIds": inserted_ids}}, errors)
        if name == "insertMany":
            inserted_ids, errors = self._insert(
                documents, body["documents"], options.get("ordered", False)
            )
            return self._with_errors({"status": {"insertedIds": inserted_ids}}, errors)
        if name == "updateOne":
            return self._update_one(documents, body, options)
        if name == "updateMany":
            return self._update_many(documents, body, options)
        if name == "findOneAndReplace":
            return self._find_one_and_replace(documents, body, options)
        if name == "deleteOne":
            matching = self._matching(documents, body.get("filter"), body.get("sort"))
            if matching:
                documents.remove(matching[0])
            return {"status": {"deletedCount": len(matching[:1])}}
        if name == "deleteMany":
            return self._delete_many(documents, body)
        if name == "countDocuments":
            count = len(self._matching(documents, body.get("filter"), None))
            if count > MAX_COUNT:
                return {"status": {"count": MAX_COUNT, "moreData": True}}
            return {"status": {"count": count}}
        if name == "estimatedDocumentCount":
            return {"status": {"count": len(documents)}}
        return {"errors": [_error("COMMAND_UNKNOWN", f"No such command: {name}")]}

    @staticmethod
    def _with_errors(
        response: dict[str, Any], errors: list[dict[str, Any]]
    ) -> dict[str, Any]:
        if errors:
            return {**response, "errors": errors}
        return response

    @staticmethod
    def _matching(
        documents: list[dict[str, Any]],
        filter: dict[str, Any] | None,
        sort: dict[str, Any] | None,
    ) -> list[dict[str, Any]]:
        return _sorted_documents(
            [doc for doc in documents if matches_filter(doc, filter)], sort
        )

    def _find(
        self,
        documents: list[dict[str, Any]],
        body: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        matching = self._matching(documents, body.get("filter"), body.get("sort"))
        skip = options.get("skip") or 0
        limit = options.get("limit")
        results = matching[skip:]
        if limit:
            results = results[:limit]
        start = int(options.get("pageState") or "0")
        page = results[start : start + FIND_PAGE_SIZE]
        next_start = start + FIND_PAGE_SIZE
        next_page_state = str(next_start) if next_start < len(results) else None
        return {
            "data": {
                "documents": [_project(doc, body.get("projection")) for doc in page],
                "nextPageState": next_page_state,
            }
        }

    @staticmethod
    def _insert(
        documents: list[dict[str, Any]],
        new_documents: list[dict[str, Any]],
        ordered: bool,
    ) -> tuple[list[Any], list[dict[str, Any]]]:
        inserted_ids: list[Any] = []
        errors: list[dict[str, Any]] = []
        existing_ids = [doc["_id"] for doc in documents]
        for new_document in new_documents:
            document = copy.deepcopy(new_document)
            if "_id" not in document:
                document["_id"] = str(uuid.uuid4())
            if document["_id"] in existing_ids:
                errors.append(
                    _error(
                        "DOCUMENT_ALREADY_EXISTS",
                        f"Document already exists with the given _id: {document['_id']}",
                    )
                )
                if ordered:
                    break
                continue
            documents.append(document)
            existing_ids.append(document["_id"])
            inserted_ids.append(document["_id"])
        return inserted_ids, errors

    @staticmethod
    def _upsert(
        documents: list[dict[str, Any]],
        filter: dict[str, Any] | None,
        update: dict[str, Any],
    ) -> Any:
        document = _seed_from_filter(filter)
        _apply_update(document, update)
        if "_id" not in document:
            document["_id"] = str(uuid.uuid4())
        documents.append(document)
        return document["_id"]

    def _update_one(
        self,
        documents: list[dict[str, Any]],
        body: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        matching = self._matching(documents, body.get("filter"), body.get("sort"))
        if matching:
            target = matching[0]
            before = copy.deepcopy(target)
            _apply_update(target, body["update"])
            return {
                "status": {
                    "matchedCount": 1,
                    "modifiedCount": int(before != target),
                }
            }
        status: dict[str, Any] = {"matchedCount": 0, "modifiedCount": 0}
        if options.get("upsert"):
            status["upsertedId"] = self._upsert(
                documents, body.get("filter"), body["update"]
            )
        return {"status": status}

    def _update_many(
        self,
        documents: list[dict[str, Any]],
        body: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        start = int(options.get("pageState") or "0")
        matched_positions = [
            position
            for position, doc in enumerate(documents)
            if position >= start and matches_filter(doc, body.get("filter"))
        ]
        if not matched_positions and start == 0 and options.get("upsert"):
            upserted_id = self._upsert(documents, body.get("filter"), body["update"])
            return {
                "status": {
                    "matchedCount": 0,
                    "modifiedCount": 0,
                    "upsertedId": upserted_id,
                }
            }
        batch = matched_positions[:MANY_BATCH_SIZE]
        modified = 0
        for position in batch:
            before = copy.deepcopy(documents[position])
            _apply_update(documents[position], body["update"])
            modified += int(before != documents[position])
        status: dict[str, Any] = {"matchedCount": len(batch), "modifiedCount": modified}
        if len(matched_positions) > len(batch):
            status["nextPageState"] = str(batch[-1] + 1)
        return {"status": status}

    def _find_one_and_replace(
        self,
        documents: list[dict[str, Any]],
        body: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        matching = self._matching(documents, body.get("filter"), body.get("sort"))
        replacement = copy.deepcopy(body["replacement"])
        if matching:
            target = matching[0]
            before = copy.deepcopy(target)
            replacement["_id"] = target["_id"]
            documents[documents.index(target)] = replacement
            return {
                "data": {"document": before},
                "status": {
                    "matchedCount": 1,
                    "modifiedCount": int(before != replacement),
                },
            }
        status: dict[str, Any] = {"matchedCount": 0, "modifiedCount": 0}
        if options.get("upsert"):
            if "_id" not in replacement:
                seed = _seed_from_filter(body.get("filter"))
                replacement["_id"] = seed.get("_id", str(uuid.uuid4()))
            documents.append(replacement)
            status["upsertedId"] = replacement["_id"]
        return {"data": {"document": None}, "status": status}

    def _delete_many(
        self,
        documents: list[dict[str, Any]],
        body: dict[str, Any],
    ) -> dict[str, Any]:
        filter = body.get("filter")
        if not filter:
            documents.clear()
            return {"status": {"deletedCount": -1}}
        matching = [doc for doc in documents if matches_filter(doc, filter)]
        batch = matching[:MANY_BATCH_SIZE]
        for document in batch:
            documents.remove(document)
        status: dict[str, Any] = {"deletedCount": len(batch)}
        if len(matching) > len(batch):
            status["moreData"] = True
        return {"status": status}


def docs_with_seq(count: int, **extra: Any) -> List[Dict[str, Any]]:
    """Documents {"_id": "doc-007", "seq": 7, "parity": 1, ...} for a range."""
    return [
        {"_id": f"doc-{seq:03}", "seq": seq, "parity": seq % 2, **extra}
        for seq in range(count)
    ]
