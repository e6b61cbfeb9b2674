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

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Sequence

from docapi.data.utils.collection_converters import postprocess_collection_response
from docapi.exceptions import (
    BulkWriteException,
    BulkWriteFailure,
    DataAPIResponseException,
    DataAPITimeoutException,
)
from docapi.results import BulkWriteResult

logger = logging.getLogger(__name__)

# the per-operation failures that, in unordered mode, do not stop the run
UNORDERED_RECOVERABLE_EXCEPTIONS = (DataAPIResponseException, DataAPITimeoutException)


class _BulkWriteAccumulator:
    """
    The mutable aggregate of one bulk execution: the merged counters, the
    raw responses and the failures. Each response is merged as a whole under
    a lock, so that concurrent workers can share one accumulator.
    """

    result: BulkWriteResult
    failures: list[BulkWriteFailure]
    inserted_ids_by_index: dict[int, list[Any]]

    def __init__(self, num_operations: int) -> None:
        self._lock = threading.Lock()
        self._num_operations = num_operations
        self._next_index = 0
        self._aborted = False
        self.result = BulkWriteResult.zero()
        self.failures = []
        self.inserted_ids_by_index = {}

    def claim_index(self) -> int | None:
        """Assign the next operation to a worker, or None if there are none left."""
        with self._lock:
            if self._aborted or self._next_index >= self._num_operations:
                return None
            index = self._next_index
            self._next_index += 1
            return index

    def abort(self) -> None:
        with self._lock:
            self._aborted = True

    def _merge_status(self, status: dict[str, Any], index: int) -> None:
        inserted_ids = status.get("insertedIds") or []
        if inserted_ids:
            self.inserted_ids_by_index[index] = list(inserted_ids)
        self.result.inserted_count += len(inserted_ids)
        self.result.matched_count += status.get("matchedCount") or 0
        self.result.modified_count += status.get("modifiedCount") or 0
        self.result.deleted_count += status.get("deletedCount") or 0
        upserted_id = status.get("upsertedId")
        if upserted_id is not None:
            self.result.upserted_count += 1
            self.result.upserted_ids[index] = upserted_id

    def add_response(self, index: int, response: dict[str, Any]) -> None:
        with self._lock:
            self._merge_status(response.get("status") or {}, index)
            self.result.raw_results.append(response)

    def add_failure(self, index: int, command: dict[str, Any], exc: Exception) -> None:
        with self._lock:
            if isinstance(exc, DataAPIResponseException):
                # a failed response can still report a partial effect
                partial_status = postprocess_collection_response(exc.partial_status)
                self._merge_status(partial_status, index)
            self.failures.append(
                BulkWriteFailure(index=index, command=command, exception=exc)
            )

    def inserted_ids(self) -> list[Any]:
        """All inserted IDs, following the order of the operations."""
        with self._lock:
            return [
                inserted_id
                for index in sorted(self.inserted_ids_by_index)
                for inserted_id in self.inserted_ids_by_index[index]
            ]

    def to_exception(self) -> BulkWriteException:
        return BulkWriteException(
            partial_result=self.result,
            failures=sorted(self.failures, key=lambda failure: failure.index),
        )

    def raise_for_failures(self) -> None:
        if self.failures:
            raise self.to_exception()


def run_ordered(
    commands: Sequence[dict[str, Any]],
    execute: Callable[[dict[str, Any]], dict[str, Any]],
    accumulator: _BulkWriteAccumulator | None = None,
) -> BulkWriteResult:
    """
    Execute the commands strictly in sequence, stopping at the first failure.

    An API-reported failure stops the run and is raised as a BulkWriteException
    carrying everything merged so far (including any partial effect reported
    in the failed response). Other errors, such as timeouts, propagate as they are.

    Args:
        commands: the commands to execute, in order.
        execute: a function sending one command and returning its response.
        accumulator: the accumulator to merge results into. A new one is
            created if not provided.

    Returns:
        a BulkWriteResult with the merged effect of all commands.
    """
    _accumulator = accumulator or _BulkWriteAccumulator(len(commands))
    for index, command in enumerate(commands):
        try:
            response = execute(command)
        except DataAPIResponseException as exc:
            logger.info(f"ordered bulk execution stopped at operation {index}")
            _accumulator.add_failure(index, command, exc)
            raise _accumulator.to_exception() from exc
        _accumulator.add_response(index, response)
    return _accumulator.result


def run_unordered(
    commands: Sequence[dict[str, Any]],
    execute: Callable[[dict[str, Any]], dict[str, Any]],
    concurrency: int,
    accumulator: _BulkWriteAccumulator | None = None,
) -> BulkWriteResult:
    """
    Execute the commands with a pool of `concurrency` threads, each pulling the
    next command to run from a shared index. No ordering is guaranteed.

    API-reported failures and timeouts of single commands are recorded and do not
    stop the run: at the end, if any, they are raised together as a
    BulkWriteException whose partial result has all successes merged in.
    Any other error aborts the run (no new commands are started) and propagates.

    Args:
        commands: the commands to execute.
        execute: a function sending one command and returning its response.
            It will be called from several threads at once.
        concurrency: the number of workers.
        accumulator: the accumulator to merge results into. A new one is
            created if not provided.

    Returns:
        a BulkWriteResult with the merged effect of all commands.
    """
    if concurrency < 1:
        raise ValueError("The concurrency must be a positive integer.")
    _accumulator = accumulator or _BulkWriteAccumulator(len(commands))

    def _worker() -> None:
        while True:
            index = _accumulator.claim_index()
            if index is None:
                return
            command = commands[index]
            try:
                response = execute(command)
            except UNORDERED_RECOVERABLE_EXCEPTIONS as exc:
                _accumulator.add_failure(index, command, exc)
                continue
            except Exception:
                _accumulator.abort()
                raise
            _accumulator.add_response(index, response)

    num_workers = min(concurrency, len(commands))
    if num_workers > 0:
        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            worker_futures = [executor.submit(_worker) for _ in range(num_workers)]
            for worker_future in worker_futures:
                worker_future.result()
    _accumulator.raise_for_failures()
    return _accumulator.result


async def async_run_ordered(
    commands: Sequence[dict[str, Any]],
    execute: Callable[[dict[str, Any]], Awaitable[dict[str, Any]]],
    accumulator: _BulkWriteAccumulator | None = None,
) -> BulkWriteResult:
    """
    Execute the commands strictly in sequence, stopping at the first failure.
    The async counterpart of `run_ordered` (see the latter for details).
    """
    _accumulator = accumulator or _BulkWriteAccumulator(len(commands))
    for index, command in enumerate(commands):
        try:
            response = await execute(command)
        except DataAPIResponseException as exc:
            logger.info(f"ordered bulk execution stopped at operation {index}, async")
            _accumulator.add_failure(index, command, exc)
            raise _accumulator.to_exception() from exc
        _accumulator.add_response(index, response)
    return _accumulator.result


async def async_run_unordered(
    commands: Sequence[dict[str, Any]],
    execute: Callable[[dict[str, Any]], Awaitable[dict[str, Any]]],
    concurrency: int,
    accumulator: _BulkWriteAccumulator | None = None,
) -> BulkWriteResult:
    """
    Execute the commands with `concurrency` worker tasks, each pulling the
    next command to run from a shared index. No ordering is guaranteed.
    The async counterpart of `run_unordered` (see the latter for details).
    """
    if concurrency < 1:
        raise ValueError("The concurrency must be a positive integer.")
    _accumulator = accumulator or _BulkWriteAccumulator(len(commands))

    async def _worker() -> None:
        while True:
            index = _accumulator.claim_index()
            if index is None:
                return
            command = commands[index]
            try:
                response = await execute(command)
            except UNORDERED_RECOVERABLE_EXCEPTIONS as exc:
                _accumulator.add_failure(index, command, exc)
                continue
            except Exception:
                _accumulator.abort()
                raise
            _accumulator.add_response(index, response)

    num_workers = min(concurrency, len(commands))
    tasks = [asyncio.create_task(_worker()) for _ in range(num_workers)]
    try:
        await asyncio.gather(*tasks)
    except Exception:
        for task in tasks:
            task.cancel()
        # the cancelled workers must be finished before the error propagates
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    _accumulator.raise_for_failures()
    return _accumulator.result
