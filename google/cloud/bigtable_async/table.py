# Copyright 2024 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
from __future__ import annotations

import concurrent.futures
import enum
import logging
import time

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, TYPE_CHECKING

from google.api_core import exceptions as core_exceptions

from google.cloud.bigtable_async._helpers import _to_row_key
from google.cloud.bigtable_async._helpers import _validate_mutations
from google.cloud.bigtable_async._helpers import _validate_timeouts
from google.cloud.bigtable_async.exceptions import FailedMutationEntryError
from google.cloud.bigtable_async.exceptions import MutationsExceptionGroup
from google.cloud.bigtable_async.mutations import BulkMutation
from google.cloud.bigtable_async.mutations import FailedMutation
from google.cloud.bigtable_async.mutations import Mutation
from google.cloud.bigtable_async.mutations import SingleRowMutation
from google.cloud.bigtable_async.mutations import _MUTATE_ROWS_REQUEST_MUTATION_LIMIT
from google.cloud.bigtable_async.row import Row
from google.cloud.bigtable_async.status import OK_STATUS, Status

if TYPE_CHECKING:
    from google.cloud.bigtable_async.completion_queue import CompletionQueue
    from google.cloud.bigtable_async.read_modify_write_rules import (
        ReadModifyWriteRule,
    )
    from google.cloud.bigtable_async.row_filters import RowFilter
    from google.cloud.bigtable_async.row_store import RowStore

_LOGGER = logging.getLogger(__name__)

# default time budgets, in seconds
DEFAULT_OPERATION_TIMEOUT = 60.0
DEFAULT_MUTATE_ROWS_OPERATION_TIMEOUT = 600.0


class MutationBranch(enum.Enum):
    """Which branch of a check-and-mutate was applied"""

    TRUE_MUTATIONS_APPLIED = "TRUE_MUTATIONS_APPLIED"
    FALSE_MUTATIONS_APPLIED = "FALSE_MUTATIONS_APPLIED"
    # the operation failed; the row was left unchanged
    NONE_APPLIED = "NONE_APPLIED"


class CheckAndMutateResult:
    """
    Outcome of a check-and-mutate operation

    A predicate that does not match is not an error: the result is ok, and
    the branch records that the false-case mutations were applied. A failed
    operation always carries NONE_APPLIED.
    """

    def __init__(self, branch: MutationBranch, status: Status = OK_STATUS):
        if (branch is MutationBranch.NONE_APPLIED) == status.ok():
            raise ValueError(
                f"branch {branch.name} is inconsistent with status {status!r}"
            )
        self.branch = branch
        self.status = status

    @classmethod
    def from_predicate(cls, matched: bool) -> CheckAndMutateResult:
        if matched:
            return cls(MutationBranch.TRUE_MUTATIONS_APPLIED)
        return cls(MutationBranch.FALSE_MUTATIONS_APPLIED)

    @classmethod
    def failed(cls, status: Status) -> CheckAndMutateResult:
        return cls(MutationBranch.NONE_APPLIED, status)

    def ok(self) -> bool:
        return self.status.ok()

    @property
    def predicate_matched(self) -> bool | None:
        """True or False for a successful operation, None if it failed"""
        if self.branch is MutationBranch.NONE_APPLIED:
            return None
        return self.branch is MutationBranch.TRUE_MUTATIONS_APPLIED

    def __eq__(self, other):
        if not isinstance(other, CheckAndMutateResult):
            return NotImplemented
        return self.branch == other.branch and self.status == other.status

    def __repr__(self):
        return f"CheckAndMutateResult(branch={self.branch.name}, status={self.status!r})"


@dataclass(frozen=True)
class ReadRowsResult:
    status: Status
    rows: list[Row] = field(default_factory=list)

    def ok(self) -> bool:
        return self.status.ok()


@dataclass(frozen=True)
class ReadRowResult:
    """
    Result of a single row read. ``row`` is None when the status is not
    ok, or when no cells of the row passed the filter.
    """

    status: Status
    row: Row | None = None

    def ok(self) -> bool:
        return self.status.ok()


def _request_row_key(row_key: str | bytes) -> bytes:
    """
    Coerce a row key inside a queued operation, reporting a bad key type as
    INVALID_ARGUMENT instead of an unexpected error
    """
    try:
        return _to_row_key(row_key)
    except TypeError as exc:
        raise core_exceptions.InvalidArgument(str(exc)) from exc


def _as_mutation_list(mutations: Mutation | Iterable[Mutation] | None) -> list[Mutation]:
    if mutations is None:
        return []
    if isinstance(mutations, Mutation):
        return [mutations]
    return list(mutations)


class Table:
    """
    Main Data API surface for a single table

    Mutations and reads are executed against a RowStore. The ``async_*``
    methods schedule the operation on a caller supplied CompletionQueue and
    return a concurrent.futures.Future immediately; errors are delivered as
    a Status in the future's result, never raised. The remaining methods
    block the calling thread and raise google.api_core exceptions.
    """

    def __init__(
        self,
        store: "RowStore",
        table_id: str,
        *,
        table_name: str | None = None,
        default_operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        default_mutate_rows_operation_timeout: float = DEFAULT_MUTATE_ROWS_OPERATION_TIMEOUT,
    ):
        """
        Args:
            - store: the row store operations are executed against
            - table_id: the ID of the table
            - table_name: the name the store knows the table by, usually the
                fully qualified table path. Defaults to table_id
            - default_operation_timeout: the time budget, in seconds, for
                single-row operations, measured from submission
            - default_mutate_rows_operation_timeout: the time budget, in
                seconds, for bulk mutations
        Raises:
            - ValueError if a timeout is not a positive number
        """
        _validate_timeouts(default_operation_timeout)
        _validate_timeouts(default_mutate_rows_operation_timeout)
        self.store = store
        self.table_id = table_id
        self.table_name = table_name or table_id
        self.default_operation_timeout = default_operation_timeout
        self.default_mutate_rows_operation_timeout = (
            default_mutate_rows_operation_timeout
        )

    def _submit(
        self,
        cq: "CompletionQueue",
        operation_name: str,
        operation: Callable[[], Any],
        on_failure: Callable[[Status], Any],
        operation_timeout: float,
    ) -> concurrent.futures.Future:
        """
        Schedule operation on the queue, converting any failure into a
        result built by on_failure

        The operation is not started if it is dequeued after its deadline.
        """
        _validate_timeouts(operation_timeout)
        deadline = time.monotonic() + operation_timeout

        def run():
            try:
                if time.monotonic() > deadline:
                    raise core_exceptions.DeadlineExceeded(
                        f"operation_timeout of {operation_timeout:.1f}s exceeded before {operation_name} started"
                    )
                return operation()
            except ValueError as exc:
                invalid = core_exceptions.InvalidArgument(str(exc))
                return on_failure(Status.from_exception(invalid))
            except core_exceptions.GoogleAPICallError as exc:
                _LOGGER.debug(
                    "%s on %s failed: %r", operation_name, self.table_name, exc
                )
                return on_failure(Status.from_exception(exc))
            except Exception as exc:
                _LOGGER.exception(
                    "Unexpected error in %s on %s", operation_name, self.table_name
                )
                return on_failure(Status.from_exception(exc))

        _LOGGER.debug("Submitting %s on %s", operation_name, self.table_name)
        future = cq.run_async(run)
        if future.done() and future.exception() is not None:
            # rejected by a queue that was already shut down
            rejected: concurrent.futures.Future = concurrent.futures.Future()
            rejected.set_result(on_failure(Status.from_exception(future.exception())))
            return rejected
        return future

    # Mutations

    def async_apply(
        self,
        mutation: SingleRowMutation,
        cq: "CompletionQueue",
        *,
        operation_timeout: float | None = None,
    ) -> concurrent.futures.Future:
        """
        Apply a single-row mutation atomically

        Cells already present in the row are left unchanged unless
        explicitly changed by ``mutation``.

        Args:
            - mutation: the row key and mutations to apply. The mutation
                list is copied on submission
            - cq: the queue that executes the operation
            - operation_timeout: the time budget for the operation, in
                seconds. Defaults to the table's default_operation_timeout
        Returns:
            - Future resolving to a Status
        """
        row_key = mutation.row_key
        mutations = list(mutation.mutations)

        def operation():
            self._apply(row_key, mutations)
            return OK_STATUS

        return self._submit(
            cq,
            "MutateRow",
            operation,
            lambda status: status,
            operation_timeout or self.default_operation_timeout,
        )

    def apply(self, mutation: SingleRowMutation) -> None:
        """
        Blocking version of async_apply

        Raises:
            - ValueError: if the mutation list is empty or too long
            - GoogleAPICallError: if the row store rejects the mutation
        """
        self._apply(mutation.row_key, list(mutation.mutations))

    def _apply(self, row_key: bytes, mutations: list[Mutation]):
        _validate_mutations(mutations)
        self.store.mutate_row(self.table_name, row_key, mutations)

    def async_bulk_apply(
        self,
        bulk_mutation: BulkMutation,
        cq: "CompletionQueue",
        *,
        operation_timeout: float | None = None,
    ) -> concurrent.futures.Future:
        """
        Apply mutations to multiple rows

        Each entry is applied atomically, but entries are applied
        independently and in no particular order. A failed entry does not
        prevent the others from being applied.

        Args:
            - bulk_mutation: the entries to apply. Entries are copied on
                submission
            - cq: the queue that executes the operation
            - operation_timeout: the time budget for the operation, in
                seconds. Defaults to the table's
                default_mutate_rows_operation_timeout
        Returns:
            - Future resolving to a list of FailedMutation, one per rejected
                entry, in index order. An empty list means every entry was
                applied.
        """
        entries = [
            SingleRowMutation(entry.row_key, list(entry.mutations))
            for entry in bulk_mutation
        ]

        def on_failure(status):
            return [FailedMutation(idx, entry, status) for idx, entry in enumerate(entries)]

        return self._submit(
            cq,
            "MutateRows",
            lambda: self._bulk_apply(entries),
            on_failure,
            operation_timeout or self.default_mutate_rows_operation_timeout,
        )

    def bulk_apply(self, bulk_mutation: BulkMutation) -> None:
        """
        Blocking version of async_bulk_apply

        Raises:
            - MutationsExceptionGroup if one or more entries fail
                Contains a FailedMutationEntryError for each failed entry
        """
        entries = list(bulk_mutation)
        try:
            failures = self._bulk_apply(entries)
        except ValueError as exc:
            status = Status.from_exception(core_exceptions.InvalidArgument(str(exc)))
            failures = [
                FailedMutation(idx, entry, status) for idx, entry in enumerate(entries)
            ]
        except core_exceptions.GoogleAPICallError as exc:
            status = Status.from_exception(exc)
            failures = [
                FailedMutation(idx, entry, status) for idx, entry in enumerate(entries)
            ]
        if failures:
            errors = [
                FailedMutationEntryError(
                    failure.index, failure.entry, failure.status.to_exception()
                )
                for failure in failures
            ]
            raise MutationsExceptionGroup(errors, len(entries))

    def _bulk_apply(self, entries: list[SingleRowMutation]) -> list[FailedMutation]:
        total = sum(len(entry) for entry in entries)
        if total > _MUTATE_ROWS_REQUEST_MUTATION_LIMIT:
            raise ValueError(
                f"bulk mutation must contain at most {_MUTATE_ROWS_REQUEST_MUTATION_LIMIT} mutations, got {total}"
            )
        failures: list[FailedMutation] = []
        # entries that fail client-side validation are reported without being sent
        valid: list[tuple[int, SingleRowMutation]] = []
        for idx, entry in enumerate(entries):
            try:
                _validate_mutations(entry.mutations)
            except ValueError as exc:
                status = Status.from_exception(core_exceptions.InvalidArgument(str(exc)))
                failures.append(FailedMutation(idx, entry, status))
            else:
                valid.append((idx, entry))
        if valid:
            statuses = self.store.mutate_rows(
                self.table_name, [entry for _, entry in valid]
            )
            if len(statuses) != len(valid):
                raise core_exceptions.InternalServerError(
                    f"expected {len(valid)} entry statuses, got {len(statuses)}"
                )
            for (idx, entry), status in zip(valid, statuses):
                if not status.ok():
                    failures.append(FailedMutation(idx, entry, status))
        failures.sort(key=lambda f: f.index)
        if failures:
            _LOGGER.debug(
                "%d of %d entries failed in MutateRows on %s",
                len(failures),
                len(entries),
                self.table_name,
            )
        return failures

    def async_check_and_mutate_row(
        self,
        row_key: str | bytes,
        predicate: "RowFilter" | None,
        true_case_mutations: Mutation | Iterable[Mutation] | None,
        false_case_mutations: Mutation | Iterable[Mutation] | None,
        cq: "CompletionQueue",
        *,
        operation_timeout: float | None = None,
    ) -> concurrent.futures.Future:
        """
        Mutate a row atomically based on the output of a predicate filter

        Exactly one of the two branches is applied: true_case_mutations if
        the predicate yields at least one cell of the row, and
        false_case_mutations otherwise. If the row does not exist, or the
        operation fails, neither branch is applied.

        Args:
            - row_key: the key of the row to mutate
            - predicate: the filter applied to the contents of the row. If
                None, checks whether the row contains any cells at all
            - true_case_mutations: mutations applied, in order, if the
                predicate matches
            - false_case_mutations: mutations applied, in order, if the
                predicate does not match. At least one of the two branches
                must be non-empty
            - cq: the queue that executes the operation
            - operation_timeout: the time budget for the operation, in
                seconds. Defaults to the table's default_operation_timeout
        Returns:
            - Future resolving to a CheckAndMutateResult
        """
        true_mutations = _as_mutation_list(true_case_mutations)
        false_mutations = _as_mutation_list(false_case_mutations)

        def operation():
            matched = self._check_and_mutate_row(
                _request_row_key(row_key), predicate, true_mutations, false_mutations
            )
            return CheckAndMutateResult.from_predicate(matched)

        return self._submit(
            cq,
            "CheckAndMutateRow",
            operation,
            CheckAndMutateResult.failed,
            operation_timeout or self.default_operation_timeout,
        )

    def check_and_mutate_row(
        self,
        row_key: str | bytes,
        predicate: "RowFilter" | None,
        true_case_mutations: Mutation | Iterable[Mutation] | None = None,
        false_case_mutations: Mutation | Iterable[Mutation] | None = None,
    ) -> bool:
        """
        Blocking version of async_check_and_mutate_row

        Returns:
            - bool indicating whether the predicate was true or false
        Raises:
            - NotFound: if the row does not exist
            - GoogleAPICallError: if the row store rejects the request
        """
        return self._check_and_mutate_row(
            row_key,
            predicate,
            _as_mutation_list(true_case_mutations),
            _as_mutation_list(false_case_mutations),
        )

    def _check_and_mutate_row(
        self,
        row_key: str | bytes,
        predicate: "RowFilter" | None,
        true_mutations: list[Mutation],
        false_mutations: list[Mutation],
    ) -> bool:
        if not true_mutations and not false_mutations:
            raise ValueError(
                "at least one of true_case_mutations or false_case_mutations must be set"
            )
        _validate_mutations(true_mutations, allow_empty=True)
        _validate_mutations(false_mutations, allow_empty=True)
        return self.store.check_and_mutate_row(
            self.table_name,
            _to_row_key(row_key),
            predicate,
            true_mutations,
            false_mutations,
        )

    def async_read_modify_write_row(
        self,
        row_key: str | bytes,
        rules: "ReadModifyWriteRule" | list["ReadModifyWriteRule"],
        cq: "CompletionQueue",
        *,
        operation_timeout: float | None = None,
    ) -> concurrent.futures.Future:
        """
        Read and modify a row atomically according to the input rules

        The new value for the timestamp is the greater of the existing
        timestamp or the current time.

        Returns:
            - Future resolving to a ReadRowResult holding the modified cells
        """
        rules = rules if isinstance(rules, list) else [rules]

        def operation():
            return ReadRowResult(
                OK_STATUS, self._read_modify_write_row(_request_row_key(row_key), rules)
            )

        return self._submit(
            cq,
            "ReadModifyWriteRow",
            operation,
            ReadRowResult,
            operation_timeout or self.default_operation_timeout,
        )

    def read_modify_write_row(
        self,
        row_key: str | bytes,
        rules: "ReadModifyWriteRule" | list["ReadModifyWriteRule"],
    ) -> Row:
        """
        Blocking version of async_read_modify_write_row

        Returns:
            - Row: containing cell data that was modified as part of the
                operation
        """
        rules = rules if isinstance(rules, list) else [rules]
        return self._read_modify_write_row(row_key, rules)

    def _read_modify_write_row(
        self, row_key: str | bytes, rules: list["ReadModifyWriteRule"]
    ) -> Row:
        if not rules:
            raise ValueError("rules must contain at least one item")
        return self.store.read_modify_write_row(
            self.table_name, _to_row_key(row_key), rules
        )

    # Reads

    def async_read_rows(
        self,
        cq: "CompletionQueue",
        *,
        row_keys: Iterable[str | bytes] | None = None,
        filter_: "RowFilter" | None = None,
        operation_timeout: float | None = None,
    ) -> concurrent.futures.Future:
        """
        Read a set of rows, or the whole table if row_keys is None

        Returns:
            - Future resolving to a ReadRowsResult, with rows in key order
        """
        if row_keys is not None:
            row_keys = list(row_keys)

        def operation():
            keys = (
                [_request_row_key(k) for k in row_keys]
                if row_keys is not None
                else None
            )
            return ReadRowsResult(
                OK_STATUS, self.store.read_rows(self.table_name, keys, filter_)
            )

        return self._submit(
            cq,
            "ReadRows",
            operation,
            ReadRowsResult,
            operation_timeout or self.default_operation_timeout,
        )

    def read_rows(
        self,
        *,
        row_keys: Iterable[str | bytes] | None = None,
        filter_: "RowFilter" | None = None,
    ) -> list[Row]:
        """
        Blocking version of async_read_rows
        """
        keys = [_to_row_key(k) for k in row_keys] if row_keys is not None else None
        return self.store.read_rows(self.table_name, keys, filter_)

    def async_read_row(
        self,
        row_key: str | bytes,
        cq: "CompletionQueue",
        *,
        filter_: "RowFilter" | None = None,
        operation_timeout: float | None = None,
    ) -> concurrent.futures.Future:
        """
        Read a single row

        Returns:
            - Future resolving to a ReadRowResult. A missing row is not an
                error: the status is ok and the row is None
        """
        def operation():
            return ReadRowResult(
                OK_STATUS, self._read_row(_request_row_key(row_key), filter_)
            )

        return self._submit(
            cq,
            "ReadRow",
            operation,
            ReadRowResult,
            operation_timeout or self.default_operation_timeout,
        )

    def read_row(
        self, row_key: str | bytes, *, filter_: "RowFilter" | None = None
    ) -> Row | None:
        """
        Blocking version of async_read_row
        """
        return self._read_row(_to_row_key(row_key), filter_)

    def _read_row(self, row_key: bytes, filter_: "RowFilter" | None) -> Row | None:
        rows = self.store.read_rows(self.table_name, [row_key], filter_)
        return rows[0] if rows else None

    def __repr__(self):
        return f"Table(table_name={self.table_name!r})"
