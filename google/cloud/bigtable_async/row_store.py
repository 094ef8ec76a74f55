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

import abc
import logging
import re
import threading
import time

from typing import Iterable, Sequence, TYPE_CHECKING

from google.api_core import exceptions as core_exceptions

from google.cloud.bigtable_async.mutations import DeleteAllFromFamily
from google.cloud.bigtable_async.mutations import DeleteAllFromRow
from google.cloud.bigtable_async.mutations import DeleteRangeFromColumn
from google.cloud.bigtable_async.mutations import Mutation
from google.cloud.bigtable_async.mutations import SetCell
from google.cloud.bigtable_async.mutations import _SERVER_SIDE_TIMESTAMP
from google.cloud.bigtable_async.row import Cell, Row
from google.cloud.bigtable_async.status import OK_STATUS, Status

if TYPE_CHECKING:
    from google.cloud.bigtable_async.mutations import SingleRowMutation
    from google.cloud.bigtable_async.read_modify_write_rules import (
        ReadModifyWriteRule,
    )
    from google.cloud.bigtable_async.row_filters import RowFilter

_LOGGER = logging.getLogger(__name__)

# type alias for the contents of a single row: family -> qualifier -> timestamp -> value
_RowData = dict[str, dict[bytes, dict[int, bytes]]]


def _server_timestamp_micros() -> int:
    """Current time in microseconds, truncated to millisecond granularity"""
    return int(time.time() * 1000) * 1000


class RowStore(abc.ABC):
    """
    The row-oriented data store that Table operations are executed against

    Implementations must apply each single-row mutation atomically, and must
    evaluate the predicate and apply the selected branch of a
    check-and-mutate atomically with respect to other writers. Failures are
    reported by raising google.api_core exceptions.
    """

    @abc.abstractmethod
    def mutate_row(
        self, table_id: str, row_key: bytes, mutations: Sequence[Mutation]
    ) -> None:
        raise NotImplementedError

    def mutate_rows(
        self, table_id: str, entries: Sequence["SingleRowMutation"]
    ) -> list[Status]:
        """
        Apply a list of row mutations, returning one Status per entry

        Each entry is applied independently: a failed entry does not
        prevent the others from being applied.
        """
        statuses = []
        for entry in entries:
            try:
                self.mutate_row(table_id, entry.row_key, entry.mutations)
            except core_exceptions.GoogleAPICallError as exc:
                statuses.append(Status.from_exception(exc))
            else:
                statuses.append(OK_STATUS)
        return statuses

    @abc.abstractmethod
    def check_and_mutate_row(
        self,
        table_id: str,
        row_key: bytes,
        predicate: "RowFilter" | None,
        true_mutations: Sequence[Mutation],
        false_mutations: Sequence[Mutation],
    ) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def read_rows(
        self,
        table_id: str,
        row_keys: Iterable[bytes] | None = None,
        filter_: "RowFilter" | None = None,
    ) -> list[Row]:
        raise NotImplementedError

    @abc.abstractmethod
    def read_modify_write_row(
        self, table_id: str, row_key: bytes, rules: Sequence["ReadModifyWriteRule"]
    ) -> Row:
        raise NotImplementedError


class _InMemoryTable:
    def __init__(self, column_families: Iterable[str]):
        self.column_families = set(column_families)
        self.rows: dict[bytes, _RowData] = {}


class InMemoryRowStore(RowStore):
    """
    A thread-safe, in-process RowStore with Bigtable write semantics

    Tables must be created with their column families before use. All
    operations hold a single lock, so every row write, and every
    check-and-mutate, is atomic with respect to concurrent callers.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tables: dict[str, _InMemoryTable] = {}

    def create_table(self, table_id: str, column_families: Iterable[str] = ()):
        with self._lock:
            if table_id in self._tables:
                raise core_exceptions.AlreadyExists(f"Table {table_id} already exists")
            self._tables[table_id] = _InMemoryTable(column_families)
        _LOGGER.debug("Created table %s", table_id)

    def delete_table(self, table_id: str):
        with self._lock:
            self._get_table(table_id)
            del self._tables[table_id]
        _LOGGER.debug("Deleted table %s", table_id)

    def table_exists(self, table_id: str) -> bool:
        with self._lock:
            return table_id in self._tables

    def drop_row_range(
        self,
        table_id: str,
        row_key_prefix: bytes | None = None,
        delete_all_data: bool = False,
    ):
        """
        Delete all rows in the table, or all rows starting with a prefix

        Exactly one of row_key_prefix or delete_all_data must be set
        """
        if (row_key_prefix is None) == (not delete_all_data):
            raise ValueError(
                "exactly one of row_key_prefix or delete_all_data must be set"
            )
        with self._lock:
            table = self._get_table(table_id)
            if delete_all_data:
                table.rows.clear()
            else:
                for key in [k for k in table.rows if k.startswith(row_key_prefix)]:
                    del table.rows[key]

    def _get_table(self, table_id: str) -> _InMemoryTable:
        try:
            return self._tables[table_id]
        except KeyError:
            raise core_exceptions.NotFound(f"Table not found: {table_id}") from None

    @staticmethod
    def _check_family(table: _InMemoryTable, family: str):
        if family not in table.column_families:
            raise core_exceptions.NotFound(
                f"Requested column family not found: {family!r}"
            )

    @staticmethod
    def _check_timestamp(timestamp_micros: int | None):
        if timestamp_micros is None or timestamp_micros == _SERVER_SIDE_TIMESTAMP:
            return
        if timestamp_micros % 1000 != 0:
            raise core_exceptions.InvalidArgument(
                f"Timestamp granularity mismatch: {timestamp_micros} is not a multiple of 1000 microseconds"
            )

    def _validate_mutations(
        self, table: _InMemoryTable, row_key: bytes, mutations: Sequence[Mutation]
    ):
        """
        Reject the whole request before anything is applied, so a row write
        is all-or-nothing
        """
        if not row_key:
            raise core_exceptions.InvalidArgument("Row key must not be empty")
        for mutation in mutations:
            if isinstance(mutation, SetCell):
                self._check_family(table, mutation.family)
                self._check_timestamp(mutation.timestamp_micros)
            elif isinstance(mutation, DeleteRangeFromColumn):
                self._check_family(table, mutation.family)
                self._check_timestamp(mutation.start_timestamp_micros)
                self._check_timestamp(mutation.end_timestamp_micros)
            elif isinstance(mutation, DeleteAllFromFamily):
                self._check_family(table, mutation.family_to_delete)
            elif not isinstance(mutation, DeleteAllFromRow):
                raise core_exceptions.InvalidArgument(
                    f"Unsupported mutation type: {type(mutation).__name__}"
                )

    @staticmethod
    def _apply_mutations(
        table: _InMemoryTable, row_key: bytes, mutations: Sequence[Mutation]
    ):
        row = table.rows.setdefault(row_key, {})
        now = _server_timestamp_micros()
        for mutation in mutations:
            if isinstance(mutation, SetCell):
                timestamp = mutation.timestamp_micros
                if timestamp == _SERVER_SIDE_TIMESTAMP:
                    timestamp = now
                column = row.setdefault(mutation.family, {}).setdefault(
                    mutation.qualifier, {}
                )
                column[timestamp] = mutation.new_value
            elif isinstance(mutation, DeleteRangeFromColumn):
                column = row.get(mutation.family, {}).get(mutation.qualifier, {})
                start = mutation.start_timestamp_micros or 0
                end = mutation.end_timestamp_micros
                for timestamp in list(column):
                    if timestamp >= start and (end is None or timestamp < end):
                        del column[timestamp]
            elif isinstance(mutation, DeleteAllFromFamily):
                row.pop(mutation.family_to_delete, None)
            elif isinstance(mutation, DeleteAllFromRow):
                row.clear()
        # drop empty columns, families and rows, as the server does
        for family in list(row):
            for qualifier in [q for q, cells in row[family].items() if not cells]:
                del row[family][qualifier]
            if not row[family]:
                del row[family]
        if not row:
            del table.rows[row_key]

    @staticmethod
    def _row_cells(row_key: bytes, row: _RowData) -> list[Cell]:
        cells = []
        for family in sorted(row):
            for qualifier in sorted(row[family]):
                column = row[family][qualifier]
                for timestamp in sorted(column, reverse=True):
                    cells.append(
                        Cell(row_key, family, qualifier, timestamp, column[timestamp])
                    )
        return cells

    @staticmethod
    def _apply_filter(filter_: "RowFilter", cells: list[Cell]) -> list[Cell]:
        try:
            return filter_.filter_cells(cells)
        except re.error as exc:
            raise core_exceptions.InvalidArgument(
                f"Invalid regular expression in filter: {exc}"
            ) from exc

    def mutate_row(
        self, table_id: str, row_key: bytes, mutations: Sequence[Mutation]
    ) -> None:
        with self._lock:
            table = self._get_table(table_id)
            self._validate_mutations(table, row_key, mutations)
            self._apply_mutations(table, row_key, mutations)

    def check_and_mutate_row(
        self,
        table_id: str,
        row_key: bytes,
        predicate: "RowFilter" | None,
        true_mutations: Sequence[Mutation],
        false_mutations: Sequence[Mutation],
    ) -> bool:
        """
        Apply true_mutations if the predicate yields any cells for the row,
        and false_mutations otherwise

        A predicate of None checks whether the row has any cells at all.

        Raises:
          - NotFound: if the row does not exist. No mutations are applied.
        """
        with self._lock:
            table = self._get_table(table_id)
            self._validate_mutations(table, row_key, true_mutations)
            self._validate_mutations(table, row_key, false_mutations)
            if row_key not in table.rows:
                raise core_exceptions.NotFound(f"Row not found: {row_key!r}")
            cells = self._row_cells(row_key, table.rows[row_key])
            if predicate is None:
                matched = bool(cells)
            else:
                matched = bool(self._apply_filter(predicate, cells))
            branch = true_mutations if matched else false_mutations
            self._apply_mutations(table, row_key, branch)
            return matched

    def read_rows(
        self,
        table_id: str,
        row_keys: Iterable[bytes] | None = None,
        filter_: "RowFilter" | None = None,
    ) -> list[Row]:
        with self._lock:
            table = self._get_table(table_id)
            if row_keys is None:
                keys = sorted(table.rows)
            else:
                keys = sorted(set(row_keys) & set(table.rows))
            results = []
            for key in keys:
                cells = self._row_cells(key, table.rows[key])
                if filter_ is not None:
                    cells = self._apply_filter(filter_, cells)
                if cells:
                    results.append(Row(key, cells))
            return results

    def read_modify_write_row(
        self, table_id: str, row_key: bytes, rules: Sequence["ReadModifyWriteRule"]
    ) -> Row:
        """
        Apply each rule to the latest cell of its column, writing the result
        as a new cell. Returns a Row with the cells that were written.
        """
        with self._lock:
            table = self._get_table(table_id)
            if not row_key:
                raise core_exceptions.InvalidArgument("Row key must not be empty")
            for rule in rules:
                self._check_family(table, rule.family)
            existing = table.rows.get(row_key, {})
            # compute every new value before writing, so a bad rule leaves the row untouched
            pending: dict[tuple[str, bytes], tuple[int, bytes]] = {}
            now = _server_timestamp_micros()
            for rule in rules:
                column_id = (rule.family, rule.qualifier)
                if column_id in pending:
                    latest_ts, latest_value = pending[column_id]
                else:
                    column = existing.get(rule.family, {}).get(rule.qualifier, {})
                    latest_ts = max(column) if column else None
                    latest_value = column[latest_ts] if column else None
                try:
                    new_value = rule._apply(latest_value)
                except ValueError as exc:
                    raise core_exceptions.InvalidArgument(str(exc)) from exc
                new_ts = max(now, latest_ts) if latest_ts is not None else now
                pending[column_id] = (new_ts, new_value)
            row = table.rows.setdefault(row_key, {})
            written = []
            for (family, qualifier), (timestamp, value) in pending.items():
                row.setdefault(family, {}).setdefault(qualifier, {})[timestamp] = value
                written.append(Cell(row_key, family, qualifier, timestamp, value))
            written.sort()
            return Row(row_key, written)
