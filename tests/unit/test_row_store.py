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

import pytest

import mock

from google.api_core import exceptions as core_exceptions

from google.cloud.bigtable_async.mutations import DeleteAllFromFamily
from google.cloud.bigtable_async.mutations import DeleteAllFromRow
from google.cloud.bigtable_async.mutations import DeleteRangeFromColumn
from google.cloud.bigtable_async.mutations import SetCell
from google.cloud.bigtable_async.mutations import SingleRowMutation
from google.cloud.bigtable_async.row import Cell

TABLE_ID = "test-table"
FAMILY = "family1"


def _cells(store, table_id=TABLE_ID, **kwargs):
    return [cell for row in store.read_rows(table_id, **kwargs) for cell in row]


class TestServerTimestamp:
    def test_millisecond_granularity(self):
        from google.cloud.bigtable_async.row_store import _server_timestamp_micros

        with mock.patch("time.time", return_value=1.2345678):
            assert _server_timestamp_micros() == 1234000


class TestInMemoryRowStore:
    def _target_class(self):
        from google.cloud.bigtable_async.row_store import InMemoryRowStore

        return InMemoryRowStore

    def _make_one(self, families=(FAMILY, "family2")):
        store = self._target_class()()
        store.create_table(TABLE_ID, families)
        return store

    def test_is_row_store(self):
        from google.cloud.bigtable_async.row_store import RowStore

        assert isinstance(self._make_one(), RowStore)

    def test_create_table_twice(self):
        store = self._make_one()
        with pytest.raises(core_exceptions.AlreadyExists):
            store.create_table(TABLE_ID, [FAMILY])

    def test_delete_table(self):
        store = self._make_one()
        assert store.table_exists(TABLE_ID)
        store.delete_table(TABLE_ID)
        assert not store.table_exists(TABLE_ID)
        with pytest.raises(core_exceptions.NotFound):
            store.delete_table(TABLE_ID)

    def test_unknown_table(self):
        store = self._make_one()
        with pytest.raises(core_exceptions.NotFound) as e:
            store.mutate_row("missing", b"row", [DeleteAllFromRow()])
        assert "Table not found: missing" in str(e.value)
        with pytest.raises(core_exceptions.NotFound):
            store.read_rows("missing")

    def test_mutate_row(self):
        store = self._make_one()
        store.mutate_row(
            TABLE_ID,
            b"row",
            [
                SetCell(FAMILY, b"c0", b"v1000", 1000),
                SetCell(FAMILY, b"c0", b"v2000", 2000),
                SetCell("family2", b"c1", b"other", 1000),
            ],
        )
        assert _cells(store) == [
            Cell(b"row", FAMILY, b"c0", 2000, b"v2000"),
            Cell(b"row", FAMILY, b"c0", 1000, b"v1000"),
            Cell(b"row", "family2", b"c1", 1000, b"other"),
        ]

    def test_mutate_row_overwrites_same_timestamp(self):
        store = self._make_one()
        store.mutate_row(
            TABLE_ID,
            b"row",
            [SetCell(FAMILY, b"c0", b"first", 1000), SetCell(FAMILY, b"c0", b"second", 1000)],
        )
        assert _cells(store) == [Cell(b"row", FAMILY, b"c0", 1000, b"second")]

    def test_mutate_row_server_timestamp(self):
        store = self._make_one()
        with mock.patch(
            "google.cloud.bigtable_async.row_store._server_timestamp_micros",
            return_value=5000,
        ):
            store.mutate_row(TABLE_ID, b"row", [SetCell(FAMILY, b"c0", b"v")])
        assert _cells(store)[0].timestamp_micros == 5000

    def test_mutate_row_unknown_family_is_atomic(self):
        """A rejected mutation list leaves the row unchanged"""
        store = self._make_one()
        with pytest.raises(core_exceptions.NotFound) as e:
            store.mutate_row(
                TABLE_ID,
                b"row",
                [SetCell(FAMILY, b"c0", b"v", 1000), SetCell("nope", b"c0", b"v", 1000)],
            )
        assert "column family not found" in str(e.value)
        assert store.read_rows(TABLE_ID) == []

    @pytest.mark.parametrize("timestamp", [1, 999, 1500])
    def test_mutate_row_bad_granularity(self, timestamp):
        store = self._make_one()
        with pytest.raises(core_exceptions.InvalidArgument) as e:
            store.mutate_row(TABLE_ID, b"row", [SetCell(FAMILY, b"c0", b"v", timestamp)])
        assert "Timestamp granularity mismatch" in str(e.value)

    def test_mutate_row_empty_key(self):
        store = self._make_one()
        with pytest.raises(core_exceptions.InvalidArgument):
            store.mutate_row(TABLE_ID, b"", [SetCell(FAMILY, b"c0", b"v", 1000)])

    def test_mutate_row_unsupported_mutation(self):
        from google.cloud.bigtable_async.mutations import Mutation

        store = self._make_one()
        with pytest.raises(core_exceptions.InvalidArgument) as e:
            store.mutate_row(TABLE_ID, b"row", [Mutation()])
        assert "Unsupported mutation type: Mutation" in str(e.value)

    def test_delete_range_from_column(self):
        store = self._make_one()
        store.mutate_row(
            TABLE_ID,
            b"row",
            [SetCell(FAMILY, b"c0", b"v", ts) for ts in (1000, 2000, 3000, 4000)],
        )
        store.mutate_row(
            TABLE_ID, b"row", [DeleteRangeFromColumn(FAMILY, b"c0", 2000, 4000)]
        )
        assert [c.timestamp_micros for c in _cells(store)] == [4000, 1000]
        store.mutate_row(TABLE_ID, b"row", [DeleteRangeFromColumn(FAMILY, b"c0")])
        assert store.read_rows(TABLE_ID) == []

    def test_delete_all_from_family(self):
        store = self._make_one()
        store.mutate_row(
            TABLE_ID,
            b"row",
            [SetCell(FAMILY, b"c0", b"v", 1000), SetCell("family2", b"c0", b"v", 1000)],
        )
        store.mutate_row(TABLE_ID, b"row", [DeleteAllFromFamily(FAMILY)])
        assert [c.family for c in _cells(store)] == ["family2"]

    def test_delete_all_from_row_then_set(self):
        """Mutations in a single request are applied in order"""
        store = self._make_one()
        store.mutate_row(TABLE_ID, b"row", [SetCell(FAMILY, b"c0", b"old", 1000)])
        store.mutate_row(
            TABLE_ID,
            b"row",
            [DeleteAllFromRow(), SetCell(FAMILY, b"c1", b"new", 2000)],
        )
        assert _cells(store) == [Cell(b"row", FAMILY, b"c1", 2000, b"new")]

    def test_mutate_rows_independent(self):
        store = self._make_one()
        statuses = store.mutate_rows(
            TABLE_ID,
            [
                SingleRowMutation(b"a", SetCell(FAMILY, b"c0", b"v", 1000)),
                SingleRowMutation(b"b", SetCell("nope", b"c0", b"v", 1000)),
                SingleRowMutation(b"c", SetCell(FAMILY, b"c0", b"v", 1000)),
            ],
        )
        assert [s.ok() for s in statuses] == [True, False, True]
        assert statuses[1].code.name == "NOT_FOUND"
        assert [row.row_key for row in store.read_rows(TABLE_ID)] == [b"a", b"c"]

    def test_read_rows_keys_and_filter(self):
        from google.cloud.bigtable_async.row_filters import ColumnQualifierRegexFilter

        store = self._make_one()
        for key in (b"c", b"a", b"b"):
            store.mutate_row(
                TABLE_ID,
                key,
                [SetCell(FAMILY, b"c0", key, 1000), SetCell(FAMILY, b"c1", key, 1000)],
            )
        rows = store.read_rows(TABLE_ID)
        assert [row.row_key for row in rows] == [b"a", b"b", b"c"]
        rows = store.read_rows(TABLE_ID, row_keys=[b"c", b"missing", b"a"])
        assert [row.row_key for row in rows] == [b"a", b"c"]
        rows = store.read_rows(
            TABLE_ID, row_keys=[b"b"], filter_=ColumnQualifierRegexFilter(b"c1")
        )
        assert rows[0].get_cells() == [Cell(b"b", FAMILY, b"c1", 1000, b"b")]

    def test_read_rows_filtered_out(self):
        """Rows with no cells passing the filter are omitted"""
        from google.cloud.bigtable_async.row_filters import BlockAllFilter

        store = self._make_one()
        store.mutate_row(TABLE_ID, b"row", [SetCell(FAMILY, b"c0", b"v", 1000)])
        assert store.read_rows(TABLE_ID, filter_=BlockAllFilter(True)) == []

    def test_read_rows_bad_regex(self):
        from google.cloud.bigtable_async.row_filters import ValueRegexFilter

        store = self._make_one()
        store.mutate_row(TABLE_ID, b"row", [SetCell(FAMILY, b"c0", b"v", 1000)])
        with pytest.raises(core_exceptions.InvalidArgument) as e:
            store.read_rows(TABLE_ID, filter_=ValueRegexFilter(b"[unclosed"))
        assert "Invalid regular expression" in str(e.value)

    def test_drop_row_range(self):
        store = self._make_one()
        for key in (b"keep-1", b"drop-1", b"drop-2"):
            store.mutate_row(TABLE_ID, key, [SetCell(FAMILY, b"c0", b"v", 1000)])
        store.drop_row_range(TABLE_ID, row_key_prefix=b"drop-")
        assert [row.row_key for row in store.read_rows(TABLE_ID)] == [b"keep-1"]
        store.drop_row_range(TABLE_ID, delete_all_data=True)
        assert store.read_rows(TABLE_ID) == []

    @pytest.mark.parametrize(
        "kwargs", [{}, {"row_key_prefix": b"a", "delete_all_data": True}]
    )
    def test_drop_row_range_bad_args(self, kwargs):
        store = self._make_one()
        with pytest.raises(ValueError):
            store.drop_row_range(TABLE_ID, **kwargs)


class TestInMemoryCheckAndMutate:
    def _make_one(self):
        from google.cloud.bigtable_async.row_store import InMemoryRowStore

        store = InMemoryRowStore()
        store.create_table(TABLE_ID, [FAMILY])
        store.mutate_row(TABLE_ID, b"row", [SetCell(FAMILY, b"c0", b"v1000", 1000)])
        return store

    @pytest.mark.parametrize(
        "regex,expected_matched,expected_column",
        [(b"v1000", True, b"true"), (b"not-there", False, b"false")],
    )
    def test_branches(self, regex, expected_matched, expected_column):
        from google.cloud.bigtable_async.row_filters import ValueRegexFilter

        store = self._make_one()
        matched = store.check_and_mutate_row(
            TABLE_ID,
            b"row",
            ValueRegexFilter(regex),
            [SetCell(FAMILY, b"true", b"t", 2000)],
            [SetCell(FAMILY, b"false", b"f", 2000)],
        )
        assert matched is expected_matched
        qualifiers = {cell.column_qualifier for cell in _cells(store)}
        assert qualifiers == {b"c0", expected_column}

    def test_no_predicate(self):
        store = self._make_one()
        assert store.check_and_mutate_row(
            TABLE_ID, b"row", None, [SetCell(FAMILY, b"c1", b"v", 1000)], []
        )

    def test_absent_row(self):
        """Nothing is applied when the row does not exist"""
        from google.cloud.bigtable_async.row_filters import PassAllFilter

        store = self._make_one()
        with pytest.raises(core_exceptions.NotFound):
            store.check_and_mutate_row(
                TABLE_ID,
                b"missing",
                PassAllFilter(),
                [SetCell(FAMILY, b"c0", b"t", 1000)],
                [SetCell(FAMILY, b"c0", b"f", 1000)],
            )
        assert [row.row_key for row in store.read_rows(TABLE_ID)] == [b"row"]

    def test_invalid_branch_is_atomic(self):
        """A bad mutation in the unused branch still rejects the request"""
        from google.cloud.bigtable_async.row_filters import PassAllFilter

        store = self._make_one()
        with pytest.raises(core_exceptions.NotFound):
            store.check_and_mutate_row(
                TABLE_ID,
                b"row",
                PassAllFilter(),
                [SetCell(FAMILY, b"c1", b"t", 1000)],
                [SetCell("nope", b"c0", b"f", 1000)],
            )
        assert len(_cells(store)) == 1


class TestInMemoryReadModifyWrite:
    def _make_one(self):
        from google.cloud.bigtable_async.row_store import InMemoryRowStore

        store = InMemoryRowStore()
        store.create_table(TABLE_ID, [FAMILY])
        return store

    def test_increment_new_column(self):
        from google.cloud.bigtable_async.read_modify_write_rules import IncrementRule

        store = self._make_one()
        with mock.patch(
            "google.cloud.bigtable_async.row_store._server_timestamp_micros",
            return_value=7000,
        ):
            row = store.read_modify_write_row(
                TABLE_ID, b"row", [IncrementRule(FAMILY, b"counter", 5)]
            )
        assert len(row) == 1
        assert int(row[0]) == 5
        assert row[0].timestamp_micros == 7000
        assert _cells(store) == list(row)

    def test_timestamp_not_older_than_latest(self):
        from google.cloud.bigtable_async.read_modify_write_rules import AppendValueRule

        store = self._make_one()
        store.mutate_row(TABLE_ID, b"row", [SetCell(FAMILY, b"c0", b"abc", 9000)])
        with mock.patch(
            "google.cloud.bigtable_async.row_store._server_timestamp_micros",
            return_value=7000,
        ):
            row = store.read_modify_write_row(
                TABLE_ID, b"row", [AppendValueRule(FAMILY, b"c0", b"def")]
            )
        assert row[0].timestamp_micros == 9000
        assert row[0].value == b"abcdef"

    def test_rules_chain_on_same_column(self):
        from google.cloud.bigtable_async.read_modify_write_rules import AppendValueRule

        store = self._make_one()
        row = store.read_modify_write_row(
            TABLE_ID,
            b"row",
            [AppendValueRule(FAMILY, b"c0", b"a"), AppendValueRule(FAMILY, b"c0", b"b")],
        )
        assert [cell.value for cell in row] == [b"ab"]

    def test_bad_increment_leaves_row(self):
        from google.cloud.bigtable_async.read_modify_write_rules import AppendValueRule
        from google.cloud.bigtable_async.read_modify_write_rules import IncrementRule

        store = self._make_one()
        store.mutate_row(TABLE_ID, b"row", [SetCell(FAMILY, b"c0", b"abc", 1000)])
        with pytest.raises(core_exceptions.InvalidArgument):
            store.read_modify_write_row(
                TABLE_ID,
                b"row",
                [AppendValueRule(FAMILY, b"c1", b"x"), IncrementRule(FAMILY, b"c0")],
            )
        assert _cells(store) == [Cell(b"row", FAMILY, b"c0", 1000, b"abc")]

    def test_unknown_family(self):
        from google.cloud.bigtable_async.read_modify_write_rules import IncrementRule

        store = self._make_one()
        with pytest.raises(core_exceptions.NotFound):
            store.read_modify_write_row(TABLE_ID, b"row", [IncrementRule("nope", b"c")])


class TestRowStoreBase:
    def test_mutate_rows_uses_mutate_row(self):
        from google.cloud.bigtable_async.row_store import RowStore

        class _Store(RowStore):
            mutate_row = mock.Mock(
                side_effect=[None, core_exceptions.Aborted("conflict")]
            )
            check_and_mutate_row = mock.Mock()
            read_rows = mock.Mock()
            read_modify_write_row = mock.Mock()

        entries = [
            SingleRowMutation(b"a", DeleteAllFromRow()),
            SingleRowMutation(b"b", DeleteAllFromRow()),
        ]
        statuses = _Store().mutate_rows(TABLE_ID, entries)
        assert statuses[0].ok()
        assert statuses[1].code.name == "ABORTED"
        assert statuses[1].message == "conflict"
