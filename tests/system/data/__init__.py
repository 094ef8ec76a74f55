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

import uuid

import pytest

from google.cloud.bigtable_async.row import Cell

TEST_FAMILY = "family1"


class SystemTestRunner:
    """
    configures a system test class with the table and column families to
    create for each test
    """

    @pytest.fixture(scope="function")
    def init_table_id(self):
        """
        The table_id to use when creating a new test table
        """
        return f"test-table-{uuid.uuid4().hex}"

    @pytest.fixture(scope="session")
    def column_family_config(self):
        """
        specify column families to create when creating a new test table
        """
        return [TEST_FAMILY]

    @staticmethod
    def read_all_cells(table):
        """
        Read every cell in the table, with a PassAllFilter
        """
        from google.cloud.bigtable_async.row_filters import PassAllFilter

        return [cell for row in table.read_rows(filter_=PassAllFilter()) for cell in row]

    @staticmethod
    def create_cells(table, cells):
        """
        Write the cells to the table with the blocking API, one row at a time
        """
        from google.cloud.bigtable_async.mutations import SetCell
        from google.cloud.bigtable_async.mutations import SingleRowMutation

        rows = {}
        for cell in cells:
            rows.setdefault(cell.row_key, SingleRowMutation(cell.row_key)).append(
                SetCell(cell.family, cell.column_qualifier, cell.value, cell.timestamp_micros)
            )
        for mutation in rows.values():
            table.apply(mutation)

    @staticmethod
    def assert_equal_unordered(expected, actual):
        assert sorted(expected) == sorted(actual)


def cell(row_key, qualifier, timestamp_micros, value, family=TEST_FAMILY):
    return Cell(row_key, family, qualifier, timestamp_micros, value)
