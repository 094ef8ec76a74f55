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

from collections import OrderedDict
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Sequence, Generator, overload, Any

# Type aliases used internally for readability.
row_key = bytes
family_id = str
qualifier = bytes
row_value = bytes


@total_ordering
@dataclass(frozen=True, eq=False)
class Cell:
    """
    Model class for cell data

    Cells are immutable. They are used both to describe the expected
    contents of a table, and to represent the results of a read.

    Timestamps are expressed in microseconds, with millisecond granularity.
    """

    row_key: row_key
    family: family_id
    column_qualifier: qualifier
    timestamp_micros: int
    value: row_value
    labels: tuple[str, ...] = field(default=())

    def __post_init__(self):
        # accept str arguments, but always store bytes
        if isinstance(self.row_key, str):
            object.__setattr__(self, "row_key", self.row_key.encode("utf-8"))
        if isinstance(self.column_qualifier, str):
            object.__setattr__(
                self, "column_qualifier", self.column_qualifier.encode("utf-8")
            )
        if isinstance(self.value, str):
            object.__setattr__(self, "value", self.value.encode("utf-8"))
        object.__setattr__(self, "labels", tuple(self.labels or ()))

    def __int__(self) -> int:
        """
        Allows casting cell to int
        Interprets value as a 64-bit big-endian signed integer, as expected by
        ReadModifyWrite increment rule
        """
        return int.from_bytes(self.value, byteorder="big", signed=True)

    def to_dict(self) -> dict[str, Any]:
        """
        Returns a dictionary representation of the cell in the Bigtable Cell
        proto format

        https://cloud.google.com/bigtable/docs/reference/data/rpc/google.bigtable.v2#cell
        """
        cell_dict: dict[str, Any] = {
            "value": self.value,
        }
        cell_dict["timestamp_micros"] = self.timestamp_micros
        if self.labels:
            cell_dict["labels"] = list(self.labels)
        return cell_dict

    def __str__(self) -> str:
        """
        Allows casting cell to str
        Prints encoded byte string, same as printing value directly.
        """
        return str(self.value)

    def __repr__(self):
        return f"Cell(row_key={self.row_key!r}, family='{self.family}', column_qualifier={self.column_qualifier!r}, timestamp_micros={self.timestamp_micros}, value={self.value!r}, labels={list(self.labels)})"

    """For Bigtable native ordering"""

    def _ordering_key(self):
        return (
            self.row_key,
            self.family,
            self.column_qualifier,
            -self.timestamp_micros,
            self.value,
            tuple(sorted(self.labels)),
        )

    def __lt__(self, other) -> bool:
        """
        Implements `<` operator
        """
        if not isinstance(other, Cell):
            return NotImplemented
        return self._ordering_key() < other._ordering_key()

    def __eq__(self, other) -> bool:
        """
        Implements `==` operator
        """
        if not isinstance(other, Cell):
            return NotImplemented
        return (
            self.row_key == other.row_key
            and self.family == other.family
            and self.column_qualifier == other.column_qualifier
            and self.value == other.value
            and self.timestamp_micros == other.timestamp_micros
            and sorted(self.labels) == sorted(other.labels)
        )

    def __hash__(self):
        """
        Implements `hash()` function to fingerprint cell
        """
        return hash(
            (
                self.row_key,
                self.family,
                self.column_qualifier,
                self.value,
                self.timestamp_micros,
                tuple(sorted(self.labels)),
            )
        )


class Row(Sequence[Cell]):
    """
    Model class for row data returned from the row store

    Does not represent all data contained in the row, only data returned by a
    query.
    Expected to be read-only to users, and written by the row store

    Can be indexed:
    cells = row["family", "qualifier"]
    """

    def __init__(
        self,
        key: row_key,
        cells: list[Cell],
    ):
        """
        Initializes a Row object

        Rows are built by the row store when answering a read, and by
        read-modify-write to report the cells it wrote. ``cells`` are
        expected in Bigtable native order.
        """
        self.row_key = key
        self._cells_map: dict[family_id, dict[qualifier, list[Cell]]] = OrderedDict()
        self._cells_list: list[Cell] = []
        # add cells to internal stores using Bigtable native ordering
        for cell in cells:
            if cell.family not in self._cells_map:
                self._cells_map[cell.family] = OrderedDict()
            if cell.column_qualifier not in self._cells_map[cell.family]:
                self._cells_map[cell.family][cell.column_qualifier] = []
            self._cells_map[cell.family][cell.column_qualifier].append(cell)
            self._cells_list.append(cell)

    def get_cells(
        self, family: str | None = None, qualifier: str | bytes | None = None
    ) -> list[Cell]:
        """
        Returns cells sorted in Bigtable native order:
            - Family lexicographically ascending
            - Qualifier ascending
            - Timestamp in reverse chronological order

        If family or qualifier not passed, will include all

        Can also be accessed through indexing:
          cells = row["family", "qualifier"]
          cells = row["family"]
        """
        if family is None:
            if qualifier is not None:
                # get_cells(None, "qualifier") is not allowed
                raise ValueError("Qualifier passed without family")
            else:
                # every cell in the row
                return self._cells_list
        if qualifier is None:
            # every cell in the family
            return list(self._get_all_from_family(family))
        if isinstance(qualifier, str):
            qualifier = qualifier.encode("utf-8")
        # cells of a single column
        if family not in self._cells_map:
            raise ValueError(f"Family '{family}' not found in row '{self.row_key!r}'")
        if qualifier not in self._cells_map[family]:
            raise ValueError(
                f"Qualifier '{qualifier!r}' not found in family '{family}' in row '{self.row_key!r}'"
            )
        return self._cells_map[family][qualifier]

    def _get_all_from_family(self, family: family_id) -> Generator[Cell, None, None]:
        """
        Yields every cell in the row for the family, qualifier by qualifier
        """
        if family not in self._cells_map:
            raise ValueError(f"Family '{family}' not found in row '{self.row_key!r}'")
        qualifier_dict = self._cells_map.get(family, {})
        for cell_batch in qualifier_dict.values():
            for cell in cell_batch:
                yield cell

    def __repr__(self):
        cell_str_buffer = ["{"]
        for family, qualifier in self.get_column_components():
            cell_list = self[family, qualifier]
            repr_list = [cell.to_dict() for cell in cell_list]
            cell_str_buffer.append(f"  ('{family}', {qualifier}): {repr_list},")
        cell_str_buffer.append("}")
        cell_str = "\n".join(cell_str_buffer)
        return f"Row(key={self.row_key!r}, cells={cell_str})"

    def to_dict(self) -> dict[str, Any]:
        """
        Returns a dictionary representation of the row in the Bigtable Row
        proto format

        https://cloud.google.com/bigtable/docs/reference/data/rpc/google.bigtable.v2#row
        """
        families_list: list[dict[str, Any]] = []
        for family in self._cells_map:
            column_list: list[dict[str, Any]] = []
            for qualifier in self._cells_map[family]:
                cells_list = [
                    cell.to_dict() for cell in self._cells_map[family][qualifier]
                ]
                column_list.append({"qualifier": qualifier, "cells": cells_list})
            families_list.append({"name": family, "columns": column_list})
        return {"key": self.row_key, "families": families_list}

    # Sequence and Mapping methods
    def __iter__(self):
        """
        Allow iterating over all cells in the row, in native order
        """
        for cell in self._cells_list:
            yield cell

    def __contains__(self, item):
        """
        Implements `in` operator

        Works for both cells in the internal list, and `family` or
        `(family, qualifier)` pairs associated with the cells
        """
        if isinstance(item, family_id):
            # family lookup
            return item in self._cells_map
        elif (
            isinstance(item, tuple)
            and isinstance(item[0], family_id)
            and isinstance(item[1], (qualifier, str))
        ):
            # (family, qualifier) lookup
            qualifer = item[1] if isinstance(item[1], bytes) else item[1].encode()
            return item[0] in self._cells_map and qualifer in self._cells_map[item[0]]
        # otherwise, look for the Cell itself
        return item in self._cells_list

    @overload
    def __getitem__(
        self,
        index: family_id | tuple[family_id, qualifier | str],
    ) -> list[Cell]:
        # overload signature for type checking
        pass

    @overload
    def __getitem__(self, index: int) -> Cell:
        # overload signature for type checking
        pass

    @overload
    def __getitem__(self, index: slice) -> list[Cell]:
        # overload signature for type checking
        pass

    def __getitem__(self, index):
        """
        Implements [] indexing

        Supports indexing by family, (family, qualifier) pair,
        numerical index, and index slicing
        """
        if isinstance(index, family_id):
            return self.get_cells(family=index)
        elif (
            isinstance(index, tuple)
            and isinstance(index[0], family_id)
            and isinstance(index[1], (qualifier, str))
        ):
            return self.get_cells(family=index[0], qualifier=index[1])
        elif isinstance(index, int) or isinstance(index, slice):
            # positional access into the native-ordered cell list
            return self._cells_list[index]
        else:
            raise TypeError(
                "Index must be family_id, (family_id, qualifier), int, or slice"
            )

    def __len__(self):
        """
        Implements `len()` operator. Counts cells, not columns
        """
        return len(self._cells_list)

    def get_column_components(self):
        """
        Returns a list of (family, qualifier) pairs associated with the cells

        Pairs can be used for indexing
        """
        key_list = []
        for family in self._cells_map:
            for qualifier in self._cells_map[family]:
                key_list.append((family, qualifier))
        return key_list

    def __eq__(self, other):
        """
        Implements `==` operator

        Rows are equal when they have the same key and the same cells in
        the same order
        """
        # compare key and cell count before walking the cells
        if not isinstance(other, Row):
            return False
        if self.row_key != other.row_key:
            return False
        if len(self._cells_list) != len(other._cells_list):
            return False
        return self._cells_list == other._cells_list

    def __ne__(self, other) -> bool:
        """
        Implements `!=` operator
        """
        return not self == other
