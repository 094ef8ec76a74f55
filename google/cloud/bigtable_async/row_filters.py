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
"""Filters evaluated against the cells of a single row."""
from __future__ import annotations

import re
import struct

from abc import ABC, abstractmethod
from typing import Any, Sequence

from google.cloud.bigtable_async.row import Cell

_PACK_I64 = struct.Struct(">q").pack


def _to_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _native_order(cells: list[Cell]) -> list[Cell]:
    return sorted(cells, key=lambda c: (c.family, c.column_qualifier, -c.timestamp_micros))


class RowFilter(ABC):
    """Basic filter to apply to cells in a row.

    Subclasses return the cells of the row that pass the filter, in
    Bigtable native order. A row "matches" a filter when at least one
    cell passes it.
    """

    @abstractmethod
    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        pass

    def matches(self, cells: Sequence[Cell]) -> bool:
        return len(self.filter_cells(cells)) > 0

    def to_dict(self) -> dict[str, Any]:
        """Converts the filter to the RowFilter proto dict format."""
        return self._to_dict()

    @abstractmethod
    def _to_dict(self) -> dict[str, Any]:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class _BoolFilter(RowFilter, ABC):
    """Row filter that uses a boolean flag.

    :type flag: bool
    :param flag: An indicator if a setting is turned on or off.
    """

    def __init__(self, flag: bool = True):
        self.flag = flag

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return other.flag == self.flag

    def __ne__(self, other):
        return not self == other

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(flag={self.flag})"


class PassAllFilter(_BoolFilter):
    """Row filter equivalent to not filtering at all.

    :type flag: bool
    :param flag: Matches all cells, regardless of input. Functionally
                 equivalent to leaving ``filter`` unset, but included for
                 completeness.
    """

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        return _native_order(list(cells)) if self.flag else []

    def _to_dict(self) -> dict[str, Any]:
        return {"pass_all_filter": self.flag}


class BlockAllFilter(_BoolFilter):
    """Row filter that doesn't match any cells.

    :type flag: bool
    :param flag: Does not match any cells, regardless of input. Useful for
                 temporarily disabling just part of a filter.
    """

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        return [] if self.flag else _native_order(list(cells))

    def _to_dict(self) -> dict[str, Any]:
        return {"block_all_filter": self.flag}


class _RegexFilter(RowFilter, ABC):
    """Row filter that uses a regular expression.

    The regex must match the whole field (full-match semantics), as the
    server does with RE2 patterns.

    :type regex: bytes or str
    :param regex:
        A regular expression for some row filter.  String values
        will be encoded as UTF-8.
    """

    def __init__(self, regex: str | bytes):
        self.regex: bytes = _to_bytes(regex)

    def _matches_field(self, field: bytes) -> bool:
        # re caches compiled patterns; an invalid pattern raises re.error here
        return re.fullmatch(self.regex, field) is not None

    @abstractmethod
    def _field(self, cell: Cell) -> bytes:
        pass

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        return _native_order([c for c in cells if self._matches_field(self._field(c))])

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return other.regex == self.regex

    def __ne__(self, other):
        return not self == other

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(regex={self.regex!r})"


class RowKeyRegexFilter(_RegexFilter):
    """Row filter for a row key regular expression."""

    def _field(self, cell: Cell) -> bytes:
        return cell.row_key

    def _to_dict(self) -> dict[str, Any]:
        return {"row_key_regex_filter": self.regex}


class FamilyNameRegexFilter(_RegexFilter):
    """Row filter for a family name regular expression."""

    def _field(self, cell: Cell) -> bytes:
        return cell.family.encode("utf-8")

    def _to_dict(self) -> dict[str, Any]:
        return {"family_name_regex_filter": self.regex.decode("utf-8")}


class ColumnQualifierRegexFilter(_RegexFilter):
    """Row filter for a column qualifier regular expression."""

    def _field(self, cell: Cell) -> bytes:
        return cell.column_qualifier

    def _to_dict(self) -> dict[str, Any]:
        return {"column_qualifier_regex_filter": self.regex}


class ValueRegexFilter(_RegexFilter):
    """Row filter for a value regular expression.

    Used as the predicate of a conditional mutation, this tests whether any
    existing cell of the row has a matching value.
    """

    def _field(self, cell: Cell) -> bytes:
        return cell.value

    def _to_dict(self) -> dict[str, Any]:
        return {"value_regex_filter": self.regex}


class ExactValueFilter(ValueRegexFilter):
    """Row filter for an exact value.

    :type value: bytes or str or int
    :param value:
        a literal string encodable as UTF-8, or the
        equivalent bytes, or an integer (which will be packed into 8-bytes).
    """

    def __init__(self, value: bytes | str | int):
        if isinstance(value, int):
            value = _PACK_I64(value)
        self.value = _to_bytes(value)
        super(ExactValueFilter, self).__init__(re.escape(self.value))


class TimestampRange(object):
    """Range of time, in microseconds, with inclusive start and exclusive end.

    :type start: int
    :param start: (Optional) The (inclusive) lower bound of the timestamp
                  range. If omitted, defaults to Unix epoch.

    :type end: int
    :param end: (Optional) The (exclusive) upper bound of the timestamp
                range. If omitted, no upper bound is used.
    """

    def __init__(self, start: int | None = None, end: int | None = None):
        self.start = start
        self.end = end

    def contains(self, timestamp_micros: int) -> bool:
        if self.start is not None and timestamp_micros < self.start:
            return False
        if self.end is not None and timestamp_micros >= self.end:
            return False
        return True

    def _to_dict(self) -> dict[str, int]:
        timestamp_range_kwargs = {}
        if self.start is not None:
            timestamp_range_kwargs["start_timestamp_micros"] = self.start
        if self.end is not None:
            timestamp_range_kwargs["end_timestamp_micros"] = self.end
        return timestamp_range_kwargs

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return other.start == self.start and other.end == self.end

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(start={self.start}, end={self.end})"


class TimestampRangeFilter(RowFilter):
    """Row filter that limits cells to a range of time.

    :type start: int
    :param start: inclusive start of the range, in microseconds

    :type end: int
    :param end: exclusive end of the range, in microseconds
    """

    def __init__(self, start: int | None = None, end: int | None = None):
        self.range_ = TimestampRange(start, end)

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        return _native_order([c for c in cells if self.range_.contains(c.timestamp_micros)])

    def _to_dict(self) -> dict[str, Any]:
        return {"timestamp_range_filter": self.range_._to_dict()}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(start={self.range_.start!r}, end={self.range_.end!r})"


class ValueRangeFilter(RowFilter):
    """A range of values to restrict to in a row filter.

    Will only match cells that have values in this range.

    Both the start and end value can be included or excluded in the range.
    By default, we include them both, but this can be changed with optional
    flags.

    :type start_value: bytes or str or int
    :param start_value: The start of the range of values. If no value is used,
                        the backend applies no lower bound to the values.

    :type end_value: bytes or str or int
    :param end_value: The end of the range of values. If no value is used,
                      the backend applies no upper bound to the values.

    :type inclusive_start: bool
    :param inclusive_start: Boolean indicating if the start value should be
                            included in the range (or excluded). Defaults
                            to :data:`True`.

    :type inclusive_end: bool
    :param inclusive_end: Boolean indicating if the end value should be
                          included in the range (or excluded). Defaults
                          to :data:`True`.
    """

    def __init__(
        self,
        start_value: bytes | str | int | None = None,
        end_value: bytes | str | int | None = None,
        inclusive_start: bool = True,
        inclusive_end: bool = True,
    ):
        if isinstance(start_value, int):
            start_value = _PACK_I64(start_value)
        if isinstance(end_value, int):
            end_value = _PACK_I64(end_value)
        self.start_value = _to_bytes(start_value) if start_value is not None else None
        self.end_value = _to_bytes(end_value) if end_value is not None else None
        self.inclusive_start = inclusive_start
        self.inclusive_end = inclusive_end

    def _in_range(self, value: bytes) -> bool:
        if self.start_value is not None:
            if value < self.start_value:
                return False
            if value == self.start_value and not self.inclusive_start:
                return False
        if self.end_value is not None:
            if value > self.end_value:
                return False
            if value == self.end_value and not self.inclusive_end:
                return False
        return True

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        return _native_order([c for c in cells if self._in_range(c.value)])

    def _to_dict(self) -> dict[str, Any]:
        value_range_kwargs: dict[str, bytes] = {}
        if self.start_value is not None:
            key = "start_value_closed" if self.inclusive_start else "start_value_open"
            value_range_kwargs[key] = self.start_value
        if self.end_value is not None:
            key = "end_value_closed" if self.inclusive_end else "end_value_open"
            value_range_kwargs[key] = self.end_value
        return {"value_range_filter": value_range_kwargs}


class _CellCountFilter(RowFilter, ABC):
    """Row filter that uses an integer count of cells.

    The cell count is used as an offset or a limit for the number
    of results returned.

    :type num_cells: int
    :param num_cells: An integer count / offset / limit.
    """

    def __init__(self, num_cells: int):
        if num_cells < 0:
            raise ValueError("num_cells must be non-negative")
        self.num_cells = num_cells

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return other.num_cells == self.num_cells

    def __ne__(self, other):
        return not self == other

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(num_cells={self.num_cells})"


class CellsRowOffsetFilter(_CellCountFilter):
    """Row filter to skip cells in a row."""

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        return _native_order(list(cells))[self.num_cells :]

    def _to_dict(self) -> dict[str, Any]:
        return {"cells_per_row_offset_filter": self.num_cells}


class CellsRowLimitFilter(_CellCountFilter):
    """Row filter to limit cells in a row."""

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        return _native_order(list(cells))[: self.num_cells]

    def _to_dict(self) -> dict[str, Any]:
        return {"cells_per_row_limit_filter": self.num_cells}


class CellsColumnLimitFilter(_CellCountFilter):
    """Row filter to limit cells in a column.

    Keeps the most recent ``num_cells`` cells of each column.
    """

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        output: list[Cell] = []
        seen: dict[tuple[str, bytes], int] = {}
        for cell in _native_order(list(cells)):
            column = (cell.family, cell.column_qualifier)
            seen[column] = seen.get(column, 0) + 1
            if seen[column] <= self.num_cells:
                output.append(cell)
        return output

    def _to_dict(self) -> dict[str, Any]:
        return {"cells_per_column_limit_filter": self.num_cells}


class StripValueTransformerFilter(_BoolFilter):
    """Row filter that transforms cells into empty string (0 bytes)."""

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        ordered = _native_order(list(cells))
        if not self.flag:
            return ordered
        return [
            Cell(c.row_key, c.family, c.column_qualifier, c.timestamp_micros, b"", c.labels)
            for c in ordered
        ]

    def _to_dict(self) -> dict[str, Any]:
        return {"strip_value_transformer": self.flag}


class ApplyLabelFilter(RowFilter):
    """Filter to apply labels to cells.

    :type label: str
    :param label: Label to apply to cells in the output row.
    """

    def __init__(self, label: str):
        self.label = label

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        return [
            Cell(
                c.row_key,
                c.family,
                c.column_qualifier,
                c.timestamp_micros,
                c.value,
                c.labels + (self.label,),
            )
            for c in _native_order(list(cells))
        ]

    def _to_dict(self) -> dict[str, Any]:
        return {"apply_label_transformer": self.label}

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return other.label == self.label

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(label={self.label!r})"


class _FilterCombination(RowFilter, ABC):
    """Chain of row filters.

    :type filters: list
    :param filters: List of :class:`RowFilter`
    """

    def __init__(self, filters: list[RowFilter] | None = None):
        if filters is None:
            filters = []
        self.filters: list[RowFilter] = filters

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return other.filters == self.filters

    def __ne__(self, other):
        return not self == other

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(filters={self.filters})"


class RowFilterChain(_FilterCombination):
    """Chain of row filters.

    Sends rows through several filters in sequence. The filters are "chained"
    together to process a row. After the first filter is applied, the second
    is applied to the filtered output and so on for subsequent filters.
    """

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        output = _native_order(list(cells))
        for row_filter in self.filters:
            output = row_filter.filter_cells(output)
        return output

    def _to_dict(self) -> dict[str, Any]:
        return {"chain": {"filters": [f._to_dict() for f in self.filters]}}


class RowFilterUnion(_FilterCombination):
    """Union of row filters.

    Sends rows through several filters simultaneously, then
    merges / interleaves all the filtered results together.

    If multiple cells are produced with the same column and timestamp,
    they will all appear in the output row in an unspecified mutual order.
    """

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        output: list[Cell] = []
        for row_filter in self.filters:
            output.extend(row_filter.filter_cells(cells))
        return _native_order(output)

    def _to_dict(self) -> dict[str, Any]:
        return {"interleave": {"filters": [f._to_dict() for f in self.filters]}}


class ConditionalRowFilter(RowFilter):
    """Conditional row filter which exhibits ternary behavior.

    Executes one of two filters based on another filter. If the
    ``predicate_filter`` returns any cells in the row, then ``true_filter``
    is executed. If not, then ``false_filter`` is executed.

    :type predicate_filter: :class:`RowFilter`
    :param predicate_filter: The filter to condition on before executing the
                             true/false filters.

    :type true_filter: :class:`RowFilter`
    :param true_filter: (Optional) The filter to execute if there are any cells
                        matching ``predicate_filter``. If not provided, no
                        results will be returned in the true case.

    :type false_filter: :class:`RowFilter`
    :param false_filter: (Optional) The filter to execute if there are no cells
                         matching ``predicate_filter``. If not provided, no
                         results will be returned in the false case.
    """

    def __init__(
        self,
        predicate_filter: RowFilter,
        true_filter: RowFilter | None = None,
        false_filter: RowFilter | None = None,
    ):
        self.predicate_filter = predicate_filter
        self.true_filter = true_filter
        self.false_filter = false_filter

    def filter_cells(self, cells: Sequence[Cell]) -> list[Cell]:
        if self.predicate_filter.matches(cells):
            branch = self.true_filter
        else:
            branch = self.false_filter
        if branch is None:
            return []
        return branch.filter_cells(cells)

    def _to_dict(self) -> dict[str, Any]:
        condition_kwargs = {"predicate_filter": self.predicate_filter._to_dict()}
        if self.true_filter is not None:
            condition_kwargs["true_filter"] = self.true_filter._to_dict()
        if self.false_filter is not None:
            condition_kwargs["false_filter"] = self.false_filter._to_dict()
        return {"condition": condition_kwargs}

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return (
            other.predicate_filter == self.predicate_filter
            and other.true_filter == self.true_filter
            and other.false_filter == self.false_filter
        )

    def __ne__(self, other):
        return not self == other

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(predicate_filter={self.predicate_filter!r}, true_filter={self.true_filter!r}, false_filter={self.false_filter!r})"
