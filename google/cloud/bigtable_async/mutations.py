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

from typing import Any, Iterable, Iterator, TYPE_CHECKING
import struct

from dataclasses import dataclass

if TYPE_CHECKING:
    from google.cloud.bigtable_async.status import Status

# special value for SetCell mutation timestamps. If set, server will assign a timestamp
_SERVER_SIDE_TIMESTAMP = -1

# mutation entries above this should be rejected
_MUTATE_ROWS_REQUEST_MUTATION_LIMIT = 100_000

_PACK_I64 = struct.Struct(">q").pack


class Mutation:
    """Model class for a single column-level change to a row"""

    def _to_dict(self) -> dict[str, Any]:
        raise NotImplementedError

    def is_idempotent(self) -> bool:
        """
        Check if the mutation is idempotent
        If false, the mutation will not be retried
        """
        return True

    def size(self) -> int:
        """
        Get the size of the mutation in bytes
        """
        return 0

    def __str__(self) -> str:
        return str(self._to_dict())


class SetCell(Mutation):
    """
    Mutation to set the value of a cell

    Args:
      - family: the name of the column family to which the new cell belongs
      - qualifier: the column qualifier of the new cell
      - new_value: the value of the new cell. str values will be encoded
          as utf-8, and int values will be packed as a 64-bit big-endian
          signed integer
      - timestamp_micros: the timestamp of the new cell, in microseconds
          with millisecond granularity. If None or -1, the row store will
          assign the current time
    """

    def __init__(
        self,
        family: str,
        qualifier: bytes | str,
        new_value: bytes | str | int,
        timestamp_micros: int | None = None,
    ):
        qualifier = qualifier.encode() if isinstance(qualifier, str) else qualifier
        if not isinstance(qualifier, bytes):
            raise TypeError("qualifier must be bytes or str")
        if isinstance(new_value, str):
            new_value = new_value.encode()
        elif isinstance(new_value, int):
            new_value = _PACK_I64(new_value)
        if not isinstance(new_value, bytes):
            raise TypeError("new_value must be bytes, str, or int")
        if timestamp_micros is None:
            timestamp_micros = _SERVER_SIDE_TIMESTAMP
        if timestamp_micros < _SERVER_SIDE_TIMESTAMP:
            raise ValueError(
                "timestamp_micros must be positive (or -1 for server-side timestamp)"
            )
        self.family = family
        self.qualifier = qualifier
        self.new_value = new_value
        self.timestamp_micros = timestamp_micros

    def _to_dict(self) -> dict[str, Any]:
        return {
            "set_cell": {
                "family_name": self.family,
                "column_qualifier": self.qualifier,
                "timestamp_micros": self.timestamp_micros,
                "value": self.new_value,
            }
        }

    def is_idempotent(self) -> bool:
        """Check if the mutation is idempotent"""
        return self.timestamp_micros != _SERVER_SIDE_TIMESTAMP

    def size(self) -> int:
        return len(self.family) + len(self.qualifier) + len(self.new_value) + 8

    def __repr__(self):
        return f"SetCell(family={self.family!r}, qualifier={self.qualifier!r}, new_value={self.new_value!r}, timestamp_micros={self.timestamp_micros})"


@dataclass
class DeleteRangeFromColumn(Mutation):
    family: str
    qualifier: bytes
    # None represents 0
    start_timestamp_micros: int | None = None
    # None represents infinity
    end_timestamp_micros: int | None = None

    def __post_init__(self):
        if isinstance(self.qualifier, str):
            self.qualifier = self.qualifier.encode()
        if (
            self.start_timestamp_micros is not None
            and self.end_timestamp_micros is not None
            and self.start_timestamp_micros > self.end_timestamp_micros
        ):
            raise ValueError("start_timestamp_micros must be <= end_timestamp_micros")

    def _to_dict(self) -> dict[str, Any]:
        timestamp_range = {}
        if self.start_timestamp_micros is not None:
            timestamp_range["start_timestamp_micros"] = self.start_timestamp_micros
        if self.end_timestamp_micros is not None:
            timestamp_range["end_timestamp_micros"] = self.end_timestamp_micros
        return {
            "delete_from_column": {
                "family_name": self.family,
                "column_qualifier": self.qualifier,
                "time_range": timestamp_range,
            }
        }

    def size(self) -> int:
        return len(self.family) + len(self.qualifier) + 16


@dataclass
class DeleteAllFromFamily(Mutation):
    family_to_delete: str

    def _to_dict(self) -> dict[str, Any]:
        return {
            "delete_from_family": {
                "family_name": self.family_to_delete,
            }
        }

    def size(self) -> int:
        return len(self.family_to_delete)


@dataclass
class DeleteAllFromRow(Mutation):
    def _to_dict(self) -> dict[str, Any]:
        return {
            "delete_from_row": {},
        }


class SingleRowMutation:
    """
    An ordered list of mutations to apply atomically to a single row

    Mutations are applied in the order they were added, so a later
    mutation can mask an earlier one with the same timestamp.
    """

    def __init__(
        self, row_key: bytes | str, mutations: Mutation | Iterable[Mutation] = ()
    ):
        if isinstance(row_key, str):
            row_key = row_key.encode("utf-8")
        if isinstance(mutations, Mutation):
            mutations = [mutations]
        self.row_key = row_key
        self.mutations: list[Mutation] = list(mutations)

    def append(self, mutation: Mutation) -> "SingleRowMutation":
        if not isinstance(mutation, Mutation):
            raise TypeError(f"expected Mutation, got {type(mutation).__name__}")
        self.mutations.append(mutation)
        return self

    def extend(self, mutations: Iterable[Mutation]) -> "SingleRowMutation":
        for mutation in mutations:
            self.append(mutation)
        return self

    def _to_dict(self) -> dict[str, Any]:
        return {
            "row_key": self.row_key,
            "mutations": [mutation._to_dict() for mutation in self.mutations],
        }

    def is_idempotent(self) -> bool:
        """Check if the mutation is idempotent"""
        return all(mutation.is_idempotent() for mutation in self.mutations)

    def size(self) -> int:
        """
        Get the size of the mutation in bytes
        """
        return len(self.row_key) + sum(m.size() for m in self.mutations)

    def __iter__(self) -> Iterator[Mutation]:
        return iter(self.mutations)

    def __len__(self) -> int:
        return len(self.mutations)

    def __repr__(self):
        return f"SingleRowMutation(row_key={self.row_key!r}, mutations={self.mutations!r})"


class BulkMutation:
    """
    An ordered collection of SingleRowMutations, possibly for different rows

    Each entry is applied atomically, but entries are applied independently
    of each other and in no particular order.
    """

    def __init__(self, entries: Iterable[SingleRowMutation] = ()):
        self.entries: list[SingleRowMutation] = []
        for entry in entries:
            self.append(entry)

    def append(self, entry: SingleRowMutation) -> "BulkMutation":
        if not isinstance(entry, SingleRowMutation):
            raise TypeError(
                f"expected SingleRowMutation, got {type(entry).__name__}"
            )
        self.entries.append(entry)
        return self

    def extend(self, entries: Iterable[SingleRowMutation]) -> "BulkMutation":
        for entry in entries:
            self.append(entry)
        return self

    def mutation_count(self) -> int:
        return sum(len(entry) for entry in self.entries)

    def _to_dict(self) -> dict[str, Any]:
        return {"entries": [entry._to_dict() for entry in self.entries]}

    def __iter__(self) -> Iterator[SingleRowMutation]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, idx: int) -> SingleRowMutation:
        return self.entries[idx]


@dataclass(frozen=True)
class FailedMutation:
    """
    A bulk entry that the row store rejected, along with its position in
    the original BulkMutation
    """

    index: int
    entry: SingleRowMutation
    status: "Status"
