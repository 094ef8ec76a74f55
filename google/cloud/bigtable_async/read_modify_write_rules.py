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
import struct

# value must fit in 64-bit signed integer
_MAX_INCREMENT_VALUE = (1 << 63) - 1
_MIN_INCREMENT_VALUE = -(1 << 63)

_PACK_I64 = struct.Struct(">q").pack


class ReadModifyWriteRule(abc.ABC):
    def __init__(self, family: str, qualifier: bytes | str):
        qualifier = (
            qualifier if isinstance(qualifier, bytes) else qualifier.encode("utf-8")
        )
        self.family = family
        self.qualifier = qualifier

    @abc.abstractmethod
    def _to_dict(self) -> dict[str, str | bytes | int]:
        raise NotImplementedError

    @abc.abstractmethod
    def _apply(self, current_value: bytes | None) -> bytes:
        """
        Compute the new cell value from the latest existing value, or None
        if the column has no cells
        """
        raise NotImplementedError


class IncrementRule(ReadModifyWriteRule):
    def __init__(self, family: str, qualifier: bytes | str, increment_amount: int = 1):
        if not isinstance(increment_amount, int):
            raise TypeError("increment_amount must be an integer")
        if not _MIN_INCREMENT_VALUE <= increment_amount <= _MAX_INCREMENT_VALUE:
            raise ValueError(
                "increment_amount must be between -2**63 and 2**63 - 1 (64-bit signed int)"
            )
        super().__init__(family, qualifier)
        self.increment_amount = increment_amount

    def _to_dict(self) -> dict[str, str | bytes | int]:
        return {
            "family_name": self.family,
            "column_qualifier": self.qualifier,
            "increment_amount": self.increment_amount,
        }

    def _apply(self, current_value: bytes | None) -> bytes:
        if current_value is None:
            current = 0
        elif len(current_value) != 8:
            raise ValueError("existing value is not a 64-bit big-endian integer")
        else:
            current = int.from_bytes(current_value, byteorder="big", signed=True)
        total = current + self.increment_amount
        # wrap around on overflow, as the server does
        total = (total + (1 << 63)) % (1 << 64) - (1 << 63)
        return _PACK_I64(total)


class AppendValueRule(ReadModifyWriteRule):
    def __init__(self, family: str, qualifier: bytes | str, append_value: bytes | str):
        append_value = (
            append_value.encode("utf-8")
            if isinstance(append_value, str)
            else append_value
        )
        if not isinstance(append_value, bytes):
            raise TypeError("append_value must be bytes or str")
        super().__init__(family, qualifier)
        self.append_value = append_value

    def _to_dict(self) -> dict[str, str | bytes | int]:
        return {
            "family_name": self.family,
            "column_qualifier": self.qualifier,
            "append_value": self.append_value,
        }

    def _apply(self, current_value: bytes | None) -> bytes:
        return (current_value or b"") + self.append_value
