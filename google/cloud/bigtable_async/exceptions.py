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

import sys

from typing import TYPE_CHECKING

from google.api_core import exceptions as core_exceptions

is_311_plus = sys.version_info >= (3, 11)

if TYPE_CHECKING:
    from google.cloud.bigtable_async.mutations import SingleRowMutation


class CompletionQueueShutdown(core_exceptions.Cancelled):
    """
    Raised through a future when work is submitted to a CompletionQueue
    that has already been shut down
    """

    def __init__(self, message: str = "completion queue is shut down"):
        super().__init__(message)


class BigtableExceptionGroup(ExceptionGroup if is_311_plus else Exception):  # type: ignore # noqa: F821
    """
    Represents one or more exceptions that occur during a bulk Bigtable operation

    In Python 3.11+, this is an unmodified exception group. In < 3.10, it is a
    custom exception with some exception group functionality backported, but does
    Not implement the full API
    """

    def __init__(self, message, excs):
        if is_311_plus:
            super().__init__(message, excs)
        else:
            if len(excs) == 0:
                raise ValueError("exceptions must be a non-empty sequence")
            self.exceptions = tuple(excs)
            super().__init__(message)

    def __new__(cls, message, excs):
        if is_311_plus:
            return super().__new__(cls, message, excs)
        else:
            return super().__new__(cls)

    def __str__(self):
        """
        String representation doesn't display sub-exceptions. Subexceptions are
        described in message
        """
        return self.args[0]


class MutationsExceptionGroup(BigtableExceptionGroup):
    """
    Represents one or more failed entries from a bulk mutation

    Raised by the blocking Table.bulk_apply. Sub-exceptions are
    FailedMutationEntryErrors, one per rejected entry.
    """

    @staticmethod
    def _format_message(excs: list[Exception], total_entries: int) -> str:
        entry_str = "entry" if len(excs) == 1 else "entries"
        return f"{len(excs)} failed {entry_str} from {total_entries} attempted."

    def __init__(self, excs: list[Exception], total_entries: int):
        super().__init__(self._format_message(excs, total_entries), excs)
        self.total_entries_attempted = total_entries

    def __new__(cls, excs: list[Exception], total_entries: int):
        instance = super().__new__(
            cls, cls._format_message(excs, total_entries), excs
        )
        instance.total_entries_attempted = total_entries
        return instance


class FailedMutationEntryError(Exception):
    """
    Represents a single failed SingleRowMutation in a bulk apply.
    A collection of FailedMutationEntryErrors will be raised in a MutationsExceptionGroup
    """

    def __init__(
        self,
        failed_idx: int | None,
        failed_mutation_entry: "SingleRowMutation",
        cause: Exception,
    ):
        idempotent_msg = (
            "idempotent" if failed_mutation_entry.is_idempotent() else "non-idempotent"
        )
        index_msg = f" at index {failed_idx} " if failed_idx is not None else " "
        message = (
            f"Failed {idempotent_msg} mutation entry{index_msg}with cause: {cause!r}"
        )
        super().__init__(message)
        self.index = failed_idx
        self.entry = failed_mutation_entry
        self.__cause__ = cause
