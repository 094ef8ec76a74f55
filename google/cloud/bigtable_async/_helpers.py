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

from typing import Sequence, TYPE_CHECKING

from google.cloud.bigtable_async.mutations import _MUTATE_ROWS_REQUEST_MUTATION_LIMIT

if TYPE_CHECKING:
    from google.cloud.bigtable_async.mutations import Mutation

"""
Helper functions used in various places in the library.
"""


def _to_row_key(row_key: str | bytes) -> bytes:
    """
    Coerce a user supplied row key to bytes
    """
    if isinstance(row_key, str):
        row_key = row_key.encode("utf-8")
    if not isinstance(row_key, bytes):
        raise TypeError(f"row_key must be bytes or str, got {type(row_key).__name__}")
    return row_key


def _validate_timeouts(operation_timeout: float | None, allow_none: bool = False):
    """
    Helper function that will verify that timeout values are valid, and raise
    an exception if they are not.

    Args:
      - operation_timeout: The timeout value to use for the entire operation, in seconds.
      - allow_none: If True, operation_timeout can be None
    Raises:
      - ValueError if operation_timeout is not a positive number
    """
    if operation_timeout is None:
        if allow_none:
            return
        raise ValueError("operation_timeout cannot be None")
    if operation_timeout <= 0:
        raise ValueError("operation_timeout must be greater than 0")


def _validate_mutations(mutations: Sequence["Mutation"], allow_empty: bool = False):
    """
    Check a list of mutations against the per-request limits

    Raises:
      - ValueError if the list is empty (unless allow_empty) or too long
    """
    if not mutations and not allow_empty:
        raise ValueError("mutations must contain at least one item")
    if len(mutations) > _MUTATE_ROWS_REQUEST_MUTATION_LIMIT:
        raise ValueError(
            f"mutations must contain at most {_MUTATE_ROWS_REQUEST_MUTATION_LIMIT} items, got {len(mutations)}"
        )
