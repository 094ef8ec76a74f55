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

import logging
import os

from typing import Iterable

from google.cloud.bigtable_async.row_store import InMemoryRowStore, RowStore
from google.cloud.bigtable_async.table import DEFAULT_MUTATE_ROWS_OPERATION_TIMEOUT
from google.cloud.bigtable_async.table import DEFAULT_OPERATION_TIMEOUT
from google.cloud.bigtable_async.table import Table

_LOGGER = logging.getLogger(__name__)

# environment variable consulted when no project is passed to the client
PROJECT_ENV_VAR = "GOOGLE_CLOUD_PROJECT"


class BigtableDataClient:
    def __init__(
        self,
        *,
        project: str | None = None,
        store: RowStore | None = None,
    ):
        """
        Create a client instance for the Bigtable Data API

        Args:
            project: the project which the client acts on behalf of.
                If not passed, falls back to the GOOGLE_CLOUD_PROJECT
                environment variable.
            store: the row store that tables read from and write to. If not
                passed, the client creates a private InMemoryRowStore.
        Raises:
          - ValueError if no project is passed or found in the environment
        """
        project = project or os.environ.get(PROJECT_ENV_VAR)
        if not project:
            raise ValueError(
                f"project must be passed, or set in the {PROJECT_ENV_VAR} environment variable"
            )
        self.project = project
        self.store = store if store is not None else InMemoryRowStore()
        _LOGGER.debug(
            "Created %s for project %s using %s",
            self.__class__.__name__,
            project,
            type(self.store).__name__,
        )

    def instance_path(self, instance_id: str) -> str:
        return f"projects/{self.project}/instances/{instance_id}"

    def table_path(self, instance_id: str, table_id: str) -> str:
        return f"{self.instance_path(instance_id)}/tables/{table_id}"

    def create_table(
        self, instance_id: str, table_id: str, column_families: Iterable[str]
    ) -> None:
        """
        Create a table with the given column families in an in-memory store

        Raises:
          - TypeError if the client's store is not an InMemoryRowStore
          - AlreadyExists if the table already exists
        """
        self._in_memory_store().create_table(
            self.table_path(instance_id, table_id), column_families
        )

    def delete_table(self, instance_id: str, table_id: str) -> None:
        """
        Delete a table from an in-memory store

        Raises:
          - TypeError if the client's store is not an InMemoryRowStore
          - NotFound if the table does not exist
        """
        self._in_memory_store().delete_table(self.table_path(instance_id, table_id))

    def _in_memory_store(self) -> InMemoryRowStore:
        if not isinstance(self.store, InMemoryRowStore):
            raise TypeError(
                f"table administration requires an InMemoryRowStore, not {type(self.store).__name__}"
            )
        return self.store

    def get_table(
        self,
        instance_id: str,
        table_id: str,
        *,
        default_operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        default_mutate_rows_operation_timeout: float = DEFAULT_MUTATE_ROWS_OPERATION_TIMEOUT,
    ) -> Table:
        """
        Returns a table instance for making data API requests

        Args:
            instance_id: The Bigtable instance ID to associate with this client.
                instance_id is combined with the client's project to fully
                specify the instance
            table_id: The ID of the table. table_id is combined with the
                instance_id and the client's project to fully specify the table
            default_operation_timeout: The default timeout for single-row
                operations, in seconds. If not set, defaults to 60 seconds
            default_mutate_rows_operation_timeout: The default timeout for bulk
                mutations, in seconds. If not set, defaults to 600 seconds (10 minutes)
        Raises:
          - ValueError if a timeout is not a positive number
        """
        return Table(
            self.store,
            table_id,
            table_name=self.table_path(instance_id, table_id),
            default_operation_timeout=default_operation_timeout,
            default_mutate_rows_operation_timeout=default_mutate_rows_operation_timeout,
        )
