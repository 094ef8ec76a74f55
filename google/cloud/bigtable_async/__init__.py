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
from google.cloud.bigtable_async import gapic_version as package_version

from google.cloud.bigtable_async.background_threads import BackgroundThreads
from google.cloud.bigtable_async.client import BigtableDataClient
from google.cloud.bigtable_async.completion_queue import CompletionQueue
from google.cloud.bigtable_async.completion_queue import QueueState
from google.cloud.bigtable_async.exceptions import CompletionQueueShutdown
from google.cloud.bigtable_async.exceptions import FailedMutationEntryError
from google.cloud.bigtable_async.exceptions import MutationsExceptionGroup
from google.cloud.bigtable_async.mutations import BulkMutation
from google.cloud.bigtable_async.mutations import DeleteAllFromFamily
from google.cloud.bigtable_async.mutations import DeleteAllFromRow
from google.cloud.bigtable_async.mutations import DeleteRangeFromColumn
from google.cloud.bigtable_async.mutations import FailedMutation
from google.cloud.bigtable_async.mutations import Mutation
from google.cloud.bigtable_async.mutations import SetCell
from google.cloud.bigtable_async.mutations import SingleRowMutation
from google.cloud.bigtable_async.read_modify_write_rules import AppendValueRule
from google.cloud.bigtable_async.read_modify_write_rules import IncrementRule
from google.cloud.bigtable_async.row import Cell
from google.cloud.bigtable_async.row import Row
from google.cloud.bigtable_async.row_store import InMemoryRowStore
from google.cloud.bigtable_async.row_store import RowStore
from google.cloud.bigtable_async.status import Status
from google.cloud.bigtable_async.table import CheckAndMutateResult
from google.cloud.bigtable_async.table import MutationBranch
from google.cloud.bigtable_async.table import ReadRowResult
from google.cloud.bigtable_async.table import ReadRowsResult
from google.cloud.bigtable_async.table import Table

__version__: str = package_version.__version__

__all__ = (
    "BackgroundThreads",
    "BigtableDataClient",
    "CompletionQueue",
    "QueueState",
    "CompletionQueueShutdown",
    "FailedMutationEntryError",
    "MutationsExceptionGroup",
    "BulkMutation",
    "DeleteAllFromFamily",
    "DeleteAllFromRow",
    "DeleteRangeFromColumn",
    "FailedMutation",
    "Mutation",
    "SetCell",
    "SingleRowMutation",
    "AppendValueRule",
    "IncrementRule",
    "Cell",
    "Row",
    "InMemoryRowStore",
    "RowStore",
    "Status",
    "CheckAndMutateResult",
    "MutationBranch",
    "ReadRowResult",
    "ReadRowsResult",
    "Table",
)
