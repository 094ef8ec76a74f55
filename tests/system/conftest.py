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

"""
Fixtures shared by the system tests. Tables live in an InMemoryRowStore
owned by a session-scoped client; every test gets a freshly created table.
"""
import os
import threading
import uuid

import pytest

from google.cloud.bigtable_async.client import PROJECT_ENV_VAR

# seconds to wait for a queue thread to exit
JOIN_TIMEOUT = 10


@pytest.fixture(scope="session")
def project_id():
    return os.getenv(PROJECT_ENV_VAR, "system-test-project")


@pytest.fixture(scope="session")
def instance_id():
    return os.getenv("BIGTABLE_TEST_INSTANCE", f"python-bigtable-tests-{uuid.uuid4().hex[:6]}")


@pytest.fixture(scope="session")
def client(project_id):
    from google.cloud.bigtable_async.client import BigtableDataClient

    yield BigtableDataClient(project=project_id)


@pytest.fixture(scope="function")
def table(client, instance_id, init_table_id, column_family_config):
    """
    Create the test table with its column families, and delete it when the
    test finishes
    """
    client.create_table(instance_id, init_table_id, column_family_config)
    try:
        yield client.get_table(instance_id, init_table_id)
    finally:
        client.delete_table(instance_id, init_table_id)


@pytest.fixture(scope="function")
def cq():
    """
    A CompletionQueue run by a single background thread. The queue is shut
    down and the thread joined after the test
    """
    from google.cloud.bigtable_async.completion_queue import CompletionQueue

    queue = CompletionQueue()
    pool = threading.Thread(target=queue.run, name="system-test-cq")
    pool.start()
    yield queue
    queue.shutdown()
    pool.join(JOIN_TIMEOUT)
    assert not pool.is_alive()
