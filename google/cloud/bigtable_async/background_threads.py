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
"""Worker threads that drain a CompletionQueue."""
from __future__ import annotations

import atexit
import logging
import threading
import warnings

from google.cloud.bigtable_async.completion_queue import CompletionQueue

_LOGGER = logging.getLogger(__name__)

DEFAULT_THREAD_COUNT = 1


class BackgroundThreads(object):
    """Owns a :class:`CompletionQueue` and the threads running it.

    The threads are started on construction and stopped by
    :meth:`shutdown`, which shuts the queue down and joins every thread.
    Can be used as a context manager:

        with BackgroundThreads(thread_count=2) as background:
            future = table.async_apply(mutation, background.cq)
            status = future.result()

    :type thread_count: int
    :param thread_count: (Optional) Number of threads calling
        :meth:`CompletionQueue.run`. Default is 1.

    :type completion_queue: :class:`CompletionQueue`
    :param completion_queue: (Optional) An existing queue to run. A new
        queue is created if not provided.

    :type thread_name_prefix: str
    :param thread_name_prefix: (Optional) Prefix for the worker thread names.
    """

    def __init__(
        self,
        thread_count=DEFAULT_THREAD_COUNT,
        completion_queue=None,
        thread_name_prefix="bigtable-cq",
    ):
        if thread_count < 1:
            raise ValueError("thread_count must be at least 1")
        self.cq = completion_queue if completion_queue is not None else CompletionQueue()
        self._threads = [
            threading.Thread(
                target=self.cq.run,
                name=f"{thread_name_prefix}-{idx}",
                daemon=True,
            )
            for idx in range(thread_count)
        ]
        for thread in self._threads:
            thread.start()
        self._closed = False
        atexit.register(self.shutdown)
        _LOGGER.debug("Started %d completion queue threads", thread_count)

    @property
    def thread_count(self):
        return len(self._threads)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        self.shutdown()

    def shutdown(self):
        """Shut down the queue and join the worker threads.

        Queued work still runs before the threads exit. Calling this from
        one of the worker threads skips joining that thread.
        """
        if self._closed:
            return
        self._closed = True
        self.cq.shutdown()
        current = threading.current_thread()
        for thread in self._threads:
            if thread is current:
                warnings.warn(
                    "BackgroundThreads.shutdown() called from a worker thread; "
                    "that thread will not be joined",
                    RuntimeWarning,
                    stacklevel=2,
                )
                continue
            thread.join()
        atexit.unregister(self.shutdown)
        _LOGGER.debug("Completion queue threads joined")
