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

import concurrent.futures

import grpc

from google.api_core import exceptions as core_exceptions
from google.rpc import status_pb2


class Status:
    """
    Outcome of an operation submitted through a CompletionQueue

    Failures reported by the row store are captured as a Status and
    delivered through the operation's future, instead of being raised
    across the queue boundary.
    """

    def __init__(self, code: grpc.StatusCode = grpc.StatusCode.OK, message: str = ""):
        self.code = code
        self.message = message

    def ok(self) -> bool:
        return self.code == grpc.StatusCode.OK

    @classmethod
    def from_exception(cls, exc: BaseException) -> Status:
        """
        Build a Status from an exception raised while running an operation

        GoogleAPICallErrors keep their gRPC code. Cancellation maps to
        CANCELLED, and anything else is reported as UNKNOWN.
        """
        if isinstance(exc, core_exceptions.GoogleAPICallError):
            code = exc.grpc_status_code or grpc.StatusCode.UNKNOWN
            return cls(code, exc.message)
        if isinstance(exc, concurrent.futures.CancelledError):
            return cls(grpc.StatusCode.CANCELLED, "operation cancelled")
        return cls(grpc.StatusCode.UNKNOWN, f"{type(exc).__name__}: {exc}")

    @classmethod
    def _from_pb(cls, status_pb: status_pb2.Status) -> Status:
        code = next(
            (c for c in grpc.StatusCode if c.value[0] == status_pb.code),
            grpc.StatusCode.UNKNOWN,
        )
        return cls(code, status_pb.message)

    def _to_pb(self) -> status_pb2.Status:
        return status_pb2.Status(code=self.code.value[0], message=self.message)

    def to_exception(self) -> core_exceptions.GoogleAPICallError | None:
        """
        Returns the google.api_core exception matching this status, or
        None if the status is ok
        """
        if self.ok():
            return None
        return core_exceptions.from_grpc_status(self.code, self.message)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Status):
            return NotImplemented
        return self.code == other.code and self.message == other.message

    def __hash__(self):
        return hash((self.code, self.message))

    def __repr__(self):
        return f"Status(code={self.code.name}, message={self.message!r})"


OK_STATUS = Status()
