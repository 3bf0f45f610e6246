"""Wire messages exchanged with workers and controllers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union


class ResourceStatus(IntEnum):
    UNKNOWN = 0
    PENDING = 1
    RUNNING = 2
    FAILED = 3
    TERMINATED = 4
    CREATING = 5
    DESTROYING = 6


class WorkloadRequestKind(IntEnum):
    CREATE = 0
    DESTROY = 1


class Code(IntEnum):
    """Status codes carried by RPC errors."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


class RpcError(Exception):
    """An RPC failure with a status code and a message."""

    def __init__(self, code: Code, message: str = "") -> None:
        self.code = Code(code)
        self.message = message
        super().__init__(f"{self.code.name}: {message}")

    @classmethod
    def cancelled(cls, message: str) -> "RpcError":
        return cls(Code.CANCELLED, message)

    @classmethod
    def invalid_argument(cls, message: str) -> "RpcError":
        return cls(Code.INVALID_ARGUMENT, message)

    @classmethod
    def already_exists(cls, message: str) -> "RpcError":
        return cls(Code.ALREADY_EXISTS, message)

    @classmethod
    def failed_precondition(cls, message: str) -> "RpcError":
        return cls(Code.FAILED_PRECONDITION, message)

    @classmethod
    def unavailable(cls, message: str) -> "RpcError":
        return cls(Code.UNAVAILABLE, message)


@dataclass
class WorkerMetric:
    status: int
    metrics: str


@dataclass
class InstanceMetric:
    status: int
    metrics: str
    instance_id: str


@dataclass
class WorkerStatus:
    identifier: str
    status: Optional[Union[WorkerMetric, InstanceMetric]] = None
    host_address: Optional[str] = None


@dataclass
class WorkloadScheduling:
    workload_id: str
    definition: str
    action: int
    instance_id: str


@dataclass
class InstanceScheduling:
    instance_id: str
    action: int
    definition: str


@dataclass
class WorkerRegistration:
    hostname: str


def int_to_resource_status(status: int) -> ResourceStatus:
    """Map a raw status number to a ResourceStatus; unknown numbers map to UNKNOWN."""
    try:
        return ResourceStatus(status)
    except ValueError:
        return ResourceStatus.UNKNOWN