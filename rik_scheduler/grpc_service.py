"""RPC endpoints offered to workers and controllers, forwarding events to the manager."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, Generic, Optional, TypeVar

from .channel import ChannelClosedError, Receiver, Sender, channel
from .core import (
    InstanceMetricsUpdate,
    Register,
    ScheduleRequest,
    Subscribe,
    WorkerMetricsUpdate,
    WorkloadRequest,
)
from .messages import (
    Code,
    InstanceMetric,
    RpcError,
    WorkerMetric,
    WorkerRegistration,
    WorkerStatus,
    WorkloadScheduling,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

STREAM_CAPACITY = 1024
DEFAULT_REMOTE_ADDR = "0.0.0.0:0"


@dataclass
class Request(Generic[T]):
    """An incoming call: its message and, when known, the caller's address."""

    message: T
    remote_addr: Optional[str] = None

    @property
    def addr(self) -> str:
        """The caller's address, or the unspecified address when unknown."""
        return self.remote_addr if self.remote_addr is not None else DEFAULT_REMOTE_ADDR


class GRPCService:
    """Entry point for remote calls; every call becomes an event for the manager."""

    def __init__(self, sender: Sender) -> None:
        self.sender = sender

    async def send(self, data: Any) -> None:
        """Forward an event to the manager; raises UNAVAILABLE if it is gone."""
        try:
            await self.sender.send(data)
        except ChannelClosedError as error:
            logger.error("Failed to send message from gRPCService to Manager, error: %s", error)
            raise RpcError(Code.UNAVAILABLE, "We cannot process your request at this time") from error

    async def schedule_instance(self, request: Request[WorkloadScheduling]) -> None:
        """Parse a controller's scheduling request and hand it to the manager."""
        try:
            parsed = WorkloadRequest.from_scheduling(request.message)
        except ValueError as error:
            logger.error("Failed to parse ScheduleInstance from controller, reason: %s", error)
            raise RpcError.invalid_argument(str(error)) from error
        await self.send(ScheduleRequest(parsed))

    async def get_status_updates(self, request: Request[Any]) -> Receiver:
        """Subscribe a controller; returns the stream of status updates it will receive."""
        stream_tx, stream_rx = channel(STREAM_CAPACITY)
        await self.send(Subscribe(stream_tx, request.addr))
        return stream_rx

    async def register(self, request: Request[WorkerRegistration]) -> Receiver:
        """Register a worker; returns the stream of instances scheduled on it."""
        stream_tx, stream_rx = channel(STREAM_CAPACITY)
        addr = request.addr
        hostname = request.message.hostname
        if not hostname:
            raise RpcError.failed_precondition("No hostname specified")
        await self.send(Register(stream_tx, addr, hostname))
        return stream_rx

    async def send_status_updates(self, request: Request[AsyncIterable[WorkerStatus]]) -> None:
        """Consume a worker's status stream, forwarding each update to the manager."""
        async for data in request.message:
            status = data.status
            if isinstance(status, WorkerMetric):
                await self.send(WorkerMetricsUpdate(data.identifier, status))
            elif isinstance(status, InstanceMetric):
                await self.send(InstanceMetricsUpdate(data.identifier, status))
            else:
                raise RpcError.invalid_argument(
                    f"status update from {data.identifier} carries no status"
                )

    def __repr__(self) -> str:
        return f"GRPCService(sender={self.sender!r})"