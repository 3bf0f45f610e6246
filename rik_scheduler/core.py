"""Scheduler events, errors, and the worker and controller handles."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .channel import ChannelClosedError, Sender
from .messages import (
    InstanceMetric,
    InstanceScheduling,
    WorkerMetric,
    WorkloadRequestKind,
    WorkloadScheduling,
)

logger = logging.getLogger(__name__)


class SchedulerError(Exception):
    """Base class of scheduler failures."""


class ClusterFullError(SchedulerError):
    """The cluster cannot take more workers."""


class RegistrationFailedError(SchedulerError):
    """Worker registration failed."""


class ClientDisconnectedError(SchedulerError):
    """The remote client went away."""


class StateManagerFailedError(SchedulerError):
    """The state manager stopped unexpectedly."""


class CannotDoubleReplicasError(SchedulerError):
    """Replicas cannot be added while the workload is being destroyed."""


class WorkloadNotExistingError(SchedulerError):
    """The requested workload is not known."""

    def __init__(self, workload_id: str) -> None:
        super().__init__(f"workload {workload_id} does not exist")
        self.workload_id = workload_id


class WorkerState(Enum):
    READY = "Ready"
    NOT_READY = "Not Ready"

    def __str__(self) -> str:
        return self.value


@dataclass
class Register:
    """A worker registers to serve the cluster."""

    channel: Sender
    addr: str
    hostname: str


@dataclass
class ScheduleRequest:
    """A controller asks for a workload to be scheduled or destroyed."""

    request: "WorkloadRequest"


@dataclass
class Schedule:
    """The state manager sends an instance to a worker."""

    worker_id: str
    instance: InstanceScheduling


@dataclass
class Subscribe:
    """A controller subscribes to status updates."""

    channel: Sender
    addr: str


@dataclass
class WorkerMetricEvent:
    """Worker metrics to forward to the controller."""

    identifier: str
    metric: WorkerMetric


@dataclass
class WorkerMetricsUpdate:
    """Worker metrics for the state manager."""

    identifier: str
    metric: WorkerMetric


@dataclass
class InstanceMetricEvent:
    """Instance metrics to forward to the controller."""

    identifier: str
    metric: InstanceMetric


@dataclass
class InstanceMetricsUpdate:
    """Instance metrics for the state manager."""

    identifier: str
    metric: InstanceMetric


class Controller:
    """The connected controller, reached through a status channel."""

    def __init__(self, channel: Sender) -> None:
        self.channel = channel

    async def send(self, data: Any) -> None:
        try:
            await self.channel.send(data)
        except ChannelClosedError as error:
            logger.error("Failed to send message from Manager to Controller, error: %s", error)
            raise

    def is_channel_closed(self) -> bool:
        return self.channel.is_closed()

    def __repr__(self) -> str:
        return f"Controller(closed={self.is_channel_closed()})"


class Worker:
    """A registered worker and the channel that feeds it instances."""

    def __init__(self, worker_id: str, channel: Sender, addr: str) -> None:
        self.id = worker_id
        self.channel = channel
        self.addr = addr
        self._state = WorkerState.NOT_READY
        self._metrics: Optional[Any] = None

    @property
    def state(self) -> WorkerState:
        return self._state

    @state.setter
    def state(self, state: WorkerState) -> None:
        if self._state != state:
            self._state = state
            logger.info("Worker %s flipped to %s state", self.id, state)

    @property
    def metrics(self) -> Optional[Any]:
        """Most recent metrics reported by the worker."""
        return self._metrics

    def set_metrics(self, metric: Any) -> None:
        """Store fresh metrics and re-evaluate readiness from the channel."""
        self._metrics = metric
        if self._state is WorkerState.READY:
            if self.channel.is_closed():
                self.state = WorkerState.NOT_READY
        elif not self.channel.is_closed():
            self.state = WorkerState.READY

    async def send(self, data: InstanceScheduling) -> None:
        try:
            await self.channel.send(data)
        except ChannelClosedError as error:
            logger.error("Failed to send message to remote worker, error: %s", error)
            raise ClientDisconnectedError(self.id) from error

    def is_ready(self) -> bool:
        return self._state is WorkerState.READY

    def __repr__(self) -> str:
        return f"Worker(id={self.id!r}, addr={self.addr!r}, state={self._state})"


@dataclass
class WorkloadRequest:
    workload_id: str
    definition: Any
    action: WorkloadRequestKind
    instance_id: str

    @classmethod
    def from_scheduling(cls, workload: WorkloadScheduling) -> "WorkloadRequest":
        """Build a request from its wire form; raises ValueError on a bad definition."""
        definition = json.loads(workload.definition)
        if not isinstance(definition, dict):
            raise ValueError("workload definition must be a JSON object")
        action = (
            WorkloadRequestKind.DESTROY
            if workload.action == WorkloadRequestKind.DESTROY
            else WorkloadRequestKind.CREATE
        )
        return cls(
            workload_id=workload.workload_id,
            definition=definition,
            action=action,
            instance_id=workload.instance_id,
        )