"""The manager: owns the worker registry and routes events between endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from .channel import ChannelClosedError, Receiver, Sender, channel
from .core import (
    ClientDisconnectedError,
    Controller,
    InstanceMetricEvent,
    InstanceMetricsUpdate,
    Register,
    Schedule,
    ScheduleRequest,
    SchedulerError,
    Subscribe,
    Worker,
    WorkerMetricEvent,
    WorkerMetricsUpdate,
)
from .grpc_service import GRPCService
from .messages import ResourceStatus, RpcError, WorkerMetric, WorkerStatus
from .state_manager import (
    InstanceUpdate,
    ScheduleWorkload,
    StateManager,
    WorkerUpdate,
)

logger = logging.getLogger(__name__)

CHANNEL_CAPACITY = 1024


class Manager:
    """Central event loop of the scheduler.

    Remote calls reach the manager through ``service``; scheduling decisions
    are delegated to a StateManager fed through ``state_manager``.
    """

    def __init__(self) -> None:
        self.workers: List[Worker] = []
        self.controller: Optional[Controller] = None
        self._sender, self.events = channel(CHANNEL_CAPACITY)
        self.state_manager, self.state_events = channel(CHANNEL_CAPACITY)
        self.service = GRPCService(self._sender.clone())

    async def run(self) -> None:
        """Run the state manager alongside the event loop until the events channel ends."""
        state_manager = StateManager(self._sender.clone(), self.workers)
        import asyncio

        task = asyncio.create_task(self._run_state_manager(state_manager))
        try:
            await self.listen()
        finally:
            self.state_manager.close()
            await task

    async def _run_state_manager(self, state_manager: StateManager) -> None:
        try:
            await state_manager.run(self.state_events)
        except SchedulerError as error:
            logger.error("StateManager failed, reason: %s", error)

    async def listen(self) -> None:
        """Handle events one by one until the events channel is closed and drained."""
        async for event in self.events:
            await self.handle(event)

    async def handle(self, event: Any) -> None:
        """Apply one event; failures are logged, never raised."""
        if isinstance(event, Register):
            try:
                await self.register(event.channel, event.addr, event.hostname)
            except SchedulerError as error:
                logger.error(
                    "Failed to register worker %s (%s), reason: %s",
                    event.hostname,
                    event.addr,
                    error,
                )
        elif isinstance(event, ScheduleRequest):
            await self._to_state_manager(ScheduleWorkload(event.request))
            if self.controller is None:
                logger.warning("Be aware there is no GetUpdates connected from a controller")
        elif isinstance(event, Schedule):
            sender = self.worker_sender(event.worker_id)
            if sender is None:
                logger.error(
                    "Received Schedule event with an invalid worker %s", event.worker_id
                )
                return
            try:
                await sender.send(event.instance)
            except ChannelClosedError as error:
                logger.error(
                    "Failed to communicate with worker %s, reason: %s", event.worker_id, error
                )
        elif isinstance(event, Subscribe):
            if self.controller is None:
                logger.info("A controller is now connected")
                self.controller = Controller(event.channel)
            elif self.controller.is_channel_closed():
                self.controller = Controller(event.channel)
            else:
                logger.error("Can only have one controller at a time")
        elif isinstance(event, WorkerMetricEvent):
            worker = self._find_worker(event.identifier)
            if worker is None:
                logger.warning(
                    "Received metrics for a unknown worker (%s), ignoring", event.identifier
                )
                return
            logger.debug("Updated worker metrics for %s(%s)", event.identifier, worker.id)
            try:
                worker.set_metrics(json.loads(event.metric.metrics))
            except ValueError as error:
                logger.warning("Could not deserialize metrics, error: %s", error)
        elif isinstance(event, InstanceMetricEvent):
            if self.controller is not None:
                try:
                    await self.controller.send(
                        WorkerStatus(identifier=event.identifier, status=event.metric)
                    )
                except ChannelClosedError as error:
                    logger.error("Failed to send InstanceMetric to controller, reason: %s", error)
        elif isinstance(event, InstanceMetricsUpdate):
            await self._to_state_manager(InstanceUpdate(event.metric))
        elif isinstance(event, WorkerMetricsUpdate):
            await self._to_state_manager(WorkerUpdate(event.identifier, event.metric))
        else:
            raise TypeError(f"unexpected event {event!r}")

    async def _to_state_manager(self, event: Any) -> None:
        try:
            await self.state_manager.send(event)
        except ChannelClosedError as error:
            logger.error("Failed to communicate with StateManager, reason: %s", error)

    def _find_worker(self, hostname: str) -> Optional[Worker]:
        return next((worker for worker in self.workers if worker.id == hostname), None)

    def worker_sender(self, hostname: str) -> Optional[Sender]:
        """The channel feeding the named worker, or None if it is not registered."""
        worker = self._find_worker(hostname)
        return worker.channel if worker is not None else None

    async def register(self, channel: Sender, addr: str, hostname: str) -> None:
        """Register a worker, or reconnect one whose previous channel has closed.

        Raises ClientDisconnectedError when a duplicate hostname cannot even be told so.
        """
        worker = self._find_worker(hostname)
        if worker is None:
            worker = Worker(hostname, channel, addr)
            logger.info("Worker %s is now registered, ip: %s", worker.id, worker.addr)
            await self._announce(worker)
            self.workers.append(worker)
            return

        if not worker.channel.is_closed():
            logger.error(
                "New worker tried to register with an already taken hostname: %s", hostname
            )
            try:
                await channel.send(
                    RpcError.already_exists("Worker with this hostname already exist")
                )
            except ChannelClosedError as error:
                raise ClientDisconnectedError(hostname) from error
            return

        logger.info("Worker %s is back ready", hostname)
        worker.channel = channel
        await self._announce(worker)

    async def _announce(self, worker: Worker) -> None:
        if self.controller is None:
            return
        try:
            metrics = json.dumps(worker.metrics)
        except (TypeError, ValueError) as error:
            logger.warning("Could not deserialize metrics, error: %s", error)
            metrics = ""
        message = WorkerStatus(
            identifier=worker.id,
            status=WorkerMetric(status=int(ResourceStatus.RUNNING), metrics=metrics),
            host_address=worker.addr,
        )
        try:
            await self.controller.send(message)
        except ChannelClosedError as error:
            logger.error("Failed to send WorkerMetricsUpdate to controller, reason: %s", error)

    def __repr__(self) -> str:
        return f"Manager(workers={len(self.workers)}, controller={self.controller!r})"