"""Desired-state bookkeeping and round-robin placement of workload instances."""

from __future__ import annotations

import copy
import json
import logging
import random
from dataclasses import dataclass, field
from itertools import cycle
from typing import Any, Dict, List, Optional, Union

from .channel import ChannelClosedError, Receiver, Sender
from .core import (
    CannotDoubleReplicasError,
    InstanceMetricEvent,
    Schedule,
    SchedulerError,
    StateManagerFailedError,
    Worker,
    WorkerState,
    WorkloadNotExistingError,
    WorkloadRequest,
)
from .messages import (
    InstanceMetric,
    InstanceScheduling,
    ResourceStatus,
    WorkerMetric,
    WorkloadRequestKind,
    int_to_resource_status,
)

logger = logging.getLogger(__name__)

SCHEDULER_IDENTIFIER = "scheduler"


@dataclass
class ScheduleWorkload:
    """Create or destroy a workload."""

    request: WorkloadRequest


@dataclass
class Shutdown:
    """Stop the state manager."""


@dataclass
class InstanceUpdate:
    """Fresh metrics for a single instance."""

    metrics: InstanceMetric


@dataclass
class WorkerUpdate:
    """Fresh metrics for a worker."""

    identifier: str
    metrics: WorkerMetric


StateManagerEvent = Union[ScheduleWorkload, Shutdown, InstanceUpdate, WorkerUpdate]


def _definition_replicas(definition: Any) -> int:
    replicas = definition.get("replicas") if isinstance(definition, dict) else None
    return 1 if replicas is None else int(replicas)


@dataclass
class WorkloadInstance:
    """One replica of a workload and where it runs."""

    id: str
    status: ResourceStatus
    worker_id: Optional[str]
    definition: Any

    def set_worker(self, worker: Optional[str]) -> None:
        logger.debug(
            "WorkloadInstance %s was assigned to worker %s",
            self.id,
            worker if worker is not None else "None",
        )
        self.worker_id = worker

    def is_deployed(self) -> bool:
        """Whether the instance is running somewhere or on its way there or out."""
        return self.status in (
            ResourceStatus.RUNNING,
            ResourceStatus.CREATING,
            ResourceStatus.DESTROYING,
        )

    def is_pending(self) -> bool:
        return self.status is ResourceStatus.PENDING


@dataclass
class Workload:
    """A workload with its deployed replica count and instances."""

    id: str
    replicas: int
    definition: Any
    instances: Dict[str, WorkloadInstance] = field(default_factory=dict)
    status: ResourceStatus = ResourceStatus.PENDING


class StateManager:
    """Tracks workloads and assigns pending instances to ready workers."""

    def __init__(self, manager_channel: Sender, workers: List[Worker]) -> None:
        logger.debug("Creating StateManager...")
        self.state: Dict[str, Workload] = {}
        self.workers = workers
        self.manager_channel = manager_channel

    async def run(self, receiver: Receiver) -> None:
        """Process events until Shutdown; raises StateManagerFailedError if the channel ends."""
        async for message in receiver:
            if isinstance(message, Shutdown):
                logger.info("Shutting down StateManager")
                return
            try:
                if isinstance(message, ScheduleWorkload):
                    self.process_schedule_request(message.request)
                elif isinstance(message, InstanceUpdate):
                    await self._notify(
                        InstanceMetricEvent(SCHEDULER_IDENTIFIER, copy.copy(message.metrics))
                    )
                    self.process_instance_update(message.metrics)
                elif isinstance(message, WorkerUpdate):
                    self.process_metric_update(message.identifier, message.metrics)
            except SchedulerError as error:
                logger.debug("Event %s was not applied: %s", message, error)
            self.scan_workers()
            await self.update_state()
        raise StateManagerFailedError("state manager channel closed")

    async def _notify(self, event: Any) -> None:
        try:
            await self.manager_channel.send(event)
        except ChannelClosedError:
            logger.debug("Manager channel closed, dropping %s", event)

    def scan_workers(self) -> None:
        """Mark workers with a closed channel as not ready and drop their instances."""
        deactivated = set()
        for worker in self.workers:
            if worker.channel.is_closed() and worker.is_ready():
                worker.state = WorkerState.NOT_READY
                deactivated.add(worker.id)

        if not deactivated:
            return
        for workload in self.state.values():
            lost = [
                instance_id
                for instance_id, instance in workload.instances.items()
                if instance.worker_id in deactivated
            ]
            for instance_id in lost:
                del workload.instances[instance_id]

    def process_instance_update(self, metrics: InstanceMetric) -> None:
        logger.debug(
            "[process_instance_update] Instance %s and received %s status",
            metrics.instance_id,
            metrics.status,
        )
        workload = next(
            (w for w in self.state.values() if metrics.instance_id in w.instances), None
        )
        if workload is None:
            logger.error(
                "Could not process instance %s update, as it does not exist",
                metrics.instance_id,
            )
            return

        status = int_to_resource_status(metrics.status)
        if status is ResourceStatus.TERMINATED:
            logger.debug(
                "Deleted instance %s on workload %s", metrics.instance_id, workload.id
            )
            del workload.instances[metrics.instance_id]
        else:
            instance = workload.instances[metrics.instance_id]
            instance.status = status
            logger.info("Instance %s updated status to %s", instance.id, status.name)

    def process_metric_update(self, identifier: str, metrics: WorkerMetric) -> None:
        worker = next((w for w in self.workers if w.id == identifier), None)
        if worker is None:
            logger.error(
                "Received metrics for worker %s but could not find registration associated",
                identifier,
            )
            return
        if int_to_resource_status(metrics.status) is ResourceStatus.RUNNING:
            worker.state = WorkerState.READY
        else:
            worker.state = WorkerState.NOT_READY

    async def update_state(self) -> None:
        """Reconcile: place pending instances round-robin and forget finished workloads."""
        ready = self.workers_ready()
        if not ready:
            logger.info("State isn't updated as there is no worker available")
            return

        workers = cycle(ready)
        for workload in self.state.values():
            pending = [i for i in workload.instances.values() if i.is_pending()]
            for instance in pending:
                worker_id = next(workers)
                instance.set_worker(worker_id)
                instance.status = ResourceStatus.CREATING
                await self._notify(
                    Schedule(
                        worker_id,
                        InstanceScheduling(
                            instance_id=instance.id,
                            action=int(WorkloadRequestKind.CREATE),
                            definition=json.dumps(instance.definition),
                        ),
                    )
                )
                await self._notify(
                    InstanceMetricEvent(
                        SCHEDULER_IDENTIFIER,
                        InstanceMetric(
                            status=int(ResourceStatus.CREATING),
                            metrics=f'"workload_id": "{workload.id}"',
                            instance_id=instance.id,
                        ),
                    )
                )

        finished = [
            key
            for key, workload in self.state.items()
            if workload.replicas == 0 and not workload.instances
        ]
        for key in finished:
            del self.state[key]
            logger.debug("Deleted workload %s from current state", key)

    def process_schedule_request(self, request: WorkloadRequest) -> None:
        logger.debug(
            "[process_schedule_request] Received workload id %s, action: %s",
            request.workload_id,
            request.action.name,
        )
        if request.action is WorkloadRequestKind.DESTROY:
            self._destroy_workload(request)
        else:
            self._create_workload(request)

    def _create_workload(self, request: WorkloadRequest) -> None:
        instance = WorkloadInstance(
            id=request.instance_id,
            status=ResourceStatus.PENDING,
            worker_id=None,
            definition=copy.deepcopy(request.definition),
        )
        workload = self.state.get(request.workload_id)
        if workload is not None:
            if workload.status is ResourceStatus.DESTROYING:
                logger.error("Cannot double replicas while workload is being destroyed")
                raise CannotDoubleReplicasError(request.workload_id)
            workload.instances[instance.id] = instance
            self._add_replicas(request.workload_id, _definition_replicas(workload.definition))
            return

        workload = Workload(
            id=request.workload_id,
            replicas=_definition_replicas(request.definition),
            definition=request.definition,
            instances={instance.id: instance},
            status=ResourceStatus.PENDING,
        )
        logger.info(
            "[process_schedule_request] Received scheduling request for %s, with %s replicas",
            workload.id,
            workload.replicas,
        )
        self.state[workload.id] = workload

    def _workload(self, workload_id: str) -> Workload:
        try:
            return self.state[workload_id]
        except KeyError:
            raise WorkloadNotExistingError(workload_id) from None

    def _add_replicas(self, workload_id: str, replicas: int) -> None:
        workload = self._workload(workload_id)
        logger.debug(
            "Adding replicas for %s, added %s to %s", workload_id, replicas, workload.replicas
        )
        workload.replicas += replicas

    def _minus_replicas(self, workload_id: str, replicas: int) -> None:
        workload = self._workload(workload_id)
        logger.debug(
            "Minus replicas for %s, removed %s to %s", workload_id, replicas, workload.replicas
        )
        workload.replicas -= replicas

    def _destroy_workload(self, request: WorkloadRequest) -> None:
        workload = self.state.get(request.workload_id)
        if workload is None:
            logger.error(
                "Requested workload %s hasn't any instance available", request.workload_id
            )
            raise WorkloadNotExistingError(request.workload_id)

        if workload.status is ResourceStatus.DESTROYING:
            return

        def_replicas = _definition_replicas(workload.definition)
        logger.info(
            "[process_schedule_request] Received destroy request for %s, with %s replicas",
            workload.id,
            def_replicas,
        )
        if workload.replicas > def_replicas:
            self._minus_replicas(request.workload_id, def_replicas)
        else:
            logger.info("Workload %s is getting unscheduled", workload.id)
            workload.status = ResourceStatus.DESTROYING
            workload.replicas = 0

    def eligible_worker(self) -> Optional[str]:
        """A random ready worker id, or None when no worker is ready."""
        ready = self.workers_ready()
        return random.choice(ready) if ready else None

    def workers_ready(self) -> List[str]:
        """Ids of ready workers, in registration order."""
        return [worker.id for worker in self.workers if worker.is_ready()]