import json

import pytest

from rik_scheduler.channel import channel
from rik_scheduler.core import (
    InstanceMetricsUpdate,
    Register,
    ScheduleRequest,
    Subscribe,
    WorkerMetricsUpdate,
    WorkloadRequest,
)
from rik_scheduler.grpc_service import GRPCService, Request
from rik_scheduler.messages import (
    Code,
    InstanceMetric,
    RpcError,
    WorkerMetric,
    WorkerRegistration,
    WorkerStatus,
    WorkloadRequestKind,
    WorkloadScheduling,
)


def _definition():
    return {
        "api_version": "v0",
        "kind": "Pod",
        "name": "workload-debian",
        "replicas": 2,
        "spec": {
            "function": None,
            "containers": [
                {"name": " debian", "image": "debian:latest", "env": None, "ports": None}
            ],
        },
    }


def _workload():
    return WorkloadScheduling(
        workload_id="test",
        definition=json.dumps(_definition()),
        action=int(WorkloadRequestKind.CREATE),
        instance_id="",
    )


async def _stream(items):
    for item in items:
        yield item


@pytest.mark.asyncio
async def test_schedule_event():
    sender, receiver = channel(1024)
    service = GRPCService(sender)
    workload = _workload()

    await service.schedule_instance(Request(workload))

    message = await receiver.recv()
    assert isinstance(message, ScheduleRequest)
    assert message.request == WorkloadRequest.from_scheduling(workload)
    assert message.request.definition["name"] == "workload-debian"
    assert message.request.action is WorkloadRequestKind.CREATE


@pytest.mark.asyncio
async def test_schedule_invalid_definition():
    sender, _receiver = channel(1024)
    service = GRPCService(sender)
    workload = WorkloadScheduling("test", "not json", 0, "")

    with pytest.raises(RpcError) as info:
        await service.schedule_instance(Request(workload))
    assert info.value.code is Code.INVALID_ARGUMENT


@pytest.mark.asyncio
async def test_schedule_manager_gone_is_unavailable():
    sender, receiver = channel(1024)
    receiver.close()
    service = GRPCService(sender)

    with pytest.raises(RpcError) as info:
        await service.schedule_instance(Request(_workload()))
    assert info.value.code is Code.UNAVAILABLE


@pytest.mark.asyncio
async def test_status_update_no_remote():
    sender, receiver = channel(1024)
    service = GRPCService(sender)

    await service.get_status_updates(Request(None))

    message = await receiver.recv()
    assert isinstance(message, Subscribe)
    assert message.addr == "0.0.0.0:0"


@pytest.mark.asyncio
async def test_status_update_with_remote():
    sender, receiver = channel(1024)
    service = GRPCService(sender)

    await service.get_status_updates(Request(None, remote_addr="10.0.0.2:5000"))

    message = await receiver.recv()
    assert message.addr == "10.0.0.2:5000"


@pytest.mark.asyncio
async def test_status_update_stream():
    sender, receiver = channel(1024)
    service = GRPCService(sender)

    stream = await service.get_status_updates(Request(None))

    message = await receiver.recv()
    assert isinstance(message, Subscribe)
    await message.channel.send(RpcError.cancelled("Sample"))
    received = await stream.recv()
    assert isinstance(received, RpcError)
    assert received.code is Code.CANCELLED


@pytest.mark.asyncio
async def test_no_remote_register():
    sender, receiver = channel(1024)
    service = GRPCService(sender)

    await service.register(Request(WorkerRegistration(hostname="debian")))

    message = await receiver.recv()
    assert isinstance(message, Register)
    assert message.hostname == "debian"
    assert message.addr == "0.0.0.0:0"


@pytest.mark.asyncio
async def test_no_hostname():
    sender, receiver = channel(1024)
    service = GRPCService(sender)

    with pytest.raises(RpcError) as info:
        await service.register(Request(WorkerRegistration(hostname="")))
    assert info.value.code is Code.FAILED_PRECONDITION
    receiver.close()
    assert await receiver.recv() is None


@pytest.mark.asyncio
async def test_register_event():
    sender, receiver = channel(1024)
    service = GRPCService(sender)

    await service.register(Request(WorkerRegistration(hostname="debian")))

    message = await receiver.recv()
    assert isinstance(message, Register)
    assert message.hostname == "debian"


@pytest.mark.asyncio
async def test_register_stream():
    sender, receiver = channel(1024)
    service = GRPCService(sender)

    stream = await service.register(Request(WorkerRegistration(hostname="debian")))

    message = await receiver.recv()
    assert isinstance(message, Register)
    await message.channel.send(RpcError.cancelled("Sample"))
    received = await stream.recv()
    assert isinstance(received, RpcError)
    assert received.code is Code.CANCELLED


@pytest.mark.asyncio
async def test_send_status_updates_forwards_in_order():
    sender, receiver = channel(1024)
    service = GRPCService(sender)
    worker_metric = WorkerMetric(status=2, metrics="{}")
    instance_metric = InstanceMetric(status=1, metrics="{}", instance_id="inst")
    updates = [
        WorkerStatus(identifier="debian", status=worker_metric),
        WorkerStatus(identifier="debian", status=instance_metric),
    ]

    await service.send_status_updates(Request(_stream(updates)))

    first = await receiver.recv()
    second = await receiver.recv()
    assert first == WorkerMetricsUpdate("debian", worker_metric)
    assert second == InstanceMetricsUpdate("debian", instance_metric)


@pytest.mark.asyncio
async def test_send_status_updates_without_status():
    sender, _receiver = channel(1024)
    service = GRPCService(sender)

    with pytest.raises(RpcError) as info:
        await service.send_status_updates(Request(_stream([WorkerStatus(identifier="debian")])))
    assert info.value.code is Code.INVALID_ARGUMENT