import pytest

from rik_scheduler.messages import (
    Code,
    InstanceMetric,
    ResourceStatus,
    RpcError,
    WorkerStatus,
    int_to_resource_status,
)


@pytest.mark.parametrize("status", list(ResourceStatus))
def test_status_round_trip(status):
    assert int_to_resource_status(int(status)) is status


@pytest.mark.parametrize("raw", [-1, 7, 42])
def test_unknown_numbers_map_to_unknown(raw):
    assert int_to_resource_status(raw) is ResourceStatus.UNKNOWN


def test_running_and_terminated():
    assert int_to_resource_status(2) is ResourceStatus.RUNNING
    assert int_to_resource_status(4) is ResourceStatus.TERMINATED


def test_rpc_error_factories_set_codes():
    assert RpcError.cancelled("Sample").code is Code.CANCELLED
    assert RpcError.failed_precondition("No hostname specified").code is Code.FAILED_PRECONDITION
    assert RpcError.already_exists("dup").code is Code.ALREADY_EXISTS
    assert RpcError.invalid_argument("bad").code is Code.INVALID_ARGUMENT
    assert RpcError.unavailable("later").code is Code.UNAVAILABLE


def test_rpc_error_keeps_message():
    error = RpcError.cancelled("Sample")
    assert error.message == "Sample"
    with pytest.raises(RpcError) as info:
        raise error
    assert info.value.code is Code.CANCELLED


def test_worker_status_defaults():
    metric = InstanceMetric(status=1, metrics="{}", instance_id="test")
    status = WorkerStatus(identifier="scheduler", status=metric)
    assert status.host_address is None
    assert status.status.instance_id == "test"