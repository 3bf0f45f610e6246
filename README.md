# rik_scheduler

An asyncio cluster scheduler that runs inside one process. Workers register
with it under a unique hostname and report their status. A single controller
sends it workloads and subscribes to status updates. The scheduler tracks
every workload and its instances, and places pending instances on ready
workers in round-robin order.

The package has no dependencies outside the standard library.

## Modules

- `rik_scheduler.channel`: bounded async channels (`channel`, `Sender`,
  `Receiver`, `ChannelClosedError`).
- `rik_scheduler.messages`: the messages exchanged with workers and the
  controller (`WorkloadScheduling`, `InstanceScheduling`, `WorkerStatus`,
  `WorkerMetric`, `InstanceMetric`, `WorkerRegistration`), the enums
  `ResourceStatus`, `WorkloadRequestKind` and `Code`, the `RpcError`
  exception, and `int_to_resource_status`.
- `rik_scheduler.core`: the `Worker` and `Controller` handles, the event
  dataclasses, `WorkloadRequest`, `WorkerState`, and the `SchedulerError`
  family of exceptions.
- `rik_scheduler.config`: command-line configuration (`parse_config`,
  `verbosity_level`, `Config`, `ConfigError`).
- `rik_scheduler.state_manager`: `StateManager`, `Workload`,
  `WorkloadInstance`, and the events the state manager accepts
  (`ScheduleWorkload`, `InstanceUpdate`, `WorkerUpdate`, `Shutdown`).
- `rik_scheduler.grpc_service`: `GRPCService`, the entry point for calls from
  workers and the controller, and the `Request` wrapper.
- `rik_scheduler.manager`: `Manager`, which ties everything together.

## How it fits together

- **Workers** call `GRPCService.register` with a
  `Request(WorkerRegistration(hostname), remote_addr)`. The call returns a
  `Receiver` on which the scheduler pushes `InstanceScheduling` orders. An
  empty hostname raises `RpcError` with code `Code.FAILED_PRECONDITION`. If a
  second worker registers under a hostname whose stream is still open, it gets
  an `RpcError` with code `Code.ALREADY_EXISTS` as an item on its stream. A
  worker whose stream has closed can register again under the same name.
  When the caller's address is unknown, `"0.0.0.0:0"` is used.
- Workers report status through `GRPCService.send_status_updates`. Its
  request message is an async iterable of `WorkerStatus` values. Each update
  carries either a `WorkerMetric` or an `InstanceMetric`.
- **The controller** sends `WorkloadScheduling` requests through
  `GRPCService.schedule_instance`. The `definition` field must be a JSON
  object; anything else raises `RpcError` with code `Code.INVALID_ARGUMENT`.
  The optional `"replicas"` key of the definition defaults to 1. The
  controller receives `WorkerStatus` messages from the `Receiver` that
  `GRPCService.get_status_updates` returns. Only one controller is connected
  at a time. A new subscription replaces the current one only once the
  current controller's stream has closed.
- If the manager's event channel is gone, every `GRPCService` call raises
  `RpcError` with code `Code.UNAVAILABLE`.
- **The state manager** (`StateManager`) keeps one `Workload` for each
  workload id, holding its `WorkloadInstance` objects. After every event it
  does three things:
  - it marks workers whose stream has closed as not ready and drops the
    instances that were placed on them;
  - it assigns pending instances to ready workers in round-robin order and
    marks them `CREATING`;
  - it removes workloads that have no replicas and no instances left.

  An instance update with status `TERMINATED` removes that instance.
- **The manager** (`Manager`) owns the list of workers and the connected
  controller. `Manager.run()` starts a `StateManager` task and handles events
  until the event channel ends. Calls reach the manager through
  `manager.service`. Closing `manager.events` stops the loop once the events
  already queued have been handled.

Workers become ready when they report a `WorkerMetric` whose status is
`ResourceStatus.RUNNING`. They become not ready when they report any other
status or when their stream closes.

Creating a workload that already exists adds another instance and increases
its replica count by the definition's replicas. Destroying a workload lowers
its replica count by the definition's replicas. Once the count would reach
that number or less, the workload is marked `DESTROYING` and its replica count
is set to 0. Destroying a workload that is already being destroyed does
nothing. `StateManager.process_schedule_request` raises
`CannotDoubleReplicasError` when asked to create replicas of a workload that
is being destroyed, and `WorkloadNotExistingError` when asked to destroy a
workload that does not exist. Inside `StateManager.run` these errors are
logged and the event is skipped.

```python
import asyncio

from rik_scheduler.grpc_service import Request
from rik_scheduler.manager import Manager
from rik_scheduler.messages import WorkerRegistration


async def main():
    manager = Manager()
    task = asyncio.create_task(manager.run())

    updates = await manager.service.get_status_updates(Request(None))
    orders = await manager.service.register(
        Request(WorkerRegistration("node-1"), "10.0.0.5:5000")
    )
    print(await updates.recv())   # WorkerStatus announcing node-1

    manager.events.close()
    await task


asyncio.run(main())
```

## Configuration

`parse_config` reads command-line style arguments:

| Option | Default | Meaning |
| --- | --- | --- |
| `-w`, `--workersip` | `0.0.0.0:4995` | IPv4 endpoint for workers |
| `-c`, `--ctrlip` | `0.0.0.0:4996` | IPv4 endpoint for the controller |
| `-v` (repeatable) | | verbosity |
| `--version` | | print the version and exit |

```python
from rik_scheduler.config import parse_config, verbosity_level

config = parse_config(["--workersip", "127.0.0.1:4995", "-vv"])
print(config.workers_endpoint)   # ('127.0.0.1', 4995)
print(config.verbosity_level)    # 'trace'

verbosity_level(0)   # "info"
verbosity_level(1)   # "debug"
verbosity_level(5)   # "trace"
```

An endpoint that is not a valid `IPv4:port` pair raises `ConfigError`.

## Channels

Components talk over bounded async channels:

```python
import asyncio
from rik_scheduler.channel import channel

async def demo():
    sender, receiver = channel(1024)
    await sender.send("hello")
    print(await receiver.recv())   # hello
    receiver.close()
    print(sender.is_closed())      # True

asyncio.run(demo())
```

- `send` waits while the channel is full.
- Sending on a channel whose receiver has been closed raises
  `ChannelClosedError`.
- `Sender.clone()` gives another sender for the same channel.
- `Receiver.recv()` returns `None` once the channel is closed and drained, or
  once every sender has been closed.
- A `Receiver` can also be used with `async for`.

## Status values

`int_to_resource_status` maps the integer statuses used on the wire to
`ResourceStatus`: 1 pending, 2 running, 3 failed, 4 terminated, 5 creating,
6 destroying. Any other value maps to unknown.

## What it does not do

- It does not listen on the network. `GRPCService` is called directly, in the
  same process. The endpoints that `parse_config` returns are not used to open
  any listener.
- It does not provide a command to run. There is no console script.
- It keeps all state in memory. Nothing is stored.

## Installing for development

Install the package together with the `test` extra, which brings in `pytest`
and `pytest-asyncio`.