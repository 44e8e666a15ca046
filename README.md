# tinylog

tinylog is a small replicated commit log. Each node keeps an append-only log
split into segments (a store of length-prefixed records plus an offset index),
agrees on its contents with its peers through the Raft consensus algorithm, and
talks to those peers with JSON-RPC messages carried over an MQTT broker.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Running a node

The `tinylog` command starts one node of a cluster and connects it to an MQTT
broker. Its settings come from command-line options, whose defaults are read
from environment variables:

| Option         | Variable     | Meaning                                  | Default           |
|----------------|--------------|------------------------------------------|-------------------|
| `--broker-ip`  | `BROKER_IP`  | MQTT broker address, without the port    | `tcp://mosquitto` |
| `--node-num`   | `NODE_NUM`   | Number of nodes in the cluster           | `3`               |
| `--node-index` | `NODE_INDEX` | Index of this node, in `[0, NODE_NUM)`   | `0`               |

Port `1883` is appended to the broker address. Nodes are named `node-00`,
`node-01`, and so on; every node other than this one is a peer. An index
outside `[0, NODE_NUM)` is reported and the command exits with status 1.

```
BROKER_IP=tcp://localhost NODE_NUM=3 NODE_INDEX=1 tinylog
tinylog --broker-ip tcp://localhost --node-num 3 --node-index 2
```

Start one process per node index, all pointing at the same broker. The nodes
elect a leader and the leader keeps sending heartbeats; diagnostic lines are
written to standard output. Stop a node with Ctrl-C.

## Using the library

### The commit log

```python
from tinylog.config import Config
from tinylog.commitlog import Log
from tinylog.filesys import new_file_system

fs = new_file_system()
config = Config()
config.segment.max_store_bytes = 1024
config.segment.max_index_bytes = 1024

log = Log(fs, "tmp", config)
index = log.append(b"hello world")     # 0
record = log.read(index)               # record.value == b"hello world"
records = log.read_from(0)             # every record from index 0 on
log.close()
```

Limits left at zero default to 1024 bytes. When the active segment would grow
past its limits, the log rolls over to a new segment. Reading past the end
raises `IndexError`. Opening a `Log` on a directory of the same `FileSystem`
that already holds segments picks up where it left off.

### Raft over an in-memory cluster

`tinylog.harness.Harness` builds a cluster of Raft nodes joined by an
in-process transport (`tinylog.fakerpc`), so consensus can be exercised
without a broker:

```python
import time
from tinylog.harness import Harness

with Harness(3) as harness:
    leader_id, term = harness.check_single_leader()
    harness.submit_command(leader_id, "set x=1")
    time.sleep(0.3)  # give the leader time to replicate and commit
    harness.check_committed_n("set x=1", 3)
```

Nodes can be stopped, resumed, disconnected and reconnected with
`stop_node`, `resume_node`, `disconnect_node` and `reconnect_node`.
Submitting to a node that is not the leader raises
`tinylog.raft.NotLeaderError`. A `tinylog.raft.Raft` node puts every committed
command on its commit queue as a `tinylog.messages.CommitEntry`.

### RPC over MQTT

`tinylog.rpc.RPCClient` sends requests on `rpc/<node-id>` or
`rpc/broadcast` and receives replies on `rpc/response/<request-id>`.
`tinylog.mqttclient.MQTTClient` connects to a real broker;
`tinylog.broker.MockMQTTClient` routes messages in-process:

```python
from tinylog.broker import Broker, MockMQTTClient
from tinylog.rpc import RPCClient

broker = Broker()
a = RPCClient(MockMQTTClient(broker, "A"), "A")
b = RPCClient(MockMQTTClient(broker, "B"), "B")
b.register_method("echo", lambda params: params)
b.start()

result = a.call_rpc("B", "echo", b'{"hello":"world"}', 1.0)
for reply in a.broadcast_rpc("echo", b'{"hello":"world"}', 1.0):
    print(reply.raw)
```

A call to a method that is not registered raises `tinylog.rpc.RPCError`; a
call that gets no reply in time raises `TimeoutError`.
`tinylog.registry.register_proto_handler` registers a handler that takes and
returns the message classes of `tinylog.messages`.

## What it does not do

- The log lives in `tinylog.filesys.FileSystem`, which is held in memory:
  nothing is written to disk, and a node's log is lost when its process ends.
- The `tinylog` command offers no way to submit commands or read committed
  ones; it only runs the node's election and replication. Commands can be
  submitted through `Raft.submit` when the package is used as a library.
- Log compaction and snapshots are not provided.