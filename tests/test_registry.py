import json

import pytest

from tinylog.messages import RequestVoteReply, RequestVoteRequest
from tinylog.registry import Registry, register_proto_handler


class _Client:
    def __init__(self):
        self.registry = Registry()

    def register_method(self, name, handler):
        self.registry.register(name, handler)


def test_register_and_get():
    reg = Registry()
    handler = lambda p: p  # noqa: E731
    reg.register("echo", handler)
    assert reg.get("echo") is handler
    assert reg.get("missing") is None


def test_proto_handler_round_trip():
    client = _Client()
    register_proto_handler(
        client, RequestVoteRequest,
        lambda req: RequestVoteReply(term=req.term, vote_granted=True),
        "raft.RequestVote",
    )
    handler = client.registry.get("raft.RequestVote")
    out = handler(RequestVoteRequest(term=7, candidate_id="node-01").to_json())
    assert RequestVoteReply.from_json(out) == RequestVoteReply(term=7, vote_granted=True)


def test_proto_handler_bad_params():
    client = _Client()
    register_proto_handler(client, RequestVoteRequest, lambda r: RequestVoteReply(), "m")
    with pytest.raises(ValueError):
        client.registry.get("m")(json.dumps([1]).encode())


def test_proto_handler_failure_wrapped():
    client = _Client()

    def fail(req):
        raise KeyError("boom")

    register_proto_handler(client, RequestVoteRequest, fail, "m")
    with pytest.raises(RuntimeError, match="failed to handle m"):
        client.registry.get("m")(b"{}")