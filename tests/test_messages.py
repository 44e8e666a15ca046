import json
from datetime import datetime

import pytest

from tinylog.messages import (
    AppendEntriesReply,
    AppendEntriesRequest,
    CommitEntry,
    LogEntry,
    Metrics,
    Record,
    RequestVoteReply,
    RequestVoteRequest,
    random_metrics_json,
)


def test_record_wire_bytes():
    assert Record(value=b"hello", offset=3).marshal() == b"\x0a\x05hello\x10\x03"


def test_record_round_trip_large_offset():
    record = Record(value=b"hello world", offset=2**40 + 7)
    assert Record.unmarshal(record.marshal()) == record


def test_record_zero_values_round_trip():
    assert Record.unmarshal(Record().marshal()) == Record()


def test_record_truncated_raises():
    data = Record(value=b"hello world", offset=1).marshal()
    with pytest.raises(ValueError):
        Record.unmarshal(data[:5])


def test_record_skips_unknown_fields():
    extra = b"\x18\x05"  # field 3, varint
    data = Record(value=b"abc", offset=9).marshal() + extra
    assert Record.unmarshal(data) == Record(value=b"abc", offset=9)


def test_log_entry_round_trip():
    entry = LogEntry(command="cmd-test", term=5)
    assert LogEntry.unmarshal(entry.marshal()) == entry


def test_log_entry_wrong_wire_type_raises():
    with pytest.raises(ValueError):
        LogEntry.unmarshal(b"\x08\x01")  # field 1 as varint


def test_commit_entry_is_immutable():
    entry = CommitEntry(command="x", index=1, term=2)
    with pytest.raises(AttributeError):
        entry.index = 3  # type: ignore[misc]
    assert entry.index == 1
    assert entry == CommitEntry(command="x", index=1, term=2)


def test_request_vote_request_round_trip():
    req = RequestVoteRequest(term=5, candidate_id="node-01", is_log_stored=True,
                             last_log_index=3, last_log_term=4)
    assert RequestVoteRequest.from_json(req.to_json()) == req


def test_request_vote_request_json_keys():
    obj = json.loads(RequestVoteRequest(term=1, candidate_id="node-02").to_json())
    assert obj["candidateId"] == "node-02"
    assert obj["term"] == 1


def test_request_vote_reply_round_trip():
    rep = RequestVoteReply(term=6, vote_granted=True)
    assert RequestVoteReply.from_json(rep.to_json()) == rep


def test_append_entries_request_round_trip():
    req = AppendEntriesRequest(
        term=3, leader_id="node-00", prev_log_index=1, prev_log_term=2,
        entries=[LogEntry("cmd-test-1", 3), LogEntry("cmd-test-2", 3)],
        leader_commit=1, follower_has_entries=True, leader_has_comitted=True,
    )
    assert AppendEntriesRequest.from_json(req.to_json()) == req


def test_append_entries_request_missing_fields_default():
    req = AppendEntriesRequest.from_json(b'{"term":4,"leaderId":"node-01"}')
    assert req == AppendEntriesRequest(term=4, leader_id="node-01")


def test_string_encoded_integers_accepted():
    rep = AppendEntriesReply.from_json('{"term":"12","success":true}')
    assert rep == AppendEntriesReply(term=12, success=True)


@pytest.mark.parametrize("payload", [b"[1,2]", b"not json", b'{"term":-1}', b'{"success":"yes"}'])
def test_invalid_json_raises(payload):
    with pytest.raises(ValueError):
        AppendEntriesReply.from_json(payload)


def test_metrics_round_trip():
    metrics = Metrics(timestamp="t", sensor_id="s", temperature=1.5, illuminance=2.5, status="OK")
    assert Metrics.from_json(metrics.to_json()) == metrics


def test_random_metrics_json():
    obj = json.loads(random_metrics_json("sensor-a"))
    assert obj["sensorId"] == "sensor-a"
    assert obj["status"] == "OK"
    assert 0 <= obj["temperature"] < 30
    assert 0 <= obj["illuminance"] < 100
    assert datetime.fromisoformat(obj["timestamp"]).tzinfo is not None