"""Raft leader election and log replication over an RPC client."""

from __future__ import annotations

import queue
import random
import threading
import time
from enum import Enum
from typing import Any, Callable, Iterable, Protocol

from tinylog.logger import Logger, LogLevel
from tinylog.messages import (
    AppendEntriesReply,
    AppendEntriesRequest,
    CommitEntry,
    LogEntry,
    Record,
    RequestVoteReply,
    RequestVoteRequest,
)

NO_VOTE = ""
REQUEST_VOTE_METHOD = "raft.RequestVote"
APPEND_ENTRIES_METHOD = "raft.AppendEntries"

STARTUP_DELAY = 0.1
TIMER_TICK = 0.01
ELECTION_TIMEOUT_MIN_MS = 150
ELECTION_TIMEOUT_SPREAD_MS = 150
HEARTBEAT_INTERVAL = 0.05
RPC_TIMEOUT = 0.1

_STOP = object()


class RState(Enum):
    LEADER = "Leader"
    CANDIDATE = "Candidate"
    FOLLOWER = "Follower"
    DEAD = "Dead"

    def __str__(self) -> str:
        return self.value


class RaftStoppedError(RuntimeError):
    """The node is stopped and cannot take part in the protocol."""


class NotLeaderError(RuntimeError):
    """A command was submitted to a node that is not the leader."""


class RaftLog(Protocol):
    def append(self, data: bytes) -> int: ...

    def read(self, index: int) -> Record: ...

    def read_from(self, index: int) -> list[Record]: ...

    def next_index(self) -> int: ...


class RPCReply(Protocol):
    raw: bytes | None
    error: Exception | None


class RaftRPCClient(Protocol):
    def call_rpc(self, target_id: str, method: str, params: bytes, timeout: float) -> bytes: ...

    def broadcast_rpc(self, method: str, params: bytes, timeout: float) -> Iterable[RPCReply]: ...


def _spawn(target: Callable[..., Any], *args: Any) -> threading.Thread:
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


class Raft:
    """One Raft node; committed commands are put on commit_queue."""

    def __init__(
        self,
        node_id: str,
        log: RaftLog,
        peers: Iterable[str],
        rpc_client: RaftRPCClient,
        commit_queue: Any = None,
        logger: Logger | None = None,
    ) -> None:
        self.id = node_id
        self.log = log
        self.peers = list(peers)
        self.rpc_client = rpc_client
        self.commit_queue = commit_queue
        self.dlog = logger if logger is not None else Logger(node_id, LogLevel.DEBUG)

        self.current_term = 0
        self.voted_for = NO_VOTE
        self.has_commited = False
        self.commit_index = 0
        self.last_applied = 0
        self.next_index: dict[str, int] = {peer: 0 for peer in self.peers}
        self.state = RState.FOLLOWER
        self.leader_id = ""
        self.last_election_reset = time.time()

        self._lock = threading.RLock()
        self._commit_ready: queue.Queue = queue.Queue()

        self.dlog.info("New Raft instance: id=%s, peers=%s", node_id, self.peers)
        _spawn(self._delayed_start)
        _spawn(self._commit_sender, self._commit_ready)

    # -- lifecycle -------------------------------------------------------

    def _delayed_start(self) -> None:
        time.sleep(STARTUP_DELAY)
        with self._lock:
            self.last_election_reset = time.time()
        self._run_election_timer()

    def stop(self) -> None:
        with self._lock:
            if self.state is RState.DEAD:
                return
            self.dlog.info("Stopped, state=%s", self.state)
            self.state = RState.DEAD
            self._commit_ready.put(_STOP)

    def resume(self) -> None:
        with self._lock:
            if self.state is not RState.DEAD:
                return
            self.dlog.info("Resumed as Follower")
            self._commit_ready = queue.Queue()
            _spawn(self._commit_sender, self._commit_ready)
            self.state = RState.FOLLOWER
            self._become_follower(self.current_term)

    def get_node_info(self) -> dict[str, Any]:
        with self._lock:
            return {
                "id": self.id,
                "state": str(self.state),
                "current_term": self.current_term,
                "voted_for": self.voted_for,
                "leader_id": self.leader_id,
                "last_election_reset": int(self.last_election_reset * 1000),
            }

    # -- state transitions ------------------------------------------------

    def _become_follower(self, term: int) -> None:
        if self.state is RState.DEAD:
            return
        self.state = RState.FOLLOWER
        self.current_term = term
        self.voted_for = NO_VOTE
        self.last_election_reset = time.time()
        self.dlog.info("become Follower, new term=%d", term)
        _spawn(self._run_election_timer)

    def _become_leader(self) -> None:
        if self.state is RState.DEAD:
            raise RaftStoppedError("cannot become leader in dead state")
        self.dlog.info("become Leader, term=%d", self.current_term)
        self.state = RState.LEADER
        self.leader_id = self.id
        next_log_index = self.log.next_index()
        for peer in self.peers:
            self.next_index[peer] = next_log_index
        _spawn(self._heartbeat_loop, self.current_term)

    def _has_majority(self, count: int) -> bool:
        return count * 2 > len(self.peers) + 1

    # -- log helpers -------------------------------------------------------

    def _last_log_index_and_term(self) -> tuple[bool, int, int]:
        next_log_index = self.log.next_index()
        if next_log_index == 0:
            return False, 0, 0
        last_index = next_log_index - 1
        try:
            entry = self._read_log_entry_at(last_index)
        except Exception:
            return True, 0, 0
        return True, last_index, entry.term

    def _read_log_entry_at(self, index: int) -> LogEntry:
        try:
            record = self.log.read(index)
            return LogEntry.unmarshal(record.value)
        except Exception as exc:
            self.dlog.error(exc, "Error reading log entry at index %d", index)
            raise

    def _read_log_entries_from(self, index: int) -> list[LogEntry]:
        try:
            return [LogEntry.unmarshal(record.value) for record in self.log.read_from(index)]
        except Exception as exc:
            self.dlog.error(exc, "Error reading log entries from index %d", index)
            raise

    # -- RPC handlers ------------------------------------------------------

    def handle_request_vote_request(self, req: RequestVoteRequest) -> RequestVoteReply:
        """Grant or deny a vote to a candidate."""
        with self._lock:
            if self.state is RState.DEAD:
                raise RaftStoppedError("cannot handle RequestVoteRequest in dead state")
            is_log_stored, last_index, last_term = self._last_log_index_and_term()
            self.dlog.debug("HandleRequestVoteRequest: term=%d, candidate=%s", req.term, req.candidate_id)
            if req.term > self.current_term:
                self._become_follower(req.term)

            reply = RequestVoteReply(term=self.current_term, vote_granted=False)
            log_ok = (
                not is_log_stored
                or req.last_log_term > last_term
                or (req.last_log_term == last_term and req.last_log_index >= last_index)
            )
            if (
                req.term == self.current_term
                and self.voted_for in (NO_VOTE, req.candidate_id)
                and log_ok
            ):
                self.voted_for = req.candidate_id
                self.last_election_reset = time.time()
                reply.vote_granted = True
                self.dlog.info("Vote granted to candidate=%s", req.candidate_id)
            else:
                self.dlog.info("Vote denied for candidate=%s", req.candidate_id)
            return reply

    def _append_acceptable(self, req: AppendEntriesRequest) -> bool:
        if not req.follower_has_entries:
            return True
        if req.prev_log_index >= self.log.next_index():
            return False
        try:
            prev = self._read_log_entry_at(req.prev_log_index)
        except Exception:
            return False
        return prev.term == req.prev_log_term

    def handle_append_entries_request(self, req: AppendEntriesRequest) -> AppendEntriesReply:
        """Accept entries and heartbeats from the leader."""
        with self._lock:
            if self.state is RState.DEAD:
                raise RaftStoppedError("cannot handle AppendEntriesRequest in dead state")
            self.dlog.debug("handling AppendEntriesRequest: term=%d, leader=%s", req.term, req.leader_id)
            if req.term > self.current_term:
                self._become_follower(req.term)

            reply = AppendEntriesReply(term=self.current_term, success=False)
            if req.term != self.current_term:
                self.dlog.debug("AppendEntriesRequest: different term, rejecting")
                return reply

            if self.state is not RState.FOLLOWER:
                self._become_follower(req.term)
            self.last_election_reset = time.time()
            self.leader_id = req.leader_id
            if not self._append_acceptable(req):
                return reply
            reply.success = True

            insert_index = req.prev_log_index + 1 if req.follower_has_entries else 0
            new_from = 0
            while insert_index < self.log.next_index() and new_from < len(req.entries):
                existing = self._read_log_entry_at(insert_index)
                if existing.term != req.entries[new_from].term:
                    break
                insert_index += 1
                new_from += 1

            if not req.entries:
                self.dlog.debug("AppendEntriesRequest: empty entries, it's a heartbeat")
            else:
                inserting = req.entries[new_from:]
                self.dlog.debug(
                    "inserting entries %s from index %d", [e.command for e in inserting], insert_index
                )
                for entry in inserting:
                    self.log.append(entry.marshal())

            next_log_index = self.log.next_index()
            if (
                req.leader_has_comitted
                and next_log_index > 0
                and (not self.has_commited or req.leader_commit > self.commit_index)
            ):
                self.commit_index = min(req.leader_commit, next_log_index - 1)
                self.dlog.debug("setting commitIndex=%d", self.commit_index)
                self._commit_ready.put(None)
            return reply

    # -- elections -----------------------------------------------------------

    def _run_election_timer(self) -> None:
        timeout = (ELECTION_TIMEOUT_MIN_MS + random.randrange(ELECTION_TIMEOUT_SPREAD_MS)) / 1000
        with self._lock:
            term_started = self.current_term
        while True:
            time.sleep(TIMER_TICK)
            with self._lock:
                if (
                    self.state in (RState.LEADER, RState.DEAD)
                    or term_started != self.current_term
                ):
                    return
                if time.time() - self.last_election_reset < timeout:
                    continue
                self.dlog.debug(
                    "election timeout (last reset at %d), starting election",
                    int(self.last_election_reset * 1000),
                )
            try:
                self.start_election()
            except Exception as exc:
                self.dlog.error(exc, "election failed")
            return

    def start_election(self) -> None:
        """Become a candidate for the next term and ask peers for votes."""
        with self._lock:
            if self.state is RState.DEAD:
                raise RaftStoppedError("cannot start election in dead state")
            self.state = RState.CANDIDATE
            self.current_term += 1
            self.voted_for = self.id
            self.last_election_reset = time.time()
            saved_term = self.current_term
            is_log_stored, last_index, last_term = self._last_log_index_and_term()
            self.dlog.info("starting Election: term=%d", saved_term)
            req = RequestVoteRequest(
                term=saved_term,
                candidate_id=self.id,
                is_log_stored=is_log_stored,
                last_log_index=last_index,
                last_log_term=last_term,
            )
            votes = 1
            if self._has_majority(votes):
                self._become_leader()
                return

        try:
            replies = self.rpc_client.broadcast_rpc(REQUEST_VOTE_METHOD, req.to_json(), RPC_TIMEOUT)
        except Exception:
            _spawn(self._run_election_timer)
            raise

        for reply in replies:
            with self._lock:
                if self.state is not RState.CANDIDATE or self.current_term != saved_term:
                    return
            if not reply.raw:
                continue
            if reply.error is not None:
                self.dlog.error(reply.error, "Error in RequestVote response")
                continue
            try:
                rep = RequestVoteReply.from_json(reply.raw)
            except ValueError as exc:
                self.dlog.error(exc, "Error decoding RequestVote reply")
                continue
            self.dlog.debug("Received vote reply: granted=%s", rep.vote_granted)
            with self._lock:
                if self.state is not RState.CANDIDATE or self.current_term != saved_term:
                    return
                if rep.term > self.current_term:
                    self._become_follower(rep.term)
                    return
                if rep.vote_granted:
                    votes += 1
                    if self._has_majority(votes):
                        self._become_leader()
                        return

        self.dlog.debug("No more responses for RequestVote")
        _spawn(self._run_election_timer)

    # -- leader ----------------------------------------------------------------

    def _heartbeat_loop(self, term: int) -> None:
        while True:
            try:
                self._send_leader_heartbeats()
            except Exception as exc:
                self.dlog.error(exc, "Error sending leader heartbeats")
            time.sleep(HEARTBEAT_INTERVAL)
            with self._lock:
                if self.state is not RState.LEADER or self.current_term != term:
                    return

    def _send_leader_heartbeats(self) -> None:
        with self._lock:
            if self.state is not RState.LEADER:
                return
            saved_term = self.current_term
        self.dlog.debug("sending Leader heartbeats: term=%d", saved_term)
        threads = [_spawn(self._replicate_to, peer, saved_term) for peer in self.peers]
        for thread in threads:
            thread.join()

    def _replicate_to(self, peer: str, saved_term: int) -> None:
        with self._lock:
            if self.state is not RState.LEADER or self.current_term != saved_term:
                return
            ni = self.next_index[peer]
            follower_has_entries = ni > 0
            prev_index = prev_term = 0
            if follower_has_entries:
                prev_index = ni - 1
                try:
                    prev_term = self._read_log_entry_at(prev_index).term
                except Exception:
                    prev_term = 0
            entries: list[LogEntry] = []
            next_log_index = self.log.next_index()
            if 0 < next_log_index and ni < next_log_index:
                try:
                    entries = self._read_log_entries_from(ni)
                except Exception:
                    return
            req = AppendEntriesRequest(
                term=saved_term,
                leader_id=self.id,
                prev_log_index=prev_index,
                prev_log_term=prev_term,
                entries=entries,
                leader_commit=self.commit_index,
                follower_has_entries=follower_has_entries,
                leader_has_comitted=self.has_commited,
            )
            payload = req.to_json()

        try:
            raw = self.rpc_client.call_rpc(peer, APPEND_ENTRIES_METHOD, payload, RPC_TIMEOUT)
        except Exception as exc:
            self.dlog.warn("Error calling AppendEntries on peer %s: %s", peer, exc)
            return
        if not raw:
            self.dlog.debug("Empty response from AppendEntries on peer %s", peer)
            return

        with self._lock:
            try:
                rep = AppendEntriesReply.from_json(raw)
            except ValueError as exc:
                self.dlog.error(exc, "Error unmarshalling AppendEntriesReply from peer %s", peer)
                return
            if rep.term > saved_term:
                if rep.term > self.current_term:
                    self.dlog.debug("Peer %s has higher term %d than current term %d", peer, rep.term, self.current_term)
                    self._become_follower(rep.term)
                return
            if self.state is not RState.LEADER or rep.term != saved_term:
                return
            if rep.success:
                self.next_index[peer] = ni + len(entries)
                try:
                    self._update_commit_index()
                except Exception as exc:
                    self.dlog.error(exc, "Error updating commit index")
            else:
                self.next_index[peer] = max(ni - 1, 0)
                self.dlog.debug(
                    "Peer %s rejected AppendEntries, nextIndex decremented to %d", peer, self.next_index[peer]
                )

    def _update_commit_index(self) -> None:
        next_commit = self.commit_index + 1 if self.has_commited else 0
        next_log_index = self.log.next_index()
        if next_log_index == 0 or next_commit >= next_log_index:
            self.dlog.debug("No log entries to commit, skipping updateCommitIndex")
            return
        updated = False
        for offset, entry in enumerate(self._read_log_entries_from(next_commit)):
            index = next_commit + offset
            if entry.term != self.current_term:
                continue
            matches = 1 + sum(1 for peer in self.peers if self.next_index[peer] > index)
            if self._has_majority(matches):
                updated = True
                self.commit_index = index
        if updated:
            self.dlog.debug("leader sets commitIndex=%d", self.commit_index)
            self._commit_ready.put(None)

    def _commit_sender(self, ready: queue.Queue) -> None:
        while True:
            if ready.get() is _STOP:
                return
            with self._lock:
                delivered: list[tuple[int, LogEntry]] = []
                if not self.has_commited or self.commit_index > self.last_applied:
                    next_apply = self.last_applied + 1 if self.has_commited else 0
                    try:
                        read = self._read_log_entries_from(next_apply)
                    except Exception:
                        continue
                    count = self.commit_index - next_apply + 1
                    delivered = [(next_apply + i, e) for i, e in enumerate(read[:count])]
                    self.last_applied = self.commit_index
                    self.has_commited = True
            if not delivered:
                continue
            self.dlog.info("commiting entries=%s", [e.command for _, e in delivered])
            if self.commit_queue is None:
                continue
            for index, entry in delivered:
                self.commit_queue.put(CommitEntry(command=entry.command, index=index, term=entry.term))

    # -- client API ------------------------------------------------------------

    def submit(self, command: str) -> bool:
        """Append a command to the leader's log; raise NotLeaderError elsewhere."""
        with self._lock:
            if self.state is not RState.LEADER:
                raise NotLeaderError(f"node {self.id} is not the leader")
            self.log.append(LogEntry(command=command, term=self.current_term).marshal())
            return True