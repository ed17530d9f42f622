"""Serialized, deadline-bounded mutation execution.

All mutations of one instance pass through a single worker thread that
drains a FIFO queue, so at most one mutation runs at a time and they run in
arrival order. Each runs inside the host's transaction scope while holding
the write side of a read/write lock; read-only queries take the read side
and may overlap each other but never a mutation.

Every submission gets a ``PendingMutation``: a single-assignment result slot
with a deadline. The caller waits until the slot is written or the deadline
fires; on expiry the caller gets TIMEOUT and the mutation's cancellation
token is set. A mutation still queued at that point is skipped by the
worker. One already running keeps going unless it polls its token.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any

from idebridge.core.constants import DEFAULT_MUTATION_TIMEOUT_SECONDS
from idebridge.core.errors import ErrorCode, OperationError
from idebridge.core.types import OperationResult

_host_log = logging.getLogger("idebridge.host")

TransactionFactory = Callable[[str], AbstractContextManager[Any]]


class MutationState(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    TIMED_OUT = "TIMED_OUT"


class MutationCancelled(Exception):
    """Raised by ``CancellationToken.raise_if_cancelled`` once the caller gave up."""


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise MutationCancelled()


_NEVER_CANCELLED = CancellationToken()
_worker_state = threading.local()


def current_token() -> CancellationToken:
    """Token of the mutation running on this thread (a never-cancelled one elsewhere)."""
    token = getattr(_worker_state, "token", None)
    return token if token is not None else _NEVER_CANCELLED


class PendingMutation:
    """Result slot written at most once; RUNNING moves to COMPLETED or TIMED_OUT and stays."""

    def __init__(self, command_name: str, timeout: float) -> None:
        self.command_name = command_name
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout
        self.token = CancellationToken()
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._state = MutationState.RUNNING
        self._result: OperationResult | None = None

    @property
    def state(self) -> MutationState:
        return self._state

    def complete(self, result: OperationResult) -> bool:
        with self._lock:
            if self._state is not MutationState.RUNNING:
                return False
            self._result = result
            self._state = MutationState.COMPLETED
        self._done.set()
        return True

    def expire(self) -> bool:
        with self._lock:
            if self._state is not MutationState.RUNNING:
                return False
            self._result = OperationResult.failed(OperationError.timeout(self.command_name, self.timeout))
            self._state = MutationState.TIMED_OUT
        self.token.cancel()
        self._done.set()
        return True

    def wait(self) -> OperationResult:
        """Block until completion or the deadline, whichever comes first."""
        remaining = max(0.0, self.deadline - time.monotonic())
        if not self._done.wait(remaining):
            self.expire()
        result = self._result
        if result is None:
            raise RuntimeError("Pending mutation finished without a result")
        return result


class ResultCallback:
    """Completion handle given to callback-style bodies. The first write wins."""

    def __init__(self, pending: PendingMutation) -> None:
        self._pending = pending

    @property
    def token(self) -> CancellationToken:
        return self._pending.token

    def success(self, message: str, affected_files: list[str] | tuple[str, ...] = ()) -> bool:
        return self._pending.complete(OperationResult.ok(message, affected_files))

    def failure(self, message: str, code: ErrorCode = ErrorCode.INTERNAL) -> bool:
        return self._pending.complete(OperationResult.failed(OperationError(code, message)))

    def complete(self, result: OperationResult) -> bool:
        return self._pending.complete(result)


class ReadLockTimeout(TimeoutError):
    """A reader gave up waiting for a running mutation to release the lock."""


class ReadWriteLock:
    """Many readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self, timeout: float | None = None) -> Iterator[None]:
        """Hold the read side; raise ``ReadLockTimeout`` if it is not free within ``timeout``."""
        with self._cond:
            if not self._cond.wait_for(lambda: not (self._writer or self._waiting_writers), timeout):
                raise ReadLockTimeout(f"Read lock not acquired within {timeout:g}s")
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass
class _WorkItem:
    pending: PendingMutation
    body: Callable[[ResultCallback], None]
    transactional: bool


def _no_transaction(_command_name: str) -> AbstractContextManager[Any]:
    return nullcontext()


class MutationExecutor:
    """Single-consumer mutation actor for one instance."""

    def __init__(
        self,
        transaction: TransactionFactory | None = None,
        default_timeout: float = DEFAULT_MUTATION_TIMEOUT_SECONDS,
        name: str = "idebridge-mutations",
    ) -> None:
        self.transaction = transaction or _no_transaction
        self.default_timeout = default_timeout
        self.name = name
        self.lock = ReadWriteLock()
        self._queue: queue.Queue[_WorkItem | None] = queue.Queue()
        self._worker: threading.Thread | None = None
        self._start_lock = threading.Lock()
        self._closed = False

    def _ensure_worker(self) -> None:
        with self._start_lock:
            if self._closed:
                raise RuntimeError("Mutation executor is shut down")
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
                self._worker.start()

    def shutdown(self, timeout: float | None = None) -> None:
        with self._start_lock:
            self._closed = True
            worker = self._worker
        if worker is not None:
            self._queue.put(None)
            worker.join(timeout=timeout)

    def read_action(self, timeout: float | None = None) -> AbstractContextManager[None]:
        """Scope for read-only queries; excludes running mutations.

        With a ``timeout``, raises ``ReadLockTimeout`` when a mutation (possibly
        one whose caller already timed out) still holds the lock at expiry.
        """
        return self.lock.read(timeout)

    def submit(
        self,
        body: Callable[[ResultCallback], None],
        command_name: str,
        timeout: float | None = None,
        transactional: bool = True,
    ) -> PendingMutation:
        pending = PendingMutation(command_name, self.default_timeout if timeout is None else timeout)
        self._ensure_worker()
        self._queue.put(_WorkItem(pending, body, transactional))
        return pending

    def execute_with_callback(
        self,
        body: Callable[[ResultCallback], None],
        command_name: str,
        timeout: float | None = None,
        transactional: bool = True,
    ) -> OperationResult:
        """Run ``body(callback)`` on the worker; the body or anything it hands the
        callback to must complete it before the deadline."""
        pending = self.submit(body, command_name, timeout, transactional)
        result = pending.wait()
        if pending.state is MutationState.TIMED_OUT:
            _host_log.warning(
                "mutation_timeout command=%s timeout=%s",
                command_name,
                pending.timeout,
                extra={"command": command_name, "timeout": pending.timeout},
            )
        return result

    def execute(
        self,
        body: Callable[[], OperationResult],
        command_name: str,
        timeout: float | None = None,
        transactional: bool = True,
    ) -> OperationResult:
        def run(callback: ResultCallback) -> None:
            callback.complete(body())

        return self.execute_with_callback(run, command_name, timeout, transactional)

    def _run_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                self._run(item)
            finally:
                self._queue.task_done()

    def _run(self, item: _WorkItem) -> None:
        pending = item.pending
        if pending.state is not MutationState.RUNNING:
            _host_log.info(
                "mutation_skipped command=%s state=%s",
                pending.command_name,
                pending.state.value,
                extra={"command": pending.command_name, "state": pending.state.value},
            )
            return

        callback = ResultCallback(pending)
        scope = self.transaction(pending.command_name) if item.transactional else nullcontext()
        _worker_state.token = pending.token
        started = time.monotonic()
        try:
            with self.lock.write(), scope:
                item.body(callback)
        except MutationCancelled:
            _host_log.info(
                "mutation_cancelled command=%s",
                pending.command_name,
                extra={"command": pending.command_name},
            )
            callback.failure(f"{pending.command_name} was cancelled", ErrorCode.TIMEOUT)
        except Exception as e:
            _host_log.warning(
                "mutation_failed command=%s error=%s",
                pending.command_name,
                str(e),
                extra={"command": pending.command_name, "error": str(e)},
                exc_info=True,
            )
            callback.complete(OperationResult.failed(OperationError.internal(e, pending.command_name)))
        finally:
            _worker_state.token = None
            _host_log.debug(
                "mutation_finished command=%s state=%s elapsed=%.3f",
                pending.command_name,
                pending.state.value,
                time.monotonic() - started,
                extra={"command": pending.command_name, "state": pending.state.value},
            )
