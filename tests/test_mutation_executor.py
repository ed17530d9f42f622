import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import pytest
from fake_host import FakeElement, FakeModel, RecordingEngine, build_service, write_java_project

from idebridge.core.errors import ErrorCode
from idebridge.core.types import OperationResult
from idebridge.host.executor import (
    MutationExecutor,
    MutationState,
    PendingMutation,
    ReadLockTimeout,
    ReadWriteLock,
    ResultCallback,
    current_token,
)


class TestPendingMutation:
    def test_first_completion_wins(self) -> None:
        pending = PendingMutation("Rename", timeout=1.0)
        callback = ResultCallback(pending)

        assert callback.success("renamed", ["/a/A.java"]) is True
        assert callback.failure("too late") is False

        result = pending.wait()
        assert result.success
        assert result.message == "renamed"
        assert pending.state is MutationState.COMPLETED

    def test_expired_slot_ignores_late_completion(self) -> None:
        pending = PendingMutation("Move", timeout=0.01)
        result = pending.wait()
        assert result.code is ErrorCode.TIMEOUT
        assert pending.state is MutationState.TIMED_OUT
        assert pending.token.cancelled
        assert pending.complete(OperationResult.ok("late")) is False
        assert pending.state is MutationState.TIMED_OUT


class TestMutationExecutor:
    def test_returns_body_result(self) -> None:
        executor = MutationExecutor()
        try:
            result = executor.execute(lambda: OperationResult.ok("done", ["x"]), "Rename")
        finally:
            executor.shutdown(timeout=1.0)
        assert result.success
        assert result.affected_files == ("x",)

    def test_slow_body_times_out_near_deadline(self) -> None:
        executor = MutationExecutor()
        release = threading.Event()

        def slow() -> OperationResult:
            release.wait(5.0)
            return OperationResult.ok("finished eventually")

        try:
            started = time.monotonic()
            result = executor.execute(slow, "Move", timeout=0.2)
            elapsed = time.monotonic() - started
        finally:
            release.set()
            executor.shutdown(timeout=2.0)

        assert not result.success
        assert result.code is ErrorCode.TIMEOUT
        assert "Move" in result.message
        assert 0.15 <= elapsed < 1.5

    def test_mutations_run_one_at_a_time_in_arrival_order(self) -> None:
        executor = MutationExecutor()
        order: list[int] = []
        active = {"count": 0, "max": 0}
        lock = threading.Lock()

        def body(index: int) -> OperationResult:
            with lock:
                active["count"] += 1
                active["max"] = max(active["max"], active["count"])
            time.sleep(0.02)
            order.append(index)
            with lock:
                active["count"] -= 1
            return OperationResult.ok(str(index))

        try:
            pendings = [
                executor.submit(lambda cb, i=i: cb.complete(body(i)), f"op-{i}", timeout=5.0)
                for i in range(5)
            ]
            results = [pending.wait() for pending in pendings]
        finally:
            executor.shutdown(timeout=2.0)

        assert order == [0, 1, 2, 3, 4]
        assert active["max"] == 1
        assert [r.message for r in results] == ["0", "1", "2", "3", "4"]

    def test_exception_in_body_becomes_internal_failure(self) -> None:
        executor = MutationExecutor()

        def explode() -> OperationResult:
            raise RuntimeError("write failed")

        try:
            result = executor.execute(explode, "Rename")
        finally:
            executor.shutdown(timeout=1.0)
        assert not result.success
        assert result.code is ErrorCode.INTERNAL
        assert "write failed" in result.message

    def test_callback_variant_completed_from_another_thread(self) -> None:
        executor = MutationExecutor()

        def body(callback: ResultCallback) -> None:
            def finish() -> None:
                callback.success("async done")
                callback.failure("ignored")

            threading.Timer(0.05, finish).start()

        try:
            result = executor.execute_with_callback(body, "Extract Method", timeout=2.0)
        finally:
            executor.shutdown(timeout=1.0)
        assert result.success
        assert result.message == "async done"

    def test_queued_mutation_skipped_after_caller_timed_out(self) -> None:
        executor = MutationExecutor()
        release = threading.Event()
        ran: list[str] = []

        def blocker(callback: ResultCallback) -> None:
            release.wait(5.0)
            callback.success("blocker")

        def queued(callback: ResultCallback) -> None:
            ran.append("queued")
            callback.success("queued")

        try:
            first = executor.submit(blocker, "Blocker", timeout=5.0)
            second = executor.submit(queued, "Queued", timeout=0.05)
            assert second.wait().code is ErrorCode.TIMEOUT
            release.set()
            assert first.wait().success
        finally:
            executor.shutdown(timeout=2.0)
        assert ran == []

    def test_body_can_observe_cancellation(self) -> None:
        executor = MutationExecutor()
        observed = threading.Event()

        def body(callback: ResultCallback) -> None:
            token = current_token()
            deadline = time.monotonic() + 5.0
            while not token.cancelled and time.monotonic() < deadline:
                time.sleep(0.01)
            if token.cancelled:
                observed.set()

        try:
            result = executor.execute_with_callback(body, "Rename", timeout=0.1)
            assert observed.wait(2.0)
        finally:
            executor.shutdown(timeout=2.0)
        assert result.code is ErrorCode.TIMEOUT

    def test_transaction_wraps_each_mutation(self) -> None:
        events: list[str] = []

        @contextmanager
        def transaction(command_name: str) -> Iterator[None]:
            events.append(f"begin {command_name}")
            try:
                yield
            except Exception:
                events.append(f"rollback {command_name}")
                raise
            events.append(f"commit {command_name}")

        def explode() -> OperationResult:
            raise ValueError("bad")

        executor = MutationExecutor(transaction=transaction)
        try:
            executor.execute(lambda: OperationResult.ok("ok"), "Rename")
            executor.execute(explode, "Move")
            executor.execute(lambda: OperationResult.ok("raw"), "Raw", transactional=False)
        finally:
            executor.shutdown(timeout=1.0)
        assert events == ["begin Rename", "commit Rename", "begin Move", "rollback Move"]

    def test_reads_wait_for_running_mutation(self) -> None:
        executor = MutationExecutor()
        inside = threading.Event()
        release = threading.Event()
        timeline: list[str] = []

        def body(callback: ResultCallback) -> None:
            inside.set()
            release.wait(5.0)
            timeline.append("write done")
            callback.success("ok")

        def reader() -> None:
            with executor.read_action():
                timeline.append("read")

        try:
            pending = executor.submit(body, "Rename", timeout=5.0)
            assert inside.wait(2.0)
            thread = threading.Thread(target=reader)
            thread.start()
            time.sleep(0.05)
            assert timeline == []
            release.set()
            thread.join(2.0)
            pending.wait()
        finally:
            executor.shutdown(timeout=1.0)
        assert timeline == ["write done", "read"]

    def test_concurrent_reads_overlap(self) -> None:
        executor = MutationExecutor()
        both_inside = threading.Barrier(2, timeout=2.0)

        def reader() -> None:
            with executor.read_action():
                both_inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(3.0)
        assert not both_inside.broken


class TestReadWriteLock:
    def test_read_gives_up_while_a_writer_holds_the_lock(self) -> None:
        lock = ReadWriteLock()
        with lock.write():
            started = time.monotonic()
            with pytest.raises(ReadLockTimeout):
                with lock.read(timeout=0.1):
                    pass
            assert time.monotonic() - started < 1.0
        with lock.read(timeout=0.1):
            pass


class TestStuckMutation:
    def test_requests_after_a_timed_out_mutation_fail_fast(self, tmp_path: Path) -> None:
        source = write_java_project(tmp_path)
        greet = FakeElement("greet", "method", source.as_posix(), 38)
        engine = RecordingEngine()
        service, executor = build_service(
            tmp_path, engine=engine, model=FakeModel(default_element=greet), timeout=0.3
        )
        inside = threading.Event()
        release = threading.Event()

        def hung(callback: ResultCallback) -> None:
            inside.set()
            release.wait(10.0)
            callback.success("late")

        try:
            pending = executor.submit(hung, "Stuck", timeout=0.1)
            assert inside.wait(2.0)
            stuck = pending.wait()
            started = time.monotonic()
            renamed = service.rename(str(source), 2, 19, "welcome")
            resolved = service.resolve(str(source), 2, 19)
            usages = service.find_usages(str(source), 2, 19)
            elapsed = time.monotonic() - started
            release.set()
            recovered = service.find_usages(str(source), 2, 19)
        finally:
            release.set()
            executor.shutdown(timeout=1.0)

        assert stuck.code is ErrorCode.TIMEOUT
        assert renamed.code is ErrorCode.TIMEOUT
        assert resolved["code"] == "TIMEOUT"
        assert usages.code is ErrorCode.TIMEOUT
        assert elapsed < 3.0
        assert engine.calls == [("findUsages", "greet")]
        assert recovered.success
