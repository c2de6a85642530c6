import os
import threading

import pytest

from execbox.cmdfile import CachedFile, MemoryFile
from execbox.filestore import LocalFileStore
from execbox.model import (
    DEFAULT_EXTRA_MEMORY_LIMIT,
    CmdCopyOutFile,
    Environment,
    Process,
    RunnerResult,
    Usage,
)
from execbox.request import Request, WorkerCmd
from execbox.status import RunnerStatus, Status
from execbox.worker import Worker, WorkerConfig

TIMEOUT = 10


class FakeProcess(Process):
    def __init__(self, outcome):
        self._done = threading.Event()
        self._done.set()
        self._outcome = outcome

    def done(self):
        return self._done

    def result(self):
        return self._outcome

    def usage(self):
        return Usage()


class FakeEnv(Environment):
    def __init__(self, root, outcome):
        self.root = str(root)
        self.outcome = outcome
        self.params = []

    def execve(self, cancel, param):
        self.params.append(param)
        return FakeProcess(self.outcome)

    def work_dir(self):
        return self.root

    def open(self, path, flags, mode):
        fd = os.open(os.path.join(self.root, path), flags, mode)
        if flags & os.O_WRONLY:
            return os.fdopen(fd, "wb")
        if flags & os.O_RDWR:
            return os.fdopen(fd, "r+b")
        return os.fdopen(fd, "rb")


class FakePool:
    def __init__(self, root, outcome=None, fail=None):
        self.root = root
        self.outcome = outcome or RunnerResult(status=RunnerStatus.NORMAL)
        self.fail = fail
        self.created = []
        self.returned = []

    def get(self):
        if self.fail is not None:
            raise self.fail
        d = self.root / f"env{len(self.created)}"
        d.mkdir()
        env = FakeEnv(d, self.outcome)
        self.created.append(env)
        return env

    def put(self, env):
        self.returned.append(env)


@pytest.fixture
def store(tmp_path):
    d = tmp_path / "store"
    d.mkdir()
    return LocalFileStore(str(d))


def make(tmp_path, store, pool=None, **kwargs):
    pool = pool or FakePool(tmp_path)
    config = WorkerConfig(file_store=store, environment_pool=pool, **kwargs)
    return Worker(config), pool


def test_execute_single_accepted(tmp_path, store):
    worker, pool = make(tmp_path, store)
    response = worker.execute(Request(request_id="r1", cmd=[WorkerCmd()])).result(TIMEOUT)
    assert response.request_id == "r1"
    assert response.error is None
    assert [r.status for r in response.results] == [Status.ACCEPTED]
    assert pool.returned == pool.created
    worker.shutdown()


def test_copy_in_and_copy_out(tmp_path, store):
    worker, _ = make(tmp_path, store)
    cmd = WorkerCmd(
        copy_in={"a.txt": MemoryFile(b"hello")},
        copy_out=[CmdCopyOutFile("a.txt")],
    )
    response = worker.execute(Request(cmd=[cmd])).result(TIMEOUT)
    f = response.results[0].files["a.txt"]
    f.seek(0)
    assert f.read() == b"hello"
    f.close()


def test_copy_out_cached_goes_to_store(tmp_path, store):
    worker, _ = make(tmp_path, store)
    cmd = WorkerCmd(
        copy_in={"a.txt": MemoryFile(b"data")},
        copy_out_cached=[CmdCopyOutFile("a.txt")],
    )
    response = worker.execute(Request(cmd=[cmd])).result(TIMEOUT)
    result = response.results[0]
    assert "a.txt" not in result.files
    file_id = result.file_ids["a.txt"]
    name, file = store.get(file_id)
    assert name == "a.txt"
    with open(file.path, "rb") as fh:
        assert fh.read() == b"data"


def test_environment_failure_is_internal_error(tmp_path, store):
    pool = FakePool(tmp_path, fail=RuntimeError("boom"))
    worker, _ = make(tmp_path, store, pool=pool)
    response = worker.execute(Request(cmd=[WorkerCmd()])).result(TIMEOUT)
    assert response.results[0].status == Status.INTERNAL_ERROR
    assert response.results[0].error == "failed to get environment boom"


def test_group_environment_failure_reports_every_cmd(tmp_path, store):
    pool = FakePool(tmp_path, fail=RuntimeError("boom"))
    worker, _ = make(tmp_path, store, pool=pool)
    response = worker.execute(Request(cmd=[WorkerCmd(), WorkerCmd()])).result(TIMEOUT)
    assert [r.status for r in response.results] == [Status.INTERNAL_ERROR] * 2


def test_nil_copy_in_is_error(tmp_path, store):
    worker, _ = make(tmp_path, store)
    response = worker.execute(Request(cmd=[WorkerCmd(copy_in={"x": None})])).result(TIMEOUT)
    assert isinstance(response.error, ValueError)
    assert str(response.error) == "nil type cannot be used for copyIn x"
    assert response.results == []


def test_missing_cached_file_is_error(tmp_path, store):
    worker, pool = make(tmp_path, store)
    cmd = WorkerCmd(copy_in={"x": CachedFile("NOPE")})
    response = worker.execute(Request(request_id="m", cmd=[cmd])).result(TIMEOUT)
    assert isinstance(response.error, FileNotFoundError)
    assert response.request_id == "m"
    assert response.results == []
    assert pool.created == []


def test_submit_before_start_reports_full_queue(tmp_path, store):
    worker, _ = make(tmp_path, store)
    future, started = worker.submit(Request(request_id="q", cmd=[WorkerCmd()]))
    response = future.result(TIMEOUT)
    assert started.is_set()
    assert response.request_id == "q"
    assert str(response.error) == "worker queue is full"


def test_submit_after_start_runs(tmp_path, store):
    worker, _ = make(tmp_path, store, parallelism=2)
    worker.start()
    future, started = worker.submit(Request(request_id="s", cmd=[WorkerCmd()]))
    response = future.result(TIMEOUT)
    assert started.is_set()
    assert response.results[0].status == Status.ACCEPTED
    worker.shutdown()


def test_submit_cancelled_before_execute(tmp_path, store):
    worker, pool = make(tmp_path, store)
    worker.start()
    cancel = threading.Event()
    cancel.set()
    future, _ = worker.submit(Request(cmd=[WorkerCmd()]), cancel)
    response = future.result(TIMEOUT)
    assert str(response.error) == "cancelled before execute"
    assert pool.created == []
    worker.shutdown()


def test_observer_sees_response(tmp_path, store):
    observed = []
    worker, _ = make(tmp_path, store, exec_observer=observed.append)
    response = worker.execute(Request(request_id="o", cmd=[WorkerCmd()])).result(TIMEOUT)
    assert len(observed) == 1
    assert observed[0] is response


def test_time_limit_from_cancel_becomes_signalled(tmp_path, store):
    outcome = RunnerResult(
        status=RunnerStatus.TIME_LIMIT_EXCEEDED, exit_status=9, time=0.5, running_time=0.5
    )
    worker, _ = make(tmp_path, store, pool=FakePool(tmp_path, outcome=outcome))
    cmd = WorkerCmd(cpu_limit=1.0, clock_limit=2.0)
    response = worker.execute(Request(cmd=[cmd])).result(TIMEOUT)
    assert response.results[0].status == Status.SIGNALLED


def test_real_time_limit_kept_with_zero_exit(tmp_path, store):
    outcome = RunnerResult(status=RunnerStatus.TIME_LIMIT_EXCEEDED, exit_status=0)
    worker, _ = make(tmp_path, store, pool=FakePool(tmp_path, outcome=outcome))
    cmd = WorkerCmd(cpu_limit=1.0, clock_limit=2.0)
    response = worker.execute(Request(cmd=[cmd])).result(TIMEOUT)
    assert response.results[0].status == Status.TIME_LIMIT_EXCEEDED


def test_limits_fall_back_to_config(tmp_path, store):
    worker, pool = make(tmp_path, store, output_limit=1024, open_file_limit=64)
    cmd = WorkerCmd(memory_limit=100)
    worker.execute(Request(cmd=[cmd])).result(TIMEOUT)
    limit = pool.created[0].params[0].limit
    assert limit.output == 1024
    assert limit.open_file == 64
    assert limit.memory == 100 + DEFAULT_EXTRA_MEMORY_LIMIT


def test_command_limits_override_config(tmp_path, store):
    worker, pool = make(tmp_path, store, output_limit=1024, open_file_limit=64)
    cmd = WorkerCmd(output_limit=10, open_file_limit=5)
    worker.execute(Request(cmd=[cmd])).result(TIMEOUT)
    limit = pool.created[0].params[0].limit
    assert (limit.output, limit.open_file) == (10, 5)


def test_copy_out_dir_relative_to_work_dir(tmp_path, store):
    dump = tmp_path / "dump"
    worker, _ = make(tmp_path, store, work_dir=str(dump))
    cmd = WorkerCmd(copy_in={"a.txt": MemoryFile(b"xyz")}, copy_out_dir="out")
    response = worker.execute(Request(cmd=[cmd])).result(TIMEOUT)
    assert response.results[0].status == Status.ACCEPTED
    assert (dump / "out" / "a.txt").read_bytes() == b"xyz"


def test_group_runs_every_cmd_and_returns_envs(tmp_path, store):
    worker, pool = make(tmp_path, store)
    response = worker.execute(Request(cmd=[WorkerCmd(), WorkerCmd()])).result(TIMEOUT)
    assert [r.status for r in response.results] == [Status.ACCEPTED] * 2
    assert len(pool.created) == 2
    assert sorted(map(id, pool.returned)) == sorted(map(id, pool.created))