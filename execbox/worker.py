"""A worker that runs requests on pooled environments with bounded parallelism."""

from __future__ import annotations

import os
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from execbox.cmdfile import CmdFile
from execbox.files import File, FileCollector
from execbox.filestore import FileStore
from execbox.model import Cmd, CmdCopyOutFile, Environment, Result
from execbox.prepare import Pipe
from execbox.request import Request, Response, WorkerCmd, WorkerResult
from execbox.runner import Group, Single
from execbox.status import Status
from execbox.waiter import Waiter

MAX_WAITING = 512
_POLL = 0.05


class _EnvironmentSource(Protocol):
    def get(self) -> Environment: ...

    def put(self, env: Environment) -> None: ...


@dataclass
class WorkerConfig:
    """Settings for a worker (times in seconds, sizes in bytes)."""

    file_store: FileStore
    environment_pool: _EnvironmentSource
    parallelism: int = 1
    work_dir: str = ""
    time_limit_tick_interval: float = 0.0
    extra_memory_limit: int = 0
    output_limit: int = 0
    copy_out_limit: int = 0
    open_file_limit: int = 0
    exec_observer: Optional[Callable[[Response], None]] = None


@dataclass
class _WorkItem:
    request: Request
    cancel: threading.Event
    started: threading.Event
    future: Future


class Worker:
    """Runs submitted requests in a fixed number of background threads."""

    def __init__(self, config: WorkerConfig) -> None:
        self._config = config
        self._queue: Optional[queue.Queue] = None
        self._done = threading.Event()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._started = False
        self._stopped = False

    def start(self) -> None:
        """Start the worker threads; later calls do nothing."""
        with self._lock:
            if self._started:
                return
            self._started = True
            self._queue = queue.Queue(maxsize=MAX_WAITING)
            for _ in range(self._config.parallelism):
                t = threading.Thread(target=self._loop, daemon=True)
                self._threads.append(t)
                t.start()

    def submit(
        self, request: Request, cancel: Optional[threading.Event] = None
    ) -> tuple[Future, threading.Event]:
        """Queue a request; return a future for its response and an event set when it starts."""
        cancel = cancel if cancel is not None else threading.Event()
        future: Future = Future()
        started = threading.Event()
        item = _WorkItem(request, cancel, started, future)
        try:
            if self._queue is None:
                raise queue.Full
            self._queue.put_nowait(item)
        except queue.Full:
            started.set()
            future.set_result(
                Response(
                    request_id=request.request_id,
                    error=RuntimeError("worker queue is full"),
                )
            )
        return future, started

    def execute(self, request: Request, cancel: Optional[threading.Event] = None) -> Future:
        """Run a request at once in its own thread, outside the parallelism limit."""
        cancel = cancel if cancel is not None else threading.Event()
        future: Future = Future()

        def run() -> None:
            try:
                future.set_result(self._work_do_cmd(cancel, request))
            except BaseException as exc:
                future.set_exception(exc)

        t = threading.Thread(target=run, daemon=True)
        with self._lock:
            self._threads.append(t)
        t.start()
        return future

    def shutdown(self) -> None:
        """Stop the worker threads and wait for all running work to finish."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._done.set()
            threads = list(self._threads)
        for t in threads:
            if t is not threading.current_thread():
                t.join()

    def __enter__(self) -> "Worker":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    def _loop(self) -> None:
        assert self._queue is not None
        while not self._done.is_set():
            try:
                item: _WorkItem = self._queue.get(timeout=_POLL)
            except queue.Empty:
                continue
            item.started.set()
            if item.cancel.is_set():
                item.future.set_result(
                    Response(
                        request_id=item.request.request_id,
                        error=RuntimeError("cancelled before execute"),
                    )
                )
                continue
            try:
                item.future.set_result(self._work_do_cmd(item.cancel, item.request))
            except Exception as exc:
                item.future.set_exception(exc)

    def _work_do_cmd(self, cancel: threading.Event, request: Request) -> Response:
        if len(request.cmd) == 1:
            response = self._work_do_single(cancel, request.cmd[0])
        else:
            response = self._work_do_group(cancel, request.cmd, request.pipe_mapping)
        response.request_id = request.request_id
        if self._config.exec_observer is not None:
            self._config.exec_observer(response)
        return response

    def _work_do_single(self, cancel: threading.Event, rc: WorkerCmd) -> Response:
        try:
            cmd = self._prepare_cmd(rc)
        except Exception as exc:
            return Response(error=exc)
        pool = self._config.environment_pool
        try:
            env = pool.get()
        except Exception as exc:
            return Response(
                results=[
                    WorkerResult(
                        status=Status.INTERNAL_ERROR,
                        error=f"failed to get environment {exc}",
                    )
                ]
            )
        try:
            cmd.environment = env
            single = Single(cmd=cmd, new_store_file=self._config.file_store.new)
            try:
                result = single.run(cancel)
            except Exception as exc:
                return Response(error=exc)
            return Response(results=[self._convert_result(result, rc)])
        finally:
            pool.put(env)

    def _work_do_group(
        self, cancel: threading.Event, rcs: list[WorkerCmd], pipes: list[Pipe]
    ) -> Response:
        try:
            cmds = [self._prepare_cmd(rc) for rc in rcs]
        except Exception as exc:
            return Response(error=exc)
        pool = self._config.environment_pool
        envs: list[Environment] = []
        try:
            for cmd in cmds:
                try:
                    env = pool.get()
                except Exception as exc:
                    return Response(
                        results=[
                            WorkerResult(
                                status=Status.INTERNAL_ERROR,
                                error=f"failed to get environment {exc}",
                            )
                            for _ in cmds
                        ]
                    )
                envs.append(env)
                cmd.environment = env
            group = Group(cmds=cmds, new_store_file=self._config.file_store.new, pipes=pipes)
            try:
                results = group.run(cancel)
            except Exception as exc:
                return Response(error=exc)
            return Response(
                results=[self._convert_result(r, rc) for r, rc in zip(results, rcs)]
            )
        finally:
            for env in envs:
                pool.put(env)

    def _convert_result(self, result: Result, rc: WorkerCmd) -> WorkerResult:
        res = WorkerResult(
            status=result.status,
            exit_status=result.exit_status,
            error=result.error,
            time=result.time,
            run_time=result.run_time,
            memory=result.memory,
            file_error=result.file_error,
        )
        # A time limit hit caused by cancellation is reported as a signal.
        if (
            res.status == Status.TIME_LIMIT_EXCEEDED
            and res.exit_status != 0
            and res.time < rc.cpu_limit
            and res.run_time < rc.clock_limit
        ):
            res.status = Status.SIGNALLED

        cached = {f.name for f in rc.copy_out_cached}
        for name, f in result.files.items():
            if name not in cached:
                res.files[name] = f
                continue
            try:
                file_id = self._config.file_store.add(name, f.name)
            except Exception as exc:
                res.status = Status.FILE_ERROR
                res.error = str(exc)
                return res
            res.file_ids[name] = file_id
            f.close()
        return res

    def _prepare_cmd(self, rc: WorkerCmd) -> Cmd:
        files, pipe_names = self._prepare_cmd_files(rc.files)
        copy_in = self._prepare_copy_in(rc.copy_in)

        copy_out: list[CmdCopyOutFile] = [
            f for f in [*rc.copy_out, *rc.copy_out_cached] if f.name not in pipe_names
        ]

        waiter = Waiter(
            time_limit=rc.cpu_limit,
            real_time_limit=rc.clock_limit,
            tick_interval=self._config.time_limit_tick_interval,
        )

        copy_out_dir = ""
        if rc.copy_out_dir:
            if os.path.isabs(rc.copy_out_dir):
                copy_out_dir = rc.copy_out_dir
            else:
                copy_out_dir = os.path.join(self._config.work_dir, rc.copy_out_dir)

        copy_out_max = rc.copy_out_max if rc.copy_out_max > 0 else self._config.copy_out_limit
        output_limit = rc.output_limit or self._config.output_limit
        open_file_limit = rc.open_file_limit or self._config.open_file_limit

        return Cmd(
            args=rc.args,
            env=rc.env,
            files=files,
            tty=rc.tty,
            time_limit=rc.cpu_limit,
            memory_limit=rc.memory_limit,
            stack_limit=rc.stack_limit,
            extra_memory_limit=self._config.extra_memory_limit,
            output_limit=output_limit,
            proc_limit=rc.proc_limit,
            open_file_limit=open_file_limit,
            cpu_rate_limit=rc.cpu_rate_limit,
            cpu_set_limit=rc.cpu_set_limit,
            strict_memory_limit=rc.strict_memory_limit,
            copy_in=copy_in,
            copy_out=copy_out,
            copy_out_dir=copy_out_dir,
            copy_out_max=copy_out_max,
            waiter=waiter.wait,
        )

    def _prepare_copy_in(self, copy_in: dict[str, Optional[CmdFile]]) -> dict[str, File]:
        prepared: dict[str, File] = {}
        for name, f in copy_in.items():
            if f is None:
                raise ValueError(f"nil type cannot be used for copyIn {name}")
            prepared[name] = f.env_file(self._config.file_store)
        return prepared

    def _prepare_cmd_files(
        self, files: list[Optional[CmdFile]]
    ) -> tuple[list[Optional[File]], set[str]]:
        prepared: list[Optional[File]] = []
        pipe_names: set[str] = set()
        for f in files:
            if f is None:
                prepared.append(None)
                continue
            env_file = f.env_file(self._config.file_store)
            prepared.append(env_file)
            if isinstance(env_file, FileCollector):
                pipe_names.add(env_file.name)
        return prepared, pipe_names