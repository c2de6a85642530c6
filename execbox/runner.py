"""Run commands in their environments: single commands and piped groups."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

from execbox.model import (
    DEFAULT_EXTRA_MEMORY_LIMIT,
    Cmd,
    Environment,
    ExecveParam,
    Limit,
    Process,
    Result,
    RunnerResult,
)
from execbox.pipes import NewStoreFile, PipeCollector
from execbox.prepare import Pipe, close_files, prepare_cmd_fds, prepare_group_fds
from execbox.status import RunnerStatus, Status, convert_status
from execbox.transfer import copy_in, copy_out_and_collect

_POLL = 0.01


def _linked(parent: threading.Event) -> threading.Event:
    """Return an event that is also set whenever ``parent`` gets set."""
    child = threading.Event()
    if parent.is_set():
        child.set()
        return child

    def link() -> None:
        while not child.wait(_POLL):
            if parent.is_set():
                child.set()

    threading.Thread(target=link, daemon=True).start()
    return child


def _execve(
    ctx: threading.Event, env: Environment, cmd: Cmd, fds: list[Optional[BinaryIO]]
) -> Process:
    try:
        extra = cmd.extra_memory_limit or DEFAULT_EXTRA_MEMORY_LIMIT
        memory = cmd.memory_limit + extra
        stack = cmd.stack_limit if cmd.stack_limit > 0 else 0
        stack = min(stack, memory)
        param = ExecveParam(
            args=cmd.args,
            env=cmd.env,
            files=[f.fileno() if f is not None else -1 for f in fds],
            tty=cmd.tty,
            limit=Limit(
                time=cmd.time_limit,
                memory=memory,
                proc=cmd.proc_limit,
                stack=stack,
                output=cmd.output_limit,
                rate=cmd.cpu_rate_limit,
                open_file=cmd.open_file_limit,
                cpu_set=cmd.cpu_set_limit,
                strict_memory=cmd.strict_memory_limit,
            ),
        )
        return env.execve(ctx, param)
    finally:
        close_files(fds)


def _run_wait(
    cancel: threading.Event, env: Environment, cmd: Cmd, fds: list[Optional[BinaryIO]]
) -> RunnerResult:
    ctx = _linked(cancel)
    try:
        try:
            process = _execve(ctx, env, cmd, fds)
        except Exception as exc:
            return RunnerResult(status=RunnerStatus.RUNNER_ERROR, error=str(exc))

        def watch() -> None:
            try:
                if cmd.waiter is not None:
                    cmd.waiter(ctx, process)
                else:
                    done = process.done()
                    while not done.wait(_POLL) and not ctx.is_set():
                        pass
            finally:
                ctx.set()

        threading.Thread(target=watch, daemon=True).start()
        ctx.wait()
        return process.result()
    finally:
        ctx.set()


def run_single(
    cancel: threading.Event,
    cmd: Cmd,
    fds: list[Optional[BinaryIO]],
    collectors: list[PipeCollector],
    new_store_file: NewStoreFile,
) -> Result:
    """Copy files in, run ``cmd`` with the prepared ``fds`` and collect its outputs."""
    env = cmd.environment
    if env is None:
        close_files(fds)
        raise ValueError("command has no environment")

    if cmd.copy_in:
        errors = copy_in(env, cmd.copy_in)
        if errors:
            close_files(fds)
            return Result(
                status=Status.FILE_ERROR, error=errors[0].message, file_error=errors
            )

    rt = _run_wait(cancel, env, cmd, fds)

    outcome = copy_out_and_collect(env, cmd, collectors, new_store_file)
    result = Result(
        status=convert_status(rt.status),
        exit_status=rt.exit_status,
        error=rt.error,
        time=rt.time,
        run_time=rt.running_time,
        memory=rt.memory,
        files=outcome.files,
        file_error=outcome.file_errors,
    )
    if rt.status is RunnerStatus.NORMAL and outcome.error and not result.error:
        if outcome.runner_status is not None:
            result.status = convert_status(outcome.runner_status)
        else:
            result.status = Status.FILE_ERROR
        result.error = outcome.error
    if result.time > cmd.time_limit:
        result.status = Status.TIME_LIMIT_EXCEEDED
    if result.memory > cmd.memory_limit:
        result.status = Status.MEMORY_LIMIT_EXCEEDED
    return result


@dataclass
class Single:
    """One command run in its environment."""

    cmd: Cmd
    new_store_file: NewStoreFile

    def run(self, cancel: Optional[threading.Event] = None) -> Result:
        """Prepare the files, run the command and return its result."""
        cancel = cancel if cancel is not None else threading.Event()
        fds, collectors = prepare_cmd_fds(self.cmd, len(self.cmd.files), self.new_store_file)
        return run_single(cancel, self.cmd, fds, collectors, self.new_store_file)


@dataclass
class Group:
    """Commands run in parallel, connected by pipes."""

    cmds: list[Cmd]
    new_store_file: NewStoreFile
    pipes: list[Pipe] = field(default_factory=list)

    def run(self, cancel: Optional[threading.Event] = None) -> list[Result]:
        """Prepare all files and pipes, run every command and return their results."""
        cancel = cancel if cancel is not None else threading.Event()
        fds, collectors = prepare_group_fds(self.cmds, self.pipes, self.new_store_file)
        results = [Result() for _ in self.cmds]

        def task(i: int) -> None:
            try:
                results[i] = run_single(
                    cancel, self.cmds[i], fds[i], collectors[i], self.new_store_file
                )
            except Exception as exc:
                results[i] = Result(status=Status.INTERNAL_ERROR, error=str(exc))
                raise

        with ThreadPoolExecutor(max_workers=max(1, len(self.cmds))) as pool:
            futures = [pool.submit(task, i) for i in range(len(self.cmds))]
        for fut in futures:
            exc = fut.exception()
            if exc is not None:
                raise exc
        return results