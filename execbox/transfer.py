"""Copy files into an environment before a run and collect outputs after it."""

from __future__ import annotations

import os
import shutil
import stat
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Optional

from execbox.files import File, FileCollector, file_to_reader
from execbox.model import Cmd, CmdCopyOutFile, Environment, FileError, FileErrorType
from execbox.pipes import NewStoreFile, PipeCollector, _copy_n, copy_dir
from execbox.status import RunnerStatus


class _OutputLimitExceeded(Exception):
    def __init__(self) -> None:
        super().__init__("Output Limit Exceeded")


@dataclass
class CollectOutcome:
    """Collected files, per-file errors and the first failure, if any."""

    files: dict[str, BinaryIO] = field(default_factory=dict)
    file_errors: list[FileError] = field(default_factory=list)
    error: str = ""
    runner_status: Optional[RunnerStatus] = None


def _run_all(tasks: list[Callable[[], None]]) -> Optional[BaseException]:
    if not tasks:
        return None
    with ThreadPoolExecutor(max_workers=len(tasks)) as pool:
        futures = [pool.submit(t) for t in tasks]
    for fut in futures:
        exc = fut.exception()
        if exc is not None:
            return exc
    return None


def copy_in(env: Environment, files: dict[str, File]) -> list[FileError]:
    """Copy host files into the environment in parallel; return the errors."""
    errors: list[FileError] = []
    lock = threading.Lock()

    def task(name: str, f: File) -> None:
        kind = FileErrorType.COPY_IN_OPEN_FILE
        try:
            try:
                src = file_to_reader(f)
            except (OSError, TypeError) as exc:
                raise OSError(f"failed to copyIn {exc}") from exc
            with src:
                kind = FileErrorType.COPY_IN_CREATE_FILE
                dst = env.open(name, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, 0o777)
                with dst:
                    kind = FileErrorType.COPY_IN_COPY_CONTENT
                    shutil.copyfileobj(src, dst)
        except Exception as exc:
            with lock:
                errors.append(FileError(name, kind, str(exc)))
            raise

    _run_all([lambda n=n, f=f: task(n, f) for n, f in files.items()])
    return errors


def copy_out_and_collect(
    env: Environment,
    cmd: Cmd,
    collectors: list[PipeCollector],
    new_store_file: NewStoreFile,
) -> CollectOutcome:
    """Read copy-out files and collected outputs from the environment in parallel."""
    outcome = CollectOutcome()
    lock = threading.Lock()

    def put(f: BinaryIO, name: str) -> None:
        with lock:
            outcome.files[name] = f

    def add_error(e: FileError) -> None:
        with lock:
            outcome.file_errors.append(e)

    def copy_out(entry: CmdCopyOutFile) -> None:
        kind = FileErrorType.COPY_OUT_OPEN
        try:
            try:
                src = env.open(entry.name, os.O_RDONLY, 0o777)
            except FileNotFoundError:
                if entry.optional:
                    return
                raise
            with src:
                st = os.fstat(src.fileno())
                if not stat.S_ISREG(st.st_mode):
                    kind = FileErrorType.COPY_OUT_NOT_REGULAR_FILE
                    raise OSError(f"{entry.name}: not a regular file: {oct(st.st_mode)}")
                size = st.st_size
                if cmd.copy_out_max > 0 and size > cmd.copy_out_max:
                    kind = FileErrorType.COPY_OUT_SIZE_EXCEEDED
                    raise OSError(
                        f"{entry.name}: size ({size}) exceeded the limit ({cmd.copy_out_max})"
                    )
                try:
                    buf = new_store_file()
                except OSError as exc:
                    kind = FileErrorType.COPY_OUT_CREATE_FILE
                    raise OSError(f"{entry.name}: failed to create store file {exc}") from exc
                try:
                    _copy_n(src, buf, size)
                except OSError:
                    kind = FileErrorType.COPY_OUT_COPY_CONTENT
                    buf.close()
                    raise
                put(buf, entry.name)
        except Exception as exc:
            add_error(FileError(entry.name, kind, str(exc)))
            raise

    def collect_pipe(p: PipeCollector) -> None:
        p.done.wait()
        put(p.buffer, p.name)
        try:
            size = os.fstat(p.buffer.fileno()).st_size
        except OSError:
            return
        if size > p.limit:
            add_error(FileError(p.name, FileErrorType.COLLECT_SIZE_EXCEEDED))
            raise _OutputLimitExceeded()

    def collect_file(c: FileCollector) -> None:
        kind = FileErrorType.COPY_OUT_OPEN
        try:
            with env.open(c.name, os.O_RDONLY, 0o777) as src:
                st = os.fstat(src.fileno())
                if not stat.S_ISREG(st.st_mode):
                    kind = FileErrorType.COPY_OUT_NOT_REGULAR_FILE
                    raise OSError(f"{c.name}: not a regular file {stat.S_IFMT(st.st_mode)}")
                try:
                    buf = new_store_file()
                except OSError as exc:
                    kind = FileErrorType.COPY_OUT_CREATE_FILE
                    raise OSError(f"{c.name}: failed to create store file {exc}") from exc
                try:
                    _copy_n(src, buf, c.limit + 1)
                except OSError:
                    kind = FileErrorType.COPY_OUT_COPY_CONTENT
                    buf.close()
                    raise
                put(buf, c.name)
                if st.st_size > c.limit:
                    kind = FileErrorType.COLLECT_SIZE_EXCEEDED
                    raise _OutputLimitExceeded()
        except Exception as exc:
            add_error(FileError(c.name, kind, str(exc)))
            raise

    tasks: list[Callable[[], None]] = [lambda e=e: copy_out(e) for e in cmd.copy_out]
    tasks += [lambda p=p: collect_pipe(p) for p in collectors]
    seen: set[str] = set()
    for f in cmd.files:
        if not isinstance(f, FileCollector) or f.pipe or f.name in seen or cmd.tty:
            continue
        seen.add(f.name)
        tasks.append(lambda c=f: collect_file(c))
    if cmd.copy_out_dir:
        tasks.append(lambda: copy_dir(env.work_dir(), cmd.copy_out_dir))

    exc = _run_all(tasks)
    if exc is not None:
        outcome.error = str(exc)
        if isinstance(exc, _OutputLimitExceeded):
            outcome.runner_status = RunnerStatus.OUTPUT_LIMIT_EXCEEDED
    return outcome