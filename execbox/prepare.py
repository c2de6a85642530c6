"""Prepare the file descriptors handed to commands, including pipes between them."""

from __future__ import annotations

import os
import socket
import threading
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Optional

from execbox.files import FileCollector, FileInput, FileOpened, FileReader, FileWriter
from execbox.model import Cmd
from execbox.pipes import (
    NewStoreFile,
    PipeCollector,
    _copy_n,
    _drain,
    _os_pipe,
    _pipe_from_reader,
    new_pipe,
    new_pipe_buffer,
    reader_to_file,
)

_CHUNK = 64 * 1024


@dataclass(frozen=True)
class PipeIndex:
    """A command index and one of its file descriptor numbers."""

    index: int
    fd: int


@dataclass
class Pipe:
    """A pipe from ``in_`` (writing command) to ``out`` (reading command).

    With ``proxy`` the data is copied between two pipes, and when ``name`` is
    set the first ``limit`` bytes are also collected under that name.
    """

    in_: PipeIndex
    out: PipeIndex
    name: str = ""
    limit: int = 0
    proxy: bool = False


def close_files(files: Iterable[Optional[BinaryIO]]) -> None:
    """Close every file that is not None."""
    for f in files:
        if f is not None:
            f.close()


def count_fds(cmds: list[Cmd], pipes: list[Pipe]) -> list[int]:
    """Return how many descriptors each command needs, checking pipe slots."""
    counts = [len(c.files) for c in cmds]
    for p in pipes:
        for end in (p.in_, p.out):
            if end.index < 0 or end.index >= len(cmds):
                raise ValueError(f"pipe index out of range {end.index}")
            files = cmds[end.index].files
            if end.fd < len(files) and files[end.fd] is not None:
                raise ValueError(f"pipe fd have been occupied {end.index} {end.fd}")
            counts[end.index] = max(counts[end.index], end.fd + 1)
    return counts


def _terminal_pair() -> tuple[BinaryIO, BinaryIO]:
    """Return (controller, endpoint): a bidirectional channel standing in for a terminal."""
    try:
        left, right = socket.socketpair()
    except OSError as exc:
        raise OSError(f"failed to open tty {exc}") from exc
    controller = os.fdopen(left.detach(), "r+b", buffering=0)
    endpoint = os.fdopen(right.detach(), "r+b", buffering=0)
    return controller, endpoint


def _prepare_tty(cmd: Cmd, count: int, new_store_file: NewStoreFile):
    master, slave = _terminal_pair()
    files: list[Optional[BinaryIO]] = [None] * count
    collectors: list[PipeCollector] = []
    threads: list[threading.Thread] = []
    has_input = has_output = False

    def spawn(target) -> None:
        t = threading.Thread(target=target, daemon=True)
        threads.append(t)
        t.start()

    try:
        for j, f in enumerate(cmd.files):
            if f is None:
                continue
            if isinstance(f, FileOpened):
                files[j] = f.file
            elif isinstance(f, FileReader):
                if has_input:
                    raise ValueError("cannot have multiple input when tty enabled")
                has_input = True
                files[j] = slave

                def feed(reader=f.reader) -> None:
                    try:
                        for chunk in iter(lambda: reader.read(_CHUNK), b""):
                            master.write(chunk)
                    except (OSError, ValueError):
                        pass

                spawn(feed)
                if hasattr(f.reader, "tty"):
                    f.reader.tty(master)
            elif isinstance(f, FileInput):
                try:
                    files[j] = open(f.path, "rb")
                except OSError as exc:
                    raise OSError(f"failed to open file {f.path}") from exc
            elif isinstance(f, FileCollector):
                files[j] = slave
                if has_output:
                    continue
                has_output = True
                done = threading.Event()
                buf = new_store_file()
                collectors.append(PipeCollector(done, buf, f.limit, f.name))

                def collect(buf=buf, limit=f.limit, done=done) -> None:
                    try:
                        _copy_n(master, buf, limit + 1)
                    except (OSError, ValueError):
                        pass
                    finally:
                        done.set()

                spawn(collect)
            elif isinstance(f, FileWriter):
                files[j] = slave
                if has_output:
                    continue
                has_output = True

                def forward(writer=f.writer) -> None:
                    try:
                        for chunk in iter(lambda: master.read(_CHUNK), b""):
                            writer.write(chunk)
                    except (OSError, ValueError):
                        pass

                spawn(forward)
            else:
                raise TypeError(f"unknown file type {f!r}")
    except BaseException:
        close_files(files)
        close_files([slave, master])
        for t in threads:
            t.join()
        raise

    def close_master() -> None:
        for t in threads:
            t.join()
        master.close()

    threading.Thread(target=close_master, daemon=True).start()
    return files, collectors


def prepare_cmd_fds(
    cmd: Cmd, count: int, new_store_file: NewStoreFile
) -> tuple[list[Optional[BinaryIO]], list[PipeCollector]]:
    """Open the files of one command; return the descriptors and pipes to collect."""
    if cmd.tty:
        return _prepare_tty(cmd, count, new_store_file)
    files: list[Optional[BinaryIO]] = [None] * count
    collectors: list[PipeCollector] = []
    opened: dict[str, BinaryIO] = {}
    try:
        for j, f in enumerate(cmd.files):
            if f is None:
                continue
            if isinstance(f, FileOpened):
                files[j] = f.file
            elif isinstance(f, FileReader):
                files[j] = _pipe_from_reader(f.reader) if f.stream else reader_to_file(f.reader)
            elif isinstance(f, FileInput):
                try:
                    files[j] = open(f.path, "rb")
                except OSError as exc:
                    raise OSError(f"failed to open file {f.path}") from exc
            elif isinstance(f, FileCollector):
                if f.name in opened:
                    files[j] = opened[f.name]
                    continue
                if f.pipe:
                    b = new_pipe_buffer(f.limit, new_store_file)
                    opened[f.name] = files[j] = b.w
                    collectors.append(PipeCollector(b.done, b.buffer, f.limit, f.name))
                else:
                    if cmd.environment is None:
                        raise ValueError("collector requires an environment")
                    handle = cmd.environment.open(f.name, os.O_CREAT | os.O_WRONLY, 0o777)
                    opened[f.name] = files[j] = handle
            elif isinstance(f, FileWriter):
                _, files[j] = new_pipe(f.writer, f.limit)
            else:
                raise TypeError(f"unknown file type {f!r}")
    except BaseException:
        close_files(files)
        raise
    return files, collectors


def _pipe_proxy(p: Pipe, out1, in2, buffer) -> Optional[PipeCollector]:
    def copy_and_close() -> None:
        try:
            for chunk in iter(lambda: out1.read(_CHUNK), b""):
                in2.write(chunk)
        except OSError:
            pass
        in2.close()
        _drain(out1)
        out1.close()

    if not p.name:
        buffer.close()
        threading.Thread(target=copy_and_close, daemon=True).start()
        return None

    done = threading.Event()

    def tee() -> None:
        remaining = p.limit
        try:
            while remaining > 0:
                chunk = out1.read(min(_CHUNK, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                buffer.write(chunk)
                in2.write(chunk)
        except OSError:
            pass
        finally:
            done.set()
        copy_and_close()

    threading.Thread(target=tee, daemon=True).start()
    return PipeCollector(done, buffer, p.limit, p.name)


def _pipe(p: Pipe, new_store_file: NewStoreFile):
    if not p.proxy:
        out, inp = _os_pipe()
        return out, inp, None
    buffer = new_store_file()
    try:
        out1, in1 = _os_pipe()
    except BaseException:
        buffer.close()
        raise
    try:
        out2, in2 = _os_pipe()
    except BaseException:
        close_files([buffer, out1, in1])
        raise
    return out2, in1, _pipe_proxy(p, out1, in2, buffer)


def prepare_group_fds(
    cmds: list[Cmd], pipes: list[Pipe], new_store_file: NewStoreFile
) -> tuple[list[list[Optional[BinaryIO]]], list[list[PipeCollector]]]:
    """Open the files of every command and connect the pipes between them."""
    counts = count_fds(cmds, pipes)
    files: list[list[Optional[BinaryIO]]] = [[None] * n for n in counts]
    collectors: list[list[PipeCollector]] = [[] for _ in counts]
    try:
        for i, cmd in enumerate(cmds):
            files[i], collectors[i] = prepare_cmd_fds(cmd, counts[i], new_store_file)
        for p in pipes:
            out, inp, pc = _pipe(p, new_store_file)
            files[p.out.index][p.out.fd] = out
            files[p.in_.index][p.in_.fd] = inp
            if pc is not None:
                collectors[p.in_.index].append(pc)
    except BaseException:
        for fs in files:
            close_files(fs)
        raise
    return files, collectors